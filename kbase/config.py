"""
Configuration management for knowledge base stores.

The configuration is stored as a TOML file in the store directory.
It specifies the record backend, the chunk window geometry, and which
embedding provider to use with its parameters.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .chunking import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, validate_geometry


CONFIG_FILENAME = "kbase.toml"
CONFIG_VERSION = 1

# Backends shipped with kbase; others come from the kbase.backends entry point group
BUILTIN_BACKENDS = ("memory", "sqlite")


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EmbeddingIdentity:
    """Which provider, model, and vector size produced the cached vectors."""
    provider: str
    model: str
    dimension: int


@dataclass
class StoreConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Record backend: "memory", "sqlite", or an entry point name
    backend: str = "sqlite"

    # Chunk window geometry
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP

    # Provider configuration
    embedding: ProviderConfig = field(default_factory=lambda: ProviderConfig("ollama"))
    embedding_cache: bool = True

    # Recorded on first open; a change invalidates the embedding cache
    embedding_identity: Optional[EmbeddingIdentity] = None

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        """SQLite file for the sqlite backend."""
        return self.path / "documents.db"

    @property
    def cache_path(self) -> Path:
        """SQLite file for the embedding cache."""
        return self.path / "embedding_cache.db"

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Store directory from KBASE_STORE_PATH, else ~/.kbase."""
    env_path = os.environ.get("KBASE_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".kbase"


def detect_default_embedding() -> ProviderConfig:
    """
    Pick the embedding provider for a new store.

    Priority:
    1. OpenAI (if KBASE_OPENAI_API_KEY or OPENAI_API_KEY is set)
    2. Ollama (local, respects OLLAMA_HOST)
    """
    has_openai_key = bool(
        os.environ.get("KBASE_OPENAI_API_KEY") or
        os.environ.get("OPENAI_API_KEY")
    )
    if has_openai_key:
        return ProviderConfig("openai", {"model": "text-embedding-3-small"})
    return ProviderConfig("ollama", {"model": "nomic-embed-text"})


def create_default_config(store_path: Path) -> StoreConfig:
    """Create a new config with auto-detected defaults."""
    return StoreConfig(
        path=store_path,
        embedding=detect_default_embedding(),
    )


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})

    # Validate version
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    chunking = data.get("chunking", {})
    chunk_size = chunking.get("size", DEFAULT_CHUNK_SIZE)
    chunk_overlap = chunking.get("overlap", DEFAULT_CHUNK_OVERLAP)
    validate_geometry(chunk_size, chunk_overlap)

    embedding = data.get("embedding", {"name": "ollama"})

    identity = None
    if "embedding_identity" in data:
        ident = data["embedding_identity"]
        identity = EmbeddingIdentity(
            provider=ident.get("provider", ""),
            model=ident.get("model", ""),
            dimension=ident.get("dimension", 0),
        )

    return StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        backend=store.get("backend", "sqlite"),
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        embedding=ProviderConfig(
            name=embedding.get("name", ""),
            params={k: v for k, v in embedding.items() if k not in ("name", "cache")},
        ),
        embedding_cache=embedding.get("cache", True),
        embedding_identity=identity,
    )


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    embedding = {"name": config.embedding.name, "cache": config.embedding_cache}
    embedding.update(config.embedding.params)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
            "backend": config.backend,
        },
        "chunking": {
            "size": config.chunk_size,
            "overlap": config.chunk_overlap,
        },
        "embedding": embedding,
    }
    if config.embedding_identity is not None:
        data["embedding_identity"] = {
            "provider": config.embedding_identity.provider,
            "model": config.embedding_identity.model,
            "dimension": config.embedding_identity.dimension,
        }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Optional[Path] = None) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    if store_path is None:
        store_path = get_default_store_path()
    store_path = Path(store_path).expanduser()

    if (store_path / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = create_default_config(store_path)
    save_config(config)
    return config
