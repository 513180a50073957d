"""
Embedding providers backed by remote services.

Every failure talking to the service surfaces as ProviderError. Retry
policy belongs to the caller; providers try once.
"""

import logging
import os

import requests

from ..errors import ProviderError
from .base import get_registry

logger = logging.getLogger(__name__)


class OpenAIEmbedding:
    """
    Embedding provider using OpenAI's embeddings API.

    Requires: KBASE_OPENAI_API_KEY or OPENAI_API_KEY environment variable.

    Default model is text-embedding-3-small (1536 dimensions).
    """

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ):
        try:
            import openai
        except ImportError:
            raise RuntimeError("OpenAIEmbedding requires 'openai' library")

        self.model_name = model

        key = api_key or os.environ.get("KBASE_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set KBASE_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = openai.OpenAI(api_key=key, base_url=base_url, timeout=timeout)
        self._api_error = openai.OpenAIError
        self._dimension = self.MODEL_DIMENSIONS.get(model)

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension

    def embed(self, text: str) -> list[float]:
        """Generate an embedding using OpenAI."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for several texts in one request."""
        if not texts:
            return []
        try:
            response = self._client.embeddings.create(model=self.model_name, input=texts)
        except self._api_error as e:
            raise ProviderError(f"OpenAI embedding failed (model={self.model_name}): {e}") from e
        # The API may return items out of order; index is authoritative
        data = sorted(response.data, key=lambda d: d.index)
        vectors = [list(d.embedding) for d in data]
        if len(vectors) != len(texts):
            raise ProviderError(
                f"OpenAI returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        if self._dimension is None and vectors:
            self._dimension = len(vectors[0])
        return vectors


class OllamaEmbedding:
    """
    Embedding provider using Ollama's local API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    The model is pulled on first use if it is not installed.
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str | None = None,
        timeout: float = 120.0,
        ensure_model: bool = True,
    ):
        from .ollama_utils import ollama_base_url, ollama_ensure_model
        self.model_name = model
        self.base_url = ollama_base_url(base_url)
        self.timeout = timeout
        self._dimension: int | None = None
        if ensure_model:
            ollama_ensure_model(self.base_url, self.model_name)

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed("dimension probe"))
        return self._dimension

    def embed(self, text: str) -> list[float]:
        """Generate an embedding using Ollama."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for several texts in one request."""
        if not texts:
            return []
        try:
            response = requests.post(
                f"{self.base_url}/api/embed",
                json={"model": self.model_name, "input": texts},
                timeout=(10, self.timeout),  # (connect, read)
            )
        except requests.RequestException as e:
            raise ProviderError(
                f"Cannot reach Ollama at {self.base_url}: {e}"
            ) from e
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            raise ProviderError(
                f"Ollama embedding failed (model={self.model_name}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}"
            )
        vectors = response.json().get("embeddings") or []
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Ollama returned {len(vectors)} embeddings for {len(texts)} inputs"
            )
        if self._dimension is None:
            self._dimension = len(vectors[0])
        logger.debug("Embedded %d texts with %s", len(texts), self.model_name)
        return vectors


_registry = get_registry()
_registry.register_embedding("openai", OpenAIEmbedding)
_registry.register_embedding("ollama", OllamaEmbedding)
