"""
Pluggable record backend factory.

Creates the record backend (documents and chunks) from configuration.
Built-in backends are ``memory`` and ``sqlite``. External backends
register via the ``kbase.backends`` entry point group.

External backend packages provide a factory function::

    def create_backend(config: StoreConfig) -> RecordBackend:
        ...

and register it in their pyproject.toml::

    [project.entry-points."kbase.backends"]
    my-backend = "my_package.backend:create_backend"
"""

from .config import BUILTIN_BACKENDS, StoreConfig
from .protocol import RecordBackend


def create_backend(config: StoreConfig) -> RecordBackend:
    """
    Create a record backend from configuration.

    ``memory`` keeps everything resident; ``sqlite`` writes
    ``documents.db`` in the store directory. Other values are looked up
    in the ``kbase.backends`` entry point group.
    """
    if config.backend == "memory":
        from .backends.memory import MemoryBackend
        return MemoryBackend()
    if config.backend == "sqlite":
        from .backends.sqlite import SQLiteBackend
        return SQLiteBackend(config.database_path)
    return _load_backend(config.backend, config)


def _load_backend(name: str, config: StoreConfig) -> RecordBackend:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="kbase.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Built in: {', '.join(BUILTIN_BACKENDS)}. "
            f"Registered: {available}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. Built in: {', '.join(BUILTIN_BACKENDS)}. "
        f"No other backends registered."
    )
