from picksmart.config import config
from picksmart.errors import ConfigError
from picksmart.store.base import BaseStore, CatalogRepository
from picksmart.store.memory import MemoryStore


def create_store(backend: str = None) -> BaseStore:
    """Build the store named by STORE_BACKEND. The caller owns open/close."""
    backend = (backend or config.STORE_BACKEND).lower()

    if backend == "memory":
        return MemoryStore()
    if backend == "postgres":
        from picksmart.store.postgres import PostgresStore
        return PostgresStore()

    raise ConfigError(f"Unknown STORE_BACKEND: {backend}")


__all__ = ["BaseStore", "CatalogRepository", "MemoryStore", "create_store"]
