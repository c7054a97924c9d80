"""Storage backends and the FastAPI dependency that hands one to a route."""

from fastapi import Request

from storage.base import DirectoryStorage, LedgerSession
from storage.memory import MemoryStorage


def build_storage(backend: str, database_url: str, echo: bool = False) -> DirectoryStorage:
    """Create the backend named by STORAGE_BACKEND."""
    if backend == "memory":
        return MemoryStorage()
    if backend == "sql":
        from db.database import build_engine
        from storage.sql import SqlStorage
        return SqlStorage(build_engine(database_url, echo=echo))
    raise ValueError(f"Unknown storage backend: {backend!r}")


def get_storage(request: Request) -> DirectoryStorage:
    """Dependency: the storage instance created in the app lifespan."""
    return request.app.state.storage


__all__ = ["DirectoryStorage", "LedgerSession", "MemoryStorage", "build_storage", "get_storage"]
