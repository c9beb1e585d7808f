# keywarden_core/storage/__init__.py

from .models import ActionTimestamp, ImportRecord, JoinRequestRecord
from .provider import StorageProvider
from .providers.json_provider import JSONFileStorage
from .providers.memory_provider import InMemoryStorage
from pathlib import Path
import os

DB_FILENAME = "db.json"


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for selecting the runtime storage backend.

        - json (default): <directory>/db.json
        - memory
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("KEYWARDEN_STORAGE_PROVIDER", "json")

    if provider == "memory":
        return InMemoryStorage()

    if provider == "json":
        directory = config.get("directory") or os.getenv("KEYWARDEN_DIR") or "~/.config/keywarden"
        db_path = config.get("json_path") or Path(directory).expanduser() / DB_FILENAME
        return JSONFileStorage(db_path)

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "ActionTimestamp",
    "ImportRecord",
    "JoinRequestRecord",
    "StorageProvider",
    "InMemoryStorage",
    "JSONFileStorage",
    "load_storage_provider",
]
