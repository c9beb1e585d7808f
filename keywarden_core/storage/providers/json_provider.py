from __future__ import annotations
from pathlib import Path
from typing import Any, Dict
import json, os, tempfile

from keywarden_core.errors import StoreError
from keywarden_core.storage.provider import StorageProvider


class JSONFileStorage(StorageProvider):
    """
    Whole-document JSON store, one file per user profile.

    - a missing file is an empty store, not an error
    - writes go to a temp file in the same directory, then ``os.replace``,
      so readers only ever see the old or the new document
    - top-level fields this version doesn't know about are written back untouched
    """

    name = "json"

    def __init__(self, path="db.json"):
        super().__init__()
        self.path = Path(path)

    def _read_state(self) -> Dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StoreError(f"couldn't open '{self.path}': {e}") from e

        if not text.strip():
            return {}

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise StoreError(f"error loading json from '{self.path}': {e}") from e

    def _write_state(self, state: Dict[str, Any]) -> None:
        # If no directory, default to current working directory
        dir_path = self.path.parent if str(self.path.parent) else Path(".")
        try:
            dir_path.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".db-", suffix=".tmp", dir=dir_path)
        except OSError as e:
            raise StoreError(f"couldn't write '{self.path}': {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=4, ensure_ascii=False)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StoreError(f"couldn't write '{self.path}': {e}") from e
