from typing import Any, Dict, Optional
import copy

from keywarden_core.storage.provider import StorageProvider


class InMemoryStorage(StorageProvider):
    """Process-local store for tests and throwaway runs. Nothing touches disk."""

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._state = copy.deepcopy(initial) if initial else {}
        self.writes = 0

    def _read_state(self):
        return copy.deepcopy(self._state)

    def _write_state(self, state):
        self._state = copy.deepcopy(state)
        self.writes += 1

    def dump(self) -> Dict[str, Any]:
        return copy.deepcopy(self._state)
