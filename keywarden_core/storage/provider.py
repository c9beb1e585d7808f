"""
keywarden_core.storage.provider
-------------------------------
Storage interface shared by every backend.

Providers only know how to read and write the whole state document; all record
semantics (import dedup, last-write-wins timestamps, newest join request per
team and fingerprint) live here so every backend behaves the same.

Each public operation is one exclusive read-modify-write cycle: load the full
state, apply the change in memory, write the full state back.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar
import threading
import uuid

from keywarden_core.errors import InvalidArgument, StoreError
from keywarden_core.fingerprint import Fingerprint
from keywarden_core.identity import make_map_key
from keywarden_core.logger import get_logger
from keywarden_core.storage.models import ActionTimestamp, ImportRecord, JoinRequestRecord
from keywarden_core.utils import as_utc, to_iso

log = get_logger("keywarden.store")

IMPORTS = "keys_imported"
EVENTS = "last_event_times"
JOIN_REQUESTS = "join_team_requests"

State = Dict[str, Any]
T = TypeVar("T")


def _parse(parser: Callable[[Dict[str, Any]], T], raw: Any, field: str) -> T:
    try:
        return parser(raw)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StoreError(f"invalid entry in '{field}': {raw!r} ({e})") from e


def _team_uuid(team_uuid: uuid.UUID | str) -> uuid.UUID:
    if isinstance(team_uuid, uuid.UUID):
        return team_uuid
    try:
        return uuid.UUID(str(team_uuid))
    except ValueError:
        raise InvalidArgument(f"invalid team uuid: {team_uuid!r}") from None


def deduplicate_imports(raw_records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Collapse records with equal fingerprints, keeping the first one seen."""
    seen = set()
    deduped = []
    for raw in raw_records:
        record = _parse(ImportRecord.from_dict, raw, IMPORTS)
        if record in seen:
            continue
        seen.add(record)
        deduped.append(raw)
    return deduped


class StorageProvider:
    name: str = "base"

    def __init__(self):
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------
    def _read_state(self) -> State:
        """Return the full state document; a backend with no data returns {}."""
        raise NotImplementedError

    def _write_state(self, state: State) -> None:
        """Replace the full state document atomically."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Read-modify-write plumbing
    # ------------------------------------------------------------------
    def _load(self) -> State:
        state = self._read_state()
        if not isinstance(state, dict):
            raise StoreError(f"{self.name} store: expected an object at top level")

        for field in (IMPORTS, EVENTS, JOIN_REQUESTS):
            value = state.get(field)
            if value is None:
                state[field] = []
            elif not isinstance(value, list):
                raise StoreError(f"{self.name} store: '{field}' should be a list")

        state[IMPORTS] = deduplicate_imports(state[IMPORTS])
        return state

    def _snapshot(self) -> State:
        with self._lock:
            return self._load()

    @contextmanager
    def _transaction(self) -> Iterator[State]:
        with self._lock:
            state = self._load()
            yield state
            state[IMPORTS] = deduplicate_imports(state[IMPORTS])
            self._write_state(state)

    # ------------------------------------------------------------------
    # Imported keys
    # ------------------------------------------------------------------
    def record_import(self, fingerprint: Fingerprint | str) -> None:
        fingerprint = Fingerprint.parse(fingerprint)
        with self._transaction() as state:
            state[IMPORTS].append(ImportRecord(fingerprint).to_dict())
        log.debug(f"recorded import of {fingerprint.hex()}")

    def list_imported(self) -> List[Fingerprint]:
        state = self._snapshot()
        return [_parse(ImportRecord.from_dict, raw, IMPORTS).fingerprint for raw in state[IMPORTS]]

    # ------------------------------------------------------------------
    # Last action times
    # ------------------------------------------------------------------
    def record_action(self, verb: str, identity: Any, when: datetime) -> None:
        key = make_map_key(verb, identity)
        entry = ActionTimestamp(key=key, at=as_utc(when))

        with self._transaction() as state:
            kept = []
            replaced = False
            for raw in state[EVENTS]:
                if isinstance(raw, dict) and raw.get("key") == key:
                    if not replaced:
                        # Overwrite in place so extra fields on the entry survive
                        raw["at"] = to_iso(entry.at)
                        kept.append(raw)
                        replaced = True
                    continue
                kept.append(raw)
            if not replaced:
                kept.append(entry.to_dict())
            state[EVENTS] = kept
        log.debug(f"recorded {key} at {to_iso(entry.at)}")

    def get_last_action(self, verb: str, identity: Any) -> Optional[datetime]:
        key = make_map_key(verb, identity)
        state = self._snapshot()

        for raw in state[EVENTS]:
            entry = _parse(ActionTimestamp.from_dict, raw, EVENTS)
            if entry.key == key:
                return entry.at
        return None

    def is_older_than(self, verb: str, identity: Any, max_age: timedelta, now: datetime) -> bool:
        """True if ``verb`` was last done at least ``max_age`` before ``now``, or never."""
        last = self.get_last_action(verb, identity)
        if last is None:
            return True
        return as_utc(now) - last >= max_age

    # ------------------------------------------------------------------
    # Requests to join teams
    # ------------------------------------------------------------------
    def record_join_request(
        self,
        team_uuid: uuid.UUID | str,
        team_name: str,
        fingerprint: Fingerprint | str,
        when: datetime,
    ) -> None:
        request = JoinRequestRecord(
            team_uuid=_team_uuid(team_uuid),
            team_name=team_name,
            fingerprint=Fingerprint.parse(fingerprint),
            requested_at=as_utc(when),
        )
        with self._transaction() as state:
            state[JOIN_REQUESTS].append(request.to_dict())

    def _latest_join_requests(self) -> List[JoinRequestRecord]:
        state = self._snapshot()

        latest: Dict[Tuple[uuid.UUID, Fingerprint], Tuple[datetime, int, JoinRequestRecord]] = {}
        for index, raw in enumerate(state[JOIN_REQUESTS]):
            request = _parse(JoinRequestRecord.from_dict, raw, JOIN_REQUESTS)
            pair = (request.team_uuid, request.fingerprint)
            candidate = (request.requested_at, index, request)
            # Ties on requested_at go to the record added last
            if pair not in latest or candidate[:2] >= latest[pair][:2]:
                latest[pair] = candidate

        ordered = sorted(latest.values(), key=lambda c: c[:2], reverse=True)
        return [request for _, _, request in ordered]

    def list_join_requests(self) -> List[JoinRequestRecord]:
        """Newest request per (team, fingerprint), newest overall first."""
        return self._latest_join_requests()

    def get_join_request(
        self, team_uuid: uuid.UUID | str, fingerprint: Fingerprint | str
    ) -> Optional[JoinRequestRecord]:
        team_uuid = _team_uuid(team_uuid)
        fingerprint = Fingerprint.parse(fingerprint)
        for request in self._latest_join_requests():
            if request.matches(team_uuid, fingerprint):
                return request
        return None

    def delete_join_request(self, team_uuid: uuid.UUID | str, fingerprint: Fingerprint | str) -> None:
        """Delete every stored request matching the team and fingerprint."""
        team_uuid = _team_uuid(team_uuid)
        fingerprint = Fingerprint.parse(fingerprint)
        with self._transaction() as state:
            kept = []
            for raw in state[JOIN_REQUESTS]:
                request = _parse(JoinRequestRecord.from_dict, raw, JOIN_REQUESTS)
                if request.matches(team_uuid, fingerprint):
                    log.info(f"deleting request to join team {request.team_uuid} for {fingerprint.hex()}")
                    continue
                kept.append(raw)
            state[JOIN_REQUESTS] = kept
