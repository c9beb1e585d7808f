# keywarden_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict
import uuid

from keywarden_core.fingerprint import Fingerprint
from keywarden_core.utils import as_utc, from_iso, to_iso


@dataclass(frozen=True)
class ImportRecord:
    """A fingerprint keywarden manages. Equal fingerprints are equal records."""
    fingerprint: Fingerprint

    def to_dict(self) -> Dict[str, Any]:
        return {"fingerprint": self.fingerprint.hex()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportRecord":
        return cls(fingerprint=Fingerprint.parse(data["fingerprint"]))


@dataclass(frozen=True)
class ActionTimestamp:
    """When ``key`` (``verb:stable-key``) last completed."""
    key: str
    at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "at": to_iso(self.at)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionTimestamp":
        return cls(key=data["key"], at=from_iso(data["at"]))


@dataclass(frozen=True)
class JoinRequestRecord:
    """
    A request by ``fingerprint`` to join a team roster.

    Storage-level only; the roster protocol itself lives elsewhere.
    """
    team_uuid: uuid.UUID
    team_name: str
    fingerprint: Fingerprint
    requested_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_uuid": str(self.team_uuid),
            "team_name": self.team_name,
            "fingerprint": self.fingerprint.hex(),
            "requested_at": to_iso(self.requested_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JoinRequestRecord":
        return cls(
            team_uuid=uuid.UUID(str(data["team_uuid"])),
            team_name=data.get("team_name", ""),
            fingerprint=Fingerprint.parse(data["fingerprint"]),
            requested_at=as_utc(from_iso(data["requested_at"])),
        )

    def matches(self, team_uuid: uuid.UUID, fingerprint: Fingerprint) -> bool:
        return self.team_uuid == team_uuid and self.fingerprint == fingerprint
