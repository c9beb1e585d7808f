"""
keywarden_core.policy
---------------------
Rotation policy: turns a key's expiry dates and its last rotation into a
health state.

``classify`` is total. Missing expiry data is a state (``NoExpiry``), never an
error. The thresholds are plain fields on ``RotationPolicy`` so deployments and
tests can tune them.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Optional
import os

from keywarden_core.utils import as_utc, whole_days


@dataclass(frozen=True)
class RotationPolicy:
    urgent_window_days: int = 7
    early_warning_days: int = 30
    max_validity_days: int = 90
    rotation_cadence_days: int = 30
    validity_days: int = 60                 # validity granted by a rotation
    min_rotation_interval_hours: int = 24   # automatic runs won't rotate a key more often

    ENV_PREFIX = "KEYWARDEN_"

    @property
    def rotation_cadence(self) -> timedelta:
        return timedelta(days=self.rotation_cadence_days)

    @property
    def min_rotation_interval(self) -> timedelta:
        return timedelta(hours=self.min_rotation_interval_hours)

    def next_expiry(self, now: datetime) -> datetime:
        return as_utc(now) + timedelta(days=self.validity_days)

    @classmethod
    def from_env(cls, overrides: Optional[dict] = None) -> "RotationPolicy":
        """Read ``KEYWARDEN_<FIELD>`` variables, e.g. ``KEYWARDEN_URGENT_WINDOW_DAYS=3``."""
        overrides = overrides or {}
        values = {}
        for f in fields(cls):
            raw = overrides.get(f.name)
            if raw is None:
                raw = os.getenv(cls.ENV_PREFIX + f.name.upper())
            if raw is not None and raw != "":
                try:
                    values[f.name] = int(raw)
                except ValueError:
                    raise ValueError(f"{f.name} must be a whole number, got {raw!r}") from None
        return cls(**values)


# ---------------------------------------------------------------------------
# Health states
# ---------------------------------------------------------------------------
class HealthState:
    requires_rotation = True

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Healthy(HealthState):
    requires_rotation = False


@dataclass(frozen=True)
class NoExpiry(HealthState):
    pass


@dataclass(frozen=True)
class LongExpiry(HealthState):
    pass


@dataclass(frozen=True)
class DueForRotation(HealthState):
    pass


@dataclass(frozen=True)
class OverdueForRotation(HealthState):
    days_until_expiry: int


@dataclass(frozen=True)
class Expired(HealthState):
    days_since_expiry: int


def classify(
    primary_expiry: Optional[datetime],
    subkey_expiry: Optional[datetime],
    last_rotated_at: Optional[datetime],
    now: datetime,
    policy: Optional[RotationPolicy] = None,
) -> HealthState:
    policy = policy or RotationPolicy()

    if primary_expiry is None or subkey_expiry is None:
        return NoExpiry()

    now = as_utc(now)
    expiry = min(as_utc(primary_expiry), as_utc(subkey_expiry))

    if expiry <= now:
        return Expired(days_since_expiry=whole_days(now - expiry))

    days_until_expiry = whole_days(expiry - now)

    if days_until_expiry <= policy.urgent_window_days:
        return OverdueForRotation(days_until_expiry=days_until_expiry)

    if days_until_expiry <= policy.early_warning_days:
        return DueForRotation()

    if last_rotated_at is not None and now - as_utc(last_rotated_at) > policy.rotation_cadence:
        return DueForRotation()

    if days_until_expiry > policy.max_validity_days:
        return LongExpiry()

    return Healthy()
