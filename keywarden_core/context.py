# keywarden_core/context.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from keywarden_core.fingerprint import Fingerprint
from keywarden_core.keyring.base import KeyringProvider
from keywarden_core.policy import RotationPolicy
from keywarden_core.storage.provider import StorageProvider
from keywarden_core.utils import now_utc

PasswordLookup = Callable[[Fingerprint], Optional[str]]


@dataclass
class MaintenanceContext:
    """
    Everything one run needs, built once at the top of the run and passed down.

    ``clock`` and ``password_lookup`` are injectable so tests can pin time and
    unattended runs can pull passwords from wherever the deployment keeps them.
    """
    store: StorageProvider
    keyring: KeyringProvider
    policy: RotationPolicy = field(default_factory=RotationPolicy)
    clock: Callable[[], datetime] = now_utc
    password_lookup: Optional[PasswordLookup] = None

    def now(self) -> datetime:
        return self.clock()

    def password_for(self, fingerprint: Fingerprint) -> Optional[str]:
        if self.password_lookup is None:
            return None
        return self.password_lookup(fingerprint)
