from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from keywarden_core.errors import KeyringError
from keywarden_core.fingerprint import Fingerprint


@dataclass
class KeyListing:
    """
    Live metadata for one secret key, as reported by the keyring.

    ``encryption_subkey_expiry`` is None both when the encryption subkey never
    expires and when there is no encryption subkey; ``has_encryption_subkey``
    tells the two apart.
    """
    fingerprint: Fingerprint
    created: Optional[datetime] = None
    expiry: Optional[datetime] = None
    encryption_subkey_expiry: Optional[datetime] = None
    has_encryption_subkey: bool = False
    uids: List[str] = field(default_factory=list)
    subkey_fingerprints: List[Fingerprint] = field(default_factory=list)  # non-revoked only

    @property
    def email(self) -> Optional[str]:
        for uid in self.uids:
            if "<" in uid and uid.endswith(">"):
                return uid[uid.rindex("<") + 1:-1]
            if "@" in uid:
                return uid.strip()
        return None

    @property
    def working_expiry(self) -> Optional[datetime]:
        """Expiry of the material used for encryption; the primary key's if it has no subkey."""
        if self.has_encryption_subkey:
            return self.encryption_subkey_expiry
        return self.expiry

    def display_name(self) -> str:
        return self.email or str(self.fingerprint)


class KeyringProvider:
    """
    Keyring collaborator contract.

    Every call may fail for reasons outside keywarden (missing binary, bad
    password, key deleted behind our back); failures raise ``KeyringError``.
    """
    name: str = "base"

    def list_secret_keys(self) -> List[KeyListing]:
        raise NotImplementedError

    def get_key(self, fingerprint: Fingerprint) -> KeyListing:
        for listing in self.list_secret_keys():
            if listing.fingerprint == fingerprint:
                return listing
        raise KeyringError(f"no secret key found for {fingerprint}")

    def export_public_key(self, fingerprint: Fingerprint) -> str:
        raise NotImplementedError

    def import_key(self, armored_key: str) -> None:
        raise NotImplementedError

    def rotate(self, fingerprint: Fingerprint, new_expiry: datetime, password: Optional[str] = None) -> None:
        """Move the expiry of the primary key and all its subkeys to ``new_expiry``."""
        raise NotImplementedError

    def generate_key(self, email: str, expiry: datetime) -> Fingerprint:
        raise NotImplementedError

    def set_password(self, fingerprint: Fingerprint, password: str) -> None:
        raise NotImplementedError
