from datetime import datetime, timedelta, timezone
import pytest

from keywarden_core.context import MaintenanceContext
from keywarden_core.errors import KeyringError
from keywarden_core.fingerprint import Fingerprint
from keywarden_core.keyring.base import KeyListing, KeyringProvider
from keywarden_core.policy import RotationPolicy
from keywarden_core.storage import InMemoryStorage

NOW = datetime(2019, 6, 20, 16, 35, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(hours=1)
EVEN_LATER = NOW + timedelta(hours=2)

FPR_A = Fingerprint("AAAA AAAA AAAA AAAA AAAA  AAAA AAAA AAAA AAAA AAAA")
FPR_B = Fingerprint("BBBB BBBB BBBB BBBB BBBB  BBBB BBBB BBBB BBBB BBBB")
FPR_C = Fingerprint("CCCC CCCC CCCC CCCC CCCC  CCCC CCCC CCCC CCCC CCCC")


def make_listing(fingerprint, expires_in=None, created=NOW - timedelta(days=365), email=None):
    expiry = NOW + expires_in if expires_in is not None else None
    return KeyListing(
        fingerprint=fingerprint,
        created=created,
        expiry=expiry,
        encryption_subkey_expiry=expiry,
        has_encryption_subkey=True,
        uids=[f"Test <{email}>"] if email else [],
    )


class FakeKeyring(KeyringProvider):
    """In-memory keyring; rotate() moves expiries like gpg would."""

    name = "fake"

    def __init__(self, listings=()):
        self.keys = {l.fingerprint: l for l in listings}
        self.broken = set()
        self.failing_rotation = set()
        self.rotations = []
        self.passwords = {}
        self.generated = []

    def list_secret_keys(self):
        return list(self.keys.values())

    def get_key(self, fingerprint):
        if fingerprint in self.broken:
            raise KeyringError(f"gpg couldn't read {fingerprint.hex()}")
        return super().get_key(fingerprint)

    def rotate(self, fingerprint, new_expiry, password=None):
        if fingerprint in self.failing_rotation:
            raise KeyringError("Bad passphrase")
        listing = self.keys[fingerprint]
        listing.expiry = new_expiry
        listing.encryption_subkey_expiry = new_expiry
        self.rotations.append((fingerprint, new_expiry, password))

    def generate_key(self, email, expiry):
        fingerprint = Fingerprint("DC7D1C9556D96AA9294910E7F6D53D6649083EA9")
        self.keys[fingerprint] = KeyListing(fingerprint=fingerprint, created=NOW, expiry=expiry, uids=[email])
        self.generated.append(email)
        return fingerprint

    def set_password(self, fingerprint, password):
        self.passwords[fingerprint] = password


@pytest.fixture
def keyring():
    return FakeKeyring()


@pytest.fixture
def store():
    return InMemoryStorage()


@pytest.fixture
def ctx(store, keyring):
    return MaintenanceContext(store=store, keyring=keyring, policy=RotationPolicy(), clock=lambda: NOW)
