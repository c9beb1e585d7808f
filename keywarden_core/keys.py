"""
keywarden_core.keys
-------------------
Key-level operations around the store: listing managed keys, linking keys that
already live in GnuPG, and creating new ones.

Key creation hands generation off to one background thread while the caller
collects a password in the foreground; the caller then blocks on the result.
"""

from __future__ import annotations
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Callable, List, Optional
import threading

from keywarden_core.context import MaintenanceContext
from keywarden_core.fingerprint import Fingerprint, contains
from keywarden_core.keyring.base import KeyListing, KeyringProvider
from keywarden_core.logger import get_logger

log = get_logger("keywarden.keys")

CREATE = "create"


def _by_created(listing: KeyListing) -> datetime:
    return listing.created or datetime.min.replace(tzinfo=timezone.utc)


def list_managed_keys(ctx: MaintenanceContext) -> List[KeyListing]:
    """Live metadata for every managed key, oldest first. Keys gpg can't show are skipped."""
    keys = []
    for fingerprint in ctx.store.list_imported():
        try:
            keys.append(ctx.keyring.get_key(fingerprint))
        except Exception as e:
            log.warning(f"skipping {fingerprint.hex()}: {e}")
    return sorted(keys, key=_by_created)


def keys_available_to_link(ctx: MaintenanceContext) -> List[KeyListing]:
    """Secret keys in the keyring that keywarden doesn't manage yet."""
    managed = ctx.store.list_imported()
    return [k for k in ctx.keyring.list_secret_keys() if not contains(managed, k.fingerprint)]


def link_key(ctx: MaintenanceContext, fingerprint: Fingerprint | str) -> Fingerprint:
    fingerprint = Fingerprint.parse(fingerprint)
    ctx.store.record_import(fingerprint)
    log.info(f"linked {fingerprint.hex()}")
    return fingerprint


class KeyGenerationJob:
    """Generates exactly one key on a background thread; ``result()`` blocks for it."""

    def __init__(self, keyring: KeyringProvider, email: str, expiry: datetime):
        self.keyring = keyring
        self.email = email
        self.expiry = expiry
        self._future: Future = Future()
        self._thread = threading.Thread(target=self._run, name="keywarden-keygen", daemon=True)

    def start(self) -> "KeyGenerationJob":
        self._thread.start()
        return self

    def _run(self) -> None:
        if not self._future.set_running_or_notify_cancel():
            return
        try:
            fingerprint = self.keyring.generate_key(self.email, self.expiry)
        except Exception as e:
            self._future.set_exception(e)
        else:
            self._future.set_result(fingerprint)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Fingerprint:
        return self._future.result(timeout=timeout)


def create_key(ctx: MaintenanceContext, email: str, collect_password: Callable[[], str]) -> Fingerprint:
    """
    Create a key for ``email`` and put it under management.

    ``collect_password`` runs on the calling thread while the key generates;
    generation errors surface here, after the password has been collected.
    """
    now = ctx.now()
    job = KeyGenerationJob(ctx.keyring, email, ctx.policy.next_expiry(now)).start()

    password = collect_password()
    fingerprint = job.result()

    ctx.keyring.set_password(fingerprint, password)
    ctx.store.record_import(fingerprint)
    ctx.store.record_action(CREATE, fingerprint, now)
    log.info(f"created {fingerprint.hex()} for {email}")
    return fingerprint
