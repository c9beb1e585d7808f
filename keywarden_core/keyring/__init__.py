# keywarden_core/keyring/__init__.py
import os
from keywarden_core.keyring.base import KeyListing, KeyringProvider
from keywarden_core.keyring.gpg import GnuPG


def keyring_factory(config: dict | None = None) -> KeyringProvider:
    """GnuPG keyring, pointed at a binary/home directory from config or environment."""
    config = config or {}
    return GnuPG(
        binary=config.get("gpg_binary") or os.getenv("KEYWARDEN_GPG_BINARY") or None,
        home_dir=config.get("gnupg_home") or os.getenv("KEYWARDEN_GNUPGHOME") or None,
        timeout=float(config.get("gpg_timeout") or os.getenv("KEYWARDEN_GPG_TIMEOUT", "60")),
    )


__all__ = ["KeyListing", "KeyringProvider", "GnuPG", "keyring_factory"]
