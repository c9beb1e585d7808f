"""
keywarden_core.config
---------------------
Runtime configuration. Every value comes from, in order: the explicit config
dict, a ``KEYWARDEN_*`` environment variable, the default.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os

from keywarden_core.context import MaintenanceContext
from keywarden_core.keyring import keyring_factory
from keywarden_core.policy import RotationPolicy
from keywarden_core.storage import load_storage_provider

DEFAULT_DIRECTORY = "~/.config/keywarden"


@dataclass
class KeywardenConfig:
    directory: Path
    storage_provider: str = "json"
    gpg_binary: Optional[str] = None
    gnupg_home: Optional[str] = None
    gpg_timeout: float = 60
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    policy: RotationPolicy = field(default_factory=RotationPolicy)

    def ensure_directory(self) -> Path:
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        return self.directory

    def as_provider_config(self) -> dict:
        return {
            "provider": self.storage_provider,
            "directory": str(self.directory),
            "gpg_binary": self.gpg_binary,
            "gnupg_home": self.gnupg_home,
            "gpg_timeout": self.gpg_timeout,
        }


def _setting(config: dict, key: str, env: str, default=None):
    value = config.get(key)
    if value is None or value == "":
        value = os.getenv(env)
    if value is None or value == "":
        return default
    return value


def load_config(config: dict | None = None) -> KeywardenConfig:
    config = config or {}

    directory = Path(_setting(config, "directory", "KEYWARDEN_DIR", DEFAULT_DIRECTORY)).expanduser()
    log_file = _setting(config, "log_file", "KEYWARDEN_LOG_FILE")
    timeout = _setting(config, "gpg_timeout", "KEYWARDEN_GPG_TIMEOUT", 60)

    try:
        timeout = float(timeout)
    except (TypeError, ValueError):
        raise ValueError(f"gpg_timeout must be a number, got {timeout!r}") from None

    return KeywardenConfig(
        directory=directory,
        storage_provider=_setting(config, "storage_provider", "KEYWARDEN_STORAGE_PROVIDER", "json"),
        gpg_binary=_setting(config, "gpg_binary", "KEYWARDEN_GPG_BINARY"),
        gnupg_home=_setting(config, "gnupg_home", "KEYWARDEN_GNUPGHOME"),
        gpg_timeout=timeout,
        log_level=str(_setting(config, "log_level", "KEYWARDEN_LOG_LEVEL", "INFO")).upper(),
        log_file=Path(log_file).expanduser() if log_file else directory / "keywarden.log",
        policy=RotationPolicy.from_env(config.get("policy")),
    )


def build_context(cfg: KeywardenConfig, password_lookup=None) -> MaintenanceContext:
    provider_config = cfg.as_provider_config()
    return MaintenanceContext(
        store=load_storage_provider(provider_config),
        keyring=keyring_factory(provider_config),
        policy=cfg.policy,
        password_lookup=password_lookup,
    )
