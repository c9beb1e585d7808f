from pathlib import Path
import json
import logging
import pytest

from keywarden_core.config import build_context, load_config
from keywarden_core.keyring import GnuPG
from keywarden_core.logger import JsonFormatter, add_file_handler, get_logger
from keywarden_core.storage import InMemoryStorage, JSONFileStorage

ENV_VARS = [
    "KEYWARDEN_DIR",
    "KEYWARDEN_STORAGE_PROVIDER",
    "KEYWARDEN_GPG_BINARY",
    "KEYWARDEN_GNUPGHOME",
    "KEYWARDEN_GPG_TIMEOUT",
    "KEYWARDEN_LOG_LEVEL",
    "KEYWARDEN_LOG_FILE",
    "KEYWARDEN_VALIDITY_DAYS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = load_config()
    assert cfg.directory == tmp_path / ".config" / "keywarden"
    assert cfg.storage_provider == "json"
    assert cfg.gpg_binary is None
    assert cfg.gpg_timeout == 60.0
    assert cfg.log_level == "INFO"
    assert cfg.log_file == cfg.directory / "keywarden.log"
    assert cfg.policy.validity_days == 60


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("KEYWARDEN_DIR", str(tmp_path))
    monkeypatch.setenv("KEYWARDEN_STORAGE_PROVIDER", "memory")
    monkeypatch.setenv("KEYWARDEN_GPG_TIMEOUT", "5")
    monkeypatch.setenv("KEYWARDEN_LOG_LEVEL", "debug")
    monkeypatch.setenv("KEYWARDEN_VALIDITY_DAYS", "45")

    cfg = load_config()
    assert cfg.directory == tmp_path
    assert cfg.storage_provider == "memory"
    assert cfg.gpg_timeout == 5.0
    assert cfg.log_level == "DEBUG"
    assert cfg.policy.validity_days == 45


def test_explicit_config_wins_over_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("KEYWARDEN_DIR", "/somewhere/else")
    cfg = load_config({"directory": str(tmp_path), "log_file": str(tmp_path / "x.log"), "policy": {"validity_days": 30}})
    assert cfg.directory == tmp_path
    assert cfg.log_file == tmp_path / "x.log"
    assert cfg.policy.validity_days == 30


def test_bad_timeout():
    with pytest.raises(ValueError, match="gpg_timeout"):
        load_config({"gpg_timeout": "soon"})


def test_ensure_directory(tmp_path):
    cfg = load_config({"directory": str(tmp_path / "profile")})
    assert cfg.ensure_directory().is_dir()


def test_build_context(tmp_path):
    cfg = load_config({"directory": str(tmp_path), "gpg_binary": "/usr/bin/gpg", "gnupg_home": str(tmp_path / "gnupg")})
    ctx = build_context(cfg, password_lookup=lambda fpr: "pw")

    assert isinstance(ctx.store, JSONFileStorage)
    assert ctx.store.path == tmp_path / "db.json"
    assert isinstance(ctx.keyring, GnuPG)
    assert ctx.keyring.binary == "/usr/bin/gpg"
    assert ctx.keyring.home_dir == str(tmp_path / "gnupg")
    assert ctx.password_for(None) == "pw"


def test_build_context_memory_store(tmp_path):
    cfg = load_config({"directory": str(tmp_path), "storage_provider": "memory", "gpg_binary": "/usr/bin/gpg"})
    assert isinstance(build_context(cfg).store, InMemoryStorage)


# ----------------------------------------------------------------------
# Logging
# ----------------------------------------------------------------------
def test_json_formatter():
    record = logging.LogRecord("keywarden.store", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    entry = json.loads(JsonFormatter().format(record))
    assert entry["level"] == "INFO"
    assert entry["name"] == "keywarden.store"
    assert entry["msg"] == "hello world"
    assert entry["ts"].endswith("Z")


def test_get_logger_namespaces_under_keywarden():
    assert get_logger("store").name == "keywarden.store"
    assert get_logger("keywarden.gpg").name == "keywarden.gpg"
    assert get_logger().name == "keywarden"


def test_file_handler_writes_json_lines(tmp_path):
    path = tmp_path / "logs" / "keywarden.log"
    handler = add_file_handler(str(path))
    try:
        assert add_file_handler(str(path)) is handler
        get_logger("keywarden.test").warning("rotation failed")
        handler.flush()
        lines = Path(path).read_text().splitlines()
        assert json.loads(lines[-1])["msg"] == "rotation failed"
    finally:
        logging.getLogger("keywarden").removeHandler(handler)
        handler.close()
