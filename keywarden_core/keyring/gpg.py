"""
keywarden_core.keyring.gpg
--------------------------
Keyring collaborator backed by the system GnuPG 2.x binary.

Everything goes through ``gpg --batch --no-tty``; key listings use the
machine-readable ``--with-colons --fixed-list-mode`` format. Passwords are fed
on stdin with loopback pinentry so no OS prompt ever appears, which is what
unattended (cron) rotation needs.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import re
import shutil
import subprocess

from keywarden_core.errors import KeyringError
from keywarden_core.fingerprint import Fingerprint
from keywarden_core.keyring.base import KeyListing, KeyringProvider
from keywarden_core.logger import get_logger
from keywarden_core.utils import from_epoch

log = get_logger("keywarden.gpg")

GPG_BINARY_LOCATIONS = [
    "/usr/bin/gpg2",
    "/usr/bin/gpg",
    "/usr/local/bin/gpg2",
    "/usr/local/bin/gpg",
    "/opt/homebrew/bin/gpg",
    "/usr/local/MacGPG2/bin/gpg2",
    "/usr/local/MacGPG2/bin/gpg",
]

PUBLIC_HEADER = "-----BEGIN PGP PUBLIC KEY BLOCK-----"
PUBLIC_FOOTER = "-----END PGP PUBLIC KEY BLOCK-----"
NOTHING_EXPORTED = "WARNING: nothing exported"
INVALID_OPTION_PINENTRY_MODE = 'gpg: invalid option "--pinentry-mode"'
BAD_PASSPHRASE = "Bad passphrase"
NO_PASSPHRASE = "No passphrase given"
NO_PUBLIC_KEY = "No public key"

_VERSION_RE = re.compile(r"gpg \(GnuPG.*\) (\d+\.\d+\.\d+)")
_HOME_RE = re.compile(r"Home: +([^\r\n]+)")
_REVOCATION_CERT_RE = re.compile(r"openpgp-revocs\.d[/\\]([0-9A-F]{40})\.rev")
_ESCAPE_RE = re.compile(r"\\x([0-9a-fA-F]{2})")


class GPGCommandError(KeyringError):
    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class BadPasswordError(GPGCommandError):
    pass


# ---------------------------------------------------------------------------
# --with-colons parsing
# ---------------------------------------------------------------------------
@dataclass
class _Subkey:
    validity: str
    created: Optional[datetime]
    expiry: Optional[datetime]
    capabilities: str
    fingerprint: Optional[Fingerprint] = None

    @property
    def revoked(self) -> bool:
        return self.validity == "r"


@dataclass
class _Primary:
    created: Optional[datetime]
    expiry: Optional[datetime]
    fingerprint: Optional[Fingerprint] = None
    uids: List[str] = field(default_factory=list)
    subkeys: List[_Subkey] = field(default_factory=list)

    def to_listing(self) -> KeyListing:
        usable = [s for s in self.subkeys if not s.revoked]
        encryption = [s for s in usable if "e" in s.capabilities]
        # Newest encryption subkey is the working one
        encryption.sort(key=lambda s: s.created or datetime.min.replace(tzinfo=timezone.utc))
        working = encryption[-1] if encryption else None
        return KeyListing(
            fingerprint=self.fingerprint,
            created=self.created,
            expiry=self.expiry,
            encryption_subkey_expiry=working.expiry if working else None,
            has_encryption_subkey=working is not None,
            uids=list(self.uids),
            subkey_fingerprints=[s.fingerprint for s in usable if s.fingerprint],
        )


def _field(fields: Sequence[str], index: int) -> str:
    return fields[index] if len(fields) > index else ""


def _unescape(value: str) -> str:
    return _ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), value)


def parse_colon_listing(output: str) -> List[KeyListing]:
    """Parse ``gpg --with-colons --fixed-list-mode --list-[secret-]keys`` output."""
    primaries: List[_Primary] = []
    current: Optional[_Primary] = None
    last_subkey: Optional[_Subkey] = None

    for line in output.splitlines():
        fields = line.split(":")
        kind = fields[0]

        if kind in ("sec", "pub"):
            current = _Primary(created=from_epoch(_field(fields, 5)), expiry=from_epoch(_field(fields, 6)))
            primaries.append(current)
            last_subkey = None

        elif current is None:
            continue

        elif kind in ("ssb", "sub"):
            last_subkey = _Subkey(
                validity=_field(fields, 1),
                created=from_epoch(_field(fields, 5)),
                expiry=from_epoch(_field(fields, 6)),
                capabilities=_field(fields, 11),
            )
            current.subkeys.append(last_subkey)

        elif kind == "fpr":
            fingerprint = Fingerprint.parse(_field(fields, 9))
            if last_subkey is not None:
                last_subkey.fingerprint = fingerprint
            elif current.fingerprint is None:
                current.fingerprint = fingerprint

        elif kind == "uid" and _field(fields, 1) != "r":
            current.uids.append(_unescape(_field(fields, 9)))

    return [p.to_listing() for p in primaries if p.fingerprint is not None]


def parse_version_string(output: str) -> str:
    match = _VERSION_RE.search(output)
    if match is None:
        raise KeyringError("version string not found in GPG output")
    return match.group(1)


def format_expiry(when: datetime) -> str:
    """ISO basic format accepted by ``--quick-set-expire``: 20190620T163500."""
    return when.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S")


# ---------------------------------------------------------------------------
# GnuPG wrapper
# ---------------------------------------------------------------------------
class GnuPG(KeyringProvider):
    name = "gnupg"

    def __init__(self, binary: Optional[str] = None, home_dir: Optional[str] = None, timeout: float = 60):
        self._binary = binary
        self.home_dir = home_dir
        self.timeout = timeout

    @property
    def binary(self) -> str:
        if self._binary is None:
            self._binary = find_gpg_binary(self.timeout)
        return self._binary

    def _global_arguments(self) -> List[str]:
        args = ["--keyid-format", "0xlong", "--batch", "--no-tty"]
        if self.home_dir:
            args += ["--homedir", str(self.home_dir)]
        return args

    def run(self, args: Sequence[str], text_to_send: Optional[str] = None) -> Tuple[str, str]:
        """Run gpg, returning (stdout, stderr). Non-zero exit raises GPGCommandError."""
        full_args = self._global_arguments() + list(args)
        try:
            proc = subprocess.run(
                [self.binary, *full_args],
                input=text_to_send,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise KeyringError(f"gpg timed out after {self.timeout}s: {' '.join(args)}") from e
        except OSError as e:
            raise KeyringError(f"error starting gpg: {e}") from e

        if proc.returncode != 0:
            stderr_lines = proc.stderr.rstrip("\r\n").splitlines()
            log.warning(f"command failed: `gpg {' '.join(full_args)}` : exit status {proc.returncode}")
            for line in stderr_lines:
                log.info(line)

            extra = ""
            if len(stderr_lines) == 1:
                extra = f", stderr: {stderr_lines[0]}"
            elif len(stderr_lines) > 1:
                extra = f", stderr: {stderr_lines[0]} [see keywarden log for more]"
            raise GPGCommandError(f"exit status {proc.returncode}{extra}", stderr=proc.stderr)

        return proc.stdout, proc.stderr

    def _run_with_password(self, args: Sequence[str], password: Optional[str]) -> Tuple[str, str]:
        if password is None:
            return self.run(args)

        try:
            return self.run(["--pinentry-mode", "loopback", "--passphrase-fd", "0", *args], password)
        except GPGCommandError as e:
            if INVALID_OPTION_PINENTRY_MODE in e.stderr:
                # gpg < 2.1 has no --pinentry-mode but reads the passphrase fd anyway
                return self.run(["--passphrase-fd", "0", *args], password)
            if BAD_PASSPHRASE in e.stderr or NO_PASSPHRASE in e.stderr:
                raise BadPasswordError("bad password", stderr=e.stderr) from e
            raise

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def version(self) -> str:
        stdout, _ = self.run(["--version"])
        return parse_version_string(stdout)

    def gnupg_home(self) -> Path:
        stdout, _ = self.run(["--version"])
        match = _HOME_RE.search(stdout)
        if match is None:
            raise KeyringError("home directory string not found in GPG output")
        return Path(match.group(1)).expanduser()

    def is_working(self) -> bool:
        try:
            self.version()
        except KeyringError:
            return False
        return True

    # ------------------------------------------------------------------
    # Keyring collaborator
    # ------------------------------------------------------------------
    def list_secret_keys(self) -> List[KeyListing]:
        stdout, _ = self.run(["--with-colons", "--with-fingerprint", "--fixed-list-mode", "--list-secret-keys"])
        return parse_colon_listing(stdout)

    def list_public_keys(self, search: str) -> List[KeyListing]:
        if not search:
            raise KeyringError("no search string provided")
        try:
            stdout, _ = self.run(["--with-colons", "--with-fingerprint", "--fixed-list-mode", "--list-keys", search])
        except GPGCommandError as e:
            if NO_PUBLIC_KEY in e.stderr:
                return []
            raise
        return parse_colon_listing(stdout)

    def get_key(self, fingerprint: Fingerprint) -> KeyListing:
        stdout, _ = self.run([
            "--with-colons", "--with-fingerprint", "--fixed-list-mode",
            "--list-secret-keys", fingerprint.hex(),
        ])
        for listing in parse_colon_listing(stdout):
            if listing.fingerprint == fingerprint:
                return listing
        raise KeyringError(f"no secret key found for {fingerprint}")

    def export_public_key(self, fingerprint: Fingerprint) -> str:
        stdout, stderr = self.run(["--export-options", "export-minimal", "--armor", "--export", fingerprint.hex()])

        if NOTHING_EXPORTED in stdout or NOTHING_EXPORTED in stderr or not stdout.strip():
            raise KeyringError(f"GnuPG returned 'nothing exported' for fingerprint '{fingerprint}'")

        headers, footers = stdout.count(PUBLIC_HEADER), stdout.count(PUBLIC_FOOTER)
        if headers != 1 or footers != 1:
            raise KeyringError(
                f"expected exactly 1 ascii-armored public key, got {headers} headers and {footers} footers"
            )
        return stdout

    def import_key(self, armored_key: str) -> None:
        self.run(["--import"], armored_key)

    def rotate(self, fingerprint: Fingerprint, new_expiry: datetime, password: Optional[str] = None) -> None:
        listing = self.get_key(fingerprint)
        expire = format_expiry(new_expiry)

        self._run_with_password(["--quick-set-expire", fingerprint.hex(), expire], password)
        if listing.subkey_fingerprints:
            self._run_with_password(
                ["--quick-set-expire", fingerprint.hex(), expire, *[s.hex() for s in listing.subkey_fingerprints]],
                password,
            )
        log.info(f"set expiry of {fingerprint.hex()} to {expire}")

    def generate_key(self, email: str, expiry: datetime) -> Fingerprint:
        _, stderr = self.run([
            "--pinentry-mode", "loopback", "--passphrase", "",
            "--quick-generate-key", email, "future-default", "default", format_expiry(expiry),
        ])

        match = _REVOCATION_CERT_RE.search(stderr)
        if match:
            return Fingerprint.parse(match.group(1))

        # Older gpg doesn't mention the revocation certificate: take the newest key for the email
        candidates = [k for k in self.list_secret_keys() if email in k.uids or k.email == email]
        if not candidates:
            raise KeyringError(f"couldn't find the key just generated for {email}")
        candidates.sort(key=lambda k: k.created or datetime.min.replace(tzinfo=timezone.utc))
        return candidates[-1].fingerprint

    def set_password(self, fingerprint: Fingerprint, password: str) -> None:
        # The key is unprotected, so gpg only asks for the new passphrase
        self._run_with_password(["--passwd", fingerprint.hex()], password)


def find_gpg_binary(timeout: float = 10) -> str:
    candidates = list(GPG_BINARY_LOCATIONS)
    for name in ("gpg2", "gpg"):
        found = shutil.which(name)
        if found and found not in candidates:
            candidates.append(found)

    for path in candidates:
        if not Path(path).exists():
            continue
        try:
            version = GnuPG(binary=path, timeout=timeout).version()
        except KeyringError:
            continue

        if not version.startswith("2."):
            log.info(f"ignoring {path} (version {version}, looking for gpg 2.x)")
            continue

        log.info(f"found working gpg2 with version '{version}': {path}")
        return path

    raise KeyringError("didn't find working `gpg2` or `gpg` binary with version 2.x")
