"""
keywarden_core.fingerprint
--------------------------
Fingerprint value type for OpenPGP v4 keys.

A fingerprint is 20 bytes, usually shown as 40 hex characters. Parsing accepts
any spacing, either case and an optional ``0x`` prefix:

    >>> Fingerprint.parse("aaaa aaaa aaaa aaaa aaaa  aaaa aaaa aaaa aaaa aaaa").hex()
    'AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA'
"""

from __future__ import annotations
from typing import Iterable
import re

_HEX_40 = re.compile(r"^[0-9A-F]{40}$")


class Fingerprint:
    __slots__ = ("_hex",)

    def __init__(self, hex_value: str):
        normalized = hex_value.replace(" ", "").upper()
        if normalized.startswith("0X"):
            normalized = normalized[2:]
        if not _HEX_40.match(normalized):
            raise ValueError(f"invalid fingerprint: {hex_value!r}")
        self._hex = normalized

    @classmethod
    def parse(cls, value: "str | Fingerprint") -> "Fingerprint":
        if isinstance(value, Fingerprint):
            return value
        return cls(value)

    def hex(self) -> str:
        return self._hex

    def uri(self) -> str:
        return f"OPENPGP4FPR:{self._hex}"

    def as_stable_key(self) -> str:
        return f"key:{self.uri()}"

    def __str__(self) -> str:
        groups = [self._hex[i:i + 4] for i in range(0, 40, 4)]
        return " ".join(groups[:5]) + "  " + " ".join(groups[5:])

    def __repr__(self) -> str:
        return f"Fingerprint({self._hex!r})"

    def __eq__(self, other) -> bool:
        if isinstance(other, Fingerprint):
            return self._hex == other._hex
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._hex)

    def __lt__(self, other: "Fingerprint") -> bool:
        return self._hex < other._hex


def contains(fingerprints: Iterable[Fingerprint], fingerprint: Fingerprint) -> bool:
    return any(f == fingerprint for f in fingerprints)
