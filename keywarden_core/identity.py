"""
keywarden_core.identity
-----------------------
Derives the stable string key the store files action timestamps under.

Anything can be an identity as long as a stable key can be derived from it:

- objects implementing ``as_stable_key()`` (``Fingerprint`` does)
- objects carrying a ``fingerprint`` attribute, e.g. a ``KeyListing``; these
  share a key with the bare fingerprint
- strings holding a valid fingerprint, keyed like that fingerprint
- objects whose type defines its own ``__str__``; keyed as ``TypeName:str(obj)``
"""

from __future__ import annotations
from typing import Any, Protocol, runtime_checkable

from keywarden_core.errors import InvalidArgument
from keywarden_core.fingerprint import Fingerprint


@runtime_checkable
class StableKey(Protocol):
    def as_stable_key(self) -> str: ...


def stable_key(identity: Any) -> str:
    if isinstance(identity, StableKey):
        return identity.as_stable_key()

    carried = getattr(identity, "fingerprint", None)
    if isinstance(carried, Fingerprint):
        return carried.as_stable_key()

    if isinstance(identity, str):
        try:
            return Fingerprint(identity).as_stable_key()
        except ValueError:
            pass

    if identity is not None and type(identity).__str__ is not object.__str__:
        return f"{type(identity).__name__}:{identity}"

    raise InvalidArgument(f"don't know how to handle {identity!r}")


def make_map_key(verb: str, identity: Any) -> str:
    if not verb:
        raise InvalidArgument("verb can't be empty")
    return f"{verb}:{stable_key(identity)}"
