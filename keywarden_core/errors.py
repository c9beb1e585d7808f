"""Exception hierarchy shared across keywarden components."""


class KeywardenError(Exception):
    pass


class InvalidArgument(KeywardenError, ValueError):
    """A caller broke an API contract (empty verb, unkeyable identity)."""


class StoreError(KeywardenError):
    """The backing file could not be read, parsed or written."""


class KeyringError(KeywardenError):
    """A keyring collaborator call failed."""
