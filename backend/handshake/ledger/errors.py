"""Ledger error taxonomy.

Every ledger operation either returns its value or raises one of these.
Callers render ``str(error)`` as-is or map the class to a retry prompt.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""

    pass


class NotAuthenticated(LedgerError):
    """No resolvable caller identity."""

    pass


class InvalidInput(LedgerError):
    """Malformed arguments: empty description, bad stake, self-wagering."""

    pass


class NotFound(LedgerError):
    """Referenced bet or user does not exist."""

    pass


class InvalidTransition(LedgerError):
    """Status or caller does not allow the requested transition."""

    pass


class StoreUnavailable(LedgerError):
    """A collaborator (store or directory) failed."""

    pass
