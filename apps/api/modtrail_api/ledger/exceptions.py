"""Ledger exception hierarchy."""


class LedgerError(Exception):
    """Base class for ledger errors."""


class LedgerWriteError(LedgerError):
    """A durable append failed; nothing was appended and the call may be retried."""


class LedgerConflictError(LedgerWriteError):
    """Another writer committed the same sequence slot or parent hash first."""


class LedgerImmutableError(LedgerError):
    """An attempt was made to update or delete a committed entry."""


class VerificationTimeoutError(LedgerError):
    """A verification pass ran past its deadline."""
