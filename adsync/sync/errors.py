"""ADSYNC — Sync Errors."""


class SyncError(Exception):
    """Base class for failures that abort a sync."""


class ConnectionMissingError(SyncError):
    """No stored platform connection for the account owner."""


class TokenExpiredError(SyncError):
    """The stored platform token has expired."""


class SourceUnavailableError(SyncError):
    """A required listing failed on its first page; nothing was written."""


class PersistenceError(SyncError):
    """Writing the new rows failed; the transaction was rolled back."""
