"""Custom exceptions for identity synchronization."""


class SyncFailedError(Exception):
    """Raised when a user record cannot be resolved or created (store down, timeout, ...)."""

    pass
