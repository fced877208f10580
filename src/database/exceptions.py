"""
Exception hierarchy for session slot persistence.

Kept apart from the API client errors: a storage failure is an
infrastructure problem, not a response from the booking backend.
"""


class SessionStorageError(Exception):
    """
    Base exception for all session persistence errors.
    """

    pass


class StorageUnavailableError(SessionStorageError):
    """
    Raised when the backing store cannot be reached (connection timeout, DNS failure, etc.).
    """

    pass


class StoragePermissionError(SessionStorageError):
    """
    Raised when IAM permissions are insufficient for the operation.

    Indicates a configuration/security issue that must be fixed by an administrator.
    """

    pass
