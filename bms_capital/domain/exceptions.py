"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class BackendAPIError(DomainException):
    """Backend REST API returned an error or is unavailable"""

    pass


class NotFoundError(BackendAPIError):
    """Requested backend record does not exist"""

    pass


class StorageError(DomainException):
    """Durable key-value storage could not be read or written"""

    pass


class StorageQuotaExceededError(StorageError):
    """Write rejected because the store is full"""

    pass


class InvalidApprovalActionError(DomainException, ValueError):
    """Approval action is not one of the supported tokens"""

    pass
