"""
Error taxonomy for repository policy reconciliation.

Remote stores raise RemoteStoreError tagged with the remote error code. The
reconciler never inspects codes directly; it asks an error classifier
(classify_error by default) which kind of failure it is looking at.
"""

import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

INVALID_PARAMETER = "InvalidParameterException"
REPOSITORY_NOT_FOUND = "RepositoryNotFoundException"
REPOSITORY_POLICY_NOT_FOUND = "RepositoryPolicyNotFoundException"

# Returned while a freshly created principal has not yet propagated
INVALID_POLICY_MESSAGE = "Invalid repository policy provided"


class ErrorKind(Enum):
    """Classification of a remote failure."""

    TRANSIENT = "transient"
    RESOURCE_NOT_FOUND = "resource_not_found"
    POLICY_NOT_FOUND = "policy_not_found"
    OTHER = "other"


class RemoteStoreError(Exception):
    """Raised by a policy store when the remote service rejects a call."""

    def __init__(self, code: str, message: str = "", status: Optional[int] = None):
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"{code}: {message}" if message else code)


class ReconcileError(Exception):
    """A fatal failure of a reconciler operation, wrapping its cause."""

    def __init__(self, operation: str, repository_name: str, cause: BaseException):
        self.operation = operation
        self.repository_name = repository_name
        self.cause = cause
        super().__init__(
            f"Error {operation} repository policy {repository_name}: {cause}"
        )


class RetryTimeoutError(Exception):
    """The retry budget elapsed while the operation kept failing retryably."""

    def __init__(self, timeout: float, last_error: Optional[BaseException] = None):
        self.timeout = timeout
        self.last_error = last_error
        message = f"timeout while waiting for state to become 'success' ({timeout}s)"
        if last_error is not None:
            message += f", last error: {last_error}"
        super().__init__(message)


class RetryCancelledError(Exception):
    """The shutdown signal fired while waiting between retries."""

    def __init__(self, last_error: Optional[BaseException] = None):
        self.last_error = last_error
        super().__init__(f"retry cancelled by shutdown, last error: {last_error}")


class ManifestError(Exception):
    """Raised when a manifest or state file cannot be loaded."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


ErrorClassifier = Callable[[BaseException], ErrorKind]


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify a store failure.

    Args:
        error: Exception raised by a PolicyStore call.

    Returns:
        The ErrorKind. Errors that are not RemoteStoreError (network
        failures, programming errors) are always OTHER.
    """
    if not isinstance(error, RemoteStoreError):
        return ErrorKind.OTHER

    if error.code == INVALID_PARAMETER and INVALID_POLICY_MESSAGE in error.message:
        return ErrorKind.TRANSIENT
    if error.code == REPOSITORY_NOT_FOUND:
        return ErrorKind.RESOURCE_NOT_FOUND
    if error.code == REPOSITORY_POLICY_NOT_FOUND:
        return ErrorKind.POLICY_NOT_FOUND
    return ErrorKind.OTHER


def is_not_found(kind: ErrorKind) -> bool:
    """Return True for both benign-absence kinds."""
    return kind in (ErrorKind.RESOURCE_NOT_FOUND, ErrorKind.POLICY_NOT_FOUND)
