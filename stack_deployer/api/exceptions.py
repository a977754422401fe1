"""
Custom exceptions for provisioning API operations
"""

from enum import Enum


class ErrorKind(Enum):
    """Classification of a provisioning error, used to drive deployment control flow"""
    ALREADY_EXISTS = "already_exists"
    NO_CHANGES = "no_changes"
    OTHER = "other"


class APIError(Exception):
    """Base exception for all provisioning API errors"""

    def __init__(self, message: str, code: str = None, operation: str = None):
        self.message = message
        self.code = code
        self.operation = operation
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"{self.code}: {self.message}"
        return self.message

    def __reduce__(self):
        return (self.__class__, (self.message, self.code, self.operation))


class ProvisioningError(APIError):
    """Raised when a provisioning call fails"""
    pass


class StackAlreadyExistsError(ProvisioningError):
    """Raised when creating a stack whose name is already taken"""
    pass


class NoChangesError(ProvisioningError):
    """Raised when the provider reports there is nothing to update"""
    pass


class WaiterFailedError(ProvisioningError):
    """Raised when a stack or change set wait ends in a failure state or times out"""
    pass


class RateLimitError(ProvisioningError):
    """Raised when the provider throttles a request"""
    pass


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify an error raised by a provisioning client.

    Only typed exceptions are considered; message text is never inspected here.
    """
    if isinstance(error, StackAlreadyExistsError):
        return ErrorKind.ALREADY_EXISTS
    if isinstance(error, NoChangesError):
        return ErrorKind.NO_CHANGES
    return ErrorKind.OTHER
