"""Domain-specific exceptions with user-ready messages for the media proxy."""


class BusinessLogicException(Exception):
    """Base exception class for business logic errors.

    All business logic exceptions include user-ready messages that can be
    returned to clients as-is. Internal details belong in the log, never in
    the message.
    """

    def __init__(self, message: str, error_code: str) -> None:
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ValidationException(BusinessLogicException):
    """Exception raised when validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="VALIDATION_FAILED")


class AuthenticationException(BusinessLogicException):
    """Exception raised when a request signature cannot be authenticated."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="AUTHENTICATION_FAILED")


class AuthorizationException(BusinessLogicException):
    """Exception raised when an authenticated request targets a forbidden resource."""

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="AUTHORIZATION_FAILED")


class UpstreamNotFoundException(BusinessLogicException):
    """Exception raised when the upstream host reports the asset does not exist."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"failed to {operation}", error_code="UPSTREAM_NOT_FOUND")


class ExternalServiceException(BusinessLogicException):
    """Exception raised when an external service call fails.

    The cause is kept for logging only; the message stays generic.
    """

    def __init__(self, operation: str, cause: str) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"failed to {operation}", error_code="EXTERNAL_SERVICE_ERROR")


class ProcessingException(BusinessLogicException):
    """Exception raised when internal processing fails."""

    def __init__(self, operation: str, cause: str) -> None:
        self.operation = operation
        self.cause = cause
        message = f"Cannot {operation} because processing failed: {cause}"
        super().__init__(message, error_code="PROCESSING_ERROR")
