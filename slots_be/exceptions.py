from slots_be.error_codes import ErrorCodes

class AppException(Exception):
    def __init__(self, error_code, status_message, status_code, details=None, action_button=None):
        super().__init__(status_message)
        self.error_code = error_code
        self.status_message = status_message
        self.status_code = status_code
        self.details = details if details is not None else {}
        self.action_button = action_button if action_button is not None else {}

    def to_dict(self):
        """Payload used by the Socket.IO error events."""
        return {
            'error_code': self.error_code,
            'message': self.status_message,
            'details': self.details,
        }

class ValidationException(AppException):
    def __init__(self, status_message="Validation failed", details=None, action_button=None,
                 error_code=ErrorCodes.VALIDATION_ERROR):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=422,
            details=details,
            action_button=action_button
        )

class AuthenticationException(AppException):
    def __init__(self, status_message="Authentication required", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.UNAUTHENTICATED,
            status_message=status_message,
            status_code=401,
            details=details,
            action_button=action_button
        )

class NotFoundException(AppException):
    def __init__(self, status_message="Resource not found", details=None, action_button=None,
                 error_code=ErrorCodes.NOT_FOUND):
        super().__init__(
            error_code=error_code,
            status_message=status_message,
            status_code=404,
            details=details,
            action_button=action_button
        )

class InsufficientFundsException(AppException):
    def __init__(self, status_message="Insufficient funds", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.INSUFFICIENT_FUNDS,
            status_message=status_message,
            status_code=400,
            details=details,
            action_button=action_button
        )

class ProviderException(AppException):
    """The Lightning provider was unreachable or answered with something unusable."""
    def __init__(self, status_message="Payment provider error", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.PROVIDER_ERROR,
            status_message=status_message,
            status_code=502,
            details=details,
            action_button=action_button
        )

class ProviderTimeoutException(ProviderException):
    def __init__(self, status_message="Payment provider timed out", details=None, action_button=None):
        super().__init__(status_message=status_message, details=details, action_button=action_button)
        self.error_code = ErrorCodes.PROVIDER_TIMEOUT
        self.status_code = 504

class InternalServerErrorException(AppException):
    def __init__(self, status_message="Internal server error", details=None, action_button=None):
        super().__init__(
            error_code=ErrorCodes.INTERNAL_SERVER_ERROR,
            status_message=status_message,
            status_code=500,
            details=details,
            action_button=action_button
        )
