class JournalsError(Exception):
    """Base class for application errors."""


class NotFoundError(JournalsError):
    pass


class ValidationError(JournalsError):
    pass


class AccessDeniedError(JournalsError):
    pass


class PaymentError(JournalsError):
    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.code = code
