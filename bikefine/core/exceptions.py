from typing import Optional


class ServiceError(Exception):
    """Base error raised by the data-access services.

    Route handlers let these propagate; the application exception handler
    renders them in the response envelope with ``status_code``.
    """

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RecordValidationError(ServiceError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RecordNotFoundError(ServiceError):
    status_code = 404


class DuplicateRecordError(ServiceError):
    status_code = 409


class UploadRejectedError(ServiceError):
    status_code = 400


class DatabaseConfigError(RuntimeError):
    pass
