"""Error taxonomy shared by the services and the JSON API."""


class AppError(Exception):
    """Base error carrying the HTTP status the API layer should return."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class UniquenessConflict(ValidationError):
    """Duplicate value on a unique column (e.g. email)."""


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class GenerationError(AppError):
    """The completion client failed, timed out, or returned no text."""
    status_code = 500
