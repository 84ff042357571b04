"""
Error taxonomy for the doodle API.

Every error a request can hit is a ``DoodleError`` subclass carrying the HTTP
status it maps to and a message that is safe to show to clients. Handlers in
``doodleboard.main`` turn them into ``{"error": message}`` bodies.
"""


class DoodleError(Exception):
    status_code = 500
    message = "Something went wrong!"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# 400: user-correctable input problems
class ValidationError(DoodleError):
    status_code = 400
    message = "Invalid request"


class MissingImage(ValidationError):
    message = "Image data required"


class ImageTooLarge(ValidationError):
    message = "Image too large (max 5MB)"


class InvalidImage(ValidationError):
    message = "Invalid image data"


class InvalidReaction(ValidationError):
    message = "Invalid reaction type"


# 400: terminal for this attempt
class ConflictError(DoodleError):
    status_code = 400
    message = "Conflict"


class DuplicateImage(ConflictError):
    message = "Duplicate image detected"


class AlreadyReacted(ConflictError):
    message = "Already reacted"


class ConstraintViolation(ConflictError):
    message = "Record already exists"


class NotFoundError(DoodleError):
    status_code = 404
    message = "Doodle not found"


class DependencyError(DoodleError):
    """Persistence or cache failure; the public message never carries internals."""

    status_code = 500
    message = "Service temporarily unavailable"

    def __init__(self, message: str | None = None, detail: str | None = None):
        super().__init__(message)
        self.detail = detail
