"""Error taxonomy shared by the services and the HTTP layer."""


class RecipeVerseError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(RecipeVerseError):
    status_code = 400


class Unauthorized(RecipeVerseError):
    status_code = 401


class Forbidden(RecipeVerseError):
    status_code = 403


class NotFound(RecipeVerseError):
    status_code = 404


class Conflict(RecipeVerseError):
    status_code = 409


class Internal(RecipeVerseError):
    status_code = 500


__all__ = [
    "RecipeVerseError",
    "InvalidInput",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "Conflict",
    "Internal",
]
