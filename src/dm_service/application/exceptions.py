from __future__ import annotations


class AppError(Exception):
    """Base application error. ``status_code`` is the HTTP status the API maps it to."""

    status_code = 400

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    status_code = 404


class ForbiddenError(AppError):
    status_code = 403


class ConflictError(AppError):
    """An operation is already in progress or the target changed underneath us."""

    status_code = 409


class ValidationError(AppError):
    status_code = 422


class AuthenticationError(AppError):
    status_code = 401
