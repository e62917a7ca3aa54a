"""
Domain errors raised by the authorization engine.

Routes let these propagate; app.main translates them into JSON responses.
Store failures (SQLAlchemy errors) are not wrapped and propagate unchanged.
"""
from fastapi import status


class AuthorizationEngineError(Exception):
    """Base class for typed engine errors."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AuthorizationEngineError):
    """Folder, user, branch, department or grant does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class InactiveTargetError(AuthorizationEngineError):
    """Grant attempted against a deactivated branch or department."""
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(AuthorizationEngineError):
    """Duplicate grant or other uniqueness violation."""
    status_code = status.HTTP_409_CONFLICT


class PermissionDeniedError(AuthorizationEngineError):
    status_code = status.HTTP_403_FORBIDDEN


class EscalationError(AuthorizationEngineError):
    """Role assignment above the actor's own level."""
    status_code = status.HTTP_403_FORBIDDEN
