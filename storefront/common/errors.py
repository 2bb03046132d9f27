from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base error rendered by the app-level error handlers."""

    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message}
        if self.code:
            payload["error"] = self.code
        payload.update(self.extra)
        return payload


class ValidationError(StorefrontError):
    status_code = 400


class AuthError(StorefrontError):
    status_code = 401


class ForbiddenError(StorefrontError):
    status_code = 403


class NotFoundError(StorefrontError):
    status_code = 404
