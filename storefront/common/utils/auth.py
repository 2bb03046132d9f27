import time
from typing import Dict, Optional

import jwt

from ..errors import AuthError, ForbiddenError


def issue_admin_token(secret: str, subject: str, expires_in: int = 3600) -> str:
    now = int(time.time())
    payload = {"sub": subject, "role": "admin", "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


def verify_admin_token(authorization: Optional[str], secret: str) -> Dict:
    """Validate a `Bearer <jwt>` header value and return its claims."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("Authentication required")
    token = authorization.split(" ", 1)[1].strip()
    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    if claims.get("role") != "admin":
        raise ForbiddenError("Admin access required")
    return claims
