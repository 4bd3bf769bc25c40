"""Authentication utilities for API routes."""

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from contactdb.config import settings
from contactdb.core.logging import user_id_var

security = HTTPBearer()


@dataclass
class AuthUser:
    """Authenticated user from JWT token."""

    user_id: str
    email: str = ""


def _b64decode(segment: str) -> bytes:
    padding = 4 - len(segment) % 4
    if padding != 4:
        segment += "=" * padding
    return base64.urlsafe_b64decode(segment)


def verify_token(token: str, secret: Optional[str] = None) -> Optional[AuthUser]:
    """Verify an HS256 JWT and return its user, or None if invalid or expired."""
    secret = secret if secret is not None else settings.jwt_secret
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return None

        header_b64, payload_b64, signature_b64 = parts

        expected_signature = hmac.new(
            secret.encode(),
            f"{header_b64}.{payload_b64}".encode(),
            hashlib.sha256,
        ).digest()
        expected_signature_b64 = (
            base64.urlsafe_b64encode(expected_signature).rstrip(b"=").decode()
        )

        if not hmac.compare_digest(signature_b64, expected_signature_b64):
            return None

        payload = json.loads(_b64decode(payload_b64))

        if payload.get("exp", 0) < time.time():
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        return AuthUser(user_id=str(user_id), email=payload.get("email", ""))
    except (ValueError, TypeError, AttributeError):
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthUser:
    """Dependency to get the current authenticated user from JWT token."""
    auth_user = verify_token(credentials.credentials)

    if not auth_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "UNAUTHORIZED", "message": "Authentication required"},
        )

    user_id_var.set(auth_user.user_id)
    return auth_user
