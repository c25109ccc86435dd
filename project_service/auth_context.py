"""
project_service/auth_context.py

Authentication context primitives for FastAPI dependency injection.

Tokens are issued elsewhere; this service only verifies them. The signing
secret is resolved once at startup and kept on app.state.

Contains:
- AuthContext: caller identity derived from a verified JWT
- verify_token: signature, expiry, issuer and audience checks
- require_auth_context: FastAPI dependency for protected routes
- create_access_token: token minting for local tooling and tests
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

try:
    from project_service.config import ALGORITHM, IS_DEV, JWT_AUDIENCE, JWT_ISSUER, SECRET_KEY
except ModuleNotFoundError:
    from config import ALGORITHM, IS_DEV, JWT_AUDIENCE, JWT_ISSUER, SECRET_KEY

# Security scheme for HTTPBearer
security = HTTPBearer()

# Claim names that may carry the user id, in priority order
USER_ID_CLAIMS = (
    "sub",
    "nameid",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier",
)


class AuthContext(BaseModel):
    """Caller identity. Never take a user id from the request body instead."""
    user_id: str
    claims: Dict[str, Any] = {}


def verify_token(token: str, secret: str = SECRET_KEY) -> dict:
    """
    Verify JWT access token and return decoded payload.

    Raises:
        HTTPException(401): If token is expired or invalid
    """
    options = {"verify_aud": JWT_AUDIENCE is not None}
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def user_id_from_claims(payload: Dict[str, Any]) -> Optional[str]:
    for claim in USER_ID_CLAIMS:
        value = payload.get(claim)
        if value:
            return str(value)
    return None


def require_auth_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthContext:
    """
    Auth dependency for protected routes.

    Raises:
        HTTPException(401): If token is invalid, expired, or has no user id claim
    """
    secret = getattr(request.app.state, "jwt_secret", SECRET_KEY)
    payload = verify_token(credentials.credentials, secret)

    user_id = user_id_from_claims(payload)
    if not user_id:
        print("[AUTH] Missing user id claim in token payload")
        raise HTTPException(status_code=401, detail="User ID claim is missing or invalid.")

    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={user_id}")
    return AuthContext(user_id=user_id, claims=payload)


def create_access_token(
    user_id: str,
    secret: str = SECRET_KEY,
    expires_minutes: int = 15,
    **extra_claims: Any,
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {"sub": user_id, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    if JWT_ISSUER:
        payload["iss"] = JWT_ISSUER
    if JWT_AUDIENCE:
        payload["aud"] = JWT_AUDIENCE
    payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)
