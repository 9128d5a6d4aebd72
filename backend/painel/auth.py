"""Authentication helpers and FastAPI security dependencies.

This module decodes JWT tokens and exposes dependencies that resolve the
bearer token to a `Profile`: `get_current_user` for regular routes,
`require_permission(code)` for gated routes. Internal
endpoints also accept the service-role key (see `is_service_role`).

Token verification raises HTTPExceptions on failure so the dependencies
can be used directly inside route signatures.
"""

import hmac
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session
from .services import PermissionService

bearer_scheme = HTTPBearer(auto_error=False)

SERVICE_ROLE = "service_role"


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="invalid token")


def is_service_role(token: str) -> bool:
    return bool(settings.SERVICE_ROLE_KEY) and hmac.compare_digest(token, settings.SERVICE_ROLE_KEY)


def user_from_token(token: str, session: Session) -> models.Profile:
    payload = decode_token(token)
    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="invalid token payload")
    user = repositories.UserRepository(session).get(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="user not found")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.Profile:
    """FastAPI dependency that returns the authenticated user.

    Raises HTTPException(401) for a missing, invalid or expired token.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Não autenticado")
    return user_from_token(credentials.credentials, session)


def require_permission(code: str):
    """Dependency factory: the user must hold `code` (admins hold everything)."""
    def dependency(
        user: models.Profile = Depends(get_current_user),
        session: Session = Depends(get_session),
    ) -> models.Profile:
        if not PermissionService(session).has_permission(user, code):
            raise HTTPException(status_code=403, detail="Sem permissão")
        return user
    return dependency
