"""Authentication helpers and FastAPI security dependencies.

This module provides `decode_token`, the `get_current_user` dependency
that validates the bearer token and returns the corresponding `AppUser`,
and `require_roles` for the role-based policies used by the admin
endpoints.

Token verification raises HTTPExceptions on failure so the helpers can be
used directly inside route dependencies.
"""

from datetime import datetime, timezone

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session

from . import models, repositories
from .database import get_session
from .services import TokenService

bearer_scheme = HTTPBearer()


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return TokenService().decode_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except (jwt.PyJWTError, ValueError):
        raise HTTPException(status_code=401, detail='invalid token')


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.AppUser:
    """FastAPI dependency that returns the authenticated user.

    The user is loaded in the request's session and its `last_active`
    timestamp is refreshed, so every authenticated call counts as
    activity. Raises HTTPException(401) for any authentication issue.
    """
    payload = decode_token(credentials.credentials)
    try:
        user_id = int(payload.get('nameid'))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(db).get(user_id)
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    user.last_active = datetime.now(timezone.utc)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def require_roles(*roles: str):
    """Build a dependency that only lets users holding one of `roles` through."""
    allowed = set(roles)

    def _dependency(user: models.AppUser = Depends(get_current_user)) -> models.AppUser:
        if not allowed.intersection(r.name for r in user.roles):
            raise HTTPException(status_code=403, detail='insufficient role')
        return user

    return _dependency


require_admin = require_roles('Admin')
require_photo_moderator = require_roles('Admin', 'Moderator')
