"""Shared API dependencies."""
from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.security import InvalidTokenError, decode_token
from app.db.models.user import User
from app.db.session import get_db
from app.schemas import TokenPayload
from app.services.push_transport import PushTransport, WebPushTransport
from app.utils.exceptions import PushNotConfiguredError, handle_not_configured_error

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False
)

_transport_singleton: PushTransport | None = None


def _user_from_token(token: str, db: Session) -> User | None:
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise InvalidTokenError("Token must be an access token")
        token_data = TokenPayload.model_validate(payload)
    except (InvalidTokenError, ValidationError, ValueError, KeyError):
        return None

    user = db.get(User, uuid.UUID(str(token_data.sub)))
    if not user or not user.is_active:
        return None
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    """Resolve the authenticated user from the Authorization header."""

    user = _user_from_token(token, db) if token else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(
    token: str | None = Depends(optional_oauth2_scheme), db: Session = Depends(get_db)
) -> User | None:
    """Resolve the user when a valid token is supplied; anonymous otherwise."""

    if not token:
        return None
    return _user_from_token(token, db)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator privileges required",
        )
    return current_user


def get_push_transport() -> PushTransport:
    """Return a cached Web Push transport or raise if VAPID is not configured."""

    global _transport_singleton
    if _transport_singleton is None:
        try:
            _transport_singleton = WebPushTransport()
        except PushNotConfiguredError as exc:
            raise handle_not_configured_error(exc) from exc
    return _transport_singleton


def get_optional_push_transport() -> PushTransport | None:
    """Return the transport when push is configured, otherwise ``None``."""

    if not settings.push_configured:
        return None
    return get_push_transport()
