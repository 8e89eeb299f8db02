"""Authentication service layer."""
from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import (
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
)
from app.db.models.user import User
from app.schemas import Token


class UsernameAlreadyExistsError(ValueError):
    """Raised when creating a user whose username is taken."""


class InvalidCredentialsError(ValueError):
    """Raised when authentication credentials are invalid."""


class AuthService:
    """Credential checks and token issuance for operators."""

    def __init__(self, db: Session):
        self.db = db

    def create_user(
        self,
        username: str,
        password: str,
        *,
        role: str = "guest",
        email: str | None = None,
        full_name: str | None = None,
    ) -> User:
        user = User(
            username=username,
            email=email,
            full_name=full_name,
            role=role,
            hashed_password=get_password_hash(password),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise UsernameAlreadyExistsError("A user with this username already exists.") from exc
        self.db.refresh(user)
        return user

    def authenticate_user(self, username: str, password: str) -> User:
        user = self.db.scalar(select(User).where(User.username == username))
        if not user or not user.is_active or not verify_password(password, user.hashed_password):
            raise InvalidCredentialsError("Incorrect username or password")
        return user

    def create_tokens(self, user: User) -> Token:
        access = create_access_token(str(user.id), role=user.role)
        refresh = create_refresh_token(str(user.id))
        return Token(access_token=access, refresh_token=refresh)


def handle_invalid_credentials(error: InvalidCredentialsError) -> None:
    """Raise an HTTP 401 error for invalid login attempts."""

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=str(error),
        headers={"WWW-Authenticate": "Bearer"},
    ) from error
