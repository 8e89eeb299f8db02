"""Authentication API endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.schemas import Token, UserLogin
from app.services.auth import AuthService, InvalidCredentialsError, handle_invalid_credentials


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
def login(payload: UserLogin, db: Session = Depends(get_db)) -> Token:
    """Authenticate an operator and return JWT tokens."""

    service = AuthService(db)
    try:
        user = service.authenticate_user(payload.username, payload.password)
    except InvalidCredentialsError as exc:
        handle_invalid_credentials(exc)
    return service.create_tokens(user)
