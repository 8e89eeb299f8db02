"""API router for version 1."""
from fastapi import APIRouter

from app.api.v1.endpoints import auth, push


api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(push.router)
