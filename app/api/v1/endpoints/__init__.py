"""API endpoint modules for v1."""

from app.api.v1.endpoints import auth, push

__all__ = ["auth", "push"]
