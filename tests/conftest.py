"""Pytest fixtures for push service tests."""

import asyncio
import os
import uuid
from collections.abc import Generator

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["VAPID_PUBLIC_KEY"] = ""
os.environ["VAPID_PRIVATE_KEY"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api import deps
from app.core.security import create_access_token
from app.db import models  # noqa: F401  # Imported for side effects
from app.db.base import Base
from app.db.models import PushCampaign, PushSubscription, User
from app.main import create_app
from app.services.auth import AuthService
from app.services.subscription_registry import SubscriptionTarget
from app.utils.exceptions import PermanentDeliveryError, TransientDeliveryError

TABLES = [User.__table__, PushSubscription.__table__, PushCampaign.__table__]


class FakeTransport:
    """Scripted transport recording every delivery.

    ``failures`` maps an endpoint to the exception raised for it; every other
    endpoint succeeds.
    """

    def __init__(self, failures: dict[str, Exception] | None = None, delay: float = 0.0):
        self.failures = dict(failures or {})
        self.delay = delay
        self.calls: list[tuple[SubscriptionTarget, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def fail_permanently(self, endpoint: str) -> None:
        self.failures[endpoint] = PermanentDeliveryError("Subscription is no longer valid (410)", 410)

    def fail_transiently(self, endpoint: str, message: str = "Service unavailable") -> None:
        self.failures[endpoint] = TransientDeliveryError(message, 503)

    async def deliver(self, subscription: SubscriptionTarget, message: str) -> None:
        self.calls.append((subscription, message))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            error = self.failures.get(subscription.endpoint)
            if error is not None:
                raise error
        finally:
            self.in_flight -= 1

    def close(self) -> None:
        self.closed = True

    @property
    def endpoints(self) -> list[str]:
        return [target.endpoint for target, _ in self.calls]


@pytest.fixture(scope="session")
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture()
def db_session(db_engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.query(PushCampaign).delete()
        db.query(PushSubscription).delete()
        db.query(User).delete()
        db.commit()
        db.close()


@pytest.fixture()
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def client(db_session: Session, fake_transport: FakeTransport) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_push_transport] = lambda: fake_transport
    app.dependency_overrides[deps.get_optional_push_transport] = lambda: fake_transport
    with TestClient(app) as test_client:
        yield test_client


def _create_user(db_session: Session, username: str, role: str) -> User:
    return AuthService(db_session).create_user(
        username, "securepass123", role=role, email=f"{username}@example.com"
    )


@pytest.fixture()
def admin_user(db_session) -> User:
    return _create_user(db_session, "admin", "admin")


@pytest.fixture()
def member_user(db_session) -> User:
    return _create_user(db_session, "driver", "driver_manager")


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), role=user.role)}"}


@pytest.fixture()
def admin_headers(admin_user) -> dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture()
def member_headers(member_user) -> dict[str, str]:
    return auth_headers(member_user)


@pytest.fixture()
def make_subscription(db_session):
    """Factory inserting an active subscription row."""

    def factory(
        endpoint: str | None = None,
        *,
        user: User | None = None,
        role: str | None = None,
        is_active: bool = True,
        username: str | None = None,
    ) -> PushSubscription:
        subscription = PushSubscription(
            endpoint=endpoint or f"https://push.example.com/send/{uuid.uuid4().hex}",
            keys={"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA", "auth": "tBHItJI5svbpez7KI4CCXg"},
            user_id=user.id if user else None,
            username=username or (user.username if user else "Anonymous User"),
            email=user.email if user else None,
            role=role or (user.role if user else "guest"),
            device_type="desktop",
            is_active=is_active,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return factory
