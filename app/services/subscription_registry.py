"""Persistent registry of device push subscriptions."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from loguru import logger
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.push_subscription import PushSubscription
from app.utils.exceptions import PayloadValidationError, SubscriptionError


def short_endpoint(endpoint: str) -> str:
    """Truncate an endpoint for log output."""

    return endpoint[:50] + "..." if len(endpoint) > 50 else endpoint


@dataclass(frozen=True)
class AudienceFilter:
    """Roles and/or user ids to target; both empty means everyone."""

    roles: tuple[str, ...] = ()
    user_ids: tuple[uuid.UUID, ...] = ()

    @classmethod
    def from_lists(
        cls,
        roles: Iterable[str] | None = None,
        user_ids: Iterable[uuid.UUID | str] | None = None,
    ) -> "AudienceFilter":
        if isinstance(roles, str):
            roles = [roles]
        if isinstance(user_ids, (str, uuid.UUID)):
            user_ids = [user_ids]
        parsed: list[uuid.UUID] = []
        for value in user_ids or ():
            try:
                parsed.append(uuid.UUID(str(value)))
            except ValueError as exc:
                raise PayloadValidationError(
                    "targetUsers", f"Invalid user id: {value}"
                ) from exc
        return cls(roles=tuple(roles or ()), user_ids=tuple(parsed))

    @property
    def is_broadcast(self) -> bool:
        return not self.roles and not self.user_ids


@dataclass(frozen=True)
class SubscriptionTarget:
    """Immutable view of a subscription handed to the transport."""

    id: uuid.UUID
    endpoint: str
    keys: dict[str, str]
    username: str
    user_id: uuid.UUID | None = None

    @classmethod
    def from_model(cls, subscription: PushSubscription) -> "SubscriptionTarget":
        return cls(
            id=subscription.id,
            endpoint=subscription.endpoint,
            keys=dict(subscription.keys or {}),
            username=subscription.username,
            user_id=subscription.user_id,
        )

    def subscription_info(self) -> dict[str, Any]:
        return {"endpoint": self.endpoint, "keys": dict(self.keys)}


def detect_device_type(user_agent: str | None) -> str:
    """Classify a device from its User-Agent header."""

    agent = (user_agent or "").lower()
    if any(token in agent for token in ("iphone", "ipad", "ipod")):
        return "ios"
    if "android" in agent:
        return "android"
    return "desktop"


class SubscriptionRegistry:
    """Query and maintain ``push_subscriptions`` rows."""

    def __init__(self, db: Session):
        self.db = db

    def active_subscriptions(
        self,
        roles: Sequence[str] | None = None,
        user_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[PushSubscription]:
        """Return active subscriptions matching any role or any user id."""

        stmt = select(PushSubscription).where(PushSubscription.is_active.is_(True))
        conditions = []
        if roles:
            conditions.append(PushSubscription.role.in_(list(roles)))
        if user_ids:
            conditions.append(PushSubscription.user_id.in_(list(user_ids)))
        if conditions:
            stmt = stmt.where(or_(*conditions))
        return list(self.db.scalars(stmt.order_by(PushSubscription.created_at)).all())

    def resolve(self, audience: AudienceFilter) -> list[PushSubscription]:
        return self.active_subscriptions(audience.roles, audience.user_ids)

    def list_active(self) -> list[PushSubscription]:
        return self.active_subscriptions()

    def deactivate(self, endpoint: str) -> bool:
        """Mark the endpoint inactive; returns False when nothing changed."""

        result = self.db.execute(
            update(PushSubscription)
            .where(PushSubscription.endpoint == endpoint)
            .where(PushSubscription.is_active.is_(True))
            .values(is_active=False, updated_at=datetime.now(timezone.utc))
        )
        self.db.commit()
        return result.rowcount > 0

    def touch_activity(self, endpoint: str, timestamp: datetime | None = None) -> None:
        """Record device activity. Storage failures are logged, never raised."""

        try:
            self.db.execute(
                update(PushSubscription)
                .where(PushSubscription.endpoint == endpoint)
                .values(last_active=timestamp or datetime.now(timezone.utc))
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning(
                "Failed to update subscription activity",
                endpoint=short_endpoint(endpoint),
                error=str(exc),
            )

    def save_subscription(
        self,
        *,
        endpoint: str,
        keys: dict[str, str],
        user_id: uuid.UUID | None,
        username: str,
        email: str | None,
        role: str,
        user_agent: str | None,
    ) -> PushSubscription:
        """Create or refresh the subscription for ``endpoint``.

        Re-registering an endpoint re-homes it to the new owner and reactivates it.
        """

        if not endpoint:
            raise SubscriptionError("Invalid subscription data")
        if not keys or not keys.get("p256dh") or not keys.get("auth"):
            raise SubscriptionError("Subscription keys are required")

        device_type = detect_device_type(user_agent)
        existing = self.db.scalar(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        if existing:
            subscription = existing
        else:
            subscription = PushSubscription(endpoint=endpoint)
            self.db.add(subscription)

        subscription.keys = dict(keys)
        subscription.user_id = user_id
        subscription.username = username
        subscription.email = email
        subscription.role = role
        subscription.user_agent = (user_agent or "")[:512] or None
        subscription.device_type = device_type
        subscription.is_active = True
        subscription.mark_activity()

        self.db.commit()
        self.db.refresh(subscription)
        logger.info(
            "Push subscription saved",
            user_id=str(user_id) if user_id else "anonymous",
            device_type=device_type,
            endpoint=short_endpoint(endpoint),
            updated=existing is not None,
        )
        return subscription

    def remove_subscription(self, endpoint: str, user_id: uuid.UUID | None = None) -> bool:
        """Deactivate a subscription on request of its device.

        When ``user_id`` is given only a subscription owned by that user, or an
        anonymous one, is affected.
        """

        stmt = (
            update(PushSubscription)
            .where(PushSubscription.endpoint == endpoint)
            .where(PushSubscription.is_active.is_(True))
        )
        if user_id is not None:
            stmt = stmt.where(
                or_(PushSubscription.user_id == user_id, PushSubscription.user_id.is_(None))
            )
        result = self.db.execute(
            stmt.values(is_active=False, updated_at=datetime.now(timezone.utc))
        )
        self.db.commit()
        return result.rowcount > 0

    def purge_inactive(self, older_than: datetime) -> int:
        """Physically delete subscriptions deactivated before ``older_than``."""

        result = self.db.execute(
            delete(PushSubscription)
            .where(PushSubscription.is_active.is_(False))
            .where(PushSubscription.updated_at < older_than)
        )
        self.db.commit()
        return result.rowcount
