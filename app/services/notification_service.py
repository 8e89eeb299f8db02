"""Service for handling Web Push notifications."""
from __future__ import annotations

import uuid
from typing import Any, Iterable, Literal, Mapping

from loguru import logger
from sqlalchemy.orm import Session

from app.config import settings
from app.db.models.push_subscription import PushSubscription
from app.db.models.user import User
from app.services.campaign_recorder import CampaignRecorder
from app.services.delivery_dispatcher import CampaignResult, DeliveryDispatcher
from app.services.payload_builder import PayloadBuilder
from app.services.push_transport import PushTransport
from app.services.subscription_pruner import SubscriptionPruner
from app.services.subscription_registry import AudienceFilter, SubscriptionRegistry
from app.utils.exceptions import HistoryRecordingError, PushNotConfiguredError

TrackingEvent = Literal["delivered", "clicked", "failed"]

ANONYMOUS_USERNAME = "Anonymous User"
GUEST_ROLE = "guest"


class NotificationService:
    """Entry point used by the API and background tasks."""

    def __init__(
        self,
        db: Session,
        transport: PushTransport | None = None,
        *,
        builder: PayloadBuilder | None = None,
    ):
        self.db = db
        self.transport = transport
        self.builder = builder or PayloadBuilder()
        self.registry = SubscriptionRegistry(db)
        self.recorder = CampaignRecorder(db)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------
    def dispatcher(self) -> DeliveryDispatcher:
        if self.transport is None:
            raise PushNotConfiguredError("No push transport configured")
        return DeliveryDispatcher(
            self.registry,
            self.transport,
            recorder=self.recorder,
            pruner=SubscriptionPruner(self.registry),
        )

    async def send(
        self,
        raw: Mapping[str, Any],
        *,
        issuer: str,
        target_roles: Iterable[str] | None = None,
        target_users: Iterable[uuid.UUID | str] | None = None,
        save_to_history: bool = True,
    ) -> CampaignResult:
        """Validate ``raw`` and deliver it to the audience.

        Raises ``PayloadValidationError`` before touching the registry when the
        payload is invalid.
        """

        payload = self.builder.build(raw)
        audience = AudienceFilter.from_lists(target_roles, target_users)
        return await self.dispatcher().dispatch(
            payload, audience, issuer, record_history=save_to_history
        )

    async def send_to_user(
        self, user_id: uuid.UUID | str, raw: Mapping[str, Any], issuer: str, **kwargs: Any
    ) -> CampaignResult:
        return await self.send(raw, issuer=issuer, target_users=[user_id], **kwargs)

    async def send_to_roles(
        self, roles: Iterable[str], raw: Mapping[str, Any], issuer: str, **kwargs: Any
    ) -> CampaignResult:
        return await self.send(raw, issuer=issuer, target_roles=roles, **kwargs)

    async def send_to_all(
        self, raw: Mapping[str, Any], issuer: str, **kwargs: Any
    ) -> CampaignResult:
        return await self.send(raw, issuer=issuer, **kwargs)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    def subscribe(
        self,
        subscription_info: Mapping[str, Any],
        *,
        user: User | None = None,
        user_name: str | None = None,
        user_agent: str | None = None,
    ) -> PushSubscription:
        """Register a new push subscription."""

        return self.registry.save_subscription(
            endpoint=subscription_info.get("endpoint") or "",
            keys=dict(subscription_info.get("keys") or {}),
            user_id=user.id if user else None,
            username=user_name or (user.username if user else ANONYMOUS_USERNAME),
            email=user.email if user else None,
            role=user.role if user else GUEST_ROLE,
            user_agent=user_agent,
        )

    def unsubscribe(self, endpoint: str, user: User | None = None) -> bool:
        removed = self.registry.remove_subscription(endpoint, user.id if user else None)
        logger.info(
            "Push subscription removed",
            user_id=str(user.id) if user else "anonymous",
            removed=removed,
        )
        return removed

    async def send_welcome(self, subscription: PushSubscription) -> CampaignResult | None:
        """Greet a signed-in subscriber. Failures are logged and swallowed."""

        if subscription.user_id is None:
            logger.info("Skipping welcome notification for anonymous user")
            return None

        greeting = (
            f"Hello {subscription.username}, notifications are now enabled on this device."
            if subscription.username != ANONYMOUS_USERNAME
            else "Notifications are now enabled on this device."
        )
        try:
            result = await self.send_to_user(
                subscription.user_id,
                {"title": "Subscription complete", "body": greeting, "url": "/"},
                issuer="system",
                save_to_history=False,
            )
        except Exception as exc:  # pragma: no cover
            logger.error(
                "Error sending welcome notification",
                user_id=str(subscription.user_id),
                error=str(exc),
            )
            return None

        if not result.success:
            logger.warning(
                "Failed to send welcome notification",
                user_id=str(subscription.user_id),
                errors=result.errors,
            )
        return result

    # ------------------------------------------------------------------
    # Tracking and history
    # ------------------------------------------------------------------
    def track_event(
        self,
        event: TrackingEvent,
        *,
        campaign_id: uuid.UUID | None = None,
        endpoint: str | None = None,
    ) -> None:
        """Apply a client-reported delivery event."""

        if endpoint:
            self.registry.touch_activity(endpoint)

        if campaign_id is not None:
            try:
                self.recorder.increment_stats(campaign_id, **{event: 1})
            except HistoryRecordingError as exc:
                logger.error(
                    "Failed to track push event",
                    campaign_id=str(campaign_id),
                    push_event=event,
                    error=exc.message,
                )
                raise

        logger.info(
            "Push event tracked",
            campaign_id=str(campaign_id) if campaign_id else None,
            push_event=event,
        )

    def history(self, limit: int | None = None):
        return self.recorder.history(limit or settings.PUSH_HISTORY_LIMIT)

    def active_subscriptions(self) -> list[PushSubscription]:
        return self.registry.list_active()

    @staticmethod
    def public_key() -> str:
        if not settings.VAPID_PUBLIC_KEY:
            raise PushNotConfiguredError("VAPID public key is not configured")
        return settings.VAPID_PUBLIC_KEY
