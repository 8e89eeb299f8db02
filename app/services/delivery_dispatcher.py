"""Concurrent fan-out of one notification to every subscription in an audience."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from app.config import settings
from app.db.models.push_campaign import CAMPAIGN_FAILED, CAMPAIGN_SENT
from app.services.campaign_recorder import CampaignRecorder
from app.services.payload_builder import NotificationPayload
from app.services.push_transport import PushTransport
from app.services.subscription_pruner import SubscriptionPruner
from app.services.subscription_registry import (
    AudienceFilter,
    SubscriptionRegistry,
    SubscriptionTarget,
    short_endpoint,
)
from app.utils.exceptions import DeliveryError, HistoryRecordingError

NO_RECIPIENTS_MESSAGE = "No active subscriptions found"

Classification = Literal["permanent", "transient", "none"]


@dataclass
class DeliveryAttemptResult:
    """Outcome of one delivery attempt."""

    subscription_id: uuid.UUID
    endpoint: str
    username: str
    success: bool
    classification: Classification = "none"
    error: str | None = None
    status_code: int | None = None


@dataclass
class CampaignResult:
    """Aggregate outcome returned to the caller."""

    success: bool
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    campaign_id: uuid.UUID | None = None

    @classmethod
    def no_recipients(cls) -> "CampaignResult":
        return cls(success=False, sent=0, failed=0, errors=[NO_RECIPIENTS_MESSAGE])

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "sent": self.sent,
            "failed": self.failed,
            "errors": list(self.errors),
            "campaign_id": str(self.campaign_id) if self.campaign_id else None,
        }


class DeliveryDispatcher:
    """Resolve an audience, deliver to every member and fold the outcomes.

    Attempts run concurrently, at most ``max_concurrency`` at a time, and the
    dispatcher always waits for every one of them to settle. Attempts never
    touch shared counters; their results are reduced by the coordinating task
    after the join. Per-recipient failures end up in ``CampaignResult.errors``
    and are never raised.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        transport: PushTransport,
        *,
        recorder: CampaignRecorder | None = None,
        pruner: SubscriptionPruner | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.recorder = recorder or CampaignRecorder(registry.db)
        self.pruner = pruner or SubscriptionPruner(registry)
        self.max_concurrency = max_concurrency or settings.PUSH_MAX_CONCURRENCY

    async def dispatch(
        self,
        payload: NotificationPayload,
        audience: AudienceFilter,
        issuer: str,
        record_history: bool = True,
    ) -> CampaignResult:
        logger.info(
            "Sending push notification",
            title=payload.title,
            target_roles=list(audience.roles),
            target_users=[str(user_id) for user_id in audience.user_ids],
            issuer=issuer,
        )

        subscriptions = self.registry.resolve(audience)
        if not subscriptions:
            logger.warning("No active subscriptions found", issuer=issuer)
            return CampaignResult.no_recipients()
        targets = [SubscriptionTarget.from_model(sub) for sub in subscriptions]

        campaign_id = None
        if record_history:
            campaign_id = self._create_campaign(payload, audience, issuer)
        if campaign_id is not None:
            payload = payload.with_campaign(campaign_id)
            self._record("mark_sending", campaign_id)

        message = payload.serialize()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def attempt(target: SubscriptionTarget) -> DeliveryAttemptResult:
            async with semaphore:
                outcome = await self._deliver_one(target, message)
            if outcome.classification == "permanent":
                self.pruner.prune(target.endpoint)
            return outcome

        outcomes = await asyncio.gather(*(attempt(target) for target in targets))
        result = self._reduce(outcomes)
        result.campaign_id = campaign_id

        if campaign_id is not None:
            status = CAMPAIGN_SENT if result.success else CAMPAIGN_FAILED
            self._record("finalize", campaign_id, status, result.sent, result.failed)

        logger.info(
            "Push notification campaign completed",
            campaign_id=str(campaign_id) if campaign_id else None,
            sent=result.sent,
            failed=result.failed,
            total=len(targets),
        )
        return result

    async def _deliver_one(
        self, target: SubscriptionTarget, message: str
    ) -> DeliveryAttemptResult:
        try:
            await self.transport.deliver(target, message)
        except DeliveryError as exc:
            classification: Classification = "permanent" if exc.permanent else "transient"
            logger.warning(
                "Push send failed",
                user_id=str(target.user_id) if target.user_id else None,
                endpoint=short_endpoint(target.endpoint),
                error=exc.message,
                status_code=exc.status_code,
                classification=classification,
            )
            return DeliveryAttemptResult(
                subscription_id=target.id,
                endpoint=target.endpoint,
                username=target.username,
                success=False,
                classification=classification,
                error=exc.message,
                status_code=exc.status_code,
            )
        except Exception as exc:
            # Timeouts and unexpected transport errors count as transient.
            message_text = str(exc) or exc.__class__.__name__
            logger.warning(
                "Push send failed",
                user_id=str(target.user_id) if target.user_id else None,
                endpoint=short_endpoint(target.endpoint),
                error=message_text,
                classification="transient",
            )
            return DeliveryAttemptResult(
                subscription_id=target.id,
                endpoint=target.endpoint,
                username=target.username,
                success=False,
                classification="transient",
                error=message_text,
            )

        logger.debug(
            "Push sent successfully",
            user_id=str(target.user_id) if target.user_id else None,
            endpoint=short_endpoint(target.endpoint),
        )
        return DeliveryAttemptResult(
            subscription_id=target.id,
            endpoint=target.endpoint,
            username=target.username,
            success=True,
        )

    @staticmethod
    def _reduce(outcomes: list[DeliveryAttemptResult]) -> CampaignResult:
        sent = 0
        failed = 0
        errors: list[str] = []
        for outcome in outcomes:
            if outcome.success:
                sent += 1
            else:
                failed += 1
                errors.append(f"Failed to send to {outcome.username}: {outcome.error}")
        return CampaignResult(success=sent > 0, sent=sent, failed=failed, errors=errors)

    def _create_campaign(
        self, payload: NotificationPayload, audience: AudienceFilter, issuer: str
    ) -> uuid.UUID | None:
        try:
            return self.recorder.create(payload, audience, issuer)
        except HistoryRecordingError as exc:
            logger.error("Failed to record push campaign", error=exc.message)
            return None

    def _record(self, operation: str, *args) -> None:
        try:
            getattr(self.recorder, operation)(*args)
        except HistoryRecordingError as exc:
            logger.error(
                "Push campaign history update failed",
                operation=operation,
                error=exc.message,
            )
