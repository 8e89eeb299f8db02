"""Campaign history and delivery statistics."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models.push_campaign import (
    CAMPAIGN_PENDING,
    CAMPAIGN_SENDING,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    PushCampaign,
)
from app.services.payload_builder import NotificationPayload
from app.services.subscription_registry import AudienceFilter
from app.utils.exceptions import HistoryRecordingError


class CampaignRecorder:
    """Write campaign rows and fold statistics into them.

    Every write is a single conditional ``UPDATE`` keyed by campaign id, so the
    status only moves forward (pending -> sending -> sent|failed) and counters
    only grow, regardless of how dispatch and tracking calls interleave.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self, payload: NotificationPayload, audience: AudienceFilter, issuer: str
    ) -> uuid.UUID:
        """Insert a pending campaign and return its id."""

        campaign = PushCampaign(
            title=payload.title,
            body=payload.body,
            icon=payload.icon,
            badge=payload.badge,
            image=payload.image,
            url=payload.url,
            tag=payload.tag,
            require_interaction=payload.require_interaction,
            message=payload.to_message(),
            target_roles=list(audience.roles),
            target_users=[str(user_id) for user_id in audience.user_ids],
            sent_by=issuer,
            status=CAMPAIGN_PENDING,
        )
        try:
            self.db.add(campaign)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise HistoryRecordingError("Failed to create campaign record") from exc
        return campaign.id

    def mark_sending(self, campaign_id: uuid.UUID) -> bool:
        return self._execute(
            update(PushCampaign)
            .where(PushCampaign.id == campaign_id)
            .where(PushCampaign.status == CAMPAIGN_PENDING)
            .values(status=CAMPAIGN_SENDING)
        )

    def finalize(self, campaign_id: uuid.UUID, status: str, sent: int, failed: int) -> bool:
        """Move an open campaign to its terminal status.

        Counts are added rather than assigned so tracking events that arrived
        while the campaign was still sending are kept. Returns False when the
        campaign is unknown or already terminal.
        """

        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal campaign status: {status}")

        return self._execute(
            update(PushCampaign)
            .where(PushCampaign.id == campaign_id)
            .where(PushCampaign.status.in_(OPEN_STATUSES))
            .values(
                status=status,
                stats_sent=PushCampaign.stats_sent + sent,
                stats_failed=PushCampaign.stats_failed + failed,
                sent_at=datetime.now(timezone.utc),
            )
        )

    def increment_stats(
        self,
        campaign_id: uuid.UUID,
        *,
        delivered: int = 0,
        clicked: int = 0,
        failed: int = 0,
    ) -> bool:
        """Add client-reported counts; never touches ``status``."""

        if min(delivered, clicked, failed) < 0:
            raise ValueError("Campaign counters can only be incremented")

        values = {}
        if delivered:
            values["stats_delivered"] = PushCampaign.stats_delivered + delivered
        if clicked:
            values["stats_clicked"] = PushCampaign.stats_clicked + clicked
        if failed:
            values["stats_failed"] = PushCampaign.stats_failed + failed
        if not values:
            return False

        return self._execute(
            update(PushCampaign).where(PushCampaign.id == campaign_id).values(**values)
        )

    def get(self, campaign_id: uuid.UUID) -> PushCampaign | None:
        return self.db.get(PushCampaign, campaign_id, populate_existing=True)

    def history(self, limit: int = 50) -> list[PushCampaign]:
        stmt = (
            select(PushCampaign)
            .order_by(PushCampaign.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(self.db.scalars(stmt).all())

    def _execute(self, stmt) -> bool:
        try:
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Campaign history write failed", error=str(exc))
            raise HistoryRecordingError("Failed to update campaign record") from exc
        return result.rowcount > 0
