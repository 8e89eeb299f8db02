"""Push campaign history model."""
import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from app.db.base import Base

CAMPAIGN_PENDING = "pending"
CAMPAIGN_SENDING = "sending"
CAMPAIGN_SENT = "sent"
CAMPAIGN_FAILED = "failed"

OPEN_STATUSES = (CAMPAIGN_PENDING, CAMPAIGN_SENDING)
TERMINAL_STATUSES = (CAMPAIGN_SENT, CAMPAIGN_FAILED)


class PushCampaign(Base):
    """One logical send of a notification to an audience, with its delivery stats."""

    __tablename__ = "push_campaigns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    icon = Column(String(512))
    badge = Column(String(512))
    image = Column(String(512))
    url = Column(String(1024), default="/")
    tag = Column(String(255))
    require_interaction = Column(Boolean, default=False)
    message = Column(JSON().with_variant(JSONB, "postgresql"))

    # Both empty means the campaign was a broadcast.
    target_roles = Column(JSON().with_variant(JSONB, "postgresql"), default=list)
    target_users = Column(JSON().with_variant(JSONB, "postgresql"), default=list)
    sent_by = Column(String(255))

    status = Column(String(20), nullable=False, default=CAMPAIGN_PENDING, index=True)
    stats_sent = Column(Integer, nullable=False, default=0)
    stats_delivered = Column(Integer, nullable=False, default=0)
    stats_clicked = Column(Integer, nullable=False, default=0)
    stats_failed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    sent_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def delivery_stats(self) -> dict[str, int]:
        return {
            "sent": self.stats_sent or 0,
            "delivered": self.stats_delivered or 0,
            "clicked": self.stats_clicked or 0,
            "failed": self.stats_failed or 0,
        }

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
