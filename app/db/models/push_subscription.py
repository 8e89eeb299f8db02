"""Push Notification Subscription model."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from app.db.base import Base


class PushSubscription(Base):
    """Stores Web Push API subscription details for a device."""

    __tablename__ = "push_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Anonymous devices have no owning user.
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    username = Column(String(255), nullable=False, default="Anonymous User")
    email = Column(String(255))
    role = Column(String(50), nullable=False, default="guest", index=True)

    endpoint = Column(Text, nullable=False, unique=True)
    keys = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)  # { p256dh, auth }

    device_type = Column(String(20), default="desktop")
    user_agent = Column(String(512))

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_active = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def subscription_info(self) -> dict:
        """Return the dict shape expected by ``pywebpush.webpush``."""

        return {"endpoint": self.endpoint, "keys": dict(self.keys or {})}

    def mark_activity(self, when: datetime | None = None) -> None:
        self.last_active = when or datetime.now(timezone.utc)
