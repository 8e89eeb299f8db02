"""Database models package."""
from app.db.models.user import User
from app.db.models.push_subscription import PushSubscription
from app.db.models.push_campaign import PushCampaign

__all__ = [
    "User",
    "PushSubscription",
    "PushCampaign",
]
