"""Service layer package."""

from app.services.auth import AuthService
from app.services.campaign_recorder import CampaignRecorder
from app.services.delivery_dispatcher import CampaignResult, DeliveryDispatcher
from app.services.notification_service import NotificationService
from app.services.payload_builder import NotificationPayload, PayloadBuilder
from app.services.push_transport import PushTransport, WebPushTransport
from app.services.subscription_pruner import SubscriptionPruner
from app.services.subscription_registry import AudienceFilter, SubscriptionRegistry

__all__ = [
    "AudienceFilter",
    "AuthService",
    "CampaignRecorder",
    "CampaignResult",
    "DeliveryDispatcher",
    "NotificationPayload",
    "NotificationService",
    "PayloadBuilder",
    "PushTransport",
    "SubscriptionPruner",
    "SubscriptionRegistry",
    "WebPushTransport",
]
