"""Pydantic schemas package."""

from app.schemas.auth import Token, TokenPayload, UserLogin
from app.schemas.push import (
    CampaignRead,
    CampaignResultResponse,
    NotificationAction,
    PushSendRequest,
    PushSubscribeRequest,
    PushSubscribeResponse,
    PushTestRequest,
    PushTrackRequest,
    PushUnsubscribeRequest,
    SubscriptionRead,
    VapidKeyDiagnostics,
    VapidKeyResponse,
)

__all__ = [
    "Token",
    "TokenPayload",
    "UserLogin",
    "CampaignRead",
    "CampaignResultResponse",
    "NotificationAction",
    "PushSendRequest",
    "PushSubscribeRequest",
    "PushSubscribeResponse",
    "PushTestRequest",
    "PushTrackRequest",
    "PushUnsubscribeRequest",
    "SubscriptionRead",
    "VapidKeyDiagnostics",
    "VapidKeyResponse",
]
