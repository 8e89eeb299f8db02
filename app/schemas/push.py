"""Pydantic models for push notification endpoints."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accept and emit camelCase keys while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationAction(CamelModel):
    action: str
    title: str
    icon: Optional[str] = None


class PushSendRequest(CamelModel):
    """Admin send command.

    ``title`` and ``body`` are optional here so that blank values reach the
    payload builder and are reported with the offending field name.
    """

    title: Optional[str] = None
    body: Optional[str] = None
    icon: Optional[str] = None
    badge: Optional[str] = None
    image: Optional[str] = None
    url: Optional[str] = None
    tag: Optional[str] = None
    require_interaction: Optional[bool] = None
    actions: Optional[List[NotificationAction]] = None
    data: Optional[Dict[str, Any]] = None
    target_roles: List[str] = Field(default_factory=list)
    target_users: List[uuid.UUID] = Field(default_factory=list)
    save_to_history: bool = True

    def payload_fields(self) -> dict[str, Any]:
        """Return the raw notification fields in wire (camelCase) form."""

        return self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"target_roles", "target_users", "save_to_history"},
        )


class CampaignResultResponse(CamelModel):
    success: bool
    sent: int
    failed: int
    errors: List[str] = Field(default_factory=list)
    campaign_id: Optional[uuid.UUID] = None
    message: Optional[str] = None


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionInfo(BaseModel):
    endpoint: str = Field(min_length=1)
    keys: PushKeys


class PushSubscribeRequest(CamelModel):
    subscription: PushSubscriptionInfo
    user_name: Optional[str] = None


class PushSubscribeResponse(CamelModel):
    success: bool = True
    message: str
    device_type: str
    user_id: Optional[uuid.UUID] = None


class PushUnsubscribeRequest(BaseModel):
    endpoint: str = Field(min_length=1)


class PushTrackRequest(CamelModel):
    campaign_id: Optional[uuid.UUID] = None
    event: Literal["delivered", "clicked", "failed"]
    endpoint: Optional[str] = None


class PushTestRequest(CamelModel):
    user_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    body: Optional[str] = None


class SubscriptionRead(CamelModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID]
    username: str
    email: Optional[str]
    role: str
    device_type: Optional[str]
    user_agent: Optional[str]
    is_active: bool
    last_active: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class DeliveryStats(BaseModel):
    sent: int = 0
    delivered: int = 0
    clicked: int = 0
    failed: int = 0


class CampaignRead(CamelModel):
    id: uuid.UUID
    title: str
    body: str
    url: Optional[str]
    tag: Optional[str]
    target_roles: List[str] = Field(default_factory=list)
    target_users: List[str] = Field(default_factory=list)
    sent_by: Optional[str]
    status: str
    delivery_stats: DeliveryStats
    created_at: Optional[datetime]
    sent_at: Optional[datetime]

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class VapidKeyResponse(CamelModel):
    success: bool = True
    public_key: str


class VapidKeyDiagnostics(CamelModel):
    success: bool = True
    public_key: str
    original_length: int
    byte_length: int
    first_byte: str
    is_valid_p256: bool
    format: Literal["uncompressed", "compressed", "unknown"]
