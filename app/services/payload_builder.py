"""Validation and normalisation of raw notification requests."""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from app.config import settings
from app.utils.exceptions import PayloadValidationError


@dataclass(frozen=True)
class NotificationData:
    """Data map delivered with the notification.

    ``url`` is always present; ``campaign_id`` is set once the campaign has been
    recorded. Caller supplied keys live in ``extra``.
    """

    url: str = "/"
    campaign_id: Optional[uuid.UUID] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data["url"] = self.url
        if self.campaign_id is not None:
            data["campaignId"] = str(self.campaign_id)
        return data


@dataclass(frozen=True)
class NotificationPayload:
    """Canonical, validated notification."""

    title: str
    body: str
    icon: str
    badge: str
    tag: str
    url: str = "/"
    image: Optional[str] = None
    require_interaction: bool = False
    actions: Optional[List[Dict[str, Any]]] = None
    data: NotificationData = field(default_factory=NotificationData)

    def with_campaign(self, campaign_id: uuid.UUID) -> "NotificationPayload":
        """Return a copy whose data map carries ``campaignId``."""

        return replace(self, data=replace(self.data, campaign_id=campaign_id))

    def to_message(self) -> dict[str, Any]:
        """Build the envelope read by the service worker."""

        return {
            "notification": {
                "title": self.title,
                "body": self.body,
                "icon": self.icon,
                "badge": self.badge,
                "image": self.image,
                "tag": self.tag,
                "requireInteraction": self.require_interaction,
                "actions": self.actions,
                "data": self.data.as_dict(),
            }
        }

    def serialize(self) -> str:
        return json.dumps(self.to_message())


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


class PayloadBuilder:
    """Turn a raw send command into a :class:`NotificationPayload`.

    ``build`` performs no I/O; the same input always yields the same payload.
    """

    def __init__(
        self,
        *,
        default_icon: str | None = None,
        default_badge: str | None = None,
        default_tag: str | None = None,
    ) -> None:
        self.default_icon = default_icon or settings.PUSH_DEFAULT_ICON
        self.default_badge = default_badge or settings.PUSH_DEFAULT_BADGE
        self.default_tag = default_tag or settings.PUSH_DEFAULT_TAG

    def build(self, raw: Mapping[str, Any]) -> NotificationPayload:
        """Validate ``raw`` and fill defaults.

        Accepts the camelCase keys of the send command (``requireInteraction``)
        as well as their snake_case forms.
        """

        title = _clean(raw.get("title"))
        if title is None:
            raise PayloadValidationError("title", "Title is required")
        body = _clean(raw.get("body"))
        if body is None:
            raise PayloadValidationError("body", "Body is required")

        actions = raw.get("actions")
        if actions is not None and not isinstance(actions, list):
            raise PayloadValidationError("actions", "Actions must be a list")

        extra = raw.get("data") or {}
        if not isinstance(extra, Mapping):
            raise PayloadValidationError("data", "Data must be an object")
        extra = {str(key): value for key, value in extra.items()}
        # Reserved keys are owned by the payload, not the caller.
        extra.pop("url", None)
        extra.pop("campaignId", None)

        url = _clean(raw.get("url")) or "/"
        require_interaction = raw.get("requireInteraction", raw.get("require_interaction"))

        return NotificationPayload(
            title=title,
            body=body,
            icon=_clean(raw.get("icon")) or self.default_icon,
            badge=_clean(raw.get("badge")) or self.default_badge,
            tag=_clean(raw.get("tag")) or self.default_tag,
            url=url,
            image=_clean(raw.get("image")),
            require_interaction=bool(require_interaction),
            actions=actions,
            data=NotificationData(url=url, extra=extra),
        )
