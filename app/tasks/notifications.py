"""Celery tasks for background push delivery and subscription upkeep."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger

from app.celery_app import celery_app
from app.config import settings
from app.db.session import SessionLocal
from app.services.notification_service import NotificationService
from app.services.push_transport import WebPushTransport
from app.services.subscription_registry import SubscriptionRegistry
from app.utils.exceptions import PayloadValidationError, PushNotConfiguredError

_AUDIENCE_KEYS = {
    "targetRoles": "target_roles",
    "targetUsers": "target_users",
    "saveToHistory": "save_to_history",
}


def _audience_option(command: dict[str, Any], key: str, default: Any = None) -> Any:
    if key in command:
        return command[key]
    return command.get(_AUDIENCE_KEYS[key], default)


def _failed_result(message: str) -> dict[str, Any]:
    return {
        "success": False,
        "sent": 0,
        "failed": 0,
        "errors": [message],
        "campaign_id": None,
    }


@celery_app.task(name="app.tasks.notifications.send_push_notification")
def send_push_notification(command: dict[str, Any], issuer: str = "system") -> dict[str, Any]:
    """Deliver a send command outside the request cycle.

    ``command`` has the shape of the ``/push/send`` body.
    """

    try:
        transport = WebPushTransport()
    except PushNotConfiguredError as exc:
        logger.error("Cannot deliver queued push notification", error=exc.message)
        return _failed_result(exc.message)

    db = SessionLocal()
    try:
        service = NotificationService(db, transport)
        audience_keys = set(_AUDIENCE_KEYS) | set(_AUDIENCE_KEYS.values())
        raw = {key: value for key, value in command.items() if key not in audience_keys}
        try:
            result = asyncio.run(
                service.send(
                    raw,
                    issuer=issuer,
                    target_roles=_audience_option(command, "targetRoles"),
                    target_users=_audience_option(command, "targetUsers"),
                    save_to_history=_audience_option(command, "saveToHistory", True),
                )
            )
        except PayloadValidationError as exc:
            logger.warning("Rejected queued push notification", field=exc.field)
            return _failed_result(exc.message)

        logger.info(
            "Queued push notification delivered",
            issuer=issuer,
            sent=result.sent,
            failed=result.failed,
        )
        return result.as_dict()
    finally:
        db.close()
        transport.close()


@celery_app.task(name="app.tasks.notifications.purge_inactive_subscriptions")
def purge_inactive_subscriptions(retention_days: int | None = None) -> dict[str, int]:
    """Delete subscriptions that have been inactive longer than the retention window."""

    days = settings.PUSH_INACTIVE_RETENTION_DAYS if retention_days is None else retention_days
    db = SessionLocal()
    try:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        deleted = SubscriptionRegistry(db).purge_inactive(cutoff)
        logger.info("Purged inactive push subscriptions", deleted=deleted, retention_days=days)
        return {"deleted": deleted}
    finally:
        db.close()
