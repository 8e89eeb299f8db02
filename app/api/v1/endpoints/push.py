"""Push notification API endpoints."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from loguru import logger
from sqlalchemy.orm import Session

from app.api import deps
from app.config import settings
from app.db.models.user import User
from app.schemas import (
    CampaignRead,
    CampaignResultResponse,
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
from app.services.notification_service import NotificationService
from app.services.push_transport import PushTransport, describe_public_key
from app.utils.exceptions import (
    PayloadValidationError,
    PushNotConfiguredError,
    SubscriptionError,
    handle_not_configured_error,
    handle_subscription_error,
    handle_validation_error,
)

router = APIRouter(prefix="/push", tags=["push"])


@router.get("/vapid-key", response_model=VapidKeyResponse)
def get_vapid_public_key() -> VapidKeyResponse:
    """Return the server key devices need to create a subscription."""

    try:
        return VapidKeyResponse(public_key=NotificationService.public_key())
    except PushNotConfiguredError as exc:
        raise handle_not_configured_error(exc) from exc


@router.get("/vapid-key/diagnostics", response_model=VapidKeyDiagnostics)
def get_vapid_key_diagnostics(_: User = Depends(deps.require_admin)) -> VapidKeyDiagnostics:
    """Decode the configured public key and report whether it is usable."""

    try:
        public_key = NotificationService.public_key()
    except PushNotConfiguredError as exc:
        raise handle_not_configured_error(exc) from exc
    try:
        info = describe_public_key(public_key)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Configured VAPID public key is not valid base64url",
        ) from exc
    return VapidKeyDiagnostics(**info)


@router.post("/send", response_model=CampaignResultResponse)
async def send_notification(
    request: PushSendRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
    transport: PushTransport = Depends(deps.get_push_transport),
) -> CampaignResultResponse:
    """Send a notification to the selected roles and users, or to everyone.

    The audience query and campaign writes are short synchronous statements
    issued on the event loop between delivery awaits; the deliveries themselves
    run on the transport's worker pool.
    """

    service = NotificationService(db, transport)
    try:
        result = await service.send(
            request.payload_fields(),
            issuer=current_user.username,
            target_roles=request.target_roles,
            target_users=request.target_users,
            save_to_history=request.save_to_history,
        )
    except PayloadValidationError as exc:
        raise handle_validation_error(exc) from exc

    logger.info(
        "Push notification sent",
        sent_by=current_user.username,
        success=result.success,
        sent=result.sent,
        failed=result.failed,
    )
    return CampaignResultResponse(
        success=result.success,
        sent=result.sent,
        failed=result.failed,
        errors=result.errors,
        campaign_id=result.campaign_id,
        message=(
            f"Notification sent to {result.sent} subscribers"
            if result.success
            else "Failed to send notification"
        ),
    )


@router.post("/test", response_model=CampaignResultResponse)
async def send_test_notification(
    request: PushTestRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    transport: PushTransport = Depends(deps.get_push_transport),
) -> CampaignResultResponse:
    """Send a test push to the caller's devices, or to another user for admins."""

    target_user_id = request.user_id or current_user.id
    if target_user_id != current_user.id and not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can send test notifications to other users",
        )

    service = NotificationService(db, transport)
    result = await service.send_to_user(
        target_user_id,
        {
            "title": request.title or "Test notification",
            "body": request.body
            or "This is a test notification. If you can see it, notifications work.",
            "url": "/",
            "requireInteraction": True,
        },
        issuer=current_user.username,
        save_to_history=False,
    )
    logger.info(
        "Test push notification result",
        user_id=str(target_user_id),
        success=result.success,
        sent=result.sent,
        failed=result.failed,
    )
    return CampaignResultResponse(
        success=result.success,
        sent=result.sent,
        failed=result.failed,
        errors=result.errors,
    )


@router.post("/subscribe", response_model=PushSubscribeResponse)
async def subscribe(
    request: PushSubscribeRequest,
    user_agent: str | None = Header(default=None),
    db: Session = Depends(deps.get_db),
    current_user: User | None = Depends(deps.get_optional_user),
    transport: PushTransport | None = Depends(deps.get_optional_push_transport),
) -> PushSubscribeResponse:
    """Register this device's push subscription. Authentication is optional."""

    service = NotificationService(db, transport)
    try:
        subscription = await run_in_threadpool(
            service.subscribe,
            request.subscription.model_dump(),
            user=current_user,
            user_name=request.user_name,
            user_agent=user_agent,
        )
    except SubscriptionError as exc:
        raise handle_subscription_error(exc) from exc

    if settings.PUSH_SEND_WELCOME and transport is not None and current_user is not None:
        await service.send_welcome(subscription)

    return PushSubscribeResponse(
        message="Subscription saved successfully",
        device_type=subscription.device_type,
        user_id=subscription.user_id,
    )


@router.delete("/subscribe")
def unsubscribe(
    request: PushUnsubscribeRequest,
    db: Session = Depends(deps.get_db),
    current_user: User | None = Depends(deps.get_optional_user),
) -> dict:
    """Deactivate a device subscription."""

    service = NotificationService(db)
    service.unsubscribe(request.endpoint, current_user)
    return {"success": True, "message": "Subscription removed successfully"}


@router.get("/subscriptions", response_model=List[SubscriptionRead])
def list_subscriptions(
    db: Session = Depends(deps.get_db),
    _: User = Depends(deps.require_admin),
) -> List[SubscriptionRead]:
    service = NotificationService(db)
    return [SubscriptionRead.model_validate(sub) for sub in service.active_subscriptions()]


@router.get("/history", response_model=List[CampaignRead])
def get_history(
    limit: int = Query(settings.PUSH_HISTORY_LIMIT, ge=1, le=500),
    db: Session = Depends(deps.get_db),
    _: User = Depends(deps.require_admin),
) -> List[CampaignRead]:
    """Return the most recent campaigns with their delivery statistics."""

    service = NotificationService(db)
    return [CampaignRead.model_validate(campaign) for campaign in service.history(limit)]


@router.post("/track")
def track_event(request: PushTrackRequest, db: Session = Depends(deps.get_db)) -> dict:
    """Record a delivered, clicked or failed report from a device."""

    service = NotificationService(db)
    service.track_event(request.event, campaign_id=request.campaign_id, endpoint=request.endpoint)
    return {"success": True}
