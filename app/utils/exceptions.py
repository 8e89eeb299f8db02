"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from loguru import logger


class PushServiceException(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class PayloadValidationError(PushServiceException):
    """Raised when a send command is missing or has malformed fields."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message, {"field": field})


class SubscriptionError(PushServiceException):
    """Invalid subscription data supplied by a device."""
    pass


class PushNotConfiguredError(PushServiceException):
    """VAPID key material is missing."""
    pass


class HistoryRecordingError(PushServiceException):
    """Campaign history could not be written."""
    pass


class DeliveryError(PushServiceException):
    """A single delivery attempt failed."""

    permanent = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, {"status_code": status_code})


class PermanentDeliveryError(DeliveryError):
    """The push endpoint is gone and will never accept messages again."""

    permanent = True


class TransientDeliveryError(DeliveryError):
    """Any other delivery failure; the subscription is left untouched."""
    pass


def handle_validation_error(error: PayloadValidationError) -> HTTPException:
    """Handle validation errors."""
    logger.warning(f"Validation error: {error.message}")
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": error.message,
            "field": error.field,
        }
    )


def handle_subscription_error(error: SubscriptionError) -> HTTPException:
    """Handle invalid subscription payloads."""
    logger.warning(f"Subscription error: {error.message}")
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error.message
    )


def handle_not_configured_error(error: PushNotConfiguredError) -> HTTPException:
    """Handle missing push configuration."""
    logger.error(f"Push not configured: {error.message}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Push notifications are not configured."
    )
