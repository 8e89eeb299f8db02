"""Utility helpers package."""

from app.utils.exceptions import (
    DeliveryError,
    HistoryRecordingError,
    PayloadValidationError,
    PermanentDeliveryError,
    PushNotConfiguredError,
    PushServiceException,
    SubscriptionError,
    TransientDeliveryError,
)

__all__ = [
    "DeliveryError",
    "HistoryRecordingError",
    "PayloadValidationError",
    "PermanentDeliveryError",
    "PushNotConfiguredError",
    "PushServiceException",
    "SubscriptionError",
    "TransientDeliveryError",
]
