"""Transport delivering a serialized notification to one push endpoint."""
from __future__ import annotations

import asyncio
import base64
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Protocol

from loguru import logger
from pywebpush import WebPushException, webpush
from requests import RequestException

from app.config import settings
from app.services.subscription_registry import SubscriptionTarget, short_endpoint
from app.utils.exceptions import (
    PermanentDeliveryError,
    PushNotConfiguredError,
    TransientDeliveryError,
)


class PushTransport(Protocol):
    """Anything able to deliver one message to one subscription.

    Implementations return normally on success and raise
    ``PermanentDeliveryError`` when the endpoint is gone for good. Any other
    exception is treated as a transient failure by the dispatcher.
    """

    async def deliver(self, subscription: SubscriptionTarget, message: str) -> None:
        ...


class WebPushTransport:
    """Deliver through the Web Push protocol with VAPID authentication."""

    def __init__(
        self,
        *,
        private_key: str | None = None,
        subject: str | None = None,
        ttl: int | None = None,
        timeout: float | None = None,
        gone_status_codes: Iterable[int] | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.private_key = private_key or settings.VAPID_PRIVATE_KEY
        if not self.private_key:
            raise PushNotConfiguredError("VAPID private key is not configured")
        self.subject = subject or settings.VAPID_SUBJECT
        self.ttl = settings.PUSH_TTL_SECONDS if ttl is None else ttl
        self.timeout = settings.PUSH_DELIVERY_TIMEOUT_SECONDS if timeout is None else timeout
        self.gone_status_codes = frozenset(
            settings.PUSH_GONE_STATUS_CODES if gone_status_codes is None else gone_status_codes
        )
        # One worker per delivery the dispatcher may have in flight.
        self.max_workers = max_workers or settings.PUSH_MAX_CONCURRENCY
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="webpush"
        )

    async def deliver(self, subscription: SubscriptionTarget, message: str) -> None:
        # pywebpush is blocking (requests); keep the event loop free.
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._executor, self._send, subscription, message)

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _send(self, subscription: SubscriptionTarget, message: str) -> None:
        try:
            webpush(
                subscription_info=subscription.subscription_info(),
                data=message,
                vapid_private_key=self.private_key,
                vapid_claims={"sub": self.subject},
                ttl=self.ttl,
                timeout=self.timeout,
            )
        except WebPushException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            if status_code in self.gone_status_codes:
                raise PermanentDeliveryError(
                    f"Subscription is no longer valid ({status_code})", status_code
                ) from exc
            raise TransientDeliveryError(exc.message or str(exc), status_code) from exc
        except RequestException as exc:
            logger.debug(
                "Push request error",
                endpoint=short_endpoint(subscription.endpoint),
                error=str(exc),
            )
            raise TransientDeliveryError(str(exc)) from exc


def describe_public_key(public_key: str) -> dict:
    """Decode a base64url VAPID public key and report whether it is a P-256 point."""

    padding = "=" * ((4 - len(public_key) % 4) % 4)
    raw = base64.urlsafe_b64decode(public_key + padding)

    uncompressed = len(raw) == 65 and raw[0] == 0x04
    compressed = len(raw) == 33 and raw[0] in (0x02, 0x03)
    if uncompressed:
        key_format = "uncompressed"
    elif compressed:
        key_format = "compressed"
    else:
        key_format = "unknown"

    return {
        "public_key": public_key,
        "original_length": len(public_key),
        "byte_length": len(raw),
        "first_byte": f"0x{raw[0]:02x}" if raw else "0x00",
        "is_valid_p256": uncompressed or compressed,
        "format": key_format,
    }
