import base64
import threading
import time
import uuid
from unittest.mock import MagicMock, patch

import pytest
import requests
from pywebpush import WebPushException

from app.config import settings
from app.services.delivery_dispatcher import DeliveryDispatcher
from app.services.payload_builder import PayloadBuilder
from app.services.push_transport import WebPushTransport, describe_public_key
from app.services.subscription_registry import (
    AudienceFilter,
    SubscriptionRegistry,
    SubscriptionTarget,
)
from app.utils.exceptions import (
    PermanentDeliveryError,
    PushNotConfiguredError,
    TransientDeliveryError,
)

TARGET = SubscriptionTarget(
    id=uuid.uuid4(),
    endpoint="https://updates.push.services.mozilla.com/wpush/v2/abc",
    keys={"p256dh": "p256dh-key", "auth": "auth-secret"},
    username="driver",
)


def push_error(status_code: int) -> WebPushException:
    response = MagicMock()
    response.status_code = status_code
    return WebPushException(f"Push failed: {status_code}", response=response)


@pytest.fixture()
def transport() -> WebPushTransport:
    transport = WebPushTransport(
        private_key="test-private-key", subject="mailto:ops@example.com", ttl=60, timeout=5
    )
    try:
        yield transport
    finally:
        transport.close()


def test_requires_private_key():
    with pytest.raises(PushNotConfiguredError):
        WebPushTransport(private_key="")


@pytest.mark.asyncio
async def test_deliver_passes_vapid_claims(transport):
    with patch("app.services.push_transport.webpush") as webpush:
        await transport.deliver(TARGET, '{"notification": {}}')

    webpush.assert_called_once_with(
        subscription_info={"endpoint": TARGET.endpoint, "keys": TARGET.keys},
        data='{"notification": {}}',
        vapid_private_key="test-private-key",
        vapid_claims={"sub": "mailto:ops@example.com"},
        ttl=60,
        timeout=5,
    )


@pytest.mark.parametrize("status_code", [404, 410])
def test_gone_endpoints_are_permanent(transport, status_code):
    with patch("app.services.push_transport.webpush", side_effect=push_error(status_code)):
        with pytest.raises(PermanentDeliveryError) as excinfo:
            transport._send(TARGET, "{}")

    assert excinfo.value.status_code == status_code
    assert excinfo.value.permanent is True


@pytest.mark.parametrize("status_code", [400, 413, 429, 500, 503])
def test_other_statuses_are_transient(transport, status_code):
    with patch("app.services.push_transport.webpush", side_effect=push_error(status_code)):
        with pytest.raises(TransientDeliveryError) as excinfo:
            transport._send(TARGET, "{}")

    assert excinfo.value.status_code == status_code
    assert excinfo.value.permanent is False


def test_network_errors_are_transient(transport):
    error = requests.exceptions.ConnectTimeout("timed out")
    with patch("app.services.push_transport.webpush", side_effect=error):
        with pytest.raises(TransientDeliveryError):
            transport._send(TARGET, "{}")


def test_gone_statuses_are_configurable():
    transport = WebPushTransport(private_key="k", gone_status_codes=[410])

    with patch("app.services.push_transport.webpush", side_effect=push_error(404)):
        with pytest.raises(TransientDeliveryError):
            transport._send(TARGET, "{}")


def test_describe_uncompressed_key():
    key = base64.urlsafe_b64encode(b"\x04" + b"\x01" * 64).rstrip(b"=").decode()

    info = describe_public_key(key)

    assert info["byte_length"] == 65
    assert info["original_length"] == 87
    assert info["first_byte"] == "0x04"
    assert info["is_valid_p256"] is True
    assert info["format"] == "uncompressed"


def test_describe_malformed_key():
    key = base64.urlsafe_b64encode(b"\x05" * 40).rstrip(b"=").decode()

    info = describe_public_key(key)

    assert info["is_valid_p256"] is False
    assert info["format"] == "unknown"


@pytest.mark.asyncio
async def test_worker_pool_matches_dispatch_concurrency(db_session, make_subscription):
    for _ in range(40):
        make_subscription()
    state = {"active": 0, "peak": 0}
    lock = threading.Lock()

    def slow_webpush(**kwargs):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.1)
        with lock:
            state["active"] -= 1

    transport = WebPushTransport(private_key="test-private-key", max_workers=40)
    dispatcher = DeliveryDispatcher(
        SubscriptionRegistry(db_session), transport, max_concurrency=40
    )
    try:
        with patch("app.services.push_transport.webpush", side_effect=slow_webpush):
            result = await dispatcher.dispatch(
                PayloadBuilder().build({"title": "Load", "body": "Forty at once"}),
                AudienceFilter(),
                "admin",
                record_history=False,
            )
    finally:
        transport.close()

    assert result.sent == 40
    # The loop's default executor never exceeds 32 workers.
    assert state["peak"] == 40


def test_worker_pool_defaults_to_configured_concurrency(monkeypatch):
    monkeypatch.setattr(settings, "PUSH_MAX_CONCURRENCY", 7)

    transport = WebPushTransport(private_key="test-private-key")
    try:
        assert transport.max_workers == 7
        assert transport._executor._max_workers == 7
    finally:
        transport.close()
