"""Tests for the concurrent delivery dispatcher."""
from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest

from app.db.models.push_campaign import PushCampaign
from app.services.campaign_recorder import CampaignRecorder
from app.services.delivery_dispatcher import DeliveryDispatcher
from app.services.payload_builder import PayloadBuilder
from app.services.subscription_registry import AudienceFilter, SubscriptionRegistry
from app.utils.exceptions import HistoryRecordingError
from tests.conftest import FakeTransport


@pytest.fixture()
def payload():
    return PayloadBuilder().build({"title": "Fleet update", "body": "New routes published"})


def make_dispatcher(db_session, transport, **kwargs) -> DeliveryDispatcher:
    return DeliveryDispatcher(SubscriptionRegistry(db_session), transport, **kwargs)


@pytest.mark.asyncio
async def test_empty_audience_makes_no_transport_calls(db_session, payload, fake_transport):
    dispatcher = make_dispatcher(db_session, fake_transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert result.success is False
    assert result.sent == 0
    assert result.failed == 0
    assert result.errors == ["No active subscriptions found"]
    assert fake_transport.calls == []
    assert db_session.query(PushCampaign).count() == 0


@pytest.mark.asyncio
async def test_role_filter_without_matches(db_session, payload, fake_transport, make_subscription):
    make_subscription(role="driver_manager")
    make_subscription(role="guest")
    dispatcher = make_dispatcher(db_session, fake_transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(roles=("admin",)), "admin")

    assert (result.success, result.sent, result.failed) == (False, 0, 0)
    assert fake_transport.calls == []


@pytest.mark.asyncio
async def test_mixed_outcomes_prune_only_permanent_failures(
    db_session, payload, fake_transport, make_subscription
):
    subs = [make_subscription(username=f"user{i}") for i in range(5)]
    gone, flaky = subs[0].endpoint, subs[1].endpoint
    fake_transport.fail_permanently(gone)
    fake_transport.fail_transiently(flaky)
    dispatcher = make_dispatcher(db_session, fake_transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert result.success is True
    assert result.sent == 3
    assert result.failed == 2
    assert len(result.errors) == 2
    assert any(line.startswith("Failed to send to user0:") for line in result.errors)
    assert any(line.startswith("Failed to send to user1:") for line in result.errors)

    remaining = {sub.endpoint for sub in SubscriptionRegistry(db_session).active_subscriptions()}
    assert len(remaining) == 4
    assert gone not in remaining
    assert flaky in remaining


@pytest.mark.asyncio
async def test_every_subscription_gets_exactly_one_attempt(
    db_session, payload, make_subscription
):
    subs = [make_subscription() for _ in range(12)]
    transport = FakeTransport(delay=0.001)
    for sub in subs[::3]:
        transport.fail_transiently(sub.endpoint)
    dispatcher = make_dispatcher(db_session, transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert sorted(transport.endpoints) == sorted(sub.endpoint for sub in subs)
    assert result.sent + result.failed == len(subs)
    assert result.failed == 4
    assert result.success == (result.sent > 0)


@pytest.mark.asyncio
async def test_all_attempts_failing_is_not_success(db_session, payload, make_subscription):
    subs = [make_subscription() for _ in range(3)]
    transport = FakeTransport()
    for sub in subs:
        transport.fail_transiently(sub.endpoint)
    dispatcher = make_dispatcher(db_session, transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert result.success is False
    assert result.sent == 0
    assert result.failed == 3


@pytest.mark.asyncio
async def test_fan_out_respects_concurrency_limit(db_session, payload, make_subscription):
    for _ in range(10):
        make_subscription()
    transport = FakeTransport(delay=0.01)
    dispatcher = make_dispatcher(db_session, transport, max_concurrency=3)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert result.sent == 10
    assert 1 < transport.max_in_flight <= 3


@pytest.mark.asyncio
async def test_timeouts_and_unexpected_errors_are_transient(
    db_session, payload, make_subscription
):
    timed_out = make_subscription()
    broken = make_subscription()
    make_subscription()
    transport = FakeTransport(
        failures={
            timed_out.endpoint: asyncio.TimeoutError(),
            broken.endpoint: RuntimeError("connection reset"),
        }
    )
    dispatcher = make_dispatcher(db_session, transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert (result.sent, result.failed) == (1, 2)
    active = {sub.endpoint for sub in SubscriptionRegistry(db_session).active_subscriptions()}
    assert {timed_out.endpoint, broken.endpoint} <= active


@pytest.mark.asyncio
async def test_history_is_recorded_and_campaign_id_delivered(
    db_session, payload, fake_transport, make_subscription
):
    gone = make_subscription()
    make_subscription()
    fake_transport.fail_permanently(gone.endpoint)
    dispatcher = make_dispatcher(db_session, fake_transport)

    result = await dispatcher.dispatch(
        payload, AudienceFilter(roles=("guest",)), "admin", record_history=True
    )

    assert result.campaign_id is not None
    campaign = CampaignRecorder(db_session).get(result.campaign_id)
    assert campaign.status == "sent"
    assert campaign.stats_sent == 1
    assert campaign.stats_failed == 1
    assert campaign.target_roles == ["guest"]
    assert campaign.sent_by == "admin"

    for _, message in fake_transport.calls:
        data = json.loads(message)["notification"]["data"]
        assert data["campaignId"] == str(result.campaign_id)
        assert data["url"] == "/"


@pytest.mark.asyncio
async def test_failed_campaign_is_finalized_as_failed(db_session, payload, make_subscription):
    sub = make_subscription()
    transport = FakeTransport()
    transport.fail_transiently(sub.endpoint)
    dispatcher = make_dispatcher(db_session, transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    campaign = CampaignRecorder(db_session).get(result.campaign_id)
    assert campaign.status == "failed"
    assert campaign.stats_failed == 1


@pytest.mark.asyncio
async def test_without_history_no_campaign_is_written(
    db_session, payload, fake_transport, make_subscription
):
    make_subscription()
    dispatcher = make_dispatcher(db_session, fake_transport)

    result = await dispatcher.dispatch(payload, AudienceFilter(), "admin", record_history=False)

    assert result.success is True
    assert result.campaign_id is None
    assert db_session.query(PushCampaign).count() == 0
    data = json.loads(fake_transport.calls[0][1])["notification"]["data"]
    assert "campaignId" not in data


@pytest.mark.asyncio
async def test_history_failure_does_not_block_dispatch(
    db_session, payload, fake_transport, make_subscription
):
    make_subscription()
    make_subscription()
    dispatcher = make_dispatcher(db_session, fake_transport)

    with patch.object(
        CampaignRecorder, "create", side_effect=HistoryRecordingError("database is down")
    ):
        result = await dispatcher.dispatch(payload, AudienceFilter(), "admin")

    assert result.success is True
    assert result.sent == 2
    assert result.campaign_id is None


@pytest.mark.asyncio
async def test_overlapping_campaigns_prune_same_endpoint_safely(
    db_session, payload, make_subscription
):
    gone = make_subscription()
    make_subscription()
    transport = FakeTransport(delay=0.001)
    transport.fail_permanently(gone.endpoint)
    dispatcher = make_dispatcher(db_session, transport)

    first, second = await asyncio.gather(
        dispatcher.dispatch(payload, AudienceFilter(), "admin", record_history=False),
        dispatcher.dispatch(payload, AudienceFilter(), "admin", record_history=False),
    )

    assert first.sent + first.failed == 2
    assert second.sent + second.failed == 2
    active = {sub.endpoint for sub in SubscriptionRegistry(db_session).active_subscriptions()}
    assert len(active) == 1
    assert gone.endpoint not in active
