"""
Tests for quota decoding and the QuotaService.

Covers: lenient decoding (clamping, missing fields, reset-time fallback),
status thresholds, the GetUserStatus request shape, failure snapshots,
descriptor tracking, and event/audit side effects.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from freehand.core import constants
from freehand.core.audit_log import EventType
from freehand.core.config import KEY_WARNING_THRESHOLD
from freehand.discovery.models import ConnectionDescriptor
from freehand.quota.models import (
    STATUS_CRITICAL,
    STATUS_OK,
    STATUS_UNKNOWN,
    STATUS_WARNING,
    decode_user_status,
    format_duration,
    parse_reset_time,
    quota_status,
)
from freehand.quota.quota_service import QuotaService

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)
DESCRIPTOR = ConnectionDescriptor(auxiliary_port=41000, control_port=42100, token="tok")


def _user_status(*fractions, plan=None):
    configs = [
        {
            "label": f"Model {i}",
            "modelOrAlias": {"model": f"MODEL_{i}"},
            "quotaInfo": {"remainingFraction": f, "resetTime": "2025-06-02T17:30:00Z"},
        }
        for i, f in enumerate(fractions)
    ]
    status = {
        "name": "Dev",
        "email": "dev@example.com",
        "cascadeModelConfigData": {"clientModelConfigs": configs},
    }
    if plan is not None:
        status["planStatus"] = plan
    return {"userStatus": status}


def _service(context, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QuotaService(context, client=client)


# ===================================================================
# TestDecoding
# ===================================================================


class TestDecoding:

    def test_lowest_model_drives_percentage(self):
        snapshot = decode_user_status(_user_status(0.8, 0.25), now=NOW)
        assert snapshot.is_connected
        assert snapshot.percentage == 25.0
        assert snapshot.status == STATUS_WARNING
        assert [m.model_id for m in snapshot.models] == ["MODEL_0", "MODEL_1"]

    def test_fraction_clamped(self):
        snapshot = decode_user_status(_user_status(1.7, -0.2), now=NOW)
        assert snapshot.models[0].remaining_fraction == 1.0
        assert snapshot.models[1].remaining_fraction == 0.0
        assert snapshot.models[1].is_exhausted

    def test_missing_fraction_means_exhausted(self):
        payload = {"userStatus": {"cascadeModelConfigData": {"clientModelConfigs": [
            {"label": "M", "quotaInfo": {"resetTime": "2025-06-02T13:00:00Z"}},
        ]}}}
        snapshot = decode_user_status(payload, now=NOW)
        assert snapshot.models[0].is_exhausted
        assert snapshot.status == STATUS_CRITICAL

    def test_reset_time_parsed(self):
        model = decode_user_status(_user_status(0.5), now=NOW).models[0]
        assert model.reset_time == datetime(2025, 6, 2, 17, 30, tzinfo=timezone.utc)
        assert model.to_dict(NOW)["time_until_reset"] == "5h 30m"

    def test_reset_time_fallback(self):
        assert parse_reset_time("not a date", NOW) == NOW + timedelta(hours=24)
        assert parse_reset_time(None, NOW) == NOW + timedelta(hours=24)

    def test_plan_defaults(self):
        snapshot = decode_user_status(_user_status(0.9), now=NOW)
        assert snapshot.user.plan_name == ""
        assert snapshot.user.monthly_prompt_credits == 0

    def test_credits_used_when_no_models(self):
        plan = {
            "planInfo": {"planName": "Pro", "monthlyPromptCredits": 1000, "teamsTier": "TEAMS"},
            "availablePromptCredits": 50,
        }
        snapshot = decode_user_status(_user_status(plan=plan), now=NOW)
        assert snapshot.user.plan_name == "Pro"
        assert snapshot.percentage == 5.0
        assert snapshot.status == STATUS_CRITICAL

    def test_no_user_status_is_disconnected(self):
        snapshot = decode_user_status({"message": "unauthenticated"}, now=NOW)
        assert not snapshot.is_connected
        assert snapshot.status == STATUS_UNKNOWN


class TestStatus:

    @pytest.mark.parametrize("percentage,expected", [
        (100, STATUS_OK),
        (31, STATUS_OK),
        (30, STATUS_WARNING),
        (11, STATUS_WARNING),
        (10, STATUS_CRITICAL),
        (0, STATUS_CRITICAL),
        (None, STATUS_UNKNOWN),
    ])
    def test_thresholds(self, percentage, expected):
        assert quota_status(percentage) == expected

    def test_custom_warning_threshold(self):
        assert quota_status(45, warning_threshold=50) == STATUS_WARNING

    def test_format_duration(self):
        assert format_duration(0) == "now"
        assert format_duration(45 * 60) == "45m"
        assert format_duration(26 * 3600) == "1d 2h"


# ===================================================================
# TestQuotaService
# ===================================================================


class TestQuotaService:

    @pytest.mark.asyncio
    async def test_request_shape(self, context):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=_user_status(0.9))

        service = _service(context, handler)
        snapshot = await service.fetch(DESCRIPTOR)

        request = seen[0]
        assert str(request.url) == f"https://127.0.0.1:42100{constants.USER_STATUS_PATH}"
        assert request.headers[constants.TOKEN_HEADER] == "tok"
        assert request.headers[constants.PROTOCOL_VERSION_HEADER] == "1"
        assert json.loads(request.content) == {"metadata": constants.QUOTA_CLIENT_METADATA}
        assert snapshot.status == STATUS_OK
        await service.close()

    @pytest.mark.asyncio
    async def test_warning_threshold_from_settings(self, context):
        context.settings.set(KEY_WARNING_THRESHOLD, 95)
        service = _service(context, lambda r: httpx.Response(200, json=_user_status(0.9)))

        assert (await service.fetch(DESCRIPTOR)).status == STATUS_WARNING
        await service.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("handler", [
        lambda r: httpx.Response(401),
        lambda r: httpx.Response(200, content=b"<html>"),
    ])
    async def test_bad_responses_yield_disconnected_snapshot(self, context, handler):
        service = _service(context, handler)
        snapshot = await service.fetch(DESCRIPTOR)
        assert not snapshot.is_connected
        assert snapshot.error_message
        await service.close()

    @pytest.mark.asyncio
    async def test_transport_error_yields_disconnected_snapshot(self, context):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = _service(context, handler)
        assert not (await service.fetch(DESCRIPTOR)).is_connected
        await service.close()

    @pytest.mark.asyncio
    async def test_refresh_without_descriptor(self, context):
        service = _service(context, lambda r: httpx.Response(500))
        snapshot = await service.refresh()
        assert not snapshot.is_connected
        assert snapshot.status == STATUS_UNKNOWN
        await service.close()

    @pytest.mark.asyncio
    async def test_descriptor_tracked_from_connection_verified(self, context):
        service = _service(context, lambda r: httpx.Response(200, json=_user_status(0.05)))
        context.events.connection_verified.emit(DESCRIPTOR)

        assert service.descriptor == DESCRIPTOR
        snapshot = await service.refresh()
        assert snapshot.status == STATUS_CRITICAL
        await service.close()

    @pytest.mark.asyncio
    async def test_refresh_emits_and_audits_status_change(self, context):
        updates = []
        context.events.quota_updated.subscribe(updates.append)
        service = _service(context, lambda r: httpx.Response(200, json=_user_status(0.05)))
        service.set_descriptor(DESCRIPTOR)

        await service.refresh()
        await service.refresh()

        assert len(updates) == 2
        events = context.audit.query_events(event_types=[EventType.QUOTA_UPDATED])
        assert len(events) == 1
        assert events[0]["severity"] == "alert"
        await service.close()

    @pytest.mark.asyncio
    async def test_start_stop(self, context):
        refreshed = []
        service = _service(context, lambda r: httpx.Response(500))
        context.events.quota_updated.subscribe(refreshed.append)

        await service.start()
        await service.start()
        for _ in range(3):
            await asyncio.sleep(0)
        await service.stop()

        assert len(refreshed) == 1
        await service.close()
