"""Tests for menu_planner.cloud_sync module."""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from typing import Any
from unittest.mock import patch

import httpx
import pytest

from menu_planner.cloud_sync import (
    METADATA_KEY,
    CloudSyncAdapter,
    CloudSyncError,
    parse_menu_row,
)
from menu_planner.config import Config
from menu_planner.models import ActivePeriodProduct, MenuProfileState, TextMenuItem

BASE_URL = "https://example.supabase.co"
RANGE = "2024-01-01__2024-01-07"


class _MockTransport(httpx.BaseTransport):
    """Mock transport that returns pre-configured responses.

    Attributes:
        responses: List of responses to return in order.
        requests: List of requests received.
    """

    def __init__(self, responses: list[httpx.Response]) -> None:
        """Initialize with a list of responses.

        Args:
            responses: Ordered list of responses to return.
        """
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Handle a request by returning the next response.

        Args:
            request: The incoming HTTP request.

        Returns:
            Next pre-configured response.
        """
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(500, json={"error": "No more responses"})
        return self.responses.pop(0)


class _FailingTransport(httpx.BaseTransport):
    """Transport whose every request fails to connect."""

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Raise a connection error."""
        raise httpx.ConnectError("connection refused", request=request)


class _FakeTimer:
    """Timer stand-in that only runs when fired by the test."""

    def __init__(self, interval: float, function: Callable[[], Any]) -> None:
        """Record the interval and callback."""
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        """Mark the timer started."""
        self.started = True

    def cancel(self) -> None:
        """Mark the timer cancelled."""
        self.cancelled = True

    def fire(self) -> None:
        """Run the callback as the real timer would."""
        self.function()


def _user(metadata: dict[str, Any]) -> httpx.Response:
    return httpx.Response(200, json={"id": "u1", "user_metadata": metadata})


def _adapter(
    transport: httpx.BaseTransport, timers: list[_FakeTimer] | None = None
) -> CloudSyncAdapter:
    def factory(interval: float, function: Callable[[], Any]) -> _FakeTimer:
        timer = _FakeTimer(interval, function)
        if timers is not None:
            timers.append(timer)
        return timer

    return CloudSyncAdapter(
        BASE_URL,
        api_key="anon",
        access_token="token",
        http_client=httpx.Client(transport=transport),
        debounce_seconds=0.5,
        timer_factory=factory,
    )


class TestFromConfig:
    """Tests for CloudSyncAdapter.from_config."""

    def test_disabled_without_url_or_token(self) -> None:
        """Test a missing URL or token disables the mirror."""
        assert CloudSyncAdapter.from_config(Config()) is None
        assert (
            CloudSyncAdapter.from_config(Config(cloud_sync_url=BASE_URL)) is None
        )

    def test_enabled(self) -> None:
        """Test a configured URL and token build an adapter."""
        adapter = CloudSyncAdapter.from_config(
            Config(cloud_sync_url=BASE_URL, cloud_sync_access_token="token")
        )
        assert isinstance(adapter, CloudSyncAdapter)
        adapter.close()


class TestFetch:
    """Tests for fetch_active_products."""

    def test_returns_range_snapshot(self) -> None:
        """Test products stored for the range are decoded."""
        transport = _MockTransport(
            [_user({METADATA_KEY: {RANGE: [{"name": "Тыква", "prefer": False}]}})]
        )
        products = _adapter(transport).fetch_active_products(RANGE)
        assert products is not None
        assert [(p.name, p.prefer) for p in products] == [("Тыква", False)]
        request = transport.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/auth/v1/user"
        assert request.headers["apikey"] == "anon"
        assert request.headers["authorization"] == "Bearer token"

    def test_missing_range(self) -> None:
        """Test a range absent from the blob yields None."""
        transport = _MockTransport([_user({METADATA_KEY: {}})])
        assert _adapter(transport).fetch_active_products(RANGE) is None

    def test_empty_list_is_a_snapshot(self) -> None:
        """Test an explicitly empty list still counts as a snapshot."""
        transport = _MockTransport([_user({METADATA_KEY: {RANGE: []}})])
        assert _adapter(transport).fetch_active_products(RANGE) == []

    def test_http_error(self) -> None:
        """Test error statuses are swallowed into None."""
        transport = _MockTransport([httpx.Response(401, json={"msg": "expired"})])
        assert _adapter(transport).fetch_active_products(RANGE) is None

    def test_transport_error(self) -> None:
        """Test connection failures are swallowed into None."""
        assert _adapter(_FailingTransport()).fetch_active_products(RANGE) is None

    def test_read_metadata_raises(self) -> None:
        """Test the low-level read wraps non-JSON bodies."""
        transport = _MockTransport([httpx.Response(200, content=b"<html>")])
        with pytest.raises(CloudSyncError, match="not JSON"):
            _adapter(transport)._read_metadata()


class TestPush:
    """Tests for push_active_products."""

    def test_read_modify_write(self) -> None:
        """Test other metadata and other ranges are preserved."""
        other_range = "2023-12-25__2023-12-31"
        transport = _MockTransport(
            [
                _user(
                    {
                        "display_name": "Аня",
                        METADATA_KEY: {other_range: [{"name": "Лук"}]},
                    }
                ),
                httpx.Response(200, json={}),
            ]
        )
        ok = _adapter(transport).push_active_products(
            RANGE, [ActivePeriodProduct(id="p1", name="Тыква")]
        )
        assert ok is True
        put = transport.requests[1]
        assert put.method == "PUT"
        body = json.loads(put.content)
        data = body["data"]
        assert data["display_name"] == "Аня"
        assert data[METADATA_KEY][other_range] == [{"name": "Лук"}]
        assert data[METADATA_KEY][RANGE][0]["id"] == "p1"
        assert data[METADATA_KEY][RANGE][0]["name"] == "Тыква"

    def test_write_failure(self) -> None:
        """Test a rejected write reports False."""
        transport = _MockTransport([_user({}), httpx.Response(500, json={})])
        assert _adapter(transport).push_active_products(RANGE, []) is False

    def test_read_failure_skips_write(self) -> None:
        """Test no write is attempted when the read fails."""
        transport = _MockTransport([httpx.Response(503, json={})])
        assert _adapter(transport).push_active_products(RANGE, []) is False
        assert len(transport.requests) == 1


class TestDebounce:
    """Tests for schedule_push, flush and cancel."""

    def test_pushes_coalesce(self) -> None:
        """Test repeated schedules collapse into one write of the latest list."""
        timers: list[_FakeTimer] = []
        transport = _MockTransport([_user({}), httpx.Response(200, json={})])
        adapter = _adapter(transport, timers)

        adapter.schedule_push(RANGE, [ActivePeriodProduct(name="Лук")])
        adapter.schedule_push(RANGE, [ActivePeriodProduct(name="Тыква")])

        assert len(timers) == 2
        assert timers[0].cancelled is True
        assert timers[1].started is True
        assert timers[1].daemon is True
        assert timers[1].interval == 0.5
        assert adapter.has_pending is True

        timers[1].fire()
        assert adapter.has_pending is False
        assert len(transport.requests) == 2
        body = json.loads(transport.requests[1].content)
        assert [p["name"] for p in body["data"][METADATA_KEY][RANGE]] == ["Тыква"]

    def test_flush_counts_ranges(self) -> None:
        """Test flush pushes each pending range."""
        transport = _MockTransport(
            [
                _user({}),
                httpx.Response(200, json={}),
                _user({}),
                httpx.Response(200, json={}),
            ]
        )
        adapter = _adapter(transport)
        adapter.schedule_push(RANGE, [])
        adapter.schedule_push("2024-01-08__2024-01-14", [])
        assert adapter.flush() == 2
        assert adapter.flush() == 0

    def test_cancel_drops_pending(self) -> None:
        """Test cancelled pushes are never sent."""
        timers: list[_FakeTimer] = []
        transport = _MockTransport([])
        adapter = _adapter(transport, timers)
        adapter.schedule_push(RANGE, [])
        adapter.cancel()
        assert timers[0].cancelled is True
        assert adapter.has_pending is False
        assert adapter.flush() == 0
        assert transport.requests == []

    def test_close_flushes(self) -> None:
        """Test close sends what is still queued."""
        transport = _MockTransport([_user({}), httpx.Response(200, json={})])
        adapter = _adapter(transport)
        adapter.schedule_push(RANGE, [ActivePeriodProduct(name="Лук")])
        adapter.close()
        assert [r.method for r in transport.requests] == ["GET", "PUT"]

    def test_close_waits_for_running_flush(self) -> None:
        """Test close lets a timer-thread push finish before closing the client."""
        transport = _BlockingTransport()
        client = httpx.Client(transport=transport)
        with patch("menu_planner.cloud_sync.httpx.Client", return_value=client):
            adapter = CloudSyncAdapter(
                BASE_URL, api_key="anon", access_token="token", debounce_seconds=0.0
            )
        adapter.schedule_push(RANGE, [ActivePeriodProduct(name="Лук")])
        assert transport.started.wait(timeout=5)

        closer = threading.Thread(target=adapter.close)
        closer.start()
        closer.join(timeout=0.2)
        assert closer.is_alive()
        assert client.is_closed is False

        transport.release.set()
        closer.join(timeout=5)
        assert not closer.is_alive()
        assert client.is_closed is True
        assert transport.methods == ["GET", "PUT"]

    def test_schedule_after_close_dropped(self) -> None:
        """Test pushes queued after close are never sent."""
        timers: list[_FakeTimer] = []
        transport = _MockTransport([])
        adapter = _adapter(transport, timers)
        adapter.close()
        adapter.schedule_push(RANGE, [])
        assert timers == []
        assert adapter.has_pending is False
        assert transport.requests == []


class _BlockingTransport(httpx.BaseTransport):
    """Transport that holds the first user read until released."""

    def __init__(self) -> None:
        """Create the start and release events."""
        self.started = threading.Event()
        self.release = threading.Event()
        self.methods: list[str] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Block GETs until released, then answer like the auth endpoint."""
        self.methods.append(request.method)
        if request.method == "GET":
            self.started.set()
            self.release.wait(timeout=5)
            return _user({})
        return httpx.Response(200, json={})


def _profile() -> MenuProfileState:
    return MenuProfileState(
        name="Меню 1",
        meal_data={"2024-01-01-Ужин": [TextMenuItem(id="i1", value="Плов")]},
        cell_people_count={"2024-01-01-Ужин": 3},
        cooked_status={"i1": True},
    )


class TestWeeklyMenu:
    """Tests for the weekly menu table mirror."""

    def test_fetch_row(self) -> None:
        """Test the row for the owner and week start is decoded."""
        row = {
            "week_start": "2024-01-01",
            "meal_data": {
                "2024-01-01-Ужин": [{"id": "i1", "type": "text", "value": "Плов"}],
                "2024-01-02-Обед": ["junk"],
            },
            "cell_people_count": {"2024-01-01-Ужин": 3, "x": 0},
            "cooked_status": {"i1": True},
            "visibility": "private",
        }
        transport = _MockTransport([_user({}), httpx.Response(200, json=[row])])
        snapshot = _adapter(transport).fetch_week_menu(RANGE)

        assert snapshot is not None
        assert list(snapshot.meal_data) == ["2024-01-01-Ужин"]
        assert snapshot.cell_people_count == {"2024-01-01-Ужин": 3}
        assert snapshot.cooked_status == {"i1": True}
        query = transport.requests[1].url.params
        assert transport.requests[1].url.path == "/rest/v1/weekly_menus"
        assert query["owner_id"] == "eq.u1"
        assert query["week_start"] == "eq.2024-01-01"

    def test_fetch_no_row(self) -> None:
        """Test an empty result reads as no row."""
        transport = _MockTransport([_user({}), httpx.Response(200, json=[])])
        assert _adapter(transport).fetch_week_menu(RANGE) is None

    def test_fetch_missing_table(self) -> None:
        """Test a 404 for the table reads as no row."""
        transport = _MockTransport(
            [_user({}), httpx.Response(404, json={"code": "42P01"})]
        )
        assert _adapter(transport).fetch_week_menu(RANGE) is None

    def test_fetch_failure(self) -> None:
        """Test transport errors are logged and read as no row."""
        assert _adapter(_FailingTransport()).fetch_week_menu(RANGE) is None

    def test_fetch_malformed_range(self) -> None:
        """Test a range without a start date sends nothing."""
        transport = _MockTransport([])
        assert _adapter(transport).fetch_week_menu("garbage") is None
        assert transport.requests == []

    def test_push_upserts_row(self) -> None:
        """Test the active profile is upserted on owner and week start."""
        transport = _MockTransport(
            [_user({}), httpx.Response(201), httpx.Response(201)]
        )
        adapter = _adapter(transport)
        assert adapter.push_week_menu(RANGE, _profile()) is True
        assert adapter.push_week_menu(RANGE, _profile()) is True

        assert [r.method for r in transport.requests] == ["GET", "POST", "POST"]
        post = transport.requests[1]
        assert post.url.params["on_conflict"] == "owner_id,week_start"
        assert "resolution=merge-duplicates" in post.headers["Prefer"]
        [row] = json.loads(post.content)
        assert row["owner_id"] == "u1"
        assert row["week_start"] == "2024-01-01"
        assert row["meal_data"]["2024-01-01-Ужин"][0]["value"] == "Плов"
        assert row["cell_people_count"] == {"2024-01-01-Ужин": 3}
        assert row["cooked_status"] == {"i1": True}

    def test_push_failure(self) -> None:
        """Test a rejected upsert returns False."""
        transport = _MockTransport([_user({}), httpx.Response(500)])
        assert _adapter(transport).push_week_menu(RANGE, _profile()) is False

    def test_menu_and_products_queue_separately(self) -> None:
        """Test a menu push does not replace a queued products push."""
        transport = _MockTransport(
            [
                _user({}),
                httpx.Response(200, json={}),
                httpx.Response(201),
            ]
        )
        adapter = _adapter(transport)
        adapter.schedule_push(RANGE, [])
        adapter.schedule_menu_push(RANGE, _profile())
        assert adapter.flush() == 2
        assert [r.method for r in transport.requests] == ["GET", "PUT", "POST"]

    def test_parse_row_rejects_non_objects(self) -> None:
        """Test rows without a week start are ignored."""
        assert parse_menu_row(["x"]) is None
        assert parse_menu_row({"meal_data": {}}) is None
