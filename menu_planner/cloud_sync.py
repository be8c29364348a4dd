"""Best-effort cloud mirror of active products and weekly menus.

Active products are kept in the signed-in user's metadata blob on a
Supabase-style auth endpoint, under ``active_products_by_range``:
``{range_key: [ActivePeriodProduct, ...]}``. The blob is shared with other
profile fields, so every write is a read-modify-write of the whole object.

Weekly menus go to a ``weekly_menus`` table behind a PostgREST-style
endpoint: one row per owner and week start holding the active profile's
cells, people counts and cooked flags. Writes are last-writer-wins upserts
on ``(owner_id, week_start)``.

Pushes are debounced: repeated calls to :meth:`CloudSyncAdapter.schedule_push`
within the debounce window collapse into one write of the latest state.
Writes are fire-and-forget; failures are logged and never retried. At
most one flush runs at a time, and :meth:`CloudSyncAdapter.close` waits
for a running one before closing the HTTP client.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, Field

from menu_planner.active_products import decode_products, encode_products
from menu_planner.addressing import split_range_key
from menu_planner.bundle_codec import (
    normalize_cooked_status,
    normalize_meal_data,
    normalize_people_count,
)
from menu_planner.models import MenuItem

if TYPE_CHECKING:
    from menu_planner.config import Config
    from menu_planner.models import ActivePeriodProduct, MenuProfileState

logger = logging.getLogger(__name__)

METADATA_KEY = "active_products_by_range"
USER_ENDPOINT = "/auth/v1/user"
WEEKLY_MENUS_ENDPOINT = "/rest/v1/weekly_menus"
WEEKLY_MENU_COLUMNS = (
    "week_start,meal_data,cell_people_count,cooked_status,visibility"
)
DEFAULT_DEBOUNCE_SECONDS = 0.8


class CloudSyncError(Exception):
    """Raised when a remote read or write fails."""


class WeeklyMenuSnapshot(BaseModel):
    """One week's menu as stored in the cloud table."""

    week_start: str
    meal_data: dict[str, list[MenuItem]] = Field(default_factory=dict)
    cell_people_count: dict[str, int] = Field(default_factory=dict)
    cooked_status: dict[str, bool] = Field(default_factory=dict)
    visibility: str = "private"


def _week_start(range_key: str) -> str | None:
    parts = split_range_key(range_key)
    return parts[0] if parts else None


def menu_row(profile: MenuProfileState, week_start: str) -> dict[str, Any]:
    """Encode a profile as a ``weekly_menus`` row without the owner."""
    return {
        "week_start": week_start,
        "meal_data": {
            cell: [
                item.model_dump(mode="json", by_alias=True, exclude_none=True)
                for item in items
            ]
            for cell, items in profile.meal_data.items()
        },
        "cell_people_count": dict(profile.cell_people_count),
        "cooked_status": dict(profile.cooked_status),
        "visibility": "private",
    }


def parse_menu_row(row: Any) -> WeeklyMenuSnapshot | None:
    """Decode a table row, repairing malformed columns.

    Args:
        row: One element of the table response.

    Returns:
        Snapshot, or None when the row is not an object with a week start.
    """
    if not isinstance(row, dict) or not isinstance(row.get("week_start"), str):
        return None
    visibility = row.get("visibility")
    return WeeklyMenuSnapshot(
        week_start=row["week_start"],
        meal_data=normalize_meal_data(row.get("meal_data")),
        cell_people_count=normalize_people_count(row.get("cell_people_count")),
        cooked_status=normalize_cooked_status(row.get("cooked_status")),
        visibility=visibility if isinstance(visibility, str) else "private",
    )


TimerFactory = Callable[[float, Callable[[], None]], Any]


class CloudSyncAdapter:
    """Reads and debounced writes of per-range active products and menus.

    Args:
        base_url: Project URL, e.g. ``https://xyz.supabase.co``.
        api_key: Public API key sent as ``apikey``.
        access_token: The signed-in user's bearer token.
        http_client: Optional pre-configured httpx.Client for testing.
        debounce_seconds: Coalescing window for pushes.
        timer_factory: Creates a started-on-demand timer; defaults to
            ``threading.Timer``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str,
        http_client: httpx.Client | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            base_url: Project URL, e.g. ``https://xyz.supabase.co``.
            api_key: Public API key sent as ``apikey``.
            access_token: The signed-in user's bearer token.
            http_client: Optional pre-configured httpx.Client for testing.
            debounce_seconds: Coalescing window for pushes.
            timer_factory: Creates a started-on-demand timer; defaults to
                ``threading.Timer``.
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._access_token = access_token
        self._client = http_client or httpx.Client(timeout=10.0)
        self._owns_client = http_client is None
        self._debounce = debounce_seconds
        self._timer_factory: TimerFactory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._timer: Any = None
        self._pending: dict[tuple[str, str], Any] = {}
        self._user_id: str | None = None
        self._closed = False

    @classmethod
    def from_config(cls, config: Config) -> CloudSyncAdapter | None:
        """Build an adapter when cloud sync is configured.

        Args:
            config: Application configuration.

        Returns:
            CloudSyncAdapter, or None when URL or token are missing.
        """
        if not config.cloud_sync_url or not config.cloud_sync_access_token:
            return None
        return cls(
            base_url=config.cloud_sync_url,
            api_key=config.cloud_sync_api_key,
            access_token=config.cloud_sync_access_token,
            debounce_seconds=config.cloud_sync_debounce_seconds,
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _read_user(self) -> dict[str, Any]:
        """Fetch the signed-in user object and remember its id.

        Returns:
            The user object (empty if the body is not an object).

        Raises:
            CloudSyncError: On transport errors or bad responses.
        """
        try:
            response = self._client.get(
                f"{self._base_url}{USER_ENDPOINT}", headers=self._headers()
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise CloudSyncError(
                f"Metadata read failed: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CloudSyncError(f"Metadata read request failed: {exc}") from exc
        except ValueError as exc:
            raise CloudSyncError("Metadata response is not JSON") from exc

        if not isinstance(body, dict):
            return {}
        if isinstance(body.get("id"), str) and body["id"]:
            self._user_id = body["id"]
        return body

    def _read_metadata(self) -> dict[str, Any]:
        """Fetch the user's whole metadata object.

        Returns:
            The ``user_metadata`` mapping (empty if absent).

        Raises:
            CloudSyncError: On transport errors or bad responses.
        """
        metadata = self._read_user().get("user_metadata")
        return metadata if isinstance(metadata, dict) else {}

    def _owner_id(self) -> str:
        """Id of the signed-in user, read once.

        Raises:
            CloudSyncError: If the user cannot be read or has no id.
        """
        if self._user_id is None:
            self._read_user()
        if self._user_id is None:
            raise CloudSyncError("User response carries no id")
        return self._user_id

    def _write_metadata(self, metadata: dict[str, Any]) -> None:
        """Replace the user's metadata object.

        Args:
            metadata: Full metadata mapping.

        Raises:
            CloudSyncError: On transport errors or bad responses.
        """
        try:
            response = self._client.put(
                f"{self._base_url}{USER_ENDPOINT}",
                headers=self._headers(),
                json={"data": metadata},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise CloudSyncError(
                f"Metadata write failed: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CloudSyncError(f"Metadata write request failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Active products
    # ------------------------------------------------------------------

    def fetch_active_products(self, range_key: str) -> list[ActivePeriodProduct] | None:
        """Read the cloud snapshot for a period.

        Args:
            range_key: Period range key.

        Returns:
            Products stored for the range, or None when the range has no
            snapshot or the read failed.
        """
        try:
            metadata = self._read_metadata()
        except CloudSyncError:
            logger.warning("Could not read active products from cloud", exc_info=True)
            return None
        by_range = metadata.get(METADATA_KEY)
        if not isinstance(by_range, dict) or range_key not in by_range:
            return None
        return decode_products(by_range[range_key])

    def push_active_products(
        self, range_key: str, products: list[ActivePeriodProduct]
    ) -> bool:
        """Write the products of one period into the metadata blob.

        Args:
            range_key: Period range key.
            products: Full product list for the range.

        Returns:
            True if the write succeeded.
        """
        try:
            metadata = self._read_metadata()
            by_range = metadata.get(METADATA_KEY)
            by_range = dict(by_range) if isinstance(by_range, dict) else {}
            by_range[range_key] = encode_products(products)
            self._write_metadata({**metadata, METADATA_KEY: by_range})
        except CloudSyncError:
            logger.warning(
                "Could not push active products for %s", range_key, exc_info=True
            )
            return False
        logger.debug("Pushed %d active product(s) for %s", len(products), range_key)
        return True

    def schedule_push(
        self, range_key: str, products: list[ActivePeriodProduct]
    ) -> None:
        """Queue an active products push, restarting the debounce window.

        Args:
            range_key: Period range key.
            products: Latest product list for the range.
        """
        self._schedule(("products", range_key), list(products))

    # ------------------------------------------------------------------
    # Weekly menus
    # ------------------------------------------------------------------

    def fetch_week_menu(self, range_key: str) -> WeeklyMenuSnapshot | None:
        """Read the stored menu row for the week a period starts on.

        A missing table (404) reads as no row.

        Args:
            range_key: Period range key.

        Returns:
            Snapshot, or None when there is no row or the read failed.
        """
        week_start = _week_start(range_key)
        if week_start is None:
            return None
        try:
            params = {
                "select": WEEKLY_MENU_COLUMNS,
                "owner_id": f"eq.{self._owner_id()}",
                "week_start": f"eq.{week_start}",
            }
            response = self._client.get(
                f"{self._base_url}{WEEKLY_MENUS_ENDPOINT}",
                params=params,
                headers=self._headers(),
            )
            if response.status_code == 404:
                logger.debug("weekly_menus table is not available")
                return None
            response.raise_for_status()
            rows = response.json()
        except CloudSyncError:
            logger.warning("Could not read weekly menu from cloud", exc_info=True)
            return None
        except (httpx.HTTPError, ValueError):
            logger.warning("Weekly menu read failed for %s", range_key, exc_info=True)
            return None

        if not isinstance(rows, list) or not rows:
            return None
        return parse_menu_row(rows[0])

    def push_week_menu(self, range_key: str, profile: MenuProfileState) -> bool:
        """Upsert the menu row for the week a period starts on.

        Args:
            range_key: Period range key.
            profile: Profile whose cells are mirrored.

        Returns:
            True if the write succeeded.
        """
        week_start = _week_start(range_key)
        if week_start is None:
            logger.debug("Not mirroring menu for malformed range %r", range_key)
            return False
        try:
            row = {"owner_id": self._owner_id(), **menu_row(profile, week_start)}
            response = self._client.post(
                f"{self._base_url}{WEEKLY_MENUS_ENDPOINT}",
                params={"on_conflict": "owner_id,week_start"},
                headers={
                    **self._headers(),
                    "Prefer": "resolution=merge-duplicates,return=minimal",
                },
                json=[row],
            )
            response.raise_for_status()
        except (CloudSyncError, httpx.HTTPError):
            logger.warning(
                "Could not push weekly menu for %s", range_key, exc_info=True
            )
            return False
        logger.debug("Pushed weekly menu for %s", week_start)
        return True

    def schedule_menu_push(self, range_key: str, profile: MenuProfileState) -> None:
        """Queue a weekly menu push, restarting the debounce window.

        Args:
            range_key: Period range key.
            profile: Latest state of the active profile.
        """
        self._schedule(("menu", range_key), profile)

    # ------------------------------------------------------------------
    # Debounced queue
    # ------------------------------------------------------------------

    def _schedule(self, key: tuple[str, str], payload: Any) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Adapter closed; dropping %s push", key[0])
                return
            self._pending[key] = payload
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(self._debounce, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def _push(self, key: tuple[str, str], payload: Any) -> bool:
        kind, range_key = key
        if kind == "menu":
            return self.push_week_menu(range_key, payload)
        return self.push_active_products(range_key, payload)

    def flush(self) -> int:
        """Push every queued item now.

        Only one flush runs at a time; a flush after :meth:`close` sends
        nothing.

        Returns:
            Number of pushes that succeeded.
        """
        with self._flush_lock:
            with self._lock:
                pending = self._pending
                self._pending = {}
                self._timer = None
            if self._closed:
                return 0
            return sum(
                1 for key, payload in pending.items() if self._push(key, payload)
            )

    @property
    def has_pending(self) -> bool:
        """Whether pushes are waiting for the debounce window."""
        return bool(self._pending)

    def cancel(self) -> None:
        """Drop queued pushes without sending them."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = {}

    def close(self) -> None:
        """Flush queued pushes and close an owned HTTP client.

        A flush already running on the timer thread finishes first.
        """
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self.flush()
        with self._flush_lock:
            with self._lock:
                self._closed = True
                self._pending = {}
            if self._owns_client:
                self._client.close()
