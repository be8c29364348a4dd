"""Planning periods: preset arithmetic and the persisted selection.

A period is an inclusive ``[start, end]`` date range. Presets are anchored
at the current start: ``7d``/``10d``/``14d`` extend from it, ``month``
snaps to the calendar month containing it, ``custom`` takes explicit
bounds. The selection is stored under ``selectedMenuRange`` as
``{start, end, preset}``; ``selectedWeekStart`` mirrors the start date.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError, model_validator

from menu_planner.addressing import (
    SELECTED_RANGE_KEY,
    SELECTED_WEEK_START_KEY,
    make_range_key,
)
from menu_planner.storage import read_json, read_raw, write_json, write_raw

if TYPE_CHECKING:
    from menu_planner.storage import StoragePort

logger = logging.getLogger(__name__)


class PeriodPreset(StrEnum):
    """Length presets for a planning period."""

    DAYS_7 = "7d"
    DAYS_10 = "10d"
    DAYS_14 = "14d"
    MONTH = "month"
    CUSTOM = "custom"


_PRESET_LENGTHS: dict[PeriodPreset, int] = {
    PeriodPreset.DAYS_7: 7,
    PeriodPreset.DAYS_10: 10,
    PeriodPreset.DAYS_14: 14,
}


class Period(BaseModel):
    """An inclusive date range plus the preset that produced it."""

    start: date
    end: date
    preset: PeriodPreset = PeriodPreset.DAYS_7

    @model_validator(mode="after")
    def _check_order(self) -> Period:
        if self.end < self.start:
            raise ValueError("period end precedes start")
        return self

    @property
    def range_key(self) -> str:
        """Storage range key ``start__end``."""
        return make_range_key(self.start, self.end)

    @property
    def length_days(self) -> int:
        """Number of days in the period, at least 1."""
        return max(1, (self.end - self.start).days + 1)

    def days(self) -> list[date]:
        """Every day of the period in order."""
        return [self.start + timedelta(days=i) for i in range(self.length_days)]

    def day_keys(self) -> list[str]:
        """ISO strings of every day of the period."""
        return [d.isoformat() for d in self.days()]

    def contains(self, day: date) -> bool:
        """Whether a day falls inside the period."""
        return self.start <= day <= self.end


def monday_of(day: date) -> date:
    """Return the Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def month_bounds(day: date) -> tuple[date, date]:
    """Return the first and last day of the month containing ``day``."""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def default_period(today: date | None = None) -> Period:
    """The current Monday-to-Sunday week."""
    start = monday_of(today or date.today())
    return Period(start=start, end=start + timedelta(days=6))


def apply_preset(
    base_start: date,
    preset: PeriodPreset,
    custom_start: date | None = None,
    custom_end: date | None = None,
) -> Period | None:
    """Build the period a preset produces from the current start date.

    Args:
        base_start: Start of the currently selected period.
        preset: Preset to apply.
        custom_start: Start for the ``custom`` preset.
        custom_end: End for the ``custom`` preset.

    Returns:
        The new period, or None when custom bounds are missing or reversed.
    """
    if preset is PeriodPreset.MONTH:
        start, end = month_bounds(base_start)
        return Period(start=start, end=end, preset=preset)
    if preset is PeriodPreset.CUSTOM:
        if custom_start is None or custom_end is None or custom_end < custom_start:
            return None
        return Period(start=custom_start, end=custom_end, preset=preset)
    length = _PRESET_LENGTHS[preset]
    return Period(
        start=base_start,
        end=base_start + timedelta(days=length - 1),
        preset=preset,
    )


def shift_period(period: Period, direction: int) -> Period:
    """Move a period by its own length.

    Args:
        period: Period to move.
        direction: ``1`` for the next period, ``-1`` for the previous one.

    Returns:
        A period of the same length and preset.
    """
    offset = timedelta(days=period.length_days * (1 if direction >= 0 else -1))
    return period.model_copy(
        update={"start": period.start + offset, "end": period.end + offset}
    )


def load_selection(storage: StoragePort, today: date | None = None) -> Period:
    """Read the persisted period selection.

    Falls back to ``selectedWeekStart`` plus seven days, then to the
    current week.

    Args:
        storage: Storage backend.
        today: Reference date for the fallback.

    Returns:
        The selected period.
    """
    raw = read_json(storage, SELECTED_RANGE_KEY)
    if isinstance(raw, dict):
        try:
            return Period.model_validate(raw)
        except ValidationError:
            logger.debug("Ignoring malformed period selection: %r", raw)

    week_start = read_raw(storage, SELECTED_WEEK_START_KEY)
    if week_start:
        try:
            start = date.fromisoformat(week_start)
        except ValueError:
            logger.debug("Ignoring malformed week start: %r", week_start)
        else:
            return Period(start=start, end=start + timedelta(days=6))
    return default_period(today)


def save_selection(storage: StoragePort, period: Period) -> bool:
    """Persist the period selection and mirror its start date.

    Args:
        storage: Storage backend.
        period: Period to store.

    Returns:
        True if both writes succeeded.
    """
    saved = write_json(storage, SELECTED_RANGE_KEY, period.model_dump(mode="json"))
    mirrored = write_raw(storage, SELECTED_WEEK_START_KEY, period.start.isoformat())
    return saved and mirrored
