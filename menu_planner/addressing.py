"""Cell and period-range addressing plus persisted key names.

A cell is one (date, meal slot) pair of the menu grid, addressed as
``YYYY-MM-DD-<meal name>``. A period range is addressed as
``<start>__<end>``. All storage keys used by the planner are built here.
"""

from __future__ import annotations

import re
from datetime import date
from typing import NamedTuple

CELL_KEY_SEPARATOR = "-"
RANGE_KEY_SEPARATOR = "__"

_CELL_KEY_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})-(.+)$", re.DOTALL)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Persisted keys
MENU_STORAGE_PREFIX = "weeklyMenu"
CELL_PEOPLE_COUNT_PREFIX = "cellPeopleCount"
COOKED_STATUS_PREFIX = "cookedStatus"
ACTIVE_PRODUCTS_PREFIX = "activeProducts"
MEAL_STRUCTURE_SETTINGS_KEY = "menuMealStructureSettings"
MEAL_STRUCTURE_DEFAULTS_KEY = "menuMealStructureDefaults"
DAY_STRUCTURE_MODE_KEY = "menuDayStructureMode"
SELECTED_RANGE_KEY = "selectedMenuRange"
SELECTED_WEEK_START_KEY = "selectedWeekStart"
RECIPES_KEY = "recipes"
PANTRY_KEY = "pantry"


class CellAddress(NamedTuple):
    """A parsed cell key."""

    date: str
    meal: str


def _iso(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else value


def make_cell_key(day: date | str, meal: str) -> str:
    """Build the cell key for a date and meal slot name.

    Args:
        day: Calendar day, as a date or ``YYYY-MM-DD`` string.
        meal: Meal slot name.

    Returns:
        Cell key string.
    """
    return f"{_iso(day)}{CELL_KEY_SEPARATOR}{meal}"


def split_cell_key(key: str) -> CellAddress | None:
    """Parse a cell key back into its date and meal label.

    Only a strict ``YYYY-MM-DD`` prefix is accepted; the rest of the key
    after the separator is the meal label, dashes included.

    Args:
        key: Cell key, possibly historical or garbage.

    Returns:
        CellAddress, or None when the key does not conform.
    """
    if not isinstance(key, str):
        return None
    match = _CELL_KEY_RE.match(key)
    if match is None:
        return None
    return CellAddress(date=match.group(1), meal=match.group(2))


def is_iso_date(value: object) -> bool:
    """Check whether a value is a ``YYYY-MM-DD`` string."""
    return isinstance(value, str) and bool(_ISO_DATE_RE.match(value))


def make_range_key(start: date | str, end: date | str) -> str:
    """Build the period-range key ``start__end``.

    Args:
        start: First day of the period.
        end: Last day of the period.

    Returns:
        Range key string.
    """
    return f"{_iso(start)}{RANGE_KEY_SEPARATOR}{_iso(end)}"


def split_range_key(range_key: str) -> tuple[str, str] | None:
    """Split a range key into its start and end dates.

    Args:
        range_key: Key produced by :func:`make_range_key`.

    Returns:
        ``(start, end)`` strings, or None for malformed keys.
    """
    start, sep, end = range_key.partition(RANGE_KEY_SEPARATOR)
    if not sep or not is_iso_date(start) or not is_iso_date(end):
        return None
    return start, end


def _scoped(prefix: str, range_key: str) -> str:
    return f"{prefix}:{range_key}"


def menu_storage_key(range_key: str) -> str:
    """Key of the versioned menu bundle for a period."""
    return _scoped(MENU_STORAGE_PREFIX, range_key)


def people_count_storage_key(range_key: str) -> str:
    """Key of the legacy people-count mirror for a period."""
    return _scoped(CELL_PEOPLE_COUNT_PREFIX, range_key)


def cooked_status_storage_key(range_key: str) -> str:
    """Key of the legacy cooked-status mirror for a period."""
    return _scoped(COOKED_STATUS_PREFIX, range_key)


def active_products_storage_key(range_key: str) -> str:
    """Key of the active products list for a period."""
    return _scoped(ACTIVE_PRODUCTS_PREFIX, range_key)


def meal_structure_storage_key(range_key: str | None = None) -> str:
    """Key of meal slot settings, per period when a range is given."""
    if range_key is None:
        return MEAL_STRUCTURE_SETTINGS_KEY
    return _scoped(MEAL_STRUCTURE_SETTINGS_KEY, range_key)


def range_key_from_storage_key(key: str, prefix: str) -> str | None:
    """Extract the range key from a range-scoped storage key.

    Args:
        key: Full storage key, e.g. ``weeklyMenu:2024-01-01__2024-01-07``.
        prefix: Expected key prefix.

    Returns:
        The range key, or None if the key has another prefix.
    """
    head, sep, tail = key.partition(":")
    if not sep or head != prefix or not tail:
        return None
    return tail
