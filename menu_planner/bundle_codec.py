"""Versioned encoding of a period's menu profiles.

The persisted document for a period is a :class:`MenuStorageBundle`
(version 2). Older installations stored a flat ``{cellKey: items}`` map
under the same key, with people counts and cooked flags under separate
legacy keys; such payloads are upgraded through :data:`MIGRATIONS` before
decoding, so every decode runs against the latest shape only.

Decoding is total: corrupt JSON, wrong shapes and malformed entries are
repaired to safe defaults and never raise.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter, ValidationError

from menu_planner.models import (
    MenuItem,
    MenuProfileState,
    MenuStorageBundle,
    new_id,
)

logger = logging.getLogger(__name__)

CURRENT_VERSION = 2
LEGACY_VERSION = 1
DEFAULT_MENU_NAME = "Меню 1"

_MENU_ITEM_ADAPTER: TypeAdapter[Any] = TypeAdapter(MenuItem)


@dataclass
class ParsedBundle:
    """Decoded menus of a period plus the active profile pointer."""

    menus: list[MenuProfileState]
    active_menu_id: str

    @property
    def active(self) -> MenuProfileState:
        """The profile ``active_menu_id`` points at."""
        for menu in self.menus:
            if menu.id == self.active_menu_id:
                return menu
        return self.menus[0]


@dataclass
class LegacyContext:
    """Data that pre-versioning installations kept under separate keys."""

    people_count: Any = None
    cooked_status: Any = None
    default_name: str = DEFAULT_MENU_NAME


# ---------------------------------------------------------------------------
# Entry normalizers
# ---------------------------------------------------------------------------


def normalize_people_count(raw: Any) -> dict[str, int]:
    """Keep only positive, finite numeric people counts.

    Args:
        raw: Candidate ``{cellKey: number}`` mapping.

    Returns:
        Clean mapping; non-dict input yields an empty mapping.
    """
    if not isinstance(raw, dict):
        return {}
    counts: dict[str, int] = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value) or value <= 0:
            continue
        counts[str(key)] = max(1, round(value))
    return counts


def normalize_cooked_status(raw: Any) -> dict[str, bool]:
    """Keep only boolean cooked flags.

    Args:
        raw: Candidate ``{itemId: bool}`` mapping.

    Returns:
        Clean mapping; non-dict input yields an empty mapping.
    """
    if not isinstance(raw, dict):
        return {}
    return {str(k): v for k, v in raw.items() if isinstance(v, bool)}


def _normalize_item(raw: Any) -> Any | None:
    """Decode one menu item, returning None when malformed."""
    if not isinstance(raw, dict):
        return None
    data = dict(raw)
    if not isinstance(data.get("id"), str) or not data["id"]:
        data["id"] = new_id()
    try:
        return _MENU_ITEM_ADAPTER.validate_python(data)
    except ValidationError:
        logger.debug("Dropping malformed menu item: %r", raw)
        return None


def normalize_meal_data(raw: Any) -> dict[str, list[Any]]:
    """Decode a ``{cellKey: items}`` map, dropping malformed entries.

    A single item object stored directly under a cell is wrapped into a
    list. Cells left empty are omitted.

    Args:
        raw: Candidate meal data mapping.

    Returns:
        Mapping of cell keys to validated menu items.
    """
    if not isinstance(raw, dict):
        return {}
    meal_data: dict[str, list[Any]] = {}
    for key, value in raw.items():
        entries = value if isinstance(value, list) else [value]
        items = [item for item in map(_normalize_item, entries) if item is not None]
        if items:
            meal_data[str(key)] = items
    return meal_data


def _unique_name(name: str, taken: set[str]) -> str:
    """Return ``name`` or a numbered variant not in ``taken`` (lowercased)."""
    candidate = name
    suffix = 2
    while candidate.lower() in taken:
        candidate = f"{name} ({suffix})"
        suffix += 1
    return candidate


def _normalize_profiles(raw_menus: list[Any]) -> list[MenuProfileState]:
    """Decode profile entries, skipping unnamed ones.

    Duplicate ids are reassigned; duplicate names get a numbered suffix.
    """
    menus: list[MenuProfileState] = []
    seen_ids: set[str] = set()
    seen_names: set[str] = set()
    for entry in raw_menus:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        menu_id = entry.get("id")
        if not isinstance(menu_id, str) or not menu_id or menu_id in seen_ids:
            menu_id = new_id()
        unique = _unique_name(name.strip(), seen_names)
        seen_ids.add(menu_id)
        seen_names.add(unique.lower())
        menus.append(
            MenuProfileState(
                id=menu_id,
                name=unique,
                meal_data=normalize_meal_data(entry.get("mealData")),
                cell_people_count=normalize_people_count(
                    entry.get("cellPeopleCount")
                ),
                cooked_status=normalize_cooked_status(entry.get("cookedStatus")),
            )
        )
    return menus


def default_profile(name: str = DEFAULT_MENU_NAME) -> MenuProfileState:
    """Create an empty profile.

    Args:
        name: Profile display name.

    Returns:
        New MenuProfileState with a fresh id.
    """
    return MenuProfileState(name=name)


def _fresh(default_name: str) -> ParsedBundle:
    profile = default_profile(default_name)
    return ParsedBundle(menus=[profile], active_menu_id=profile.id)


# ---------------------------------------------------------------------------
# Migration pipeline
# ---------------------------------------------------------------------------


def _migrate_v1_to_v2(payload: Any, context: LegacyContext) -> dict[str, Any]:
    """Wrap a pre-versioning flat meal map into a single-profile bundle.

    The legacy people-count and cooked maps lived under their own keys and
    are folded into the profile here.
    """
    menu_id = new_id()
    return {
        "version": 2,
        "activeMenuId": menu_id,
        "menus": [
            {
                "id": menu_id,
                "name": context.default_name,
                "mealData": payload if isinstance(payload, dict) else {},
                "cellPeopleCount": context.people_count,
                "cookedStatus": context.cooked_status,
            }
        ],
    }


MigrationStep = Callable[[Any, LegacyContext], dict[str, Any]]

MIGRATIONS: dict[int, MigrationStep] = {
    LEGACY_VERSION: _migrate_v1_to_v2,
}


def detect_version(payload: Any) -> int:
    """Determine the schema version of a decoded payload.

    A payload counts as version 2 only if it declares it and carries at
    least one profile with a usable name; anything else is legacy.

    Args:
        payload: Decoded JSON value.

    Returns:
        Schema version number.
    """
    if not isinstance(payload, dict):
        return LEGACY_VERSION
    version = payload.get("version")
    menus = payload.get("menus")
    if version == CURRENT_VERSION and isinstance(menus, list):
        if _normalize_profiles(menus):
            return CURRENT_VERSION
    return LEGACY_VERSION


def migrate(payload: Any, context: LegacyContext) -> dict[str, Any]:
    """Upgrade a decoded payload to the current schema.

    Args:
        payload: Decoded JSON value of any known version.
        context: Legacy side data used by older steps.

    Returns:
        Payload in the current (version 2) shape.
    """
    version = detect_version(payload)
    while version < CURRENT_VERSION:
        step = MIGRATIONS[version]
        logger.info("Migrating menu bundle from version %d", version)
        payload = step(payload, context)
        version += 1
    return payload


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_bundle(
    raw: str | None,
    legacy_people_count: Any = None,
    legacy_cooked_status: Any = None,
    default_name: str = DEFAULT_MENU_NAME,
) -> ParsedBundle:
    """Decode a stored bundle, repairing anything it cannot read.

    Args:
        raw: Stored JSON text, or None when the key is absent.
        legacy_people_count: Decoded legacy ``cellPeopleCount`` map.
        legacy_cooked_status: Decoded legacy ``cookedStatus`` map.
        default_name: Name for profiles created during repair.

    Returns:
        ParsedBundle with at least one profile and a valid active id.
    """
    if raw is None or not raw.strip():
        return _fresh(default_name)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Menu bundle is not valid JSON; starting fresh")
        return _fresh(default_name)

    context = LegacyContext(
        people_count=legacy_people_count,
        cooked_status=legacy_cooked_status,
        default_name=default_name,
    )
    current = migrate(payload, context)
    menus = _normalize_profiles(current["menus"])
    if not menus:
        return _fresh(default_name)

    active_menu_id = current.get("activeMenuId")
    if not any(menu.id == active_menu_id for menu in menus):
        active_menu_id = menus[0].id
    return ParsedBundle(menus=menus, active_menu_id=active_menu_id)


def serialize_bundle(menus: list[MenuProfileState], active_menu_id: str) -> str:
    """Encode profiles as a version 2 bundle.

    Args:
        menus: Every profile of the period, active or not.
        active_menu_id: Id of the active profile.

    Returns:
        JSON text.
    """
    bundle = MenuStorageBundle(active_menu_id=active_menu_id, menus=menus)
    return json.dumps(
        bundle.model_dump(mode="json", by_alias=True, exclude_none=True),
        ensure_ascii=False,
    )
