"""Meal slot registry: the ordered, nameable columns of the menu grid.

Slot settings are persisted in two tiers. The active settings live either
per period (``menuMealStructureSettings:<range>``) or shared across periods
(``menuMealStructureSettings``), depending on ``menuDayStructureMode``.
A separate template (``menuMealStructureDefaults``) seeds periods that
have no settings yet; without one, the three canonical slots are used.

Renaming a slot changes the cell keys of the menu, so the cell migration
is provided here as pure functions for the store to apply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from menu_planner.addressing import (
    DAY_STRUCTURE_MODE_KEY,
    MEAL_STRUCTURE_DEFAULTS_KEY,
    make_cell_key,
    meal_structure_storage_key,
    split_cell_key,
)
from menu_planner.models import DayStructureMode, MealSlotSetting
from menu_planner.storage import read_json, read_raw, write_json, write_raw

if TYPE_CHECKING:
    from collections.abc import Iterable

    from menu_planner.storage import StoragePort

logger = logging.getLogger(__name__)

DEFAULT_MEAL_SLOTS: tuple[str, ...] = ("Завтрак", "Обед", "Ужин")


# ---------------------------------------------------------------------------
# Pure cell migration
# ---------------------------------------------------------------------------


def _rekey(key: str, old_name: str, new_name: str) -> str | None:
    """Return the renamed key for cells labelled ``old_name``, else None."""
    address = split_cell_key(key)
    if address is None or address.meal != old_name:
        return None
    return make_cell_key(address.date, new_name)


def migrate_meal_data(
    meal_data: dict[str, list[Any]],
    old_name: str,
    new_name: str,
) -> dict[str, list[Any]]:
    """Move every cell labelled ``old_name`` under ``new_name``.

    When the destination cell already holds items, the moved items are
    appended after the existing ones. The input mapping is not modified.

    Args:
        meal_data: ``{cellKey: items}`` of one profile.
        old_name: Meal label being renamed.
        new_name: Replacement meal label.

    Returns:
        New mapping with no cell addressed by ``old_name``.
    """
    if old_name == new_name:
        return {key: list(items) for key, items in meal_data.items()}
    result = {
        key: list(items)
        for key, items in meal_data.items()
        if _rekey(key, old_name, new_name) is None
    }
    for key, items in meal_data.items():
        target = _rekey(key, old_name, new_name)
        if target is None:
            continue
        result[target] = result.get(target, []) + list(items)
    return result


def migrate_people_count(
    counts: dict[str, int],
    old_name: str,
    new_name: str,
) -> dict[str, int]:
    """Move people-count overrides from ``old_name`` cells to ``new_name``.

    An override already present on the destination cell is kept.

    Args:
        counts: ``{cellKey: people}`` of one profile.
        old_name: Meal label being renamed.
        new_name: Replacement meal label.

    Returns:
        New mapping with no cell addressed by ``old_name``.
    """
    if old_name == new_name:
        return dict(counts)
    result = {
        key: value
        for key, value in counts.items()
        if _rekey(key, old_name, new_name) is None
    }
    for key, value in counts.items():
        target = _rekey(key, old_name, new_name)
        if target is not None:
            result.setdefault(target, value)
    return result


def meal_labels(cell_keys: Iterable[str]) -> list[str]:
    """Collect distinct meal labels from cell keys in first-seen order.

    Args:
        cell_keys: Cell keys; non-conforming keys are skipped.

    Returns:
        Ordered list of meal labels.
    """
    labels: list[str] = []
    for key in cell_keys:
        address = split_cell_key(key)
        if address is not None and address.meal not in labels:
            labels.append(address.meal)
    return labels


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _canonical_slots() -> list[MealSlotSetting]:
    return [
        MealSlotSetting(name=name, order=index)
        for index, name in enumerate(DEFAULT_MEAL_SLOTS)
    ]


def _decode_slots(raw: Any) -> list[MealSlotSetting] | None:
    """Decode a stored slot list; None when nothing usable is stored.

    Malformed entries and case-insensitive duplicate names are dropped,
    and ``order`` is renumbered densely.
    """
    if not isinstance(raw, list):
        return None
    slots: list[MealSlotSetting] = []
    seen: set[str] = set()
    for entry in raw:
        try:
            slot = MealSlotSetting.model_validate(entry)
        except ValidationError:
            continue
        name = slot.name.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        slots.append(slot.model_copy(update={"name": name}))
    if not slots:
        return None
    slots.sort(key=lambda s: s.order)
    return _renumber(slots)


def _renumber(slots: list[MealSlotSetting]) -> list[MealSlotSetting]:
    return [slot.model_copy(update={"order": i}) for i, slot in enumerate(slots)]


def _encode_slots(slots: list[MealSlotSetting]) -> list[dict[str, Any]]:
    return [slot.model_dump(mode="json", by_alias=True) for slot in slots]


class MealSlotRegistry:
    """Ordered set of meal slots for the current period.

    Every mutation is persisted immediately. Mutations that fail
    validation are no-ops and report it through their return value.

    Args:
        storage: Storage backend.
        range_key: Period to load, or None to load later.
    """

    def __init__(self, storage: StoragePort, range_key: str | None = None) -> None:
        """Initialize the registry.

        Args:
            storage: Storage backend.
            range_key: Period to load, or None to load later.
        """
        self._storage = storage
        self._range_key: str | None = None
        self._slots: list[MealSlotSetting] = _canonical_slots()
        if range_key is not None:
            self.load(range_key)

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    @property
    def mode(self) -> DayStructureMode:
        """Where slot settings are stored."""
        raw = read_raw(self._storage, DAY_STRUCTURE_MODE_KEY)
        try:
            return DayStructureMode(raw or DayStructureMode.PER_PERIOD)
        except ValueError:
            return DayStructureMode.PER_PERIOD

    def set_mode(self, mode: DayStructureMode) -> None:
        """Switch between per-period and shared slot settings.

        The current slots are saved under the new mode's key so the grid
        does not change on switching.

        Args:
            mode: New storage mode.
        """
        write_raw(self._storage, DAY_STRUCTURE_MODE_KEY, mode.value)
        self.save()

    def _settings_key(self) -> str:
        if self.mode is DayStructureMode.SHARED or self._range_key is None:
            return meal_structure_storage_key()
        return meal_structure_storage_key(self._range_key)

    def load(self, range_key: str) -> None:
        """Load slot settings for a period.

        Falls back to the saved default template, then to the canonical
        breakfast/lunch/dinner slots.

        Args:
            range_key: Period range key.
        """
        self._range_key = range_key
        for key in (self._settings_key(), MEAL_STRUCTURE_DEFAULTS_KEY):
            slots = _decode_slots(read_json(self._storage, key))
            if slots is not None:
                self._slots = slots
                return
        self._slots = _canonical_slots()

    def save(self) -> bool:
        """Persist the current slots under the active settings key.

        Returns:
            True if the write succeeded.
        """
        return write_json(
            self._storage, self._settings_key(), _encode_slots(self._slots)
        )

    def save_as_default(self) -> bool:
        """Store the current slots as the template for new periods.

        Returns:
            True if the write succeeded.
        """
        return write_json(
            self._storage, MEAL_STRUCTURE_DEFAULTS_KEY, _encode_slots(self._slots)
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def slots(self) -> list[MealSlotSetting]:
        """All slots in display order."""
        return list(self._slots)

    @property
    def visible_slots(self) -> list[MealSlotSetting]:
        """Visible slots in display order."""
        return [slot for slot in self._slots if slot.visible]

    def get(self, slot_id: str) -> MealSlotSetting | None:
        """Look up a slot by id."""
        return next((s for s in self._slots if s.id == slot_id), None)

    def find_by_name(self, name: str) -> MealSlotSetting | None:
        """Look up a slot by case-insensitive name."""
        wanted = name.strip().lower()
        return next((s for s in self._slots if s.name.lower() == wanted), None)

    def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        wanted = name.lower()
        return any(
            s.name.lower() == wanted and s.id != exclude_id for s in self._slots
        )

    def _replace(self, updated: MealSlotSetting) -> None:
        self._slots = [updated if s.id == updated.id else s for s in self._slots]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, name: str) -> MealSlotSetting | None:
        """Append a visible slot at the end.

        Args:
            name: Slot name.

        Returns:
            The new slot, or None if the name is empty or taken.
        """
        cleaned = name.strip()
        if not cleaned or self._name_taken(cleaned):
            return None
        slot = MealSlotSetting(name=cleaned, order=len(self._slots))
        self._slots.append(slot)
        self.save()
        return slot

    def toggle_visibility(self, slot_id: str) -> bool:
        """Show a hidden slot or hide a visible one.

        Args:
            slot_id: Slot id.

        Returns:
            True if the slot exists.
        """
        slot = self.get(slot_id)
        if slot is None:
            return False
        self._replace(slot.model_copy(update={"visible": not slot.visible}))
        self.save()
        return True

    def rename(self, slot_id: str, new_name: str) -> str | None:
        """Rename a slot.

        Only the setting changes here; callers owning menu data must also
        re-key cells with :func:`migrate_meal_data`.

        Args:
            slot_id: Slot id.
            new_name: Replacement name.

        Returns:
            The previous name, or None when rejected.
        """
        slot = self.get(slot_id)
        cleaned = new_name.strip()
        if slot is None or not cleaned or self._name_taken(cleaned, slot_id):
            return None
        old_name = slot.name
        self._replace(slot.model_copy(update={"name": cleaned}))
        self.save()
        return old_name

    def reorder(self, slot_id: str, direction: int) -> bool:
        """Move a slot one position up (-1) or down (+1).

        Args:
            slot_id: Slot id.
            direction: Negative to move earlier, positive to move later.

        Returns:
            True if the slot moved.
        """
        index = next((i for i, s in enumerate(self._slots) if s.id == slot_id), None)
        if index is None or direction == 0:
            return False
        target = index + (1 if direction > 0 else -1)
        if not 0 <= target < len(self._slots):
            return False
        slots = list(self._slots)
        slots[index], slots[target] = slots[target], slots[index]
        self._slots = _renumber(slots)
        self.save()
        return True

    def ensure_slots(self, names: Iterable[str]) -> list[MealSlotSetting]:
        """Append visible slots for names not yet registered.

        Args:
            names: Meal labels found in menu data.

        Returns:
            Slots that were added.
        """
        added: list[MealSlotSetting] = []
        for name in names:
            cleaned = name.strip()
            if not cleaned or self._name_taken(cleaned):
                continue
            slot = MealSlotSetting(name=cleaned, order=len(self._slots))
            self._slots.append(slot)
            added.append(slot)
        if added:
            logger.info(
                "Restored meal slots from menu data: %s",
                ", ".join(s.name for s in added),
            )
            self.save()
        return added
