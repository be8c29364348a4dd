"""Tests for menu_planner.meal_slots module."""

from __future__ import annotations

import json

import pytest

from menu_planner.meal_slots import (
    DEFAULT_MEAL_SLOTS,
    MealSlotRegistry,
    meal_labels,
    migrate_meal_data,
    migrate_people_count,
)
from menu_planner.models import DayStructureMode, TextMenuItem
from menu_planner.storage import MemoryStorage

RANGE = "2024-01-01__2024-01-07"
OTHER_RANGE = "2024-01-08__2024-01-14"


def _item(value: str) -> TextMenuItem:
    return TextMenuItem(value=value)


@pytest.fixture()
def storage() -> MemoryStorage:
    """Empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture()
def registry(storage: MemoryStorage) -> MealSlotRegistry:
    """Registry loaded for the test period."""
    return MealSlotRegistry(storage, RANGE)


class TestMigrateMealData:
    """Tests for the pure cell rename migration."""

    def test_moves_cells(self) -> None:
        """Test cells of the old label move under the new label."""
        data = {"2024-01-01-A": [_item("x")], "2024-01-02-A": [_item("y")]}
        result = migrate_meal_data(data, "A", "B")
        assert set(result) == {"2024-01-01-B", "2024-01-02-B"}

    def test_merges_without_overwriting(self) -> None:
        """Test existing destination items come first, moved items after."""
        data = {"2024-01-01-A": [_item("moved")], "2024-01-01-B": [_item("kept")]}
        result = migrate_meal_data(data, "A", "B")
        assert [i.value for i in result["2024-01-01-B"]] == ["kept", "moved"]
        assert "2024-01-01-A" not in result

    def test_preserves_total_item_count(self) -> None:
        """Test no items are lost and no cell keeps the old label."""
        data = {
            "2024-01-01-A": [_item("1"), _item("2")],
            "2024-01-01-B": [_item("3")],
            "2024-01-02-C": [_item("4")],
            "junk": [_item("5")],
        }
        result = migrate_meal_data(data, "A", "B")
        assert sum(map(len, result.values())) == 5
        assert not any(k.endswith("-A") for k in result)

    def test_does_not_touch_similar_labels(self) -> None:
        """Test only exact label matches are re-keyed."""
        data = {"2024-01-01-Ужин поздний": [_item("x")]}
        assert migrate_meal_data(data, "Ужин", "Dinner") == data

    def test_input_untouched(self) -> None:
        """Test the input mapping is not modified."""
        data = {"2024-01-01-A": [_item("x")], "2024-01-01-B": [_item("y")]}
        migrate_meal_data(data, "A", "B")
        assert len(data["2024-01-01-B"]) == 1


class TestMigratePeopleCount:
    """Tests for the pure people-count migration."""

    def test_moves_counts(self) -> None:
        """Test overrides follow the renamed cells."""
        assert migrate_people_count({"2024-01-01-A": 3}, "A", "B") == {
            "2024-01-01-B": 3
        }

    def test_destination_wins(self) -> None:
        """Test an existing destination override is kept."""
        counts = {"2024-01-01-A": 3, "2024-01-01-B": 5}
        assert migrate_people_count(counts, "A", "B") == {"2024-01-01-B": 5}


class TestMealLabels:
    """Tests for meal_labels."""

    def test_first_seen_order(self) -> None:
        """Test labels are distinct, ordered and skip junk keys."""
        keys = ["2024-01-01-Обед", "bad", "2024-01-02-Полдник", "2024-01-03-Обед"]
        assert meal_labels(keys) == ["Обед", "Полдник"]


class TestRegistryLoading:
    """Tests for registry persistence tiers."""

    def test_canonical_fallback(self, registry: MealSlotRegistry) -> None:
        """Test the canonical slots are used with nothing stored."""
        assert [s.name for s in registry.slots] == list(DEFAULT_MEAL_SLOTS)
        assert [s.order for s in registry.slots] == [0, 1, 2]

    def test_default_template_seeds_new_period(self, storage: MemoryStorage) -> None:
        """Test the defaults template applies to unseen periods."""
        first = MealSlotRegistry(storage, RANGE)
        first.add("Полдник")
        first.save_as_default()
        second = MealSlotRegistry(storage, OTHER_RANGE)
        assert [s.name for s in second.slots][-1] == "Полдник"

    def test_per_period_settings_isolated(self, storage: MemoryStorage) -> None:
        """Test per-period mode keeps edits in the edited period."""
        MealSlotRegistry(storage, RANGE).add("Полдник")
        other = MealSlotRegistry(storage, OTHER_RANGE)
        assert other.find_by_name("Полдник") is None
        assert MealSlotRegistry(storage, RANGE).find_by_name("полдник") is not None

    def test_shared_mode(self, storage: MemoryStorage) -> None:
        """Test shared mode uses one settings key for all periods."""
        registry = MealSlotRegistry(storage, RANGE)
        registry.set_mode(DayStructureMode.SHARED)
        registry.add("Полдник")
        assert storage.get("menuMealStructureSettings") is not None
        assert MealSlotRegistry(storage, OTHER_RANGE).find_by_name("Полдник")

    def test_default_mode(self, registry: MealSlotRegistry) -> None:
        """Test an unset or garbage mode reads as per period."""
        assert registry.mode is DayStructureMode.PER_PERIOD

    def test_malformed_settings_repaired(self, storage: MemoryStorage) -> None:
        """Test duplicates and junk are dropped and order renumbered."""
        storage.set(
            f"menuMealStructureSettings:{RANGE}",
            json.dumps(
                [
                    {"id": "b", "name": "Ужин", "order": 7},
                    {"id": "a", "name": "Завтрак", "order": 2},
                    {"id": "c", "name": "ужин", "order": 9},
                    "junk",
                ]
            ),
        )
        registry = MealSlotRegistry(storage, RANGE)
        assert [(s.name, s.order) for s in registry.slots] == [
            ("Завтрак", 0),
            ("Ужин", 1),
        ]


class TestRegistryMutations:
    """Tests for registry mutations."""

    def test_add_rejects_duplicates(self, registry: MealSlotRegistry) -> None:
        """Test names are unique case-insensitively."""
        assert registry.add("обед") is None
        assert registry.add("  ") is None
        slot = registry.add("Полдник")
        assert slot is not None
        assert slot.order == 3

    def test_toggle_visibility(self, registry: MealSlotRegistry) -> None:
        """Test hiding removes a slot from the visible list."""
        lunch = registry.find_by_name("Обед")
        assert lunch is not None
        assert registry.toggle_visibility(lunch.id) is True
        assert "Обед" not in [s.name for s in registry.visible_slots]
        assert registry.toggle_visibility("missing") is False

    def test_rename(self, registry: MealSlotRegistry) -> None:
        """Test rename returns the old name and rejects collisions."""
        dinner = registry.find_by_name("Ужин")
        assert dinner is not None
        assert registry.rename(dinner.id, "завтрак") is None
        assert registry.rename(dinner.id, "") is None
        assert registry.rename(dinner.id, "Вечеря") == "Ужин"
        assert registry.get(dinner.id).name == "Вечеря"  # type: ignore[union-attr]

    def test_reorder(self, registry: MealSlotRegistry) -> None:
        """Test moving a slot swaps neighbours and renumbers densely."""
        dinner = registry.find_by_name("Ужин")
        assert dinner is not None
        assert registry.reorder(dinner.id, 1) is False
        assert registry.reorder(dinner.id, -1) is True
        assert [s.name for s in registry.slots] == ["Завтрак", "Ужин", "Обед"]
        assert [s.order for s in registry.slots] == [0, 1, 2]

    def test_ensure_slots(self, registry: MealSlotRegistry) -> None:
        """Test unknown labels are appended once."""
        added = registry.ensure_slots(["Обед", "Перекус", "перекус"])
        assert [s.name for s in added] == ["Перекус"]

    def test_mutations_persist(
        self, storage: MemoryStorage, registry: MealSlotRegistry
    ) -> None:
        """Test edits are visible to a freshly loaded registry."""
        registry.add("Полдник")
        reloaded = MealSlotRegistry(storage, RANGE)
        assert [s.name for s in reloaded.slots] == [s.name for s in registry.slots]
