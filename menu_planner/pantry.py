"""Pantry ledger: stock reconciliation when menu items are cooked.

The pantry is a flat list of ``{name, amount, unit}`` rows stored under the
``pantry`` key. Cooking a dish deducts its countable ingredients from rows
with the same normalized name and the exact same unit string. Rows are
never created by deduction and amounts never go below zero. To-taste
lines are skipped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from menu_planner.addressing import PANTRY_KEY
from menu_planner.models import PantryItem, normalize_name
from menu_planner.scaling import countable_ingredients
from menu_planner.storage import read_json, write_json

if TYPE_CHECKING:
    from collections.abc import Iterable

    from menu_planner.models import Ingredient
    from menu_planner.storage import StoragePort

logger = logging.getLogger(__name__)


def _find_row(pantry: list[PantryItem], name: str, unit: str) -> int | None:
    """Return the index of the row matching name and unit, or None."""
    wanted = normalize_name(name)
    for index, item in enumerate(pantry):
        if normalize_name(item.name) == wanted and item.unit == unit:
            return index
    return None


def deduct_from_pantry(
    pantry: list[PantryItem],
    ingredients: Iterable[Ingredient],
) -> list[PantryItem]:
    """Subtract ingredient amounts from matching pantry rows.

    Args:
        pantry: Current pantry rows (not modified).
        ingredients: Ingredients consumed by a cooked dish.

    Returns:
        New pantry list with clamped amounts.
    """
    updated = list(pantry)
    for ing in countable_ingredients(ingredients):
        if ing.is_taste:
            continue
        index = _find_row(updated, ing.name, ing.unit)
        if index is None:
            continue
        row = updated[index]
        updated[index] = row.model_copy(
            update={"amount": max(0.0, row.amount - ing.amount)}
        )
    return updated


class PantryLedger:
    """Storage-backed pantry with deduction and restocking.

    Args:
        storage: Storage backend.
    """

    def __init__(self, storage: StoragePort) -> None:
        """Initialize the ledger.

        Args:
            storage: Storage backend.
        """
        self._storage = storage

    def load(self) -> list[PantryItem]:
        """Read the pantry, skipping malformed rows.

        Returns:
            List of PantryItem rows in stored order.
        """
        raw = read_json(self._storage, PANTRY_KEY, default=[])
        if not isinstance(raw, list):
            return []
        items: list[PantryItem] = []
        for entry in raw:
            try:
                items.append(PantryItem.model_validate(entry))
            except ValidationError:
                logger.debug("Skipping malformed pantry row: %r", entry)
        return items

    def save(self, items: list[PantryItem]) -> bool:
        """Replace the stored pantry.

        Args:
            items: Pantry rows to store.

        Returns:
            True if the write succeeded.
        """
        return write_json(
            self._storage,
            PANTRY_KEY,
            [item.model_dump(mode="json") for item in items],
        )

    def deduct(self, ingredients: Iterable[Ingredient]) -> list[PantryItem]:
        """Deduct ingredients from the stored pantry and persist the result.

        Args:
            ingredients: Ingredients consumed by a cooked dish.

        Returns:
            The updated pantry rows.
        """
        updated = deduct_from_pantry(self.load(), ingredients)
        self.save(updated)
        return updated

    def restock(self, name: str, amount: float, unit: str) -> list[PantryItem]:
        """Add stock to a matching row, or append a new row.

        Args:
            name: Product name.
            amount: Amount to add; non-positive amounts are ignored.
            unit: Unit string, matched exactly.

        Returns:
            The updated pantry rows.
        """
        items = self.load()
        if not name.strip() or amount <= 0:
            return items
        index = _find_row(items, name, unit)
        if index is None:
            items.append(PantryItem(name=name.strip(), amount=amount, unit=unit))
        else:
            row = items[index]
            items[index] = row.model_copy(update={"amount": row.amount + amount})
        self.save(items)
        return items
