"""Shopping-list export from a menu profile.

:func:`build_shopping_request` turns the cells of a profile into the dish
list a shopping-list builder consumes: resolved dish names, the people
count map and each dish's effective ingredients. :func:`aggregate` sums
those ingredients per normalized name and unit and, given a pantry,
reports what is still missing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from menu_planner.addressing import split_cell_key
from menu_planner.models import (
    Ingredient,
    PantryItem,
    TextMenuItem,
    normalize_name,
)
from menu_planner.store import item_cooked, item_ingredients

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

    from menu_planner.models import MenuItem, MenuProfileState
    from menu_planner.recipes import RecipeLookup

logger = logging.getLogger(__name__)


class ShoppingDish(BaseModel):
    """One dish of the exported menu."""

    model_config = ConfigDict(populate_by_name=True)

    cell: str
    name: str
    people: int = 1
    cooked: bool = False
    ingredients: list[Ingredient] = Field(default_factory=list)


class ShoppingListRequest(BaseModel):
    """Dish list plus people counts handed to a shopping-list builder."""

    model_config = ConfigDict(populate_by_name=True)

    dishes: list[ShoppingDish] = Field(default_factory=list)
    people_count: dict[str, int] = Field(default_factory=dict, alias="peopleCount")

    @property
    def dish_names(self) -> list[str]:
        """Names of every dish in cell order."""
        return [d.name for d in self.dishes]


class ShoppingLine(BaseModel):
    """An aggregated ingredient line."""

    name: str
    unit: str
    total_amount: float
    in_pantry: float = 0.0

    @property
    def remaining(self) -> float:
        """Amount still to buy, never negative."""
        return max(0.0, self.total_amount - self.in_pantry)


def dish_name(item: MenuItem, recipes: RecipeLookup | None = None) -> str:
    """Resolve the display name of a menu item.

    Args:
        item: Menu item.
        recipes: Optional lookup used when a recipe item has no cached title.

    Returns:
        Dish name; empty when nothing resolves.
    """
    if isinstance(item, TextMenuItem):
        return item.value.strip()
    if item.value:
        return item.value
    if recipes is not None:
        recipe = recipes.get_recipe(item.recipe_id)
        if recipe is not None:
            return recipe.title
    return ""


def build_shopping_request(
    profile: MenuProfileState,
    recipes: RecipeLookup | None = None,
    days: Collection[str] | None = None,
    include_cooked: bool = True,
) -> ShoppingListRequest:
    """Export a profile's cells as a shopping-list request.

    Args:
        profile: Menu profile to export.
        recipes: Lookup for recipe items lacking a snapshot or title.
        days: Optional ISO dates to restrict the export to.
        include_cooked: Whether dishes already cooked are exported.

    Returns:
        ShoppingListRequest with dishes ordered by cell key.
    """
    dishes: list[ShoppingDish] = []
    for cell in sorted(profile.meal_data):
        address = split_cell_key(cell)
        if address is None:
            logger.debug("Skipping unaddressable cell %r", cell)
            continue
        if days and address.date not in days:
            continue
        people = profile.cell_people_count.get(cell, 1)
        for item in profile.meal_data[cell]:
            cooked = item_cooked(profile, item)
            if cooked and not include_cooked:
                continue
            name = dish_name(item, recipes)
            if not name:
                continue
            dishes.append(
                ShoppingDish(
                    cell=cell,
                    name=name,
                    people=people,
                    cooked=cooked,
                    ingredients=item_ingredients(item, people, recipes),
                )
            )
    return ShoppingListRequest(
        dishes=dishes, people_count=dict(profile.cell_people_count)
    )


def aggregate(
    request: ShoppingListRequest, pantry: Iterable[PantryItem] = ()
) -> list[ShoppingLine]:
    """Sum dish ingredients per normalized name and unit.

    Args:
        request: Exported dish list.
        pantry: Pantry rows used to compute what is already at hand.

    Returns:
        Lines sorted by name; to-taste ingredients appear with amount 0.
    """
    totals: dict[tuple[str, str], float] = {}
    for dish in request.dishes:
        for ing in dish.ingredients:
            key = (normalize_name(ing.name), ing.unit)
            totals[key] = totals.get(key, 0.0) + ing.amount

    stock: dict[tuple[str, str], float] = {}
    for row in pantry:
        key = (normalize_name(row.name), row.unit)
        stock[key] = stock.get(key, 0.0) + row.amount

    return [
        ShoppingLine(
            name=name[:1].upper() + name[1:],
            unit=unit,
            total_amount=amount,
            in_pantry=stock.get((name, unit), 0.0),
        )
        for (name, unit), amount in sorted(totals.items())
    ]
