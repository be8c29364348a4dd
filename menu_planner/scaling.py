"""Ingredient scaling by party size.

Menu items store ingredient snapshots already multiplied for the people
count chosen when the item was added; nothing is rescaled later.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from menu_planner.models import Ingredient


def countable_ingredients(ingredients: Iterable[Ingredient]) -> list[Ingredient]:
    """Filter out unnamed and zero-amount ingredients.

    Args:
        ingredients: Raw ingredient lines.

    Returns:
        Ingredients eligible for scaling and pantry deduction.
    """
    return [ing for ing in ingredients if ing.is_countable()]


def scale_factor(base_servings: float, target_people: float) -> float:
    """Compute the multiplier from a recipe's servings to a party size.

    The base is clamped to at least 1; a non-positive target counts as 1.
    Fractional targets scale linearly.

    Args:
        base_servings: Servings the recipe amounts are written for.
        target_people: People to cook for.

    Returns:
        Positive scale factor.
    """
    target = target_people if target_people > 0 else 1
    return target / max(base_servings, 1)


def scale_ingredients(
    ingredients: Iterable[Ingredient],
    base_servings: float,
    target_people: float,
) -> list[Ingredient]:
    """Scale an ingredient list from its base servings to a party size.

    Non-countable ingredients are dropped. To-taste ingredients are kept
    with an amount of zero. The input models are not modified.

    Args:
        ingredients: Recipe ingredient lines.
        base_servings: Servings the amounts are written for.
        target_people: People to cook for.

    Returns:
        New list of scaled ingredients.
    """
    factor = scale_factor(base_servings, target_people)
    scaled: list[Ingredient] = []
    for ing in countable_ingredients(ingredients):
        amount = 0.0 if ing.is_taste else ing.amount * factor
        scaled.append(ing.model_copy(update={"amount": amount}))
    return scaled
