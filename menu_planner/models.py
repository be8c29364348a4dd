"""Pydantic models and enums for the menu planner.

This is the shared type system. Wire names follow the persisted camelCase
JSON (``recipeId``, ``mealData`` ...); Python code uses the snake_case
field names. Every model accepts both.
"""

from __future__ import annotations

import re
import uuid
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Units and names
# ---------------------------------------------------------------------------

TO_TASTE_UNIT = "to taste"

_TO_TASTE_ALIASES: frozenset[str] = frozenset(
    {
        "to taste",
        "to_taste",
        "по вкусу",
        "al gusto",
        "a gusto",
        "немного",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")


def is_taste_unit(unit: str | None) -> bool:
    """Check whether a unit string means "to taste".

    Args:
        unit: Raw unit string from storage or user input.

    Returns:
        True if the unit denotes a qualitative, unscalable amount.
    """
    if not unit:
        return False
    cleaned = _WHITESPACE_RE.sub(" ", unit.strip().lower())
    return cleaned in _TO_TASTE_ALIASES


def normalize_name(value: str) -> str:
    """Normalize a product or ingredient name for matching.

    Trims, collapses internal whitespace and lowercases.

    Args:
        value: Raw name.

    Returns:
        Normalized name string.
    """
    return _WHITESPACE_RE.sub(" ", value.strip()).lower()


def new_id() -> str:
    """Return a fresh random identifier."""
    return str(uuid.uuid4())


class _WireModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MenuItemType(StrEnum):
    """Kinds of entries a menu cell can hold."""

    RECIPE = "recipe"
    TEXT = "text"


class ActiveProductScope(StrEnum):
    """How long an active product stays relevant."""

    IN_PERIOD = "in_period"
    PERSISTENT = "persistent"
    UNTIL_DATE = "until_date"


_LEGACY_SCOPES: dict[str, ActiveProductScope] = {
    "this_week": ActiveProductScope.IN_PERIOD,
    "today": ActiveProductScope.UNTIL_DATE,
}


def parse_scope(raw: object) -> ActiveProductScope:
    """Parse a raw scope value, mapping legacy names.

    Args:
        raw: Scope value from storage.

    Returns:
        Matching scope, defaulting to ``in_period``.
    """
    if isinstance(raw, ActiveProductScope):
        return raw
    text = str(raw or "").strip().lower()
    try:
        return ActiveProductScope(text)
    except ValueError:
        pass
    return _LEGACY_SCOPES.get(text, ActiveProductScope.IN_PERIOD)


class DayStructureMode(StrEnum):
    """Where meal slot settings are stored."""

    SHARED = "shared"
    PER_PERIOD = "per_period"


# ---------------------------------------------------------------------------
# Ingredients and recipes
# ---------------------------------------------------------------------------


class Ingredient(_WireModel):
    """A single ingredient line with amount and unit."""

    id: str | None = None
    name: str = ""
    amount: float = 0.0
    unit: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: object) -> float:
        """Coerce missing or non-numeric amounts to zero.

        Args:
            v: Raw amount value.

        Returns:
            Float amount.
        """
        if isinstance(v, bool) or v is None:
            return 0.0
        if isinstance(v, (int, float)):
            return float(v)
        try:
            return float(str(v).replace(",", "."))
        except ValueError:
            return 0.0

    @property
    def is_taste(self) -> bool:
        """Whether this ingredient is measured "to taste"."""
        return is_taste_unit(self.unit)

    def is_countable(self) -> bool:
        """Check if the ingredient can be scaled and deducted.

        Returns:
            True when named and either to-taste or with a positive amount.
        """
        if not self.name.strip():
            return False
        return self.is_taste or self.amount > 0


class Recipe(_WireModel):
    """A saved recipe as kept in the local catalog."""

    id: str
    title: str = ""
    ingredients: list[Ingredient] = Field(default_factory=list)
    servings: int = 2
    categories: list[str] = Field(default_factory=list)
    notes: str = ""

    @field_validator("servings", mode="before")
    @classmethod
    def _default_servings(cls, v: object) -> int:
        """Fall back to two servings for missing or invalid values.

        Args:
            v: Raw servings value.

        Returns:
            Positive servings count.
        """
        if isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0:
            return int(v)
        return 2


# ---------------------------------------------------------------------------
# Menu items
# ---------------------------------------------------------------------------


class RecipeMenuItem(_WireModel):
    """A menu entry that references a saved recipe."""

    type: Literal["recipe"] = "recipe"
    id: str = Field(default_factory=new_id)
    recipe_id: str = Field(alias="recipeId")
    value: str | None = None
    ingredients: list[Ingredient] | None = None
    cooked: bool = False

    @property
    def display_name(self) -> str:
        """Cached recipe title, or empty string."""
        return self.value or ""


class TextMenuItem(_WireModel):
    """A free-text menu entry with optional shopping ingredients."""

    type: Literal["text"] = "text"
    id: str = Field(default_factory=new_id)
    value: str
    include_in_shopping: bool = Field(default=True, alias="includeInShopping")
    ingredients: list[Ingredient] | None = None
    cooked: bool = False

    @property
    def display_name(self) -> str:
        """The entry's free text."""
        return self.value


MenuItem = Annotated[RecipeMenuItem | TextMenuItem, Field(discriminator="type")]

MealData = dict[str, list[MenuItem]]


class MenuProfileState(_WireModel):
    """One named menu within a period bundle."""

    id: str = Field(default_factory=new_id)
    name: str
    meal_data: dict[str, list[MenuItem]] = Field(
        default_factory=dict, alias="mealData"
    )
    cell_people_count: dict[str, int] = Field(
        default_factory=dict, alias="cellPeopleCount"
    )
    cooked_status: dict[str, bool] = Field(default_factory=dict, alias="cookedStatus")


class MenuStorageBundle(_WireModel):
    """Versioned persisted payload holding every profile of a period."""

    version: Literal[2] = 2
    active_menu_id: str = Field(alias="activeMenuId")
    menus: list[MenuProfileState]


# ---------------------------------------------------------------------------
# Meal slots, pantry and active products
# ---------------------------------------------------------------------------


class MealSlotSetting(_WireModel):
    """A named column of the menu grid (breakfast, lunch, ...)."""

    id: str = Field(default_factory=new_id)
    name: str
    visible: bool = True
    order: int = 0


class PantryItem(_WireModel):
    """A stocked product in the flat pantry list."""

    name: str
    amount: float = 0.0
    unit: str = ""


ACTIVE_PRODUCT_NOTE_MAX_LENGTH = 120


class ActivePeriodProduct(_WireModel):
    """A product the user wants menus and recipes to favor."""

    id: str = Field(default_factory=new_id)
    name: str
    scope: ActiveProductScope = ActiveProductScope.IN_PERIOD
    until_date: str = Field(default="", alias="untilDate")
    prefer: bool = True
    note: str = ""
    hidden: bool = False

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, v: object) -> ActiveProductScope:
        """Map raw and legacy scope strings to enum members.

        Args:
            v: Raw scope value.

        Returns:
            Normalized scope.
        """
        return parse_scope(v)

    @field_validator("note", mode="before")
    @classmethod
    def _clip_note(cls, v: object) -> str:
        """Trim notes and clip them to the maximum length.

        Args:
            v: Raw note value.

        Returns:
            Clipped note string.
        """
        if not isinstance(v, str):
            return ""
        return v.strip()[:ACTIVE_PRODUCT_NOTE_MAX_LENGTH]
