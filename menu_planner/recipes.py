"""Local recipe catalog.

Recipes are stored as a JSON list under the ``recipes`` key. The menu
store only needs :meth:`RecipeCatalog.get_recipe` to rescale a recipe for a
cell; the rest serves the CLI and ranking.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Protocol

from pydantic import ValidationError

from menu_planner.addressing import RECIPES_KEY
from menu_planner.models import Recipe
from menu_planner.storage import read_json, write_json

if TYPE_CHECKING:
    from menu_planner.storage import StoragePort

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_recipe_title(title: str) -> str:
    """Normalize a recipe title for lookup.

    Lowercases, removes punctuation and collapses whitespace.

    Args:
        title: Raw recipe title.

    Returns:
        Normalized title string.
    """
    result = _PUNCTUATION_RE.sub("", title.lower().strip())
    return _WHITESPACE_RE.sub(" ", result).strip()


class RecipeLookup(Protocol):
    """Protocol for resolving a recipe by id.

    Defines the minimal interface MenuProfileStore needs to rescale a
    recipe-backed menu item that carries no ingredient snapshot.
    """

    def get_recipe(self, recipe_id: str) -> Recipe | None:
        """Return the recipe with this id, or None."""
        ...  # pragma: no cover


class RecipeCatalog:
    """Storage-backed list of saved recipes.

    Args:
        storage: Storage backend.
    """

    def __init__(self, storage: StoragePort) -> None:
        """Initialize the catalog.

        Args:
            storage: Storage backend.
        """
        self._storage = storage

    def list_recipes(self) -> list[Recipe]:
        """Return all decodable recipes in stored order.

        Returns:
            List of Recipe models; malformed entries are skipped.
        """
        raw = read_json(self._storage, RECIPES_KEY, default=[])
        if not isinstance(raw, list):
            return []
        recipes: list[Recipe] = []
        for entry in raw:
            try:
                recipes.append(Recipe.model_validate(entry))
            except ValidationError:
                logger.debug("Skipping malformed recipe entry: %r", entry)
        return recipes

    def get_recipe(self, recipe_id: str) -> Recipe | None:
        """Look up a recipe by id.

        Args:
            recipe_id: Recipe id.

        Returns:
            Matching Recipe or None.
        """
        return next((r for r in self.list_recipes() if r.id == recipe_id), None)

    def find_by_title(self, title: str) -> Recipe | None:
        """Look up a recipe by normalized title.

        Args:
            title: Recipe title in any casing or punctuation.

        Returns:
            First matching Recipe or None.
        """
        wanted = normalize_recipe_title(title)
        return next(
            (r for r in self.list_recipes() if normalize_recipe_title(r.title) == wanted),
            None,
        )

    def save_recipe(self, recipe: Recipe) -> bool:
        """Insert or replace a recipe by id.

        Args:
            recipe: Recipe to store.

        Returns:
            True if the write succeeded.
        """
        recipes = [r for r in self.list_recipes() if r.id != recipe.id]
        recipes.append(recipe)
        return self._write(recipes)

    def remove_recipe(self, recipe_id: str) -> bool:
        """Delete a recipe.

        Args:
            recipe_id: Recipe id.

        Returns:
            True if a recipe was removed and the write succeeded.
        """
        recipes = self.list_recipes()
        remaining = [r for r in recipes if r.id != recipe_id]
        if len(remaining) == len(recipes):
            return False
        return self._write(remaining)

    def _write(self, recipes: list[Recipe]) -> bool:
        return write_json(
            self._storage,
            RECIPES_KEY,
            [r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in recipes],
        )
