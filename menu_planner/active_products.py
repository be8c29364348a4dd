"""Active (priority) products: matching against recipes and per-period list.

An active product is something the user wants menus to favor for a while,
e.g. "zucchini" from the garden. Recipes are ranked by how many active
products appear among their ingredients.

The list for a period lives under ``activeProducts:<range>``. When a
:class:`~menu_planner.cloud_sync.CloudSyncAdapter` is attached, the list is
mirrored to the user's cloud metadata. A cloud snapshot is applied at most
once per period, and pushes only start after hydration, so once hydrated
local edits always win.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from menu_planner.addressing import active_products_storage_key, split_range_key
from menu_planner.models import (
    ACTIVE_PRODUCT_NOTE_MAX_LENGTH,
    ActivePeriodProduct,
    ActiveProductScope,
    normalize_name,
)
from menu_planner.storage import read_json, write_json

if TYPE_CHECKING:
    from collections.abc import Iterable

    from menu_planner.cloud_sync import CloudSyncAdapter
    from menu_planner.models import Recipe
    from menu_planner.storage import StoragePort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def match_count(
    recipe_ingredient_names: Iterable[str],
    active_product_names: Iterable[str],
) -> int:
    """Count distinct active products that match any ingredient.

    A product matches when its normalized name is a substring of a
    normalized ingredient name, or contains one.

    Args:
        recipe_ingredient_names: Ingredient names of one recipe.
        active_product_names: Names of the active products.

    Returns:
        Number of matching distinct products.
    """
    ingredients = [n for n in map(normalize_name, recipe_ingredient_names) if n]
    products = {n for n in map(normalize_name, active_product_names) if n}
    if not ingredients or not products:
        return 0
    return sum(
        1
        for product in products
        if any(product in ing or ing in product for ing in ingredients)
    )


def rank_recipes(recipes: Iterable[Recipe], active_product_names: list[str]) -> list[Recipe]:
    """Order recipes by active product matches, most first.

    The sort is stable, so ties keep the caller's order.

    Args:
        recipes: Recipes to rank.
        active_product_names: Names of the active products.

    Returns:
        New list of recipes.
    """
    return sorted(
        recipes,
        key=lambda r: match_count((i.name for i in r.ingredients), active_product_names),
        reverse=True,
    )


def resolve_until_date(
    scope: ActiveProductScope, period_end: str, until_date: str = ""
) -> str:
    """Compute the stored ``untilDate`` for a scope.

    Args:
        scope: Product scope.
        period_end: Last day of the current period.
        until_date: Date picked by the user for ``until_date`` scope.

    Returns:
        ISO date string, or empty for persistent products.
    """
    if scope is ActiveProductScope.PERSISTENT:
        return ""
    if scope is ActiveProductScope.UNTIL_DATE:
        return until_date or period_end
    return period_end


def is_product_active(product: ActivePeriodProduct, day: str, period_end: str) -> bool:
    """Check whether a product still counts as active on a day.

    Args:
        product: The product.
        day: ISO date being checked.
        period_end: Last day of the period the product was added for.

    Returns:
        True if the product applies on ``day``.
    """
    if product.hidden:
        return False
    if product.scope is ActiveProductScope.PERSISTENT:
        return True
    limit = product.until_date or period_end
    return day <= limit


def decode_products(raw: Any) -> list[ActivePeriodProduct]:
    """Decode a stored product list, skipping unnamed or malformed rows.

    Args:
        raw: Decoded JSON value.

    Returns:
        List of products with trimmed names.
    """
    if not isinstance(raw, list):
        return []
    products: list[ActivePeriodProduct] = []
    for entry in raw:
        try:
            product = ActivePeriodProduct.model_validate(entry)
        except ValidationError:
            continue
        name = product.name.strip()
        if name:
            products.append(product.model_copy(update={"name": name}))
    return products


def encode_products(products: Iterable[ActivePeriodProduct]) -> list[dict[str, Any]]:
    """Encode products for storage or the cloud mirror."""
    return [p.model_dump(mode="json", by_alias=True) for p in products]


# ---------------------------------------------------------------------------
# Per-period list
# ---------------------------------------------------------------------------


class ActiveProductList:
    """Active products of one period with optional cloud mirroring.

    Args:
        storage: Storage backend.
        range_key: Period range key.
        cloud: Optional cloud mirror.
    """

    def __init__(
        self,
        storage: StoragePort,
        range_key: str,
        cloud: CloudSyncAdapter | None = None,
    ) -> None:
        """Initialize and load the list for a period.

        Args:
            storage: Storage backend.
            range_key: Period range key.
            cloud: Optional cloud mirror.
        """
        self._storage = storage
        self._cloud = cloud
        self._hydrated_ranges: set[str] = set()
        self._range_key = range_key
        self._products: list[ActivePeriodProduct] = []
        self.load(range_key)

    @property
    def range_key(self) -> str:
        """Range key of the loaded period."""
        return self._range_key

    @property
    def period_end(self) -> str:
        """Last day of the loaded period, or empty for malformed keys."""
        parts = split_range_key(self._range_key)
        return parts[1] if parts else ""

    @property
    def hydrated(self) -> bool:
        """Whether the cloud snapshot of the loaded period has been considered."""
        return self._range_key in self._hydrated_ranges

    @property
    def products(self) -> list[ActivePeriodProduct]:
        """All products, hidden ones included."""
        return list(self._products)

    def load(self, range_key: str) -> None:
        """Load the stored list for a period.

        Args:
            range_key: Period range key.
        """
        self._range_key = range_key
        raw = read_json(self._storage, active_products_storage_key(range_key), [])
        self._products = decode_products(raw)

    def names(self, preferred_only: bool = False) -> list[str]:
        """Names of visible products.

        Args:
            preferred_only: Restrict to products marked ``prefer``.

        Returns:
            Product names in list order.
        """
        return [
            p.name
            for p in self._products
            if not p.hidden and (p.prefer or not preferred_only)
        ]

    def active_names(self, day: str) -> list[str]:
        """Names of products active on a day."""
        return [
            p.name
            for p in self._products
            if is_product_active(p, day, self.period_end)
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self,
        name: str,
        scope: ActiveProductScope = ActiveProductScope.IN_PERIOD,
        until_date: str = "",
        note: str = "",
    ) -> ActivePeriodProduct | None:
        """Add a product, or update and re-surface an existing one.

        Args:
            name: Product name.
            scope: How long the product stays relevant.
            until_date: Last day for ``until_date`` scope.
            note: Optional note, clipped to 120 characters.

        Returns:
            The stored product, or None for an empty name.
        """
        cleaned = name.strip()
        if not cleaned:
            return None
        fields = {
            "name": cleaned,
            "scope": scope,
            "until_date": resolve_until_date(scope, self.period_end, until_date),
            "prefer": True,
            "hidden": False,
        }
        key = normalize_name(cleaned)
        existing = next(
            (p for p in self._products if normalize_name(p.name) == key), None
        )
        if existing is not None:
            product = existing.model_copy(update=fields)
            if note:
                product = product.model_copy(
                    update={"note": note.strip()[:ACTIVE_PRODUCT_NOTE_MAX_LENGTH]}
                )
            self._products = [
                product if p.id == existing.id else p for p in self._products
            ]
        else:
            product = ActivePeriodProduct(note=note, **fields)
            self._products.append(product)
        self._save()
        return product

    def remove(self, product_id: str) -> bool:
        """Delete a product.

        Args:
            product_id: Product id.

        Returns:
            True if a product was removed.
        """
        remaining = [p for p in self._products if p.id != product_id]
        if len(remaining) == len(self._products):
            return False
        self._products = remaining
        self._save()
        return True

    def _update(self, product_id: str, **changes: Any) -> bool:
        found = False
        updated: list[ActivePeriodProduct] = []
        for product in self._products:
            if product.id == product_id:
                found = True
                product = product.model_copy(update=changes)
            updated.append(product)
        if found:
            self._products = updated
            self._save()
        return found

    def toggle_prefer(self, product_id: str) -> bool:
        """Flip a product's ``prefer`` flag.

        Args:
            product_id: Product id.

        Returns:
            True if the product exists.
        """
        product = next((p for p in self._products if p.id == product_id), None)
        if product is None:
            return False
        return self._update(product_id, prefer=not product.prefer)

    def set_hidden(self, product_id: str, hidden: bool) -> bool:
        """Hide or show a product without deleting it.

        Args:
            product_id: Product id.
            hidden: New hidden state.

        Returns:
            True if the product exists.
        """
        return self._update(product_id, hidden=hidden)

    # ------------------------------------------------------------------
    # Persistence and cloud mirror
    # ------------------------------------------------------------------

    def _save(self) -> None:
        write_json(
            self._storage,
            active_products_storage_key(self._range_key),
            encode_products(self._products),
        )
        if self._cloud is not None and self.hydrated:
            self._cloud.schedule_push(self._range_key, list(self._products))

    def hydrate(self) -> bool:
        """Apply the cloud snapshot for the loaded period, once per period.

        The period counts as hydrated after the first call whatever the
        outcome; from then on local state is authoritative and gets pushed.
        Loading another period requires hydrating that one too.

        Returns:
            True if a cloud snapshot replaced the local list.
        """
        if self.hydrated:
            return False
        self._hydrated_ranges.add(self._range_key)
        if self._cloud is None:
            return False
        snapshot = self._cloud.fetch_active_products(self._range_key)
        if snapshot is None:
            return False
        self._products = snapshot
        write_json(
            self._storage,
            active_products_storage_key(self._range_key),
            encode_products(snapshot),
        )
        logger.info(
            "Applied %d cloud active product(s) for %s",
            len(snapshot),
            self._range_key,
        )
        return True
