"""Tests for menu_planner.active_products module."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from menu_planner.active_products import (
    ActiveProductList,
    decode_products,
    encode_products,
    is_product_active,
    match_count,
    rank_recipes,
    resolve_until_date,
)
from menu_planner.models import (
    ActivePeriodProduct,
    ActiveProductScope,
    Ingredient,
    Recipe,
)
from menu_planner.storage import MemoryStorage

RANGE = "2024-01-01__2024-01-07"
STORAGE_KEY = f"activeProducts:{RANGE}"


@pytest.fixture()
def storage() -> MemoryStorage:
    """Empty in-memory storage."""
    return MemoryStorage()


@pytest.fixture()
def products(storage: MemoryStorage) -> ActiveProductList:
    """Local-only product list for the test period."""
    return ActiveProductList(storage, RANGE)


def _recipe(recipe_id: str, *names: str) -> Recipe:
    return Recipe(
        id=recipe_id,
        title=recipe_id,
        ingredients=[Ingredient(name=n, amount=1, unit="шт") for n in names],
    )


class TestMatchCount:
    """Tests for match_count."""

    def test_substring_both_ways(self) -> None:
        """Test a product matches when either name contains the other."""
        assert match_count(["Кабачок молодой"], ["кабачок"]) == 1
        assert match_count(["сыр"], ["Сыр пармезан"]) == 1

    def test_counts_distinct_products(self) -> None:
        """Test each product counts at most once."""
        names = ["Помидор", "Помидор черри", "Лук"]
        assert match_count(names, ["помидор", "лук", "морковь"]) == 2

    def test_empty_inputs(self) -> None:
        """Test empty or blank names never match."""
        assert match_count([], ["лук"]) == 0
        assert match_count(["лук"], ["  "]) == 0


class TestRankRecipes:
    """Tests for rank_recipes."""

    def test_orders_by_matches(self) -> None:
        """Test recipes with more matches come first."""
        recipes = [
            _recipe("plain", "Рис"),
            _recipe("two", "Кабачок", "Помидор"),
            _recipe("one", "Кабачок"),
        ]
        ranked = rank_recipes(recipes, ["кабачок", "помидор"])
        assert [r.id for r in ranked] == ["two", "one", "plain"]

    def test_stable_for_ties(self) -> None:
        """Test ties keep the input order."""
        recipes = [_recipe("a", "Рис"), _recipe("b", "Гречка")]
        assert [r.id for r in rank_recipes(recipes, ["кабачок"])] == ["a", "b"]


class TestScopes:
    """Tests for resolve_until_date and is_product_active."""

    def test_resolve_until_date(self) -> None:
        """Test each scope's stored until date."""
        end = "2024-01-07"
        assert resolve_until_date(ActiveProductScope.PERSISTENT, end, "x") == ""
        assert resolve_until_date(ActiveProductScope.IN_PERIOD, end) == end
        assert (
            resolve_until_date(ActiveProductScope.UNTIL_DATE, end, "2024-02-01")
            == "2024-02-01"
        )
        assert resolve_until_date(ActiveProductScope.UNTIL_DATE, end) == end

    def test_hidden_is_inactive(self) -> None:
        """Test hidden products are never active."""
        product = ActivePeriodProduct(
            name="Лук", scope=ActiveProductScope.PERSISTENT, hidden=True
        )
        assert is_product_active(product, "2024-01-01", "2024-01-07") is False

    def test_persistent_always_active(self) -> None:
        """Test persistent products ignore dates."""
        product = ActivePeriodProduct(name="Лук", scope=ActiveProductScope.PERSISTENT)
        assert is_product_active(product, "2030-01-01", "2024-01-07") is True

    def test_until_date_limit(self) -> None:
        """Test dated products expire after their until date."""
        product = ActivePeriodProduct(
            name="Лук", scope=ActiveProductScope.UNTIL_DATE, until_date="2024-01-03"
        )
        assert is_product_active(product, "2024-01-03", "2024-01-07") is True
        assert is_product_active(product, "2024-01-04", "2024-01-07") is False

    def test_period_end_fallback(self) -> None:
        """Test products without a date expire with the period."""
        product = ActivePeriodProduct(name="Лук")
        assert is_product_active(product, "2024-01-07", "2024-01-07") is True
        assert is_product_active(product, "2024-01-08", "2024-01-07") is False


class TestCodec:
    """Tests for decode_products and encode_products."""

    def test_decode_skips_bad_rows(self) -> None:
        """Test unnamed and malformed rows are dropped and names trimmed."""
        raw = [{"name": "  Лук "}, {"name": "   "}, {"scope": "persistent"}, "x"]
        decoded = decode_products(raw)
        assert [p.name for p in decoded] == ["Лук"]

    def test_decode_non_list(self) -> None:
        """Test a non-list payload decodes as empty."""
        assert decode_products({"name": "Лук"}) == []

    def test_encode_uses_aliases(self) -> None:
        """Test encoded rows use the stored field names."""
        product = ActivePeriodProduct(
            name="Лук", scope=ActiveProductScope.UNTIL_DATE, until_date="2024-01-03"
        )
        encoded = encode_products([product])
        assert encoded[0]["untilDate"] == "2024-01-03"
        assert encoded[0]["scope"] == "until_date"


class TestActiveProductList:
    """Tests for the per-period list."""

    def test_add_persists(
        self, storage: MemoryStorage, products: ActiveProductList
    ) -> None:
        """Test added products are stored with the period end as limit."""
        product = products.add("Кабачок", note="с дачи")
        assert product is not None
        assert product.until_date == "2024-01-07"
        stored = json.loads(storage.get(STORAGE_KEY) or "[]")
        assert stored[0]["name"] == "Кабачок"
        assert stored[0]["note"] == "с дачи"

    def test_add_empty_name(self, products: ActiveProductList) -> None:
        """Test blank names are rejected."""
        assert products.add("  ") is None
        assert products.products == []

    def test_add_existing_updates_and_unhides(
        self, products: ActiveProductList
    ) -> None:
        """Test re-adding a product updates it instead of duplicating."""
        first = products.add("Кабачок")
        assert first is not None
        products.set_hidden(first.id, True)
        products.toggle_prefer(first.id)
        again = products.add("кабачок", scope=ActiveProductScope.PERSISTENT)
        assert again is not None
        assert again.id == first.id
        assert len(products.products) == 1
        assert again.hidden is False
        assert again.prefer is True
        assert again.until_date == ""

    def test_names_filters(self, products: ActiveProductList) -> None:
        """Test hidden products and non-preferred filtering."""
        onion = products.add("Лук")
        carrot = products.add("Морковь")
        products.add("Кабачок")
        assert onion is not None and carrot is not None
        products.set_hidden(onion.id, True)
        products.toggle_prefer(carrot.id)
        assert products.names() == ["Морковь", "Кабачок"]
        assert products.names(preferred_only=True) == ["Кабачок"]

    def test_active_names(self, products: ActiveProductList) -> None:
        """Test activity on a day past the period end."""
        products.add("Лук")
        products.add("Соль", scope=ActiveProductScope.PERSISTENT)
        assert products.active_names("2024-01-05") == ["Лук", "Соль"]
        assert products.active_names("2024-01-08") == ["Соль"]

    def test_remove(self, products: ActiveProductList) -> None:
        """Test removing known and unknown products."""
        product = products.add("Лук")
        assert product is not None
        assert products.remove(product.id) is True
        assert products.remove(product.id) is False

    def test_unknown_ids(self, products: ActiveProductList) -> None:
        """Test mutations on unknown ids report failure."""
        assert products.toggle_prefer("missing") is False
        assert products.set_hidden("missing", True) is False

    def test_reload(self, storage: MemoryStorage, products: ActiveProductList) -> None:
        """Test a second list sees stored products."""
        products.add("Лук")
        assert ActiveProductList(storage, RANGE).names() == ["Лук"]


class TestCloudHydration:
    """Tests for hydration and cloud pushes."""

    def test_without_cloud(self, products: ActiveProductList) -> None:
        """Test hydration without a cloud only sets the flag."""
        assert products.hydrate() is False
        assert products.hydrated is True

    def test_no_push_before_hydration(self, storage: MemoryStorage) -> None:
        """Test edits before hydration are local only."""
        cloud = MagicMock()
        products = ActiveProductList(storage, RANGE, cloud=cloud)
        products.add("Лук")
        cloud.schedule_push.assert_not_called()

    def test_snapshot_applied_once(self, storage: MemoryStorage) -> None:
        """Test the cloud snapshot replaces local state a single time."""
        cloud = MagicMock()
        cloud.fetch_active_products.return_value = [ActivePeriodProduct(name="Тыква")]
        products = ActiveProductList(storage, RANGE, cloud=cloud)
        products.add("Лук")

        assert products.hydrate() is True
        assert products.names() == ["Тыква"]
        assert json.loads(storage.get(STORAGE_KEY) or "[]")[0]["name"] == "Тыква"

        assert products.hydrate() is False
        cloud.fetch_active_products.assert_called_once_with(RANGE)

    def test_pushes_after_hydration(self, storage: MemoryStorage) -> None:
        """Test edits after hydration are scheduled for the cloud."""
        cloud = MagicMock()
        cloud.fetch_active_products.return_value = None
        products = ActiveProductList(storage, RANGE, cloud=cloud)
        assert products.hydrate() is False
        products.add("Лук")
        cloud.schedule_push.assert_called_once()
        range_key, pushed = cloud.schedule_push.call_args.args
        assert range_key == RANGE
        assert [p.name for p in pushed] == ["Лук"]

    def test_new_period_needs_its_own_hydration(
        self, storage: MemoryStorage
    ) -> None:
        """Test loading another period holds pushes until that period hydrates."""
        cloud = MagicMock()
        cloud.fetch_active_products.return_value = None
        products = ActiveProductList(storage, RANGE, cloud=cloud)
        products.hydrate()
        products.load("2024-01-08__2024-01-14")
        assert products.hydrated is False

        products.add("Лук")
        cloud.schedule_push.assert_not_called()

        products.hydrate()
        cloud.fetch_active_products.assert_called_with("2024-01-08__2024-01-14")
        products.add("Тыква")
        cloud.schedule_push.assert_called_once()
