"""Tests for menu_planner.shopping module."""

from __future__ import annotations

import pytest

from menu_planner.models import (
    Ingredient,
    MenuProfileState,
    PantryItem,
    Recipe,
    RecipeMenuItem,
    TextMenuItem,
)
from menu_planner.recipes import RecipeCatalog
from menu_planner.shopping import (
    ShoppingDish,
    ShoppingListRequest,
    aggregate,
    build_shopping_request,
    dish_name,
)
from menu_planner.storage import MemoryStorage


@pytest.fixture()
def catalog() -> RecipeCatalog:
    """Catalog with a pancake recipe for two."""
    catalog = RecipeCatalog(MemoryStorage())
    catalog.save_recipe(
        Recipe(
            id="r1",
            title="Блины",
            servings=2,
            ingredients=[
                Ingredient(name="Мука", amount=200, unit="г"),
                Ingredient(name="Соль", amount=0, unit="по вкусу"),
            ],
        )
    )
    return catalog


@pytest.fixture()
def profile() -> MenuProfileState:
    """Profile with three days of dinners and a breakfast."""
    return MenuProfileState(
        name="Меню 1",
        meal_data={
            "2024-01-02-Ужин": [RecipeMenuItem(id="a", recipe_id="r1")],
            "2024-01-01-Завтрак": [
                TextMenuItem(
                    id="b",
                    value="Омлет",
                    ingredients=[Ingredient(name="Яйцо", amount=4, unit="шт")],
                ),
                TextMenuItem(id="c", value="Кафе", include_in_shopping=False),
            ],
            "2024-01-03-Ужин": [
                TextMenuItem(
                    id="d",
                    value="Яичница",
                    ingredients=[Ingredient(name="яйцо", amount=2, unit="шт")],
                    cooked=True,
                )
            ],
            "garbage": [TextMenuItem(value="Потерянное")],
        },
        cell_people_count={"2024-01-02-Ужин": 4},
    )


class TestDishName:
    """Tests for dish_name."""

    def test_text_item(self) -> None:
        """Test text items use their trimmed value."""
        assert dish_name(TextMenuItem(value="  Плов ")) == "Плов"

    def test_recipe_title_cached(self) -> None:
        """Test a cached title wins over the catalog."""
        item = RecipeMenuItem(recipe_id="r1", value="Блинчики")
        assert dish_name(item) == "Блинчики"

    def test_recipe_from_catalog(self, catalog: RecipeCatalog) -> None:
        """Test a missing title is resolved through the catalog."""
        assert dish_name(RecipeMenuItem(recipe_id="r1"), catalog) == "Блины"
        assert dish_name(RecipeMenuItem(recipe_id="x"), catalog) == ""


class TestBuildShoppingRequest:
    """Tests for build_shopping_request."""

    def test_exports_in_cell_order(
        self, profile: MenuProfileState, catalog: RecipeCatalog
    ) -> None:
        """Test dishes are sorted by cell and invalid cells skipped."""
        request = build_shopping_request(profile, catalog)
        assert request.dish_names == ["Омлет", "Кафе", "Блины", "Яичница"]
        assert request.people_count == {"2024-01-02-Ужин": 4}

    def test_ingredients_resolved(
        self, profile: MenuProfileState, catalog: RecipeCatalog
    ) -> None:
        """Test snapshots, exclusions and catalog scaling."""
        dishes = {d.name: d for d in build_shopping_request(profile, catalog).dishes}
        assert dishes["Кафе"].ingredients == []
        pancakes = dishes["Блины"]
        assert pancakes.people == 4
        assert [(i.name, i.amount) for i in pancakes.ingredients] == [
            ("Мука", 400),
            ("Соль", 0),
        ]

    def test_day_filter(self, profile: MenuProfileState) -> None:
        """Test restricting the export to some days."""
        request = build_shopping_request(profile, days={"2024-01-03"})
        assert request.dish_names == ["Яичница"]

    def test_exclude_cooked(self, profile: MenuProfileState) -> None:
        """Test cooked flags and the status map both exclude dishes."""
        profile = profile.model_copy(update={"cooked_status": {"b": True}})
        request = build_shopping_request(profile, include_cooked=False)
        assert "Яичница" not in request.dish_names
        assert "Омлет" not in request.dish_names

    def test_status_map_false_beats_item_flag(
        self, profile: MenuProfileState
    ) -> None:
        """Test an explicit false in the status map keeps a flagged dish."""
        profile = profile.model_copy(update={"cooked_status": {"d": False}})
        request = build_shopping_request(profile, include_cooked=False)
        assert "Яичница" in request.dish_names

    def test_serializes_with_aliases(self, profile: MenuProfileState) -> None:
        """Test the request dumps people counts under peopleCount."""
        dumped = build_shopping_request(profile).model_dump(by_alias=True)
        assert dumped["peopleCount"] == {"2024-01-02-Ужин": 4}


class TestAggregate:
    """Tests for aggregate."""

    def test_sums_by_name_and_unit(self) -> None:
        """Test lines merge case-insensitively and stay split by unit."""
        request = ShoppingListRequest(
            dishes=[
                ShoppingDish(
                    cell="2024-01-01-Ужин",
                    name="Омлет",
                    ingredients=[
                        Ingredient(name="Яйцо", amount=4, unit="шт"),
                        Ingredient(name="Молоко", amount=100, unit="мл"),
                    ],
                ),
                ShoppingDish(
                    cell="2024-01-02-Ужин",
                    name="Яичница",
                    ingredients=[
                        Ingredient(name="яйцо", amount=2, unit="шт"),
                        Ingredient(name="Молоко", amount=1, unit="л"),
                    ],
                ),
            ]
        )
        lines = aggregate(request)
        assert [(line.name, line.unit, line.total_amount) for line in lines] == [
            ("Молоко", "л", 1),
            ("Молоко", "мл", 100),
            ("Яйцо", "шт", 6),
        ]

    def test_remaining_after_pantry(self) -> None:
        """Test pantry stock reduces what remains to buy."""
        request = ShoppingListRequest(
            dishes=[
                ShoppingDish(
                    cell="2024-01-01-Ужин",
                    name="Омлет",
                    ingredients=[Ingredient(name="Яйцо", amount=6, unit="шт")],
                )
            ]
        )
        line = aggregate(request, [PantryItem(name="яйцо", amount=4, unit="шт")])[0]
        assert line.in_pantry == 4
        assert line.remaining == 2
        stocked = aggregate(request, [PantryItem(name="Яйцо", amount=10, unit="шт")])
        assert stocked[0].remaining == 0
