"""Command-line interface for the menu planner.

Provides subcommands for choosing the planning period, editing the menu
grid and its profiles, meal slots, active products, the pantry, saved
recipes, and exporting a shopping list. Wires MenuProfileStore,
MealSlotRegistry, RecipeCatalog, PantryLedger and ActiveProductList
together over SQLite storage.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, replace
from datetime import date

from menu_planner.active_products import ActiveProductList, match_count, rank_recipes
from menu_planner.addressing import make_cell_key
from menu_planner.claude_utils import make_anthropic_client
from menu_planner.cloud_sync import CloudSyncAdapter
from menu_planner.config import Config, ConfigError, load_config
from menu_planner.meal_slots import MealSlotRegistry
from menu_planner.models import (
    ActivePeriodProduct,
    ActiveProductScope,
    DayStructureMode,
    Ingredient,
    MenuItem,
    Recipe,
    new_id,
    normalize_name,
)
from menu_planner.pantry import PantryLedger
from menu_planner.period import (
    Period,
    PeriodPreset,
    apply_preset,
    load_selection,
    save_selection,
    shift_period,
)
from menu_planner.recipes import RecipeCatalog
from menu_planner.shopping import aggregate, build_shopping_request
from menu_planner.storage import SqliteStorage
from menu_planner.store import MenuProfileStore, new_recipe_item, new_text_item
from menu_planner.suggestion import MenuAiStatus, MenuSuggestionService

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Config + dependency bootstrap
# ------------------------------------------------------------------


@dataclass
class _Session:
    """Components for the selected period, loaded from one database."""

    config: Config
    storage: SqliteStorage
    period: Period
    slots: MealSlotRegistry
    recipes: RecipeCatalog
    pantry: PantryLedger
    store: MenuProfileStore
    cloud: CloudSyncAdapter | None = None


def _load_config(args: argparse.Namespace) -> Config | None:
    """Load configuration, applying the ``--db`` override.

    Args:
        args: Parsed command-line arguments.

    Returns:
        Config instance, or None after printing the error.
    """
    try:
        cfg = load_config()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None
    if args.db:
        cfg = replace(cfg, database_path=args.db)
    return cfg


def _open_session(cfg: Config) -> _Session:
    """Build every component for the persisted period selection.

    Args:
        cfg: Application configuration.

    Returns:
        Loaded session.
    """
    storage = SqliteStorage(cfg.database_path)
    period = load_selection(storage)
    slots = MealSlotRegistry(storage, period.range_key)
    recipes = RecipeCatalog(storage)
    pantry = PantryLedger(storage)
    cloud = CloudSyncAdapter.from_config(cfg)
    store = MenuProfileStore(
        storage,
        slots=slots,
        recipes=recipes,
        pantry=pantry,
        default_menu_name=cfg.default_menu_name,
        cloud=cloud,
    )
    store.load(period.range_key)
    store.hydrate()
    return _Session(cfg, storage, period, slots, recipes, pantry, store, cloud)


def _parse_day(raw: str) -> date | None:
    """Parse an ISO date argument, printing an error on failure."""
    try:
        return date.fromisoformat(raw)
    except ValueError:
        print(f"Error: Invalid date '{raw}', expected YYYY-MM-DD.", file=sys.stderr)
        return None


def _cell_arg(raw_day: str, meal: str) -> str | None:
    """Build a cell key from command-line date and meal arguments."""
    day = _parse_day(raw_day)
    if day is None:
        return None
    if not meal.strip():
        print("Error: Meal name must not be empty.", file=sys.stderr)
        return None
    return make_cell_key(day, meal.strip())


def _parse_ingredient(raw: str) -> Ingredient | None:
    """Parse ``name:amount:unit`` (amount and unit optional).

    Args:
        raw: Ingredient argument from the command line.

    Returns:
        Ingredient, or None after printing the error.
    """
    name, _, rest = raw.partition(":")
    amount_raw, _, unit = rest.partition(":")
    try:
        amount = float(amount_raw) if amount_raw.strip() else 0.0
    except ValueError:
        print(f"Error: Invalid amount in ingredient '{raw}'.", file=sys.stderr)
        return None
    return Ingredient(name=name.strip(), amount=amount, unit=unit.strip())


# ------------------------------------------------------------------
# Output formatting
# ------------------------------------------------------------------


def _format_quantity(qty: float) -> str:
    """Format a quantity, dropping a trailing ``.0``.

    Args:
        qty: Numeric quantity.

    Returns:
        Formatted string.
    """
    if qty == int(qty):
        return str(int(qty))
    return f"{qty:.2f}".rstrip("0").rstrip(".")


def _format_ingredient(ing: Ingredient) -> str:
    if ing.is_taste:
        return f"{ing.name} ({ing.unit})"
    return f"{ing.name} {_format_quantity(ing.amount)} {ing.unit}".rstrip()


def _format_period(period: Period) -> str:
    return (
        f"{period.start.isoformat()} .. {period.end.isoformat()} "
        f"({period.length_days} days, preset {period.preset.value})"
    )


def _item_label(item: MenuItem) -> str:
    return item.display_name or "(untitled recipe)"


def _format_menu(session: _Session, today: date | None = None) -> str:
    """Render the active profile as a day-by-day listing.

    Args:
        session: Loaded session.
        today: Reference day for cooked resolution.

    Returns:
        Multi-line string.
    """
    store = session.store
    profile = store.active_profile
    lines = [f"Menu '{profile.name}' for {_format_period(session.period)}"]
    for day in session.period.days():
        lines.append("")
        lines.append(day.isoformat())
        for slot in session.slots.visible_slots:
            cell = make_cell_key(day, slot.name)
            items = store.items(cell)
            people = store.people_count(cell)
            header = f"  {slot.name}"
            if cell in profile.cell_people_count:
                header += f" [{people} people]"
            if not items:
                lines.append(f"{header}: -")
                continue
            lines.append(f"{header}:")
            for index, item in enumerate(items, 1):
                mark = "x" if store.is_cooked(cell, index - 1, today) else " "
                lines.append(f"    {index}. [{mark}] {_item_label(item)}")
    return "\n".join(lines)


def _format_products(products: list[ActivePeriodProduct]) -> str:
    if not products:
        return "No active products."
    lines = ["Active products:"]
    for product in products:
        flags = []
        if product.prefer:
            flags.append("preferred")
        if product.hidden:
            flags.append("hidden")
        scope = product.scope.value
        if product.until_date:
            scope += f" until {product.until_date}"
        suffix = f" ({', '.join(flags)})" if flags else ""
        line = f"  {product.name} [{scope}]{suffix}"
        if product.note:
            line += f" - {product.note}"
        lines.append(line)
    return "\n".join(lines)


# ------------------------------------------------------------------
# Subcommand handlers
# ------------------------------------------------------------------


def _handle_period(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``period`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    action: str | None = args.action
    current = session.period
    if action is None or action == "show":
        print(_format_period(current))
        return 0

    if action in ("next", "prev"):
        updated: Period | None = shift_period(current, 1 if action == "next" else -1)
    elif action == "custom":
        if len(args.values) != 2:
            print("Error: 'custom' needs START and END dates.", file=sys.stderr)
            return 1
        start, end = (_parse_day(v) for v in args.values)
        if start is None or end is None:
            return 1
        updated = apply_preset(current.start, PeriodPreset.CUSTOM, start, end)
    else:
        updated = apply_preset(current.start, PeriodPreset(action))

    if updated is None:
        print("Error: End date must not precede start date.", file=sys.stderr)
        return 1
    save_selection(session.storage, updated)
    print(_format_period(updated))
    return 0


def _handle_menu(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``menu`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (always 0).
    """
    print(_format_menu(session))
    return 0


def _find_profile_id(session: _Session, name: str) -> str | None:
    wanted = name.strip().lower()
    for menu in session.store.menus:
        if menu.name.lower() == wanted or menu.id == name:
            return menu.id
    print(f"Menu '{name}' not found.", file=sys.stderr)
    return None


def _handle_profiles(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``profiles`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    store = session.store
    action: str | None = args.action
    name: str = args.name

    if action is None or action == "list":
        for menu in store.menus:
            marker = "*" if menu.id == store.active_menu_id else " "
            print(f"{marker} {menu.name} ({len(menu.meal_data)} cells)")
        return 0

    if not name.strip():
        print(f"Error: '{action}' needs a menu name.", file=sys.stderr)
        return 1

    if action == "create":
        if store.create_profile(name) is None:
            print(f"Error: Menu name '{name}' is empty or taken.", file=sys.stderr)
            return 1
        print(f"Created and selected menu '{name.strip()}'.")
        return 0

    if action == "rename":
        if not store.rename_active(name):
            print(f"Error: Menu name '{name}' is empty or taken.", file=sys.stderr)
            return 1
        print(f"Renamed active menu to '{name.strip()}'.")
        return 0

    menu_id = _find_profile_id(session, name)
    if menu_id is None:
        return 1
    if action == "select":
        store.select_profile(menu_id)
        print(f"Selected menu '{name}'.")
        return 0
    if action == "delete":
        if not store.delete_profile(menu_id):
            print("Error: The last menu cannot be deleted.", file=sys.stderr)
            return 1
        print(f"Deleted menu '{name}'.")
        return 0

    print(f"Error: Unknown action '{action}'.", file=sys.stderr)
    return 1


def _handle_add(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``add`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cell = _cell_arg(args.date, args.meal)
    if cell is None:
        return 1
    store = session.store
    if args.people is not None:
        store.set_people_count(cell, args.people)
    people = store.people_count(cell)

    item: MenuItem | None
    if args.recipe:
        recipe = session.recipes.find_by_title(args.text)
        if recipe is None:
            print(f"Recipe '{args.text}' not found.", file=sys.stderr)
            return 1
        item = new_recipe_item(recipe, people)
    else:
        ingredients = [_parse_ingredient(raw) for raw in args.ingredient or []]
        if any(ing is None for ing in ingredients):
            return 1
        item = new_text_item(
            args.text,
            people,
            include_in_shopping=not args.no_shopping,
            ingredients=[ing for ing in ingredients if ing is not None],
        )
        if item is None:
            print("Error: Dish text must not be empty.", file=sys.stderr)
            return 1

    store.add_item(cell, item)
    session.slots.ensure_slots([args.meal.strip()])
    print(f"Added '{item.display_name}' to {cell} for {people} people.")
    return 0


def _handle_remove(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``remove`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cell = _cell_arg(args.date, args.meal)
    if cell is None:
        return 1
    if not session.store.remove_item(cell, args.index - 1):
        print(f"No item {args.index} in {cell}.", file=sys.stderr)
        return 1
    print(f"Removed item {args.index} from {cell}.")
    return 0


def _handle_move(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``move`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    source = _cell_arg(args.date, args.meal)
    target = _cell_arg(args.to_date, args.to_meal)
    if source is None or target is None:
        return 1
    if not session.store.move_item(source, args.index - 1, target):
        print(f"No item {args.index} in {source}.", file=sys.stderr)
        return 1
    session.slots.ensure_slots([args.to_meal.strip()])
    print(f"Moved item {args.index} from {source} to {target}.")
    return 0


def _handle_people(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``people`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cell = _cell_arg(args.date, args.meal)
    if cell is None:
        return 1
    session.store.set_people_count(cell, args.count)
    print(f"{cell}: {session.store.people_count(cell)} people.")
    return 0


def _handle_cook(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``cook`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    cell = _cell_arg(args.date, args.meal)
    if cell is None:
        return 1
    index = args.index - 1
    if not session.store.mark_cooked(cell, index, deduct_from_pantry=args.deduct):
        print(f"No item {args.index} in {cell}.", file=sys.stderr)
        return 1
    item = session.store.items(cell)[index]
    state = "cooked" if item.cooked else "not cooked"
    print(f"Marked '{_item_label(item)}' as {state}.")
    return 0


def _handle_slots(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``slots`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    registry = session.slots
    action: str | None = args.action
    values: list[str] = args.values

    if action is None or action == "list":
        print(f"Meal slots ({registry.mode.value}):")
        for slot in registry.slots:
            hidden = "" if slot.visible else " (hidden)"
            print(f"  {slot.order + 1}. {slot.name}{hidden}")
        return 0

    if action == "save-default":
        registry.save_as_default()
        print("Saved current meal slots as the default for new periods.")
        return 0

    if action == "mode":
        if not values or values[0] not in {m.value for m in DayStructureMode}:
            valid = ", ".join(m.value for m in DayStructureMode)
            print(f"Error: Mode must be one of: {valid}", file=sys.stderr)
            return 1
        registry.set_mode(DayStructureMode(values[0]))
        print(f"Meal slot settings are now {values[0]}.")
        return 0

    if action == "add":
        if not values or registry.add(values[0]) is None:
            print("Error: Slot name is empty or taken.", file=sys.stderr)
            return 1
        print(f"Added meal slot '{values[0].strip()}'.")
        return 0

    if not values:
        print(f"Error: '{action}' needs a slot name.", file=sys.stderr)
        return 1
    slot = registry.find_by_name(values[0])
    if slot is None:
        print(f"Meal slot '{values[0]}' not found.", file=sys.stderr)
        return 1

    if action == "toggle":
        registry.toggle_visibility(slot.id)
        print(f"Toggled visibility of '{slot.name}'.")
        return 0
    if action in ("up", "down"):
        if not registry.reorder(slot.id, -1 if action == "up" else 1):
            print(f"Cannot move '{slot.name}' {action}.", file=sys.stderr)
            return 1
        print(f"Moved '{slot.name}' {action}.")
        return 0
    if action == "rename":
        if len(values) < 2 or not session.store.rename_meal_slot(slot.id, values[1]):
            print("Error: New slot name is empty or taken.", file=sys.stderr)
            return 1
        print(f"Renamed meal slot '{slot.name}' to '{values[1].strip()}'.")
        return 0

    print(f"Error: Unknown action '{action}'.", file=sys.stderr)
    return 1


def _find_product(products: ActiveProductList, name: str) -> ActivePeriodProduct | None:
    wanted = normalize_name(name)
    for product in products.products:
        if normalize_name(product.name) == wanted:
            return product
    print(f"Active product '{name}' not found.", file=sys.stderr)
    return None


def _handle_products(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``products`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    products = ActiveProductList(
        session.storage, session.period.range_key, session.cloud
    )
    products.hydrate()
    return _run_products_action(args, session, products)


def _run_products_action(
    args: argparse.Namespace, session: _Session, products: ActiveProductList
) -> int:
    action: str | None = args.action
    name: str = args.name

    if action is None or action == "list":
        print(_format_products(products.products))
        return 0

    if action == "rank":
        names = products.names(preferred_only=True)
        for recipe in rank_recipes(session.recipes.list_recipes(), names):
            count = match_count((i.name for i in recipe.ingredients), names)
            print(f"  {count}  {recipe.title}")
        return 0

    if not name.strip():
        print(f"Error: '{action}' needs a product name.", file=sys.stderr)
        return 1

    if action == "add":
        added = products.add(
            name,
            scope=ActiveProductScope(args.scope),
            until_date=args.until or "",
            note=args.note or "",
        )
        if added is None:
            return 1
        print(f"Added active product '{added.name}'.")
        return 0

    product = _find_product(products, name)
    if product is None:
        return 1
    if action == "remove":
        products.remove(product.id)
        print(f"Removed active product '{product.name}'.")
    elif action == "prefer":
        products.toggle_prefer(product.id)
        print(f"Toggled preference for '{product.name}'.")
    elif action in ("hide", "show"):
        products.set_hidden(product.id, action == "hide")
        print(f"{'Hid' if action == 'hide' else 'Showed'} '{product.name}'.")
    return 0


def _handle_pantry(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``pantry`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    if args.action == "add":
        if not args.name.strip() or args.amount is None or args.amount <= 0:
            print("Error: 'add' needs a name and a positive amount.", file=sys.stderr)
            return 1
        session.pantry.restock(args.name, args.amount, args.unit)
        print(f"Added {_format_quantity(args.amount)} {args.unit} {args.name.strip()}.")
        return 0

    items = session.pantry.load()
    if not items:
        print("Pantry is empty.")
        return 0
    print("Pantry:")
    for item in items:
        print(f"  {item.name}: {_format_quantity(item.amount)} {item.unit}".rstrip())
    return 0


def _handle_recipes(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``recipes`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    catalog = session.recipes
    action: str | None = args.action
    title: str = args.title

    if action is None or action == "list":
        recipes = catalog.list_recipes()
        if not recipes:
            print("No saved recipes.")
            return 0
        for recipe in recipes:
            print(f"  {recipe.title} (serves {recipe.servings})")
        return 0

    if not title.strip():
        print(f"Error: '{action}' needs a recipe title.", file=sys.stderr)
        return 1

    if action == "add":
        ingredients = [_parse_ingredient(raw) for raw in args.ingredient or []]
        if any(ing is None for ing in ingredients):
            return 1
        existing = catalog.find_by_title(title)
        recipe = Recipe(
            id=existing.id if existing else new_id(),
            title=title.strip(),
            servings=args.servings,
            ingredients=[ing for ing in ingredients if ing is not None],
        )
        catalog.save_recipe(recipe)
        print(f"Saved recipe '{recipe.title}'.")
        return 0

    recipe = catalog.find_by_title(title)
    if recipe is None:
        print(f"Recipe '{title}' not found.", file=sys.stderr)
        return 1
    if action == "show":
        print(f"{recipe.title} (serves {recipe.servings})")
        for ing in recipe.ingredients:
            print(f"  - {_format_ingredient(ing)}")
        return 0
    if action == "remove":
        catalog.remove_recipe(recipe.id)
        print(f"Removed recipe '{recipe.title}'.")
        return 0

    print(f"Error: Unknown action '{action}'.", file=sys.stderr)
    return 1


def _handle_shopping(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``shopping`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (always 0).
    """
    request = build_shopping_request(
        session.store.active_profile,
        session.recipes,
        days=set(args.day) if args.day else None,
        include_cooked=not args.exclude_cooked,
    )
    if not request.dishes:
        print("No dishes in this period.")
        return 0

    print("Dishes:")
    for dish in request.dishes:
        print(f"  {dish.cell}: {dish.name} ({dish.people} people)")

    lines = aggregate(request, session.pantry.load())
    if lines:
        print("\nShopping list:")
        for line in lines:
            if line.total_amount == 0:
                print(f"  {line.name} ({line.unit})")
                continue
            text = f"  {line.name}: {_format_quantity(line.remaining)} {line.unit}"
            if line.in_pantry:
                text += f" (need {_format_quantity(line.total_amount)}, have"
                text += f" {_format_quantity(line.in_pantry)})"
            print(text.rstrip())
    return 0


def _handle_suggest(args: argparse.Namespace, session: _Session) -> int:
    """Handle the ``suggest`` subcommand.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code (0 for success, 1 for failure).
    """

    def _on_status(status: MenuAiStatus) -> None:
        if status.is_loading:
            print("Asking the assistant...", file=sys.stderr)

    cfg = session.config
    service = MenuSuggestionService(
        make_anthropic_client(cfg.anthropic_api_key),
        listener=_on_status,
        model=cfg.assistant_model,
    )
    products = ActiveProductList(session.storage, session.period.range_key)
    status = service.request(
        session.store.active_profile.cell_people_count,
        session.period.length_days,
        [r.title for r in session.recipes.list_recipes()],
        preferred_products=products.names(preferred_only=True),
        prompt=args.prompt,
    )
    print(status.message, file=sys.stderr if status.error else sys.stdout)
    return 1 if status.error else 0


# ------------------------------------------------------------------
# Parser construction
# ------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with all subcommands.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="menu-planner",
        description="Menu planner: plan meals per period and derive shopping lists.",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (overrides DATABASE_PATH).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    subparsers = parser.add_subparsers(dest="command")

    _add_period_parser(subparsers)
    subparsers.add_parser("menu", help="Show the menu of the selected period.")
    _add_profiles_parser(subparsers)
    _add_cell_parsers(subparsers)
    _add_slots_parser(subparsers)
    _add_products_parser(subparsers)
    _add_pantry_parser(subparsers)
    _add_recipes_parser(subparsers)
    _add_shopping_parser(subparsers)
    _add_suggest_parser(subparsers)

    return parser


def _add_period_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``period`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    period_parser = subparsers.add_parser(
        "period",
        help="Show or change the planning period.",
    )
    period_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["show", "next", "prev", *(p.value for p in PeriodPreset)],
        help="Action: show, next, prev, or a preset (custom takes START END).",
    )
    period_parser.add_argument("values", nargs="*", help="Dates for 'custom'.")


def _add_profiles_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``profiles`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    profiles_parser = subparsers.add_parser(
        "profiles",
        help="Manage named menus of the period.",
    )
    profiles_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["list", "create", "select", "rename", "delete"],
        help="Action: list, create, select, rename, or delete.",
    )
    profiles_parser.add_argument("name", nargs="?", default="", help="Menu name.")


def _add_cell_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("date", help="Day (YYYY-MM-DD).")
    parser.add_argument("meal", help="Meal slot name.")


def _add_cell_parsers(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``add``, ``remove``, ``move``, ``people`` and ``cook`` parsers.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    add_parser = subparsers.add_parser("add", help="Add a dish to a cell.")
    _add_cell_arguments(add_parser)
    add_parser.add_argument("text", help="Dish text, or recipe title with --recipe.")
    add_parser.add_argument(
        "--recipe",
        action="store_true",
        help="Treat TEXT as the title of a saved recipe.",
    )
    add_parser.add_argument(
        "--people",
        type=int,
        default=None,
        help="Set the cell's people count first.",
    )
    add_parser.add_argument(
        "--ingredient",
        action="append",
        help="Per-portion ingredient 'name:amount:unit' (repeatable).",
    )
    add_parser.add_argument(
        "--no-shopping",
        action="store_true",
        help="Keep the dish off the shopping list.",
    )

    remove_parser = subparsers.add_parser("remove", help="Remove a dish from a cell.")
    _add_cell_arguments(remove_parser)
    remove_parser.add_argument("index", type=int, help="Dish number (from 1).")

    move_parser = subparsers.add_parser("move", help="Move a dish to another cell.")
    _add_cell_arguments(move_parser)
    move_parser.add_argument("index", type=int, help="Dish number (from 1).")
    move_parser.add_argument("to_date", help="Target day (YYYY-MM-DD).")
    move_parser.add_argument("to_meal", help="Target meal slot name.")

    people_parser = subparsers.add_parser("people", help="Set a cell's people count.")
    _add_cell_arguments(people_parser)
    people_parser.add_argument(
        "count", type=int, help="People to cook for (0 resets to the default)."
    )

    cook_parser = subparsers.add_parser("cook", help="Toggle a dish's cooked state.")
    _add_cell_arguments(cook_parser)
    cook_parser.add_argument("index", type=int, help="Dish number (from 1).")
    cook_parser.add_argument(
        "--deduct",
        action="store_true",
        help="Deduct the dish's ingredients from the pantry.",
    )


def _add_slots_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``slots`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    slots_parser = subparsers.add_parser("slots", help="Manage meal slots.")
    slots_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=[
            "list",
            "add",
            "toggle",
            "rename",
            "up",
            "down",
            "mode",
            "save-default",
        ],
        help="Action on meal slots.",
    )
    slots_parser.add_argument(
        "values", nargs="*", help="Slot name (and new name for 'rename')."
    )


def _add_products_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``products`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    products_parser = subparsers.add_parser(
        "products",
        help="Manage active products of the period.",
    )
    products_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["list", "add", "remove", "prefer", "hide", "show", "rank"],
        help="Action on active products.",
    )
    products_parser.add_argument("name", nargs="?", default="", help="Product name.")
    products_parser.add_argument(
        "--scope",
        default=ActiveProductScope.IN_PERIOD.value,
        choices=[s.value for s in ActiveProductScope],
        help="How long the product stays active.",
    )
    products_parser.add_argument(
        "--until", default=None, help="Last day for 'until_date' scope."
    )
    products_parser.add_argument("--note", default=None, help="Short note.")


def _add_pantry_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``pantry`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    pantry_parser = subparsers.add_parser("pantry", help="Show or restock the pantry.")
    pantry_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["list", "add"],
        help="Action: list or add.",
    )
    pantry_parser.add_argument("name", nargs="?", default="", help="Product name.")
    pantry_parser.add_argument(
        "amount", nargs="?", type=float, default=None, help="Amount to add."
    )
    pantry_parser.add_argument("unit", nargs="?", default="", help="Unit.")


def _add_recipes_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``recipes`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    recipes_parser = subparsers.add_parser("recipes", help="Manage saved recipes.")
    recipes_parser.add_argument(
        "action",
        nargs="?",
        default=None,
        choices=["list", "add", "show", "remove"],
        help="Action: list, add, show, or remove.",
    )
    recipes_parser.add_argument("title", nargs="?", default="", help="Recipe title.")
    recipes_parser.add_argument(
        "--servings", type=int, default=2, help="Servings the amounts are for."
    )
    recipes_parser.add_argument(
        "--ingredient",
        action="append",
        help="Ingredient 'name:amount:unit' (repeatable).",
    )


def _add_shopping_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``shopping`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    shopping_parser = subparsers.add_parser(
        "shopping",
        help="Export the period's dishes as a shopping list.",
    )
    shopping_parser.add_argument(
        "--day",
        action="append",
        help="Restrict to a day (YYYY-MM-DD, repeatable).",
    )
    shopping_parser.add_argument(
        "--exclude-cooked",
        action="store_true",
        help="Leave out dishes already cooked.",
    )


def _add_suggest_parser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    """Add the ``suggest`` subcommand parser.

    Args:
        subparsers: Subparsers action from the main parser.
    """
    suggest_parser = subparsers.add_parser(
        "suggest",
        help="Ask the assistant for a menu suggestion.",
    )
    suggest_parser.add_argument(
        "prompt", nargs="?", default="", help="Optional wishes for the menu."
    )


# ------------------------------------------------------------------
# Entry point
# ------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Run the CLI application.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )
    cfg = _load_config(args)
    if cfg is None:
        sys.exit(1)

    session = _open_session(cfg)
    try:
        exit_code = _dispatch(args, session)
    finally:
        if session.cloud is not None:
            session.cloud.close()
    sys.exit(exit_code)


def _dispatch(args: argparse.Namespace, session: _Session) -> int:
    """Dispatch a parsed command to the appropriate handler.

    Args:
        args: Parsed command-line arguments.
        session: Loaded session.

    Returns:
        Exit code from the handler.
    """
    command: str = args.command
    if command == "period":
        return _handle_period(args, session)
    if command == "menu":
        return _handle_menu(args, session)
    if command == "profiles":
        return _handle_profiles(args, session)
    if command == "add":
        return _handle_add(args, session)
    if command == "remove":
        return _handle_remove(args, session)
    if command == "move":
        return _handle_move(args, session)
    if command == "people":
        return _handle_people(args, session)
    if command == "cook":
        return _handle_cook(args, session)
    if command == "slots":
        return _handle_slots(args, session)
    if command == "products":
        return _handle_products(args, session)
    if command == "pantry":
        return _handle_pantry(args, session)
    if command == "recipes":
        return _handle_recipes(args, session)
    if command == "shopping":
        return _handle_shopping(args, session)
    if command == "suggest":
        return _handle_suggest(args, session)
    return 1  # pragma: no cover
