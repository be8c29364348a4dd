"""Menu profile store: authoritative in-memory state for one period.

The store owns every named menu profile of the loaded period, the active
profile pointer, and each profile's cell items, people counts and cooked
flags. Each mutating operation persists the full profile set immediately
through the injected storage port, so inactive profiles are never dropped
from storage. Rejected operations are no-ops and report it through their
return value; storage failures are logged and the session continues in
memory.

On :meth:`MenuProfileStore.load` storage wins; after that, memory wins
until the next persist.

With a cloud mirror, :meth:`MenuProfileStore.hydrate` applies the cloud
row of the loaded week to the active profile once per period. Persists
after that also queue a debounced upsert of the active profile; before it
they stay local.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Any

from menu_planner.addressing import (
    cooked_status_storage_key,
    menu_storage_key,
    people_count_storage_key,
    split_cell_key,
)
from menu_planner.bundle_codec import (
    DEFAULT_MENU_NAME,
    default_profile,
    parse_bundle,
    serialize_bundle,
)
from menu_planner.meal_slots import (
    meal_labels,
    migrate_meal_data,
    migrate_people_count,
)
from menu_planner.models import (
    Ingredient,
    MenuProfileState,
    Recipe,
    RecipeMenuItem,
    TextMenuItem,
)
from menu_planner.scaling import countable_ingredients, scale_ingredients
from menu_planner.storage import read_json, read_raw, write_json, write_raw

if TYPE_CHECKING:
    from menu_planner.cloud_sync import CloudSyncAdapter
    from menu_planner.meal_slots import MealSlotRegistry
    from menu_planner.models import MenuItem
    from menu_planner.pantry import PantryLedger
    from menu_planner.recipes import RecipeLookup
    from menu_planner.storage import StoragePort

logger = logging.getLogger(__name__)

DEFAULT_PEOPLE_COUNT = 1


# ---------------------------------------------------------------------------
# Item factories
# ---------------------------------------------------------------------------


def new_recipe_item(recipe: Recipe, people: int) -> RecipeMenuItem:
    """Build a menu item for a recipe scaled to a party size.

    Args:
        recipe: Recipe being added.
        people: People to cook for.

    Returns:
        RecipeMenuItem with the title cached and an ingredient snapshot.
    """
    return RecipeMenuItem(
        recipe_id=recipe.id,
        value=recipe.title or None,
        ingredients=scale_ingredients(recipe.ingredients, recipe.servings, people),
    )


def new_text_item(
    value: str,
    people: int,
    include_in_shopping: bool = True,
    ingredients: list[Ingredient] | None = None,
) -> TextMenuItem | None:
    """Build a free-text menu item.

    Ingredients are entered per portion and multiplied by ``people``.
    They are discarded when the item is excluded from shopping.

    Args:
        value: Free text; must be non-empty after trimming.
        people: People to cook for.
        include_in_shopping: Whether the item feeds the shopping list.
        ingredients: Per-portion ingredients.

    Returns:
        TextMenuItem, or None when the text is empty.
    """
    text = value.strip()
    if not text:
        return None
    snapshot = (
        scale_ingredients(ingredients or [], 1, people) if include_in_shopping else None
    )
    return TextMenuItem(
        value=text,
        include_in_shopping=include_in_shopping,
        ingredients=snapshot,
    )


def item_ingredients(
    item: MenuItem, people: int, recipes: RecipeLookup | None = None
) -> list[Ingredient]:
    """Resolve the ingredients a menu item consumes.

    The item's snapshot wins. Recipe items without one are scaled from
    the catalog recipe for ``people``. Text items excluded from shopping
    consume nothing.

    Args:
        item: Menu item.
        people: People count of the item's cell.
        recipes: Optional lookup for recipe items lacking a snapshot.

    Returns:
        Countable ingredients.
    """
    if isinstance(item, TextMenuItem) and not item.include_in_shopping:
        return []
    if item.ingredients:
        return countable_ingredients(item.ingredients)
    if not isinstance(item, RecipeMenuItem) or recipes is None:
        return []
    recipe = recipes.get_recipe(item.recipe_id)
    if recipe is None:
        logger.debug("Recipe %s not found", item.recipe_id)
        return []
    return scale_ingredients(recipe.ingredients, recipe.servings, people)


def item_cooked(profile: MenuProfileState, item: MenuItem) -> bool:
    """Explicit cooked state: the status map entry, else the item flag."""
    status = profile.cooked_status.get(item.id)
    return item.cooked if status is None else status


def _rekey_profile(
    profile: MenuProfileState, old_name: str, new_name: str
) -> MenuProfileState:
    """Move a profile's cells and people counts from one meal label to another."""
    return profile.model_copy(
        update={
            "meal_data": migrate_meal_data(profile.meal_data, old_name, new_name),
            "cell_people_count": migrate_people_count(
                profile.cell_people_count, old_name, new_name
            ),
        }
    )


class MenuProfileStore:
    """Named menu profiles of one period, with persistence on every edit.

    Args:
        storage: Storage backend the bundle is persisted through.
        slots: Optional meal slot registry kept in sync with cell labels.
        recipes: Optional recipe lookup for rescaling recipe items.
        pantry: Optional pantry ledger for cooked-item deduction.
        default_menu_name: Name for profiles created on repair.
        cloud: Optional cloud mirror for the active profile.
    """

    def __init__(
        self,
        storage: StoragePort,
        slots: MealSlotRegistry | None = None,
        recipes: RecipeLookup | None = None,
        pantry: PantryLedger | None = None,
        default_menu_name: str = DEFAULT_MENU_NAME,
        cloud: CloudSyncAdapter | None = None,
    ) -> None:
        """Initialize an empty store; call :meth:`load` before editing.

        Args:
            storage: Storage backend the bundle is persisted through.
            slots: Optional meal slot registry kept in sync with cell labels.
            recipes: Optional recipe lookup for rescaling recipe items.
            pantry: Optional pantry ledger for cooked-item deduction.
            default_menu_name: Name for profiles created on repair.
            cloud: Optional cloud mirror for the active profile.
        """
        self._storage = storage
        self._cloud = cloud
        self._hydrated_ranges: set[str] = set()
        self._slots = slots
        self._recipes = recipes
        self._pantry = pantry
        self._default_name = default_menu_name
        self._range_key: str | None = None
        first = default_profile(default_menu_name)
        self._menus: list[MenuProfileState] = [first]
        self._active_id = first.id

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self, range_key: str) -> None:
        """Make the stored bundle of a period the authoritative state.

        Meal labels used by cells but missing from the slot registry are
        added to it so no items are hidden from the grid.

        Args:
            range_key: Period range key.
        """
        self._range_key = range_key
        parsed = parse_bundle(
            read_raw(self._storage, menu_storage_key(range_key)),
            read_json(self._storage, people_count_storage_key(range_key)),
            read_json(self._storage, cooked_status_storage_key(range_key)),
            default_name=self._default_name,
        )
        self._menus = parsed.menus
        self._active_id = parsed.active_menu_id
        logger.debug(
            "Loaded %d menu profile(s) for %s", len(self._menus), range_key
        )
        self._sync_slots()

    def _cell_labels(self) -> list[str]:
        return meal_labels(k for m in self._menus for k in m.meal_data)

    def _sync_slots(self) -> None:
        """Line cell labels up with the slot registry.

        Labels that name an existing slot up to case or padding are
        re-keyed to the slot's exact name in every profile; labels with no
        slot at all get a new one.
        """
        if self._slots is None:
            return
        rekeyed = False
        for label in self._cell_labels():
            slot = self._slots.find_by_name(label)
            if slot is None or slot.name == label:
                continue
            logger.info("Moving cells labelled %r under slot %r", label, slot.name)
            self._menus = [
                _rekey_profile(menu, label, slot.name) for menu in self._menus
            ]
            rekeyed = True
        self._slots.ensure_slots(self._cell_labels())
        if rekeyed and self._range_key is not None:
            self._write_local(self._range_key)

    @property
    def hydrated(self) -> bool:
        """Whether the cloud row of the loaded period has been considered."""
        return self._range_key in self._hydrated_ranges

    def hydrate(self) -> bool:
        """Apply the cloud menu of the loaded period, once per period.

        The row replaces the active profile's cells, people counts and
        cooked flags and is written to local storage. Either way the
        period counts as hydrated afterwards, so later edits are pushed.

        Returns:
            True if a cloud row was applied.
        """
        if self._range_key is None or self.hydrated:
            return False
        self._hydrated_ranges.add(self._range_key)
        if self._cloud is None:
            return False
        snapshot = self._cloud.fetch_week_menu(self._range_key)
        if snapshot is None:
            return False
        self._update_active(
            meal_data=snapshot.meal_data,
            cell_people_count=snapshot.cell_people_count,
            cooked_status=snapshot.cooked_status,
        )
        self._write_local(self._range_key)
        self._sync_slots()
        logger.info("Applied cloud menu for %s", self._range_key)
        return True

    def persist(self) -> bool:
        """Write the full profile set and the legacy mirrors.

        Once hydrated, the active profile is also queued for the cloud.

        Returns:
            True if every local write succeeded; False if the store has
            no period loaded or any write failed.
        """
        if self._range_key is None:
            logger.warning("persist() called before load(); nothing written")
            return False
        ok = self._write_local(self._range_key)
        if self._cloud is not None and self.hydrated:
            self._cloud.schedule_menu_push(self._range_key, self.active_profile)
        return ok

    def _write_local(self, range_key: str) -> bool:
        ok = write_raw(
            self._storage,
            menu_storage_key(range_key),
            serialize_bundle(self._menus, self._active_id),
        )
        active = self.active_profile
        ok = (
            write_json(
                self._storage,
                people_count_storage_key(range_key),
                active.cell_people_count,
            )
            and ok
        )
        ok = (
            write_json(
                self._storage,
                cooked_status_storage_key(range_key),
                active.cooked_status,
            )
            and ok
        )
        return ok

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def range_key(self) -> str | None:
        """Range key of the loaded period."""
        return self._range_key

    @property
    def menus(self) -> list[MenuProfileState]:
        """All profiles in order."""
        return list(self._menus)

    @property
    def active_menu_id(self) -> str:
        """Id of the active profile."""
        return self._active_id

    @property
    def active_profile(self) -> MenuProfileState:
        """The active profile."""
        for menu in self._menus:
            if menu.id == self._active_id:
                return menu
        return self._menus[0]

    @property
    def meal_data(self) -> dict[str, list[MenuItem]]:
        """Cells of the active profile (shallow copy)."""
        return {k: list(v) for k, v in self.active_profile.meal_data.items()}

    def items(self, cell: str) -> list[MenuItem]:
        """Items of a cell in the active profile; empty if absent."""
        return list(self.active_profile.meal_data.get(cell, []))

    def people_count(self, cell: str) -> int:
        """Effective people count of a cell (override or default)."""
        return self.active_profile.cell_people_count.get(cell, DEFAULT_PEOPLE_COUNT)

    def is_cooked(self, cell: str, index: int, today: date | None = None) -> bool:
        """Resolve whether an item counts as cooked.

        The cooked-status map wins; then the item's own flag; then items
        on days already past count as cooked.

        Args:
            cell: Cell key.
            index: Item position in the cell.
            today: Reference day, defaults to the current date.

        Returns:
            Effective cooked state; False for missing items.
        """
        item = self._item_at(cell, index)
        if item is None:
            return False
        if item.id in self.active_profile.cooked_status or item.cooked:
            return item_cooked(self.active_profile, item)
        address = split_cell_key(cell)
        if address is None:
            return False
        reference = (today or date.today()).isoformat()
        return address.date < reference

    def _item_at(self, cell: str, index: int) -> MenuItem | None:
        items = self.active_profile.meal_data.get(cell, [])
        if 0 <= index < len(items):
            return items[index]
        return None

    def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        wanted = name.lower()
        return any(
            m.name.lower() == wanted and m.id != exclude_id for m in self._menus
        )

    def _update_active(self, **changes: Any) -> None:
        active = self.active_profile
        updated = active.model_copy(update=changes)
        self._menus = [updated if m.id == active.id else m for m in self._menus]

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(self, name: str) -> MenuProfileState | None:
        """Append an empty profile and make it active.

        Args:
            name: Profile name, unique case-insensitively.

        Returns:
            The new profile, or None if the name is empty or taken.
        """
        cleaned = name.strip()
        if not cleaned or self._name_taken(cleaned):
            return None
        profile = MenuProfileState(name=cleaned)
        self._menus.append(profile)
        self._active_id = profile.id
        self.persist()
        return profile

    def select_profile(self, menu_id: str) -> bool:
        """Switch the active profile.

        Args:
            menu_id: Profile id.

        Returns:
            True if the active profile changed.
        """
        if menu_id == self._active_id:
            return False
        if not any(m.id == menu_id for m in self._menus):
            return False
        self._active_id = menu_id
        self.persist()
        return True

    def rename_active(self, name: str) -> bool:
        """Rename the active profile.

        Args:
            name: New name, unique among the other profiles.

        Returns:
            True if the profile was renamed.
        """
        cleaned = name.strip()
        if not cleaned or self._name_taken(cleaned, exclude_id=self._active_id):
            return False
        self._update_active(name=cleaned)
        self.persist()
        return True

    def delete_profile(self, menu_id: str) -> bool:
        """Delete a profile, keeping at least one.

        Deleting the active profile activates the first remaining one.

        Args:
            menu_id: Profile id.

        Returns:
            True if the profile was deleted.
        """
        if len(self._menus) <= 1:
            return False
        remaining = [m for m in self._menus if m.id != menu_id]
        if len(remaining) == len(self._menus):
            return False
        self._menus = remaining
        if self._active_id == menu_id:
            self._active_id = remaining[0].id
        self.persist()
        return True

    # ------------------------------------------------------------------
    # Cell items
    # ------------------------------------------------------------------

    def _set_cell(
        self, meal_data: dict[str, list[MenuItem]], cell: str, items: list[MenuItem]
    ) -> None:
        """Store items under a cell, deleting the key when empty."""
        if items:
            meal_data[cell] = items
        else:
            meal_data.pop(cell, None)

    def add_item(self, cell: str, item: MenuItem) -> None:
        """Append an item to a cell of the active profile.

        Args:
            cell: Cell key.
            item: Menu item snapshot.
        """
        meal_data = self.meal_data
        meal_data[cell] = meal_data.get(cell, []) + [item]
        self._update_active(meal_data=meal_data)
        self.persist()

    def edit_item(self, cell: str, index: int, item: MenuItem) -> bool:
        """Replace an item in place.

        Args:
            cell: Cell key.
            index: Item position.
            item: Replacement item.

        Returns:
            True if the item existed and was replaced.
        """
        if self._item_at(cell, index) is None:
            return False
        meal_data = self.meal_data
        meal_data[cell][index] = item
        self._update_active(meal_data=meal_data)
        self.persist()
        return True

    def remove_item(self, cell: str, index: int) -> bool:
        """Remove an item; an emptied cell is deleted.

        Args:
            cell: Cell key.
            index: Item position.

        Returns:
            True if an item was removed.
        """
        if self._item_at(cell, index) is None:
            return False
        meal_data = self.meal_data
        items = meal_data[cell]
        del items[index]
        self._set_cell(meal_data, cell, items)
        self._update_active(meal_data=meal_data)
        self.persist()
        return True

    def move_item(self, from_cell: str, index: int, to_cell: str) -> bool:
        """Move an item to the end of another cell.

        Args:
            from_cell: Source cell key.
            index: Item position in the source cell.
            to_cell: Destination cell key.

        Returns:
            True if the item moved.
        """
        item = self._item_at(from_cell, index)
        if item is None:
            return False
        meal_data = self.meal_data
        source = meal_data[from_cell]
        del source[index]
        self._set_cell(meal_data, from_cell, source)
        meal_data[to_cell] = meal_data.get(to_cell, []) + [item]
        self._update_active(meal_data=meal_data)
        self.persist()
        return True

    def set_people_count(self, cell: str, count: int) -> None:
        """Set a cell's people count; non-positive counts clear the override.

        Args:
            cell: Cell key.
            count: People to cook for.
        """
        counts = dict(self.active_profile.cell_people_count)
        if count <= 0:
            counts.pop(cell, None)
        else:
            counts[cell] = count
        self._update_active(cell_people_count=counts)
        self.persist()

    # ------------------------------------------------------------------
    # Cooking
    # ------------------------------------------------------------------

    def effective_ingredients(self, cell: str, item: MenuItem) -> list[Ingredient]:
        """Ingredients an item in ``cell`` consumes, see :func:`item_ingredients`."""
        return item_ingredients(item, self.people_count(cell), self._recipes)

    def mark_cooked(
        self, cell: str, index: int, deduct_from_pantry: bool = False
    ) -> bool:
        """Toggle an item's explicit cooked state.

        The current state comes from :func:`item_cooked`. The new state is
        written to both the item flag and the cooked-status map. Pantry
        deduction happens only when the item goes from not cooked to
        cooked and deduction is requested.

        Args:
            cell: Cell key.
            index: Item position.
            deduct_from_pantry: Whether to reconcile pantry stock.

        Returns:
            True if the item existed.
        """
        item = self._item_at(cell, index)
        if item is None:
            return False
        cooked = not item_cooked(self.active_profile, item)
        meal_data = self.meal_data
        meal_data[cell][index] = item.model_copy(update={"cooked": cooked})
        status = dict(self.active_profile.cooked_status)
        status[item.id] = cooked
        self._update_active(meal_data=meal_data, cooked_status=status)
        self.persist()

        if cooked and deduct_from_pantry:
            if self._pantry is None:
                logger.warning("No pantry configured; skipping deduction")
            else:
                ingredients = self.effective_ingredients(cell, item)
                if ingredients:
                    self._pantry.deduct(ingredients)
        return True

    # ------------------------------------------------------------------
    # Meal slots
    # ------------------------------------------------------------------

    def rename_meal_slot(self, slot_id: str, new_name: str) -> bool:
        """Rename a meal slot and re-key its cells in every profile.

        Args:
            slot_id: Slot id in the registry.
            new_name: Replacement name.

        Returns:
            True if the slot was renamed.
        """
        if self._slots is None:
            return False
        old_name = self._slots.rename(slot_id, new_name)
        if old_name is None:
            return False
        target = new_name.strip()
        self._menus = [_rekey_profile(menu, old_name, target) for menu in self._menus]
        self.persist()
        return True
