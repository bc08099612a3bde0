"""
Claim service for Pantry Planner.

Links planned meals to the pantry and shopping list records they will use and
keeps those links in step with the meal's ingredient list.

Every operation here is a sequence of independent per-record writes. A storage
failure partway through propagates as StorageError and leaves the earlier writes
in place; nothing is rolled back. Re-running the same operation converges
because the desired claims are recomputed from current state and only the
difference is written.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from models import Dish, InventoryItem, ShoppingListItem
from services.availability_service import AvailabilityService, classify
from services.database_service import DatabaseService, get_database_service
from services.ingredient_matcher import best_matches, matches, normalize_item_name
from services.quantity_parser import clean_item_name, parse_ingredient
from services.reservation_ledger import build_ledger, calculate_meal_reserved_quantities
from utils import ContextLogger, get_config, get_logger, log_operation

logger = get_logger(__name__)

DISH_EDIT_SOURCE = "dish_edit"


class ClaimError(Exception):
    """Workflow called with a meal or ingredient selection it cannot act on"""


class ClaimService:
    """
    Service for claiming, reconciling and consuming pantry stock for meals.

    Core functionality:
    - Claim pantry and shopping list records for a meal
    - Reconcile claims after a meal's ingredients change
    - Consume reserved stock when a meal is prepared
    - Release everything when a meal is deleted
    """

    def __init__(self, database_service: Optional[DatabaseService] = None):
        self.db = database_service or get_database_service()

    # Claim primitives

    def claim_items_for_meal(self, user_id: str, meal_id: str, ingredients: Sequence[str],
                             pantry_items: Sequence[InventoryItem],
                             reserved_quantities: Optional[Mapping[str, float]],
                             inactive_meal_ids: Optional[Iterable[str]] = None) -> Set[str]:
        """
        Add meal_id to the back-references of the pantry items the meal uses.

        A tracked item is claimed when its normalized name has a non-zero
        reservation. An untracked item is claimed unless another meal already
        holds it; claims from inactive_meal_ids (prepared or deleted meals)
        are ignored. Quantities are not touched. Items that already carry the
        meal id are not written again.

        Returns the ids of every claimed item.
        """
        claimed = self._desired_item_claims(
            user_id, meal_id, ingredients, pantry_items, reserved_quantities, inactive_meal_ids
        )

        for item in pantry_items:
            if item.id in claimed and meal_id not in item.used_by_meals:
                used_by = item.used_by_meals | {meal_id}
                self.db.update_inventory_item(item.id, used_by_meals=used_by)
                item.used_by_meals = used_by
                logger.info(f"Meal {meal_id} claimed pantry item '{item.name}'")

        return claimed

    def claim_shopping_list_items_for_meal(self, user_id: str, meal_id: str, ingredients: Sequence[str],
                                           shopping_list_items: Sequence[ShoppingListItem]) -> Set[str]:
        """
        Ids of open shopping list items that cover the meal's ingredients.

        Items added by another meal are left to that meal. The link is
        recorded on the meal, so nothing is written here.
        """
        names = _ingredient_names(ingredients)
        claimed = set()

        for item in shopping_list_items:
            if item.user_id != user_id or item.crossed_off:
                continue
            if item.source_meal_id not in (None, meal_id):
                continue
            if any(matches(name, item.name) for name in names):
                claimed.add(item.id)

        return claimed

    def mark_items_as_used_for_meal(self, user_id: str, meal_id: str, item_ids: Iterable[str],
                                    reserved_quantities: Optional[Mapping[str, float]]) -> List[str]:
        """
        Consume a prepared meal's reservation from the given pantry items.

        Each tracked item is decremented by what remains of the reservation
        for its normalized name (floored at 0, spread across items sharing the
        name). Untracked items only lose the back-reference. Ids that no longer
        resolve are skipped.

        Returns the ids of the items that were written.
        """
        remaining = {normalize_item_name(name): float(quantity or 0.0)
                     for name, quantity in (reserved_quantities or {}).items()}
        delete_depleted = get_config().delete_depleted_items
        updated = []

        for item_id in item_ids:
            item = self.db.get_inventory_item(item_id)
            if item is None:
                logger.warning(f"Pantry item {item_id} claimed by meal {meal_id} no longer exists")
                continue
            if item.user_id != user_id:
                logger.warning(f"Pantry item {item_id} does not belong to user {user_id}")
                continue

            fields = {}
            if meal_id in item.used_by_meals:
                fields['used_by_meals'] = item.used_by_meals - {meal_id}

            key = normalize_item_name(item.name)
            to_use = remaining.get(key, 0.0)
            if item.is_tracked and to_use > 0:
                used = min(to_use, max(0.0, item.quantity))
                remaining[key] = to_use - used
                fields['quantity'] = max(0.0, item.quantity - used)

                if fields['quantity'] == 0 and delete_depleted:
                    self.db.delete_inventory_item(item.id)
                    logger.info(f"Used up pantry item '{item.name}' for meal {meal_id}")
                    updated.append(item.id)
                    continue

            if fields:
                self.db.update_inventory_item(item.id, **fields)
                updated.append(item.id)

        return updated

    # Meal workflows

    def save_meal(self, meal: Dish) -> Dish:
        """Persist a new or edited meal and reconcile its claims"""
        if not meal.id or self.db.get_meal(meal.id) is None:
            self.db.save_meal(meal)
        return self._reconcile(meal)

    def reconcile_meal(self, meal_id: str) -> Dish:
        """Recompute a stored meal's reservations and claims from current state"""
        meal = self.db.get_meal(meal_id)
        if meal is None:
            raise ClaimError(f"Meal {meal_id} does not exist")
        return self._reconcile(meal)

    def mark_meal_prepared(self, meal_id: str, selected_ingredients: Optional[Sequence[str]] = None) -> Dish:
        """
        Confirm a meal as prepared.

        Only the selected ingredient lines (default: all) are consumed:
        claimed shopping list items matching them are deleted and claimed
        pantry items matching them are decremented by the selected lines'
        share of the meal's reservation. Claims on the other lines are left
        as they are; once the meal is flagged completed they no longer count
        against other meals.
        """
        meal = self.db.get_meal(meal_id)
        if meal is None:
            raise ClaimError(f"Meal {meal_id} does not exist")
        if meal.completed:
            logger.warning(f"Meal {meal_id} is already marked prepared")
            return meal

        selected = list(meal.ingredients if selected_ingredients is None else selected_ingredients)
        unknown = [line for line in selected if line not in meal.ingredients]
        if unknown:
            raise ClaimError(f"Ingredients not in meal {meal_id}: {', '.join(unknown)}")

        with log_operation(logger, f"Mark meal prepared {meal_id}") as operation:
            names = _ingredient_names(selected)

            used_list_ids = set()
            for item_id in sorted(meal.claimed_shopping_list_item_ids):
                item = self.db.get_shopping_list_item(item_id)
                if item is None:
                    used_list_ids.add(item_id)
                    continue
                if any(matches(name, item.name) for name in names):
                    self.db.delete_shopping_list_item(item_id)
                    used_list_ids.add(item_id)
                    operation.tally("list_used")

            pantry = self.db.get_inventory_items(meal.user_id)
            others = build_ledger(
                self.db.get_meals_for_month(meal.user_id, meal.date),
                exclude_meal_id=meal.id, pantry_items=pantry
            )
            reserved = meal.reserved_quantities
            if reserved is None:
                reserved = calculate_meal_reserved_quantities(meal.ingredients, pantry, others)
                operation.info(f"Reserved legacy meal on the fly: {reserved}")

            selected_reserved = _capped_share(
                calculate_meal_reserved_quantities(selected, pantry, others), reserved
            )
            operation.info(f"Consuming {selected_reserved}")

            used_item_ids = []
            for item_id in sorted(meal.claimed_item_ids):
                item = self.db.get_inventory_item(item_id)
                if item is None or any(matches(name, item.name) for name in names):
                    used_item_ids.append(item_id)

            updated = self.mark_items_as_used_for_meal(meal.user_id, meal.id, used_item_ids, selected_reserved)
            operation.tally("pantry_used", len(updated))

            meal.claimed_item_ids -= set(used_item_ids)
            meal.claimed_shopping_list_item_ids -= used_list_ids
            meal.completed = True
            self.db.update_meal(
                meal.id,
                completed=True,
                claimed_item_ids=meal.claimed_item_ids,
                claimed_shopping_list_item_ids=meal.claimed_shopping_list_item_ids
            )

        return meal

    def delete_meal(self, meal_id: str) -> bool:
        """
        Delete a meal and release everything it held.

        The meal record is removed last, so a failed delete can be retried.
        """
        meal = self.db.get_meal(meal_id)
        if meal is None:
            logger.warning(f"Meal {meal_id} not found for deletion")
            return False

        with log_operation(logger, f"Delete meal {meal_id}") as operation:
            for item in self.db.get_inventory_items(meal.user_id):
                if meal_id in item.used_by_meals:
                    self.db.update_inventory_item(item.id, used_by_meals=item.used_by_meals - {meal_id})
                    operation.tally("released")

            operation.tally("list_deleted", self.db.delete_shopping_list_items_by_meal(meal_id))
            return self.db.delete_meal(meal_id)

    # Helper Methods

    def _reconcile(self, meal: Dish) -> Dish:
        if meal.completed:
            raise ClaimError(f"Meal {meal.id} is already prepared")

        config = get_config()
        with log_operation(logger, f"Reconcile meal {meal.id}") as operation:
            pantry = self.db.get_inventory_items(meal.user_id)
            ledger = AvailabilityService(self.db).get_reservation_ledger(
                meal.user_id, meal.date, exclude_meal_id=meal.id, pantry_items=pantry
            )
            reserved = calculate_meal_reserved_quantities(meal.ingredients, pantry, ledger)
            operation.info(f"Reserved {reserved}")

            previous = set(meal.claimed_item_ids)
            claimed = self.claim_items_for_meal(
                meal.user_id, meal.id, meal.ingredients, pantry, reserved, ledger.inactive_meal_ids
            )
            operation.tally("claimed", len(claimed - previous))
            self._release_items(meal, pantry, claimed, operation)

            shopping = self.db.get_shopping_list_items(meal.user_id)
            shopping = self._sync_shopping_list(meal, pantry, shopping, ledger, config, operation)
            claimed_list = self.claim_shopping_list_items_for_meal(
                meal.user_id, meal.id, meal.ingredients, shopping
            )

            meal.reserved_quantities = reserved
            meal.claimed_item_ids = claimed
            meal.claimed_shopping_list_item_ids = claimed_list
            self.db.save_meal(meal)

        return meal

    def _desired_item_claims(self, user_id: str, meal_id: str, ingredients: Sequence[str],
                             pantry_items: Sequence[InventoryItem],
                             reserved_quantities: Optional[Mapping[str, float]],
                             inactive_meal_ids: Optional[Iterable[str]] = None) -> Set[str]:
        reserved = {normalize_item_name(name): quantity
                    for name, quantity in (reserved_quantities or {}).items()}
        owned = [item for item in pantry_items if item.user_id == user_id]
        claimed = set()

        for name in _ingredient_names(ingredients):
            for item in best_matches(name, owned):
                if item.is_tracked:
                    if reserved.get(normalize_item_name(item.name), 0.0) > 0:
                        claimed.add(item.id)
                elif not item.is_claimed_by_other(meal_id, inactive_meal_ids):
                    claimed.add(item.id)

        return claimed

    def _release_items(self, meal: Dish, pantry_items: Sequence[InventoryItem], keep: Set[str],
                       operation: ContextLogger):
        """Drop the meal from items it no longer needs"""
        existing = {item.id for item in pantry_items}
        dropped = meal.claimed_item_ids - existing
        if dropped:
            operation.warning(f"Dropped {len(dropped)} claim(s) on deleted pantry items")

        for item in pantry_items:
            if item.id not in keep and meal.id in item.used_by_meals:
                used_by = item.used_by_meals - {meal.id}
                self.db.update_inventory_item(item.id, used_by_meals=used_by)
                item.used_by_meals = used_by
                operation.tally("released")
                operation.info(f"Released pantry item '{item.name}'")

    def _sync_shopping_list(self, meal: Dish, pantry_items: Sequence[InventoryItem],
                            shopping_items: List[ShoppingListItem], ledger,
                            config, operation: ContextLogger) -> List[ShoppingListItem]:
        """
        Delete list items the meal added for ingredients it no longer has,
        then add what the meal is short of. Returns the updated list snapshot.

        A crossed-off item the meal added still covers its line: it has been
        bought but not yet put in the pantry.
        """
        names = _ingredient_names(meal.ingredients)
        kept = []
        for item in shopping_items:
            if item.source_meal_id == meal.id and not any(matches(name, item.name) for name in names):
                self.db.delete_shopping_list_item(item.id)
                operation.tally("list_deleted")
                continue
            kept.append(item)

        dropped = meal.claimed_shopping_list_item_ids - {item.id for item in kept}
        if dropped:
            operation.warning(f"Dropped {len(dropped)} shopping list claim(s)")

        if not config.auto_add_missing:
            return kept

        bought = [item for item in kept if item.crossed_off and item.source_meal_id == meal.id]

        for line in meal.ingredients:
            result = classify(line, pantry_items, kept, ledger, meal.id)
            if not result.needs_purchase or result.on_shopping_list or not result.item_name:
                continue
            if any(matches(result.item_name, item.name) for item in bought):
                continue

            quantity = result.needed_quantity
            if quantity is not None and result.available_quantity:
                quantity = quantity - result.available_quantity

            kept.append(self.db.add_shopping_list_item(
                meal.user_id,
                clean_item_name(result.item_name),
                list_id=config.default_list_id,
                quantity=quantity,
                unit=parse_ingredient(line).unit,
                source=DISH_EDIT_SOURCE,
                source_meal_id=meal.id
            ))
            operation.tally("list_added")

        return kept


def _capped_share(share: Mapping[str, float], reserved: Mapping[str, float]) -> Dict[str, float]:
    """Per-key share of a reservation, never more than the meal reserved"""
    limits = {normalize_item_name(name): float(quantity or 0.0) for name, quantity in reserved.items()}
    capped = {}
    for name, quantity in share.items():
        key = normalize_item_name(name)
        amount = min(float(quantity or 0.0), limits.get(key, 0.0))
        if amount > 0:
            capped[key] = amount
    return capped


def _ingredient_names(ingredients: Optional[Iterable[str]]) -> List[str]:
    names = []
    for line in ingredients or []:
        name = parse_ingredient(line).item_name
        if name and name not in names:
            names.append(name)
    return names


# Global service instance
_claim_service: Optional[ClaimService] = None


def get_claim_service(database_service: Optional[DatabaseService] = None) -> ClaimService:
    """Get singleton claim service instance"""
    global _claim_service
    if _claim_service is None:
        _claim_service = ClaimService(database_service)
    return _claim_service
