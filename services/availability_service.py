"""
Ingredient availability service for Pantry Planner.

Classifies each ingredient line of a meal against the pantry, after subtracting
what other planned meals have already reserved. The classification itself
(``classify``) is a pure function; ``AvailabilityService`` loads the snapshots
it needs from storage.
"""

from collections.abc import Mapping
from datetime import date
from typing import Dict, List, Optional, Sequence

from models import (
    AvailabilityStatus, Dish, IngredientAvailability, InventoryItem, ShoppingListItem
)
from services.database_service import DatabaseService, StorageError, get_database_service
from services.ingredient_matcher import best_matches, normalize_item_name
from services.quantity_parser import parse_ingredient
from services.reservation_ledger import ReservationLedger, build_ledger
from utils import get_logger

logger = get_logger(__name__)


def classify(ingredient_line: str, pantry_items: Optional[Sequence[InventoryItem]],
             shopping_list_items: Optional[Sequence[ShoppingListItem]] = None,
             ledger: Optional[Mapping] = None,
             exclude_meal_id: Optional[str] = None) -> IngredientAvailability:
    """
    Classify one ingredient line against the pantry.

    Args:
        ingredient_line: Raw recipe line, e.g. "2 chicken breasts"
        pantry_items: Snapshot of the user's pantry
        shopping_list_items: Snapshot of the shopping list(s), for context only
        ledger: Normalized item name -> quantity reserved by planned meals
        exclude_meal_id: Meal being edited; its own reservations and claims
            do not count against it

    Tracked quantities of every matching pantry record are summed per
    normalized name, minus the ledger entry for that name. Records without a
    tracked quantity count as present but never satisfy a numeric comparison
    on their own when tracked records also match.

    Never raises; malformed input degrades to MISSING.
    """
    try:
        return _classify(ingredient_line, pantry_items or [], shopping_list_items or [],
                         ledger, exclude_meal_id)
    except Exception as e:
        logger.warning(f"Could not classify '{ingredient_line}': {e}")
        return IngredientAvailability(
            ingredient=ingredient_line if isinstance(ingredient_line, str) else "",
            status=AvailabilityStatus.MISSING
        )


def _classify(ingredient_line: str, pantry_items: Sequence[InventoryItem],
              shopping_list_items: Sequence[ShoppingListItem], ledger: Optional[Mapping],
              exclude_meal_id: Optional[str]) -> IngredientAvailability:
    parsed = parse_ingredient(ingredient_line)
    needed = parsed.quantity

    open_list_items = [item for item in shopping_list_items if item is not None and not item.crossed_off]
    shopping_matches = best_matches(parsed.item_name, open_list_items)

    matching = best_matches(parsed.item_name, [item for item in pantry_items if item is not None])
    if not matching:
        return IngredientAvailability(
            ingredient=ingredient_line,
            status=AvailabilityStatus.MISSING,
            item_name=parsed.item_name,
            needed_quantity=needed,
            shopping_list_matches=shopping_matches
        )

    reserved_lookup = _reserved_lookup(ledger, exclude_meal_id)

    capacity: Dict[str, float] = {}
    for item in matching:
        if item.is_tracked:
            key = normalize_item_name(item.name)
            capacity[key] = capacity.get(key, 0.0) + max(0.0, item.quantity)

    reserved_total = sum(reserved_lookup.get(key, 0.0) for key in capacity)
    net = sum(max(0.0, total - reserved_lookup.get(key, 0.0)) for key, total in capacity.items())

    untracked = [item for item in matching if not item.is_tracked]
    inactive = getattr(ledger, "inactive_meal_ids", None)
    free_untracked = any(not item.is_claimed_by_other(exclude_meal_id, inactive) for item in untracked)

    if needed is None:
        if net > 0 or free_untracked:
            status = AvailabilityStatus.AVAILABLE
        elif reserved_total > 0 or untracked:
            # Someone else is using the only one
            status = AvailabilityStatus.RESERVED
        else:
            status = AvailabilityStatus.MISSING
    elif not capacity:
        status = AvailabilityStatus.AVAILABLE if free_untracked else AvailabilityStatus.MISSING
    elif net > 0 and net >= needed:
        status = AvailabilityStatus.AVAILABLE
    elif net > 0 or free_untracked:
        status = AvailabilityStatus.PARTIAL
    else:
        status = AvailabilityStatus.MISSING

    return IngredientAvailability(
        ingredient=ingredient_line,
        status=status,
        item_name=parsed.item_name,
        matching_items=matching,
        available_quantity=net if capacity else None,
        needed_quantity=needed,
        reserved_quantity=reserved_total,
        shopping_list_matches=shopping_matches
    )


def _reserved_lookup(ledger: Optional[Mapping], exclude_meal_id: Optional[str]) -> Dict[str, float]:
    """Flatten a ledger into normalized name -> reserved quantity"""
    if not ledger:
        return {}
    if isinstance(ledger, ReservationLedger):
        if exclude_meal_id is not None:
            ledger = ledger.excluding(exclude_meal_id)
        return ledger.to_dict()

    lookup: Dict[str, float] = {}
    for name, quantity in ledger.items():
        key = normalize_item_name(name)
        try:
            lookup[key] = lookup.get(key, 0.0) + float(quantity or 0.0)
        except (TypeError, ValueError):
            continue
    return lookup


def summarize_availability(results: Sequence[IngredientAvailability]) -> Dict[str, int]:
    """Count of ingredient lines per status"""
    summary = {status.value: 0 for status in AvailabilityStatus}
    for result in results:
        summary[result.status.value] += 1
    return summary


class AvailabilityService:
    """
    Loads pantry, shopping list and month-scoped meals and classifies
    a meal's ingredient lines against them.
    """

    def __init__(self, database_service: Optional[DatabaseService] = None):
        self.db = database_service or get_database_service()

    def get_reservation_ledger(self, user_id: str, reference_date: Optional[date] = None,
                               exclude_meal_id: Optional[str] = None,
                               pantry_items: Optional[Sequence[InventoryItem]] = None) -> ReservationLedger:
        """
        Ledger over the calendar month containing reference_date.

        Meals outside the month that still hold claims on untracked pantry
        items are looked up individually; prepared or deleted ones are added
        to the ledger's inactive_meal_ids.
        """
        meals = self.db.get_meals_for_month(user_id, reference_date)
        if pantry_items is None:
            pantry_items = self.db.get_inventory_items(user_id)
        ledger = build_ledger(meals, exclude_meal_id=exclude_meal_id, pantry_items=pantry_items)

        in_scope = {meal.id for meal in meals}
        claimants = set()
        for item in pantry_items:
            if not item.is_tracked:
                claimants |= item.used_by_meals
        for meal_id in sorted(claimants - in_scope):
            meal = self.db.get_meal(meal_id)
            if meal is None or meal.completed:
                ledger.inactive_meal_ids.add(meal_id)

        return ledger

    def check_meal_availability(self, user_id: str, ingredients: Sequence[str],
                                exclude_meal_id: Optional[str] = None,
                                list_id: Optional[str] = None,
                                reference_date: Optional[date] = None) -> List[IngredientAvailability]:
        """
        Classify every ingredient line of a (possibly unsaved) meal.

        Storage failures are logged and every line degrades to MISSING.
        """
        try:
            pantry_items = self.db.get_inventory_items(user_id)
            shopping_items = self.db.get_shopping_list_items(user_id, list_id=list_id, crossed_off=False)
            ledger = self.get_reservation_ledger(
                user_id, reference_date, exclude_meal_id=exclude_meal_id, pantry_items=pantry_items
            )
        except StorageError as e:
            logger.error(f"Failed to load availability data for user {user_id}: {e}")
            pantry_items, shopping_items, ledger = [], [], ReservationLedger()

        results = []
        for index, line in enumerate(ingredients or []):
            result = classify(line, pantry_items, shopping_items, ledger, exclude_meal_id)
            result.index = index
            results.append(result)

        logger.debug(f"Availability for user {user_id}: {summarize_availability(results)}")
        return results

    def check_dish_availability(self, meal: Dish) -> List[IngredientAvailability]:
        """Availability of a saved meal, excluding its own reservations"""
        return self.check_meal_availability(
            meal.user_id, meal.ingredients, exclude_meal_id=meal.id, reference_date=meal.date
        )


# Global service instance
_availability_service: Optional[AvailabilityService] = None


def get_availability_service(database_service: Optional[DatabaseService] = None) -> AvailabilityService:
    """Get singleton availability service instance"""
    global _availability_service
    if _availability_service is None:
        _availability_service = AvailabilityService(database_service)
    return _availability_service
