"""
Reservation ledger for Pantry Planner.

The ledger is a derived, read-only aggregate: for a scope of planned meals it
sums how much of each normalized item name those meals have already committed
to. Nothing is persisted; it is rebuilt from the stored meals on every load, so
it heals itself after any pantry or meal edit.

Rebuilding costs O(meals x reserved names) from stored maps, or
O(meals x ingredients x pantry items) for legacy meals that must be reserved on
the fly. Callers bound this by scoping the meals (one calendar month).

Ledger keys are normalized pantry-record names. A recipe line
"2 boneless chicken breasts" matched to the pantry record "Chicken Breast"
reserves under "chicken breast".
"""

from collections import OrderedDict
from collections.abc import Mapping
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set

from models import Dish, InventoryItem
from services.ingredient_matcher import best_matches, normalize_item_name
from services.quantity_parser import parse_ingredient
from utils import get_logger

logger = get_logger(__name__)


class ReservationLedger(Mapping):
    """
    Mapping of normalized item name -> total reserved quantity.

    Per-meal contributions are kept so one meal can be excluded later without
    rebuilding from storage (used while that meal is being edited).

    inactive_meal_ids holds meals whose pantry claims no longer count:
    prepared meals and meals that have been deleted.
    """

    def __init__(self, contributions: Optional[Dict[str, Dict[str, float]]] = None,
                 inactive_meal_ids: Optional[Iterable[str]] = None):
        self._by_meal: Dict[str, Dict[str, float]] = {}
        self._totals: Dict[str, float] = {}
        self.inactive_meal_ids: Set[str] = set(inactive_meal_ids or [])
        for meal_id, reserved in (contributions or {}).items():
            self._add(meal_id, reserved)

    def _add(self, meal_id: str, reserved: Dict[str, float]):
        meal_entry = self._by_meal.setdefault(meal_id, {})
        for name, quantity in reserved.items():
            key = normalize_item_name(name)
            amount = _as_quantity(quantity)
            if not key or amount <= 0:
                continue
            meal_entry[key] = meal_entry.get(key, 0.0) + amount
            self._totals[key] = self._totals.get(key, 0.0) + amount

    def __getitem__(self, name: str) -> float:
        return self._totals[normalize_item_name(name)]

    def __contains__(self, name) -> bool:
        return isinstance(name, str) and normalize_item_name(name) in self._totals

    def __iter__(self) -> Iterator[str]:
        return iter(self._totals)

    def __len__(self) -> int:
        return len(self._totals)

    def __repr__(self) -> str:
        return f"ReservationLedger({self._totals!r})"

    @property
    def meal_ids(self) -> List[str]:
        return list(self._by_meal)

    def contributions(self, meal_id: str) -> Dict[str, float]:
        """What a single meal contributes to the ledger"""
        return dict(self._by_meal.get(meal_id, {}))

    def reserved_for(self, name: str, exclude_meal_id: Optional[str] = None) -> float:
        """Quantity reserved under name, optionally ignoring one meal"""
        key = normalize_item_name(name)
        total = self._totals.get(key, 0.0)
        if exclude_meal_id is not None:
            total -= self._by_meal.get(exclude_meal_id, {}).get(key, 0.0)
        return max(0.0, total)

    def excluding(self, meal_id: Optional[str]) -> 'ReservationLedger':
        """A copy of this ledger without one meal's contributions"""
        return ReservationLedger({
            other_id: reserved for other_id, reserved in self._by_meal.items()
            if other_id != meal_id
        }, self.inactive_meal_ids)

    def to_dict(self) -> Dict[str, float]:
        return dict(self._totals)


def build_ledger(meals: Optional[Iterable[Dish]], exclude_meal_id: Optional[str] = None,
                 pantry_items: Optional[Sequence[InventoryItem]] = None) -> ReservationLedger:
    """
    Sum the reserved quantities of every in-scope meal.

    Args:
        meals: Meals the caller considers in scope (e.g. the current month)
        exclude_meal_id: Meal being edited, so it does not count against itself
        pantry_items: When given, legacy meals without a stored reservation map
            are reserved on the fly against this pantry snapshot

    Completed meals are skipped: their reservation has already been consumed
    from the pantry quantities. They are listed in inactive_meal_ids so the
    claims they still hold on untracked items are ignored.
    """
    contributions: Dict[str, Dict[str, float]] = OrderedDict()
    legacy: List[Dish] = []
    completed: Set[str] = set()

    for meal in meals or []:
        if meal is None:
            continue
        if meal.completed:
            completed.add(meal.id)
            continue
        if exclude_meal_id is not None and meal.id == exclude_meal_id:
            continue
        if meal.reserved_quantities is None:
            legacy.append(meal)
            continue
        contributions[meal.id] = meal.reserved_quantities

    ledger = ReservationLedger(contributions, completed)

    if legacy and pantry_items is not None:
        for meal_id, reserved in calculate_reserved_quantities(legacy, pantry_items, ledger).items():
            ledger._add(meal_id, reserved)
        logger.debug(f"Reserved {len(legacy)} legacy meal(s) on the fly")

    logger.debug(f"Built ledger over {len(ledger.meal_ids)} meal(s): {len(ledger)} item name(s)")
    return ledger


def calculate_meal_reserved_quantities(ingredients: Optional[Sequence[str]],
                                       pantry_items: Optional[Sequence[InventoryItem]],
                                       already_reserved: Optional[Mapping] = None) -> Dict[str, float]:
    """
    Reservation map for a single meal's ingredient lines.

    Each line with a parseable quantity reserves up to what the matching pantry
    records hold (minus already_reserved), never more. Lines without a quantity
    and pantry records without a tracked quantity reserve nothing.
    """
    reserved: Dict[str, float] = {}
    pantry_items = [item for item in (pantry_items or []) if item is not None]
    capacity = _capacity_by_key(pantry_items)
    already_reserved = already_reserved or {}

    for line in ingredients or []:
        parsed = parse_ingredient(line)
        if not parsed.has_quantity or parsed.quantity <= 0:
            continue

        remaining = parsed.quantity
        for key in _tracked_keys(best_matches(parsed.item_name, pantry_items)):
            if remaining <= 0:
                break
            taken = reserved.get(key, 0.0) + _as_quantity(already_reserved.get(key, 0.0))
            free = max(0.0, capacity.get(key, 0.0) - taken)
            if free <= 0:
                continue
            portion = min(remaining, free)
            reserved[key] = reserved.get(key, 0.0) + portion
            remaining -= portion

    return reserved


def calculate_reserved_quantities(meals: Iterable[Dish], pantry_items: Sequence[InventoryItem],
                                  already_reserved: Optional[Mapping] = None) -> Dict[str, Dict[str, float]]:
    """
    Reserve several meals in order, each against what the earlier ones left.

    Returns meal id -> reservation map.
    """
    running: Dict[str, float] = {key: _as_quantity(value) for key, value in (already_reserved or {}).items()}
    result: Dict[str, Dict[str, float]] = OrderedDict()

    for meal in meals:
        reserved = calculate_meal_reserved_quantities(meal.ingredients, pantry_items, running)
        result[meal.id] = reserved
        for key, amount in reserved.items():
            running[key] = running.get(key, 0.0) + amount

    return result


def _capacity_by_key(pantry_items: Sequence[InventoryItem]) -> Dict[str, float]:
    """Total tracked quantity per normalized pantry name"""
    capacity: Dict[str, float] = {}
    for item in pantry_items:
        if item.quantity is None:
            continue
        key = normalize_item_name(item.name)
        capacity[key] = capacity.get(key, 0.0) + max(0.0, item.quantity)
    return capacity


def _tracked_keys(items: Sequence[InventoryItem]) -> List[str]:
    """Distinct normalized names of the tracked items, in first-seen order"""
    keys: List[str] = []
    for item in items:
        if item.quantity is None:
            continue
        key = normalize_item_name(item.name)
        if key and key not in keys:
            keys.append(key)
    return keys


def _as_quantity(value) -> float:
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0
