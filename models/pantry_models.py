"""
Pantry, shopping list and meal models for Pantry Planner.

Persisted models serialize to plain dictionaries for the document store.
Id sets are held as Python sets and stored as sorted JSON lists.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Set, Dict, Any


def _parse_date(value: Any) -> Optional[date]:
    """Accept a date, datetime or ISO string; anything else becomes None"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_quantity(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MealType(Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"


class AvailabilityStatus(Enum):
    """Classification of one ingredient line against the pantry"""
    AVAILABLE = "available"
    PARTIAL = "partial"
    MISSING = "missing"
    RESERVED = "reserved"


@dataclass
class InventoryItem:
    """
    Pantry record owned by the user's pantry collection.
    used_by_meals is an advisory back-reference to the meals holding a claim.
    """
    id: str
    user_id: str
    name: str
    quantity: Optional[float] = None  # None when the user does not track amounts
    unit: Optional[str] = None
    expiration_date: Optional[date] = None
    used_by_meals: Set[str] = field(default_factory=set)
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not isinstance(self.used_by_meals, set):
            self.used_by_meals = set(self.used_by_meals or [])

    @property
    def is_tracked(self) -> bool:
        """True when the item carries a numeric quantity"""
        return self.quantity is not None

    def is_claimed_by_other(self, meal_id: Optional[str] = None,
                            ignore_meal_ids: Optional[Iterable[str]] = None) -> bool:
        """
        Check if any meal other than meal_id holds a claim on this item.

        Claims held by ignore_meal_ids (prepared or deleted meals) do not count.
        """
        holders = self.used_by_meals - {meal_id}
        if ignore_meal_ids:
            holders -= set(ignore_meal_ids)
        return bool(holders)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'quantity': self.quantity,
            'unit': self.unit,
            'expiration_date': _format_date(self.expiration_date),
            'used_by_meals': sorted(self.used_by_meals),
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InventoryItem':
        created_at = data.get('created_at')
        return cls(
            id=data['id'],
            user_id=data.get('user_id', ''),
            name=data.get('name') or '',
            quantity=_parse_quantity(data.get('quantity')),
            unit=data.get('unit') or None,
            expiration_date=_parse_date(data.get('expiration_date')),
            used_by_meals=set(data.get('used_by_meals') or []),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )


@dataclass
class ShoppingListItem:
    """Entry on one of the user's shopping lists"""
    id: str
    user_id: str
    list_id: str
    name: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    crossed_off: bool = False
    source: Optional[str] = None  # e.g. "dish_edit"
    source_meal_id: Optional[str] = None  # meal that caused this item to be added
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'list_id': self.list_id,
            'name': self.name,
            'quantity': self.quantity,
            'unit': self.unit,
            'crossed_off': self.crossed_off,
            'source': self.source,
            'source_meal_id': self.source_meal_id,
            'created_at': self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShoppingListItem':
        created_at = data.get('created_at')
        return cls(
            id=data['id'],
            user_id=data.get('user_id', ''),
            list_id=data.get('list_id', ''),
            name=data.get('name') or '',
            quantity=_parse_quantity(data.get('quantity')),
            unit=data.get('unit') or None,
            crossed_off=bool(data.get('crossed_off')),
            source=data.get('source'),
            source_meal_id=data.get('source_meal_id'),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
        )


@dataclass(frozen=True)
class ParsedIngredient:
    """Structured form of one free-text ingredient line. Never persisted."""
    item_name: str
    quantity: Optional[float] = None
    unit: Optional[str] = None  # cup, tbsp, tsp, oz, lb, g, kg, ml, l
    original_text: str = ""
    preparation: str = ""

    @property
    def has_quantity(self) -> bool:
        return self.quantity is not None


@dataclass
class Dish:
    """
    A planned meal (one dish on a date and meal slot) with its claims.
    reserved_quantities is None for legacy meals saved before reservations existed.
    """
    id: str
    user_id: str
    date: date
    meal_type: MealType = MealType.DINNER
    dish_name: str = ""
    ingredients: List[str] = field(default_factory=list)
    reserved_quantities: Optional[Dict[str, float]] = field(default_factory=dict)
    claimed_item_ids: Set[str] = field(default_factory=set)
    claimed_shopping_list_item_ids: Set[str] = field(default_factory=set)
    completed: bool = False

    def __post_init__(self):
        """Coerce loose inputs into the declared types"""
        if isinstance(self.meal_type, str):
            self.meal_type = MealType(self.meal_type.lower())
        if not isinstance(self.claimed_item_ids, set):
            self.claimed_item_ids = set(self.claimed_item_ids or [])
        if not isinstance(self.claimed_shopping_list_item_ids, set):
            self.claimed_shopping_list_item_ids = set(self.claimed_shopping_list_item_ids or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'date': _format_date(self.date),
            'meal_type': self.meal_type.value,
            'dish_name': self.dish_name,
            'ingredients': list(self.ingredients),
            'reserved_quantities': dict(self.reserved_quantities) if self.reserved_quantities is not None else None,
            'claimed_item_ids': sorted(self.claimed_item_ids),
            'claimed_shopping_list_item_ids': sorted(self.claimed_shopping_list_item_ids),
            'completed': self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Dish':
        reserved = data.get('reserved_quantities')
        return cls(
            id=data['id'],
            user_id=data.get('user_id', ''),
            date=_parse_date(data.get('date')) or date.today(),
            meal_type=data.get('meal_type') or MealType.DINNER.value,
            dish_name=data.get('dish_name') or '',
            ingredients=list(data.get('ingredients') or []),
            reserved_quantities={k: float(v) for k, v in reserved.items()} if reserved is not None else None,
            claimed_item_ids=set(data.get('claimed_item_ids') or []),
            claimed_shopping_list_item_ids=set(data.get('claimed_shopping_list_item_ids') or []),
            completed=bool(data.get('completed')),
        )


@dataclass
class IngredientAvailability:
    """Availability of a single ingredient line"""
    ingredient: str
    status: AvailabilityStatus
    item_name: str = ""
    matching_items: List[InventoryItem] = field(default_factory=list)
    available_quantity: Optional[float] = None
    needed_quantity: Optional[float] = None
    reserved_quantity: float = 0.0
    shopping_list_matches: List[ShoppingListItem] = field(default_factory=list)
    index: int = 0

    @property
    def count(self) -> int:
        """Number of matching pantry records"""
        return len(self.matching_items)

    @property
    def on_shopping_list(self) -> bool:
        return bool(self.shopping_list_matches)

    @property
    def needs_purchase(self) -> bool:
        return self.status in (AvailabilityStatus.MISSING, AvailabilityStatus.PARTIAL)
