#!/usr/bin/env python3
"""
Test script for ingredient availability classification.
Covers the pure classifier and the storage-backed availability service.
"""

import sys
from datetime import date
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent))

from models import AvailabilityStatus, Dish, InventoryItem, ShoppingListItem
from services.availability_service import AvailabilityService, classify, summarize_availability
from services.database_service import DatabaseService, StorageError
from services.reservation_ledger import build_ledger

MEAL_DATE = date(2026, 10, 19)


def _chicken_pantry():
    return [InventoryItem(id="chicken", user_id="u1", name="Chicken Breast", quantity=2)]


def _meal_a():
    return Dish(id="meal-a", user_id="u1", date=MEAL_DATE, dish_name="Chicken Salad",
                ingredients=["1 chicken breast"], reserved_quantities={"chicken breast": 1.0})


def test_partial_when_other_meal_reserved():
    """Another meal's reservation reduces what is available"""
    print("\n[TEST] Chicken breast reserved by another meal:")
    ledger = build_ledger([_meal_a()])

    result = classify("2 chicken breasts", _chicken_pantry(), [], ledger)
    print(f"  {result.status.value}: have {result.available_quantity}, need {result.needed_quantity}")
    assert result.status == AvailabilityStatus.PARTIAL
    assert result.available_quantity == 1.0
    assert result.needed_quantity == 2.0
    assert result.reserved_quantity == 1.0
    assert result.count == 1

    enough = classify("1 chicken breast", _chicken_pantry(), [], ledger)
    assert enough.status == AvailabilityStatus.AVAILABLE
    assert enough.available_quantity == 1.0

    print("[OK] Partial availability reported")


def test_meal_does_not_count_against_itself():
    ledger = build_ledger([_meal_a()])

    result = classify("2 chicken breasts", _chicken_pantry(), [], ledger, exclude_meal_id="meal-a")
    assert result.status == AvailabilityStatus.AVAILABLE
    assert result.available_quantity == 2.0

    # A plain mapping ledger is taken as already scoped
    plain = classify("2 chicken breasts", _chicken_pantry(), [], {"Chicken Breasts": 1})
    assert plain.status == AvailabilityStatus.PARTIAL


def test_missing_without_match():
    result = classify("1 tsp saffron", _chicken_pantry(), [], {})
    assert result.status == AvailabilityStatus.MISSING
    assert result.matching_items == []
    assert result.needs_purchase


def test_fully_committed_tracked_item():
    """No stock left: qualitative lines are reserved, quantified lines missing"""
    pantry = [InventoryItem(id="milk", user_id="u1", name="Milk", quantity=1, unit="cup")]
    ledger = {"milk": 1.0}

    qualitative = classify("milk", pantry, [], ledger)
    assert qualitative.status == AvailabilityStatus.RESERVED
    assert qualitative.available_quantity == 0.0

    quantified = classify("1 cup milk", pantry, [], ledger)
    assert quantified.status == AvailabilityStatus.MISSING
    assert quantified.count == 1

    print("[OK] Fully committed stock classified")


def test_untracked_items():
    """Untracked records count as present, unless another meal holds them"""
    garlic = InventoryItem(id="garlic", user_id="u1", name="Garlic", used_by_meals={"meal-a"})

    assert classify("garlic", [garlic], [], {}, exclude_meal_id="meal-b").status == AvailabilityStatus.RESERVED
    assert classify("garlic", [garlic], [], {}, exclude_meal_id="meal-a").status == AvailabilityStatus.AVAILABLE
    assert classify("3 cloves garlic", [garlic], [], {}, exclude_meal_id="meal-b").status == AvailabilityStatus.MISSING

    free = InventoryItem(id="salt", user_id="u1", name="Salt")
    result = classify("1 tsp salt", [free], [], {})
    assert result.status == AvailabilityStatus.AVAILABLE
    assert result.available_quantity is None

    # Tracked stock short, untracked record makes up the rest
    mixed = [
        InventoryItem(id="tracked", user_id="u1", name="Onion", quantity=0),
        InventoryItem(id="loose", user_id="u1", name="Red Onion"),
    ]
    assert classify("2 onions", mixed, [], {}).status == AvailabilityStatus.PARTIAL

    print("[OK] Untracked items handled")


def test_shopping_list_context():
    """Open shopping list matches are reported next to the pantry status"""
    shopping = [
        ShoppingListItem(id="s1", user_id="u1", list_id="default", name="Saffron"),
        ShoppingListItem(id="s2", user_id="u1", list_id="default", name="Saffron threads", crossed_off=True),
    ]
    result = classify("1 tsp saffron", [], shopping, {})
    assert result.status == AvailabilityStatus.MISSING
    assert [item.id for item in result.shopping_list_matches] == ["s1"]
    assert result.on_shopping_list


def test_classify_is_pure():
    """Identical inputs give identical output and inputs are not modified"""
    pantry = _chicken_pantry()
    ledger = build_ledger([_meal_a()])

    first = classify("2 chicken breasts", pantry, [], ledger)
    second = classify("2 chicken breasts", pantry, [], ledger)
    assert first == second
    assert pantry[0].quantity == 2
    assert pantry[0].used_by_meals == set()
    assert ledger["chicken breast"] == 1.0


def test_malformed_input_degrades_to_missing():
    for line, pantry in [(None, None), ("", []), ("2 cups flour", [None, object()])]:
        result = classify(line, pantry)
        assert result.status == AvailabilityStatus.MISSING
        assert result.matching_items == []

    print("[OK] Malformed input classified as missing")


def test_availability_service_uses_month_ledger():
    """The service loads pantry and meals and scopes the ledger to the month"""
    db = DatabaseService(":memory:")
    db.add_inventory_item("u1", "Chicken Breast", quantity=2)
    db.add_shopping_list_item("u1", "Lemons", list_id="default")

    meal_a = db.create_meal("u1", MEAL_DATE, "Chicken Salad", ["1 chicken breast"])
    db.update_meal(meal_a.id, reserved_quantities={"chicken breast": 1.0})

    next_month = db.create_meal("u1", date(2026, 11, 2), "Roast", ["2 chicken breasts"])
    db.update_meal(next_month.id, reserved_quantities={"chicken breast": 2.0})

    service = AvailabilityService(db)
    results = service.check_meal_availability(
        "u1", ["2 chicken breasts", "1 lemon", "rice"], reference_date=MEAL_DATE
    )
    for result in results:
        print(f"  [{result.index}] {result.ingredient}: {result.status.value}")

    assert [result.status for result in results] == [
        AvailabilityStatus.PARTIAL, AvailabilityStatus.MISSING, AvailabilityStatus.MISSING
    ]
    assert results[0].available_quantity == 1.0
    assert results[1].on_shopping_list
    assert [result.index for result in results] == [0, 1, 2]
    assert summarize_availability(results) == {
        "available": 0, "partial": 1, "missing": 2, "reserved": 0
    }

    own = service.check_dish_availability(db.get_meal(meal_a.id))
    assert own[0].status == AvailabilityStatus.AVAILABLE

    print("[OK] Availability service scoped to month")


class UnreachableDatabaseService(DatabaseService):
    """Database whose pantry reads always fail"""

    def get_inventory_items(self, user_id):
        raise StorageError("pantry unavailable")


def test_availability_service_storage_failure():
    db = UnreachableDatabaseService(":memory:")
    results = AvailabilityService(db).check_meal_availability("u1", ["1 cup flour", "salt"])

    assert len(results) == 2
    assert all(result.status == AvailabilityStatus.MISSING for result in results)

    print("[OK] Storage failure degrades to missing")


if __name__ == "__main__":
    try:
        test_partial_when_other_meal_reserved()
        test_meal_does_not_count_against_itself()
        test_missing_without_match()
        test_fully_committed_tracked_item()
        test_untracked_items()
        test_shopping_list_context()
        test_classify_is_pure()
        test_malformed_input_degrades_to_missing()
        test_availability_service_uses_month_ledger()
        test_availability_service_storage_failure()
        print("\n[SUCCESS] All availability tests passed!")
        sys.exit(0)

    except Exception as e:
        print(f"[ERROR] Test failed with error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
