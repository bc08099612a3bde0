#!/usr/bin/env python3
"""
Test script for the reservation ledger and reserved quantity calculation.
"""

import sys
from datetime import date
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent))

from models import Dish, InventoryItem
from services.ingredient_matcher import normalize_item_name
from services.reservation_ledger import (
    ReservationLedger, build_ledger, calculate_meal_reserved_quantities, calculate_reserved_quantities
)


def _meal(meal_id, reserved, ingredients=None, completed=False):
    return Dish(
        id=meal_id, user_id="u1", date=date(2026, 10, 5),
        ingredients=ingredients or [], reserved_quantities=reserved, completed=completed
    )


def _pantry():
    return [
        InventoryItem(id="chicken", user_id="u1", name="Chicken Breast", quantity=2),
        InventoryItem(id="flour", user_id="u1", name="Flour", quantity=5, unit="cup"),
        InventoryItem(id="salt", user_id="u1", name="Salt"),
    ]


def test_ledger_sum_law():
    """Ledger entry equals the sum of every meal's reservation for that name"""
    meals = [
        _meal("a", {"chicken breast": 1.0, "flour": 2.0}),
        _meal("b", {"Flour": 1.5}),
        _meal("c", {"rice": 3.0}),
    ]

    ledger = build_ledger(meals)
    print(f"[INFO] Ledger: {ledger.to_dict()}")
    assert ledger["flour"] == 3.5
    assert ledger["Flour"] == 3.5
    assert ledger["chicken breast"] == 1.0
    assert ledger["rice"] == 3.0
    assert len(ledger) == 3

    for excluded in ["a", "b", "c"]:
        partial = build_ledger(meals, exclude_meal_id=excluded)
        for name in ["flour", "chicken breast", "rice"]:
            expected = 0.0
            for meal in meals:
                if meal.id == excluded:
                    continue
                normalized = {normalize_item_name(key): value for key, value in meal.reserved_quantities.items()}
                expected += normalized.get(name, 0.0)
            assert partial.get(name, 0.0) == expected, f"{name} without {excluded}"

    print("[OK] Ledger sums reservations per name")


def test_ledger_skips_completed_meals():
    meals = [_meal("a", {"flour": 2.0}), _meal("done", {"flour": 10.0}, completed=True)]
    ledger = build_ledger(meals)
    assert ledger["flour"] == 2.0
    assert "done" not in ledger.meal_ids

    print("[OK] Completed meals do not reserve")


def test_ledger_exclusion_after_build():
    ledger = build_ledger([_meal("a", {"flour": 2.0}), _meal("b", {"flour": 1.0})])

    assert ledger.reserved_for("flour") == 3.0
    assert ledger.reserved_for("flour", exclude_meal_id="a") == 1.0
    assert ledger.excluding("b")["flour"] == 2.0
    assert ledger.contributions("a") == {"flour": 2.0}
    assert ledger.reserved_for("butter") == 0.0
    assert "butter" not in ledger

    empty = build_ledger(None)
    assert isinstance(empty, ReservationLedger)
    assert len(empty) == 0


def test_meal_reserved_quantities_capped_by_pantry():
    """A meal reserves what it needs, never more than the pantry holds"""
    reserved = calculate_meal_reserved_quantities(
        ["3 chicken breasts", "1 cup flour", "salt", "2 cups rice"], _pantry()
    )
    print(f"[INFO] Reserved: {reserved}")
    assert reserved == {"chicken breast": 2.0, "flour": 1.0}

    after_others = calculate_meal_reserved_quantities(
        ["3 chicken breasts"], _pantry(), {"chicken breast": 1.5}
    )
    assert after_others == {"chicken breast": 0.5}

    assert calculate_meal_reserved_quantities([], _pantry()) == {}
    assert calculate_meal_reserved_quantities(["1 cup flour"], []) == {}

    print("[OK] Reservations capped by pantry quantity")


def test_meal_reserved_quantities_across_related_records():
    """Related pantry records are all drawn on"""
    pantry = [
        InventoryItem(id="fresh", user_id="u1", name="Chicken Breast", quantity=1),
        InventoryItem(id="frozen", user_id="u1", name="chicken breasts, frozen", quantity=2),
    ]
    reserved = calculate_meal_reserved_quantities(["3 chicken breasts"], pantry)
    assert reserved == {"chicken breast": 1.0, "chicken breast frozen": 2.0}


def test_reserved_quantities_allocated_in_meal_order():
    meals = [
        _meal("first", None, ["2 cups flour"]),
        _meal("second", None, ["2 cups flour"]),
        _meal("third", None, ["1 cup flour"]),
    ]
    pantry = [InventoryItem(id="flour", user_id="u1", name="Flour", quantity=3)]

    result = calculate_reserved_quantities(meals, pantry)
    assert result["first"] == {"flour": 2.0}
    assert result["second"] == {"flour": 1.0}
    assert result["third"] == {}

    print("[OK] Meals reserve in order against what is left")


def test_legacy_meals_reserved_on_the_fly():
    """Meals without a stored reservation map are reserved from the pantry"""
    pantry = [InventoryItem(id="flour", user_id="u1", name="Flour", quantity=3)]
    meals = [
        _meal("stored", {"flour": 2.0}),
        _meal("legacy", None, ["2 cups flour"]),
    ]

    assert build_ledger(meals).get("flour") == 2.0
    ledger = build_ledger(meals, pantry_items=pantry)
    assert ledger["flour"] == 3.0
    assert ledger.contributions("legacy") == {"flour": 1.0}

    print("[OK] Legacy meals reserved on the fly")


if __name__ == "__main__":
    try:
        test_ledger_sum_law()
        test_ledger_skips_completed_meals()
        test_ledger_exclusion_after_build()
        test_meal_reserved_quantities_capped_by_pantry()
        test_meal_reserved_quantities_across_related_records()
        test_reserved_quantities_allocated_in_meal_order()
        test_legacy_meals_reserved_on_the_fly()
        print("\n[SUCCESS] All ledger tests passed!")
        sys.exit(0)

    except Exception as e:
        print(f"[ERROR] Test failed with error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
