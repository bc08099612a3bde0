#!/usr/bin/env python3
"""
Test script for item name normalization and fuzzy matching.
"""

import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent))

from models import InventoryItem
from services.ingredient_matcher import (
    singularize, normalize_item_name, matches, best_matches, token_overlap
)


SAMPLE_NAMES = [
    "Chicken Breast", "chicken breasts, frozen", "boneless chicken breasts",
    "flour", "Cauliflower", "eggs", "Egg", "red onion", "green onion",
    "olive oil", "extra virgin olive oil", "tomatoes", "brown sugar",
    "sugar", "Hummus", "", "!!!", "a",
]


def test_singularize():
    """Test plural suffix stripping"""
    cases = [
        ("berries", "berry"),
        ("tomatoes", "tomato"),
        ("peaches", "peach"),
        ("boxes", "box"),
        ("eggs", "egg"),
        ("kiwis", "kiwi"),
        ("leaves", "leaf"),
        ("glass", "glass"),
        ("hummus", "hummus"),
        ("molasses", "molasses"),
        ("gas", "gas"),
    ]
    for word, expected in cases:
        assert singularize(word) == expected, f"{word} -> {singularize(word)}"

    print("[OK] Singularization working")


def test_normalize_item_name():
    """Test normalization pipeline"""
    assert normalize_item_name("Chicken Breasts") == "chicken breast"
    assert normalize_item_name("  Chicken   breasts, frozen ") == "chicken breast frozen"
    assert normalize_item_name("Half-and-Half") == "half and half"
    assert normalize_item_name("") == ""
    assert normalize_item_name(None) == ""
    assert normalize_item_name("!!!") == "!!!"

    print("[OK] Normalization working")


def test_match_decisions():
    """Test exact, containment and overlap matches"""
    positive = [
        ("chicken breast", "Chicken Breasts"),
        ("boneless chicken breasts", "Chicken Breast"),
        ("chicken breast", "chicken breasts, frozen"),
        ("egg", "eggs"),
        ("tomato", "Tomatoes"),
        ("olive oil", "extra virgin olive oil"),
        ("onion", "red onion"),
        ("brown sugar", "sugar brown"),
    ]
    negative = [
        ("flour", "cauliflower"),
        ("green onion", "red onion"),
        ("milk", "butter"),
        ("", "flour"),
        (None, "flour"),
        (None, None),
        ("a", "apple"),
    ]

    for left, right in positive:
        assert matches(left, right), f"Expected match: {left!r} ~ {right!r}"
    for left, right in negative:
        assert not matches(left, right), f"Unexpected match: {left!r} ~ {right!r}"

    print("[OK] Match decisions correct")


def test_match_symmetry_and_reflexivity():
    """matches(a, b) == matches(b, a) and matches(a, a) for non-empty a"""
    for left in SAMPLE_NAMES:
        if left:
            assert matches(left, left), f"Not reflexive: {left!r}"
        for right in SAMPLE_NAMES:
            assert matches(left, right) == matches(right, left), f"Not symmetric: {left!r}, {right!r}"

    print("[OK] Matching is symmetric and reflexive")


def test_token_overlap():
    assert token_overlap("brown sugar", "sugar brown") == 1.0
    assert token_overlap("green onion", "red onion") == 1 / 3
    assert token_overlap("of", "and") == 0.0


def test_best_matches_returns_all():
    """Every matching candidate is returned, in input order"""
    pantry = [
        InventoryItem(id="1", user_id="u1", name="Chicken Breast", quantity=1),
        InventoryItem(id="2", user_id="u1", name="chicken breasts, frozen", quantity=2),
        InventoryItem(id="3", user_id="u1", name="Flour", quantity=5),
    ]

    found = best_matches("2 chicken breasts", pantry)
    assert [item.id for item in found] == ["1", "2"]

    assert best_matches("chicken breast", ["Chicken Breast", "Rice"]) == ["Chicken Breast"]
    assert best_matches("flour", [{"name": "Flour"}, {"name": "Cauliflower"}]) == [{"name": "Flour"}]
    assert best_matches("", pantry) == []
    assert best_matches("flour", None) == []
    assert best_matches("flour", [None, object()]) == []

    print("[OK] best_matches returns every match")


if __name__ == "__main__":
    try:
        test_singularize()
        test_normalize_item_name()
        test_match_decisions()
        test_match_symmetry_and_reflexivity()
        test_token_overlap()
        test_best_matches_returns_all()
        print("\n[SUCCESS] All matching tests passed!")
        sys.exit(0)

    except Exception as e:
        print(f"[ERROR] Test failed with error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
