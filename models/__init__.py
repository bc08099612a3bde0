"""
Data models for Pantry Planner.

Pantry records, shopping list entries, planned meals and the ephemeral values
produced by ingredient parsing and availability classification.
"""

from .pantry_models import (
    InventoryItem, ShoppingListItem, ParsedIngredient, Dish, MealType,
    AvailabilityStatus, IngredientAvailability
)

__all__ = [
    'InventoryItem',
    'ShoppingListItem',
    'ParsedIngredient',
    'Dish',
    'MealType',
    'AvailabilityStatus',
    'IngredientAvailability'
]
