"""
Services package for Pantry Planner.

Contains the ingredient parsing and matching helpers, the reservation ledger,
availability classification, claim workflows and the storage layer.
"""

from .database_service import DatabaseService, StorageError, get_database_service
from .quantity_parser import parse_ingredient, clean_item_name
from .ingredient_matcher import normalize_item_name, singularize, matches, best_matches
from .reservation_ledger import (
    ReservationLedger, build_ledger, calculate_meal_reserved_quantities, calculate_reserved_quantities
)
from .availability_service import AvailabilityService, classify, get_availability_service
from .claim_service import ClaimService, ClaimError, get_claim_service

__all__ = [
    'DatabaseService',
    'StorageError',
    'get_database_service',
    'parse_ingredient',
    'clean_item_name',
    'normalize_item_name',
    'singularize',
    'matches',
    'best_matches',
    'ReservationLedger',
    'build_ledger',
    'calculate_meal_reserved_quantities',
    'calculate_reserved_quantities',
    'AvailabilityService',
    'classify',
    'get_availability_service',
    'ClaimService',
    'ClaimError',
    'get_claim_service'
]
