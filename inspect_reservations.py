#!/usr/bin/env python3
"""
Reservation inspection tool for Pantry Planner.
Shows the pantry, the month's reservation ledger and per-meal availability
for one user, straight from the configured database.
"""

import argparse
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

from services.availability_service import AvailabilityService, summarize_availability
from services.database_service import DatabaseService, StorageError
from utils import get_config, setup_logging


def _format_quantity(quantity: Optional[float]) -> str:
    if quantity is None:
        return "untracked"
    return f"{quantity:g}"


def inspect_reservations(user_id: str, reference_date: Optional[date] = None,
                         db_path: Optional[str] = None) -> int:
    """Print pantry, ledger and availability for a user; returns an exit code"""
    config = get_config()
    db_path = db_path or config.database_path

    print(f"[INSPECT] Inspecting reservations in: {db_path}")

    if db_path != ":memory:" and not Path(db_path).exists():
        print(f"[ERROR] Database file does not exist: {db_path}")
        return 1

    try:
        db = DatabaseService(db_path)
        availability = AvailabilityService(db)

        pantry = db.get_inventory_items(user_id)
        print(f"\n[PANTRY] {len(pantry)} item(s)")
        for item in pantry:
            claims = f" claimed by {', '.join(sorted(item.used_by_meals))}" if item.used_by_meals else ""
            unit = f" {item.unit}" if item.unit else ""
            print(f"   - {item.name}: {_format_quantity(item.quantity)}{unit}{claims}")

        ledger = availability.get_reservation_ledger(user_id, reference_date, pantry_items=pantry)
        print(f"\n[LEDGER] {len(ledger)} reserved item name(s) across {len(ledger.meal_ids)} meal(s)")
        for name in sorted(ledger):
            print(f"   - {name}: {ledger[name]:g}")

        meals = db.get_meals_for_month(user_id, reference_date)
        print(f"\n[MEALS] {len(meals)} meal(s) this month")
        for meal in meals:
            state = "prepared" if meal.completed else "planned"
            print(f"\n   [{meal.date.isoformat()} {meal.meal_type.value}] {meal.dish_name or meal.id} ({state})")
            if meal.completed:
                continue

            results = availability.check_dish_availability(meal)
            for result in results:
                detail = ""
                if result.available_quantity is not None:
                    detail = f" (have {result.available_quantity:g}"
                    if result.needed_quantity is not None:
                        detail += f", need {result.needed_quantity:g}"
                    detail += ")"
                listed = " [on list]" if result.on_shopping_list else ""
                print(f"      {result.status.value.upper():9} {result.ingredient}{detail}{listed}")
            print(f"      [SUMMARY] {summarize_availability(results)}")

        stats = db.get_database_stats()
        print(f"\n[STATS] {stats}")
        return 0

    except StorageError as e:
        print(f"[ERROR] Database error: {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Inspect meal reservations and pantry availability")
    parser.add_argument("user_id", help="User whose pantry and meals to inspect")
    parser.add_argument("--month", help="Any date in the month to inspect (YYYY-MM-DD), default today")
    parser.add_argument("--db", help="Database path, default from PANTRY_DB_PATH")
    parser.add_argument("--log-level", help="Override PANTRY_LOG_LEVEL")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    reference_date = None
    if args.month:
        try:
            reference_date = date.fromisoformat(args.month)
        except ValueError:
            print(f"[ERROR] Not a date: {args.month}")
            return 2

    return inspect_reservations(args.user_id, reference_date, args.db)


if __name__ == "__main__":
    sys.exit(main())
