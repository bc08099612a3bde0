"""
Database service for Pantry Planner.

SQLite-backed document store for the three collections the reservation engine
works against: pantry items, shopping list items and planned meals. Id sets and
reservation maps are stored as JSON text columns.

Every write is an independent statement committed on its own. Callers that
chain several writes (the claim workflows) get no multi-record transaction.
"""

import sqlite3
import json
import uuid
from calendar import monthrange
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Dict, Any, Iterable

from models import InventoryItem, ShoppingListItem, Dish, MealType
from utils import get_config, get_logger

logger = get_logger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS inventory_items (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    quantity REAL,
    unit TEXT,
    expiration_date TEXT,
    used_by_meals TEXT DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS shopping_list_items (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    list_id TEXT NOT NULL,
    name TEXT NOT NULL,
    quantity REAL,
    unit TEXT,
    crossed_off INTEGER DEFAULT 0,
    source TEXT,
    source_meal_id TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS meals (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    date TEXT NOT NULL,
    meal_type TEXT DEFAULT 'dinner',
    dish_name TEXT DEFAULT '',
    ingredients TEXT DEFAULT '[]',
    reserved_quantities TEXT,
    claimed_item_ids TEXT DEFAULT '[]',
    claimed_shopping_list_item_ids TEXT DEFAULT '[]',
    completed INTEGER DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_inventory_user ON inventory_items(user_id);
CREATE INDEX IF NOT EXISTS idx_shopping_user_list ON shopping_list_items(user_id, list_id);
CREATE INDEX IF NOT EXISTS idx_shopping_source_meal ON shopping_list_items(source_meal_id);
CREATE INDEX IF NOT EXISTS idx_meals_user_date ON meals(user_id, date);
"""

_INVENTORY_FIELDS = {'name', 'quantity', 'unit', 'expiration_date', 'used_by_meals'}
_SHOPPING_FIELDS = {'name', 'quantity', 'unit', 'crossed_off', 'list_id', 'source', 'source_meal_id'}
_MEAL_FIELDS = {
    'date', 'meal_type', 'dish_name', 'ingredients', 'reserved_quantities',
    'claimed_item_ids', 'claimed_shopping_list_item_ids', 'completed'
}
_JSON_FIELDS = {
    'used_by_meals', 'ingredients', 'reserved_quantities',
    'claimed_item_ids', 'claimed_shopping_list_item_ids'
}


class StorageError(Exception):
    """A read or write against the backing store failed"""


def _new_id() -> str:
    return uuid.uuid4().hex


def _to_column(field_name: str, value: Any) -> Any:
    """Convert a model value into its column representation"""
    if field_name in _JSON_FIELDS:
        if value is None:
            return None
        if isinstance(value, (set, frozenset)):
            value = sorted(value)
        return json.dumps(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, MealType):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


def _from_json(raw: Optional[str], default: Any) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed JSON column value: {raw!r}")
        return default


class DatabaseService:
    """
    Centralized database service for all SQLite operations.
    Read methods return model objects; write methods raise StorageError on failure.
    """

    def __init__(self, db_path: str = "pantry_planner.db"):
        self.db_path = db_path
        # Keep persistent connection for in-memory databases
        self._persistent_conn = None
        if db_path == ":memory:":
            self._persistent_conn = sqlite3.connect(db_path)
            self._persistent_conn.row_factory = sqlite3.Row
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """Context manager for database connections with proper cleanup"""
        if self._persistent_conn:
            try:
                yield self._persistent_conn
            except sqlite3.Error as e:
                self._persistent_conn.rollback()
                logger.error(f"Database error: {e}")
                raise StorageError(str(e)) from e
        else:
            conn = None
            try:
                conn = sqlite3.connect(self.db_path)
                conn.row_factory = sqlite3.Row  # Enable dict-like access
                yield conn
            except sqlite3.Error as e:
                if conn:
                    conn.rollback()
                logger.error(f"Database error: {e}")
                raise StorageError(str(e)) from e
            finally:
                if conn:
                    conn.close()

    def initialize_database(self):
        """Create the collections if they do not exist yet"""
        with self.get_connection() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        logger.debug(f"Database ready: {self.db_path}")

    def get_database_stats(self) -> Dict[str, Any]:
        """Record counts per collection and file size"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            stats = {}
            for table in ['inventory_items', 'shopping_list_items', 'meals']:
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                stats[table] = cursor.fetchone()[0]

            if self.db_path != ":memory:":
                db_size_bytes = Path(self.db_path).stat().st_size
                stats['db_size_mb'] = round(db_size_bytes / (1024 * 1024), 2)
            else:
                stats['db_size_mb'] = 0.0  # In-memory database

            return stats

    # Pantry (inventory) Methods

    def add_inventory_item(self, user_id: str, name: str, quantity: Optional[float] = None,
                           unit: Optional[str] = None, expiration_date: Optional[date] = None) -> InventoryItem:
        """Add an item to the user's pantry"""
        item = InventoryItem(
            id=_new_id(), user_id=user_id, name=name, quantity=quantity,
            unit=unit, expiration_date=expiration_date
        )
        data = item.to_dict()
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO inventory_items (id, user_id, name, quantity, unit, expiration_date,
                                             used_by_meals, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data['id'], data['user_id'], data['name'], data['quantity'], data['unit'],
                data['expiration_date'], _to_column('used_by_meals', data['used_by_meals']),
                data['created_at']
            ))
            conn.commit()

        logger.info(f"Added pantry item '{name}' ({item.id})")
        return item

    def get_inventory_items(self, user_id: str) -> List[InventoryItem]:
        """All pantry items for a user"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT * FROM inventory_items WHERE user_id = ? ORDER BY rowid", (user_id,)
            )
            return [self._row_to_inventory_item(row) for row in cursor.fetchall()]

    def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM inventory_items WHERE id = ?", (item_id,))
            row = cursor.fetchone()

            if row:
                return self._row_to_inventory_item(row)
            return None

    def update_inventory_item(self, item_id: str, **fields) -> bool:
        """
        Update selected fields of a pantry item.

        Accepts name, quantity, unit, expiration_date and used_by_meals.
        Returns False when the item no longer exists.
        """
        return self._update('inventory_items', _INVENTORY_FIELDS, item_id, fields)

    def delete_inventory_item(self, item_id: str) -> bool:
        return self._delete('inventory_items', item_id)

    # Shopping List Methods

    def add_shopping_list_item(self, user_id: str, name: str, list_id: Optional[str] = None,
                               quantity: Optional[float] = None, unit: Optional[str] = None,
                               source: Optional[str] = None,
                               source_meal_id: Optional[str] = None) -> ShoppingListItem:
        """Add an entry to one of the user's shopping lists"""
        item = ShoppingListItem(
            id=_new_id(), user_id=user_id, list_id=list_id or get_config().default_list_id,
            name=name, quantity=quantity, unit=unit, source=source, source_meal_id=source_meal_id
        )
        data = item.to_dict()
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO shopping_list_items (id, user_id, list_id, name, quantity, unit,
                                                 crossed_off, source, source_meal_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data['id'], data['user_id'], data['list_id'], data['name'], data['quantity'],
                data['unit'], _to_column('crossed_off', data['crossed_off']), data['source'],
                data['source_meal_id'], data['created_at']
            ))
            conn.commit()

        logger.info(f"Added shopping list item '{name}' to list {item.list_id}")
        return item

    def get_shopping_list_items(self, user_id: str, list_id: Optional[str] = None,
                                crossed_off: Optional[bool] = None) -> List[ShoppingListItem]:
        """Shopping list items for a user, optionally for one list and crossed-off state"""
        query = "SELECT * FROM shopping_list_items WHERE user_id = ?"
        params: List[Any] = [user_id]

        if list_id is not None:
            query += " AND list_id = ?"
            params.append(list_id)
        if crossed_off is not None:
            query += " AND crossed_off = ?"
            params.append(int(crossed_off))

        query += " ORDER BY rowid"

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [self._row_to_shopping_list_item(row) for row in cursor.fetchall()]

    def get_shopping_list_item(self, item_id: str) -> Optional[ShoppingListItem]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM shopping_list_items WHERE id = ?", (item_id,))
            row = cursor.fetchone()

            if row:
                return self._row_to_shopping_list_item(row)
            return None

    def update_shopping_list_item(self, item_id: str, **fields) -> bool:
        return self._update('shopping_list_items', _SHOPPING_FIELDS, item_id, fields)

    def set_shopping_list_item_crossed_off(self, item_id: str, crossed_off: bool = True) -> bool:
        return self.update_shopping_list_item(item_id, crossed_off=crossed_off)

    def delete_shopping_list_item(self, item_id: str) -> bool:
        return self._delete('shopping_list_items', item_id)

    def delete_shopping_list_items_by_meal(self, meal_id: str) -> int:
        """Delete every shopping list item whose source_meal_id is meal_id"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM shopping_list_items WHERE source_meal_id = ?", (meal_id,))
            conn.commit()
            deleted = cursor.rowcount

        if deleted:
            logger.info(f"Deleted {deleted} shopping list item(s) added by meal {meal_id}")
        return deleted

    # Meal Methods

    def create_meal(self, user_id: str, meal_date: date, dish_name: str = "",
                    ingredients: Optional[Iterable[str]] = None,
                    meal_type: MealType = MealType.DINNER) -> Dish:
        """Create a planned meal with no reservations or claims yet"""
        meal = Dish(
            id=_new_id(), user_id=user_id, date=meal_date, meal_type=meal_type,
            dish_name=dish_name, ingredients=list(ingredients or [])
        )
        self.save_meal(meal)
        return meal

    def save_meal(self, meal: Dish) -> Dish:
        """Insert or replace a meal document"""
        if not meal.id:
            meal.id = _new_id()
        data = meal.to_dict()

        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO meals (id, user_id, date, meal_type, dish_name, ingredients,
                                   reserved_quantities, claimed_item_ids,
                                   claimed_shopping_list_item_ids, completed)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    date = excluded.date,
                    meal_type = excluded.meal_type,
                    dish_name = excluded.dish_name,
                    ingredients = excluded.ingredients,
                    reserved_quantities = excluded.reserved_quantities,
                    claimed_item_ids = excluded.claimed_item_ids,
                    claimed_shopping_list_item_ids = excluded.claimed_shopping_list_item_ids,
                    completed = excluded.completed
            """, (
                meal.id, meal.user_id, data['date'], data['meal_type'], meal.dish_name,
                _to_column('ingredients', meal.ingredients),
                _to_column('reserved_quantities', meal.reserved_quantities),
                _to_column('claimed_item_ids', meal.claimed_item_ids),
                _to_column('claimed_shopping_list_item_ids', meal.claimed_shopping_list_item_ids),
                int(meal.completed)
            ))
            conn.commit()

        logger.info(f"Saved meal '{meal.dish_name}' ({meal.id}) on {data['date']}")
        return meal

    def get_meal(self, meal_id: str) -> Optional[Dish]:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM meals WHERE id = ?", (meal_id,))
            row = cursor.fetchone()

            if row:
                return self._row_to_meal(row)
            return None

    def get_meals_in_range(self, user_id: str, start_date: date, end_date: date) -> List[Dish]:
        """Meals dated between start_date and end_date inclusive"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT * FROM meals
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date, rowid
            """, (user_id, start_date.isoformat(), end_date.isoformat()))
            return [self._row_to_meal(row) for row in cursor.fetchall()]

    def get_meals_for_month(self, user_id: str, reference_date: Optional[date] = None) -> List[Dish]:
        """Meals in the calendar month containing reference_date (default: today)"""
        reference_date = reference_date or date.today()
        last_day = monthrange(reference_date.year, reference_date.month)[1]
        return self.get_meals_in_range(
            user_id,
            reference_date.replace(day=1),
            reference_date.replace(day=last_day)
        )

    def update_meal(self, meal_id: str, **fields) -> bool:
        """
        Update selected fields of a meal.

        Accepts reserved_quantities, claimed_item_ids,
        claimed_shopping_list_item_ids, completed and the descriptive fields.
        """
        return self._update('meals', _MEAL_FIELDS, meal_id, fields)

    def delete_meal(self, meal_id: str) -> bool:
        return self._delete('meals', meal_id)

    # Helper Methods

    def _update(self, table: str, allowed: set, record_id: str, fields: Dict[str, Any]) -> bool:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} fields: {', '.join(sorted(unknown))}")
        if not fields:
            return False

        assignments = ', '.join(f"{name} = ?" for name in fields)
        values = [_to_column(name, value) for name, value in fields.items()]

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"UPDATE {table} SET {assignments} WHERE id = ?", values + [record_id])
            conn.commit()
            updated = cursor.rowcount > 0

        logger.debug(f"Updated {table} {record_id}: {', '.join(fields)}")
        return updated

    def _delete(self, table: str, record_id: str) -> bool:
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted {table} record {record_id}")
        return deleted

    def _row_to_inventory_item(self, row) -> InventoryItem:
        return InventoryItem.from_dict({
            'id': row['id'],
            'user_id': row['user_id'],
            'name': row['name'],
            'quantity': row['quantity'],
            'unit': row['unit'],
            'expiration_date': row['expiration_date'],
            'used_by_meals': _from_json(row['used_by_meals'], []),
            'created_at': row['created_at'],
        })

    def _row_to_shopping_list_item(self, row) -> ShoppingListItem:
        return ShoppingListItem.from_dict({
            'id': row['id'],
            'user_id': row['user_id'],
            'list_id': row['list_id'],
            'name': row['name'],
            'quantity': row['quantity'],
            'unit': row['unit'],
            'crossed_off': row['crossed_off'],
            'source': row['source'],
            'source_meal_id': row['source_meal_id'],
            'created_at': row['created_at'],
        })

    def _row_to_meal(self, row) -> Dish:
        return Dish.from_dict({
            'id': row['id'],
            'user_id': row['user_id'],
            'date': row['date'],
            'meal_type': row['meal_type'],
            'dish_name': row['dish_name'],
            'ingredients': _from_json(row['ingredients'], []),
            'reserved_quantities': _from_json(row['reserved_quantities'], None),
            'claimed_item_ids': _from_json(row['claimed_item_ids'], []),
            'claimed_shopping_list_item_ids': _from_json(row['claimed_shopping_list_item_ids'], []),
            'completed': row['completed'],
        })


# Global database service instance
_database_service: Optional[DatabaseService] = None


def get_database_service(db_path: Optional[str] = None) -> DatabaseService:
    """Get singleton database service instance"""
    global _database_service
    if _database_service is None:
        _database_service = DatabaseService(db_path or get_config().database_path)
    return _database_service


def initialize_database_for_testing(db_path: str = ":memory:") -> DatabaseService:
    """Create database service for testing with in-memory database"""
    return DatabaseService(db_path)
