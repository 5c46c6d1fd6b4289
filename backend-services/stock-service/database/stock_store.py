# backend-services/stock-service/database/stock_store.py
"""
CRUD operations on the stocks collection.

One document per ticker symbol. Callers normalize the symbol before calling
in; the store never changes its casing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from database.mongo_client import STOCKS_COLL, initialize_indexes

logger = logging.getLogger(__name__)

# Never expose Mongo internals to callers
_PROJECTION = {"_id": 0}


class StockNotFound(LookupError):
    """No stock document exists for the requested symbol."""

    def __init__(self, symbol: str):
        super().__init__(f"Stock {symbol} not found")
        self.symbol = symbol


class StoreUnavailable(RuntimeError):
    """The database rejected or could not serve an operation."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"Stock store operation '{operation}' failed: {cause}")
        self.operation = operation


def _next_last_updated(now: datetime) -> Dict[str, Any]:
    """
    Aggregation expression for lastUpdated: max(now, previous + 1ms).

    Mongo stores dates with millisecond precision, so two writes inside the
    same millisecond would otherwise share a timestamp. On insert the previous
    value is missing, $add yields null and $max falls back to now.
    """
    return {"$max": [now, {"$add": ["$lastUpdated", 1]}]}


class StockStore:
    """Thin wrapper over the stocks collection of an injected database handle."""

    def __init__(self, db: Any):
        self._db = db
        self._indexes_ready = False

    @property
    def collection(self):
        return self._db[STOCKS_COLL]

    def ensure_indexes(self) -> None:
        """Creates the unique symbol index; retried by upsert until it succeeds once."""
        if self._indexes_ready:
            return
        try:
            initialize_indexes(self._db)
        except PyMongoError as e:
            raise StoreUnavailable("ensure_indexes", e) from e
        self._indexes_ready = True

    def list_all(self) -> List[Dict[str, Any]]:
        """Returns every stock in insertion order; empty list when none exist."""
        try:
            return list(self.collection.find({}, _PROJECTION).sort("_id", ASCENDING))
        except PyMongoError as e:
            raise StoreUnavailable("list_all", e) from e

    def find_by_symbol(self, symbol: str) -> Optional[Dict[str, Any]]:
        try:
            return self.collection.find_one({"symbol": symbol}, _PROJECTION)
        except PyMongoError as e:
            raise StoreUnavailable("find_by_symbol", e) from e

    def upsert(self, symbol: str, name: str, price: float, change: float) -> Tuple[Dict[str, Any], bool]:
        """
        Creates the stock or overwrites name, price and change in place.

        Returns:
            Tuple[dict, bool]: the stored record and True when it was created.
        """
        # Uniqueness of symbol relies on the index; never insert without it
        self.ensure_indexes()
        now = datetime.now(timezone.utc)
        stage = {
            "$set": {
                # $literal keeps user strings starting with "$" from being read as field paths
                "symbol": {"$literal": symbol},
                "name": {"$literal": name},
                "price": price,
                "change": change,
                "lastUpdated": _next_last_updated(now),
            }
        }
        try:
            result = self.collection.update_one({"symbol": symbol}, [stage], upsert=True)
            created = result.upserted_id is not None
            record = self.collection.find_one({"symbol": symbol}, _PROJECTION)
        except PyMongoError as e:
            raise StoreUnavailable("upsert", e) from e

        if record is None:
            # Deleted by a concurrent request between the write and the read
            record = {"symbol": symbol, "name": name, "price": price, "change": change, "lastUpdated": now}
        logger.info(f"{'Created' if created else 'Updated'} stock {symbol}.")
        return record, created

    def update_fields(self, symbol: str, price: float, change: float) -> Dict[str, Any]:
        """
        Overwrites price and change of an existing stock. Never creates one.

        Raises:
            StockNotFound: If no stock has this symbol.
        """
        stage = {
            "$set": {
                "price": price,
                "change": change,
                "lastUpdated": _next_last_updated(datetime.now(timezone.utc)),
            }
        }
        try:
            record = self.collection.find_one_and_update(
                {"symbol": symbol},
                [stage],
                projection=_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StoreUnavailable("update_fields", e) from e

        if record is None:
            raise StockNotFound(symbol)
        return record

    def delete_by_symbol(self, symbol: str) -> str:
        """
        Removes the stock and returns its symbol.

        Raises:
            StockNotFound: If no stock has this symbol.
        """
        try:
            removed = self.collection.find_one_and_delete({"symbol": symbol}, projection=_PROJECTION)
        except PyMongoError as e:
            raise StoreUnavailable("delete_by_symbol", e) from e

        if removed is None:
            raise StockNotFound(symbol)
        logger.info(f"Deleted stock {symbol}.")
        return symbol
