# backend-services/stock-service/database/mongo_client.py
"""
MongoDB connection lifecycle for stock-service.
The client is opened once by the app factory and closed on shutdown.
"""

import logging
import os
import sys
from typing import Any, Tuple

from pymongo import ASCENDING, MongoClient
from pymongo.errors import OperationFailure

logger = logging.getLogger(__name__)

STOCKS_COLL = "stocks"
SYMBOL_INDEX_NAME = "stocks_symbol_unique_idx"


def connect(config) -> Tuple[MongoClient, Any]:
    """
    Creates the MongoDB client and returns client and database handle.

    MongoClient connects lazily, so an unreachable server surfaces on the
    first operation rather than here.

    Raises:
        RuntimeError: If a pytest run would touch a non-test database.
    """
    db_name = config.MONGO_DB
    if os.getenv("ENV") == "test":
        db_name = os.getenv("TEST_DB_NAME", "test_stock_tracker")
    elif "pytest" in sys.modules and "test" not in db_name.lower():
        # Safety: Prevent test code from accidentally hitting prod
        raise RuntimeError(
            f"Refusing to use prod DB '{db_name}' during test run. "
            f"Set ENV=test or TEST_DB_NAME."
        )

    client = MongoClient(
        config.MONGO_URI,
        serverSelectionTimeoutMS=config.MONGO_TIMEOUT_MS,
        tz_aware=True,
    )
    db = client[db_name]
    logger.info(f"MongoDB client created for database '{db_name}'.")
    return client, db


def initialize_indexes(db: Any) -> None:
    """
    Creates the unique index on stocks.symbol. Idempotent.

    Raises:
        OperationFailure: If index creation fails for a reason other than an
        already existing index with different options.
    """
    try:
        db[STOCKS_COLL].create_index(
            [("symbol", ASCENDING)],
            name=SYMBOL_INDEX_NAME,
            unique=True,
        )
    except OperationFailure as e:
        # Error code 85 is for "IndexOptionsConflict"
        if e.code == 85:
            logger.warning(f"Index conflict on '{STOCKS_COLL}'. Dropping old index and recreating.")
            db[STOCKS_COLL].drop_index([("symbol", ASCENDING)])
            db[STOCKS_COLL].create_index(
                [("symbol", ASCENDING)],
                name=SYMBOL_INDEX_NAME,
                unique=True,
            )
        else:
            raise
    logger.info(f"Ensured index '{SYMBOL_INDEX_NAME}' on '{STOCKS_COLL}'.")


def close(client: MongoClient) -> None:
    """Closes the client; safe to call more than once."""
    if client is None:
        return
    client.close()
    logger.info("MongoDB client closed.")
