# backend-services/stock-service/tests/conftest.py
"""
Pytest configuration and shared fixtures for stock-service tests
Centralizes app/client construction, store doubles and sample data
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

# Ensure local imports resolve when running from repo root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))

from config import Config
from database.stock_store import StockNotFound, StockStore
from services.quote_client import QuoteClient


# -------------------------------------------------------------------
# Environment helpers
# -------------------------------------------------------------------

@pytest.fixture(autouse=True)
def ensure_test_env(monkeypatch):
    """
    Standardize DB env for tests and fix Docker hostname vs localhost.
    """
    in_docker = os.path.exists("/.dockerenv")
    mongo_uri = "mongodb://mongodb:27017" if in_docker else "mongodb://localhost:27017"
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("MONGO_URI", mongo_uri)
    monkeypatch.setenv("TEST_DB_NAME", "test_stock_tracker")
    monkeypatch.delenv("NORMALIZE_POST_SYMBOL", raising=False)
    monkeypatch.delenv("LOG_DIR", raising=False)
    yield


# -------------------------------------------------------------------
# In-memory store double
# -------------------------------------------------------------------

class InMemoryStockStore:
    """Dict-backed stand-in with the same contract as StockStore."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}

    def _touch(self, previous: Optional[datetime]) -> datetime:
        now = datetime.now(timezone.utc)
        if previous is not None and now <= previous:
            return previous + timedelta(milliseconds=1)
        return now

    def ensure_indexes(self) -> None:
        return None

    def list_all(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._records.values()]

    def find_by_symbol(self, symbol: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(symbol)
        return dict(record) if record else None

    def upsert(self, symbol, name, price, change) -> Tuple[Dict[str, Any], bool]:
        existing = self._records.get(symbol)
        created = existing is None
        previous = None if created else existing["lastUpdated"]
        record = {
            "symbol": symbol,
            "name": name,
            "price": price,
            "change": change,
            "lastUpdated": self._touch(previous),
        }
        self._records[symbol] = record
        return dict(record), created

    def update_fields(self, symbol, price, change) -> Dict[str, Any]:
        existing = self._records.get(symbol)
        if existing is None:
            raise StockNotFound(symbol)
        existing.update(price=price, change=change, lastUpdated=self._touch(existing["lastUpdated"]))
        return dict(existing)

    def delete_by_symbol(self, symbol) -> str:
        if self._records.pop(symbol, None) is None:
            raise StockNotFound(symbol)
        return symbol


# -------------------------------------------------------------------
# Flask app and client fixtures
# -------------------------------------------------------------------

@pytest.fixture
def test_config(tmp_path) -> Config:
    return Config(FRONTEND_BUILD_DIR=str(tmp_path / "build"), LOG_LEVEL="WARNING")


@pytest.fixture
def memory_store() -> InMemoryStockStore:
    return InMemoryStockStore()


@pytest.fixture
def mock_store() -> MagicMock:
    return MagicMock(spec=StockStore)


@pytest.fixture
def mock_quote_client() -> MagicMock:
    return MagicMock(spec=QuoteClient)


@pytest.fixture
def app(test_config, memory_store, mock_quote_client):
    from app import create_app
    flask_app = create_app(test_config, store=memory_store, quote_client=mock_quote_client)
    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mocked_app(test_config, mock_store, mock_quote_client):
    """App wired to MagicMock collaborators for failure-path tests."""
    from app import create_app
    flask_app = create_app(test_config, store=mock_store, quote_client=mock_quote_client)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def mocked_client(mocked_app):
    return mocked_app.test_client()


# -------------------------------------------------------------------
# Sample data
# -------------------------------------------------------------------

@pytest.fixture
def sample_stock() -> Dict[str, Any]:
    return {"symbol": "AAPL", "name": "Apple", "price": 150, "change": 1.2}


@pytest.fixture
def sample_record() -> Dict[str, Any]:
    return {
        "symbol": "AAPL",
        "name": "Apple",
        "price": 150.0,
        "change": 1.2,
        "lastUpdated": datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc),
    }


# -------------------------------------------------------------------
# Mongo DB helpers
# -------------------------------------------------------------------

@pytest.fixture
def mock_db() -> MagicMock:
    """Database handle whose stocks collection is a MagicMock."""
    db = MagicMock()
    collection = MagicMock()
    db.__getitem__.return_value = collection
    return db


@pytest.fixture
def test_db_connection():
    """
    Real database connection for integration CRUD tests.
    Skips when no MongoDB server is reachable.
    """
    from pymongo import MongoClient
    from pymongo.errors import PyMongoError

    uri = os.getenv("TEST_MONGO_URI", os.getenv("MONGO_URI", "mongodb://localhost:27017/"))
    db_name = os.getenv("TEST_DB_NAME", "test_stock_tracker")
    client = MongoClient(uri, serverSelectionTimeoutMS=1000, tz_aware=True)
    try:
        client.admin.command("ping")
    except PyMongoError:
        client.close()
        pytest.skip("MongoDB not reachable")
    db = client[db_name]
    db.stocks.delete_many({})
    try:
        yield client, db
    finally:
        # Cleanup after each test
        db.stocks.delete_many({})
        client.close()
