# backend-services/stock-service/config.py
"""Service configuration loaded from the process environment (and .env)."""
import os
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

SERVICE_DIR = Path(__file__).resolve().parent

load_dotenv(SERVICE_DIR / ".env")

DEFAULT_DB_NAME = "stock_tracker"


def _db_name_from_mongo_uri(mongo_uri: str, default_db: str = DEFAULT_DB_NAME) -> str:
    try:
        parsed = urlparse(mongo_uri)
        path = (parsed.path or "").lstrip("/")
        return path if path else default_db
    except Exception:
        return default_db


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Settings read once at construction time.

    Instantiate after the environment is prepared (tests monkeypatch env vars
    and then build a fresh Config).
    """

    def __init__(self, **overrides):
        self.PORT: int = int(os.getenv("PORT", 5000))

        # Database
        self.MONGO_URI: str = os.getenv("MONGO_URI", f"mongodb://localhost:27017/{DEFAULT_DB_NAME}")
        self.MONGO_DB: str = os.getenv("MONGO_DB") or _db_name_from_mongo_uri(self.MONGO_URI)
        self.MONGO_TIMEOUT_MS: int = int(os.getenv("MONGO_TIMEOUT_MS", 5000))

        # External quote provider (placeholder URL, replace with a real API)
        self.QUOTE_API_URL: str = os.getenv("QUOTE_API_URL", "https://api.example.com").rstrip("/")
        self.QUOTE_API_KEY: str = os.getenv("QUOTE_API_KEY", "")
        self.QUOTE_HTTP_TIMEOUT_SECONDS: float = float(os.getenv("QUOTE_HTTP_TIMEOUT_SECONDS", "10.0"))
        self.QUOTE_FIELD_MAP: dict = {
            "name": os.getenv("QUOTE_NAME_FIELD", "name"),
            "price": os.getenv("QUOTE_PRICE_FIELD", "price"),
            "change": os.getenv("QUOTE_CHANGE_FIELD", "change"),
        }

        # Static frontend bundle
        self.FRONTEND_BUILD_DIR: str = os.getenv(
            "FRONTEND_BUILD_DIR",
            str(SERVICE_DIR.parent.parent / "frontend" / "react-app" / "build"),
        )

        # HTTP
        self.CORS_ORIGINS: list = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]
        self.NORMALIZE_POST_SYMBOL: bool = _env_flag("NORMALIZE_POST_SYMBOL")

        # Logging
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR: str = os.getenv("LOG_DIR", "")

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown config key: {key}")
            setattr(self, key, value)
