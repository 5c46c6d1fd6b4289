# backend-services/stock-service/app.py
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler

from flask import Blueprint, Flask, current_app, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.security import safe_join

from config import Config
from database import mongo_client
from database.stock_store import StockNotFound, StockStore, StoreUnavailable
from services.quote_client import QuoteClient, QuoteServiceError
from shared.contracts import (
    ApiError,
    DeleteResponse,
    HealthResponse,
    StockCreateRequest,
    StockUpdateRequest,
)
from helper_functions import (
    normalize_symbol_path,
    parse_request_body,
    serialize_stock,
    serialize_stocks,
)

FRONTEND_MISSING_MESSAGE = 'Frontend build not found. Run "npm run build" in frontend/react-app.'

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
}


# --- 1. Define Logging Setup Function ---
def setup_logging(app, config):
    """Configures console (and optional rotating file) logging for the Flask app."""
    log_level = getattr(logging, config.LOG_LEVEL, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if config.LOG_DIR:
        os.makedirs(config.LOG_DIR, exist_ok=True)
        log_file = os.path.join(config.LOG_DIR, "stock_service.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # app.logger plus module loggers, all emitting through the same handlers only
    loggers = [app.logger] + [
        logging.getLogger(name)
        for name in ("database", "services", "helper_functions")
    ]
    for target in loggers:
        target.setLevel(log_level)
        target.propagate = False
        target.handlers[:] = handlers

    # prevent werkzeug from duplicating to root/stdout
    logging.getLogger("werkzeug").propagate = False

    app.logger.info("Stock service logging initialized.")


# --- 2. API Routes ---
stocks_bp = Blueprint("stocks", __name__)


def _store() -> StockStore:
    return current_app.extensions["stock_store"]


def _quote_client() -> QuoteClient:
    return current_app.extensions["quote_client"]


def _error(message: str, status_code: int):
    return jsonify(ApiError(error=message).model_dump()), status_code


@stocks_bp.route("/api/stocks", methods=["GET"])
def list_stocks():
    """Returns every stored stock in insertion order."""
    try:
        stocks = _store().list_all()
        return jsonify(serialize_stocks(stocks)), 200
    except Exception as e:
        current_app.logger.error(f"Error fetching stocks: {e}", exc_info=True)
        return _error("Server error", 500)


@stocks_bp.route("/api/stocks", methods=["POST"])
def add_or_update_stock():
    """
    Add or update a stock (upsert keyed by symbol).

    Body: { "symbol": str, "name": str, "price": number, "change": number }
    - 201 with the record when it was created.
    - 200 with the record when an existing one was overwritten.
    - 400 when a field is missing; price and change may be 0.
    """
    body = parse_request_body(request.get_json(silent=True), StockCreateRequest)
    if body is None:
        return _error("Missing required fields", 400)

    symbol = body.symbol
    if current_app.config["NORMALIZE_POST_SYMBOL"]:
        symbol = normalize_symbol_path(symbol)
    elif symbol != symbol.upper():
        # Stored as given; PUT/DELETE/search look up the uppercase form and will miss it
        current_app.logger.warning(f"POST /api/stocks storing non-uppercase symbol '{symbol}'")

    try:
        record, created = _store().upsert(symbol, body.name, body.price, body.change)
    except Exception as e:
        current_app.logger.error(f"Error adding/updating stock: {e}", exc_info=True)
        return _error("Server error", 500)

    return jsonify(serialize_stock(record)), 201 if created else 200


@stocks_bp.route("/api/stocks/<symbol>", methods=["PUT"])
def update_stock(symbol):
    """Overwrites price and change of an existing stock; never creates one."""
    body = parse_request_body(request.get_json(silent=True), StockUpdateRequest)
    if body is None:
        return _error("Missing price or change fields", 400)

    normalized = normalize_symbol_path(symbol)
    try:
        record = _store().update_fields(normalized, body.price, body.change)
    except StockNotFound:
        return _error("Stock not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error updating stock {normalized}: {e}", exc_info=True)
        return _error("Server error", 500)

    return jsonify(serialize_stock(record)), 200


@stocks_bp.route("/api/stocks/<symbol>", methods=["DELETE"])
def delete_stock(symbol):
    normalized = normalize_symbol_path(symbol)
    try:
        removed = _store().delete_by_symbol(normalized)
    except StockNotFound:
        return _error("Stock not found", 404)
    except Exception as e:
        current_app.logger.error(f"Error deleting stock {normalized}: {e}", exc_info=True)
        return _error("Server error", 500)

    message = DeleteResponse(message=f"Stock {removed} deleted successfully")
    return jsonify(message.model_dump()), 200


@stocks_bp.route("/api/search/<symbol>", methods=["GET"])
def search_stock(symbol):
    """
    Fetches a live quote for the symbol and stores it.

    Any failure (upstream, malformed payload or database) is reported to the
    client as a single generic 500.
    """
    normalized = normalize_symbol_path(symbol)
    try:
        quote = _quote_client().fetch_quote(normalized)
        record, _ = _store().upsert(normalized, quote.name, quote.price, quote.change)
    except QuoteServiceError as e:
        current_app.logger.error(f"Error fetching stock data for {normalized}: {e}")
        return _error("Stock not found or API error", 500)
    except StoreUnavailable as e:
        current_app.logger.error(f"Error storing stock data for {normalized}: {e}", exc_info=True)
        return _error("Stock not found or API error", 500)
    except Exception as e:
        current_app.logger.error(f"Unexpected error in search for {normalized}: {e}", exc_info=True)
        return _error("Stock not found or API error", 500)

    return jsonify(serialize_stock(record)), 200


@stocks_bp.route("/health", methods=["GET"])
def health_check():
    """Standard health check endpoint."""
    return jsonify(HealthResponse().model_dump()), 200


# --- 3. Static Frontend Fallback ---
def serve_frontend(path=""):
    """
    Serves a file from the frontend build when it exists, otherwise the
    index document so client-side routing can take over.
    """
    build_dir = current_app.config["FRONTEND_BUILD_DIR"]

    if path:
        candidate = safe_join(build_dir, path)
        if candidate is not None and os.path.isfile(candidate):
            return send_from_directory(build_dir, path)

    if os.path.isfile(os.path.join(build_dir, "index.html")):
        return send_from_directory(build_dir, "index.html")

    current_app.logger.error(f"Frontend index.html not found in {build_dir}")
    return FRONTEND_MISSING_MESSAGE, 500, {"Content-Type": "text/plain; charset=utf-8"}


def _apply_security_headers(response):
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


# --- 4. App Factory and Lifecycle ---
def create_app(config=None, db=None, store=None, quote_client=None):
    """
    Builds the Flask app with its dependencies injected.

    When neither store nor db is given, a MongoDB client is opened from the
    config and kept in app.extensions["mongo_client"] until shutdown().
    """
    config = config or Config()

    app = Flask(__name__, static_folder=None)
    app.config["FRONTEND_BUILD_DIR"] = config.FRONTEND_BUILD_DIR
    app.config["NORMALIZE_POST_SYMBOL"] = config.NORMALIZE_POST_SYMBOL
    setup_logging(app, config)

    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    if store is None:
        if db is None:
            client, db = mongo_client.connect(config)
            app.extensions["mongo_client"] = client
        store = StockStore(db)
        try:
            store.ensure_indexes()
        except StoreUnavailable as e:
            # StockStore.upsert retries index creation before the first write
            app.logger.error(f"Could not ensure stock indexes at startup: {e}")

    app.extensions["stock_store"] = store
    app.extensions["quote_client"] = quote_client or QuoteClient.from_config(config)

    app.register_blueprint(stocks_bp)
    app.add_url_rule("/", "frontend_index", serve_frontend, methods=["GET"])
    app.add_url_rule("/<path:path>", "frontend", serve_frontend, methods=["GET"])
    app.after_request(_apply_security_headers)

    return app


def shutdown(app):
    """Closes the outbound HTTP session and the MongoDB client, if owned."""
    quote_client = app.extensions.get("quote_client")
    if quote_client is not None:
        quote_client.close()
    mongo_client.close(app.extensions.pop("mongo_client", None))


def main():
    config = Config()
    app = create_app(config)

    # Turn SIGTERM into SystemExit so the finally block below runs
    signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(0))
    try:
        app.logger.info(f"Server running on http://localhost:{config.PORT}")
        app.run(host="0.0.0.0", port=config.PORT, threaded=True)
    finally:
        shutdown(app)


if __name__ == '__main__':
    main()
