# stock-service/helper_functions.py
import logging
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError
from shared.contracts import StockList, StockRecord

# Use logger
logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_stock_list_adapter = TypeAdapter(StockList)


def normalize_symbol_path(raw: str) -> str:
    """Path symbols are case-insensitive: trim and uppercase."""
    return (raw or "").strip().upper()


def parse_request_body(payload: Any, model: Type[ModelT]) -> Optional[ModelT]:
    """
    Validates a decoded JSON body against a request contract.

    Returns None for anything that is not a JSON object or fails validation,
    so routes can answer 400 without reaching the store.
    """
    if not isinstance(payload, dict):
        return None
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"{model.__name__} validation failed: {e.error_count()} error(s)")
        return None


def serialize_stock(record: Dict[str, Any]) -> Dict[str, Any]:
    """Shapes a stored document per the StockRecord contract (ISO timestamps)."""
    return StockRecord.model_validate(record).model_dump(mode="json")


def serialize_stocks(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    validated = _stock_list_adapter.validate_python(list(records))
    return [item.model_dump(mode="json") for item in validated]
