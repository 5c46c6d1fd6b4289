# backend-services/shared/contracts.py
"""
This module defines the Pydantic models that serve as the formal data contracts
for the stock-service HTTP API.

These models validate request bodies at the route boundary, shape the JSON
returned to the frontend, and describe the payload expected from the external
quote provider.
"""

from datetime import datetime
from typing import List, Optional, TypeAlias
from pydantic import BaseModel, ConfigDict, Field, StrictStr

# --- Contract 1: StockRecord ---
class StockRecord(BaseModel):
    """A single stock document as returned by the API."""
    symbol: str
    name: str
    price: float
    change: float
    lastUpdated: Optional[datetime] = None

StockList: TypeAlias = List[StockRecord]
"""The full stock collection in insertion order."""


# --- Contract 2: Requests ---
class StockCreateRequest(BaseModel):
    """Body of POST /api/stocks. price and change may be 0 but must be present."""
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    symbol: StrictStr = Field(..., min_length=1)
    name: StrictStr = Field(..., min_length=1)
    price: float
    change: float


class StockUpdateRequest(BaseModel):
    """Body of PUT /api/stocks/<symbol>."""
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)

    price: float
    change: float


# --- Contract 3: Quote provider payload ---
class Quote(BaseModel):
    """The subset of the upstream quote payload persisted by the search route."""
    model_config = ConfigDict(allow_inf_nan=False)

    name: StrictStr = Field(..., min_length=1)
    price: float
    change: float


# --- Contract 4: Responses ---
class DeleteResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = "healthy"


class ApiError(BaseModel):
    """Generic error envelope; never carries internal details."""
    error: str
