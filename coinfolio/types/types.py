from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CoinId = str

# -------- Enums --------


class SortField(str, Enum):
    NAME = "name"
    ACQUISITION_DATE = "acquisition_date"
    PURCHASE_PRICE = "purchase_price"
    CURRENT_VALUE = "current_value"
    ROI = "roi"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# -------- Coin records --------


def derive_roi(purchase_price: float, current_value: float) -> float:
    """Percentage return of ``current_value`` over ``purchase_price`` (0 for a free coin)."""
    if purchase_price <= 0:
        return 0.0
    return (current_value - purchase_price) / purchase_price * 100.0


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


_SALE_KEYS = ("sold_price", "soldPrice", "sold_date", "soldDate")
_TRUE_STRINGS = {"1", "true", "t", "yes", "y", "on"}


def _flag(value: Any) -> bool:
    """Truthiness of a raw is_sold value, read the way pydantic parses booleans."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


class _CoinFields(BaseModel):
    """
    Attributes shared by stored coins and drafts.

    Python code uses snake_case; the persisted layout uses the camelCase aliases the
    dashboard has always written (acquisitionDate, purchasePrice, ...).
    """

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
    )

    name: str = Field(..., min_length=1, description="Display name, e.g. '1921 Morgan'")
    image: str = Field(default="", description="Image reference (URL or data URI)")
    description: Optional[str] = None
    grade: Optional[str] = None
    mint: Optional[str] = None
    year: Optional[int] = None

    acquisition_date: date = Field(default_factory=_utc_today, alias="acquisitionDate")
    purchase_price: float = Field(..., ge=0, alias="purchasePrice")
    current_value: float = Field(..., ge=0, alias="currentValue")
    roi: float = Field(default=0.0, description="Return on investment in percent")

    is_sold: bool = Field(default=False, alias="isSold")
    sold_price: Optional[float] = Field(default=None, ge=0, alias="soldPrice")
    sold_date: Optional[date] = Field(default=None, alias="soldDate")

    @field_validator("acquisition_date", "sold_date", mode="before")
    @classmethod
    def _coerce_datetime(cls, value: Any) -> Any:
        # Older records carry full ISO timestamps; keep the calendar date only.
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return value

    @model_validator(mode="before")
    @classmethod
    def _drop_stale_sale(cls, data: Any) -> Any:
        # An active coin never carries stale sale data.
        if isinstance(data, dict) and not _flag(data.get("is_sold", data.get("isSold", False))):
            data = {key: value for key, value in data.items() if key not in _SALE_KEYS}
        return data

    @model_validator(mode="after")
    def _check_disposition(self) -> "_CoinFields":
        if self.is_sold and (self.sold_price is None or self.sold_date is None):
            raise ValueError("A sold coin requires both sold_price and sold_date")
        return self

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready mapping using the persisted (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)


class CoinDraft(_CoinFields):
    """
    A coin that has not been stored yet. Carries no identifier: the backend assigns one.
    """

    roi: Optional[float] = Field(default=None, description="Derived from prices when omitted")

    @model_validator(mode="after")
    def _fill_roi(self) -> "CoinDraft":
        if self.roi is None:
            self.roi = derive_roi(self.purchase_price, self.current_value)
        return self

    def with_id(self, coin_id: CoinId) -> "Coin":
        return Coin(id=coin_id, **self.model_dump())


class Coin(_CoinFields):
    """A stored coin. Immutable: transitions return new instances."""

    model_config = ConfigDict(frozen=True)

    id: CoinId = Field(..., min_length=1)

    def draft(self) -> CoinDraft:
        """The record without its identifier."""
        return CoinDraft(**self.model_dump(exclude={"id"}))

    def sold(self, sold_price: float, sold_date: date) -> "Coin":
        return self.model_copy(
            update={"is_sold": True, "sold_price": float(sold_price), "sold_date": sold_date}
        ).revalidated()

    def unsold(self) -> "Coin":
        return self.model_copy(
            update={"is_sold": False, "sold_price": None, "sold_date": None}
        ).revalidated()

    def revalidated(self) -> "Coin":
        # model_copy skips validation; run the invariants again.
        return Coin.model_validate(self.model_dump())


# -------- Derived views --------


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Portfolio metrics computed from the coin set and the cash reserve. Never persisted."""

    cash_reserve: float
    active_value: float  # sum of current value over held coins
    sold_profit: float  # realized profit over sold coins
    total_value: float  # cash + active value + sold profit
    active_roi: float
    sold_roi: float
    total_roi: float
    active_count: int = 0
    sold_count: int = 0


@dataclass(frozen=True)
class SoldTransaction:
    coin_id: CoinId
    coin_name: str
    sold_date: date
    purchase_price: float
    sold_price: float
    profit: float
    profit_percentage: float
