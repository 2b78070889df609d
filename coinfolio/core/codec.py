"""
Encoding between Coin records and their persisted forms.

- Local slot: a JSON array of camelCase coin objects (orjson).
- Remote documents: one mapping per coin without the id; calendar dates travel as
  UTC-midnight datetimes and an absent sold date is written as an explicit None.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, Optional

import orjson
from pydantic import ValidationError

from coinfolio.errors.errors import StorageFault
from coinfolio.types.types import Coin, CoinDraft

_DATE_FIELDS = ("acquisitionDate", "soldDate")

# --- Local slot ---


def encode_coins(coins: Iterable[Coin]) -> str:
    payload = [coin.to_wire() for coin in coins]
    return orjson.dumps(payload).decode("utf-8")


def decode_coins(text: Optional[str]) -> list[Coin]:
    """Decode the slot text. An absent slot is an empty collection."""
    if text is None or not text.strip():
        return []
    try:
        raw = orjson.loads(text)
    except orjson.JSONDecodeError as exc:
        raise StorageFault("Stored collection is not valid JSON", operation="decode") from exc
    if not isinstance(raw, list):
        raise StorageFault("Stored collection must be a JSON array", operation="decode")
    try:
        return [Coin.model_validate(item) for item in raw]
    except ValidationError as exc:
        raise StorageFault(
            "Stored coin record is invalid",
            operation="decode",
            details={"errors": exc.error_count()},
        ) from exc


# --- Remote documents ---


def date_to_timestamp(value: Optional[date]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.combine(value, time.min).replace(tzinfo=timezone.utc)


def timestamp_to_date(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def coin_to_document(coin: Coin | CoinDraft) -> dict[str, Any]:
    fields = coin.model_dump(by_alias=True, exclude={"id"})
    for key in _DATE_FIELDS:
        fields[key] = date_to_timestamp(fields.get(key))
    return fields


def document_to_coin(doc_id: str, fields: dict[str, Any]) -> Coin:
    data = {key: value for key, value in fields.items() if key != "id"}
    for key in _DATE_FIELDS:
        if key in data:
            data[key] = timestamp_to_date(data[key])
    data.setdefault("isSold", False)
    data["id"] = doc_id
    try:
        return Coin.model_validate(data)
    except ValidationError as exc:
        raise StorageFault(
            "Stored document is not a valid coin",
            operation="decode",
            details={"doc_id": doc_id, "errors": exc.error_count()},
        ) from exc
