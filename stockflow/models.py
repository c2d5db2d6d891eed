"""Product and transaction records shared by the store and its collaborators."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional
import re
import uuid


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif not value or not isinstance(value, str):
        return None
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _serialize_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_identifier(existing: Iterable[str]) -> str:
    taken = set(existing)
    candidate = uuid.uuid4().hex[:12]
    while candidate in taken:
        candidate = uuid.uuid4().hex[:12]
    return candidate


def _require_timestamp(value: Any, field_name: str) -> datetime:
    parsed = _parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid timestamp in field '{field_name}'")
    return parsed


def _require_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid integer in field '{field_name}'")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"Invalid integer in field '{field_name}'")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer in field '{field_name}'") from exc


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


class TransactionType(str, Enum):
    """Kinds of stock movement recorded in the transaction log."""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


@dataclass(frozen=True)
class ProductDraft:
    """Product fields supplied by the caller when creating a product."""

    name: str
    sku: str = ""
    category: str = ""
    quantity: int = 0
    min_level: int = 0
    price: float = 0.0


@dataclass(frozen=True)
class Product:
    """A stocked product."""

    id: str
    name: str
    sku: str
    category: str
    quantity: int
    min_level: int
    price: float
    last_updated: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "quantity": self.quantity,
            "minLevel": self.min_level,
            "price": self.price,
            "lastUpdated": _serialize_timestamp(self.last_updated),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Product":
        if not isinstance(record, dict):
            raise ValueError("Product record must be an object")
        product_id = record.get("id")
        if product_id is None or str(product_id) == "":
            raise ValueError("Product record is missing an id")
        return cls(
            id=str(product_id),
            name=str(record.get("name") or ""),
            sku=str(record.get("sku") or ""),
            category=str(record.get("category") or ""),
            quantity=_require_int(record.get("quantity", 0), "quantity"),
            min_level=_require_int(record.get("minLevel", 0), "minLevel"),
            price=float(record.get("price") or 0),
            last_updated=_require_timestamp(record.get("lastUpdated"), "lastUpdated"),
        )


ADJUSTMENT_NOTE_TEMPLATE = "Stock count corrected from {old} to {new}"
_ADJUSTMENT_NOTE_RE = re.compile(r"^Stock count corrected from (\d+) to (\d+)")


@dataclass(frozen=True)
class Transaction:
    """An entry in the stock movement log.

    ``product_name`` is copied from the product when the entry is created and
    is never refreshed afterwards, so renaming or deleting the product leaves
    the log as it was.
    """

    id: str
    product_id: str
    product_name: str
    type: TransactionType
    quantity: int
    date: datetime
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "type": self.type.value,
            "quantity": self.quantity,
            "date": _serialize_timestamp(self.date),
            "notes": self.notes,
        }

    def signed_quantity(self) -> Optional[int]:
        """Stock change this entry made, or ``None`` if it cannot be told.

        Adjustments store the size of the correction; the direction comes
        from the count recorded at the start of their notes.
        """

        if self.type is TransactionType.IN:
            return self.quantity
        if self.type is TransactionType.OUT:
            return -self.quantity
        match = _ADJUSTMENT_NOTE_RE.match(self.notes or "")
        if match is None:
            return None
        return int(match.group(2)) - int(match.group(1))

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Transaction":
        if not isinstance(record, dict):
            raise ValueError("Transaction record must be an object")
        transaction_id = record.get("id")
        if transaction_id is None or str(transaction_id) == "":
            raise ValueError("Transaction record is missing an id")
        return cls(
            id=str(transaction_id),
            product_id=str(record.get("productId") or ""),
            product_name=str(record.get("productName") or ""),
            type=TransactionType(record.get("type")),
            quantity=_require_int(record.get("quantity", 0), "quantity"),
            date=_require_timestamp(record.get("date"), "date"),
            notes=_optional_text(record.get("notes")),
        )


__all__ = [
    "ADJUSTMENT_NOTE_TEMPLATE",
    "Product",
    "ProductDraft",
    "Transaction",
    "TransactionType",
]
