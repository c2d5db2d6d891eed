"""Wire encodings for shareable inventory snapshots.

The current format maps every record to a fixed-order array, wraps both
arrays in a versioned envelope and compresses the JSON text with
lz-string's URI-component encoding, the same encoding browser clients use
for `?s=` links::

    {"v": 1, "p": [[id, name, sku, category, quantity, minLevel, price, lastUpdated], ...],
             "t": [[id, productId, productName, type, quantity, date, notes], ...]}

Array positions are part of the format; changing them requires a new
``SNAPSHOT_VERSION``. Links issued before the version key existed carry
only ``p`` and ``t`` and read as version 1.

The legacy format is plain base64 over UTF-8 JSON with full field names.
It is only ever decoded.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from lzstring import LZString

from .models import (
    Product,
    Transaction,
    TransactionType,
    _optional_text,
    _require_int,
    _require_timestamp,
    _serialize_timestamp,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_VERSION_KEY = "v"
_PRODUCTS_KEY = "p"
_TRANSACTIONS_KEY = "t"

_PRODUCT_FIELDS = 8
_TRANSACTION_FIELDS = 7

_lz = LZString()


class Snapshot(NamedTuple):
    """A point-in-time copy of both collections."""

    products: List[Product]
    transactions: List[Transaction]


def _product_to_row(product: Product) -> List[Any]:
    return [
        product.id,
        product.name,
        product.sku,
        product.category,
        product.quantity,
        product.min_level,
        product.price,
        _serialize_timestamp(product.last_updated),
    ]


def _transaction_to_row(transaction: Transaction) -> List[Any]:
    return [
        transaction.id,
        transaction.product_id,
        transaction.product_name,
        transaction.type.value,
        transaction.quantity,
        _serialize_timestamp(transaction.date),
        transaction.notes,
    ]


def _row_to_product(row: Any) -> Product:
    if not isinstance(row, list) or len(row) != _PRODUCT_FIELDS:
        raise ValueError("Malformed product row")
    return Product(
        id=str(row[0]),
        name=str(row[1]),
        sku=str(row[2]),
        category=str(row[3]),
        quantity=_require_int(row[4], "quantity"),
        min_level=_require_int(row[5], "minLevel"),
        price=float(row[6]),
        last_updated=_require_timestamp(row[7], "lastUpdated"),
    )


def _row_to_transaction(row: Any) -> Transaction:
    # Rows written without notes may stop at the date column.
    if not isinstance(row, list) or len(row) not in (_TRANSACTION_FIELDS - 1, _TRANSACTION_FIELDS):
        raise ValueError("Malformed transaction row")
    notes = row[6] if len(row) == _TRANSACTION_FIELDS else None
    return Transaction(
        id=str(row[0]),
        product_id=str(row[1]),
        product_name=str(row[2]),
        type=TransactionType(row[3]),
        quantity=_require_int(row[4], "quantity"),
        date=_require_timestamp(row[5], "date"),
        notes=_optional_text(notes),
    )


def encode_snapshot(
    products: Sequence[Product], transactions: Sequence[Transaction]
) -> str:
    """Encode both collections into a compact URL-safe string."""

    envelope: Dict[str, Any] = {
        _VERSION_KEY: SNAPSHOT_VERSION,
        _PRODUCTS_KEY: [_product_to_row(product) for product in products],
        _TRANSACTIONS_KEY: [_transaction_to_row(entry) for entry in transactions],
    }
    # ASCII escapes keep characters outside the BMP as UTF-16 pairs, which is
    # what lz-string operates on.
    text = json.dumps(envelope, ensure_ascii=True, separators=(",", ":"))
    return _lz.compressToEncodedURIComponent(text)


def _join_surrogates(text: str) -> str:
    # Browser clients compress UTF-16 code units, so non-BMP characters
    # arrive as surrogate pairs.
    return text.encode("utf-16", "surrogatepass").decode("utf-16")


def decode_snapshot(payload: Optional[str]) -> Optional[Snapshot]:
    """Decode a current-format payload, or return ``None`` if it is unusable."""

    if not payload:
        return None
    # lzstring fails in assorted ways on input it did not produce.
    try:
        text = _lz.decompressFromEncodedURIComponent(payload)
        if not text:
            raise ValueError("empty decompression result")
        envelope = json.loads(_join_surrogates(text))
    except (
        IndexError,
        KeyError,
        TypeError,
        UnboundLocalError,
        UnicodeError,
        ValueError,
    ) as exc:
        logger.debug("Discarding undecodable snapshot payload: %s", exc)
        return None
    if not isinstance(envelope, dict):
        logger.debug("Discarding snapshot payload that is not an object")
        return None
    version = envelope.get(_VERSION_KEY, SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        logger.debug("Discarding snapshot payload with unknown version %r", version)
        return None
    product_rows = envelope.get(_PRODUCTS_KEY) or []
    transaction_rows = envelope.get(_TRANSACTIONS_KEY) or []
    if not isinstance(product_rows, list) or not isinstance(transaction_rows, list):
        logger.debug("Discarding snapshot payload with malformed collections")
        return None
    try:
        products = [_row_to_product(row) for row in product_rows]
        transactions = [_row_to_transaction(row) for row in transaction_rows]
    except (TypeError, ValueError) as exc:
        logger.debug("Discarding snapshot payload with malformed records: %s", exc)
        return None
    return Snapshot(products, transactions)


def decode_legacy_snapshot(payload: Optional[str]) -> Optional[Snapshot]:
    """Decode the older ``share`` payload: base64 over full-field JSON."""

    if not payload:
        return None
    # Query parsing turns an unescaped "+" into a space.
    candidate = payload.strip().replace(" ", "+")
    candidate += "=" * (-len(candidate) % 4)
    try:
        raw = base64.b64decode(candidate, validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.debug("Discarding undecodable legacy snapshot: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.debug("Discarding legacy snapshot that is not an object")
        return None
    product_records = data.get(_PRODUCTS_KEY) or []
    transaction_records = data.get(_TRANSACTIONS_KEY) or []
    if not isinstance(product_records, list) or not isinstance(transaction_records, list):
        logger.debug("Discarding legacy snapshot with malformed collections")
        return None
    try:
        products = [Product.from_record(record) for record in product_records]
        transactions = [Transaction.from_record(record) for record in transaction_records]
    except (TypeError, ValueError) as exc:
        logger.debug("Discarding legacy snapshot with malformed records: %s", exc)
        return None
    return Snapshot(products, transactions)


__all__ = [
    "SNAPSHOT_VERSION",
    "Snapshot",
    "decode_legacy_snapshot",
    "decode_snapshot",
    "encode_snapshot",
]
