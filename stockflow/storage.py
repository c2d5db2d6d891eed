"""Durable local storage for the product and transaction collections."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Sequence
import json
import logging

from .models import Product, Transaction, _now

logger = logging.getLogger(__name__)

PRODUCTS_KEY = "stockflow_products"
TRANSACTIONS_KEY = "stockflow_transactions"


def seed_products(now: Optional[datetime] = None) -> List[Product]:
    """Sample catalogue returned on first run."""

    stamp = now or _now()
    return [
        Product("1", "Premium Widget A", "WDG-001", "Widgets", 45, 10, 25.00, stamp),
        Product("2", "Super Gadget X", "GDG-X01", "Gadgets", 5, 15, 120.50, stamp),
        Product("3", "Basic Tool Set", "TLS-009", "Tools", 120, 20, 45.99, stamp),
        Product("4", "Office Chair", "FUR-C02", "Furniture", 8, 5, 250.00, stamp),
    ]


@dataclass
class PersistenceGateway:
    """Key-value store kept in a single JSON document.

    The document holds two keys, one per collection, each a JSON array of
    full records. Reads never fail: missing or unreadable data falls back to
    the seed catalogue and an empty log. Write failures are logged and the
    caller carries on with its in-memory state.
    """

    storage_path: Path
    clock: Callable[[], datetime] = _now
    _lock: RLock = field(default_factory=RLock, init=False)

    def __post_init__(self) -> None:
        self.storage_path = Path(self.storage_path)

    def load_products(self) -> List[Product]:
        with self._lock:
            state = self._read_state_locked()
            if state is None or PRODUCTS_KEY not in state:
                return seed_products(self.clock())
            try:
                return [Product.from_record(record) for record in state[PRODUCTS_KEY]]
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "Stored products in %s are invalid (%s); using seed data",
                    self.storage_path,
                    exc,
                )
                return seed_products(self.clock())

    def load_transactions(self) -> List[Transaction]:
        with self._lock:
            state = self._read_state_locked()
            if state is None or TRANSACTIONS_KEY not in state:
                return []
            try:
                return [Transaction.from_record(record) for record in state[TRANSACTIONS_KEY]]
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "Stored transactions in %s are invalid (%s); starting with an empty log",
                    self.storage_path,
                    exc,
                )
                return []

    def save_products(self, products: Sequence[Product]) -> None:
        self._save_key(PRODUCTS_KEY, [product.to_dict() for product in products])

    def save_transactions(self, transactions: Sequence[Transaction]) -> None:
        self._save_key(TRANSACTIONS_KEY, [entry.to_dict() for entry in transactions])

    def clear(self) -> None:
        with self._lock:
            try:
                self.storage_path.unlink()
            except FileNotFoundError:
                return
            except OSError:
                logger.exception("Could not clear %s", self.storage_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _save_key(self, key: str, records: List[Dict[str, Any]]) -> None:
        with self._lock:
            state = self._read_state_locked() or {}
            state[key] = records
            try:
                self._write_state_unlocked(state)
            except OSError:
                logger.exception(
                    "Could not persist %s to %s; keeping changes in memory only",
                    key,
                    self.storage_path,
                )

    def _read_state_locked(self) -> Optional[Dict[str, Any]]:
        if not self.storage_path.exists():
            return None
        try:
            raw = self.storage_path.read_text(encoding="utf-8") or "{}"
            state = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s (%s)", self.storage_path, exc)
            return None
        if not isinstance(state, dict):
            logger.warning("Ignoring %s: top level is not an object", self.storage_path)
            return None
        return state

    def _write_state_unlocked(self, state: Dict[str, Any]) -> None:
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.storage_path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(state, indent=2, ensure_ascii=False), encoding="utf-8")
        temp_path.replace(self.storage_path)


__all__ = ["PRODUCTS_KEY", "TRANSACTIONS_KEY", "PersistenceGateway", "seed_products"]
