"""Session state for products and the stock movement log."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from threading import RLock
from typing import Callable, List, Optional, Tuple
import logging

from .codec import Snapshot
from .models import (
    ADJUSTMENT_NOTE_TEMPLATE,
    Product,
    ProductDraft,
    Transaction,
    TransactionType,
    _new_identifier,
    _now,
)
from .sharing import SnapshotLinkService
from .storage import PersistenceGateway

logger = logging.getLogger(__name__)


class StoreMode(str, Enum):
    PERSISTENT = "persistent"
    SHARED_READ_ONLY = "shared"


class MutationOutcome(str, Enum):
    APPLIED = "applied"
    UNKNOWN_PRODUCT = "unknown_product"
    INSUFFICIENT_STOCK = "insufficient_stock"
    INVALID_QUANTITY = "invalid_quantity"


@dataclass(frozen=True)
class MutationResult:
    """What a store mutation did.

    ``product`` is the product as it stands after the call (or before it, for
    deletes). ``transaction`` is set only when a log entry was created.
    """

    outcome: MutationOutcome
    product: Optional[Product] = None
    transaction: Optional[Transaction] = None

    @property
    def applied(self) -> bool:
        return self.outcome is MutationOutcome.APPLIED


@dataclass
class InventoryStore:
    """Owns the products and transactions of one session.

    In persistent mode every applied mutation writes the full collections
    through the gateway. A store opened from a shared snapshot keeps
    accepting mutations in memory but never writes them.
    """

    gateway: PersistenceGateway
    links: SnapshotLinkService
    clock: Callable[[], datetime] = _now
    mode: StoreMode = field(default=StoreMode.PERSISTENT, init=False)
    _products: List[Product] = field(default_factory=list, init=False)
    _transactions: List[Transaction] = field(default_factory=list, init=False)
    _lock: RLock = field(default_factory=RLock, init=False)

    def initialize(self) -> StoreMode:
        with self._lock:
            snapshot = self.links.detect_incoming_snapshot()
            if snapshot is not None:
                self._install(snapshot)
                self.mode = StoreMode.SHARED_READ_ONLY
                logger.info(
                    "Opened shared snapshot with %d products and %d transactions",
                    len(self._products),
                    len(self._transactions),
                )
            else:
                self._products = list(self.gateway.load_products())
                self._transactions = list(self.gateway.load_transactions())
                self.mode = StoreMode.PERSISTENT
            return self.mode

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def products(self) -> Tuple[Product, ...]:
        with self._lock:
            return tuple(self._products)

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        with self._lock:
            return tuple(self._transactions)

    @property
    def is_shared(self) -> bool:
        return self.mode is StoreMode.SHARED_READ_ONLY

    def get_product(self, product_id: str) -> Optional[Product]:
        with self._lock:
            index = self._index_of(product_id)
            return None if index is None else self._products[index]

    def search_products(self, term: Optional[str] = None) -> Tuple[Product, ...]:
        needle = (term or "").strip().lower()
        with self._lock:
            if not needle:
                return tuple(self._products)
            return tuple(
                product
                for product in self._products
                if needle in product.name.lower()
                or needle in product.sku.lower()
                or needle in product.category.lower()
            )

    def recent_transactions(self, limit: Optional[int] = None) -> Tuple[Transaction, ...]:
        with self._lock:
            if limit is None:
                return tuple(self._transactions)
            return tuple(self._transactions[:limit])

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_product(self, draft: ProductDraft) -> MutationResult:
        if draft.quantity < 0 or draft.min_level < 0:
            return MutationResult(MutationOutcome.INVALID_QUANTITY)
        with self._lock:
            product = Product(
                id=_new_identifier(product.id for product in self._products),
                name=draft.name,
                sku=draft.sku,
                category=draft.category,
                quantity=draft.quantity,
                min_level=draft.min_level,
                price=draft.price,
                last_updated=self.clock(),
            )
            self._products.append(product)
            self._persist_products()
            return MutationResult(MutationOutcome.APPLIED, product=product)

    def edit_product(self, updated: Product) -> MutationResult:
        with self._lock:
            index = self._index_of(updated.id)
            if index is None:
                return MutationResult(MutationOutcome.UNKNOWN_PRODUCT)
            if updated.quantity < 0 or updated.min_level < 0:
                return MutationResult(
                    MutationOutcome.INVALID_QUANTITY, product=self._products[index]
                )
            product = replace(updated, last_updated=self.clock())
            self._products[index] = product
            self._persist_products()
            return MutationResult(MutationOutcome.APPLIED, product=product)

    def delete_product(self, product_id: str) -> MutationResult:
        with self._lock:
            index = self._index_of(product_id)
            if index is None:
                return MutationResult(MutationOutcome.UNKNOWN_PRODUCT)
            removed = self._products.pop(index)
            self._persist_products()
            return MutationResult(MutationOutcome.APPLIED, product=removed)

    def record_transaction(
        self,
        product_id: str,
        type: TransactionType,
        quantity: int,
        notes: Optional[str] = None,
    ) -> MutationResult:
        """Apply a stock-in or stock-out and log it.

        A stock-out larger than the current quantity is rejected without
        touching either collection.
        """

        type = TransactionType(type)
        if type is TransactionType.ADJUSTMENT:
            raise ValueError("Use adjust_stock() to record a stock count correction")
        with self._lock:
            index = self._index_of(product_id)
            if index is None:
                return MutationResult(MutationOutcome.UNKNOWN_PRODUCT)
            product = self._products[index]
            if quantity <= 0:
                return MutationResult(MutationOutcome.INVALID_QUANTITY, product=product)
            if type is TransactionType.IN:
                new_quantity = product.quantity + quantity
            else:
                new_quantity = product.quantity - quantity
            if new_quantity < 0:
                return MutationResult(MutationOutcome.INSUFFICIENT_STOCK, product=product)
            return self._apply_movement(index, new_quantity, type, quantity, notes)

    def adjust_stock(
        self,
        product_id: str,
        counted_quantity: int,
        notes: Optional[str] = None,
    ) -> MutationResult:
        """Set a product's quantity to a physical count.

        The log entry stores the size of the correction. Its notes always
        start with the old and new counts; caller notes follow them. A count
        equal to the current stock changes nothing and logs nothing.
        """

        with self._lock:
            index = self._index_of(product_id)
            if index is None:
                return MutationResult(MutationOutcome.UNKNOWN_PRODUCT)
            product = self._products[index]
            if counted_quantity < 0:
                return MutationResult(MutationOutcome.INVALID_QUANTITY, product=product)
            delta = counted_quantity - product.quantity
            if delta == 0:
                return MutationResult(MutationOutcome.APPLIED, product=product)
            correction = ADJUSTMENT_NOTE_TEMPLATE.format(old=product.quantity, new=counted_quantity)
            notes = f"{correction}: {notes}" if notes else correction
            return self._apply_movement(
                index, counted_quantity, TransactionType.ADJUSTMENT, abs(delta), notes
            )

    def share(self, location: Optional[str] = None) -> str:
        with self._lock:
            return self.links.build_share_url(self._products, self._transactions, location)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply_movement(
        self,
        index: int,
        new_quantity: int,
        type: TransactionType,
        quantity: int,
        notes: Optional[str],
    ) -> MutationResult:
        now = self.clock()
        product = replace(self._products[index], quantity=new_quantity, last_updated=now)
        self._products[index] = product
        transaction = Transaction(
            id=_new_identifier(entry.id for entry in self._transactions),
            product_id=product.id,
            product_name=product.name,
            type=type,
            quantity=quantity,
            date=now,
            notes=notes,
        )
        self._transactions.insert(0, transaction)
        self._persist_products()
        self._persist_transactions()
        return MutationResult(MutationOutcome.APPLIED, product=product, transaction=transaction)

    def _install(self, snapshot: Snapshot) -> None:
        self._products = list(snapshot.products)
        self._transactions = list(snapshot.transactions)

    def _index_of(self, product_id: str) -> Optional[int]:
        for index, product in enumerate(self._products):
            if product.id == product_id:
                return index
        return None

    def _persist_products(self) -> None:
        if self.mode is StoreMode.PERSISTENT:
            self.gateway.save_products(self._products)

    def _persist_transactions(self) -> None:
        if self.mode is StoreMode.PERSISTENT:
            self.gateway.save_transactions(self._transactions)


__all__ = ["InventoryStore", "MutationOutcome", "MutationResult", "StoreMode"]
