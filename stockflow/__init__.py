"""StockFlow inventory tracker package."""
from __future__ import annotations

from .models import Product, ProductDraft, Transaction, TransactionType
from .store import InventoryStore, MutationOutcome, MutationResult, StoreMode

__all__ = [
    "create_app",
    "InventoryStore",
    "MutationOutcome",
    "MutationResult",
    "Product",
    "ProductDraft",
    "StoreMode",
    "Transaction",
    "TransactionType",
]


def create_app(*args, **kwargs):
    from .app import create_app as _create_app

    return _create_app(*args, **kwargs)
