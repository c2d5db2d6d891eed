"""Read-only projections used by the dashboard, reports and exports."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

from .models import Product, Transaction

LOW_STOCK_LABEL = "LOW STOCK"
OK_LABEL = "OK"


def is_low_stock(product: Product) -> bool:
    """A product is low on stock when it is at or below its reorder level."""

    return product.quantity <= product.min_level


def stock_status(product: Product) -> str:
    return LOW_STOCK_LABEL if is_low_stock(product) else OK_LABEL


def product_value(product: Product) -> float:
    return product.price * product.quantity


def low_stock_products(products: Iterable[Product]) -> List[Product]:
    return [product for product in products if is_low_stock(product)]


@dataclass(frozen=True)
class InventoryStats:
    total_items: int
    total_value: float
    low_stock_count: int
    recent_transactions: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalItems": self.total_items,
            "totalValue": self.total_value,
            "lowStockCount": self.low_stock_count,
            "recentTransactions": self.recent_transactions,
        }


def inventory_stats(
    products: Sequence[Product], transactions: Sequence[Transaction]
) -> InventoryStats:
    return InventoryStats(
        total_items=sum(product.quantity for product in products),
        total_value=sum(product_value(product) for product in products),
        low_stock_count=len(low_stock_products(products)),
        recent_transactions=len(transactions),
    )


def _group_by_category(
    products: Iterable[Product], measure: Callable[[Product], float]
) -> List[Tuple[str, Any]]:
    totals: Dict[str, Any] = {}
    for product in products:
        totals[product.category] = totals.get(product.category, 0) + measure(product)
    return list(totals.items())


def quantity_by_category(products: Iterable[Product]) -> List[Tuple[str, int]]:
    """Units on hand per category, in the order categories first appear."""

    return _group_by_category(products, lambda product: product.quantity)


def value_by_category(products: Iterable[Product]) -> List[Tuple[str, float]]:
    return _group_by_category(products, product_value)


__all__ = [
    "InventoryStats",
    "LOW_STOCK_LABEL",
    "OK_LABEL",
    "inventory_stats",
    "is_low_stock",
    "low_stock_products",
    "product_value",
    "quantity_by_category",
    "stock_status",
    "value_by_category",
]
