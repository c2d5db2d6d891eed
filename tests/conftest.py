from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List

import pytest

from stockflow.models import Product, Transaction, TransactionType
from stockflow.sharing import SnapshotLinkService
from stockflow.storage import PersistenceGateway
from stockflow.store import InventoryStore


class TickingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture()
def clock() -> TickingClock:
    return TickingClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def gateway(tmp_path: Path, clock: TickingClock) -> PersistenceGateway:
    return PersistenceGateway(tmp_path / "stockflow.json", clock=clock)


@pytest.fixture()
def make_store(gateway: PersistenceGateway, clock: TickingClock) -> Callable[..., InventoryStore]:
    def _make(location: str = "") -> InventoryStore:
        store = InventoryStore(gateway, SnapshotLinkService(location), clock=clock)
        store.initialize()
        return store

    return _make


@pytest.fixture()
def sample_products() -> List[Product]:
    stamp = datetime(2024, 2, 1, 12, 30, 15, 250000, tzinfo=timezone.utc)
    return [
        Product("p1", "Widget", "WDG-1", "Widgets", 10, 5, 2.0, stamp),
        Product("p2", "Café Crème ☕", "CAF-9", "Boissons", 0, 3, 4.75, stamp),
    ]


@pytest.fixture()
def sample_transactions() -> List[Transaction]:
    return [
        Transaction(
            "t2",
            "p1",
            "Widget",
            TransactionType.OUT,
            3,
            datetime(2024, 2, 2, 8, 0, tzinfo=timezone.utc),
            "sale — 日本",
        ),
        Transaction(
            "t1",
            "p1",
            "Widget",
            TransactionType.IN,
            13,
            datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc),
            None,
        ),
    ]
