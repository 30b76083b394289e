# Overview: Projected stock for validating a multi-item request before anything is committed.

from __future__ import annotations

from typing import Mapping


def projected(product_id: int, snapshot: Mapping[int, int], pending: Mapping[int, int]) -> int:
    """Ledger quantity plus deltas already decided in the same operation."""
    return snapshot.get(product_id, 0) + pending.get(product_id, 0)


class StockProjection:
    """
    Read-only ledger snapshot plus the deltas decided so far in one request.

    Item N's availability check sees the deductions already reserved for
    items 1..N-1, so the same unit is never allocated twice within one
    transaction. Nothing here touches the ledger; commit the collected
    deltas with StockLedger.apply_batch.
    """

    def __init__(self, snapshot: Mapping[int, int]):
        self.snapshot = dict(snapshot)
        self.deltas: dict[int, int] = {}

    def available(self, product_id: int) -> int:
        return max(projected(product_id, self.snapshot, self.deltas), 0)

    def reserve(self, product_id: int, quantity: int) -> bool:
        """Reserve quantity if fully available; returns whether it was reserved."""
        if quantity <= 0:
            return True
        if self.available(product_id) < quantity:
            return False
        self.deltas[product_id] = self.deltas.get(product_id, 0) - quantity
        return True

    def reserve_up_to(self, product_id: int, quantity: int) -> int:
        """Reserve as much of quantity as is available; returns the amount reserved."""
        granted = min(max(quantity, 0), self.available(product_id))
        if granted:
            self.deltas[product_id] = self.deltas.get(product_id, 0) - granted
        return granted

    def has_deltas(self) -> bool:
        return any(self.deltas.values())
