# Overview: Stock ledger: per-location and central quantity cells with atomic mutation primitives.

from __future__ import annotations

from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy import delete, update

from ..extensions import db
from ..models import LocationStock, Product
from ..validation import CATALOG_STATIONERY, ProductNotFound, StockConflictError, require_catalog
from .concurrency import CompensationLog, lock_for_update
"""
Stock Ledger Invariants (authoritative)

Cells:
- A ledger cell is the quantity of one product at one location (per catalog),
  or centrally (location_id=None).
- Central cells live on Product.central_stock; location cells live in
  LocationStock rows. Both shapes sit behind the same StockLedger contract.
- An absent LocationStock row means quantity 0.

Mutation:
- No cell is ever written negative.
- apply_delta / unguarded apply_batch clamp an underflowing result at 0 and
  log a WARNING naming the cell (clamping signals drift, not a normal path).
- Guarded batches (guard=True) decrement with a conditional UPDATE
  (quantity >= amount). A lost race raises StockConflictError after the
  already-applied cells of the batch are compensated.
- set_quantity writes an absolute value (audit approval); it is not a delta.
- Location rows that reach 0 through a delta are removed.

Units of work:
- The ledger never commits. The caller owns the transaction boundary.
"""


CENTRAL = None


class StockLedger:
    """
    Ledger handle for one catalog kind.

    The same handle serves the central cells and every location's cells
    for its catalog; the session is injected so callers control the
    unit of work.
    """

    def __init__(self, catalog: str = CATALOG_STATIONERY, session=None):
        self.catalog = require_catalog(catalog)
        self.session = session if session is not None else db.session

    def __repr__(self) -> str:
        return f"<StockLedger catalog={self.catalog}>"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, location_id: int | None, product_id: int) -> int:
        """Quantity of a cell; 0 when the cell does not exist."""
        if location_id is CENTRAL:
            value = (
                self.session.query(Product.central_stock)
                .filter(Product.id == product_id)
                .scalar()
            )
            return int(value or 0)

        value = (
            self.session.query(LocationStock.quantity)
            .filter_by(location_id=location_id, catalog=self.catalog, product_id=product_id)
            .scalar()
        )
        return int(value or 0)

    def snapshot(self, location_id: int | None, product_ids: Iterable[int]) -> dict[int, int]:
        """
        Read the cells for exactly the given products in one query.

        Products without a cell are reported as 0.
        """
        ids = {int(pid) for pid in product_ids}
        if not ids:
            return {}

        if location_id is CENTRAL:
            rows = (
                self.session.query(Product.id, Product.central_stock)
                .filter(Product.id.in_(ids))
                .all()
            )
        else:
            rows = (
                self.session.query(LocationStock.product_id, LocationStock.quantity)
                .filter(
                    LocationStock.location_id == location_id,
                    LocationStock.catalog == self.catalog,
                    LocationStock.product_id.in_(ids),
                )
                .all()
            )

        result = {pid: 0 for pid in ids}
        for pid, qty in rows:
            result[pid] = int(qty or 0)
        return result

    def location_cells(self, location_id: int) -> list[LocationStock]:
        return (
            self.session.query(LocationStock)
            .filter_by(location_id=location_id, catalog=self.catalog)
            .order_by(LocationStock.product_id.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_delta(self, location_id: int | None, product_id: int, delta: int) -> int:
        """
        Add delta to a cell, clamping the result at 0.

        Returns the new quantity.
        """
        if location_id is CENTRAL:
            product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
            new_qty = self._clamped(location_id, product_id, product.central_stock, delta)
            product.central_stock = new_qty
            self.session.flush()
            return new_qty

        cell = lock_for_update(
            self.session.query(LocationStock).filter_by(
                location_id=location_id, catalog=self.catalog, product_id=product_id
            )
        ).first()
        current = cell.quantity if cell is not None else 0
        new_qty = self._clamped(location_id, product_id, current, delta)

        if cell is None:
            if new_qty > 0:
                self.session.add(LocationStock(
                    location_id=location_id,
                    catalog=self.catalog,
                    product_id=product_id,
                    quantity=new_qty,
                ))
        elif new_qty == 0:
            self.session.delete(cell)
        else:
            cell.quantity = new_qty
        self.session.flush()
        return new_qty

    def apply_batch(
        self,
        deltas: Mapping[int, int],
        location_id: int | None,
        *,
        guard: bool = False,
    ) -> dict[int, int]:
        """
        Apply a set of per-product deltas to one location (or central) as
        one write inside the caller's unit of work.

        guard=False: each cell is clamped at 0 (restore paths).
        guard=True: negative deltas are conditional decrements; if any cell
        no longer holds enough stock, the cells already written by this
        batch are reversed and StockConflictError is raised.

        Returns the quantities written, keyed by product id.
        """
        if not guard:
            return {
                pid: self.apply_delta(location_id, pid, delta)
                for pid, delta in sorted(deltas.items())
                if delta
            }

        log = CompensationLog(f"ledger batch at {self._cell_label(location_id)}")
        written: dict[int, int] = {}
        for pid, delta in sorted(deltas.items()):
            if not delta:
                continue
            if delta > 0:
                written[pid] = self.apply_delta(location_id, pid, delta)
                log.record(f"+{delta} product {pid}", self._undo(location_id, pid, -delta))
                continue

            if not self.conditional_decrement(location_id, pid, -delta):
                available = self.get(location_id, pid)
                log.unwind()
                raise StockConflictError(
                    f"Stock for product {pid} changed concurrently. "
                    f"Available: {available}, Requested: {-delta}",
                    details={"product_id": pid, "available": available, "requested": -delta},
                )
            log.record(f"{delta} product {pid}", self._undo(location_id, pid, -delta))
            written[pid] = self.get(location_id, pid)
        return written

    def conditional_decrement(self, location_id: int | None, product_id: int, quantity: int) -> bool:
        """
        Decrement a cell only if it currently holds at least quantity.

        Single conditional UPDATE; returns False when the precondition fails
        (insufficient stock, or a concurrent writer got there first).
        """
        if quantity <= 0:
            return True

        if location_id is CENTRAL:
            stmt = (
                update(Product)
                .where(Product.id == product_id, Product.central_stock >= quantity)
                .values(central_stock=Product.central_stock - quantity)
                .execution_options(synchronize_session="fetch")
            )
            return bool(self.session.execute(stmt).rowcount)

        stmt = (
            update(LocationStock)
            .where(
                LocationStock.location_id == location_id,
                LocationStock.catalog == self.catalog,
                LocationStock.product_id == product_id,
                LocationStock.quantity >= quantity,
            )
            .values(quantity=LocationStock.quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        if not self.session.execute(stmt).rowcount:
            return False

        self.session.execute(
            delete(LocationStock)
            .where(
                LocationStock.location_id == location_id,
                LocationStock.catalog == self.catalog,
                LocationStock.product_id == product_id,
                LocationStock.quantity == 0,
            )
            .execution_options(synchronize_session="fetch")
        )
        return True

    def set_quantity(self, location_id: int | None, product_id: int, quantity: int) -> int:
        """
        Overwrite a cell with an absolute quantity, creating it if absent.

        Used by audit approval only; never route deltas through here.
        """
        if quantity < 0:
            raise ValueError("ledger quantity cannot be negative")

        if location_id is CENTRAL:
            product = lock_for_update(self.session.query(Product).filter_by(id=product_id)).first()
            if product is None:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
            product.central_stock = quantity
            self.session.flush()
            return quantity

        cell = lock_for_update(
            self.session.query(LocationStock).filter_by(
                location_id=location_id, catalog=self.catalog, product_id=product_id
            )
        ).first()
        if cell is None:
            cell = LocationStock(
                location_id=location_id,
                catalog=self.catalog,
                product_id=product_id,
                quantity=quantity,
            )
            self.session.add(cell)
        else:
            cell.quantity = quantity
        self.session.flush()
        return quantity

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clamped(self, location_id: int | None, product_id: int, current: int, delta: int) -> int:
        new_qty = current + delta
        if new_qty < 0:
            current_app.logger.warning(
                "Ledger underflow clamped at 0: %s product %s (current %s, delta %s)",
                self._cell_label(location_id), product_id, current, delta,
            )
            return 0
        return new_qty

    def _undo(self, location_id: int | None, product_id: int, delta: int):
        def _op():
            self.apply_delta(location_id, product_id, delta)
        return _op

    def _cell_label(self, location_id: int | None) -> str:
        if location_id is CENTRAL:
            return "central"
        return f"location {location_id} ({self.catalog})"
