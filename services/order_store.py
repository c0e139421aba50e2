"""
Thread-safe in-memory order storage.

Orders and stamps are kept as frozen records. Writers never edit a record
in place; they swap in a new one under the store lock, so a reader sees
either the old record or the new one.

Patch sets (from the transition engine or from direct edits) go through
``apply()``:

    1. every patch target and field is validated under the lock
    2. patches are applied, in order, to staged copies
    3. orders flagged for invalidation get their cached totals recomputed
       from the staged stamps
    4. staged records are swapped in

If step 1 fails nothing is written and PatchApplicationError is raised.

Usage:
    store = OrderStore()
    store.put_order(order)
    store.put_stamp(stamp)

    commit = store.apply(accepted.patches)
    order, stamps = store.snapshot(order_id)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, fields
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from core.exceptions import PatchApplicationError, RecordNotFoundError
from logging_config import get_logger
from models.order import Order
from models.patch import Patch, PatchTarget
from models.stamp import Stamp


# Module logger
logger = get_logger(__name__)

_ORDER_FIELDS: FrozenSet[str] = frozenset(f.name for f in fields(Order)) - {"id"}
_STAMP_FIELDS: FrozenSet[str] = frozenset(f.name for f in fields(Stamp)) - {"id", "order_id"}


@dataclass(frozen=True)
class Commit:
    """Records written by one ``apply()`` call."""

    orders: Tuple[Order, ...] = ()
    stamps: Tuple[Stamp, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.orders and not self.stamps


class OrderStore:
    """
    In-memory store for orders and their stamps.

    Thread Safety:
        - One threading.Lock guards every read and write
        - Records are immutable; reads return the stored objects directly
        - A patch set is validated and committed under a single lock hold
    """

    def __init__(self):
        """Initialize empty store."""
        self._orders: Dict[str, Order] = {}
        self._stamps: Dict[str, Stamp] = {}
        self._next_sequence = 1
        self._lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def get_stamp(self, stamp_id: str) -> Optional[Stamp]:
        with self._lock:
            return self._stamps.get(stamp_id)

    def stamps_for_order(self, order_id: str) -> List[Stamp]:
        """Stamps of an order in creation order."""
        with self._lock:
            return self._stamps_for(order_id, self._stamps)

    def snapshot(self, order_id: str) -> Tuple[Optional[Order], List[Stamp]]:
        """Order and its stamps read under one lock hold."""
        with self._lock:
            return self._orders.get(order_id), self._stamps_for(order_id, self._stamps)

    def list_orders(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())

    def list_stamps(self) -> List[Stamp]:
        with self._lock:
            return sorted(self._stamps.values(), key=lambda stamp: stamp.sequence)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def put_order(self, order: Order) -> Order:
        """Insert or replace an order header."""
        with self._lock:
            self._orders[order.id] = order
            logger.debug(f"Stored order {order.id[:8]}")
            return order

    def put_stamp(self, stamp: Stamp) -> Stamp:
        """
        Insert or replace a stamp.

        New stamps get the next creation sequence number.

        Raises:
            RecordNotFoundError: The stamp's order does not exist
        """
        with self._lock:
            if stamp.order_id not in self._orders:
                raise RecordNotFoundError("order", stamp.order_id)

            existing = self._stamps.get(stamp.id)
            if existing is not None:
                stamp = stamp.with_changes(sequence=existing.sequence)
            elif not stamp.sequence:
                stamp = stamp.with_changes(sequence=self._next_sequence)
            self._next_sequence = max(self._next_sequence, stamp.sequence) + 1

            self._stamps[stamp.id] = stamp
            logger.debug(f"Stored stamp {stamp.id[:8]} (order {stamp.order_id[:8]})")
            return stamp

    def apply(self, patches: Iterable[Patch]) -> Commit:
        """
        Apply a patch set as one unit.

        Args:
            patches: Ordered patches (parent-first)

        Returns:
            Commit with every record that changed

        Raises:
            PatchApplicationError: A target or field is unknown; nothing applied
        """
        patches = tuple(patches)
        if not patches:
            return Commit()

        with self._lock:
            for patch in patches:
                self._validate(patch, len(patches))

            staged_orders: Dict[str, Order] = {}
            staged_stamps: Dict[str, Stamp] = {}
            invalidated: Set[str] = set()

            for patch in patches:
                if patch.target is PatchTarget.STAMP:
                    current = staged_stamps.get(patch.record_id, self._stamps[patch.record_id])
                    if patch.changes:
                        staged_stamps[patch.record_id] = current.with_changes(**patch.changes)
                else:
                    current = staged_orders.get(patch.record_id, self._orders[patch.record_id])
                    if patch.changes:
                        staged_orders[patch.record_id] = current.with_changes(**patch.changes)
                    if patch.invalidate_aggregate:
                        invalidated.add(patch.record_id)

            merged_stamps = {**self._stamps, **staged_stamps}
            for order_id in invalidated:
                order = staged_orders.get(order_id, self._orders[order_id])
                refreshed = self._refresh_totals(order, self._stamps_for(order_id, merged_stamps))
                if refreshed is not order:
                    staged_orders[order_id] = refreshed

            self._orders.update(staged_orders)
            self._stamps.update(staged_stamps)

            logger.debug(
                f"Applied {len(patches)} patches: {len(staged_orders)} orders, "
                f"{len(staged_stamps)} stamps"
            )
            return Commit(tuple(staged_orders.values()), tuple(staged_stamps.values()))

    def delete_order(self, order_id: str) -> int:
        """
        Delete an order and every stamp it owns.

        Returns:
            Number of stamps removed

        Raises:
            RecordNotFoundError: Unknown order id
        """
        with self._lock:
            if order_id not in self._orders:
                raise RecordNotFoundError("order", order_id)
            del self._orders[order_id]
            stamp_ids = [sid for sid, stamp in self._stamps.items() if stamp.order_id == order_id]
            for stamp_id in stamp_ids:
                del self._stamps[stamp_id]
            logger.info(f"Deleted order {order_id[:8]} with {len(stamp_ids)} stamps")
            return len(stamp_ids)

    def delete_stamp(self, stamp_id: str) -> Stamp:
        """
        Delete one stamp; its order stays and its totals are recomputed.

        Raises:
            RecordNotFoundError: Unknown stamp id
        """
        with self._lock:
            stamp = self._stamps.pop(stamp_id, None)
            if stamp is None:
                raise RecordNotFoundError("stamp", stamp_id)

            order = self._orders.get(stamp.order_id)
            if order is not None:
                remaining = self._stamps_for(order.id, self._stamps)
                self._orders[order.id] = self._refresh_totals(order, remaining)
            logger.info(f"Deleted stamp {stamp_id[:8]} from order {stamp.order_id[:8]}")
            return stamp

    def clear(self) -> int:
        """
        Remove every order and stamp.

        Returns:
            Number of orders removed
        """
        with self._lock:
            count = len(self._orders)
            self._orders.clear()
            self._stamps.clear()
            logger.info(f"Cleared {count} orders from store")
            return count

    # -------------------------------------------------------------------------
    # Internals (call with the lock held)
    # -------------------------------------------------------------------------

    def _validate(self, patch: Patch, patch_count: int) -> None:
        if patch.target is PatchTarget.STAMP:
            known, allowed = self._stamps, _STAMP_FIELDS
        else:
            known, allowed = self._orders, _ORDER_FIELDS

        if patch.record_id not in known:
            raise PatchApplicationError(
                f"{patch.target.value} {patch.record_id} does not exist",
                failed_patch=patch.to_dict(),
                patch_count=patch_count,
            )

        unknown = sorted(set(patch.changes) - allowed)
        if unknown:
            raise PatchApplicationError(
                f"unknown {patch.target.value} fields: {', '.join(unknown)}",
                failed_patch=patch.to_dict(),
                patch_count=patch_count,
            )

    @staticmethod
    def _stamps_for(order_id: str, stamps: Dict[str, Stamp]) -> List[Stamp]:
        return sorted(
            (stamp for stamp in stamps.values() if stamp.order_id == order_id),
            key=lambda stamp: stamp.sequence,
        )

    @staticmethod
    def _refresh_totals(order: Order, stamps: List[Stamp]) -> Order:
        """Cached value/deposit and the order sale summary, from ``stamps``."""
        total_value = sum(stamp.value for stamp in stamps)
        total_deposit = sum(stamp.deposit for stamp in stamps)
        sale_states = {stamp.sale_state for stamp in stamps}
        sale_state = sale_states.pop() if len(sale_states) == 1 else order.sale_state

        if (order.cached_value == total_value and order.cached_deposit == total_deposit
                and order.sale_state is sale_state):
            return order
        return order.with_changes(
            cached_value=total_value,
            cached_deposit=total_deposit,
            sale_state=sale_state,
        )
