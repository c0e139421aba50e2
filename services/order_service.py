"""
Order service: the one place that combines the rule engines with storage.

Every state change follows the same path:

    1. read the order and all its stamps in one snapshot
    2. ask the transition engine for a verdict
    3. on Accepted, hand the complete patch set to the store in one call
    4. on Rejected, write nothing and return the rejection

Direct edits (value, deposit, notes, dimensions, header fields) skip the
engine but still go through ``OrderStore.apply`` so cached totals stay in
step with the stamps.

Usage:
    service = OrderService(store, shipping_table, app.config)

    order = service.create_order({"customer": {...}, "stamps": [{...}]})
    result = service.change_state(stamp_id, "sale_state", "TRANSFERIDO")
    if not result.accepted:
        show(result.reason)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import bleach

from config import Config
from core.exceptions import InvalidFieldEditError, RecordNotFoundError
from logging_config import get_logger, get_order_logger
from models.order import Customer, Order, OrderSummary, ShippingSelection, Task
from models.patch import Accepted, Patch, Rejected, TransitionField
from models.stamp import Stamp, StampFiles
from models.states import StampType, TaskStatus, coerce
from modules.aggregation import aggregate, fabrication_counts
from modules.balance import (
    Balance,
    ShippingCostTable,
    ShippingQuote,
    options_from_config,
    order_remaining,
    stamp_quotes,
    stamp_remaining,
)
from modules.ranking import (
    SortCriterion,
    parse_criteria,
    priority_order_from_config,
    sort_orders,
    sort_queue,
)
from modules.transitions import (
    apply_transition,
    can_change_sale_state,
    can_change_shipping_state,
)

from .order_store import OrderStore


# Module logger
logger = get_logger(__name__)

# Stamp fields a direct edit may touch. Everything guarded goes through
# change_state().
EDITABLE_STAMP_FIELDS = (
    "design_name",
    "width_mm",
    "height_mm",
    "stamp_type",
    "value",
    "deposit",
    "notes",
    "deadline",
    "files",
)

EDITABLE_ORDER_FIELDS = (
    "customer",
    "shipping",
    "order_date",
    "taken_by",
    "deadline",
)

_MONEY_FIELDS = ("value", "deposit")
_NUMBER_FIELDS = ("width_mm", "height_mm", "value", "deposit")

MAX_TEXT_LENGTH = 200


def _sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """Sanitize user input text."""
    if not text:
        return ""
    text = str(text).strip()
    text = bleach.clean(text, tags=[], strip=True)
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderService:
    """
    Business operations over orders and stamps.

    Attributes:
        store: Backing OrderStore
        shipping_table: Active shipping prices
    """

    def __init__(
        self,
        store: Optional[OrderStore] = None,
        shipping_table: Optional[ShippingCostTable] = None,
        config: Any = None,
    ):
        """
        Initialize the service.

        Args:
            store: OrderStore to use (a fresh one if None)
            shipping_table: Shipping prices (empty table if None)
            config: Config class or Flask ``app.config`` mapping
        """
        config = config if config is not None else Config
        get = config.get if isinstance(config, dict) else lambda key, default=None: getattr(config, key, default)

        self.store = store if store is not None else OrderStore()
        self.shipping_table = shipping_table if shipping_table is not None else ShippingCostTable()
        self._balance_options = options_from_config(config)
        self._priority_order = priority_order_from_config(config)
        self._max_notes_length = int(get("MAX_NOTES_LENGTH", 1000))

        logger.info(
            f"OrderService initialized ({len(self.shipping_table)} shipping prices, "
            f"policy {self._balance_options['policy'].value})"
        )

    @property
    def priority_order(self) -> List[str]:
        return list(self._priority_order)

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_order(self, data: Mapping[str, Any]) -> Order:
        """
        Create an order with its stamps.

        New stamps always start NOT_STARTED / DEPOSITED / NO_SHIPMENT without
        priority, whatever the payload says.

        Args:
            data: {"customer": {...}, "shipping": {...}, "order_date", "taken_by",
                "deadline", "stamps": [{...}, ...]}

        Returns:
            The stored order (cached totals filled in)

        Raises:
            InvalidFieldEditError: No stamps, or a malformed field
        """
        stamp_payloads = data.get("stamps") or []
        if not stamp_payloads:
            raise InvalidFieldEditError("stamps", "an order needs at least one stamp")

        order_id = str(uuid.uuid4())
        order = Order(
            id=order_id,
            customer=self._customer(data.get("customer") or {}),
            order_date=data.get("order_date") or datetime.now(timezone.utc).date().isoformat(),
            taken_by=_sanitize_text(data.get("taken_by"), MAX_TEXT_LENGTH) or None,
            shipping=self._shipping_selection(data.get("shipping") or {}),
            deadline=data.get("deadline") or None,
        )
        stamps = [self._new_stamp(order_id, payload) for payload in stamp_payloads]

        self.store.put_order(order)
        for stamp in stamps:
            self.store.put_stamp(stamp)
        self.store.apply([Patch.invalidation(order_id)])

        get_order_logger(order_id).info(f"Order created with {len(stamps)} stamps")
        return self.get_order(order_id)

    def add_stamp(self, order_id: str, data: Mapping[str, Any]) -> Stamp:
        """Add a stamp to an existing order."""
        order = self.get_order(order_id)
        # New stamps carry the replica of the order-level shipping state
        stamp = self.store.put_stamp(
            self._new_stamp(order.id, data).with_changes(shipping_state=order.shipping_state)
        )
        self.store.apply([Patch.invalidation(order.id)])

        get_order_logger(order_id).info(f"Stamp {stamp.id[:8]} added")
        return self.get_stamp(stamp.id)

    def add_task(self, order_id: str, data: Mapping[str, Any]) -> Task:
        """Attach a to-do to an order."""
        order = self.get_order(order_id)
        title = _sanitize_text(data.get("title"), MAX_TEXT_LENGTH)
        if not title:
            raise InvalidFieldEditError("title", "a task needs a title")

        task = Task(
            id=str(uuid.uuid4()),
            order_id=order.id,
            title=title,
            description=_sanitize_text(data.get("description"), self._max_notes_length) or None,
            created_at=_now(),
            due_date=data.get("due_date") or None,
        )
        self.store.apply([Patch.for_order(order.id, tasks=order.tasks + (task,))])
        get_order_logger(order_id).info(f"Task {task.id[:8]} added: {title}")
        return task

    # =========================================================================
    # STATE CHANGES
    # =========================================================================

    def change_state(self, stamp_id: str, field: Any, value: Any) -> Union[Accepted, Rejected]:
        """
        Run a guarded state change through the transition engine.

        Args:
            stamp_id: Stamp to change
            field: TransitionField or one of its names / synonyms
            value: Requested value

        Returns:
            Accepted (already committed) or Rejected (nothing written)

        Raises:
            RecordNotFoundError: Unknown stamp id
            PatchApplicationError: Store refused the patch set
        """
        stamp = self.get_stamp(stamp_id)
        _, stamps = self.store.snapshot(stamp.order_id)
        siblings = [s for s in stamps if s.id != stamp.id]

        result = apply_transition(stamp, field, value, siblings)
        order_logger = get_order_logger(stamp.order_id)

        if isinstance(result, Rejected):
            order_logger.info(f"Stamp {stamp_id[:8]}: {result.code.value} - {result.reason}")
            return result

        if result.patches:
            self.store.apply(result.patches)
            order_logger.info(
                f"Stamp {stamp_id[:8]}: {result.field.value} -> {value!r} "
                f"({len(result.side_effects)} side effects)"
            )
        return result

    # =========================================================================
    # DIRECT EDITS
    # =========================================================================

    def edit_stamp(self, stamp_id: str, changes: Mapping[str, Any]) -> Stamp:
        """
        Edit unguarded stamp fields.

        Raises:
            InvalidFieldEditError: Guarded, unknown or malformed field
            RecordNotFoundError: Unknown stamp id
        """
        stamp = self.get_stamp(stamp_id)
        updates: Dict[str, Any] = {}

        for name, raw in changes.items():
            if name not in EDITABLE_STAMP_FIELDS:
                if TransitionField.parse(name) is not None:
                    raise InvalidFieldEditError(name, "state fields change through transitions")
                raise InvalidFieldEditError(name, "unknown stamp field")
            updates[name] = self._stamp_field_value(name, raw)

        if not updates:
            return stamp

        patches = [Patch.for_stamp(stamp.id, **updates)]
        if any(name in _MONEY_FIELDS for name in updates):
            patches.append(Patch.invalidation(stamp.order_id))
        self.store.apply(patches)

        get_order_logger(stamp.order_id).info(
            f"Stamp {stamp_id[:8]} edited: {', '.join(sorted(updates))}"
        )
        return self.get_stamp(stamp_id)

    def edit_order(self, order_id: str, changes: Mapping[str, Any]) -> Order:
        """
        Edit order header fields.

        ``customer`` and ``shipping`` are merged into the current values.

        Raises:
            InvalidFieldEditError: Guarded or unknown field
            RecordNotFoundError: Unknown order id
        """
        order = self.get_order(order_id)
        updates: Dict[str, Any] = {}

        for name, raw in changes.items():
            if name == "customer":
                merged = {**order.customer.to_dict(), **(raw or {})}
                updates[name] = self._customer(merged)
            elif name == "shipping":
                merged = {**order.shipping.to_dict(), **(raw or {})}
                updates[name] = self._shipping_selection(merged)
            elif name == "taken_by":
                updates[name] = _sanitize_text(raw, MAX_TEXT_LENGTH) or None
            elif name in EDITABLE_ORDER_FIELDS:
                updates[name] = raw or None
            elif name == "shipping_state":
                raise InvalidFieldEditError(name, "shipping state changes through a stamp transition")
            else:
                raise InvalidFieldEditError(name, "unknown order field")

        if updates:
            self.store.apply([Patch.for_order(order.id, **updates)])
            get_order_logger(order_id).info(f"Order edited: {', '.join(sorted(updates))}")
        return self.get_order(order_id)

    def set_task_status(self, order_id: str, task_id: str, status: Any) -> Task:
        """Move a task to PENDING / IN_PROGRESS / COMPLETED."""
        order = self.get_order(order_id)
        new_status = coerce(TaskStatus, status)
        if new_status is None:
            raise InvalidFieldEditError("status", f"unknown task status {status!r}")

        tasks = list(order.tasks)
        for index, task in enumerate(tasks):
            if task.id == task_id:
                completed_at = _now() if new_status is TaskStatus.COMPLETED else None
                updated = Task(
                    id=task.id,
                    order_id=task.order_id,
                    title=task.title,
                    description=task.description,
                    status=new_status,
                    created_at=task.created_at,
                    completed_at=completed_at,
                    due_date=task.due_date,
                )
                tasks[index] = updated
                self.store.apply([Patch.for_order(order.id, tasks=tuple(tasks))])
                return updated

        raise RecordNotFoundError("task", task_id)

    # =========================================================================
    # DELETE
    # =========================================================================

    def delete_order(self, order_id: str) -> int:
        """Delete an order and its stamps. Returns the number of stamps removed."""
        removed = self.store.delete_order(order_id)
        get_order_logger(order_id).info(f"Order deleted ({removed} stamps)")
        return removed

    def delete_stamp(self, stamp_id: str) -> Stamp:
        """Delete one stamp. The order stays, even when it is left empty."""
        stamp = self.store.delete_stamp(stamp_id)
        get_order_logger(stamp.order_id).info(f"Stamp {stamp_id[:8]} deleted")
        return stamp

    # =========================================================================
    # READS
    # =========================================================================

    def get_order(self, order_id: str) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise RecordNotFoundError("order", order_id)
        return order

    def get_stamp(self, stamp_id: str) -> Stamp:
        stamp = self.store.get_stamp(stamp_id)
        if stamp is None:
            raise RecordNotFoundError("stamp", stamp_id)
        return stamp

    def get_stamps(self, order_id: str) -> List[Stamp]:
        self.get_order(order_id)
        return self.store.stamps_for_order(order_id)

    def get_summary(self, order_id: str) -> OrderSummary:
        """
        Raises:
            RecordNotFoundError: Unknown order id
            InconsistentAggregateInputError: Order has no stamps
        """
        order, stamps = self._snapshot(order_id)
        return aggregate(order, stamps)

    def shipping_quote(self, order: Order) -> ShippingQuote:
        return self.shipping_table.quote(order.shipping)

    def get_balance(self, order_id: str, stamp_id: Optional[str] = None) -> Balance:
        """
        Remaining balance of an order, or of one of its stamps.

        Stamp balances use the split from ``stamp_quotes`` so they add up to
        the order balance.
        """
        order, stamps = self._snapshot(order_id)
        quote = self.shipping_quote(order)

        if stamp_id is None:
            return order_remaining(order, stamps, quote, **self._balance_options)

        shares = stamp_quotes(stamps, quote)
        for stamp in stamps:
            if stamp.id == stamp_id:
                return stamp_remaining(stamp, shares[stamp.id], **self._balance_options)
        raise RecordNotFoundError("stamp", stamp_id)

    def describe_order(self, order_id: str) -> Dict[str, Any]:
        """Order header, stamps, summary and balance as one JSON-ready dict."""
        order, stamps = self._snapshot(order_id)
        quote = self.shipping_quote(order)

        view = order.to_dict()
        view["stamps"] = [self.describe_stamp(stamp) for stamp in stamps]
        view["summary"] = aggregate(order, stamps).to_dict() if stamps else None
        view["balance"] = order_remaining(order, stamps, quote, **self._balance_options).to_dict()
        view["shipping_quote"] = quote.to_dict()
        view["can_change_shipping"] = can_change_shipping_state(stamps)
        return view

    def production_queue(
        self,
        criteria: Any = None,
        fabrication_states: Optional[Iterable[Any]] = None,
    ) -> List[Stamp]:
        """
        Every stamp in production order.

        Args:
            criteria: Secondary criteria (query string, list or SortCriterion list)
            fabrication_states: Only include stamps in these states

        Raises:
            ValueError: Malformed criteria
        """
        stamps = self.store.list_stamps()
        if fabrication_states:
            wanted = {str(state).casefold() for state in fabrication_states}
            stamps = [
                s for s in stamps
                if s.fabrication_state.value.casefold() in wanted
                or s.fabrication_state.label.casefold() in wanted
            ]

        open_tasks = {
            order.id: sum(1 for task in order.tasks if task.status is not TaskStatus.COMPLETED)
            for order in self.store.list_orders()
        }
        return sort_queue(stamps, self._priority_order, self._criteria(criteria), open_tasks)

    def order_queue(self, criteria: Any = None) -> List[Tuple[Order, List[Stamp]]]:
        """Orders (with their stamps) sorted by their most urgent stamp."""
        entries = [
            (order, self.store.stamps_for_order(order.id))
            for order in self.store.list_orders()
        ]
        return sort_orders(entries, self._priority_order, self._criteria(criteria))

    def fabrication_counts(self, order_id: Optional[str] = None) -> Dict[str, int]:
        """Stamps per fabrication state, for one order or the whole shop."""
        if order_id is not None:
            return fabrication_counts(self.get_stamps(order_id))
        return fabrication_counts(self.store.list_stamps())

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _snapshot(self, order_id: str) -> Tuple[Order, List[Stamp]]:
        order, stamps = self.store.snapshot(order_id)
        if order is None:
            raise RecordNotFoundError("order", order_id)
        return order, stamps

    @staticmethod
    def describe_stamp(stamp: Stamp) -> Dict[str, Any]:
        """Stamp dict plus whether its sale-state control is enabled."""
        view = stamp.to_dict()
        view["can_change_sale"] = can_change_sale_state(stamp)
        return view

    @staticmethod
    def _criteria(raw: Any) -> List[SortCriterion]:
        if raw and isinstance(raw, list) and all(isinstance(c, SortCriterion) for c in raw):
            return raw
        return parse_criteria(raw)

    def _new_stamp(self, order_id: str, data: Mapping[str, Any]) -> Stamp:
        fields = {
            name: self._stamp_field_value(name, data[name])
            for name in EDITABLE_STAMP_FIELDS
            if name in data
        }
        return Stamp(
            id=str(uuid.uuid4()),
            order_id=order_id,
            created_at=_now(),
            **fields,
        )

    def _stamp_field_value(self, name: str, raw: Any) -> Any:
        if name in _NUMBER_FIELDS:
            try:
                number = float(raw or 0)
            except (TypeError, ValueError):
                raise InvalidFieldEditError(name, f"not a number: {raw!r}")
            if number < 0:
                raise InvalidFieldEditError(name, "must not be negative")
            return number
        if name == "stamp_type":
            stamp_type = coerce(StampType, raw)
            if stamp_type is None:
                raise InvalidFieldEditError(name, f"unknown stamp type {raw!r}")
            return stamp_type
        if name == "files":
            return raw if isinstance(raw, StampFiles) else StampFiles.from_dict(raw)
        if name == "notes":
            return _sanitize_text(raw, self._max_notes_length)
        if name == "design_name":
            return _sanitize_text(raw, MAX_TEXT_LENGTH)
        return raw or None

    @staticmethod
    def _customer(data: Mapping[str, Any]) -> Customer:
        return Customer.from_dict({
            "id": str(data.get("id") or ""),
            "first_name": _sanitize_text(data.get("first_name"), MAX_TEXT_LENGTH),
            "last_name": _sanitize_text(data.get("last_name"), MAX_TEXT_LENGTH),
            "phone_e164": _sanitize_text(data.get("phone_e164"), 32),
            "email": _sanitize_text(data.get("email"), MAX_TEXT_LENGTH) or None,
            "national_id": _sanitize_text(data.get("national_id"), 32) or None,
            "channel": data.get("channel"),
        })

    @staticmethod
    def _shipping_selection(data: Mapping[str, Any]) -> ShippingSelection:
        selection = ShippingSelection.from_dict(dict(data))
        tracking = _sanitize_text(selection.tracking_number, MAX_TEXT_LENGTH) or None
        if tracking == selection.tracking_number:
            return selection
        return ShippingSelection(
            carrier=selection.carrier,
            service=selection.service,
            origin=selection.origin,
            tracking_number=tracking,
        )
