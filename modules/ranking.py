"""
Production queue ranking.

Stamps are ordered by the position of their rank key in a configurable
priority list, then by an ordered list of secondary criteria. The first
criterion that tells two stamps apart wins; stamps that tie on every
criterion keep their input order (``sorted`` is stable).

Rank keys:
    "SIN_HACER", "HACIENDO", ...      fabrication state
    "ASPIRE_Aspire_G", ...            Aspire substate (when set)

Default priority list:
    SIN_HACER, ASPIRE_* (in ASPIRE_SUBSTATE_ORDER), HACIENDO, REHACER,
    RETOCAR, VERIFICAR, HECHO, PROGRAMADO

Keys missing from the list rank after every listed key.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from config import Config
from logging_config import get_logger
from models.order import Order
from models.stamp import ProductionState, Stamp
from models.states import (
    FABRICATION_PROGRESS,
    AspireSubstate,
    FabricationState,
    SaleState,
    ShippingState,
    StampType,
    TaskStatus,
)


logger = get_logger(__name__)

Comparator = Callable[[Stamp, Stamp], int]
OrderEntry = Tuple[Order, Sequence[Stamp]]


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"


class SortField(Enum):
    """Secondary sort fields for the production and order views."""

    CREATED = "created"
    DESIGN = "design"
    STAMP_TYPE = "stamp_type"
    AREA = "area"
    FABRICATION = "fabrication"
    SALE = "sale"
    SHIPPING = "shipping"
    ASPIRE = "aspire"
    PROGRAM = "program"
    MACHINE = "machine"
    VECTORIZED = "vectorized"
    VALUE = "value"
    REMAINING = "remaining"
    DEADLINE = "deadline"
    PRIORITY = "priority"
    TASKS = "tasks"
    """Open tasks on the stamp's order."""

    CUSTOMER = "customer"
    """Order views only."""

    @classmethod
    def parse(cls, raw: Any) -> Optional["SortField"]:
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return None
        key = raw.strip().casefold()
        try:
            return cls(key)
        except ValueError:
            return _FIELD_SYNONYMS.get(key)


# Column ids used by the production and order tables
_FIELD_SYNONYMS: Dict[str, SortField] = {
    "fecha": SortField.CREATED,
    "tarea": SortField.TASKS,
    "tipo": SortField.STAMP_TYPE,
    "disenio": SortField.DESIGN,
    "diseno": SortField.DESIGN,
    "medida": SortField.AREA,
    "fabricacion": SortField.FABRICATION,
    "vectorizado": SortField.VECTORIZED,
    "programa": SortField.PROGRAM,
    "aspire": SortField.ASPIRE,
    "maquina": SortField.MACHINE,
    "cliente": SortField.CUSTOMER,
    "venta": SortField.SALE,
    "envio": SortField.SHIPPING,
    "valor": SortField.VALUE,
    "restante": SortField.REMAINING,
    "fecha_limite": SortField.DEADLINE,
    "prioridad": SortField.PRIORITY,
}


@dataclass(frozen=True)
class SortCriterion:
    field: SortField
    direction: SortDirection = SortDirection.ASC

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field.value, "dir": self.direction.value}


# =============================================================================
# PRIORITY LISTS
# =============================================================================

def default_priority_order(aspire_order: Optional[Iterable[Any]] = None) -> List[str]:
    """
    Default rank-key list.

    Args:
        aspire_order: Aspire substates (values or keys) in queue order.
            Defaults to declaration order.
    """
    if aspire_order is None:
        aspire_keys = [aspire.rank_key for aspire in AspireSubstate]
    else:
        aspire_keys = _normalize_keys(aspire_order)

    return [
        FabricationState.NOT_STARTED.rank_key,
        *aspire_keys,
        FabricationState.IN_PROGRESS.rank_key,
        FabricationState.REDO.rank_key,
        FabricationState.RETOUCH.rank_key,
        FabricationState.VERIFY.rank_key,
        FabricationState.DONE.rank_key,
        FabricationState.SCHEDULED.rank_key,
    ]


def priority_order_from_config(config: Any = Config) -> List[str]:
    """Read PRODUCTION_PRIORITY_ORDER, falling back to the default list."""
    get = config.get if isinstance(config, dict) else lambda key, default=None: getattr(config, key, default)

    explicit = get("PRODUCTION_PRIORITY_ORDER", None) or []
    if explicit:
        return _normalize_keys(explicit)
    return default_priority_order(get("ASPIRE_SUBSTATE_ORDER", None))


def _normalize_keys(raw_keys: Iterable[Any]) -> List[str]:
    keys: List[str] = []
    for raw in raw_keys:
        production = ProductionState.from_rank_key(raw)
        if production is None:
            logger.warning(f"Ignoring unknown production key in priority list: {raw!r}")
            continue
        if production.rank_key not in keys:
            keys.append(production.rank_key)
    return keys


# =============================================================================
# CRITERIA PARSING
# =============================================================================

def parse_criteria(raw: Any) -> List[SortCriterion]:
    """
    Parse sort criteria.

    Accepts a query string (``"medida:desc,fecha"``), a list of such
    tokens, or a list of ``{"field": ..., "dir": ...}`` dicts.

    Raises:
        ValueError: Unknown field or direction
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        items: Iterable[Any] = [part for part in raw.split(",") if part.strip()]
    else:
        items = raw

    criteria = []
    for item in items:
        if isinstance(item, SortCriterion):
            criteria.append(item)
            continue
        if isinstance(item, Mapping):
            field_name = item.get("field")
            direction_name = item.get("dir") or item.get("direction") or "asc"
        else:
            field_name, _, direction_name = str(item).partition(":")
            direction_name = direction_name or "asc"

        sort_field = SortField.parse(field_name)
        if sort_field is None:
            raise ValueError(f"Unknown sort field: {field_name!r}")
        try:
            direction = SortDirection(str(direction_name).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown sort direction: {direction_name!r}")
        criteria.append(SortCriterion(sort_field, direction))

    return criteria


# =============================================================================
# STAMP COMPARISON
# =============================================================================

def make_comparator(
    priority_order: Optional[Sequence[str]] = None,
    criteria: Sequence[SortCriterion] = (),
    open_tasks: Optional[Mapping[str, int]] = None,
) -> Comparator:
    """
    Build a three-way comparator over stamps.

    Args:
        priority_order: Rank keys, most urgent first (default list if None)
        criteria: Secondary criteria, applied in order
        open_tasks: Open task count per order id (for the TASKS field)

    Returns:
        Function returning -1, 0 or 1
    """
    order = list(priority_order) if priority_order is not None else default_priority_order()
    positions = {key: index for index, key in enumerate(order)}
    unlisted = len(order)
    tasks = open_tasks or {}
    criteria = tuple(criteria)

    def rank(stamp: Stamp) -> int:
        return positions.get(stamp.rank_key, unlisted)

    def comparator(a: Stamp, b: Stamp) -> int:
        result = _cmp(rank(a), rank(b))
        if result:
            return result
        for criterion in criteria:
            result = _cmp(
                _stamp_key(a, criterion.field, tasks),
                _stamp_key(b, criterion.field, tasks),
            )
            if result:
                return -result if criterion.direction is SortDirection.DESC else result
        return 0

    return comparator


def compare(
    a: Stamp,
    b: Stamp,
    priority_order: Optional[Sequence[str]] = None,
    criteria: Sequence[SortCriterion] = (),
) -> int:
    """Compare two stamps. Builds a throwaway comparator; prefer ``make_comparator`` in loops."""
    return make_comparator(priority_order, criteria)(a, b)


def sort_queue(
    stamps: Iterable[Stamp],
    priority_order: Optional[Sequence[str]] = None,
    criteria: Sequence[SortCriterion] = (),
    open_tasks: Optional[Mapping[str, int]] = None,
) -> List[Stamp]:
    """Production queue: stamps sorted most urgent first. Stable."""
    comparator = make_comparator(priority_order, criteria, open_tasks)
    return sorted(stamps, key=cmp_to_key(comparator))


# =============================================================================
# ORDER COMPARISON
# =============================================================================

def order_rank(stamps: Iterable[Stamp], priority_order: Optional[Sequence[str]] = None) -> int:
    """Rank of a (possibly mixed) order: the position of its most urgent stamp."""
    order = list(priority_order) if priority_order is not None else default_priority_order()
    positions = {key: index for index, key in enumerate(order)}
    return min((positions.get(s.rank_key, len(order)) for s in stamps), default=len(order))


def sort_orders(
    entries: Iterable[OrderEntry],
    priority_order: Optional[Sequence[str]] = None,
    criteria: Sequence[SortCriterion] = (),
) -> List[OrderEntry]:
    """
    Order view: (order, stamps) pairs sorted by their most urgent stamp,
    then by ``criteria`` evaluated at order level.
    """
    order = list(priority_order) if priority_order is not None else default_priority_order()
    criteria = tuple(criteria)

    def comparator(a: OrderEntry, b: OrderEntry) -> int:
        result = _cmp(order_rank(a[1], order), order_rank(b[1], order))
        if result:
            return result
        for criterion in criteria:
            result = _cmp(
                _order_key(a[0], a[1], criterion.field),
                _order_key(b[0], b[1], criterion.field),
            )
            if result:
                return -result if criterion.direction is SortDirection.DESC else result
        return 0

    return sorted(entries, key=cmp_to_key(comparator))


# =============================================================================
# SORT KEYS
# =============================================================================

def _stamp_key(stamp: Stamp, field: SortField, open_tasks: Mapping[str, int]) -> Any:
    """Comparable key for one stamp; None sorts last in ascending order."""
    if field is SortField.CREATED:
        return (stamp.created_at or "", stamp.sequence)
    if field is SortField.DESIGN:
        return _text(stamp.design_name)
    if field is SortField.STAMP_TYPE:
        return _index(stamp.stamp_type)
    if field is SortField.AREA:
        return stamp.area_mm2
    if field is SortField.FABRICATION:
        return _index(stamp.fabrication_state)
    if field is SortField.SALE:
        return _index(stamp.sale_state)
    if field is SortField.SHIPPING:
        return _index(stamp.shipping_state)
    if field is SortField.ASPIRE:
        return _index(stamp.aspire_substate)
    if field is SortField.PROGRAM:
        return _text(stamp.program)
    if field is SortField.MACHINE:
        return _text(stamp.machine)
    if field is SortField.VECTORIZED:
        return stamp.is_vectorized
    if field is SortField.VALUE:
        return stamp.value
    if field is SortField.REMAINING:
        return stamp.base_remaining
    if field is SortField.DEADLINE:
        return stamp.deadline or None
    if field is SortField.PRIORITY:
        # Ascending puts flagged stamps first
        return 0 if stamp.is_priority else 1
    if field is SortField.TASKS:
        return open_tasks.get(stamp.order_id, 0)
    return None


def _order_key(order: Order, stamps: Sequence[Stamp], field: SortField) -> Any:
    if field is SortField.CUSTOMER:
        return _text(order.customer.display_name)
    if field is SortField.CREATED:
        return order.order_date or None
    if field is SortField.VALUE:
        return sum(s.value for s in stamps)
    if field is SortField.REMAINING:
        return sum(s.base_remaining for s in stamps)
    if field is SortField.SHIPPING:
        return _index(order.shipping_state)
    if field is SortField.DEADLINE:
        return order.deadline or None
    if field is SortField.PRIORITY:
        return 0 if any(s.is_priority for s in stamps) else 1
    if field is SortField.FABRICATION:
        return min((FABRICATION_PROGRESS[s.fabrication_state] for s in stamps), default=None)
    if field is SortField.TASKS:
        return sum(1 for task in order.tasks if task.status is not TaskStatus.COMPLETED)

    # Stamp-level fields: the smallest key among the order's stamps
    keys = [key for key in (_stamp_key(s, field, {}) for s in stamps) if key is not None]
    return min(keys) if keys else None


def _text(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip().casefold()


_ENUM_POSITIONS: Dict[type, Dict[Enum, int]] = {
    enum_cls: {member: index for index, member in enumerate(enum_cls)}
    for enum_cls in (FabricationState, SaleState, ShippingState, AspireSubstate, StampType)
}


def _index(member: Optional[Enum]) -> Optional[int]:
    """Declaration index of an enum member."""
    if member is None:
        return None
    return _ENUM_POSITIONS[type(member)][member]


def _cmp(a: Any, b: Any) -> int:
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return (a > b) - (a < b)
