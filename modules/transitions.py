"""
Transition guard engine.

Validates a requested state change on one stamp and, when every guard
passes, returns the updated stamp together with the complete write set
the caller must apply as one unit.

Rules:
    sale state      - only once fabrication is DONE
    shipping state  - only once every stamp of the order is TRANSFERRED;
                      fans out to the order record and every sibling
    priority        - any time; touches nothing else
    Aspire substate - non-null forces SCHEDULED; null reverts to NOT_STARTED
                      (a no-op when no substate is set)
    fabrication     - an explicit change clears the Aspire substate in the
                      same write (both live in one ProductionState)
    machine/program - free-form and independent of each other

The engine is pure: no I/O, no mutation of its inputs. Guard violations
come back as ``Rejected`` values.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple, Union

from logging_config import get_logger
from models.patch import Accepted, GuardCode, Patch, Rejected, TransitionField
from models.stamp import ProductionState, Stamp
from models.states import (
    LEGACY_PRIORITY_DB_VALUE,
    AspireSubstate,
    FabricationState,
    SaleState,
    ShippingState,
    coerce,
    coerce_bool,
)


logger = get_logger(__name__)

TransitionResult = Union[Accepted, Rejected]

_CLEAR_VALUES = (None, "", "none", "null", "—")
_LEGACY_PRIORITY_VALUES = {LEGACY_PRIORITY_DB_VALUE.casefold(), "prioridad", "priority"}


# =============================================================================
# PUBLIC API
# =============================================================================

def apply_transition(
    stamp: Stamp,
    field: Any,
    requested: Any,
    siblings: Iterable[Stamp] = (),
) -> TransitionResult:
    """
    Apply a requested change to ``stamp``.

    Args:
        stamp: Stamp being edited
        field: TransitionField (or its name / value / UI synonym)
        requested: New value for the field
        siblings: Other stamps of the same order. Required for shipping
            changes, which are gated on and fanned out to the whole order.

    Returns:
        Accepted with the new stamp and ordered patches, or Rejected
    """
    parsed = TransitionField.parse(field)
    if parsed is None:
        return _reject(stamp, None, requested, GuardCode.UNKNOWN_FIELD,
                       f"'{field}' is not a guarded field")

    handler = _HANDLERS[parsed]
    result = handler(stamp, parsed, requested, tuple(siblings))

    if result.accepted:
        logger.debug(
            f"Stamp {stamp.id}: {parsed.value} -> {requested!r} accepted "
            f"({len(result.patches)} patches)"
        )
    else:
        logger.info(f"Stamp {stamp.id}: {parsed.value} -> {requested!r} rejected: {result.reason}")
    return result


def can_change_sale_state(stamp: Stamp) -> bool:
    """Whether a sale-state control should be enabled for ``stamp``."""
    return stamp.fabrication_state is FabricationState.DONE


def can_change_shipping_state(stamps: Sequence[Stamp]) -> bool:
    """Whether the shipping-state control of an order should be enabled."""
    return bool(stamps) and all(s.sale_state is SaleState.TRANSFERRED for s in stamps)


# =============================================================================
# PRODUCTION (FABRICATION + ASPIRE)
# =============================================================================

def _set_fabrication(stamp: Stamp, field: TransitionField, requested: Any,
                     siblings: Tuple[Stamp, ...]) -> TransitionResult:
    state = coerce(FabricationState, requested)
    if state is None:
        if isinstance(requested, str) and requested.strip().casefold() in _LEGACY_PRIORITY_VALUES:
            return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                           "priority is a separate flag, not a fabrication state")
        return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                       f"unknown fabrication state {requested!r}")

    # An explicit choice always drops the Aspire substate, SCHEDULED included
    return _commit_production(stamp, field, ProductionState(state))


def _set_aspire(stamp: Stamp, field: TransitionField, requested: Any,
                siblings: Tuple[Stamp, ...]) -> TransitionResult:
    if _is_clear(requested):
        if stamp.aspire_substate is None:
            return Accepted(stamp, field, ())
        return _commit_production(stamp, field, ProductionState(FabricationState.NOT_STARTED))

    aspire = coerce(AspireSubstate, requested) or AspireSubstate.from_rank_key(requested)
    if aspire is None:
        return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                       f"unknown Aspire substate {requested!r}")
    return _commit_production(stamp, field, ProductionState.scheduled(aspire))


def _set_production(stamp: Stamp, field: TransitionField, requested: Any,
                    siblings: Tuple[Stamp, ...]) -> TransitionResult:
    production: Optional[ProductionState]
    if isinstance(requested, Mapping):
        production = _production_from_mapping(requested)
    else:
        production = ProductionState.from_rank_key(requested)

    if production is None:
        return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                       f"unknown production state {requested!r}")
    return _commit_production(stamp, field, production)


def _production_from_mapping(data: Mapping) -> Optional[ProductionState]:
    raw_aspire = data.get("aspire_substate")
    if not _is_clear(raw_aspire):
        aspire = coerce(AspireSubstate, raw_aspire) or AspireSubstate.from_rank_key(raw_aspire)
        return ProductionState.scheduled(aspire) if aspire else None

    raw_fabrication = data.get("fabrication_state")
    if raw_fabrication is None:
        return ProductionState(FabricationState.NOT_STARTED)
    fabrication = coerce(FabricationState, raw_fabrication)
    return ProductionState(fabrication) if fabrication else None


def _commit_production(stamp: Stamp, field: TransitionField,
                       production: ProductionState) -> Accepted:
    if production == stamp.production:
        return Accepted(stamp, field, ())

    updated = stamp.with_changes(production=production)
    patches = (
        Patch.for_stamp(stamp.id, production=production),
        Patch.invalidation(stamp.order_id),
    )
    return Accepted(updated, field, patches)


# =============================================================================
# SALE / SHIPPING
# =============================================================================

def _set_sale(stamp: Stamp, field: TransitionField, requested: Any,
              siblings: Tuple[Stamp, ...]) -> TransitionResult:
    state = coerce(SaleState, requested)
    if state is None:
        return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                       f"unknown sale state {requested!r}")

    if not can_change_sale_state(stamp):
        return _reject(
            stamp, field, requested, GuardCode.FABRICATION_INCOMPLETE,
            f"fabrication is {stamp.fabrication_state.label}, sale state needs "
            f"{FabricationState.DONE.label}",
        )

    if state is stamp.sale_state:
        return Accepted(stamp, field, ())

    updated = stamp.with_changes(sale_state=state)
    patches = (
        Patch.for_stamp(stamp.id, sale_state=state),
        Patch.invalidation(stamp.order_id),
    )
    return Accepted(updated, field, patches)


def _set_shipping(stamp: Stamp, field: TransitionField, requested: Any,
                  siblings: Tuple[Stamp, ...]) -> TransitionResult:
    state = coerce(ShippingState, requested)
    if state is None:
        return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                       f"unknown shipping state {requested!r}")

    foreign = [s.id for s in siblings if s.order_id != stamp.order_id]
    if foreign:
        return _reject(stamp, field, requested, GuardCode.FOREIGN_SIBLING,
                       f"stamps {', '.join(foreign)} belong to another order")

    order_stamps = _order_stamps(stamp, siblings)
    unpaid = [s.id for s in order_stamps if s.sale_state is not SaleState.TRANSFERRED]
    if unpaid:
        return _reject(
            stamp, field, requested, GuardCode.PAYMENT_NOT_CONFIRMED,
            f"payment not confirmed for stamps {', '.join(unpaid)}; shipping "
            f"changes apply to the whole order",
        )

    # Order record first (source of truth), then every replica
    patches = [Patch.for_order(stamp.order_id, shipping_state=state)]
    patches.extend(Patch.for_stamp(s.id, shipping_state=state) for s in order_stamps)
    patches.append(Patch.invalidation(stamp.order_id))

    updated = stamp.with_changes(shipping_state=state)
    return Accepted(updated, field, tuple(patches))


def _order_stamps(stamp: Stamp, siblings: Tuple[Stamp, ...]) -> Tuple[Stamp, ...]:
    """Requested stamp first, then siblings in caller order, without duplicates."""
    seen = {stamp.id}
    result = [stamp]
    for sibling in siblings:
        if sibling.id not in seen:
            seen.add(sibling.id)
            result.append(sibling)
    return tuple(result)


# =============================================================================
# ORTHOGONAL FIELDS
# =============================================================================

def _set_priority(stamp: Stamp, field: TransitionField, requested: Any,
                  siblings: Tuple[Stamp, ...]) -> TransitionResult:
    flag = coerce_bool(requested)
    if flag is None:
        return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                       f"priority must be true or false, got {requested!r}")
    if flag == stamp.is_priority:
        return Accepted(stamp, field, ())

    updated = stamp.with_changes(is_priority=flag)
    patches = (
        Patch.for_stamp(stamp.id, is_priority=flag),
        Patch.invalidation(stamp.order_id),
    )
    return Accepted(updated, field, patches)


def _set_free_text(attribute: str) -> Callable[..., TransitionResult]:
    """Handler for machine / program: free-form, touches only ``attribute``."""

    def handler(stamp: Stamp, field: TransitionField, requested: Any,
                siblings: Tuple[Stamp, ...]) -> TransitionResult:
        if requested is not None and not isinstance(requested, str):
            return _reject(stamp, field, requested, GuardCode.UNKNOWN_VALUE,
                           f"{attribute} must be text or null")
        value = requested.strip() if isinstance(requested, str) else None
        value = value or None

        if value == getattr(stamp, attribute):
            return Accepted(stamp, field, ())

        updated = stamp.with_changes(**{attribute: value})
        return Accepted(updated, field, (Patch.for_stamp(stamp.id, **{attribute: value}),))

    return handler


# =============================================================================
# HELPERS
# =============================================================================

def _is_clear(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().casefold() in _CLEAR_VALUES
    return raw is None


def _reject(stamp: Stamp, field: Optional[TransitionField], requested: Any,
            code: GuardCode, reason: str) -> Rejected:
    return Rejected(stamp_id=stamp.id, field=field, requested=requested, code=code, reason=reason)


_HANDLERS: Dict[TransitionField, Callable[..., TransitionResult]] = {
    TransitionField.FABRICATION_STATE: _set_fabrication,
    TransitionField.SALE_STATE: _set_sale,
    TransitionField.SHIPPING_STATE: _set_shipping,
    TransitionField.PRIORITY: _set_priority,
    TransitionField.ASPIRE_SUBSTATE: _set_aspire,
    TransitionField.PRODUCTION: _set_production,
    TransitionField.MACHINE: _set_free_text("machine"),
    TransitionField.PROGRAM: _set_free_text("program"),
}
