"""Order-level projections over an order's stamps."""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Optional, Sequence, TypeVar

from core.exceptions import InconsistentAggregateInputError
from logging_config import get_logger
from models.order import Order, OrderSummary
from models.patch import Patch
from models.stamp import Stamp
from models.states import (
    FABRICATION_PROGRESS,
    FabricationState,
    ProgressStep,
    SaleState,
    ShippingState,
)


logger = get_logger(__name__)

T = TypeVar("T")

# Shipping states that map straight onto a progress step
_SHIPPING_STEPS: Dict[ShippingState, ProgressStep] = {
    ShippingState.TRACKING_SENT: ProgressStep.TRACKING_SENT,
    ShippingState.DISPATCHED: ProgressStep.DISPATCHED,
    ShippingState.LABEL_READY: ProgressStep.LABEL_READY,
    ShippingState.MAKE_LABEL: ProgressStep.MAKE_LABEL,
}


def aggregate(order: Order, stamps: Sequence[Stamp]) -> OrderSummary:
    """
    Build the read-time summary of ``order`` from its stamps.

    Args:
        order: Order header (supplies the shipping state)
        stamps: Every stamp of the order

    Returns:
        OrderSummary

    Raises:
        InconsistentAggregateInputError: No stamps, or a stamp from another order
    """
    if not stamps:
        raise InconsistentAggregateInputError(order.id, "order has no stamps")

    for stamp in stamps:
        if stamp.order_id != order.id:
            logger.error(f"Stamp {stamp.id} belongs to {stamp.order_id}, not {order.id}")
            raise InconsistentAggregateInputError(
                order.id, f"stamp belongs to order {stamp.order_id}", stamp_id=stamp.id
            )

    total_value = sum(stamp.value or 0.0 for stamp in stamps)
    total_deposit = sum(stamp.deposit or 0.0 for stamp in stamps)

    fabrication_summary = _unanimous(stamp.fabrication_state for stamp in stamps)
    sale_summary = _unanimous(stamp.sale_state for stamp in stamps)

    return OrderSummary(
        order_id=order.id,
        item_count=len(stamps),
        total_value=total_value,
        total_deposit=total_deposit,
        total_remaining=total_value - total_deposit,
        has_priority=any(stamp.is_priority for stamp in stamps),
        fabrication_summary=fabrication_summary,
        least_advanced_state=least_advanced_state(stamps),
        sale_summary=sale_summary,
        shipping_state=order.shipping_state,
        shipping_in_sync=all(s.shipping_state is order.shipping_state for s in stamps),
        progress_step=progress_step(order.shipping_state, sale_summary, fabrication_summary),
        stamp_ids=tuple(stamp.id for stamp in stamps),
    )


def least_advanced_state(stamps: Iterable[Stamp]) -> FabricationState:
    """Fabrication state of the stamp furthest from DONE."""
    return min(
        (stamp.fabrication_state for stamp in stamps),
        key=lambda state: FABRICATION_PROGRESS[state],
        default=FabricationState.NOT_STARTED,
    )


def progress_step(
    shipping_state: ShippingState,
    sale_summary: Optional[SaleState],
    fabrication_summary: Optional[FabricationState],
) -> Optional[ProgressStep]:
    """
    Single step shown in the order progress indicator.

    Shipping wins over payment, payment over fabrication. Mixed
    summaries (None) never produce a step of their own.
    """
    step = _SHIPPING_STEPS.get(shipping_state)
    if step is not None:
        return step
    if sale_summary is SaleState.TRANSFERRED:
        return ProgressStep.TRANSFERRED
    if sale_summary is SaleState.PHOTO_SENT:
        return ProgressStep.PHOTO
    if fabrication_summary is FabricationState.DONE:
        return ProgressStep.DONE
    return None


def fabrication_counts(stamps: Iterable[Stamp]) -> Dict[str, int]:
    """
    Count stamps per fabrication state for the header chips.

    Every state is present in the result (zero when unused), in
    declaration order.
    """
    counter = Counter(stamp.fabrication_state for stamp in stamps)
    return {state.value: counter.get(state, 0) for state in FabricationState}


def cached_totals_patch(order: Order, summary: OrderSummary) -> Optional[Patch]:
    """
    Order patch that aligns the cached totals with ``summary``.

    Returns None when the cached figures already match.
    """
    if (order.cached_value == summary.total_value
            and order.cached_deposit == summary.total_deposit):
        return None
    return Patch.for_order(
        order.id,
        cached_value=summary.total_value,
        cached_deposit=summary.total_deposit,
    )


def _unanimous(values: Iterable[T]) -> Optional[T]:
    distinct = set(values)
    if len(distinct) == 1:
        return distinct.pop()
    return None
