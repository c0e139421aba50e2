"""
Unit tests for order aggregation.
"""

import pytest

from core.exceptions import InconsistentAggregateInputError
from models.order import Order
from models.stamp import ProductionState, Stamp
from models.states import (
    AspireSubstate,
    FabricationState,
    ProgressStep,
    SaleState,
    ShippingState,
)
from modules.aggregation import (
    aggregate,
    cached_totals_patch,
    fabrication_counts,
    least_advanced_state,
    progress_step,
)


# Fixtures

@pytest.fixture
def order():
    return Order(id="order-1")


def make_stamp(stamp_id, fabrication=FabricationState.NOT_STARTED, **changes):
    return Stamp(
        id=stamp_id,
        order_id=changes.pop("order_id", "order-1"),
        production=ProductionState(fabrication),
        **changes,
    )


# Tests for aggregate()

class TestAggregate:
    """Order summary derived from stamps."""

    def test_totals(self, order):
        """Test value, deposit and pre-shipping remaining are summed."""
        stamps = [
            make_stamp("a", value=2000, deposit=700),
            make_stamp("b", value=1500, deposit=500),
        ]

        summary = aggregate(order, stamps)

        assert summary.item_count == 2
        assert summary.total_value == 3500
        assert summary.total_deposit == 1200
        assert summary.total_remaining == 2300
        assert summary.stamp_ids == ("a", "b")

    def test_single_stamp_inherits_states(self, order):
        """Test a one-stamp order shows that stamp's states directly."""
        stamp = make_stamp("a", FabricationState.VERIFY, sale_state=SaleState.PHOTO_SENT)

        summary = aggregate(order, [stamp])

        assert summary.fabrication_summary is FabricationState.VERIFY
        assert summary.sale_summary is SaleState.PHOTO_SENT
        assert summary.is_mixed is False

    def test_mixed_fabrication(self, order):
        """Test disagreeing stamps give MIXED and the least advanced state."""
        stamps = [
            make_stamp("a", FabricationState.DONE),
            make_stamp("b", FabricationState.IN_PROGRESS),
            make_stamp("c", FabricationState.VERIFY),
        ]

        summary = aggregate(order, stamps)

        assert summary.fabrication_summary is None
        assert summary.is_mixed is True
        assert summary.least_advanced_state is FabricationState.IN_PROGRESS
        assert summary.to_dict()["fabrication_summary"] == "MIXED"

    def test_priority_is_any(self, order):
        stamps = [make_stamp("a"), make_stamp("b", is_priority=True)]

        assert aggregate(order, stamps).has_priority is True
        assert aggregate(order, stamps[:1]).has_priority is False

    def test_shipping_from_order(self, order):
        """Test the order value wins and stale replicas are reported."""
        shipped = order.with_changes(shipping_state=ShippingState.DISPATCHED)
        stamps = [
            make_stamp("a", shipping_state=ShippingState.DISPATCHED),
            make_stamp("b", shipping_state=ShippingState.NO_SHIPMENT),
        ]

        summary = aggregate(shipped, stamps)

        assert summary.shipping_state is ShippingState.DISPATCHED
        assert summary.shipping_in_sync is False

    def test_no_stamps_raises(self, order):
        with pytest.raises(InconsistentAggregateInputError) as exc_info:
            aggregate(order, [])

        assert exc_info.value.order_id == "order-1"

    def test_foreign_stamp_raises(self, order):
        """Test a stamp from another order aborts the whole aggregate."""
        stamps = [make_stamp("a"), make_stamp("b", order_id="order-2")]

        with pytest.raises(InconsistentAggregateInputError) as exc_info:
            aggregate(order, stamps)

        assert exc_info.value.stamp_id == "b"
        assert exc_info.value.details["stamp_id"] == "b"


# Tests for derived helpers

class TestDerivedValues:
    """Progress step, counts and cached totals."""

    def test_least_advanced_scheduled_between_not_started_and_in_progress(self):
        stamps = [
            make_stamp("a", FabricationState.IN_PROGRESS),
            Stamp(id="b", order_id="order-1",
                  production=ProductionState.scheduled(AspireSubstate.ASPIRE_G)),
        ]

        assert least_advanced_state(stamps) is FabricationState.SCHEDULED

    @pytest.mark.parametrize("shipping, sale, fabrication, expected", [
        (ShippingState.TRACKING_SENT, SaleState.TRANSFERRED, FabricationState.DONE,
         ProgressStep.TRACKING_SENT),
        (ShippingState.MAKE_LABEL, SaleState.TRANSFERRED, FabricationState.DONE,
         ProgressStep.MAKE_LABEL),
        (ShippingState.NO_SHIPMENT, SaleState.TRANSFERRED, FabricationState.DONE,
         ProgressStep.TRANSFERRED),
        (ShippingState.NO_SHIPMENT, SaleState.PHOTO_SENT, FabricationState.DONE,
         ProgressStep.PHOTO),
        (ShippingState.NO_SHIPMENT, SaleState.DEPOSITED, FabricationState.DONE,
         ProgressStep.DONE),
        (ShippingState.NO_SHIPMENT, None, None, None),
    ])
    def test_progress_step(self, shipping, sale, fabrication, expected):
        assert progress_step(shipping, sale, fabrication) is expected

    def test_fabrication_counts_lists_every_state(self):
        stamps = [
            make_stamp("a", FabricationState.DONE),
            make_stamp("b", FabricationState.DONE),
            make_stamp("c", FabricationState.REDO),
        ]

        counts = fabrication_counts(stamps)

        assert counts["HECHO"] == 2
        assert counts["REHACER"] == 1
        assert counts["SIN_HACER"] == 0
        assert list(counts) == [state.value for state in FabricationState]

    def test_cached_totals_patch(self, order):
        """Test a patch is produced only when cached figures drift."""
        stamps = [make_stamp("a", value=1000, deposit=400)]
        summary = aggregate(order, stamps)

        patch = cached_totals_patch(order, summary)
        assert dict(patch.changes) == {"cached_value": 1000, "cached_deposit": 400}

        aligned = order.with_changes(cached_value=1000.0, cached_deposit=400.0)
        assert cached_totals_patch(aligned, summary) is None
