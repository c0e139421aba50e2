"""
Unit tests for balance reconciliation and the shipping cost table.
"""

import json

import pytest

from models.order import Order, ShippingSelection
from models.stamp import Stamp
from models.states import ShippingCarrier, ShippingService
from modules.balance import (
    Balance,
    ShippingCostTable,
    ShippingPolicy,
    ShippingQuote,
    options_from_config,
    order_remaining,
    reconcile,
    stamp_quotes,
    stamp_remaining,
)


# Fixtures

@pytest.fixture
def table():
    """Andreani branch delivery at 150, home delivery at 300."""
    return ShippingCostTable.from_records([
        {"empresa": "Andreani", "servicio": "Sucursal", "costo": 150, "activo": True},
        {"empresa": "Andreani", "servicio": "Domicilio", "costo": 300, "activo": True},
    ])


@pytest.fixture
def quote(table):
    return table.lookup(ShippingCarrier.ANDREANI, ShippingService.BRANCH)


@pytest.fixture
def stamp():
    """Value 2000, deposit 700: base remaining 1300."""
    return Stamp(id="stamp-1", order_id="order-1", value=2000, deposit=700)


# Tests for reconcile()

class TestReconcile:
    """Double-count guard."""

    def test_nothing_stored_adds_shipping(self, quote):
        balance = reconcile(1300, None, quote)

        assert balance.amount == 1450
        assert balance.includes_shipping is False

    def test_stored_without_shipping_adds_shipping(self, quote):
        balance = reconcile(1300, 1300, quote)

        assert balance.amount == 1450
        assert balance.includes_shipping is False

    def test_stored_with_shipping_is_kept(self, quote):
        """Test a figure that already carries shipping is not charged twice."""
        balance = reconcile(1300, 1450, quote)

        assert balance.amount == 1450
        assert balance.includes_shipping is True

    def test_epsilon_tolerance(self, quote):
        assert reconcile(1300, 1450.004, quote).includes_shipping is True
        assert reconcile(1300, 1450.5, quote).includes_shipping is False
        assert reconcile(1300, 1450.5, quote, epsilon=1.0).includes_shipping is True

    @pytest.mark.parametrize("stored", [None, 0, 1300, 1450, 1500, 9999])
    def test_idempotent(self, quote, stored):
        """Test reconciling a result against itself changes nothing."""
        first = reconcile(1300, stored, quote)
        second = reconcile(1300, first.amount, quote)

        assert second.amount == first.amount

    def test_recompute_policy_after_price_change(self, quote):
        """Test the default policy rebuilds from the current price."""
        # Stored when shipping cost 100; price is now 150
        balance = reconcile(1300, 1400, quote)

        assert balance.amount == 1450
        assert balance.stale_shipping is False

    def test_preserve_policy_keeps_stale_figure(self, quote):
        balance = reconcile(1300, 1400, quote, policy=ShippingPolicy.PRESERVE)

        assert balance.amount == 1400
        assert balance.includes_shipping is True
        assert balance.stale_shipping is True

    def test_pending_shipping_flag_passes_through(self):
        balance = reconcile(500, None, ShippingQuote(cost=0.0, pending=True))

        assert balance.amount == 500
        assert balance.shipping_pending is True


# Tests for the shipping cost table

class TestShippingCostTable:
    """Price lookups."""

    def test_lookup_known_route(self, table):
        quote = table.lookup("Andreani", "Domicilio")

        assert quote.cost == 300
        assert quote.pending is False
        assert quote.known_route is True

    @pytest.mark.parametrize("carrier", [None, "", ShippingCarrier.OTHER, "Retiro"])
    def test_no_carrier_is_pending(self, table, carrier):
        quote = table.lookup(carrier, ShippingService.HOME)

        assert quote.cost == 0
        assert quote.pending is True

    def test_unknown_route_costs_nothing_and_is_not_pending(self, table):
        quote = table.lookup(ShippingCarrier.VIA_CARGO, ShippingService.BRANCH)

        assert quote.cost == 0
        assert quote.pending is False
        assert quote.known_route is False

    def test_newest_active_row_wins(self):
        table = ShippingCostTable.from_records([
            {"empresa": "Via Cargo", "servicio": "Sucursal", "costo": 100,
             "activo": True, "activo_desde": "2024-01-01"},
            {"empresa": "Via Cargo", "servicio": "Sucursal", "costo": 180,
             "activo": True, "activo_desde": "2025-03-01"},
            {"empresa": "Via Cargo", "servicio": "Sucursal", "costo": 999,
             "activo": False, "activo_desde": "2026-01-01"},
        ])

        assert table.lookup("Via Cargo", "Sucursal").cost == 180

    @pytest.mark.parametrize("flag", [False, "false", "False", "0", 0, "no"])
    def test_inactive_rows_are_skipped(self, flag):
        """Test textual and numeric inactive flags both disable a row."""
        table = ShippingCostTable.from_records([
            {"empresa": "Andreani", "servicio": "Sucursal", "costo": 150, "activo": flag},
        ])

        assert len(table) == 0

    @pytest.mark.parametrize("flag", [True, "true", "1", 1, None])
    def test_active_rows_are_kept(self, flag):
        table = ShippingCostTable.from_records([
            {"empresa": "Andreani", "servicio": "Sucursal", "costo": 150, "activo": flag},
        ])

        assert table.lookup("Andreani", "Sucursal").cost == 150

    def test_quote_from_selection(self, table):
        selection = ShippingSelection(ShippingCarrier.ANDREANI, ShippingService.BRANCH)

        assert table.quote(selection).cost == 150

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "costs.json"
        path.write_text(json.dumps([
            {"carrier": "CORREO_ARGENTINO", "service": "HOME", "cost": 8800},
        ]), encoding="utf-8")

        table = ShippingCostTable.from_json_file(path)

        assert len(table) == 1
        assert table.lookup("Correo Argentino", "Domicilio").cost == 8800

    def test_missing_file_gives_empty_table(self, tmp_path):
        assert len(ShippingCostTable.from_json_file(tmp_path / "absent.json")) == 0
        assert len(ShippingCostTable.from_json_file("")) == 0


# Tests for stamp / order wrappers

class TestWrappers:
    """stamp_remaining / order_remaining."""

    def test_stamp_remaining(self, stamp, quote):
        assert stamp_remaining(stamp, quote).amount == 1450
        assert stamp_remaining(stamp.with_changes(stored_remaining=1450), quote).includes_shipping

    def test_order_remaining_uses_cached_figure(self, stamp, quote):
        second = stamp.with_changes(id="stamp-2", value=1000, deposit=1000)
        order = Order(id="order-1", cached_remaining=1450)

        balance = order_remaining(order, [stamp, second], quote)

        assert isinstance(balance, Balance)
        assert balance.base_remaining == 1300
        assert balance.amount == 1450
        assert balance.includes_shipping is True

    def test_stamp_quotes_charge_shipping_once(self, stamp, quote):
        second = stamp.with_changes(id="stamp-2", value=1000, deposit=400, sequence=2)
        first = stamp.with_changes(sequence=1)
        order = Order(id="order-1")

        shares = stamp_quotes([second, first], quote)
        balances = [stamp_remaining(s, shares[s.id]) for s in (first, second)]

        assert shares["stamp-1"].cost == 150
        assert shares["stamp-2"].cost == 0
        assert sum(b.amount for b in balances) == order_remaining(order, [first, second], quote).amount

    def test_stamp_quotes_keep_pending_flag(self, stamp):
        pending = ShippingQuote(cost=0.0, pending=True, known_route=False)

        shares = stamp_quotes([stamp, stamp.with_changes(id="stamp-2", sequence=5)], pending)

        assert all(share.pending for share in shares.values())
        assert all(share.known_route is False for share in shares.values())

    def test_options_from_config_mapping(self):
        options = options_from_config({"BALANCE_EPSILON": "0.5", "SHIPPING_PRICE_POLICY": "preserve"})

        assert options == {"epsilon": 0.5, "policy": ShippingPolicy.PRESERVE}

    def test_unknown_policy_falls_back(self):
        assert ShippingPolicy.parse("sometimes") is ShippingPolicy.RECOMPUTE
