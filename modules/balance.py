"""
Remaining-balance reconciliation.

The hosted store sometimes persists a remaining figure that already has
the shipping cost folded in, and sometimes one that does not. Adding the
cost again would charge the customer twice, so the stored figure is
compared against base remaining + current shipping price before anything
is added.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

from config import Config
from logging_config import get_logger
from models.order import Order, ShippingSelection
from models.stamp import Stamp
from models.states import ShippingCarrier, ShippingService, coerce, coerce_bool


logger = get_logger(__name__)

DEFAULT_EPSILON = 0.01


class ShippingPolicy(Enum):
    """What to do when the stored shipping component no longer matches the price."""

    RECOMPUTE = "recompute"
    """Show base remaining + current price."""

    PRESERVE = "preserve"
    """Keep the stored figure and flag it as stale."""

    @classmethod
    def parse(cls, raw: Any) -> "ShippingPolicy":
        if isinstance(raw, cls):
            return raw
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            logger.warning(f"Unknown shipping price policy {raw!r}, using recompute")
            return cls.RECOMPUTE


@dataclass(frozen=True)
class ShippingQuote:
    """Result of a shipping cost lookup."""

    cost: float = 0.0
    pending: bool = False
    """No carrier chosen yet (or the generic OTHER bucket)."""

    known_route: bool = True
    """False when the (carrier, service) pair has no active price."""

    def to_dict(self) -> Dict[str, Any]:
        return {"cost": self.cost, "pending": self.pending, "known_route": self.known_route}


@dataclass(frozen=True)
class Balance:
    """Remaining amount owed, with how it was derived."""

    amount: float
    includes_shipping: bool
    """True when the stored figure already carried the shipping cost."""

    base_remaining: float = 0.0
    shipping_cost: float = 0.0
    shipping_pending: bool = False
    stale_shipping: bool = False
    """Stored figure kept even though its shipping part differs from today's price."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "amount": self.amount,
            "includes_shipping": self.includes_shipping,
            "base_remaining": self.base_remaining,
            "shipping_cost": self.shipping_cost,
            "shipping_pending": self.shipping_pending,
            "stale_shipping": self.stale_shipping,
        }


class ShippingCostTable:
    """
    Active shipping prices per (carrier, service).

    Rows follow the hosted ``costos_de_envio`` table:
    ``{"empresa": "Andreani", "servicio": "Sucursal", "costo": 7200,
    "activo": true, "activo_desde": "2025-01-01"}``. English keys
    (carrier / service / cost / active / active_from) are accepted too.
    When several active rows share a pair, the newest ``activo_desde`` wins.
    """

    def __init__(self, prices: Optional[Dict[Tuple[ShippingCarrier, ShippingService], float]] = None):
        self._prices: Dict[Tuple[ShippingCarrier, ShippingService], float] = dict(prices or {})

    def __len__(self) -> int:
        return len(self._prices)

    @classmethod
    def from_records(cls, rows: Iterable[Dict[str, Any]]) -> "ShippingCostTable":
        newest: Dict[Tuple[ShippingCarrier, ShippingService], Tuple[str, float]] = {}

        for row in rows:
            if not coerce_bool(_first(row, "activo", "active"), default=True):
                continue

            carrier = coerce(ShippingCarrier, _first(row, "empresa", "carrier"))
            service = coerce(ShippingService, _first(row, "servicio", "service"))
            if carrier is None or service is None:
                logger.warning(f"Skipping shipping cost row with unknown route: {row}")
                continue

            try:
                cost = float(_first(row, "costo", "cost", default=0) or 0)
            except (TypeError, ValueError):
                logger.warning(f"Skipping shipping cost row with invalid cost: {row}")
                continue

            since = str(_first(row, "activo_desde", "active_from", default="") or "")
            current = newest.get((carrier, service))
            if current is None or since >= current[0]:
                newest[(carrier, service)] = (since, cost)

        return cls({pair: cost for pair, (_, cost) in newest.items()})

    @classmethod
    def from_json_file(cls, path: Union[str, Path, None]) -> "ShippingCostTable":
        """
        Load a JSON list of cost rows.

        A blank path or a missing file yields an empty table (every route
        costs 0); malformed JSON propagates.
        """
        if not path:
            return cls()

        file_path = Path(path)
        if not file_path.exists():
            logger.warning(f"Shipping costs file not found: {file_path}")
            return cls()

        with open(file_path, "r", encoding="utf-8") as f:
            rows = json.load(f)

        table = cls.from_records(rows)
        logger.info(f"Loaded {len(table)} shipping prices from {file_path}")
        return table

    def lookup(self, carrier: Any, service: Any = None) -> ShippingQuote:
        """
        Price for a carrier/service pair.

        Absent carrier or OTHER: cost 0, pending. Absent service: cost 0,
        pending. Unknown pair: cost 0, not pending.
        """
        carrier_enum = coerce(ShippingCarrier, carrier)
        if carrier_enum is None or carrier_enum is ShippingCarrier.OTHER:
            return ShippingQuote(cost=0.0, pending=True, known_route=False)

        service_enum = coerce(ShippingService, service)
        if service_enum is None:
            return ShippingQuote(cost=0.0, pending=True, known_route=False)

        cost = self._prices.get((carrier_enum, service_enum))
        if cost is None:
            logger.debug(f"No active price for {carrier_enum.value}/{service_enum.value}")
            return ShippingQuote(cost=0.0, pending=False, known_route=False)
        return ShippingQuote(cost=cost)

    def quote(self, selection: ShippingSelection) -> ShippingQuote:
        return self.lookup(selection.carrier, selection.service)

    def to_list(self) -> list:
        return [
            {"carrier": carrier.value, "service": service.value, "cost": cost}
            for (carrier, service), cost in sorted(
                self._prices.items(), key=lambda item: (item[0][0].value, item[0][1].value)
            )
        ]


# =============================================================================
# RECONCILIATION
# =============================================================================

def reconcile(
    base_remaining: float,
    stored_remaining: Optional[float],
    shipping: ShippingQuote,
    epsilon: float = DEFAULT_EPSILON,
    policy: ShippingPolicy = ShippingPolicy.RECOMPUTE,
) -> Balance:
    """
    Decide what the customer still owes.

    If the stored figure exceeds the base by the current shipping cost
    (within ``epsilon``) it already includes shipping and is returned
    unchanged. Otherwise the result is base + cost. Applying this to its
    own output gives the same amount.

    Args:
        base_remaining: value - deposit
        stored_remaining: Figure as persisted, or None
        shipping: Current quote for the order's route
        epsilon: Tolerance for the "already includes shipping" check
        policy: RECOMPUTE or PRESERVE for stale shipping components

    Returns:
        Balance
    """
    cost = shipping.cost
    common = dict(
        base_remaining=base_remaining,
        shipping_cost=cost,
        shipping_pending=shipping.pending,
    )

    if stored_remaining is not None:
        delta = stored_remaining - base_remaining
        if abs(delta - cost) < epsilon:
            return Balance(amount=stored_remaining, includes_shipping=True, **common)

        if policy is ShippingPolicy.PRESERVE and delta > epsilon:
            logger.debug(
                f"Keeping stored remaining {stored_remaining}: shipping part {delta} "
                f"differs from current price {cost}"
            )
            return Balance(
                amount=stored_remaining, includes_shipping=True, stale_shipping=True, **common
            )

    return Balance(amount=base_remaining + cost, includes_shipping=False, **common)


def stamp_remaining(stamp: Stamp, shipping: ShippingQuote, **options: Any) -> Balance:
    """Balance of a single stamp."""
    return reconcile(stamp.base_remaining, stamp.stored_remaining, shipping, **options)


def order_remaining(order: Order, stamps: Sequence[Stamp], shipping: ShippingQuote,
                    **options: Any) -> Balance:
    """Balance of a whole order: summed stamp bases against the order's stored figure."""
    base = sum(stamp.base_remaining for stamp in stamps)
    return reconcile(base, order.cached_remaining, shipping, **options)


def stamp_quotes(stamps: Sequence[Stamp], shipping: ShippingQuote) -> Dict[str, ShippingQuote]:
    """
    Split one order quote across its stamps, keyed by stamp id.

    The first stamp (lowest sequence) carries the whole cost and the others
    carry none, so stamp balances add up to the order balance. Every share
    keeps the pending flag.
    """
    ordered = sorted(stamps, key=lambda stamp: (stamp.sequence, stamp.id))
    free = ShippingQuote(cost=0.0, pending=shipping.pending, known_route=shipping.known_route)
    return {stamp.id: shipping if index == 0 else free for index, stamp in enumerate(ordered)}


def options_from_config(config: Any = Config) -> Dict[str, Any]:
    """``reconcile`` keyword options read from a config object or mapping."""
    get = config.get if isinstance(config, dict) else lambda key, default=None: getattr(config, key, default)
    return {
        "epsilon": float(get("BALANCE_EPSILON", DEFAULT_EPSILON)),
        "policy": ShippingPolicy.parse(get("SHIPPING_PRICE_POLICY", "recompute")),
    }


def _first(row: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in row:
            return row[key]
    return default
