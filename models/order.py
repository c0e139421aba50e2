"""
Order data models.

An order is the header over one or more stamps that share a customer and
a shipping selection.

Source of truth:
    - shipping_state lives HERE; stamp records only carry a replica
    - cached_value / cached_deposit / cached_remaining are derived from
      the stamps and refreshed by the store whenever a patch set
      invalidates the aggregate
    - OrderSummary is a read-time projection, never stored
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional, Tuple

from .states import (
    ContactChannel,
    FabricationState,
    ProgressStep,
    SaleState,
    ShippingCarrier,
    ShippingOrigin,
    ShippingService,
    ShippingState,
    TaskStatus,
    coerce,
)


@dataclass(frozen=True)
class Customer:
    """Customer contact data."""

    id: str = ""
    first_name: str = ""
    last_name: str = ""
    phone_e164: str = ""
    email: Optional[str] = None
    national_id: Optional[str] = None
    channel: ContactChannel = ContactChannel.WHATSAPP

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone_e164": self.phone_e164,
            "email": self.email,
            "national_id": self.national_id,
            "channel": self.channel.value,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Customer":
        data = data or {}
        return cls(
            id=data.get("id", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            phone_e164=data.get("phone_e164", ""),
            email=data.get("email"),
            national_id=data.get("national_id"),
            channel=coerce(ContactChannel, data.get("channel")) or ContactChannel.WHATSAPP,
        )


@dataclass(frozen=True)
class ShippingSelection:
    """
    Carrier / service / origin chosen for the order.

    ``carrier`` may be None while the customer has not decided yet; the
    balance engine treats that as "shipping pending".
    """

    carrier: Optional[ShippingCarrier] = None
    service: Optional[ShippingService] = None
    origin: ShippingOrigin = ShippingOrigin.DROP_AT_BRANCH
    tracking_number: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "carrier": self.carrier.value if self.carrier else None,
            "service": self.service.value if self.service else None,
            "origin": self.origin.value,
            "tracking_number": self.tracking_number,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ShippingSelection":
        data = data or {}
        return cls(
            carrier=coerce(ShippingCarrier, data.get("carrier")),
            service=coerce(ShippingService, data.get("service")),
            origin=coerce(ShippingOrigin, data.get("origin")) or ShippingOrigin.DROP_AT_BRANCH,
            tracking_number=data.get("tracking_number"),
        )


@dataclass(frozen=True)
class Task:
    """A to-do attached to an order."""

    id: str
    order_id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    due_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
            "due_date": self.due_date,
        }


@dataclass(frozen=True)
class Order:
    """
    Order header.

    Header fields (customer, shipping selection, deadline, tasks) are
    edited directly. Everything else changes as a cascade of stamp
    transitions.
    """

    id: str
    """Unique order identifier."""

    customer: Customer = field(default_factory=Customer)
    """Who ordered."""

    order_date: Optional[str] = None
    """ISO date the order was taken."""

    taken_by: Optional[str] = None
    """Name of the person who took the order."""

    shipping: ShippingSelection = field(default_factory=ShippingSelection)
    """Carrier / service / origin / tracking number."""

    shipping_state: ShippingState = ShippingState.NO_SHIPMENT
    """Order-level shipping state (single source of truth)."""

    sale_state: Optional[SaleState] = None
    """Stored order-level sale summary."""

    cached_value: float = 0.0
    """Sum of stamp values, as last committed."""

    cached_deposit: float = 0.0
    """Sum of stamp deposits, as last committed."""

    cached_remaining: Optional[float] = None
    """Persisted remaining figure (may already include shipping)."""

    deadline: Optional[str] = None
    """ISO date the order is due."""

    tasks: Tuple[Task, ...] = ()
    """Order to-do list."""

    def with_changes(self, **changes: Any) -> "Order":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "customer": self.customer.to_dict(),
            "order_date": self.order_date,
            "taken_by": self.taken_by,
            "shipping": self.shipping.to_dict(),
            "shipping_state": self.shipping_state.value,
            "sale_state": self.sale_state.value if self.sale_state else None,
            "cached_value": self.cached_value,
            "cached_deposit": self.cached_deposit,
            "cached_remaining": self.cached_remaining,
            "deadline": self.deadline,
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(frozen=True)
class OrderSummary:
    """
    Read-only projection of an order over its stamps.

    Built by ``modules.aggregation.aggregate``. Re-derive it whenever the
    stamps change; never persist it as the authoritative value.
    """

    order_id: str
    item_count: int
    total_value: float
    total_deposit: float
    total_remaining: float
    """Value minus deposit, before shipping."""

    has_priority: bool
    fabrication_summary: Optional[FabricationState]
    """Shared fabrication state, or None when the stamps disagree."""

    least_advanced_state: FabricationState
    """Least advanced fabrication state among the stamps."""

    sale_summary: Optional[SaleState]
    """Shared sale state, or None when the stamps disagree."""

    shipping_state: ShippingState
    """Order-level shipping state."""

    shipping_in_sync: bool
    """Whether every stamp replica matches the order shipping state."""

    progress_step: Optional[ProgressStep] = None
    stamp_ids: Tuple[str, ...] = ()

    @property
    def is_mixed(self) -> bool:
        return self.fabrication_summary is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "item_count": self.item_count,
            "total_value": self.total_value,
            "total_deposit": self.total_deposit,
            "total_remaining": self.total_remaining,
            "has_priority": self.has_priority,
            "fabrication_summary": (
                self.fabrication_summary.value if self.fabrication_summary else "MIXED"
            ),
            "least_advanced_state": self.least_advanced_state.value,
            "sale_summary": self.sale_summary.value if self.sale_summary else None,
            "shipping_state": self.shipping_state.value,
            "shipping_in_sync": self.shipping_in_sync,
            "progress_step": self.progress_step.value if self.progress_step else None,
            "stamp_ids": list(self.stamp_ids),
        }
