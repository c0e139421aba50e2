"""
Data models for StampOrderWeb.

This module contains immutable dataclasses for:
- Stamp: One order item with its own fabrication / sale / shipping lifecycle
- ProductionState: Fabrication state and Aspire substate as a single value
- Order: Order header (customer, shipping selection, shared shipping state)
- OrderSummary: Read-time projection of an order over its stamps
- Patch / Accepted / Rejected: Transition engine results

All records are frozen. Updates build new instances, and the store swaps
them in under its lock.
"""

from .states import (
    AspireSubstate,
    ContactChannel,
    FabricationState,
    ProgressStep,
    SaleState,
    ShippingCarrier,
    ShippingOrigin,
    ShippingService,
    ShippingState,
    StampType,
    TaskStatus,
)
from .stamp import ProductionState, Stamp, StampFiles
from .order import Customer, Order, OrderSummary, ShippingSelection, Task
from .patch import Accepted, GuardCode, Patch, PatchTarget, Rejected, TransitionField

__all__ = [
    # State vocabulary
    "AspireSubstate",
    "ContactChannel",
    "FabricationState",
    "ProgressStep",
    "SaleState",
    "ShippingCarrier",
    "ShippingOrigin",
    "ShippingService",
    "ShippingState",
    "StampType",
    "TaskStatus",
    # Stamp models
    "ProductionState",
    "Stamp",
    "StampFiles",
    # Order models
    "Customer",
    "Order",
    "OrderSummary",
    "ShippingSelection",
    "Task",
    # Transition results
    "Accepted",
    "GuardCode",
    "Patch",
    "PatchTarget",
    "Rejected",
    "TransitionField",
]
