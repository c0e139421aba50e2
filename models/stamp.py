"""
Stamp data models.

A stamp is one manufactured unit inside an order. Each stamp has its own
fabrication, sale and shipping lifecycle plus an orthogonal priority flag.

Immutability:
    Stamp and ProductionState are FROZEN dataclasses. The transition engine
    never mutates a stamp; it returns a new one built with ``replace()``.
    The store swaps whole records, so a reader never sees half an update.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Any, Optional

from .states import (
    AspireSubstate,
    FabricationState,
    SaleState,
    ShippingState,
    StampType,
    coerce,
)


@dataclass(frozen=True)
class ProductionState:
    """
    Fabrication state and Aspire substate as ONE value.

    The two used to be separate fields that could drift apart. Folding
    them together makes the rules structural:

        ProductionState(FabricationState.DONE)             # plain state
        ProductionState.scheduled(AspireSubstate.ASPIRE_G)  # Aspire implies SCHEDULED
        ProductionState.scheduled()                         # scheduled, no Aspire

    Constructing an Aspire substate with any fabrication state other than
    SCHEDULED raises ValueError.
    """

    fabrication: FabricationState = FabricationState.NOT_STARTED
    aspire: Optional[AspireSubstate] = None

    def __post_init__(self) -> None:
        if self.aspire is not None and self.fabrication is not FabricationState.SCHEDULED:
            raise ValueError(
                f"Aspire substate {self.aspire.value!r} requires fabrication "
                f"{FabricationState.SCHEDULED.value}, got {self.fabrication.value}"
            )

    @classmethod
    def scheduled(cls, aspire: Optional[AspireSubstate] = None) -> "ProductionState":
        return cls(FabricationState.SCHEDULED, aspire)

    @classmethod
    def from_rank_key(cls, key: Any) -> Optional["ProductionState"]:
        """
        Parse a ranking key ("HECHO", "ASPIRE_Aspire_G") or a
        fabrication synonym ("Hecho") into a production state.

        Returns None when the key is not recognised.
        """
        if isinstance(key, cls):
            return key
        aspire = AspireSubstate.from_rank_key(key)
        if aspire is not None:
            return cls.scheduled(aspire)
        aspire = coerce(AspireSubstate, key)
        if aspire is not None:
            return cls.scheduled(aspire)
        fabrication = coerce(FabricationState, key)
        if fabrication is not None:
            return cls(fabrication)
        return None

    @property
    def rank_key(self) -> str:
        """Aspire key when a substate is set, fabrication key otherwise."""
        if self.aspire is not None:
            return self.aspire.rank_key
        return self.fabrication.rank_key

    @property
    def label(self) -> str:
        if self.aspire is not None:
            return self.aspire.label
        return self.fabrication.label

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fabrication_state": self.fabrication.value,
            "aspire_substate": self.aspire.value if self.aspire else None,
            "rank_key": self.rank_key,
        }


@dataclass(frozen=True)
class StampFiles:
    """File references. Opaque to the rule engine."""

    base_url: Optional[str] = None
    vector_url: Optional[str] = None
    vector_preview_url: Optional[str] = None
    photo_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "vector_url": self.vector_url,
            "vector_preview_url": self.vector_preview_url,
            "photo_url": self.photo_url,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StampFiles":
        data = data or {}
        return cls(
            base_url=data.get("base_url"),
            vector_url=data.get("vector_url"),
            vector_preview_url=data.get("vector_preview_url"),
            photo_url=data.get("photo_url"),
        )


@dataclass(frozen=True)
class Stamp:
    """
    One stamp (order item).

    Lifecycle:
        1. Created with an order: NOT_STARTED / DEPOSITED / NO_SHIPMENT, no priority
        2. State fields change only through the transition engine
        3. Value, deposit, notes, dimensions etc. change through direct edits
        4. Deleted alone, or together with its order
    """

    id: str
    """Unique stamp identifier."""

    order_id: str
    """Parent order identifier."""

    design_name: str = ""
    """Name of the design engraved on the stamp."""

    width_mm: float = 0.0
    """Requested width in millimeters."""

    height_mm: float = 0.0
    """Requested height in millimeters."""

    stamp_type: StampType = StampType.CLASSIC
    """Kind of stamp (classic, 3mm, sealing wax, ...)."""

    production: ProductionState = field(default_factory=ProductionState)
    """Fabrication state and optional Aspire substate."""

    sale_state: SaleState = SaleState.DEPOSITED
    """Payment lifecycle state."""

    shipping_state: ShippingState = ShippingState.NO_SHIPMENT
    """Replica of the order-level shipping state."""

    is_priority: bool = False
    """Urgency flag, independent of every lifecycle state."""

    program: Optional[str] = None
    """Machine program name. Only explicit edits change it."""

    machine: Optional[str] = None
    """Machine assignment (e.g. 'C', 'G', 'XL'). Free-form."""

    value: float = 0.0
    """Price of the stamp."""

    deposit: float = 0.0
    """Amount already paid."""

    stored_remaining: Optional[float] = None
    """Remaining figure as persisted (may already include shipping)."""

    files: StampFiles = field(default_factory=StampFiles)
    """Base / vector / photo artifacts."""

    notes: str = ""
    """Free-form notes."""

    deadline: Optional[str] = None
    """ISO date the stamp is due."""

    created_at: Optional[str] = None
    """ISO timestamp of creation."""

    sequence: int = 0
    """Creation order, assigned by the store."""

    @property
    def fabrication_state(self) -> FabricationState:
        return self.production.fabrication

    @property
    def aspire_substate(self) -> Optional[AspireSubstate]:
        return self.production.aspire

    @property
    def rank_key(self) -> str:
        return self.production.rank_key

    @property
    def area_mm2(self) -> float:
        return (self.width_mm or 0.0) * (self.height_mm or 0.0)

    @property
    def base_remaining(self) -> float:
        """Value minus deposit, without shipping."""
        return (self.value or 0.0) - (self.deposit or 0.0)

    @property
    def is_vectorized(self) -> bool:
        return bool(self.files.vector_url or self.files.vector_preview_url)

    def with_changes(self, **changes: Any) -> "Stamp":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "order_id": self.order_id,
            "design_name": self.design_name,
            "width_mm": self.width_mm,
            "height_mm": self.height_mm,
            "stamp_type": self.stamp_type.value,
            **self.production.to_dict(),
            "sale_state": self.sale_state.value,
            "shipping_state": self.shipping_state.value,
            "is_priority": self.is_priority,
            "program": self.program,
            "machine": self.machine,
            "value": self.value,
            "deposit": self.deposit,
            "stored_remaining": self.stored_remaining,
            "files": self.files.to_dict(),
            "notes": self.notes,
            "deadline": self.deadline,
            "created_at": self.created_at,
            "sequence": self.sequence,
        }
