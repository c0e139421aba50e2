"""
Transition result data models.

The transition engine answers every request with one of two values:

    Accepted - the updated stamp plus the complete, ordered write set
    Rejected - a guard code and a human-readable reason

Guard violations are values, not exceptions, so callers have to branch
on ``result.accepted`` before touching storage.

Write sets are ordered parent-first:
    1. order-level fields (e.g. the shared shipping state)
    2. the requested stamp
    3. sibling stamps (fan-out)
    4. aggregate invalidation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from .stamp import ProductionState, Stamp


class PatchTarget(Enum):
    """Kind of record a patch writes to."""

    ORDER = "order"
    STAMP = "stamp"


class TransitionField(Enum):
    """Fields the transition engine guards."""

    FABRICATION_STATE = "fabrication_state"
    SALE_STATE = "sale_state"
    SHIPPING_STATE = "shipping_state"
    PRIORITY = "is_priority"
    ASPIRE_SUBSTATE = "aspire_substate"
    PRODUCTION = "production"
    """Fabrication state and Aspire substate set together."""

    MACHINE = "machine"
    PROGRAM = "program"

    @classmethod
    def parse(cls, raw: Any) -> Optional["TransitionField"]:
        """Accept the enum, its value, its name or a UI synonym."""
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, str):
            return None
        key = raw.strip()
        try:
            return cls(key)
        except ValueError:
            pass
        if key.upper() in cls.__members__:
            return cls.__members__[key.upper()]
        return _FIELD_SYNONYMS.get(key.casefold())


_FIELD_SYNONYMS: Dict[str, TransitionField] = {
    "fabricacion": TransitionField.FABRICATION_STATE,
    "venta": TransitionField.SALE_STATE,
    "envio": TransitionField.SHIPPING_STATE,
    "priority": TransitionField.PRIORITY,
    "prioridad": TransitionField.PRIORITY,
    "aspire": TransitionField.ASPIRE_SUBSTATE,
    "fabricacion_aspire": TransitionField.PRODUCTION,
    "maquina": TransitionField.MACHINE,
    "programa": TransitionField.PROGRAM,
}


class GuardCode(Enum):
    """Why a transition was rejected."""

    FABRICATION_INCOMPLETE = "fabrication_incomplete"
    """Sale state can only change once fabrication is DONE."""

    PAYMENT_NOT_CONFIRMED = "payment_not_confirmed"
    """Shipping state can only change once every stamp is TRANSFERRED."""

    UNKNOWN_VALUE = "unknown_value"
    """Requested value is not part of the field's vocabulary."""

    UNKNOWN_FIELD = "unknown_field"
    """Field is not guarded by the engine."""

    FOREIGN_SIBLING = "foreign_sibling"
    """A sibling stamp belongs to a different order."""


@dataclass(frozen=True)
class Patch:
    """
    One record write.

    ``changes`` maps model field names to new values and is read-only.
    An invalidation patch carries no changes; it tells the store to
    recompute the order's cached totals in the same commit.
    """

    target: PatchTarget
    record_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)
    invalidate_aggregate: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "changes", MappingProxyType(dict(self.changes)))

    @classmethod
    def for_stamp(cls, stamp_id: str, **changes: Any) -> "Patch":
        return cls(PatchTarget.STAMP, stamp_id, changes)

    @classmethod
    def for_order(cls, order_id: str, **changes: Any) -> "Patch":
        return cls(PatchTarget.ORDER, order_id, changes)

    @classmethod
    def invalidation(cls, order_id: str) -> "Patch":
        return cls(PatchTarget.ORDER, order_id, {}, invalidate_aggregate=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target.value,
            "record_id": self.record_id,
            "changes": {name: _jsonable(value) for name, value in self.changes.items()},
            "invalidate_aggregate": self.invalidate_aggregate,
        }


@dataclass(frozen=True)
class Accepted:
    """
    A transition that passed every guard.

    ``patches`` is the complete write set; it must be applied as one unit.
    """

    stamp: Stamp
    """The requested stamp after the change."""

    field: TransitionField
    patches: Tuple[Patch, ...] = ()

    accepted = True

    @property
    def side_effects(self) -> Tuple[Patch, ...]:
        """Every write except the requested stamp's own patch."""
        return tuple(
            patch for patch in self.patches
            if not (patch.target is PatchTarget.STAMP and patch.record_id == self.stamp.id)
        )

    @property
    def is_noop(self) -> bool:
        return not self.patches

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": True,
            "field": self.field.value,
            "stamp": self.stamp.to_dict(),
            "patches": [patch.to_dict() for patch in self.patches],
        }


@dataclass(frozen=True)
class Rejected:
    """A transition that failed a guard. Nothing may be written."""

    stamp_id: str
    field: Optional[TransitionField]
    requested: Any
    code: GuardCode
    reason: str

    accepted = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": False,
            "stamp_id": self.stamp_id,
            "field": self.field.value if self.field else None,
            "requested": _jsonable(self.requested),
            "code": self.code.value,
            "reason": self.reason,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, ProductionState):
        return value.to_dict()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
