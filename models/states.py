"""
State vocabulary for stamps and orders.

Enum values are the engine-facing keys (the same keys the production
queue uses for ranking). The hosted data store spells every state
differently ("Sin Hacer", "Señado", "Sin envio", ...); those DB-facing
synonyms live in the ``_DB_NAMES`` tables and are reached through
``to_db()`` / ``from_db()``.

The legacy "Prioridad" fabrication value is deliberately NOT part of
``FabricationState``. Priority is a separate boolean on the stamp and the
record boundary translates the legacy value once on read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar


E = TypeVar("E", bound=Enum)

ASPIRE_KEY_PREFIX = "ASPIRE_"
"""Prefix that marks an Aspire substate inside the ranking key space."""

LEGACY_PRIORITY_DB_VALUE = "Prioridad"
"""Old estado_fabricacion value that encoded priority inside the state."""


class FabricationState(Enum):
    """
    Production lifecycle of one stamp.

    Lifecycle:
        NOT_STARTED -> IN_PROGRESS -> VERIFY -> DONE
        with REDO / RETOUCH branches and SCHEDULED for queued work.
    """

    NOT_STARTED = "SIN_HACER"
    """Nothing done yet (initial state)."""

    IN_PROGRESS = "HACIENDO"
    """Being fabricated."""

    VERIFY = "VERIFICAR"
    """Fabricated, waiting for a quality check."""

    DONE = "HECHO"
    """Finished. Unlocks sale-state changes."""

    REDO = "REHACER"
    """Failed the check, must be made again."""

    RETOUCH = "RETOCAR"
    """Needs a small fix."""

    SCHEDULED = "PROGRAMADO"
    """Queued on a machine program (with or without an Aspire track)."""

    @property
    def rank_key(self) -> str:
        """Key of this state in the production ranking key space."""
        return self.value

    @property
    def label(self) -> str:
        return _LABELS[self]


class SaleState(Enum):
    """
    Payment lifecycle of one stamp.

    Lifecycle:
        DEPOSITED -> PHOTO_SENT -> TRANSFERRED (or DEBTOR)
    """

    DEPOSITED = "SEÑADO"
    PHOTO_SENT = "FOTO_ENVIADA"
    TRANSFERRED = "TRANSFERIDO"
    DEBTOR = "DEUDOR"

    @property
    def label(self) -> str:
        return _LABELS[self]


class ShippingState(Enum):
    """
    Dispatch lifecycle. Logically one per order, physically replicated
    onto every stamp record.
    """

    NO_SHIPMENT = "SIN_ENVIO"
    MAKE_LABEL = "HACER_ETIQUETA"
    LABEL_READY = "ETIQUETA_LISTA"
    DISPATCHED = "DESPACHADO"
    TRACKING_SENT = "SEGUIMIENTO_ENVIADO"

    @property
    def label(self) -> str:
        return _LABELS[self]


class AspireSubstate(Enum):
    """Production-scheduling track. Setting one forces SCHEDULED."""

    ASPIRE_G = "Aspire G"
    ASPIRE_G_CHECK = "Aspire G Check"
    ASPIRE_C = "Aspire C"
    ASPIRE_C_CHECK = "Aspire C Check"
    ASPIRE_XL = "Aspire XL"

    @property
    def rank_key(self) -> str:
        """e.g. "ASPIRE_Aspire_G_Check"."""
        return ASPIRE_KEY_PREFIX + self.value.replace(" ", "_")

    @property
    def label(self) -> str:
        return self.value

    @classmethod
    def from_rank_key(cls, key: str) -> Optional["AspireSubstate"]:
        """Inverse of ``rank_key``; None when ``key`` is not an Aspire key."""
        if not isinstance(key, str) or not key.startswith(ASPIRE_KEY_PREFIX):
            return None
        value = key[len(ASPIRE_KEY_PREFIX):].replace("_", " ")
        try:
            return cls(value)
        except ValueError:
            return None


class StampType(Enum):
    THREE_MM = "3MM"
    FOOD = "ALIMENTO"
    CLASSIC = "CLASICO"
    ABC = "ABC"
    SEALING_WAX = "LACRE"


class ShippingCarrier(Enum):
    """Carrier of an order. OTHER is the generic bucket (pickup, etc.)."""

    ANDREANI = "ANDREANI"
    CORREO_ARGENTINO = "CORREO_ARGENTINO"
    VIA_CARGO = "VIA_CARGO"
    OTHER = "OTRO"


class ShippingService(Enum):
    HOME = "DOMICILIO"
    BRANCH = "SUCURSAL"


class ShippingOrigin(Enum):
    PICKUP_AT_ORIGIN = "RETIRO_EN_ORIGEN"
    DROP_AT_BRANCH = "ENTREGA_EN_SUCURSAL"


class ContactChannel(Enum):
    WHATSAPP = "WHATSAPP"
    INSTAGRAM = "INSTAGRAM"
    FACEBOOK = "FACEBOOK"
    MAIL = "MAIL"
    OTHER = "OTRO"


class TaskStatus(Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ProgressStep(Enum):
    """
    Order-level progress shown as a single step indicator.

    Steps are declared in lifecycle order.
    """

    DONE = "HECHO"
    PHOTO = "FOTO"
    TRANSFERRED = "TRANSFERIDO"
    MAKE_LABEL = "HACER_ETIQUETA"
    LABEL_READY = "ETIQUETA_LISTA"
    DISPATCHED = "DESPACHADO"
    TRACKING_SENT = "SEGUIMIENTO_ENVIADO"


# How far along each fabrication state is. Used to pick the least advanced
# state of a mixed order. SCHEDULED sits between NOT_STARTED and IN_PROGRESS.
FABRICATION_PROGRESS: Dict[FabricationState, float] = {
    FabricationState.NOT_STARTED: 0,
    FabricationState.SCHEDULED: 0.5,
    FabricationState.IN_PROGRESS: 1,
    FabricationState.RETOUCH: 2,
    FabricationState.REDO: 3,
    FabricationState.VERIFY: 4,
    FabricationState.DONE: 5,
}


_LABELS: Dict[Enum, str] = {
    FabricationState.NOT_STARTED: "Sin Hacer",
    FabricationState.IN_PROGRESS: "Haciendo",
    FabricationState.VERIFY: "Verificar",
    FabricationState.DONE: "Hecho",
    FabricationState.REDO: "Rehacer",
    FabricationState.RETOUCH: "Retocar",
    FabricationState.SCHEDULED: "Programado",
    SaleState.DEPOSITED: "Señado",
    SaleState.PHOTO_SENT: "Foto Env.",
    SaleState.TRANSFERRED: "Transferido",
    SaleState.DEBTOR: "Deudor",
    ShippingState.NO_SHIPMENT: "Sin Envío",
    ShippingState.MAKE_LABEL: "Hacer Et.",
    ShippingState.LABEL_READY: "Et. Lista",
    ShippingState.DISPATCHED: "Desp.",
    ShippingState.TRACKING_SENT: "Seg. Env.",
}


# =============================================================================
# DB-FACING SYNONYMS
# =============================================================================

_DB_NAMES: Dict[type, Dict[Enum, str]] = {
    FabricationState: {
        FabricationState.NOT_STARTED: "Sin Hacer",
        FabricationState.IN_PROGRESS: "Haciendo",
        FabricationState.VERIFY: "Verificar",
        FabricationState.DONE: "Hecho",
        FabricationState.REDO: "Rehacer",
        FabricationState.RETOUCH: "Retocar",
        FabricationState.SCHEDULED: "Programado",
    },
    SaleState: {
        SaleState.DEPOSITED: "Señado",
        SaleState.PHOTO_SENT: "Foto",
        SaleState.TRANSFERRED: "Transferido",
        SaleState.DEBTOR: "Deudor",
    },
    ShippingState: {
        ShippingState.NO_SHIPMENT: "Sin envio",
        ShippingState.MAKE_LABEL: "Hacer Etiqueta",
        ShippingState.LABEL_READY: "Etiqueta Lista",
        ShippingState.DISPATCHED: "Despachado",
        ShippingState.TRACKING_SENT: "Seguimiento Enviado",
    },
    AspireSubstate: {member: member.value for member in AspireSubstate},
    StampType: {
        StampType.CLASSIC: "Clasico",
        StampType.THREE_MM: "3mm",
        StampType.SEALING_WAX: "Lacre",
        StampType.FOOD: "Alimento",
        StampType.ABC: "ABC",
    },
    ShippingCarrier: {
        ShippingCarrier.ANDREANI: "Andreani",
        ShippingCarrier.CORREO_ARGENTINO: "Correo Argentino",
        ShippingCarrier.VIA_CARGO: "Via Cargo",
        ShippingCarrier.OTHER: "Retiro",
    },
    ShippingService: {
        ShippingService.HOME: "Domicilio",
        ShippingService.BRANCH: "Sucursal",
    },
    ContactChannel: {
        ContactChannel.WHATSAPP: "Whatsapp",
        ContactChannel.INSTAGRAM: "Instagram",
        ContactChannel.FACEBOOK: "Facebook",
        ContactChannel.MAIL: "Mail",
        ContactChannel.OTHER: "Otro",
    },
}


def to_db(state: Enum) -> str:
    """
    Spell a state the way the hosted data store does.

    Enums without a DB table (e.g. ``TaskStatus``) are stored by value.
    """
    names = _DB_NAMES.get(type(state))
    if names is None:
        return state.value
    return names[state]


def from_db(enum_cls: Type[E], raw: Any, default: Optional[E] = None) -> Optional[E]:
    """
    Read a stored value back into ``enum_cls``.

    Accepts the DB spelling, the engine value or the member name, so
    records written by older versions still load.

    Args:
        enum_cls: Target enum class
        raw: Stored value (may be None)
        default: Returned for None or unknown values

    Returns:
        Enum member or ``default``
    """
    state = coerce(enum_cls, raw)
    return default if state is None else state


def coerce(enum_cls: Type[E], raw: Any) -> Optional[E]:
    """
    Best-effort conversion of ``raw`` into a member of ``enum_cls``.

    Returns None for None, empty strings and anything unrecognised.
    """
    if raw is None:
        return None
    if isinstance(raw, enum_cls):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None

    text = raw.strip()
    try:
        return enum_cls(text)
    except ValueError:
        pass

    if text in enum_cls.__members__:
        return enum_cls.__members__[text]

    for member, db_name in _DB_NAMES.get(enum_cls, {}).items():
        if db_name.casefold() == text.casefold():
            return member

    return None


_TRUE_WORDS = frozenset({"true", "t", "1", "yes", "y", "si", "sí"})
_FALSE_WORDS = frozenset({"false", "f", "0", "no", "n"})


def coerce_bool(raw: Any, default: Optional[bool] = None) -> Optional[bool]:
    """
    Read a flag from a request body or a stored row.

    Accepts booleans, the integers 0 / 1 and the usual true/false words
    (English and Spanish). None, blank strings and anything else give
    ``default``.
    """
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        text = raw.strip().casefold()
        if text in _TRUE_WORDS:
            return True
        if text in _FALSE_WORDS:
            return False
    return default
