"""
Translation between hosted-store rows and engine models.

The hosted store keeps three tables the engine cares about:

    clientes  - customer contact data
    ordenes   - order header; owns estado_envio (shipping state)
    sellos    - one row per stamp; no shipping column

Conversions done here and nowhere else:
    - DB spellings ("Sin Hacer", "Señado", ...) <-> enum members
    - legacy estado_fabricacion "Prioridad" -> NOT_STARTED + priority flag
    - dimensions: centimeters in storage, millimeters in the model
    - order-level estado_envio replicated onto every stamp on read
    - estado_fabricacion / estado_aspire always written as a pair
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from core.exceptions import InvalidFieldEditError
from logging_config import get_logger
from models.order import Customer, Order, ShippingSelection, Task
from models.patch import Patch, PatchTarget
from models.stamp import ProductionState, Stamp, StampFiles
from models.states import (
    LEGACY_PRIORITY_DB_VALUE,
    AspireSubstate,
    ContactChannel,
    FabricationState,
    SaleState,
    ShippingCarrier,
    ShippingOrigin,
    ShippingService,
    ShippingState,
    StampType,
    TaskStatus,
    coerce,
    coerce_bool,
    from_db,
    to_db,
)


logger = get_logger(__name__)

STAMP_TABLE = "sellos"
ORDER_TABLE = "ordenes"
CUSTOMER_TABLE = "clientes"
TASK_TABLE = "tareas"

CM_TO_MM = 10.0

_PREVIEW_SUFFIX = re.compile(r"_preview\.png$", re.IGNORECASE)

# tipo_envio value meaning the customer picks the order up
_PICKUP_SERVICE = "Retiro"


# =============================================================================
# READ: ROW -> MODEL
# =============================================================================

def customer_from_record(row: Optional[Dict[str, Any]]) -> Customer:
    """Map a ``clientes`` row."""
    if not row:
        return Customer()
    return Customer(
        id=str(row.get("id") or ""),
        first_name=row.get("nombre") or "",
        last_name=row.get("apellido") or "",
        phone_e164=row.get("telefono") or "",
        email=row.get("mail") or None,
        national_id=row.get("dni") or None,
        channel=from_db(ContactChannel, row.get("medio_contacto"), ContactChannel.OTHER),
    )


def stamp_from_record(row: Dict[str, Any], order_row: Optional[Dict[str, Any]] = None) -> Stamp:
    """
    Map a ``sellos`` row.

    Args:
        row: Stamp row
        order_row: Parent ``ordenes`` row; supplies the shipping state

    Returns:
        Stamp
    """
    raw_fabrication = row.get("estado_fabricacion")
    legacy_priority = _is_legacy_priority(raw_fabrication)
    if legacy_priority:
        logger.debug(f"Stamp {row.get('id')}: legacy '{LEGACY_PRIORITY_DB_VALUE}' state translated")

    aspire = coerce(AspireSubstate, row.get("estado_aspire"))
    if aspire is not None:
        production = ProductionState.scheduled(aspire)
    elif legacy_priority:
        production = ProductionState(FabricationState.NOT_STARTED)
    else:
        production = ProductionState(
            from_db(FabricationState, raw_fabrication, FabricationState.NOT_STARTED)
        )

    raw_shipping = (order_row or {}).get("estado_envio")
    preview = row.get("archivo_vector_preview") or None

    return Stamp(
        id=str(row["id"]),
        order_id=str(row.get("orden_id") or ""),
        design_name=row.get("diseno") or "",
        width_mm=_cm_to_mm(row.get("ancho_real")),
        height_mm=_cm_to_mm(row.get("largo_real")),
        stamp_type=from_db(StampType, row.get("tipo"), StampType.CLASSIC),
        production=production,
        sale_state=from_db(SaleState, row.get("estado_venta"), SaleState.DEPOSITED),
        shipping_state=from_db(ShippingState, raw_shipping, ShippingState.NO_SHIPMENT),
        is_priority=coerce_bool(row.get("es_prioritario"), False) or legacy_priority,
        program=row.get("programa_nombre") or None,
        machine=row.get("maquina") or None,
        value=_number(row.get("valor")),
        deposit=_number(row.get("senia")),
        stored_remaining=_optional_number(row.get("restante")),
        files=StampFiles(
            base_url=row.get("archivo_base") or None,
            vector_url=_PREVIEW_SUFFIX.sub(".eps", preview) if preview else None,
            vector_preview_url=preview,
            photo_url=row.get("foto_sello") or None,
        ),
        notes=row.get("nota") or "",
        deadline=row.get("fecha_limite") or None,
        created_at=row.get("created_at") or None,
    )


def task_from_record(row: Dict[str, Any]) -> Task:
    """Map a ``tareas`` row."""
    return Task(
        id=str(row["id"]),
        order_id=str(row.get("orden_id") or ""),
        title=row.get("titulo") or "",
        description=row.get("descripcion") or None,
        status=coerce(TaskStatus, row.get("estado")) or TaskStatus.PENDING,
        created_at=row.get("created_at") or None,
        completed_at=row.get("completada_at") or None,
        due_date=row.get("fecha_limite") or None,
    )


def order_from_record(
    row: Dict[str, Any],
    customer_row: Optional[Dict[str, Any]] = None,
    tasks: Iterable[Dict[str, Any]] = (),
) -> Order:
    """Map an ``ordenes`` row with its customer and task rows."""
    raw_carrier = row.get("empresa_envio")
    carrier = coerce(ShippingCarrier, raw_carrier)
    if raw_carrier and carrier is None:
        # Any carrier the store knows and we do not lands in the generic bucket
        carrier = ShippingCarrier.OTHER

    raw_service = row.get("tipo_envio")
    origin = (
        ShippingOrigin.PICKUP_AT_ORIGIN if raw_service == _PICKUP_SERVICE
        else ShippingOrigin.DROP_AT_BRANCH
    )

    return Order(
        id=str(row["id"]),
        customer=customer_from_record(customer_row),
        order_date=row.get("fecha") or None,
        taken_by=row.get("taken_by") or None,
        shipping=ShippingSelection(
            carrier=carrier,
            service=coerce(ShippingService, raw_service),
            origin=origin,
            tracking_number=row.get("seguimiento") or None,
        ),
        shipping_state=from_db(ShippingState, row.get("estado_envio"), ShippingState.NO_SHIPMENT),
        sale_state=coerce(SaleState, row.get("estado_orden")),
        cached_value=_number(row.get("valor_total")),
        cached_deposit=_number(row.get("senia_total")),
        cached_remaining=_optional_number(row.get("restante")),
        deadline=row.get("fecha_limite") or None,
        tasks=tuple(task_from_record(task) for task in tasks),
    )


# =============================================================================
# WRITE: MODEL -> ROW
# =============================================================================

def customer_to_record(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id or None,
        "nombre": customer.first_name,
        "apellido": customer.last_name,
        "telefono": customer.phone_e164,
        "mail": customer.email,
        "dni": customer.national_id,
        "medio_contacto": to_db(customer.channel),
    }


def stamp_to_record(stamp: Stamp) -> Dict[str, Any]:
    """Full ``sellos`` row. The shipping replica has no column and is omitted."""
    return {
        "id": stamp.id,
        "orden_id": stamp.order_id,
        "diseno": stamp.design_name or None,
        "ancho_real": _mm_to_cm(stamp.width_mm),
        "largo_real": _mm_to_cm(stamp.height_mm),
        "tipo": to_db(stamp.stamp_type),
        **_production_columns(stamp.production),
        "estado_venta": to_db(stamp.sale_state),
        "es_prioritario": stamp.is_priority,
        "programa_nombre": stamp.program,
        "maquina": stamp.machine,
        "valor": stamp.value,
        "senia": stamp.deposit,
        "restante": stamp.stored_remaining,
        "archivo_base": stamp.files.base_url,
        "archivo_vector_preview": stamp.files.vector_preview_url,
        "foto_sello": stamp.files.photo_url,
        "nota": stamp.notes or None,
        "fecha_limite": stamp.deadline,
    }


def task_to_record(task: Task) -> Dict[str, Any]:
    """Full ``tareas`` row."""
    return {
        "id": task.id,
        "orden_id": task.order_id,
        "titulo": task.title,
        "descripcion": task.description,
        "estado": task.status.value,
        "created_at": task.created_at,
        "completada_at": task.completed_at,
        "fecha_limite": task.due_date,
    }


def order_to_record(order: Order) -> Dict[str, Any]:
    """Full ``ordenes`` row."""
    return {
        "id": order.id,
        "cliente_id": order.customer.id or None,
        "fecha": order.order_date,
        "taken_by": order.taken_by,
        **_shipping_columns(order.shipping),
        "estado_envio": to_db(order.shipping_state),
        "estado_orden": to_db(order.sale_state) if order.sale_state else None,
        "valor_total": order.cached_value,
        "senia_total": order.cached_deposit,
        "restante": order.cached_remaining,
        "fecha_limite": order.deadline,
    }


def patch_table(patch: Patch) -> str:
    return STAMP_TABLE if patch.target is PatchTarget.STAMP else ORDER_TABLE


def patch_to_updates(patch: Patch) -> Dict[str, Any]:
    """
    Column updates for one engine patch.

    Stamp shipping replicas have no column and produce no update; the
    order patch that precedes them carries ``estado_envio``. Invalidation
    patches produce no column update either.

    An order ``tasks`` change has no ``ordenes`` column either: tasks live
    in their own ``tareas`` table and are written one row at a time with
    ``task_to_record``.

    Raises:
        InvalidFieldEditError: A patched field has no column
    """
    columns = _STAMP_COLUMNS if patch.target is PatchTarget.STAMP else _ORDER_COLUMNS
    updates: Dict[str, Any] = {}

    for name, value in patch.changes.items():
        if patch.target is PatchTarget.ORDER:
            if name == "tasks":
                continue
            if name == "shipping":
                updates.update(_shipping_columns(value))
                continue
            if name == "customer":
                updates["cliente_id"] = value.id or None
                continue

        if patch.target is PatchTarget.STAMP and name == "shipping_state":
            continue
        if patch.target is PatchTarget.STAMP and name == "production":
            updates.update(_production_columns(value))
            continue
        if patch.target is PatchTarget.STAMP and name == "files":
            updates.update({
                "archivo_base": value.base_url,
                "archivo_vector_preview": value.vector_preview_url,
                "foto_sello": value.photo_url,
            })
            continue

        column = columns.get(name)
        if column is None:
            raise InvalidFieldEditError(name, f"no {patch_table(patch)} column")
        updates[column] = _to_column_value(name, value)

    return updates


def _shipping_columns(shipping: ShippingSelection) -> Dict[str, Any]:
    # Pickup without a service is stored as tipo_envio "Retiro"
    if shipping.origin is ShippingOrigin.PICKUP_AT_ORIGIN and shipping.service is None:
        service = _PICKUP_SERVICE
    else:
        service = to_db(shipping.service) if shipping.service else None

    return {
        "empresa_envio": to_db(shipping.carrier) if shipping.carrier else None,
        "tipo_envio": service,
        "seguimiento": shipping.tracking_number,
    }


def _production_columns(production: ProductionState) -> Dict[str, Any]:
    return {
        "estado_fabricacion": to_db(production.fabrication),
        "estado_aspire": production.aspire.value if production.aspire else None,
    }


_STAMP_COLUMNS: Dict[str, str] = {
    "design_name": "diseno",
    "width_mm": "ancho_real",
    "height_mm": "largo_real",
    "stamp_type": "tipo",
    "sale_state": "estado_venta",
    "is_priority": "es_prioritario",
    "program": "programa_nombre",
    "machine": "maquina",
    "value": "valor",
    "deposit": "senia",
    "stored_remaining": "restante",
    "notes": "nota",
    "deadline": "fecha_limite",
}

_ORDER_COLUMNS: Dict[str, str] = {
    "shipping_state": "estado_envio",
    "sale_state": "estado_orden",
    "cached_value": "valor_total",
    "cached_deposit": "senia_total",
    "cached_remaining": "restante",
    "deadline": "fecha_limite",
    "order_date": "fecha",
    "taken_by": "taken_by",
}


def _to_column_value(name: str, value: Any) -> Any:
    if name in ("width_mm", "height_mm"):
        return _mm_to_cm(value)
    if isinstance(value, Enum):
        return to_db(value)
    return value


# =============================================================================
# HELPERS
# =============================================================================

def _is_legacy_priority(raw: Any) -> bool:
    return isinstance(raw, str) and raw.strip().casefold() == LEGACY_PRIORITY_DB_VALUE.casefold()


def _number(raw: Any) -> float:
    try:
        return float(raw) if raw is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _optional_number(raw: Any) -> Optional[float]:
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _cm_to_mm(raw: Any) -> float:
    return _number(raw) * CM_TO_MM


def _mm_to_cm(value: Optional[float]) -> Optional[float]:
    if not value:
        return None
    return value / CM_TO_MM
