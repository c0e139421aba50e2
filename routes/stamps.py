"""
Stamp routes.

Handles:
- /api/stamps/<id> - Get, direct edit, delete
- /api/stamps/<id>/transitions - Guarded state changes
"""

from flask import Blueprint

from logging_config import get_logger

from .common import json_body, order_service


# Module logger
logger = get_logger(__name__)

stamps_bp = Blueprint("stamps", __name__, url_prefix="/api/stamps")


@stamps_bp.route("/<stamp_id>", methods=["GET"])
def get_stamp(stamp_id: str):
    service = order_service()
    return service.describe_stamp(service.get_stamp(stamp_id))


@stamps_bp.route("/<stamp_id>", methods=["PATCH"])
def edit_stamp(stamp_id: str):
    """Direct edit of unguarded fields (value, deposit, notes, dimensions...)."""
    service = order_service()
    stamp = service.edit_stamp(stamp_id, json_body())
    return service.describe_stamp(stamp)


@stamps_bp.route("/<stamp_id>", methods=["DELETE"])
def delete_stamp(stamp_id: str):
    stamp = order_service().delete_stamp(stamp_id)
    return {"deleted": stamp.id, "order_id": stamp.order_id}


@stamps_bp.route("/<stamp_id>/transitions", methods=["POST"])
def apply_transition(stamp_id: str):
    """
    Guarded state change.

    Body: ``{"field": "sale_state", "value": "TRANSFERIDO"}``

    Returns 200 with the committed patch set, or 409 with the guard code
    and reason when the change is rejected (nothing is written).
    """
    data = json_body()
    if "field" not in data:
        return {"error": "MissingField", "message": "'field' is required"}, 400

    result = order_service().change_state(stamp_id, data["field"], data.get("value"))
    if not result.accepted:
        return result.to_dict(), 409
    return result.to_dict()
