"""
Production routes.

Handles:
- /api/production/queue - Every stamp in production order
- /api/production/counts - Stamps per fabrication state
"""

from flask import Blueprint, request

from logging_config import get_logger

from .common import order_service


# Module logger
logger = get_logger(__name__)

production_bp = Blueprint("production", __name__, url_prefix="/api/production")


@production_bp.route("/queue", methods=["GET"])
def queue():
    """
    Production queue.

    Query:
        sort: secondary criteria, e.g. ``medida:desc,fecha``
        fabrication: comma-separated fabrication states to keep
    """
    service = order_service()
    raw_states = request.args.get("fabrication")
    states = [s.strip() for s in raw_states.split(",") if s.strip()] if raw_states else None

    try:
        stamps = service.production_queue(request.args.get("sort"), states)
    except ValueError as e:
        return {"error": "InvalidSortCriteria", "message": str(e)}, 400

    return {
        "priority_order": service.priority_order,
        "count": len(stamps),
        "stamps": [service.describe_stamp(stamp) for stamp in stamps],
    }


@production_bp.route("/counts", methods=["GET"])
def counts():
    """Header chips: ``?order_id=...`` for one order, the whole shop otherwise."""
    return {"counts": order_service().fabrication_counts(request.args.get("order_id"))}
