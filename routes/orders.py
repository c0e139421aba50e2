"""
Order routes.

Handles:
- /api/orders - List (sorted order view) and create
- /api/orders/<id> - Get, edit header, delete
- /api/orders/<id>/stamps - List and add stamps
- /api/orders/<id>/tasks - List and add tasks, change task status
- /api/orders/<id>/summary - Aggregated view
- /api/orders/<id>/balance - Remaining balance (order or one stamp)
"""

from flask import Blueprint, request

from logging_config import get_logger

from .common import json_body, order_service


# Module logger
logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("", methods=["GET"])
def list_orders():
    """
    Order view, most urgent first.

    Query: ``sort=cliente,valor:desc`` (secondary criteria)
    """
    service = order_service()
    try:
        entries = service.order_queue(request.args.get("sort"))
    except ValueError as e:
        return {"error": "InvalidSortCriteria", "message": str(e)}, 400

    return {"orders": [service.describe_order(order.id) for order, _ in entries]}


@orders_bp.route("", methods=["POST"])
def create_order():
    service = order_service()
    order = service.create_order(json_body())
    logger.info(f"Order {order.id[:8]} created")
    return service.describe_order(order.id), 201


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id: str):
    return order_service().describe_order(order_id)


@orders_bp.route("/<order_id>", methods=["PATCH"])
def edit_order(order_id: str):
    """Edit header fields (customer, shipping selection, dates, taken_by)."""
    service = order_service()
    service.edit_order(order_id, json_body())
    return service.describe_order(order_id)


@orders_bp.route("/<order_id>", methods=["DELETE"])
def delete_order(order_id: str):
    removed = order_service().delete_order(order_id)
    return {"deleted": order_id, "stamps_removed": removed}


# =============================================================================
# STAMPS
# =============================================================================

@orders_bp.route("/<order_id>/stamps", methods=["GET"])
def list_stamps(order_id: str):
    service = order_service()
    return {"stamps": [service.describe_stamp(s) for s in service.get_stamps(order_id)]}


@orders_bp.route("/<order_id>/stamps", methods=["POST"])
def add_stamp(order_id: str):
    service = order_service()
    stamp = service.add_stamp(order_id, json_body())
    return service.describe_stamp(stamp), 201


# =============================================================================
# TASKS
# =============================================================================

@orders_bp.route("/<order_id>/tasks", methods=["GET"])
def list_tasks(order_id: str):
    order = order_service().get_order(order_id)
    return {"tasks": [task.to_dict() for task in order.tasks]}


@orders_bp.route("/<order_id>/tasks", methods=["POST"])
def add_task(order_id: str):
    task = order_service().add_task(order_id, json_body())
    return task.to_dict(), 201


@orders_bp.route("/<order_id>/tasks/<task_id>", methods=["PATCH"])
def set_task_status(order_id: str, task_id: str):
    task = order_service().set_task_status(order_id, task_id, json_body().get("status"))
    return task.to_dict()


# =============================================================================
# DERIVED VIEWS
# =============================================================================

@orders_bp.route("/<order_id>/summary", methods=["GET"])
def order_summary(order_id: str):
    return order_service().get_summary(order_id).to_dict()


@orders_bp.route("/<order_id>/balance", methods=["GET"])
def order_balance(order_id: str):
    """Order balance, or one stamp's with ``?stamp_id=...``."""
    balance = order_service().get_balance(order_id, request.args.get("stamp_id"))
    return balance.to_dict()
