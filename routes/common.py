"""Helpers shared by the JSON blueprints."""

from typing import Any, Dict

from flask import abort, current_app, request

from services.order_service import OrderService


def order_service() -> OrderService:
    """The OrderService wired by create_app()."""
    service = current_app.config.get("ORDER_SERVICE")
    if service is None:
        abort(503, description="Order service unavailable")
    return service


def json_body() -> Dict[str, Any]:
    """Request JSON object; 400 when the body is not a JSON object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data
