"""
API routes (service endpoints).

Handles:
- /health - Health check endpoint
- /api/shipping/costs - Active shipping prices
- /api/shipping/quote - Price for one carrier/service pair
"""

from flask import Blueprint, current_app, request

from logging_config import get_logger

from .common import order_service


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    service = current_app.config.get("ORDER_SERVICE")
    if service:
        health_status["checks"]["order_service"] = "ok"
        health_status["checks"]["orders"] = len(service.store.list_orders())
        if len(service.shipping_table):
            health_status["checks"]["shipping_costs"] = "loaded"
        else:
            health_status["checks"]["shipping_costs"] = "empty"
    else:
        health_status["checks"]["order_service"] = "not_available"
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code


@api_bp.route("/api/shipping/costs", methods=["GET"])
def shipping_costs():
    """Active price per carrier/service pair."""
    return {"costs": order_service().shipping_table.to_list()}


@api_bp.route("/api/shipping/quote", methods=["GET"])
def shipping_quote():
    """
    Price for ``?carrier=...&service=...``.

    A missing carrier (or the generic OTHER bucket) comes back pending.
    """
    quote = order_service().shipping_table.lookup(
        request.args.get("carrier"), request.args.get("service")
    )
    return quote.to_dict()
