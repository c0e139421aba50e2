"""
Flask route blueprints for StampOrderWeb.

This module contains all route handlers organized by functionality:
- api: Health check and shipping price lookups
- orders: Order CRUD, stamps and tasks of an order, summary and balance
- stamps: Direct stamp edits and guarded state transitions
- production: Production queue and fabrication counts

Each blueprint is registered with the Flask app in create_app().
"""

from .api import api_bp
from .orders import orders_bp
from .stamps import stamps_bp
from .production import production_bp

__all__ = [
    "api_bp",
    "orders_bp",
    "stamps_bp",
    "production_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(api_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(stamps_bp)
    app.register_blueprint(production_bp)
