"""
StampOrderWeb - Flask Application Entry Point.

create_app() wires the pieces in order: .env and config class, logging,
the shipping cost table, the order store and service, the blueprints and
the JSON error handlers.

ARCHITECTURE:
    Flask request threads
    └── OrderService (shared, app.config["ORDER_SERVICE"])
        ├── rule engines (pure: transitions, aggregation, balance, ranking)
        └── OrderStore (one lock, atomic patch sets)

No background threads. Every request reads a consistent snapshot of an
order and commits its whole patch set in one store call.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException

from config import BASE_DIR
from logging_config import setup_logging, get_logger
from core.exceptions import StampOrderError
from modules.balance import ShippingCostTable
from services.order_service import OrderService
from services.order_store import OrderStore
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _log_level(config) -> int:
    """LOG_LEVEL when set, otherwise DEBUG/INFO from the DEBUG flag."""
    name = (config.get("LOG_LEVEL") or "").strip().upper()
    if name:
        level = logging.getLevelName(name)
        if isinstance(level, int):
            return level
    return logging.DEBUG if config.get("DEBUG") else logging.INFO


def create_app(
    config_object: str = "config.Config",
    store: Optional[OrderStore] = None,
    shipping_table: Optional[ShippingCostTable] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class
        store: Pre-built OrderStore (a fresh one if None)
        shipping_table: Pre-built shipping prices (loaded from
            SHIPPING_COSTS_FILE if None)

    Returns:
        Configured Flask application
    """
    # .env next to the app wins over the shell environment
    load_dotenv(BASE_DIR / ".env", override=True)

    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = False

    log_level = _log_level(app.config)
    root_logger = setup_logging(
        log_level=log_level,
        log_dir=Path(app.config["LOG_DIR"]) if app.config.get("LOG_DIR") else None,
        enable_file_logging=bool(app.config.get("LOG_TO_FILE")),
    )
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting StampOrderWeb in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # ORDER SERVICE
    # =========================================================================

    if shipping_table is None:
        shipping_table = ShippingCostTable.from_json_file(app.config.get("SHIPPING_COSTS_FILE"))

    app.config["ORDER_SERVICE"] = OrderService(
        store=store if store is not None else OrderStore(),
        shipping_table=shipping_table,
        config=app.config,
    )

    register_blueprints(app)

    # =========================================================================
    # JSON ERRORS
    # =========================================================================

    @app.errorhandler(StampOrderError)
    def handle_stamp_order_error(e: StampOrderError):
        log = logger.error if e.status_code >= 500 else logger.info
        log(f"{type(e).__name__}: {e}")
        return e.to_dict(), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"error": e.name, "message": e.description}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return {"error": "Internal Server Error", "message": "An unexpected error occurred."}, 500

    logger.info(f"Application ready ({len(shipping_table)} shipping prices)")
    return app


if __name__ == "__main__":
    app = create_app(os.environ.get("APP_CONFIG", "config.Config"))
    app.run(debug=app.config.get("DEBUG", False))
