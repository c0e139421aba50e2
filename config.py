"""
Configuration for StampOrderWeb.

All values can be overridden from the environment or a .env file.
The hosted data store is NOT configured here - the in-memory OrderStore
is the storage collaborator wired by the app factory.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _csv(name: str, default: str) -> list:
    """Read a comma-separated environment variable into a list of strings."""
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # ==========================================================================
    # Shipping / Balance Configuration
    # ==========================================================================
    # SHIPPING_COSTS_FILE: JSON list of rows shaped like the hosted
    #   costos_de_envio table ({"empresa", "servicio", "costo", "activo", ...}).
    #   Missing file means every (carrier, service) pair costs nothing.
    #
    # BALANCE_EPSILON: tolerance when deciding whether a stored remaining
    #   figure already has the shipping cost folded in.
    #
    # SHIPPING_PRICE_POLICY: what to do when the stored remaining carries a
    #   shipping component that no longer matches the current price.
    #   "recompute" - show base remaining + current price (default)
    #   "preserve"  - keep the stored figure and flag it as stale
    # ==========================================================================
    SHIPPING_COSTS_FILE = os.environ.get(
        "SHIPPING_COSTS_FILE", str(BASE_DIR / "data" / "shipping_costs.json")
    )
    BALANCE_EPSILON = float(os.environ.get("BALANCE_EPSILON", "0.01"))
    SHIPPING_PRICE_POLICY = os.environ.get("SHIPPING_PRICE_POLICY", "recompute")

    # ==========================================================================
    # Production Queue Configuration
    # ==========================================================================
    # ASPIRE_SUBSTATE_ORDER: order in which Aspire tracks are interleaved
    #   between "not started" and "in progress" in the default queue.
    #
    # PRODUCTION_PRIORITY_ORDER: full rank-key order for the production queue.
    #   Empty means the default built from ASPIRE_SUBSTATE_ORDER.
    # ==========================================================================
    ASPIRE_SUBSTATE_ORDER = _csv(
        "ASPIRE_SUBSTATE_ORDER",
        "Aspire G,Aspire G Check,Aspire C,Aspire C Check,Aspire XL",
    )
    PRODUCTION_PRIORITY_ORDER = _csv("PRODUCTION_PRIORITY_ORDER", "")

    # Free-text limits
    MAX_NOTES_LENGTH = int(os.environ.get("MAX_NOTES_LENGTH", "1000"))

    # ==========================================================================
    # Logging
    # ==========================================================================
    # LOG_LEVEL: overrides the DEBUG-derived level when set (e.g. "WARNING")
    # LOG_TO_FILE: rotating files under LOG_DIR; on by default in production
    # ==========================================================================
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "")
    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "") == "1"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "1") == "1"


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration: no shipping file, no log files."""
    DEBUG = False
    TESTING = True
    SHIPPING_COSTS_FILE = ""
    LOG_TO_FILE = False
