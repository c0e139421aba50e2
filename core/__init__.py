"""
Core module for StampOrderWeb.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
"""

from .exceptions import (
    StampOrderError,
    InconsistentAggregateInputError,
    PatchApplicationError,
    RecordNotFoundError,
    InvalidFieldEditError,
)

__all__ = [
    "StampOrderError",
    "InconsistentAggregateInputError",
    "PatchApplicationError",
    "RecordNotFoundError",
    "InvalidFieldEditError",
]
