"""
Custom exceptions for StampOrderWeb.

Exception Hierarchy:
    StampOrderError (base)
    ├── InconsistentAggregateInputError - Order summary cannot be derived (fatal for that read)
    ├── PatchApplicationError           - A patch set could not be committed (nothing applied)
    ├── RecordNotFoundError             - Unknown order / stamp / task id
    └── InvalidFieldEditError           - Direct edit of a guarded or unknown field

Guard violations are NOT exceptions: the transition engine returns a
``Rejected`` value so callers are forced to branch on it. An unknown
shipping route is not an error either - it resolves to zero cost with a
pending flag.
"""

from typing import Optional, Dict, Any


class StampOrderError(Exception):
    """
    Base exception for all StampOrderWeb errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly error body."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": dict(self.details),
        }


# =============================================================================
# READ-SIDE ERRORS
# =============================================================================

class InconsistentAggregateInputError(StampOrderError):
    """
    The stamps handed to the aggregation engine cannot describe the order.

    Raised when the order has no stamps, or when a stamp references a
    different order id. No partially-summed result is ever returned.
    """

    status_code = 409

    def __init__(self, order_id: str, reason: str, stamp_id: Optional[str] = None):
        message = f"Cannot aggregate order {order_id}: {reason}"
        details = {"order_id": order_id, "reason": reason}
        if stamp_id:
            details["stamp_id"] = stamp_id
        super().__init__(message, details)
        self.order_id = order_id
        self.reason = reason
        self.stamp_id = stamp_id


class RecordNotFoundError(StampOrderError):
    """An order, stamp or task id does not exist in the store."""

    status_code = 404

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}", {"kind": kind, "id": record_id})
        self.kind = kind
        self.record_id = record_id


# =============================================================================
# WRITE-SIDE ERRORS
# =============================================================================

class PatchApplicationError(StampOrderError):
    """
    A patch set could not be applied as a whole.

    The store validates every patch before writing anything, so when this
    is raised no record has changed. Callers must surface it and must not
    retry a subset of the patches.
    """

    status_code = 409

    def __init__(self, reason: str, failed_patch: Optional[Dict[str, Any]] = None,
                 patch_count: int = 0):
        details: Dict[str, Any] = {"reason": reason, "patch_count": patch_count}
        if failed_patch:
            details["failed_patch"] = failed_patch
        super().__init__(f"Patch set rejected by store: {reason}", details)
        self.reason = reason
        self.failed_patch = failed_patch


class InvalidFieldEditError(StampOrderError):
    """
    A direct field edit touched a field that must go through the
    transition engine, or a field that does not exist.
    """

    status_code = 400

    def __init__(self, field_name: str, reason: str):
        super().__init__(
            f"Cannot edit '{field_name}': {reason}",
            {"field": field_name, "reason": reason},
        )
        self.field_name = field_name
        self.reason = reason
