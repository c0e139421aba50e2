"""Rule engines for the StampOrderWeb application."""

__all__ = [
    "aggregation",
    "balance",
    "ranking",
    "record_mapper",
    "transitions",
]
