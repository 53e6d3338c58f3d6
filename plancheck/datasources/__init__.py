"""Plan capture from a running database server."""

from .postgresql import CaptureError, PlanCapture, read_query_file

__all__ = [
    "CaptureError",
    "PlanCapture",
    "read_query_file",
]
