"""
Domain exceptions raised by the service layer.

Services raise these; the API routers translate them into HTTP responses
(404 for NotFoundError, 409 for LockBusyError). InvalidTransitionError marks
a status change the state machine does not allow.
"""

from datetime import datetime
from typing import Optional


class DashboardError(Exception):
    """Base class for all domain errors."""


class NotFoundError(DashboardError):
    """Raised when a requested document does not exist."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class LockBusyError(DashboardError):
    """Raised when a per-date processing lock is already held."""

    def __init__(self, resource: str, holder: Optional[str] = None, expires_at: Optional[datetime] = None):
        super().__init__(f"{resource} is already being processed")
        self.resource = resource
        self.holder = holder
        self.expires_at = expires_at


class InvalidTransitionError(DashboardError, ValueError):
    """Raised when a record's processing status change is not allowed."""

    def __init__(self, record_id: str, from_status: str, to_status: str):
        super().__init__(
            f"Record {record_id} cannot go from '{from_status}' to '{to_status}'"
        )
        self.record_id = record_id
        self.from_status = from_status
        self.to_status = to_status

