# app/errors.py
"""
Domain errors raised by the services. main.py turns them into JSON
responses: {"detail": <message>, "code": <code>}.
"""
from typing import Optional


class SchedulingError(Exception):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(SchedulingError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(SchedulingError):
    status_code = 403
    code = "FORBIDDEN"


class BadRequestError(SchedulingError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(SchedulingError):
    """Booking collides with something. `code` tells the UI what."""
    status_code = 400
    code = "APPOINTMENT_OVERLAP"

    APPOINTMENT_OVERLAP = "APPOINTMENT_OVERLAP"
    DISRUPTION_BLOCKED = "DISRUPTION_BLOCKED"
    PTO_BLOCKED = "PTO_BLOCKED"
