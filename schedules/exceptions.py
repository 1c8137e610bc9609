"""
Errors raised by the scheduling engine.

Views translate them into HTTP responses through `code` / `status_code`;
services never build responses themselves.
"""


class SchedulingError(Exception):
    """Base exception for scheduling failures."""

    status_code = 400

    def __init__(self, message, code="scheduling_error"):
        self.message = message
        self.code = code
        super().__init__(self.message)

    def as_response_data(self):
        return {"detail": self.message, "code": self.code}


class EntityNotFoundError(SchedulingError):
    """Raised when a clinic, practitioner or room does not exist or was removed."""

    status_code = 404

    def __init__(self, message="The requested entity was not found."):
        super().__init__(message, code="not_found")


class ScheduleValidationError(SchedulingError):
    """
    Raised when schedule input violates a structural rule.

    `errors` maps field names to human-readable reasons so a caller can
    report every violation of a rejected write at once.
    """

    def __init__(self, message="Invalid schedule data.", errors=None):
        self.errors = errors or {}
        super().__init__(message, code="invalid")

    def as_response_data(self):
        data = super().as_response_data()
        if self.errors:
            data["errors"] = self.errors
        return data


class OccupancyError(SchedulingError):
    """Raised when occupancy aggregation fails unexpectedly."""

    status_code = 500

    def __init__(self, message="Could not compute occupancy."):
        super().__init__(message, code="occupancy_failed")
