"""
Domain errors raised by the scheduling services.
Routes never build HTTP responses for these by hand; main.py maps them.
"""
from typing import Optional, Dict, Any


class SchedulingError(Exception):
    """Recoverable service-layer error. The caller rolls back and shows `message`."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message}
        body.update(self.extra)
        return body


class Unauthorized(SchedulingError):
    status_code = 401


class Forbidden(SchedulingError):
    status_code = 403


class SubscriptionInactive(SchedulingError):
    status_code = 402

    def __init__(self, subscription_status: Optional[str]):
        super().__init__(
            "Your subscription is not active. Please update your payment method.",
            subscriptionStatus=subscription_status,
        )
        self.subscription_status = subscription_status


class QuotaExceeded(SchedulingError):
    status_code = 403

    def __init__(self, message: str, current_usage: int, limit: int):
        super().__init__(message, quotaExceeded=True, currentUsage=current_usage, limit=limit)
        self.current_usage = current_usage
        self.limit = limit


class NotFound(SchedulingError):
    status_code = 404


class InvalidTransition(SchedulingError):
    status_code = 409


class ValidationError(SchedulingError):
    status_code = 400


ERRORS_BY_STATUS = {
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    409: InvalidTransition,
    400: ValidationError,
    422: ValidationError,
}
