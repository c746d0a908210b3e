"""Errors raised by the prediction refresh flow."""


class RefreshError(Exception):
    """Base error that aborts a refresh request with an HTTP status."""

    status_code = 500
    message = "Server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class AuthError(RefreshError):
    """Caller has no valid bearer token."""

    status_code = 401
    message = "Unauthorized"


class EntitlementError(RefreshError):
    """Caller's subscription does not include AI predictions."""

    status_code = 403
    message = "Pro required"


class BudgetExceededError(RefreshError):
    """Caller has used up today's refresh budget."""

    status_code = 429
    message = "Daily refresh limit reached"


class ProviderError(Exception):
    """Language-model call failed (HTTP error, timeout or undecodable reply).

    Recovered per vehicle by falling back to the baseline forecast.
    """


class PersistenceError(Exception):
    """Replacing a vehicle's predictions failed; the vehicle is skipped."""
