"""
Domain error taxonomy.

Every failure that crosses the engine boundary is one of these. Each class
carries the HTTP status the API layer reports and whether a poller may
reschedule after it:

  - InvalidInput            caller error, 400, never retried
  - RateUnavailable         transient upstream failure, retried by reschedule
  - OrderStatusUnavailable  transient upstream failure, retried by reschedule
  - CatalogUnavailable      currencies/institutions lookup failed
  - OrderCreationFailed     provider rejected the order; never resubmitted
  - OrderNotFound           provider has no record of the order, 404
  - AccountVerificationFailed  account-name lookup rejected
"""

from typing import Optional


class OfframpError(Exception):
    """Base class for typed engine failures."""

    status_code: int = 500
    retriable: bool = False

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class InvalidInput(OfframpError):
    status_code = 400

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class RateUnavailable(OfframpError):
    retriable = True


class OrderStatusUnavailable(OfframpError):
    retriable = True


class CatalogUnavailable(OfframpError):
    retriable = True


class OrderCreationFailed(OfframpError):
    pass


class OrderNotFound(OfframpError):
    status_code = 404


class AccountVerificationFailed(OfframpError):
    pass
