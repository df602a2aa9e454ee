# canteen/errors.py
from __future__ import annotations


class CanteenError(Exception):
    """Base for business-rule failures; carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(CanteenError):
    status_code = 400


class StateConflict(CanteenError):
    # e.g. cancelling a non-pending order, joining a paused queue
    status_code = 400


class Unauthorized(CanteenError):
    status_code = 401


class Forbidden(CanteenError):
    status_code = 403


class NotFound(CanteenError):
    status_code = 404


class PayloadTooLarge(CanteenError):
    status_code = 413
