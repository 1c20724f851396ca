# Overview: Error taxonomy shared by services and routes.

"""
Every failure a caller can see is one of these kinds.

Services raise them; routes render them as {"error", "details"} with the
kind's status code. Anything else reaching a route is an unexpected error
(logged, rendered as 500).
"""
from __future__ import annotations


class PortalError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class Unauthorized(PortalError):
    """No valid caller identity."""
    status_code = 401


class Forbidden(PortalError):
    """Valid identity, wrong role for the requested action."""
    status_code = 403


class NotFound(PortalError):
    status_code = 404


class ValidationError(PortalError):
    """400-level input problem."""
    status_code = 400


class InvalidTransition(PortalError):
    """Entity is no longer pending; double-submits land here."""
    status_code = 409


class InsufficientStock(PortalError):
    """
    A deduction would take a stock record below zero.

    details["items"] lists every offending line with product_id, location,
    requested, available and shortfall.
    """
    status_code = 409


class DuplicateCustomer(PortalError):
    status_code = 409


class StorageFailure(PortalError):
    """Transient backend failure; the whole request is safe to retry."""
    status_code = 503
