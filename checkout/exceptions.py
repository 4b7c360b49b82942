"""
Checkout error hierarchy.

Every error the request handlers expect carries the HTTP status it maps to
and renders as a ``{"error": ...}`` JSON body.
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    """Base class for errors rendered by the app-level exception handler."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.message}
        body.update(self.details)
        return body


class ClientInputError(CheckoutError):
    """Missing or unknown secure token. User-correctable."""

    status_code = 400


class UnknownTransactionError(CheckoutError):
    """
    A webhook referenced a transaction no entry has recorded yet.

    Expected when the webhook outruns the synchronous capture.
    """

    status_code = 400


class DependencyFailure(CheckoutError):
    """The datastore or the entry lookup service failed."""

    status_code = 500


class ProcessorError(CheckoutError):
    """
    PayPal rejected a call or could not be reached.

    ``processor_status`` is PayPal's HTTP status, or None on transport
    failure. ``body`` is PayPal's parsed error body when there was one.
    """

    def __init__(self, message: str, processor_status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.processor_status = processor_status
        self.body = body
        if processor_status is not None:
            self.status_code = processor_status

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.body, dict) and self.body:
            return self.body
        return {"error": self.message}
