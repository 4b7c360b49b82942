"""
Order lifecycle: create, capture and webhook reconciliation.

Capture and webhook can both observe a completed payment. Whichever one
moves the entry to paid sends the notifications; the other finds the
entry already paid and does nothing.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from checkout.exceptions import ClientInputError, DependencyFailure, UnknownTransactionError
from checkout.models import PAID, PENDING as STATUS_PENDING
from checkout.notifications import NotificationDispatcher
from checkout.paypal_client import COMPLETED, PENDING, PayPalClient
from checkout.store import PaymentStatusStore, PricingRecord

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Invalid token or no data found"
CAPTURE_COMPLETED_EVENT = "PAYMENT.CAPTURE.COMPLETED"


@dataclass
class Outcome:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


class OrderLifecycle:
    def __init__(self, paypal: PayPalClient, store: PaymentStatusStore,
                 notifier: NotificationDispatcher):
        self.paypal = paypal
        self.store = store
        self.notifier = notifier

    def _pricing(self, secure_token: Optional[str]) -> PricingRecord:
        if not secure_token:
            raise ClientInputError(INVALID_TOKEN)
        try:
            record = self.store.get_price_and_entry(secure_token)
        except SQLAlchemyError as exc:
            logger.exception("Pricing lookup failed")
            raise DependencyFailure("Could not load order details") from exc
        if record is None:
            raise ClientInputError(INVALID_TOKEN)
        return record

    def _notify(self, entry_id: int, transaction_id: Optional[str]) -> None:
        try:
            self.notifier.notify_paid(entry_id, transaction_id)
        except Exception:
            # The payment has already succeeded
            logger.exception("Notification dispatch failed for entry %s", entry_id)

    def _mark_paid(self, entry_id: int, transaction_id: Optional[str]) -> bool:
        if self.store.set_status(entry_id, PAID, transaction_id):
            self._notify(entry_id, transaction_id)
            return True
        logger.info("Entry %s already paid; nothing to do", entry_id)
        return False

    def create_order(self, secure_token: Optional[str]) -> Outcome:
        record = self._pricing(secure_token)
        logger.info("Creating order for entry %s with total %s", record.entry_id, record.total_price)
        order = self.paypal.create_order(record.total_price)
        return Outcome(order.status_code, order.raw)

    def capture_order(self, order_id: str, secure_token: Optional[str]) -> Outcome:
        record = self._pricing(secure_token)
        capture = self.paypal.capture_order(order_id)
        entry_id, capture_txn = record.entry_id, capture.transaction_id

        try:
            self.store.record_transaction(entry_id, capture_txn)
            if capture.completed:
                self._mark_paid(entry_id, capture_txn)
            elif capture.status == PENDING:
                self.store.set_status(entry_id, STATUS_PENDING, capture_txn)
        except SQLAlchemyError as exc:
            logger.exception("Could not persist capture of order %s (transaction %s, status %s) for entry %s",
                             order_id, capture_txn, capture.status, entry_id)
            raise DependencyFailure(
                "Capture result could not be recorded",
                {"transaction_id": capture_txn},
            ) from exc

        if capture.completed:
            return Outcome(capture.status_code, capture.raw)

        logger.warning("Order %s for entry %s not completed: status=%s transaction=%s",
                       order_id, entry_id, capture.status, capture_txn)
        return Outcome(
            capture.status_code,
            {"error": f"Failed to capture transaction. Payment status: {capture.status}"},
        )

    def handle_webhook(self, event: Dict[str, Any]) -> Outcome:
        event_type = event.get("event_type")
        resource = event.get("resource") or {}
        if event_type != CAPTURE_COMPLETED_EVENT or resource.get("status") != COMPLETED:
            logger.info("Ignoring webhook event %s (status %s)", event_type, resource.get("status"))
            return Outcome(200, {"ok": True})

        transaction_id = resource.get("id")
        entry_id = self.store.find_entry_by_transaction(transaction_id)
        if entry_id is None:
            logger.info("Webhook for unrecorded transaction %s", transaction_id)
            raise UnknownTransactionError("Unknown transaction", {"transaction_id": transaction_id})

        self._mark_paid(entry_id, transaction_id)
        return Outcome(200, {"ok": True})
