import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout.models import FORWARD_FROM, UNPAID, PaymentStatus, PaymentTransaction, PricingEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingRecord:
    entry_id: int
    total_price: Decimal
    currency: str = "USD"


class TokenResolver:
    """Looks up the pricing record a secure token authorizes."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def resolve(self, secure_token: Optional[str]) -> Optional[PricingRecord]:
        if not secure_token:
            return None

        db = self.session_factory()
        try:
            # Several rows for one token: the oldest one wins.
            row = (
                db.query(PricingEntry)
                .filter_by(secure_token=secure_token)
                .order_by(PricingEntry.id)
                .first()
            )
            if row is None:
                return None
            return PricingRecord(entry_id=row.entry_id, total_price=Decimal(row.total_price))
        finally:
            db.close()


class PaymentStatusStore:
    """
    Payment status per entry, plus the transaction id -> entry mapping the
    webhook needs. Every write is safe to repeat with the same arguments.
    """

    def __init__(self, session_factory: Callable[[], Session], resolver: Optional[TokenResolver] = None):
        self.session_factory = session_factory
        self.resolver = resolver or TokenResolver(session_factory)

    def get_price_and_entry(self, secure_token: Optional[str]) -> Optional[PricingRecord]:
        return self.resolver.resolve(secure_token)

    def _ensure_row(self, db: Session, entry_id: int) -> None:
        if db.get(PaymentStatus, entry_id) is not None:
            return
        db.add(PaymentStatus(entry_id=entry_id, status=UNPAID))
        try:
            db.commit()
        except IntegrityError:
            # Another request created it first
            db.rollback()

    def get_status(self, entry_id: int) -> Optional[PaymentStatus]:
        db = self.session_factory()
        try:
            row = db.get(PaymentStatus, entry_id)
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def set_status(self, entry_id: int, status: str, transaction_id: Optional[str] = None) -> bool:
        """Move the entry forward to ``status``.

        Returns True only for the call that performed the transition, so
        callers can hang one-off side effects on it.
        """
        if status not in FORWARD_FROM:
            raise ValueError(f"Unknown payment status: {status}")

        db = self.session_factory()
        try:
            self._ensure_row(db, entry_id)
            values = {"status": status}
            if transaction_id:
                values["transaction_id"] = transaction_id
            changed = (
                db.query(PaymentStatus)
                .filter(PaymentStatus.entry_id == entry_id,
                        PaymentStatus.status.in_(FORWARD_FROM[status]))
                .update(values, synchronize_session=False)
            )
            db.commit()
        finally:
            db.close()

        if changed:
            logger.info("Entry %s moved to %s (transaction %s)", entry_id, status, transaction_id)
        return bool(changed)

    def record_transaction(self, entry_id: int, transaction_id: Optional[str]) -> None:
        if not transaction_id:
            return

        db = self.session_factory()
        try:
            self._ensure_row(db, entry_id)
            if db.get(PaymentTransaction, transaction_id) is not None:
                return
            db.add(PaymentTransaction(transaction_id=transaction_id, entry_id=entry_id))
            try:
                db.commit()
            except IntegrityError:
                # Recorded concurrently by a retried capture
                db.rollback()
        finally:
            db.close()

    def find_entry_by_transaction(self, transaction_id: Optional[str]) -> Optional[int]:
        if not transaction_id:
            return None

        db = self.session_factory()
        try:
            row = db.get(PaymentTransaction, transaction_id)
            return row.entry_id if row else None
        finally:
            db.close()
