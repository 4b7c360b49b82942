from sqlalchemy import Column, DateTime, Integer, Numeric, String, func
from checkout.database import Base

UNPAID = "unpaid"
PENDING = "pending"
PAID = "paid"

# Statuses a record may move forward from, per target status
FORWARD_FROM = {
    UNPAID: (),
    PENDING: (UNPAID,),
    PAID: (UNPAID, PENDING),
}


class PricingEntry(Base):
    __tablename__ = "pricing_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    secure_token = Column(String(255), index=True, nullable=False)
    entry_id = Column(Integer, index=True, nullable=False)   # form submission id
    total_price = Column(Numeric(10, 2), nullable=False)


class PaymentStatus(Base):
    __tablename__ = "payment_statuses"

    entry_id = Column(Integer, primary_key=True, autoincrement=False)
    status = Column(String(16), nullable=False, default=UNPAID)    # unpaid | pending | paid
    transaction_id = Column(String(64), nullable=True)  # capture that set the status
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    transaction_id = Column(String(64), primary_key=True)           # one row per capture attempt
    entry_id = Column(Integer, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
