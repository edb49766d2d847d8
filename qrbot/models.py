"""Durable ledger schema: one row per account, one row per payment."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()

FREE_STANDARD_DEFAULT = 5


def _utcnow():
    return datetime.now(timezone.utc)


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("free_standard_remaining >= 0", name="ck_free_standard_nonneg"),
        CheckConstraint("premium_high_remaining >= 0", name="ck_premium_high_nonneg"),
        CheckConstraint("premium_ultra_remaining >= 0", name="ck_premium_ultra_nonneg"),
        CheckConstraint("total_spent >= 0", name="ck_total_spent_nonneg"),
    )

    user_id = Column(BigInteger, primary_key=True, autoincrement=False)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    free_standard_remaining = Column(Integer, nullable=False, default=FREE_STANDARD_DEFAULT)
    premium_high_remaining = Column(Integer, nullable=False, default=0)
    premium_ultra_remaining = Column(Integer, nullable=False, default=0)
    total_spent = Column(Integer, nullable=False, default=0)


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_payment_quantity_pos"),
        CheckConstraint("amount >= 0", name="ck_payment_amount_nonneg"),
    )

    # Provider charge id; unique, so a replayed notification cannot insert twice.
    charge_id = Column(String, primary_key=True)
    user_id = Column(BigInteger, ForeignKey("accounts.user_id"), nullable=False, index=True)
    tier = Column(String, nullable=False)             # "high" / "ultra"
    quantity = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)
    currency = Column(String, nullable=False, default="XTR")
    payload = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
