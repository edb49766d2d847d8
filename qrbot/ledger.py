"""Entitlement ledger: free and premium render counters plus payment records.

Every mutation is a single transaction. Consumption is one conditional
UPDATE (decrement only while the counter is positive), so a balance can
never be overdrawn even when requests for the same user race. Crediting
happens in the same transaction as the payment insert, and the charge id is
the payments primary key, so a replayed payment notification credits at
most once.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import create_engine, event, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from qrbot.errors import DuplicateChargeId, InsufficientBalance, UnknownAccount
from qrbot.logging import audit, get_logger, trace
from qrbot.models import FREE_STANDARD_DEFAULT, Account, Base, Payment
from qrbot.tiers import CURRENCY, PAID_TIERS, QualityTier

log = get_logger("ledger")

_COUNTERS = {
    QualityTier.STANDARD: Account.free_standard_remaining,
    QualityTier.HIGH: Account.premium_high_remaining,
    QualityTier.ULTRA: Account.premium_ultra_remaining,
}


@dataclass(frozen=True)
class Profile:
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class UserAccount:
    user_id: int
    username: str | None
    first_name: str | None
    last_name: str | None
    created_at: datetime | None
    free_standard_remaining: int
    premium_high_remaining: int
    premium_ultra_remaining: int
    total_spent: int

    def remaining(self, tier: QualityTier) -> int:
        return getattr(self, _COUNTERS[QualityTier.parse(tier)].key)


@dataclass(frozen=True)
class PaymentRecord:
    charge_id: str
    user_id: int
    tier: QualityTier
    quantity: int
    amount: int
    currency: str = CURRENCY
    payload: str | None = None
    timestamp: datetime | None = None


class PaymentOutcome(Enum):
    RECORDED = "recorded"
    ALREADY_CREDITED = "already_credited"


def _snapshot(row: Account) -> UserAccount:
    return UserAccount(
        user_id=row.user_id,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        created_at=row.created_at,
        free_standard_remaining=row.free_standard_remaining,
        premium_high_remaining=row.premium_high_remaining,
        premium_ultra_remaining=row.premium_ultra_remaining,
        total_spent=row.total_spent,
    )


def _payment_record(row: Payment) -> PaymentRecord:
    return PaymentRecord(
        charge_id=row.charge_id,
        user_id=row.user_id,
        tier=QualityTier(row.tier),
        quantity=row.quantity,
        amount=row.amount,
        currency=row.currency,
        payload=row.payload,
        timestamp=row.created_at,
    )


def _make_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url)

    kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


class Ledger:
    """Per-user render entitlements backed by SQLAlchemy.

    Write transactions run one at a time (SQLite allows a single writer);
    the conditional UPDATE keeps consumption correct on backends that do
    run them concurrently.
    """

    def __init__(self, url: str = "sqlite:///qrbot.db"):
        self.url = url
        self._engine = _make_engine(url)
        Base.metadata.create_all(self._engine)
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)
        self._lock = threading.RLock()
        log.info("Ledger ready at %s", self._engine.url.render_as_string(hide_password=True))

    # -- accounts ------------------------------------------------------------

    @trace
    def get_or_create(self, user_id: int, profile: Profile | None = None) -> UserAccount:
        """Return the account, creating it with default balances on first contact.

        Profile fields given here overwrite the stored ones.
        """
        with self._lock, self._sessions.begin() as session:
            row = session.get(Account, user_id)
            created = row is None
            if created:
                row = Account(
                    user_id=user_id,
                    created_at=datetime.now(timezone.utc),
                    free_standard_remaining=FREE_STANDARD_DEFAULT,
                    premium_high_remaining=0,
                    premium_ultra_remaining=0,
                    total_spent=0,
                )
                session.add(row)
            if profile is not None:
                row.username = profile.username
                row.first_name = profile.first_name
                row.last_name = profile.last_name
            session.flush()
            account = _snapshot(row)

        if created:
            audit("ledger.account_created", logger=log,
                  user_id=user_id, free_standard=account.free_standard_remaining)
        return account

    def get_account(self, user_id: int) -> UserAccount | None:
        with self._lock, self._sessions() as session:
            row = session.get(Account, user_id)
            return _snapshot(row) if row is not None else None

    # -- consumption ---------------------------------------------------------

    @trace
    def consume(self, user_id: int, tier: QualityTier) -> bool:
        """Take one unit of *tier*; ``False`` (and no change) when none remain."""
        tier = QualityTier.parse(tier)
        counter = _COUNTERS[tier]
        stmt = (
            update(Account)
            .where(Account.user_id == user_id, counter > 0)
            .values({counter.key: counter - 1})
            .execution_options(synchronize_session=False)
        )
        with self._lock, self._sessions.begin() as session:
            ok = session.execute(stmt).rowcount == 1

        audit("ledger.consumed" if ok else "ledger.consume_denied", logger=log,
              user_id=user_id, tier=tier.value)
        return ok

    def require(self, user_id: int, tier: QualityTier) -> None:
        """Like :meth:`consume` but raises ``InsufficientBalance``."""
        tier = QualityTier.parse(tier)
        if not self.consume(user_id, tier):
            raise InsufficientBalance(user_id, tier)

    # -- crediting -----------------------------------------------------------

    @staticmethod
    def _credit(session, user_id: int, tier: QualityTier, quantity: int, spent: int = 0) -> None:
        counter = _COUNTERS[tier]
        stmt = (
            update(Account)
            .where(Account.user_id == user_id)
            .values({
                counter.key: counter + quantity,
                Account.total_spent.key: Account.total_spent + spent,
            })
            .execution_options(synchronize_session=False)
        )
        if session.execute(stmt).rowcount != 1:
            raise UnknownAccount(user_id)

    @trace
    def credit(self, user_id: int, tier: QualityTier, quantity: int) -> None:
        """Add *quantity* units of *tier*. Payments go through :meth:`record_payment`."""
        tier = QualityTier.parse(tier)
        if quantity <= 0:
            raise ValueError(f"quantity must be positive, got {quantity}")
        with self._lock, self._sessions.begin() as session:
            self._credit(session, user_id, tier, quantity)
        audit("ledger.credited", logger=log, user_id=user_id, tier=tier.value, quantity=quantity)

    @trace
    def record_payment(self, record: PaymentRecord, strict: bool = False) -> PaymentOutcome:
        """Store the payment and credit its units in one transaction.

        A charge id seen before leaves everything untouched and returns
        ``ALREADY_CREDITED``; with ``strict=True`` it raises
        ``DuplicateChargeId`` instead.
        """
        tier = QualityTier.parse(record.tier)
        if tier not in PAID_TIERS:
            raise ValueError(f"Payments can only buy {', '.join(t.value for t in PAID_TIERS)} renders")
        if record.quantity <= 0:
            raise ValueError(f"quantity must be positive, got {record.quantity}")
        if record.amount < 0:
            raise ValueError(f"amount must be non-negative, got {record.amount}")

        with self._lock:
            try:
                with self._sessions.begin() as session:
                    if session.get(Account, record.user_id) is None:
                        raise UnknownAccount(record.user_id)
                    session.add(Payment(
                        charge_id=record.charge_id,
                        user_id=record.user_id,
                        tier=tier.value,
                        quantity=record.quantity,
                        amount=record.amount,
                        currency=record.currency,
                        payload=record.payload,
                        created_at=record.timestamp or datetime.now(timezone.utc),
                    ))
                    session.flush()
                    self._credit(session, record.user_id, tier, record.quantity, spent=record.amount)
            except IntegrityError:
                with self._sessions() as session:
                    if session.get(Payment, record.charge_id) is None:
                        raise
                audit("ledger.duplicate_charge", logger=log,
                      charge_id=record.charge_id, user_id=record.user_id)
                if strict:
                    raise DuplicateChargeId(record.charge_id) from None
                return PaymentOutcome.ALREADY_CREDITED

        audit("ledger.payment_recorded", logger=log,
              charge_id=record.charge_id, user_id=record.user_id,
              tier=tier.value, quantity=record.quantity, amount=record.amount)
        return PaymentOutcome.RECORDED

    def recent_payments(self, user_id: int, limit: int = 10) -> list[PaymentRecord]:
        stmt = (
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .limit(limit)
        )
        with self._lock, self._sessions() as session:
            return [_payment_record(row) for row in session.scalars(stmt)]

    def close(self) -> None:
        self._engine.dispose()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
