"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    Float,
    String,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from finboard.types import (
    AccountType,
    BudgetPeriod,
    NotificationType,
    TransactionType,
)


class DuplicateRecordError(ValueError):
    """Raised when an insert collides with a unique key."""


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(self, user: "UserRecord") -> "UserRecord":
        ...

    def get_user(self, user_id: str) -> Optional["UserRecord"]:
        ...

    def get_user_by_email(self, email: str) -> Optional["UserRecord"]:
        ...

    def set_user_subscription(
        self,
        subscription_id: Optional[str],
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> int:
        ...

    def create_account(self, account: "AccountRecord") -> "AccountRecord":
        ...

    def list_accounts(self, user_id: str) -> list["AccountRecord"]:
        ...

    def create_transaction(
        self, transaction: "TransactionRecord"
    ) -> "TransactionRecord":
        ...

    def list_transactions(
        self,
        user_id: str,
        *,
        transaction_type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list["TransactionRecord"]:
        ...

    def create_budget(self, budget: "BudgetRecord") -> "BudgetRecord":
        ...

    def list_budgets(self, user_id: str) -> list["BudgetRecord"]:
        ...

    def create_notification(
        self, notification: "NotificationRecord"
    ) -> "NotificationRecord":
        ...

    def list_notifications(
        self, user_id: str, *, unread_only: bool = False
    ) -> list["NotificationRecord"]:
        ...

    def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        ...

    def delete_notification(self, user_id: str, notification_id: str) -> bool:
        ...

    def create_subscription(
        self, subscription: "SubscriptionRecord"
    ) -> "SubscriptionRecord":
        ...

    def get_subscription(self, stripe_id: str) -> Optional["SubscriptionRecord"]:
        ...

    def get_latest_subscription_for_user(
        self, user_id: str
    ) -> Optional["SubscriptionRecord"]:
        ...

    def update_subscription(self, stripe_id: str, updates: dict) -> int:
        ...

    def save_webhook_event(self, event: "WebhookEventRecord") -> None:
        ...

    def mark_webhook_event_processed(self, record_id: str) -> None:
        ...

    def has_processed_webhook_event(self, stripe_event_id: str) -> bool:
        ...

    def list_webhook_events(
        self, stripe_event_id: Optional[str] = None
    ) -> list["WebhookEventRecord"]:
        ...

    def save_net_worth_snapshot(
        self, snapshot: "NetWorthSnapshotRecord"
    ) -> "NetWorthSnapshotRecord":
        ...

    def list_net_worth_snapshots(
        self, user_id: str, since: Optional[date] = None
    ) -> list["NetWorthSnapshotRecord"]:
        ...


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    email: str
    full_name: Optional[str] = None
    subscription: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class AccountRecord:
    user_id: str
    name: str
    type: AccountType
    balance: float
    institution: str
    account_number: str
    is_active: bool = True
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class TransactionRecord:
    user_id: str
    description: str
    amount: float
    category: str
    transaction_type: TransactionType
    transaction_date: date
    account_id: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class BudgetRecord:
    user_id: str
    category: str
    amount: float
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date = field(default_factory=date.today)
    end_date: Optional[date] = None
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class NotificationRecord:
    user_id: str
    title: str
    message: str
    type: NotificationType = NotificationType.INFO
    is_read: bool = False
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class SubscriptionRecord:
    stripe_id: str
    status: str
    user_id: Optional[str] = None
    price_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    currency: Optional[str] = None
    interval: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    amount: Optional[int] = None
    started_at: Optional[int] = None
    customer_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


# Columns a webhook handler may change on an existing subscription row.
SUBSCRIPTION_UPDATABLE_FIELDS = frozenset(
    f.name
    for f in fields(SubscriptionRecord)
    if f.name not in ("id", "stripe_id", "created_at", "updated_at")
)


@dataclass
class WebhookEventRecord:
    event_type: str
    type: str
    stripe_event_id: str
    data: dict
    created_at: float = field(default_factory=lambda: time.time())
    modified_at: float = field(default_factory=lambda: time.time())
    processed: bool = False
    id: str = field(default_factory=_new_id)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class NetWorthSnapshotRecord:
    user_id: str
    snapshot_date: date
    assets: float
    liabilities: float
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    @property
    def net_worth(self) -> float:
        return self.assets - self.liabilities

    def as_dict(self) -> dict:
        data = asdict(self)
        data["net_worth"] = self.net_worth
        return data


def _check_subscription_updates(updates: dict) -> None:
    unknown = set(updates) - SUBSCRIPTION_UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")


def _in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.accounts: Dict[str, AccountRecord] = {}
        self.transactions: Dict[str, TransactionRecord] = {}
        self.budgets: Dict[str, BudgetRecord] = {}
        self.notifications: Dict[str, NotificationRecord] = {}
        self.subscriptions: Dict[str, SubscriptionRecord] = {}
        self.webhook_events: list[WebhookEventRecord] = []
        self.snapshots: Dict[tuple[str, date], NetWorthSnapshotRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.accounts.clear()
        self.transactions.clear()
        self.budgets.clear()
        self.notifications.clear()
        self.subscriptions.clear()
        self.webhook_events.clear()
        self.snapshots.clear()

    def create_user(self, user: UserRecord) -> UserRecord:
        if self.get_user_by_email(user.email):
            raise DuplicateRecordError(f"User {user.email} already exists")
        self.users[user.id] = user
        return user

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return user
        return None

    def set_user_subscription(
        self,
        subscription_id: Optional[str],
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> int:
        if not user_id and not email:
            return 0
        updated = 0
        for user in self.users.values():
            matched = user.id == user_id if user_id else user.email == email
            if matched:
                user.subscription = subscription_id
                updated += 1
        return updated

    def create_account(self, account: AccountRecord) -> AccountRecord:
        self.accounts[account.id] = account
        return account

    def list_accounts(self, user_id: str) -> list[AccountRecord]:
        return [a for a in self.accounts.values() if a.user_id == user_id]

    def create_transaction(self, transaction: TransactionRecord) -> TransactionRecord:
        self.transactions[transaction.id] = transaction
        return transaction

    def list_transactions(
        self,
        user_id: str,
        *,
        transaction_type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[TransactionRecord]:
        items = [
            t
            for t in self.transactions.values()
            if t.user_id == user_id
            and (transaction_type is None or t.transaction_type == transaction_type)
            and (category is None or t.category == category)
            and _in_range(t.transaction_date, start, end)
        ]
        items.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return items

    def create_budget(self, budget: BudgetRecord) -> BudgetRecord:
        self.budgets[budget.id] = budget
        return budget

    def list_budgets(self, user_id: str) -> list[BudgetRecord]:
        return [b for b in self.budgets.values() if b.user_id == user_id]

    def create_notification(
        self, notification: NotificationRecord
    ) -> NotificationRecord:
        self.notifications[notification.id] = notification
        return notification

    def list_notifications(
        self, user_id: str, *, unread_only: bool = False
    ) -> list[NotificationRecord]:
        items = [
            n
            for n in self.notifications.values()
            if n.user_id == user_id and not (unread_only and n.is_read)
        ]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items

    def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if not notification or notification.user_id != user_id:
            return False
        notification.is_read = True
        return True

    def delete_notification(self, user_id: str, notification_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if not notification or notification.user_id != user_id:
            return False
        del self.notifications[notification_id]
        return True

    def create_subscription(
        self, subscription: SubscriptionRecord
    ) -> SubscriptionRecord:
        if subscription.stripe_id in self.subscriptions:
            raise DuplicateRecordError(
                f"Subscription {subscription.stripe_id} already exists"
            )
        self.subscriptions[subscription.stripe_id] = subscription
        return subscription

    def get_subscription(self, stripe_id: str) -> Optional[SubscriptionRecord]:
        return self.subscriptions.get(stripe_id)

    def get_latest_subscription_for_user(
        self, user_id: str
    ) -> Optional[SubscriptionRecord]:
        owned = [s for s in self.subscriptions.values() if s.user_id == user_id]
        if not owned:
            return None
        return max(owned, key=lambda s: s.created_at)

    def update_subscription(self, stripe_id: str, updates: dict) -> int:
        _check_subscription_updates(updates)
        subscription = self.subscriptions.get(stripe_id)
        if not subscription:
            return 0
        for key, value in updates.items():
            setattr(subscription, key, value)
        subscription.updated_at = time.time()
        return 1

    def save_webhook_event(self, event: WebhookEventRecord) -> None:
        self.webhook_events.append(event)

    def mark_webhook_event_processed(self, record_id: str) -> None:
        for event in self.webhook_events:
            if event.id == record_id:
                event.processed = True
                event.modified_at = time.time()

    def has_processed_webhook_event(self, stripe_event_id: str) -> bool:
        return any(
            e.stripe_event_id == stripe_event_id and e.processed
            for e in self.webhook_events
        )

    def list_webhook_events(
        self, stripe_event_id: Optional[str] = None
    ) -> list[WebhookEventRecord]:
        return [
            e
            for e in self.webhook_events
            if stripe_event_id is None or e.stripe_event_id == stripe_event_id
        ]

    def save_net_worth_snapshot(
        self, snapshot: NetWorthSnapshotRecord
    ) -> NetWorthSnapshotRecord:
        key = (snapshot.user_id, snapshot.snapshot_date)
        existing = self.snapshots.get(key)
        if existing:
            existing.assets = snapshot.assets
            existing.liabilities = snapshot.liabilities
            return existing
        self.snapshots[key] = snapshot
        return snapshot

    def list_net_worth_snapshots(
        self, user_id: str, since: Optional[date] = None
    ) -> list[NetWorthSnapshotRecord]:
        items = [
            s
            for s in self.snapshots.values()
            if s.user_id == user_id and _in_range(s.snapshot_date, since, None)
        ]
        items.sort(key=lambda s: s.snapshot_date)
        return items


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            id=row.id,
            email=row.email,
            full_name=row.full_name,
            subscription=row.subscription,
            created_at=row.created_at,
        )

    def _to_account_record(self, row: "AccountRow") -> AccountRecord:
        return AccountRecord(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            type=AccountType(row.type),
            balance=row.balance,
            institution=row.institution,
            account_number=row.account_number,
            is_active=row.is_active,
            created_at=row.created_at,
        )

    def _to_transaction_record(self, row: "TransactionRow") -> TransactionRecord:
        return TransactionRecord(
            id=row.id,
            user_id=row.user_id,
            account_id=row.account_id,
            description=row.description,
            amount=row.amount,
            category=row.category,
            transaction_type=TransactionType(row.transaction_type),
            transaction_date=row.transaction_date,
            created_at=row.created_at,
        )

    def _to_budget_record(self, row: "BudgetRow") -> BudgetRecord:
        return BudgetRecord(
            id=row.id,
            user_id=row.user_id,
            category=row.category,
            amount=row.amount,
            period=BudgetPeriod(row.period),
            start_date=row.start_date,
            end_date=row.end_date,
            created_at=row.created_at,
        )

    def _to_notification_record(self, row: "NotificationRow") -> NotificationRecord:
        return NotificationRecord(
            id=row.id,
            user_id=row.user_id,
            title=row.title,
            message=row.message,
            type=NotificationType(row.type),
            is_read=row.is_read,
            created_at=row.created_at,
        )

    def _to_subscription_record(self, row: "SubscriptionRow") -> SubscriptionRecord:
        return SubscriptionRecord(
            id=row.id,
            stripe_id=row.stripe_id,
            user_id=row.user_id,
            price_id=row.price_id,
            stripe_price_id=row.stripe_price_id,
            currency=row.currency,
            interval=row.interval,
            status=row.status,
            current_period_start=row.current_period_start,
            current_period_end=row.current_period_end,
            cancel_at_period_end=row.cancel_at_period_end,
            amount=row.amount,
            started_at=row.started_at,
            customer_id=row.customer_id,
            metadata=row.meta or {},
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_webhook_event_record(self, row: "WebhookEventRow") -> WebhookEventRecord:
        return WebhookEventRecord(
            id=row.id,
            event_type=row.event_type,
            type=row.type,
            stripe_event_id=row.stripe_event_id,
            data=row.data,
            created_at=row.created_at,
            modified_at=row.modified_at,
            processed=row.processed,
        )

    def _to_snapshot_record(self, row: "NetWorthSnapshotRow") -> NetWorthSnapshotRecord:
        return NetWorthSnapshotRecord(
            id=row.id,
            user_id=row.user_id,
            snapshot_date=row.snapshot_date,
            assets=row.assets,
            liabilities=row.liabilities,
            created_at=row.created_at,
        )

    def create_user(self, user: UserRecord) -> UserRecord:
        with self.Session() as session:
            session.add(
                UserRow(
                    id=user.id,
                    email=user.email,
                    full_name=user.full_name,
                    subscription=user.subscription,
                    created_at=user.created_at,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"User {user.email} already exists") from exc
        return user

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == email).limit(1)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def set_user_subscription(
        self,
        subscription_id: Optional[str],
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> int:
        if not user_id and not email:
            return 0
        with self.Session() as session:
            query = session.query(UserRow)
            if user_id:
                query = query.filter(UserRow.id == user_id)
            else:
                query = query.filter(UserRow.email == email)
            updated = query.update(
                {UserRow.subscription: subscription_id},
                synchronize_session=False,
            )
            session.commit()
            return updated or 0

    def create_account(self, account: AccountRecord) -> AccountRecord:
        with self.Session() as session:
            session.add(
                AccountRow(
                    id=account.id,
                    user_id=account.user_id,
                    name=account.name,
                    type=account.type.value,
                    balance=account.balance,
                    institution=account.institution,
                    account_number=account.account_number,
                    is_active=account.is_active,
                    created_at=account.created_at,
                )
            )
            session.commit()
        return account

    def list_accounts(self, user_id: str) -> list[AccountRecord]:
        with self.Session() as session:
            rows = (
                session.query(AccountRow)
                .filter(AccountRow.user_id == user_id)
                .order_by(AccountRow.created_at.asc())
                .all()
            )
            return [self._to_account_record(row) for row in rows]

    def create_transaction(self, transaction: TransactionRecord) -> TransactionRecord:
        with self.Session() as session:
            session.add(
                TransactionRow(
                    id=transaction.id,
                    user_id=transaction.user_id,
                    account_id=transaction.account_id,
                    description=transaction.description,
                    amount=transaction.amount,
                    category=transaction.category,
                    transaction_type=transaction.transaction_type.value,
                    transaction_date=transaction.transaction_date,
                    created_at=transaction.created_at,
                )
            )
            session.commit()
        return transaction

    def list_transactions(
        self,
        user_id: str,
        *,
        transaction_type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[TransactionRecord]:
        with self.Session() as session:
            query = session.query(TransactionRow).filter(
                TransactionRow.user_id == user_id
            )
            if transaction_type is not None:
                query = query.filter(
                    TransactionRow.transaction_type == transaction_type.value
                )
            if category is not None:
                query = query.filter(TransactionRow.category == category)
            if start is not None:
                query = query.filter(TransactionRow.transaction_date >= start)
            if end is not None:
                query = query.filter(TransactionRow.transaction_date <= end)
            rows = query.order_by(
                TransactionRow.transaction_date.desc(),
                TransactionRow.created_at.desc(),
            ).all()
            return [self._to_transaction_record(row) for row in rows]

    def create_budget(self, budget: BudgetRecord) -> BudgetRecord:
        with self.Session() as session:
            session.add(
                BudgetRow(
                    id=budget.id,
                    user_id=budget.user_id,
                    category=budget.category,
                    amount=budget.amount,
                    period=budget.period.value,
                    start_date=budget.start_date,
                    end_date=budget.end_date,
                    created_at=budget.created_at,
                )
            )
            session.commit()
        return budget

    def list_budgets(self, user_id: str) -> list[BudgetRecord]:
        with self.Session() as session:
            rows = (
                session.query(BudgetRow)
                .filter(BudgetRow.user_id == user_id)
                .order_by(BudgetRow.created_at.asc())
                .all()
            )
            return [self._to_budget_record(row) for row in rows]

    def create_notification(
        self, notification: NotificationRecord
    ) -> NotificationRecord:
        with self.Session() as session:
            session.add(
                NotificationRow(
                    id=notification.id,
                    user_id=notification.user_id,
                    title=notification.title,
                    message=notification.message,
                    type=notification.type.value,
                    is_read=notification.is_read,
                    created_at=notification.created_at,
                )
            )
            session.commit()
        return notification

    def list_notifications(
        self, user_id: str, *, unread_only: bool = False
    ) -> list[NotificationRecord]:
        with self.Session() as session:
            query = session.query(NotificationRow).filter(
                NotificationRow.user_id == user_id
            )
            if unread_only:
                query = query.filter(NotificationRow.is_read.is_(False))
            rows = query.order_by(NotificationRow.created_at.desc()).all()
            return [self._to_notification_record(row) for row in rows]

    def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        with self.Session() as session:
            row = session.get(NotificationRow, notification_id)
            if not row or row.user_id != user_id:
                return False
            row.is_read = True
            session.commit()
            return True

    def delete_notification(self, user_id: str, notification_id: str) -> bool:
        with self.Session() as session:
            row = session.get(NotificationRow, notification_id)
            if not row or row.user_id != user_id:
                return False
            session.delete(row)
            session.commit()
            return True

    def create_subscription(
        self, subscription: SubscriptionRecord
    ) -> SubscriptionRecord:
        with self.Session() as session:
            session.add(
                SubscriptionRow(
                    id=subscription.id,
                    stripe_id=subscription.stripe_id,
                    user_id=subscription.user_id,
                    price_id=subscription.price_id,
                    stripe_price_id=subscription.stripe_price_id,
                    currency=subscription.currency,
                    interval=subscription.interval,
                    status=subscription.status,
                    current_period_start=subscription.current_period_start,
                    current_period_end=subscription.current_period_end,
                    cancel_at_period_end=subscription.cancel_at_period_end,
                    amount=subscription.amount,
                    started_at=subscription.started_at,
                    customer_id=subscription.customer_id,
                    meta=subscription.metadata,
                    created_at=subscription.created_at,
                    updated_at=subscription.updated_at,
                )
            )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(
                    f"Subscription {subscription.stripe_id} already exists"
                ) from exc
        return subscription

    def get_subscription(self, stripe_id: str) -> Optional[SubscriptionRecord]:
        with self.Session() as session:
            stmt = (
                select(SubscriptionRow)
                .where(SubscriptionRow.stripe_id == stripe_id)
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_subscription_record(row) if row else None

    def get_latest_subscription_for_user(
        self, user_id: str
    ) -> Optional[SubscriptionRecord]:
        with self.Session() as session:
            stmt = (
                select(SubscriptionRow)
                .where(SubscriptionRow.user_id == user_id)
                .order_by(SubscriptionRow.created_at.desc())
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_subscription_record(row) if row else None

    def update_subscription(self, stripe_id: str, updates: dict) -> int:
        _check_subscription_updates(updates)
        with self.Session() as session:
            stmt = select(SubscriptionRow).where(SubscriptionRow.stripe_id == stripe_id)
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return 0
            for key, value in updates.items():
                setattr(row, "meta" if key == "metadata" else key, value)
            row.updated_at = time.time()
            session.commit()
            return 1

    def save_webhook_event(self, event: WebhookEventRecord) -> None:
        with self.Session() as session:
            session.add(
                WebhookEventRow(
                    id=event.id,
                    event_type=event.event_type,
                    type=event.type,
                    stripe_event_id=event.stripe_event_id,
                    data=event.data,
                    created_at=event.created_at,
                    modified_at=event.modified_at,
                    processed=event.processed,
                )
            )
            session.commit()

    def mark_webhook_event_processed(self, record_id: str) -> None:
        with self.Session() as session:
            row = session.get(WebhookEventRow, record_id)
            if not row:
                return
            row.processed = True
            row.modified_at = time.time()
            session.commit()

    def has_processed_webhook_event(self, stripe_event_id: str) -> bool:
        with self.Session() as session:
            stmt = (
                select(WebhookEventRow.id)
                .where(
                    WebhookEventRow.stripe_event_id == stripe_event_id,
                    WebhookEventRow.processed.is_(True),
                )
                .limit(1)
            )
            return session.execute(stmt).first() is not None

    def list_webhook_events(
        self, stripe_event_id: Optional[str] = None
    ) -> list[WebhookEventRecord]:
        with self.Session() as session:
            query = session.query(WebhookEventRow)
            if stripe_event_id is not None:
                query = query.filter(WebhookEventRow.stripe_event_id == stripe_event_id)
            rows = query.order_by(WebhookEventRow.created_at.asc()).all()
            return [self._to_webhook_event_record(row) for row in rows]

    def save_net_worth_snapshot(
        self, snapshot: NetWorthSnapshotRecord
    ) -> NetWorthSnapshotRecord:
        with self.Session() as session:
            stmt = select(NetWorthSnapshotRow).where(
                NetWorthSnapshotRow.user_id == snapshot.user_id,
                NetWorthSnapshotRow.snapshot_date == snapshot.snapshot_date,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row:
                row.assets = snapshot.assets
                row.liabilities = snapshot.liabilities
            else:
                row = NetWorthSnapshotRow(
                    id=snapshot.id,
                    user_id=snapshot.user_id,
                    snapshot_date=snapshot.snapshot_date,
                    assets=snapshot.assets,
                    liabilities=snapshot.liabilities,
                    created_at=snapshot.created_at,
                )
                session.add(row)
            session.commit()
            return self._to_snapshot_record(row)

    def list_net_worth_snapshots(
        self, user_id: str, since: Optional[date] = None
    ) -> list[NetWorthSnapshotRecord]:
        with self.Session() as session:
            query = session.query(NetWorthSnapshotRow).filter(
                NetWorthSnapshotRow.user_id == user_id
            )
            if since is not None:
                query = query.filter(NetWorthSnapshotRow.snapshot_date >= since)
            rows = query.order_by(NetWorthSnapshotRow.snapshot_date.asc()).all()
            return [self._to_snapshot_record(row) for row in rows]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    full_name = Column(String, nullable=True)
    subscription = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class AccountRow(Base):
    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    balance = Column(Float, nullable=False, default=0.0)
    institution = Column(String, nullable=False)
    account_number = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Float, nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(String, nullable=True)
    description = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String, nullable=False, index=True)
    transaction_type = Column(String, nullable=False, index=True)
    transaction_date = Column(Date, nullable=False, index=True)
    created_at = Column(Float, nullable=False)


class BudgetRow(Base):
    __tablename__ = "budgets"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    period = Column(String, nullable=False, default="monthly")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    created_at = Column(Float, nullable=False)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    type = Column(String, nullable=False, default="info")
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True)
    stripe_id = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, nullable=True, index=True)
    price_id = Column(String, nullable=True)
    stripe_price_id = Column(String, nullable=True)
    currency = Column(String, nullable=True)
    interval = Column(String, nullable=True)
    status = Column(String, nullable=False)
    current_period_start = Column(BigInteger, nullable=True)
    current_period_end = Column(BigInteger, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    amount = Column(BigInteger, nullable=True)
    started_at = Column(BigInteger, nullable=True)
    customer_id = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class WebhookEventRow(Base):
    __tablename__ = "webhook_events"

    id = Column(String, primary_key=True)
    event_type = Column(String, nullable=False)
    type = Column(String, nullable=False)
    stripe_event_id = Column(String, nullable=False, index=True)
    data = Column(JSON, nullable=False)
    created_at = Column(Float, nullable=False)
    modified_at = Column(Float, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)


class NetWorthSnapshotRow(Base):
    __tablename__ = "net_worth_snapshots"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    snapshot_date = Column(Date, nullable=False)
    assets = Column(Float, nullable=False)
    liabilities = Column(Float, nullable=False)
    created_at = Column(Float, nullable=False)
