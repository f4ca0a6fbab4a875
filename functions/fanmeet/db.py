"""
Database abstraction for the Supabase Postgres tables and an in-memory test implementation.
"""

from __future__ import annotations

import dataclasses
import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Protocol, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from fanmeet.types import OPEN_EVENT_STATUSES, WithdrawalStatus

R = TypeVar("R")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize datetimes read back from drivers that drop tzinfo (e.g. SQLite)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def _plain_fields(fields: dict) -> dict:
    return {key: _plain(value) for key, value in fields.items()}


def _status_values(statuses: Iterable[Any]) -> list[str]:
    return [_plain(status) for status in statuses]


@dataclass
class EventRecord:
    creator_id: str
    title: str
    status: str
    bidding_closes_at: datetime
    starts_at: datetime
    duration_minutes: int
    meeting_link: Optional[str] = None
    winning_bid_id: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class BidRecord:
    event_id: str
    fan_id: str
    amount: int
    status: str = "active"
    refund_amount: Optional[int] = None
    refund_status: Optional[str] = None
    refunded_at: Optional[datetime] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class MeetRecord:
    event_id: str
    creator_id: str
    fan_id: str
    scheduled_at: datetime
    duration_minutes: int
    status: str = "scheduled"
    meeting_link: Optional[str] = None
    creator_started_at: Optional[datetime] = None
    creator_joined_at: Optional[datetime] = None
    fan_joined_at: Optional[datetime] = None
    recording_started_at: Optional[datetime] = None
    recording_stopped_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    refund_id: Optional[str] = None
    recording_resource_id: Optional[str] = None
    recording_sid: Optional[str] = None
    recording_mode: Optional[str] = None
    recording_status: Optional[str] = None
    recording_file_list: Optional[list] = None
    recording_url: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def scheduled_end(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)


@dataclass
class MeetingEventLogRecord:
    meet_id: str
    event_type: str
    timestamp: datetime
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class WalletRecord:
    user_id: str
    balance: int = 0
    id: str = field(default_factory=_new_id)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class WalletTransactionRecord:
    wallet_id: str
    type: str
    direction: str
    amount: int
    commission_amount: int = 0
    commission_type: Optional[str] = None
    description: str = ""
    reference_table: Optional[str] = None
    reference_id: Optional[str] = None
    available_for_withdrawal_at: Optional[datetime] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class NotificationRecord:
    user_id: str
    type: str
    title: str
    message: str
    event_id: Optional[str] = None
    is_read: bool = False
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ProfileRecord:
    id: str
    role: str = "fan"
    display_name: Optional[str] = None
    razorpay_fund_account_id: Optional[str] = None


@dataclass
class WithdrawalRequestRecord:
    creator_id: str
    amount: int
    status: str = WithdrawalStatus.PENDING.value
    notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)


class DbClient(Protocol):
    """Interface for database access."""

    # events
    def add_event(self, event: EventRecord) -> EventRecord:
        ...

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...

    def list_events_to_finalize(self, now: datetime) -> list[EventRecord]:
        ...

    def update_event(self, event_id: str, **fields: Any) -> Optional[EventRecord]:
        ...

    def transition_event(
        self, event_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        ...

    # bids
    def add_bid(self, bid: BidRecord) -> BidRecord:
        ...

    def get_bid(self, bid_id: str) -> Optional[BidRecord]:
        ...

    def get_top_bid(self, event_id: str, status: str) -> Optional[BidRecord]:
        ...

    def list_bids(
        self, event_id: str, status: Optional[str] = None
    ) -> list[BidRecord]:
        ...

    def update_bid(self, bid_id: str, **fields: Any) -> Optional[BidRecord]:
        ...

    # meets
    def create_meet(self, meet: MeetRecord) -> MeetRecord:
        ...

    def get_meet(self, meet_id: str) -> Optional[MeetRecord]:
        ...

    def list_meets(
        self, status: str, scheduled_before: Optional[datetime] = None
    ) -> list[MeetRecord]:
        ...

    def update_meet(self, meet_id: str, **fields: Any) -> Optional[MeetRecord]:
        ...

    def transition_meet(
        self, meet_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        ...

    # meeting_event_logs
    def log_meeting_event(
        self,
        meet_id: str,
        event_type: str,
        metadata: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> MeetingEventLogRecord:
        ...

    def list_meeting_events(self, meet_id: str) -> list[MeetingEventLogRecord]:
        ...

    # wallets
    def get_wallet(self, user_id: str) -> Optional[WalletRecord]:
        ...

    def get_or_create_wallet(self, user_id: str) -> WalletRecord:
        ...

    def credit_wallet(
        self,
        wallet_id: str,
        amount: int,
        now: datetime,
        transaction: Optional[WalletTransactionRecord] = None,
    ) -> int:
        """Add to the balance and, when given, write the ledger row in the same commit."""
        ...

    def add_wallet_transaction(
        self, transaction: WalletTransactionRecord
    ) -> WalletTransactionRecord:
        ...

    def list_wallet_transactions(
        self, wallet_id: str
    ) -> list[WalletTransactionRecord]:
        ...

    # notifications
    def add_notification(self, notification: NotificationRecord) -> NotificationRecord:
        ...

    def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        ...

    # profiles
    def save_profile(self, profile: ProfileRecord) -> ProfileRecord:
        ...

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        ...

    # withdrawal_requests
    def add_withdrawal_request(
        self, request: WithdrawalRequestRecord
    ) -> WithdrawalRequestRecord:
        ...

    def get_withdrawal_request(
        self, request_id: str
    ) -> Optional[WithdrawalRequestRecord]:
        ...

    def update_withdrawal_request(
        self, request_id: str, **fields: Any
    ) -> Optional[WithdrawalRequestRecord]:
        ...

    def transition_withdrawal_request(
        self, request_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        ...


class InMemoryDbClient:
    """Simple in-memory database for development and tests.

    Reads hand out copies so callers hold snapshots, as they would with rows
    fetched from Postgres.
    """

    def __init__(self):
        self.events: Dict[str, EventRecord] = {}
        self.bids: Dict[str, BidRecord] = {}
        self.meets: Dict[str, MeetRecord] = {}
        self.meeting_event_logs: list[MeetingEventLogRecord] = []
        self.wallets: Dict[str, WalletRecord] = {}
        self.wallet_transactions: list[WalletTransactionRecord] = []
        self.notifications: list[NotificationRecord] = []
        self.profiles: Dict[str, ProfileRecord] = {}
        self.withdrawal_requests: Dict[str, WithdrawalRequestRecord] = {}
        self._log_ids = itertools.count(1)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.__init__()

    @staticmethod
    def _copy(record: Optional[R]) -> Optional[R]:
        return dataclasses.replace(record) if record is not None else None

    @staticmethod
    def _store(table: dict, record: R) -> R:
        stored = dataclasses.replace(record, **_plain_fields(dataclasses.asdict(record)))
        table[stored.id] = stored
        return dataclasses.replace(stored)

    def _update(self, table: dict, record_id: str, fields: dict):
        record = table.get(record_id)
        if record is None:
            return None
        table[record_id] = dataclasses.replace(record, **_plain_fields(fields))
        return dataclasses.replace(table[record_id])

    def _transition(
        self, table: dict, record_id: str, from_statuses: Iterable[str], fields: dict
    ) -> bool:
        record = table.get(record_id)
        if record is None or record.status not in _status_values(from_statuses):
            return False
        self._update(table, record_id, fields)
        return True

    # events
    def add_event(self, event: EventRecord) -> EventRecord:
        return self._store(self.events, event)

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self._copy(self.events.get(event_id))

    def list_events_to_finalize(self, now: datetime) -> list[EventRecord]:
        open_statuses = _status_values(OPEN_EVENT_STATUSES)
        events = [
            event
            for event in self.events.values()
            if event.status in open_statuses and event.bidding_closes_at < now
        ]
        events.sort(key=lambda e: e.bidding_closes_at)
        return [self._copy(event) for event in events]

    def update_event(self, event_id: str, **fields: Any) -> Optional[EventRecord]:
        return self._update(self.events, event_id, fields)

    def transition_event(
        self, event_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        return self._transition(self.events, event_id, from_statuses, fields)

    # bids
    def add_bid(self, bid: BidRecord) -> BidRecord:
        return self._store(self.bids, bid)

    def get_bid(self, bid_id: str) -> Optional[BidRecord]:
        return self._copy(self.bids.get(bid_id))

    def get_top_bid(self, event_id: str, status: str) -> Optional[BidRecord]:
        bids = self.list_bids(event_id, status)
        if not bids:
            return None
        return min(bids, key=lambda b: (-b.amount, b.created_at))

    def list_bids(
        self, event_id: str, status: Optional[str] = None
    ) -> list[BidRecord]:
        status_value = _plain(status)
        return [
            self._copy(bid)
            for bid in self.bids.values()
            if bid.event_id == event_id
            and (status_value is None or bid.status == status_value)
        ]

    def update_bid(self, bid_id: str, **fields: Any) -> Optional[BidRecord]:
        return self._update(self.bids, bid_id, fields)

    # meets
    def create_meet(self, meet: MeetRecord) -> MeetRecord:
        return self._store(self.meets, meet)

    def get_meet(self, meet_id: str) -> Optional[MeetRecord]:
        return self._copy(self.meets.get(meet_id))

    def list_meets(
        self, status: str, scheduled_before: Optional[datetime] = None
    ) -> list[MeetRecord]:
        status_value = _plain(status)
        meets = [
            meet
            for meet in self.meets.values()
            if meet.status == status_value
            and (scheduled_before is None or meet.scheduled_at <= scheduled_before)
        ]
        meets.sort(key=lambda m: m.scheduled_at)
        return [self._copy(meet) for meet in meets]

    def update_meet(self, meet_id: str, **fields: Any) -> Optional[MeetRecord]:
        return self._update(self.meets, meet_id, fields)

    def transition_meet(
        self, meet_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        return self._transition(self.meets, meet_id, from_statuses, fields)

    # meeting_event_logs
    def log_meeting_event(
        self,
        meet_id: str,
        event_type: str,
        metadata: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> MeetingEventLogRecord:
        record = MeetingEventLogRecord(
            meet_id=meet_id,
            event_type=_plain(event_type),
            timestamp=timestamp or utcnow(),
            metadata=dict(metadata or {}),
            id=next(self._log_ids),
        )
        self.meeting_event_logs.append(record)
        return dataclasses.replace(record)

    def list_meeting_events(self, meet_id: str) -> list[MeetingEventLogRecord]:
        logs = [log for log in self.meeting_event_logs if log.meet_id == meet_id]
        logs.sort(key=lambda log: (log.timestamp, log.id))
        return [dataclasses.replace(log) for log in logs]

    # wallets
    def get_wallet(self, user_id: str) -> Optional[WalletRecord]:
        for wallet in self.wallets.values():
            if wallet.user_id == user_id:
                return self._copy(wallet)
        return None

    def get_or_create_wallet(self, user_id: str) -> WalletRecord:
        wallet = self.get_wallet(user_id)
        if wallet:
            return wallet
        return self._store(self.wallets, WalletRecord(user_id=user_id))

    def credit_wallet(
        self,
        wallet_id: str,
        amount: int,
        now: datetime,
        transaction: Optional[WalletTransactionRecord] = None,
    ) -> int:
        wallet = self.wallets.get(wallet_id)
        if wallet is None:
            raise KeyError(wallet_id)
        wallet.balance += amount
        wallet.updated_at = now
        if transaction is not None:
            self.wallet_transactions.append(dataclasses.replace(transaction))
        return wallet.balance

    def add_wallet_transaction(
        self, transaction: WalletTransactionRecord
    ) -> WalletTransactionRecord:
        self.wallet_transactions.append(dataclasses.replace(transaction))
        return dataclasses.replace(transaction)

    def list_wallet_transactions(
        self, wallet_id: str
    ) -> list[WalletTransactionRecord]:
        return [
            dataclasses.replace(txn)
            for txn in self.wallet_transactions
            if txn.wallet_id == wallet_id
        ]

    # notifications
    def add_notification(self, notification: NotificationRecord) -> NotificationRecord:
        self.notifications.append(dataclasses.replace(notification))
        return dataclasses.replace(notification)

    def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        return [
            dataclasses.replace(n) for n in self.notifications if n.user_id == user_id
        ]

    # profiles
    def save_profile(self, profile: ProfileRecord) -> ProfileRecord:
        return self._store(self.profiles, profile)

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return self._copy(self.profiles.get(user_id))

    # withdrawal_requests
    def add_withdrawal_request(
        self, request: WithdrawalRequestRecord
    ) -> WithdrawalRequestRecord:
        return self._store(self.withdrawal_requests, request)

    def get_withdrawal_request(
        self, request_id: str
    ) -> Optional[WithdrawalRequestRecord]:
        return self._copy(self.withdrawal_requests.get(request_id))

    def update_withdrawal_request(
        self, request_id: str, **fields: Any
    ) -> Optional[WithdrawalRequestRecord]:
        return self._update(self.withdrawal_requests, request_id, fields)

    def transition_withdrawal_request(
        self, request_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        return self._transition(
            self.withdrawal_requests, request_id, from_statuses, fields
        )


Base = declarative_base()


class EventRow(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    creator_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    bidding_closes_at = Column(DateTime(timezone=True), nullable=False, index=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    meeting_link = Column(String, nullable=True)
    winning_bid_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class BidRow(Base):
    __tablename__ = "bids"

    id = Column(String, primary_key=True)
    event_id = Column(String, nullable=False, index=True)
    fan_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String, nullable=False, index=True)
    refund_amount = Column(Integer, nullable=True)
    refund_status = Column(String, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class MeetRow(Base):
    __tablename__ = "meets"

    id = Column(String, primary_key=True)
    event_id = Column(String, nullable=False, index=True)
    creator_id = Column(String, nullable=False, index=True)
    fan_id = Column(String, nullable=False, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, index=True)
    meeting_link = Column(String, nullable=True)
    creator_started_at = Column(DateTime(timezone=True), nullable=True)
    creator_joined_at = Column(DateTime(timezone=True), nullable=True)
    fan_joined_at = Column(DateTime(timezone=True), nullable=True)
    recording_started_at = Column(DateTime(timezone=True), nullable=True)
    recording_stopped_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    refund_id = Column(String, nullable=True)
    recording_resource_id = Column(String, nullable=True)
    recording_sid = Column(String, nullable=True)
    recording_mode = Column(String, nullable=True)
    recording_status = Column(String, nullable=True)
    recording_file_list = Column(JSON, nullable=True)
    recording_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class MeetingEventLogRow(Base):
    __tablename__ = "meeting_event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    meet_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes.
    event_metadata = Column("metadata", JSON, nullable=False)


class WalletRow(Base):
    __tablename__ = "wallets"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, unique=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class WalletTransactionRow(Base):
    __tablename__ = "wallet_transactions"

    id = Column(String, primary_key=True)
    wallet_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    direction = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)
    commission_amount = Column(Integer, nullable=False, default=0)
    commission_type = Column(String, nullable=True)
    description = Column(String, nullable=False, default="")
    reference_table = Column(String, nullable=True)
    reference_id = Column(String, nullable=True)
    available_for_withdrawal_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False)
    event_id = Column(String, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ProfileRow(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    role = Column(String, nullable=False, default="fan")
    display_name = Column(String, nullable=True)
    razorpay_fund_account_id = Column(String, nullable=True)


class WithdrawalRequestRow(Base):
    __tablename__ = "withdrawal_requests"

    id = Column(String, primary_key=True)
    creator_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    status = Column(String, nullable=False, index=True)
    notes = Column(String, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


# Record fields whose ORM attribute is named differently.
_ROW_ATTRS = {"metadata": "event_metadata"}


def _row_to_record(row: Any, record_cls: type[R]) -> R:
    values = {}
    for f in dataclasses.fields(record_cls):
        value = getattr(row, _ROW_ATTRS.get(f.name, f.name))
        if isinstance(value, datetime):
            value = as_utc(value)
        values[f.name] = value
    return record_cls(**values)


def _record_to_row(record: Any, row_cls: type) -> Any:
    values = {
        _ROW_ATTRS.get(key, key): _plain(value)
        for key, value in dataclasses.asdict(record).items()
    }
    if row_cls is MeetingEventLogRow and values.get("id") is None:
        values.pop("id")
    return row_cls(**values)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., the Supabase
    Postgres connection string, or SQLite for tests).
    """

    def __init__(self, database_url: str, *, create_schema: bool = True):
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
        if create_schema:
            Base.metadata.create_all(self.engine)

    def _add(self, record: R, row_cls: type) -> R:
        with self.Session() as session:
            row = _record_to_row(record, row_cls)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _row_to_record(row, type(record))

    def _get(self, row_cls: type, record_cls: type[R], key: Any) -> Optional[R]:
        with self.Session() as session:
            row = session.get(row_cls, key)
            return _row_to_record(row, record_cls) if row else None

    def _update(
        self, row_cls: type, record_cls: type[R], key: str, fields: dict
    ) -> Optional[R]:
        with self.Session() as session:
            row = session.get(row_cls, key)
            if not row:
                return None
            for name, value in _plain_fields(fields).items():
                setattr(row, _ROW_ATTRS.get(name, name), value)
            session.commit()
            session.refresh(row)
            return _row_to_record(row, record_cls)

    def _transition(
        self, row_cls: type, key: str, from_statuses: Iterable[str], fields: dict
    ) -> bool:
        with self.Session() as session:
            updated = (
                session.query(row_cls)
                .filter(
                    row_cls.id == key,
                    row_cls.status.in_(_status_values(from_statuses)),
                )
                .update(
                    {
                        getattr(row_cls, name): value
                        for name, value in _plain_fields(fields).items()
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            return updated == 1

    # events
    def add_event(self, event: EventRecord) -> EventRecord:
        return self._add(event, EventRow)

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        return self._get(EventRow, EventRecord, event_id)

    def list_events_to_finalize(self, now: datetime) -> list[EventRecord]:
        with self.Session() as session:
            stmt = (
                select(EventRow)
                .where(
                    EventRow.status.in_(_status_values(OPEN_EVENT_STATUSES)),
                    EventRow.bidding_closes_at < as_utc(now),
                )
                .order_by(EventRow.bidding_closes_at.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [_row_to_record(row, EventRecord) for row in rows]

    def update_event(self, event_id: str, **fields: Any) -> Optional[EventRecord]:
        return self._update(EventRow, EventRecord, event_id, fields)

    def transition_event(
        self, event_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        return self._transition(EventRow, event_id, from_statuses, fields)

    # bids
    def add_bid(self, bid: BidRecord) -> BidRecord:
        return self._add(bid, BidRow)

    def get_bid(self, bid_id: str) -> Optional[BidRecord]:
        return self._get(BidRow, BidRecord, bid_id)

    def get_top_bid(self, event_id: str, status: str) -> Optional[BidRecord]:
        with self.Session() as session:
            stmt = (
                select(BidRow)
                .where(BidRow.event_id == event_id, BidRow.status == _plain(status))
                .order_by(BidRow.amount.desc(), BidRow.created_at.asc())
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _row_to_record(row, BidRecord) if row else None

    def list_bids(
        self, event_id: str, status: Optional[str] = None
    ) -> list[BidRecord]:
        with self.Session() as session:
            stmt = select(BidRow).where(BidRow.event_id == event_id)
            if status is not None:
                stmt = stmt.where(BidRow.status == _plain(status))
            rows = session.execute(stmt.order_by(BidRow.created_at.asc())).scalars()
            return [_row_to_record(row, BidRecord) for row in rows]

    def update_bid(self, bid_id: str, **fields: Any) -> Optional[BidRecord]:
        return self._update(BidRow, BidRecord, bid_id, fields)

    # meets
    def create_meet(self, meet: MeetRecord) -> MeetRecord:
        return self._add(meet, MeetRow)

    def get_meet(self, meet_id: str) -> Optional[MeetRecord]:
        return self._get(MeetRow, MeetRecord, meet_id)

    def list_meets(
        self, status: str, scheduled_before: Optional[datetime] = None
    ) -> list[MeetRecord]:
        with self.Session() as session:
            stmt = select(MeetRow).where(MeetRow.status == _plain(status))
            if scheduled_before is not None:
                stmt = stmt.where(MeetRow.scheduled_at <= as_utc(scheduled_before))
            rows = session.execute(stmt.order_by(MeetRow.scheduled_at.asc())).scalars()
            return [_row_to_record(row, MeetRecord) for row in rows]

    def update_meet(self, meet_id: str, **fields: Any) -> Optional[MeetRecord]:
        return self._update(MeetRow, MeetRecord, meet_id, fields)

    def transition_meet(
        self, meet_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        return self._transition(MeetRow, meet_id, from_statuses, fields)

    # meeting_event_logs
    def log_meeting_event(
        self,
        meet_id: str,
        event_type: str,
        metadata: Optional[dict] = None,
        timestamp: Optional[datetime] = None,
    ) -> MeetingEventLogRecord:
        record = MeetingEventLogRecord(
            meet_id=meet_id,
            event_type=_plain(event_type),
            timestamp=timestamp or utcnow(),
            metadata=dict(metadata or {}),
        )
        return self._add(record, MeetingEventLogRow)

    def list_meeting_events(self, meet_id: str) -> list[MeetingEventLogRecord]:
        with self.Session() as session:
            stmt = (
                select(MeetingEventLogRow)
                .where(MeetingEventLogRow.meet_id == meet_id)
                .order_by(
                    MeetingEventLogRow.timestamp.asc(), MeetingEventLogRow.id.asc()
                )
            )
            rows = session.execute(stmt).scalars()
            return [_row_to_record(row, MeetingEventLogRecord) for row in rows]

    # wallets
    def get_wallet(self, user_id: str) -> Optional[WalletRecord]:
        with self.Session() as session:
            stmt = select(WalletRow).where(WalletRow.user_id == user_id)
            row = session.execute(stmt).scalar_one_or_none()
            return _row_to_record(row, WalletRecord) if row else None

    def get_or_create_wallet(self, user_id: str) -> WalletRecord:
        wallet = self.get_wallet(user_id)
        if wallet:
            return wallet
        try:
            return self._add(WalletRecord(user_id=user_id), WalletRow)
        except IntegrityError:
            # Another writer created it between the read and the insert.
            return self.get_wallet(user_id)

    def credit_wallet(
        self,
        wallet_id: str,
        amount: int,
        now: datetime,
        transaction: Optional[WalletTransactionRecord] = None,
    ) -> int:
        with self.Session() as session:
            updated = (
                session.query(WalletRow)
                .filter(WalletRow.id == wallet_id)
                .update(
                    {
                        WalletRow.balance: WalletRow.balance + amount,
                        WalletRow.updated_at: as_utc(now),
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                session.rollback()
                raise KeyError(wallet_id)
            if transaction is not None:
                session.add(_record_to_row(transaction, WalletTransactionRow))
            session.commit()
            return session.get(WalletRow, wallet_id).balance

    def add_wallet_transaction(
        self, transaction: WalletTransactionRecord
    ) -> WalletTransactionRecord:
        return self._add(transaction, WalletTransactionRow)

    def list_wallet_transactions(
        self, wallet_id: str
    ) -> list[WalletTransactionRecord]:
        with self.Session() as session:
            stmt = (
                select(WalletTransactionRow)
                .where(WalletTransactionRow.wallet_id == wallet_id)
                .order_by(WalletTransactionRow.created_at.asc())
            )
            rows = session.execute(stmt).scalars()
            return [_row_to_record(row, WalletTransactionRecord) for row in rows]

    # notifications
    def add_notification(self, notification: NotificationRecord) -> NotificationRecord:
        return self._add(notification, NotificationRow)

    def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        with self.Session() as session:
            stmt = (
                select(NotificationRow)
                .where(NotificationRow.user_id == user_id)
                .order_by(NotificationRow.created_at.asc())
            )
            rows = session.execute(stmt).scalars()
            return [_row_to_record(row, NotificationRecord) for row in rows]

    # profiles
    def save_profile(self, profile: ProfileRecord) -> ProfileRecord:
        with self.Session() as session:
            row = session.merge(_record_to_row(profile, ProfileRow))
            session.commit()
            return _row_to_record(row, ProfileRecord)

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return self._get(ProfileRow, ProfileRecord, user_id)

    # withdrawal_requests
    def add_withdrawal_request(
        self, request: WithdrawalRequestRecord
    ) -> WithdrawalRequestRecord:
        return self._add(request, WithdrawalRequestRow)

    def get_withdrawal_request(
        self, request_id: str
    ) -> Optional[WithdrawalRequestRecord]:
        return self._get(WithdrawalRequestRow, WithdrawalRequestRecord, request_id)

    def update_withdrawal_request(
        self, request_id: str, **fields: Any
    ) -> Optional[WithdrawalRequestRecord]:
        return self._update(
            WithdrawalRequestRow, WithdrawalRequestRecord, request_id, fields
        )

    def transition_withdrawal_request(
        self, request_id: str, from_statuses: Iterable[str], **fields: Any
    ) -> bool:
        return self._transition(WithdrawalRequestRow, request_id, from_statuses, fields)
