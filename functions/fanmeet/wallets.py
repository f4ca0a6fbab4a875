"""
Wallet ledger movements triggered by the meeting lifecycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fanmeet.config import Settings
from fanmeet.db import (
    BidRecord,
    DbClient,
    EventRecord,
    MeetRecord,
    NotificationRecord,
    WalletTransactionRecord,
)
from fanmeet.types import BidStatus

logger = logging.getLogger(__name__)

NO_SHOW_REFUND_TYPE = "creator_no_show_refund"
MEETING_EARNING_TYPE = "meeting_earning"


@dataclass
class RefundResult:
    success: bool
    refund_id: str
    amount: int
    error: Optional[str] = None


def make_refund_id(meet_id: str, now: datetime) -> str:
    return f"refund_{int(now.timestamp() * 1000)}_{meet_id}"


def _event_title(event: EventRecord) -> str:
    return event.title or "Event"


def _winning_bid(
    db: DbClient, event: EventRecord, *, fallback_to_won: bool
) -> Optional[BidRecord]:
    if event.winning_bid_id:
        return db.get_bid(event.winning_bid_id)
    if fallback_to_won:
        return db.get_top_bid(event.id, BidStatus.WON)
    return None


def _credit(
    db: DbClient,
    user_id: str,
    amount: int,
    now: datetime,
    transaction: dict,
) -> int:
    wallet = db.get_or_create_wallet(user_id)
    return db.credit_wallet(
        wallet.id,
        amount,
        now,
        WalletTransactionRecord(
            wallet_id=wallet.id,
            direction="credit",
            amount=amount,
            created_at=now,
            **transaction,
        ),
    )


def process_refund(
    db: DbClient, meet: MeetRecord, settings: Settings, now: datetime
) -> RefundResult:
    """
    Refund the winning fan of a meet the creator never started.

    The refund is credited to the fan's in-app wallet and recorded against the
    winning bid; the fan gets a notification.
    """
    refund_id = make_refund_id(meet.id, now)

    event = db.get_event(meet.event_id)
    if not event:
        logger.error("Event %s not found while refunding meet %s", meet.event_id, meet.id)
        return RefundResult(False, refund_id, 0, "Event not found")

    bid = _winning_bid(db, event, fallback_to_won=True)
    bid_amount = bid.amount if bid else 0
    amount = bid_amount * settings.no_show_refund_percent // 100
    if amount <= 0:
        logger.info("No bid amount to refund for meet %s", meet.id)
        return RefundResult(True, refund_id, 0)

    title = _event_title(event)
    _credit(
        db,
        meet.fan_id,
        amount,
        now,
        {
            "type": NO_SHOW_REFUND_TYPE,
            "commission_amount": 0,
            "commission_type": "no_fee",
            "description": f'Full refund for "{title}" - Creator no-show'
            if amount == bid_amount
            else f'Refund for "{title}" - Creator no-show',
            "reference_table": "meets",
            "reference_id": meet.id,
        },
    )
    db.update_bid(
        bid.id,
        refund_amount=amount,
        refund_status="refunded",
        refunded_at=now,
    )
    db.add_notification(
        NotificationRecord(
            user_id=meet.fan_id,
            type=NO_SHOW_REFUND_TYPE,
            title="Full Refund - Creator No-Show"
            if amount == bid_amount
            else "Refund - Creator No-Show",
            message=(
                f'The creator did not join your scheduled meeting for "{title}". '
                f"A refund of Rs.{amount} has been credited to your wallet."
            ),
            event_id=meet.event_id,
            created_at=now,
        )
    )
    logger.info("Refund of %s credited to fan %s wallet", amount, meet.fan_id)
    return RefundResult(True, refund_id, amount)


def split_earning(amount: int, platform_fee_percent: int) -> tuple[int, int]:
    """Return (creator_earning, platform_fee); the fee absorbs rounding."""
    earning = amount * (100 - platform_fee_percent) // 100
    return earning, amount - earning


def credit_creator_for_completed_meeting(
    db: DbClient, meet: MeetRecord, settings: Settings, now: datetime
) -> bool:
    event = db.get_event(meet.event_id)
    if not event or not event.winning_bid_id:
        logger.info("No winning bid found for meet %s", meet.id)
        return False

    bid = _winning_bid(db, event, fallback_to_won=False)
    if not bid:
        logger.error("Winning bid %s missing for meet %s", event.winning_bid_id, meet.id)
        return False

    earning, platform_fee = split_earning(bid.amount, settings.platform_fee_percent)
    share = 100 - settings.platform_fee_percent
    title = _event_title(event)
    _credit(
        db,
        meet.creator_id,
        earning,
        now,
        {
            "type": MEETING_EARNING_TYPE,
            "commission_amount": platform_fee,
            "commission_type": "platform_fee",
            "description": (
                f'Earnings from completed meeting for "{title}" '
                f"({share}% of Rs.{bid.amount})"
            ),
            "reference_table": "meets",
            "reference_id": meet.id,
            "available_for_withdrawal_at": now
            + timedelta(hours=settings.earnings_hold_hours),
        },
    )
    db.add_notification(
        NotificationRecord(
            user_id=meet.creator_id,
            type=MEETING_EARNING_TYPE,
            title="Meeting Completed - Earnings Credited!",
            message=(
                f'Your meeting for "{title}" completed successfully. '
                f"Rs.{earning} ({share}%) has been credited to your wallet."
            ),
            event_id=meet.event_id,
            created_at=now,
        )
    )
    logger.info("Creator %s credited Rs.%s for meet %s", meet.creator_id, earning, meet.id)
    return True
