"""
Event and meeting lifecycle.

An auction closes and its highest active bid wins a meet. The meet then moves
scheduled -> live -> completed, or is cancelled when the creator never shows up.
Every transition is a compare-and-set on the status column, so overlapping cron
runs (or a cron run racing a participant) cannot apply the same step twice.
Each step is appended to ``meeting_event_logs``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from fanmeet.config import Settings
from fanmeet.db import DbClient, EventRecord, MeetRecord, utcnow
from fanmeet.errors import NotFoundError, PermissionDeniedError, ValidationError
from fanmeet.types import (
    CREATOR_NO_SHOW_REASON,
    OPEN_EVENT_STATUSES,
    BidStatus,
    EventStatus,
    MeetingEventType,
    MeetStatus,
)
from fanmeet.wallets import (
    RefundResult,
    credit_creator_for_completed_meeting,
    make_refund_id,
    process_refund,
)

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _seconds_between(later: datetime, earlier: datetime) -> int:
    return int((later - earlier).total_seconds())


@dataclass
class FinalizeSummary:
    checked: int = 0
    finalized: int = 0
    meets_created: int = 0


@dataclass
class NoShowSummary:
    checked: int = 0
    cancelled: int = 0


@dataclass
class CompletionSummary:
    checked: int = 0
    completed: int = 0


@dataclass
class LifecycleReport:
    timestamp: datetime
    no_show: NoShowSummary = field(default_factory=NoShowSummary)
    completion: CompletionSummary = field(default_factory=CompletionSummary)


@dataclass
class MeetingWindow:
    before_start: bool
    during_meeting: bool
    after_end: bool
    seconds_until_start: int
    seconds_until_end: int


@dataclass
class FanJoinResult:
    success: bool
    show_waiting_room: bool = False
    can_join: bool = False
    meeting_ended: bool = False
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Auction finalization
# ---------------------------------------------------------------------------


def _finalize_event(db: DbClient, event: EventRecord, now: datetime) -> Optional[bool]:
    """Close one auction. Returns None if another run already claimed it,
    otherwise whether a meet was created."""
    if not db.transition_event(event.id, OPEN_EVENT_STATUSES, status=EventStatus.COMPLETED):
        logger.info("Event %s already finalized elsewhere, skipping", event.id)
        return None

    winner = db.get_top_bid(event.id, BidStatus.ACTIVE)
    if not winner:
        logger.info("No active bids for event %s. Closing without meet.", event.id)
        return False

    meet_created = False
    try:
        meet = db.create_meet(
            MeetRecord(
                event_id=event.id,
                creator_id=event.creator_id,
                fan_id=winner.fan_id,
                scheduled_at=event.starts_at,
                duration_minutes=event.duration_minutes,
                meeting_link=event.meeting_link,
                status=MeetStatus.SCHEDULED,
                created_at=now,
            )
        )
        meet_created = True
        logger.info(
            "Created meet %s for event %s with winner %s", meet.id, event.id, winner.fan_id
        )
    except Exception:
        # The event stays closed so it is not picked up again on every run.
        logger.exception("Error creating meet for event %s", event.id)

    db.update_event(event.id, winning_bid_id=winner.id)
    db.update_bid(winner.id, status=BidStatus.WON)
    for bid in db.list_bids(event.id, BidStatus.ACTIVE):
        db.update_bid(bid.id, status=BidStatus.LOST)
    return meet_created


def finalize_events(db: DbClient, now: Optional[datetime] = None) -> FinalizeSummary:
    """Close every auction whose bidding deadline has passed."""
    now = now or utcnow()
    logger.info("Checking for events to finalize...")
    events = db.list_events_to_finalize(now)
    summary = FinalizeSummary(checked=len(events))
    if not events:
        logger.info("No events to finalize.")
        return summary

    logger.info("Found %d events to finalize.", len(events))
    for event in events:
        logger.info("Finalizing event: %s (%s)", event.title, event.id)
        try:
            outcome = _finalize_event(db, event, now)
        except Exception:
            logger.exception("Error finalizing event %s", event.id)
            continue
        if outcome is None:
            continue
        summary.finalized += 1
        if outcome:
            summary.meets_created += 1
        logger.info("Event %s marked as completed.", event.id)
    return summary


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------


def meeting_window(meet: MeetRecord, now: Optional[datetime] = None) -> MeetingWindow:
    now = now or utcnow()
    start, end = meet.scheduled_at, meet.scheduled_end
    return MeetingWindow(
        before_start=now < start,
        during_meeting=start <= now < end,
        after_end=now >= end,
        seconds_until_start=_seconds_between(start, now),
        seconds_until_end=_seconds_between(end, now),
    )


def remaining_seconds(meet: MeetRecord, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return max(0, _seconds_between(meet.scheduled_end, now))


# ---------------------------------------------------------------------------
# Participant-driven transitions
# ---------------------------------------------------------------------------


def _require_meet(db: DbClient, meet_id: str) -> MeetRecord:
    meet = db.get_meet(meet_id)
    if not meet:
        raise NotFoundError("Meeting not found")
    return meet


def on_creator_stream_started(
    db: DbClient,
    meet_id: str,
    now: Optional[datetime] = None,
    *,
    creator_id: Optional[str] = None,
) -> MeetRecord:
    """Move a scheduled meet to live when the creator starts publishing."""
    now = now or utcnow()
    meet = _require_meet(db, meet_id)
    if creator_id is not None and meet.creator_id != creator_id:
        raise PermissionDeniedError("User is not the creator of this meeting")

    if meet.status == MeetStatus.LIVE:
        # Creator reconnecting.
        return meet
    if meet.status != MeetStatus.SCHEDULED:
        raise ValidationError(
            f"Meeting is not in a startable state (current: {meet.status})"
        )
    if now >= meet.scheduled_end:
        raise ValidationError("Cannot start meeting after scheduled end time")

    if not db.transition_meet(
        meet_id, [MeetStatus.SCHEDULED], status=MeetStatus.LIVE, creator_started_at=now
    ):
        current = db.get_meet(meet_id)
        if current and current.status == MeetStatus.LIVE:
            return current
        raise ValidationError("Meeting is no longer scheduled")

    started_early = now < meet.scheduled_at
    db.log_meeting_event(
        meet_id,
        MeetingEventType.CREATOR_STREAM_STARTED,
        {
            "started_at": _iso(now),
            "scheduled_start": _iso(meet.scheduled_at),
            "started_early": started_early,
            "seconds_from_scheduled": _seconds_between(meet.scheduled_at, now),
        },
        timestamp=now,
    )
    logger.info("Meet %s is live (started early: %s)", meet_id, started_early)
    return db.get_meet(meet_id)


def on_creator_joined(
    db: DbClient, meet_id: str, creator_id: str, now: Optional[datetime] = None
) -> MeetRecord:
    now = now or utcnow()
    meet = _require_meet(db, meet_id)
    if meet.creator_id != creator_id:
        raise PermissionDeniedError("User is not the creator of this meeting")

    db.update_meet(meet_id, creator_joined_at=now)
    db.log_meeting_event(
        meet_id,
        MeetingEventType.CREATOR_JOINED,
        {"creator_id": creator_id, "joined_at": _iso(now)},
        timestamp=now,
    )
    check_and_start_recording(db, meet_id, now)
    return db.get_meet(meet_id)


def on_fan_attempt_join(
    db: DbClient, meet_id: str, fan_id: str, now: Optional[datetime] = None
) -> FanJoinResult:
    """Decide whether the fan enters the call, waits, or is told the meet is over."""
    now = now or utcnow()
    meet = _require_meet(db, meet_id)
    if meet.fan_id != fan_id:
        raise PermissionDeniedError("User is not the fan for this meeting")

    if meet.status in (MeetStatus.CANCELLED_NO_SHOW_CREATOR, MeetStatus.CANCELLED):
        return FanJoinResult(False, meeting_ended=True, error="Meeting has been cancelled")
    if meet.status == MeetStatus.COMPLETED:
        return FanJoinResult(False, meeting_ended=True, error="Meeting has already ended")
    if now >= meet.scheduled_end:
        return FanJoinResult(False, meeting_ended=True, error="Meeting time has ended")

    if meet.status == MeetStatus.SCHEDULED:
        db.log_meeting_event(
            meet_id,
            MeetingEventType.FAN_WAITING_ROOM,
            {"fan_id": fan_id, "attempted_at": _iso(now)},
            timestamp=now,
        )
        return FanJoinResult(True, show_waiting_room=True)

    if meet.status == MeetStatus.LIVE:
        if not meet.fan_joined_at:
            db.update_meet(meet_id, fan_joined_at=now)
            db.log_meeting_event(
                meet_id,
                MeetingEventType.FAN_JOINED,
                {
                    "fan_id": fan_id,
                    "joined_at": _iso(now),
                    "scheduled_start": _iso(meet.scheduled_at),
                    "joined_late_by_seconds": max(
                        0, _seconds_between(now, meet.scheduled_at)
                    ),
                },
                timestamp=now,
            )
            check_and_start_recording(db, meet_id, now)
        return FanJoinResult(True, can_join=True)

    return FanJoinResult(False, error="Unknown meeting state")


def check_and_start_recording(
    db: DbClient, meet_id: str, now: Optional[datetime] = None
) -> bool:
    """Mark recording as started once both participants are present."""
    now = now or utcnow()
    meet = db.get_meet(meet_id)
    if not meet or meet.status != MeetStatus.LIVE or meet.recording_started_at:
        return False
    if not (meet.creator_started_at and meet.fan_joined_at):
        return False

    db.update_meet(meet_id, recording_started_at=now)
    db.log_meeting_event(
        meet_id,
        MeetingEventType.RECORDING_STARTED,
        {"started_at": _iso(now)},
        timestamp=now,
    )
    logger.info("Recording started for meet %s", meet_id)
    return True


# ---------------------------------------------------------------------------
# Periodic checks
# ---------------------------------------------------------------------------


def _is_creator_no_show(meet: MeetRecord) -> bool:
    return not meet.creator_started_at or meet.creator_started_at >= meet.scheduled_at


def _cancel_for_no_show(
    db: DbClient, meet: MeetRecord, settings: Settings, now: datetime
) -> bool:
    if not db.transition_meet(
        meet.id,
        [MeetStatus.SCHEDULED],
        status=MeetStatus.CANCELLED_NO_SHOW_CREATOR,
        cancelled_at=now,
        cancellation_reason=CREATOR_NO_SHOW_REASON,
    ):
        logger.info("Meet %s left scheduled state before cancellation, skipping", meet.id)
        return False

    db.log_meeting_event(
        meet.id,
        MeetingEventType.MEETING_CANCELLED_NO_SHOW_CREATOR,
        {"cancelled_at": _iso(now), "scheduled_start": _iso(meet.scheduled_at)},
        timestamp=now,
    )
    db.log_meeting_event(
        meet.id,
        MeetingEventType.FAN_JOIN_STATUS_AT_S,
        {
            "fan_joined": meet.fan_joined_at is not None,
            "fan_joined_at": _iso(meet.fan_joined_at),
        },
        timestamp=now,
    )

    try:
        refund = process_refund(db, meet, settings, now)
    except Exception as exc:
        logger.exception("Error processing refund for meet %s", meet.id)
        refund = RefundResult(False, make_refund_id(meet.id, now), 0, str(exc))

    db.update_meet(meet.id, refund_id=refund.refund_id)
    db.log_meeting_event(
        meet.id,
        MeetingEventType.REFUND_ISSUED,
        {
            "refund_id": refund.refund_id,
            "fan_id": meet.fan_id,
            "amount": refund.amount,
            "reason": CREATOR_NO_SHOW_REASON,
            "refund_marked": refund.success,
        },
        timestamp=now,
    )
    logger.info("Meet %s cancelled, refund processed: %s", meet.id, refund.amount)
    return True


def check_scheduled_start_no_shows(
    db: DbClient, settings: Settings, now: Optional[datetime] = None
) -> NoShowSummary:
    now = now or utcnow()
    logger.info("Checking for creator no-shows at scheduled start time...")
    meets = db.list_meets(MeetStatus.SCHEDULED, scheduled_before=now)
    summary = NoShowSummary(checked=len(meets))
    if not meets:
        logger.info("No meetings past scheduled start time.")
        return summary

    logger.info("Found %d meetings past start time.", len(meets))
    for meet in meets:
        if not _is_creator_no_show(meet):
            continue
        logger.info("Cancelling meet %s - creator no-show", meet.id)
        try:
            if _cancel_for_no_show(db, meet, settings, now):
                summary.cancelled += 1
        except Exception:
            logger.exception("Error cancelling meet %s", meet.id)
    return summary


def _complete_meet(
    db: DbClient, meet: MeetRecord, settings: Settings, now: datetime
) -> bool:
    if meet.recording_started_at and not meet.recording_stopped_at:
        db.update_meet(meet.id, recording_stopped_at=now)
        db.log_meeting_event(
            meet.id,
            MeetingEventType.RECORDING_STOPPED,
            {"stopped_at": _iso(now)},
            timestamp=now,
        )

    if not db.transition_meet(
        meet.id, [MeetStatus.LIVE], status=MeetStatus.COMPLETED, completed_at=now
    ):
        logger.info("Meet %s left live state before completion, skipping", meet.id)
        return False

    try:
        credited = credit_creator_for_completed_meeting(db, meet, settings, now)
    except Exception:
        logger.exception("Error crediting creator for meet %s", meet.id)
        credited = False

    db.log_meeting_event(
        meet.id,
        MeetingEventType.MEETING_COMPLETED,
        {
            "completed_at": _iso(now),
            "creator_started_at": _iso(meet.creator_started_at),
            "fan_joined_at": _iso(meet.fan_joined_at),
            "recording_started_at": _iso(meet.recording_started_at),
            "creator_credited": credited,
        },
        timestamp=now,
    )
    logger.info("Meet %s completed, creator credited: %s", meet.id, credited)
    return True


def check_scheduled_end_completions(
    db: DbClient, settings: Settings, now: Optional[datetime] = None
) -> CompletionSummary:
    now = now or utcnow()
    logger.info("Checking for meetings at scheduled end time...")
    meets = db.list_meets(MeetStatus.LIVE)
    summary = CompletionSummary(checked=len(meets))
    if not meets:
        logger.info("No live meetings.")
        return summary

    for meet in meets:
        if now < meet.scheduled_end:
            continue
        logger.info("Completing meet %s - reached end time", meet.id)
        try:
            if _complete_meet(db, meet, settings, now):
                summary.completed += 1
        except Exception:
            logger.exception("Error completing meet %s", meet.id)
    return summary


def run_lifecycle_checks(
    db: DbClient, settings: Settings, now: Optional[datetime] = None
) -> LifecycleReport:
    now = now or utcnow()
    logger.info("=== Meeting Lifecycle Check @ %s ===", now.isoformat())
    report = LifecycleReport(
        timestamp=now,
        no_show=check_scheduled_start_no_shows(db, settings, now),
        completion=check_scheduled_end_completions(db, settings, now),
    )
    logger.info(
        "=== Check complete: %d/%d cancelled, %d/%d completed ===",
        report.no_show.cancelled,
        report.no_show.checked,
        report.completion.completed,
        report.completion.checked,
    )
    return report
