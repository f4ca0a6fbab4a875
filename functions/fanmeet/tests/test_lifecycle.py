import unittest
from datetime import datetime, timedelta, timezone

from fanmeet.config import Settings
from fanmeet.db import BidRecord, EventRecord, InMemoryDbClient, MeetRecord
from fanmeet.errors import NotFoundError, PermissionDeniedError, ValidationError
from fanmeet.lifecycle import (
    check_and_start_recording,
    check_scheduled_end_completions,
    check_scheduled_start_no_shows,
    finalize_events,
    meeting_window,
    on_creator_joined,
    on_creator_stream_started,
    on_fan_attempt_join,
    remaining_seconds,
    run_lifecycle_checks,
)
from fanmeet.types import BidStatus, EventStatus, MeetingEventType, MeetStatus

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def seed_event(db, *, closes_at=None, starts_at=None, status=EventStatus.ACCEPTING_BIDS):
    return db.add_event(
        EventRecord(
            creator_id="creator-1",
            title="Coffee chat",
            status=status,
            bidding_closes_at=closes_at or NOW - timedelta(minutes=5),
            starts_at=starts_at or NOW + timedelta(hours=1),
            duration_minutes=30,
            meeting_link="https://meet.example/abc",
        )
    )


def seed_bid(db, event, fan_id, amount, *, placed_at):
    return db.add_bid(
        BidRecord(event_id=event.id, fan_id=fan_id, amount=amount, created_at=placed_at)
    )


class FinalizeEventsTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def test_highest_bid_wins_and_others_lose(self):
        event = seed_event(self.db)
        low = seed_bid(self.db, event, "fan-1", 300, placed_at=NOW - timedelta(hours=3))
        high = seed_bid(self.db, event, "fan-2", 500, placed_at=NOW - timedelta(hours=2))

        summary = finalize_events(self.db, NOW)

        self.assertEqual(summary.checked, 1)
        self.assertEqual(summary.finalized, 1)
        self.assertEqual(summary.meets_created, 1)

        closed = self.db.get_event(event.id)
        self.assertEqual(closed.status, EventStatus.COMPLETED.value)
        self.assertEqual(closed.winning_bid_id, high.id)
        self.assertEqual(self.db.get_bid(high.id).status, BidStatus.WON.value)
        self.assertEqual(self.db.get_bid(low.id).status, BidStatus.LOST.value)

        meets = self.db.list_meets(MeetStatus.SCHEDULED)
        self.assertEqual(len(meets), 1)
        self.assertEqual(meets[0].fan_id, "fan-2")
        self.assertEqual(meets[0].creator_id, "creator-1")
        self.assertEqual(meets[0].scheduled_at, event.starts_at)
        self.assertEqual(meets[0].duration_minutes, 30)
        self.assertEqual(meets[0].meeting_link, "https://meet.example/abc")

    def test_equal_amounts_go_to_earliest_bid(self):
        event = seed_event(self.db)
        seed_bid(self.db, event, "late-fan", 400, placed_at=NOW - timedelta(hours=1))
        early = seed_bid(self.db, event, "early-fan", 400, placed_at=NOW - timedelta(hours=4))

        finalize_events(self.db, NOW)

        self.assertEqual(self.db.get_event(event.id).winning_bid_id, early.id)
        self.assertEqual(self.db.list_meets(MeetStatus.SCHEDULED)[0].fan_id, "early-fan")

    def test_event_without_bids_closes_without_meet(self):
        event = seed_event(self.db)

        summary = finalize_events(self.db, NOW)

        self.assertEqual(summary.finalized, 1)
        self.assertEqual(summary.meets_created, 0)
        self.assertEqual(self.db.get_event(event.id).status, EventStatus.COMPLETED.value)
        self.assertEqual(self.db.list_meets(MeetStatus.SCHEDULED), [])

    def test_open_auction_is_left_alone(self):
        event = seed_event(self.db, closes_at=NOW + timedelta(minutes=10))
        seed_bid(self.db, event, "fan-1", 100, placed_at=NOW - timedelta(minutes=1))

        summary = finalize_events(self.db, NOW)

        self.assertEqual(summary.checked, 0)
        self.assertEqual(self.db.get_event(event.id).status, EventStatus.ACCEPTING_BIDS.value)

    def test_second_run_does_not_create_another_meet(self):
        event = seed_event(self.db, status=EventStatus.UPCOMING)
        seed_bid(self.db, event, "fan-1", 100, placed_at=NOW - timedelta(hours=1))

        finalize_events(self.db, NOW)
        again = finalize_events(self.db, NOW + timedelta(minutes=1))

        self.assertEqual(again.checked, 0)
        self.assertEqual(len(self.db.meets), 1)

    def test_failed_meet_creation_keeps_event_closed(self):
        event = seed_event(self.db)
        winner = seed_bid(self.db, event, "fan-1", 100, placed_at=NOW - timedelta(hours=1))

        def broken_create(meet):
            raise RuntimeError("insert failed")

        self.db.create_meet = broken_create
        summary = finalize_events(self.db, NOW)

        self.assertEqual(summary.finalized, 1)
        self.assertEqual(summary.meets_created, 0)
        self.assertEqual(self.db.get_event(event.id).status, EventStatus.COMPLETED.value)
        self.assertEqual(self.db.get_bid(winner.id).status, BidStatus.WON.value)


class MeetingFlowTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.settings = Settings(_env_file=None)
        event = seed_event(self.db)
        self.bid = seed_bid(self.db, event, "fan-1", 500, placed_at=NOW - timedelta(hours=2))
        finalize_events(self.db, NOW)
        self.meet = self.db.list_meets(MeetStatus.SCHEDULED)[0]
        self.start = self.meet.scheduled_at

    def event_types(self):
        return [log.event_type for log in self.db.list_meeting_events(self.meet.id)]

    def test_meeting_window(self):
        before = meeting_window(self.meet, self.start - timedelta(minutes=10))
        self.assertTrue(before.before_start)
        self.assertFalse(before.during_meeting)
        self.assertEqual(before.seconds_until_start, 600)

        during = meeting_window(self.meet, self.start + timedelta(minutes=10))
        self.assertTrue(during.during_meeting)
        self.assertEqual(during.seconds_until_end, 20 * 60)

        after = meeting_window(self.meet, self.start + timedelta(minutes=30))
        self.assertTrue(after.after_end)
        self.assertFalse(after.during_meeting)

    def test_remaining_seconds_never_negative(self):
        self.assertEqual(remaining_seconds(self.meet, self.start + timedelta(minutes=29)), 60)
        self.assertEqual(remaining_seconds(self.meet, self.start + timedelta(hours=2)), 0)

    def test_creator_can_start_early(self):
        at = self.start - timedelta(minutes=5)
        meet = on_creator_stream_started(self.db, self.meet.id, at)

        self.assertEqual(meet.status, MeetStatus.LIVE.value)
        self.assertEqual(meet.creator_started_at, at)
        log = self.db.list_meeting_events(self.meet.id)[-1]
        self.assertEqual(log.event_type, MeetingEventType.CREATOR_STREAM_STARTED.value)
        self.assertTrue(log.metadata["started_early"])
        self.assertEqual(log.metadata["seconds_from_scheduled"], 300)

    def test_restart_while_live_is_a_no_op(self):
        at = self.start - timedelta(minutes=5)
        on_creator_stream_started(self.db, self.meet.id, at)
        again = on_creator_stream_started(self.db, self.meet.id, at + timedelta(minutes=1))

        self.assertEqual(again.creator_started_at, at)
        self.assertEqual(self.event_types().count("CREATOR_STREAM_STARTED"), 1)

    def test_cannot_start_after_scheduled_end(self):
        with self.assertRaises(ValidationError):
            on_creator_stream_started(self.db, self.meet.id, self.start + timedelta(minutes=31))

    def test_cannot_start_cancelled_meet(self):
        self.db.update_meet(self.meet.id, status=MeetStatus.CANCELLED_NO_SHOW_CREATOR)
        with self.assertRaises(ValidationError) as ctx:
            on_creator_stream_started(self.db, self.meet.id, self.start)
        self.assertIn("cancelled_no_show_creator", ctx.exception.message)

    def test_only_creator_can_start(self):
        with self.assertRaises(PermissionDeniedError):
            on_creator_stream_started(
                self.db, self.meet.id, self.start, creator_id="fan-1"
            )

    def test_unknown_meet(self):
        with self.assertRaises(NotFoundError):
            on_creator_stream_started(self.db, "missing", self.start)

    def test_fan_waits_until_creator_starts(self):
        result = on_fan_attempt_join(
            self.db, self.meet.id, "fan-1", self.start - timedelta(minutes=1)
        )

        self.assertTrue(result.success)
        self.assertTrue(result.show_waiting_room)
        self.assertFalse(result.can_join)
        self.assertEqual(self.event_types(), ["FAN_WAITING_ROOM"])

    def test_fan_joins_live_meet_and_recording_starts(self):
        on_creator_stream_started(self.db, self.meet.id, self.start - timedelta(minutes=2))
        joined_at = self.start + timedelta(minutes=2)

        result = on_fan_attempt_join(self.db, self.meet.id, "fan-1", joined_at)

        self.assertTrue(result.can_join)
        meet = self.db.get_meet(self.meet.id)
        self.assertEqual(meet.fan_joined_at, joined_at)
        self.assertEqual(meet.recording_started_at, joined_at)
        logs = self.db.list_meeting_events(self.meet.id)
        fan_log = next(log for log in logs if log.event_type == "FAN_JOINED")
        self.assertEqual(fan_log.metadata["joined_late_by_seconds"], 120)
        self.assertEqual(
            self.event_types(),
            ["CREATOR_STREAM_STARTED", "FAN_JOINED", "RECORDING_STARTED"],
        )

    def test_fan_rejoin_does_not_log_twice(self):
        on_creator_stream_started(self.db, self.meet.id, self.start)
        on_fan_attempt_join(self.db, self.meet.id, "fan-1", self.start + timedelta(minutes=1))
        on_fan_attempt_join(self.db, self.meet.id, "fan-1", self.start + timedelta(minutes=3))

        self.assertEqual(self.event_types().count("FAN_JOINED"), 1)
        self.assertEqual(self.event_types().count("RECORDING_STARTED"), 1)

    def test_other_user_cannot_join_as_fan(self):
        with self.assertRaises(PermissionDeniedError):
            on_fan_attempt_join(self.db, self.meet.id, "someone-else", self.start)

    def test_fan_told_when_meeting_is_over(self):
        result = on_fan_attempt_join(
            self.db, self.meet.id, "fan-1", self.start + timedelta(minutes=45)
        )
        self.assertFalse(result.success)
        self.assertTrue(result.meeting_ended)
        self.assertEqual(result.error, "Meeting time has ended")

        self.db.update_meet(self.meet.id, status=MeetStatus.CANCELLED_NO_SHOW_CREATOR)
        result = on_fan_attempt_join(self.db, self.meet.id, "fan-1", self.start)
        self.assertEqual(result.error, "Meeting has been cancelled")

    def test_creator_joined_records_and_checks_recording(self):
        on_creator_stream_started(self.db, self.meet.id, self.start)
        on_fan_attempt_join(self.db, self.meet.id, "fan-1", self.start)
        meet = on_creator_joined(
            self.db, self.meet.id, "creator-1", self.start + timedelta(seconds=30)
        )

        self.assertEqual(meet.creator_joined_at, self.start + timedelta(seconds=30))
        self.assertIn("CREATOR_JOINED", self.event_types())
        with self.assertRaises(PermissionDeniedError):
            on_creator_joined(self.db, self.meet.id, "fan-1", self.start)

    def test_recording_needs_both_participants(self):
        on_creator_stream_started(self.db, self.meet.id, self.start)
        self.assertFalse(check_and_start_recording(self.db, self.meet.id, self.start))

    def test_creator_no_show_cancels_and_refunds(self):
        at = self.start + timedelta(seconds=5)

        summary = check_scheduled_start_no_shows(self.db, self.settings, at)

        self.assertEqual(summary.checked, 1)
        self.assertEqual(summary.cancelled, 1)
        meet = self.db.get_meet(self.meet.id)
        self.assertEqual(meet.status, MeetStatus.CANCELLED_NO_SHOW_CREATOR.value)
        self.assertEqual(meet.cancellation_reason, "CREATOR_NO_SHOW")
        self.assertEqual(meet.cancelled_at, at)
        self.assertTrue(meet.refund_id.endswith(self.meet.id))

        wallet = self.db.get_wallet("fan-1")
        self.assertEqual(wallet.balance, 500)
        [txn] = self.db.list_wallet_transactions(wallet.id)
        self.assertEqual(txn.type, "creator_no_show_refund")
        self.assertEqual(txn.direction, "credit")
        self.assertEqual(txn.amount, 500)
        self.assertEqual(txn.commission_amount, 0)

        bid = self.db.get_bid(self.bid.id)
        self.assertEqual(bid.refund_amount, 500)
        self.assertEqual(bid.refund_status, "refunded")

        [notification] = self.db.list_notifications("fan-1")
        self.assertEqual(notification.title, "Full Refund - Creator No-Show")

        self.assertEqual(
            self.event_types(),
            [
                "MEETING_CANCELLED_NO_SHOW_CREATOR",
                "FAN_JOIN_STATUS_AT_S",
                "REFUND_ISSUED",
            ],
        )
        refund_log = self.db.list_meeting_events(self.meet.id)[-1]
        self.assertEqual(refund_log.metadata["amount"], 500)
        self.assertTrue(refund_log.metadata["refund_marked"])

    def test_no_show_refund_is_applied_once(self):
        at = self.start + timedelta(seconds=5)
        check_scheduled_start_no_shows(self.db, self.settings, at)
        again = check_scheduled_start_no_shows(self.db, self.settings, at)

        self.assertEqual(again.checked, 0)
        self.assertEqual(self.db.get_wallet("fan-1").balance, 500)

    def test_meet_before_start_is_not_checked(self):
        summary = check_scheduled_start_no_shows(
            self.db, self.settings, self.start - timedelta(minutes=1)
        )
        self.assertEqual(summary.checked, 0)

    def test_failed_refund_still_cancels(self):
        def broken_credit(wallet_id, amount, now, transaction=None):
            raise RuntimeError("wallet service down")

        self.db.credit_wallet = broken_credit

        summary = check_scheduled_start_no_shows(self.db, self.settings, self.start)

        self.assertEqual(summary.cancelled, 1)
        refund_log = self.db.list_meeting_events(self.meet.id)[-1]
        self.assertEqual(refund_log.event_type, "REFUND_ISSUED")
        self.assertFalse(refund_log.metadata["refund_marked"])

    def test_completion_credits_creator(self):
        on_creator_stream_started(self.db, self.meet.id, self.start)
        on_fan_attempt_join(self.db, self.meet.id, "fan-1", self.start)
        end = self.start + timedelta(minutes=30)

        summary = check_scheduled_end_completions(self.db, self.settings, end)

        self.assertEqual(summary.checked, 1)
        self.assertEqual(summary.completed, 1)
        meet = self.db.get_meet(self.meet.id)
        self.assertEqual(meet.status, MeetStatus.COMPLETED.value)
        self.assertEqual(meet.completed_at, end)
        self.assertEqual(meet.recording_stopped_at, end)

        wallet = self.db.get_wallet("creator-1")
        self.assertEqual(wallet.balance, 450)
        [txn] = self.db.list_wallet_transactions(wallet.id)
        self.assertEqual(txn.type, "meeting_earning")
        self.assertEqual(txn.commission_amount, 50)
        self.assertEqual(txn.commission_type, "platform_fee")
        self.assertEqual(txn.available_for_withdrawal_at, end + timedelta(hours=24))

        self.assertEqual(self.event_types()[-2:], ["RECORDING_STOPPED", "MEETING_COMPLETED"])
        self.assertTrue(self.db.list_meeting_events(self.meet.id)[-1].metadata["creator_credited"])

    def test_live_meet_before_end_keeps_running(self):
        on_creator_stream_started(self.db, self.meet.id, self.start)
        summary = check_scheduled_end_completions(
            self.db, self.settings, self.start + timedelta(minutes=29)
        )
        self.assertEqual(summary.completed, 0)
        self.assertEqual(self.db.get_meet(self.meet.id).status, MeetStatus.LIVE.value)

    def test_platform_fee_comes_from_settings(self):
        settings = Settings(_env_file=None, platform_fee_percent=20)
        on_creator_stream_started(self.db, self.meet.id, self.start)
        check_scheduled_end_completions(self.db, settings, self.start + timedelta(minutes=30))
        self.assertEqual(self.db.get_wallet("creator-1").balance, 400)

    def test_run_lifecycle_checks_reports_both_passes(self):
        report = run_lifecycle_checks(self.db, self.settings, self.start + timedelta(minutes=1))

        self.assertEqual(report.timestamp, self.start + timedelta(minutes=1))
        self.assertEqual(report.no_show.cancelled, 1)
        self.assertEqual(report.completion.checked, 0)


class ManualMeetTests(unittest.TestCase):
    def test_completion_without_winning_bid_does_not_credit(self):
        db = InMemoryDbClient()
        event = seed_event(db, status=EventStatus.COMPLETED)
        meet = db.create_meet(
            MeetRecord(
                event_id=event.id,
                creator_id="creator-1",
                fan_id="fan-1",
                scheduled_at=NOW - timedelta(hours=1),
                duration_minutes=30,
                status=MeetStatus.LIVE,
                creator_started_at=NOW - timedelta(hours=1),
            )
        )

        summary = check_scheduled_end_completions(db, Settings(_env_file=None), NOW)

        self.assertEqual(summary.completed, 1)
        self.assertIsNone(db.get_wallet("creator-1"))
        log = db.list_meeting_events(meet.id)[-1]
        self.assertFalse(log.metadata["creator_credited"])


if __name__ == "__main__":
    unittest.main()
