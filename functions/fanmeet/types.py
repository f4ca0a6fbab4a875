"""
Status values and audit-log event types stored in the marketplace tables.
"""

from enum import Enum


class EventStatus(str, Enum):
    UPCOMING = "Upcoming"
    ACCEPTING_BIDS = "Accepting Bids"
    LIVE = "LIVE"
    COMPLETED = "completed"


# Events in these states are still open for bidding.
OPEN_EVENT_STATUSES = (EventStatus.UPCOMING, EventStatus.ACCEPTING_BIDS)


class BidStatus(str, Enum):
    ACTIVE = "active"
    OUTBID = "outbid"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"


class MeetStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED_NO_SHOW_CREATOR = "cancelled_no_show_creator"
    CANCELLED = "cancelled"


class MeetingEventType(str, Enum):
    CREATOR_STREAM_STARTED = "CREATOR_STREAM_STARTED"
    CREATOR_JOINED = "CREATOR_JOINED"
    FAN_JOINED = "FAN_JOINED"
    FAN_WAITING_ROOM = "FAN_WAITING_ROOM"
    RECORDING_STARTED = "RECORDING_STARTED"
    RECORDING_STOPPED = "RECORDING_STOPPED"
    MEETING_CANCELLED_NO_SHOW_CREATOR = "MEETING_CANCELLED_NO_SHOW_CREATOR"
    REFUND_ISSUED = "REFUND_ISSUED"
    MEETING_COMPLETED = "MEETING_COMPLETED"
    FAN_JOIN_STATUS_AT_S = "FAN_JOIN_STATUS_AT_S"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RecordingAction(str, Enum):
    START = "start"
    STOP = "stop"
    QUERY = "query"


CREATOR_NO_SHOW_REASON = "CREATOR_NO_SHOW"
