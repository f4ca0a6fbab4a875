"""
Pydantic schemas for the FanMeet HTTP functions.

Field names follow the JSON the web client already sends and reads, which mixes
camelCase and snake_case depending on the function.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: Literal["ok"]


class ImpersonateRequest(BaseModel):
    targetUserId: Optional[str] = None


class ImpersonateResponse(BaseModel):
    actionLink: str


class FundAccountRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    ifsc: Optional[str] = Field(default=None, max_length=11)
    account_number: Optional[str] = Field(default=None, max_length=40)
    upi_id: Optional[str] = Field(default=None, max_length=100)
    creator_id: Optional[str] = None


class FundAccountResponse(BaseModel):
    fund_account_id: str
    contact_id: str


class TriggerPayoutRequest(BaseModel):
    withdrawal_request_id: Optional[str] = None


class TriggerPayoutResponse(BaseModel):
    success: Optional[bool] = None
    payout_id: Optional[str] = None
    message: Optional[str] = None
    status: Optional[str] = None


class RecordingRequest(BaseModel):
    action: Optional[str] = None
    meetId: Optional[str] = None
    mode: Optional[str] = None


class NoShowCheck(BaseModel):
    checked: int
    cancelled: int


class CompletionCheck(BaseModel):
    checked: int
    completed: int


class LifecycleCronResponse(BaseModel):
    success: bool
    timestamp: datetime
    noShowCheck: NoShowCheck
    completionCheck: CompletionCheck


class FinalizeEventsResponse(BaseModel):
    success: bool
    checked: int
    finalized: int
    meetsCreated: int


class TransitionResponse(BaseModel):
    success: bool
    status: Optional[str] = None


class FanJoinResponse(BaseModel):
    success: bool
    showWaitingRoom: bool
    canJoin: bool
    meetingEnded: bool = False
    error: Optional[str] = None


class MeetingLogEntry(BaseModel):
    id: Optional[int] = None
    event_type: str
    timestamp: datetime
    metadata: dict


class MeetingLogsResponse(BaseModel):
    meetId: str
    logs: list[MeetingLogEntry]


class MeetingTimingResponse(BaseModel):
    beforeStart: bool
    duringMeeting: bool
    afterEnd: bool
    secondsUntilStart: int
    secondsUntilEnd: int
    remainingSeconds: int


class RecordingUrlResponse(BaseModel):
    url: str
