"""
HTTP routes for the FanMeet functions API.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse

from fanmeet import lifecycle, payouts
from fanmeet.auth import AuthClient, AuthUser
from fanmeet.config import Settings, get_settings
from fanmeet.db import DbClient, MeetRecord
from fanmeet.dependencies import (
    get_auth_client,
    get_bearer_token,
    get_current_user,
    get_db_client,
    get_payments_client,
    get_recording_service,
    get_recording_storage,
)
from fanmeet.errors import FanmeetError, NotFoundError, PermissionDeniedError
from fanmeet.impersonation import impersonate_user
from fanmeet.razorpay import PaymentsClient
from fanmeet.recordings import RecordingService, notify_webhook
from fanmeet.schemas import (
    CompletionCheck,
    FanJoinResponse,
    FinalizeEventsResponse,
    FundAccountRequest,
    FundAccountResponse,
    ImpersonateRequest,
    ImpersonateResponse,
    LifecycleCronResponse,
    MeetingLogEntry,
    MeetingLogsResponse,
    MeetingTimingResponse,
    NoShowCheck,
    RecordingRequest,
    RecordingUrlResponse,
    TransitionResponse,
    TriggerPayoutRequest,
    TriggerPayoutResponse,
)
from fanmeet.storage import RecordingStorageClient
from fanmeet.types import RecordingAction

logger = logging.getLogger(__name__)

router = APIRouter()

_RECORDING_ACTIONS = {action.value for action in RecordingAction}


def _participant_meet(db: DbClient, meet_id: str, user: AuthUser) -> MeetRecord:
    meet = db.get_meet(meet_id)
    if not meet:
        raise NotFoundError("Meeting not found")
    if user.id not in (meet.creator_id, meet.fan_id):
        raise PermissionDeniedError("User is not a participant of this meeting")
    return meet


@router.post("/admin-impersonate-user", response_model=ImpersonateResponse)
def admin_impersonate_user(
    payload: ImpersonateRequest,
    token: Optional[str] = Depends(get_bearer_token),
    auth: AuthClient = Depends(get_auth_client),
    db: DbClient = Depends(get_db_client),
):
    action_link = impersonate_user(auth, db, token, payload.targetUserId)
    return ImpersonateResponse(actionLink=action_link)


@router.post("/create-razorpay-fund-account", response_model=FundAccountResponse)
def create_razorpay_fund_account(
    payload: FundAccountRequest,
    user: AuthUser = Depends(get_current_user),
    razorpay: PaymentsClient = Depends(get_payments_client),
    db: DbClient = Depends(get_db_client),
):
    result = payouts.create_fund_account(
        razorpay,
        name=payload.name,
        ifsc=payload.ifsc,
        account_number=payload.account_number,
        upi_id=payload.upi_id,
        creator_id=payload.creator_id,
        caller_id=user.id,
        db=db,
    )
    return FundAccountResponse(**result)


@router.post(
    "/trigger-payout",
    response_model=TriggerPayoutResponse,
    response_model_exclude_none=True,
)
def trigger_payout(
    payload: TriggerPayoutRequest,
    db: DbClient = Depends(get_db_client),
    razorpay: PaymentsClient = Depends(get_payments_client),
    settings: Settings = Depends(get_settings),
):
    result = payouts.trigger_payout(db, razorpay, settings, payload.withdrawal_request_id)
    return TriggerPayoutResponse(**result)


@router.post("/agora-cloud-recording")
def agora_cloud_recording(
    payload: RecordingRequest,
    background_tasks: BackgroundTasks,
    service: RecordingService = Depends(get_recording_service),
    settings: Settings = Depends(get_settings),
):
    if not payload.action or not payload.meetId:
        return JSONResponse({"error": "Missing action or meetId"}, status_code=400)
    try:
        service.get_meet(payload.meetId)
    except NotFoundError as exc:
        return JSONResponse({"error": exc.message}, status_code=404)
    if payload.action not in _RECORDING_ACTIONS:
        return JSONResponse(
            {"error": f"Unsupported action: {payload.action}"}, status_code=400
        )

    try:
        result = service.perform(payload.action, payload.meetId, payload.mode)
    except (FanmeetError, requests.RequestException) as exc:
        logger.error(
            "Agora cloud recording %s failed for %s: %s",
            payload.action,
            payload.meetId,
            exc,
        )
        message = exc.message if isinstance(exc, FanmeetError) else str(exc)
        return JSONResponse({"success": False, "error": message}, status_code=500)
    except Exception as exc:
        logger.exception(
            "Agora cloud recording %s failed for %s", payload.action, payload.meetId
        )
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)

    if settings.agora_webhook_url:
        background_tasks.add_task(
            notify_webhook,
            settings.agora_webhook_url,
            payload.meetId,
            payload.action,
            result,
            settings.request_timeout_seconds,
        )
    return {"success": True, "action": payload.action, "data": result}


@router.post("/meeting-lifecycle-cron", response_model=LifecycleCronResponse)
def meeting_lifecycle_cron(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    try:
        report = lifecycle.run_lifecycle_checks(db, settings)
    except Exception as exc:
        logger.exception("Meeting lifecycle cron failed")
        return JSONResponse({"success": False, "error": str(exc)}, status_code=500)
    return LifecycleCronResponse(
        success=True,
        timestamp=report.timestamp,
        noShowCheck=NoShowCheck(
            checked=report.no_show.checked, cancelled=report.no_show.cancelled
        ),
        completionCheck=CompletionCheck(
            checked=report.completion.checked, completed=report.completion.completed
        ),
    )


@router.post("/finalize-events", response_model=FinalizeEventsResponse)
def finalize_events(db: DbClient = Depends(get_db_client)):
    summary = lifecycle.finalize_events(db)
    return FinalizeEventsResponse(
        success=True,
        checked=summary.checked,
        finalized=summary.finalized,
        meetsCreated=summary.meets_created,
    )


@router.post("/meets/{meet_id}/start", response_model=TransitionResponse)
def start_meet(
    meet_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    meet = lifecycle.on_creator_stream_started(db, meet_id, creator_id=user.id)
    return TransitionResponse(success=True, status=meet.status)


@router.post("/meets/{meet_id}/creator-joined", response_model=TransitionResponse)
def creator_joined(
    meet_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    meet = lifecycle.on_creator_joined(db, meet_id, user.id)
    return TransitionResponse(success=True, status=meet.status)


@router.post("/meets/{meet_id}/join", response_model=FanJoinResponse)
def fan_join(
    meet_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    result = lifecycle.on_fan_attempt_join(db, meet_id, user.id)
    return FanJoinResponse(
        success=result.success,
        showWaitingRoom=result.show_waiting_room,
        canJoin=result.can_join,
        meetingEnded=result.meeting_ended,
        error=result.error,
    )


@router.get("/meets/{meet_id}/logs", response_model=MeetingLogsResponse)
def meeting_logs(
    meet_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    _participant_meet(db, meet_id, user)
    logs = [
        MeetingLogEntry(
            id=entry.id,
            event_type=entry.event_type,
            timestamp=entry.timestamp,
            metadata=entry.metadata or {},
        )
        for entry in db.list_meeting_events(meet_id)
    ]
    return MeetingLogsResponse(meetId=meet_id, logs=logs)


@router.get("/meets/{meet_id}/timing", response_model=MeetingTimingResponse)
def meeting_timing(
    meet_id: str,
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    meet = _participant_meet(db, meet_id, user)
    window = lifecycle.meeting_window(meet)
    return MeetingTimingResponse(
        beforeStart=window.before_start,
        duringMeeting=window.during_meeting,
        afterEnd=window.after_end,
        secondsUntilStart=window.seconds_until_start,
        secondsUntilEnd=window.seconds_until_end,
        remainingSeconds=lifecycle.remaining_seconds(meet),
    )


@router.get("/meets/{meet_id}/recording-url", response_model=RecordingUrlResponse)
def recording_url(
    meet_id: str,
    expires_in: int = Query(3600, ge=60, le=7 * 24 * 3600),
    user: AuthUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
    storage: RecordingStorageClient = Depends(get_recording_storage),
):
    meet = _participant_meet(db, meet_id, user)
    if not meet.recording_url:
        raise NotFoundError("No recording available for this meeting")
    return RecordingUrlResponse(url=storage.presign_get(meet.recording_url, expires_in))
