"""
Cloud recording control for meets.

The Agora channel name is the meet id; resource id, sid and mode are kept on
the meet row so a later stop/query can address the same recording session.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import requests

from fanmeet.agora import RecordingClient
from fanmeet.config import Settings
from fanmeet.db import DbClient, MeetRecord, utcnow
from fanmeet.errors import ConfigurationError, NotFoundError, ValidationError
from fanmeet.types import RecordingAction

logger = logging.getLogger(__name__)

RECORDING_CONFIG = {
    "channelType": 0,
    "streamTypes": 0,
    "maxIdleTime": 30,
    "transcodingConfig": {
        "width": 1280,
        "height": 720,
        "fps": 30,
        "bitrate": 2400,
        "maxResolutionUid": "1",
        "mixedVideoLayout": 1,
        "backgroundColor": "#000000",
    },
    "subscribeVideoUids": ["#allstream#"],
    "subscribeAudioUids": ["#allstream#"],
    "subscribeUidGroup": 0,
}


class RecordingService:
    def __init__(self, db: DbClient, client: RecordingClient, settings: Settings):
        self.db = db
        self.client = client
        self.settings = settings

    def get_meet(self, meet_id: str) -> MeetRecord:
        meet = self.db.get_meet(meet_id)
        if not meet:
            raise NotFoundError("Meeting not found")
        return meet

    def _storage_config(self) -> dict:
        s = self.settings
        if not (
            s.agora_storage_bucket
            and s.agora_storage_access_key
            and s.agora_storage_secret_key
        ):
            raise ConfigurationError("Missing Agora storage configuration")
        return {
            "vendor": s.agora_storage_vendor,
            "region": s.agora_storage_region,
            "bucket": s.agora_storage_bucket,
            "accessKey": s.agora_storage_access_key,
            "secretKey": s.agora_storage_secret_key,
        }

    @staticmethod
    def _require_session(meet: MeetRecord) -> None:
        if not (meet.recording_resource_id and meet.recording_sid and meet.recording_mode):
            raise ValidationError("Recording session not found for meeting")

    def start(
        self, meet_id: str, mode: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict:
        meet = self.get_meet(meet_id)
        mode = mode or meet.recording_mode or self.settings.agora_recording_mode
        uid = self.settings.agora_recording_uid

        client_request: dict[str, Any] = {
            "recordingConfig": RECORDING_CONFIG,
            "storageConfig": self._storage_config(),
        }
        if self.settings.agora_recording_token:
            client_request["token"] = self.settings.agora_recording_token

        resource_id = meet.recording_resource_id or self.client.acquire(
            meet.id, uid, self.settings.agora_resource_expire_hours
        )
        response = self.client.start(resource_id, mode, meet.id, uid, client_request)
        sid = response["sid"]

        self.db.update_meet(
            meet.id,
            recording_resource_id=resource_id,
            recording_sid=sid,
            recording_mode=mode,
            recording_status="started",
            recording_started_at=now or utcnow(),
        )
        logger.info("Cloud recording %s started for meet %s", sid, meet.id)
        return {"resourceId": resource_id, "sid": sid}

    def stop(self, meet_id: str, now: Optional[datetime] = None) -> dict:
        meet = self.get_meet(meet_id)
        self._require_session(meet)

        response = self.client.stop(
            meet.recording_resource_id,
            meet.recording_sid,
            meet.recording_mode,
            meet.id,
            self.settings.agora_recording_uid,
        )
        file_list = (response.get("serverResponse") or {}).get("fileList") or []
        # Single-file modes report fileList as a string.
        if not isinstance(file_list, list):
            file_list = [{"fileName": file_list}] if file_list else []
        recording_url = file_list[0].get("fileName") if file_list else None

        self.db.update_meet(
            meet.id,
            recording_status="stopped",
            recording_stopped_at=now or utcnow(),
            recording_file_list=file_list,
            recording_url=recording_url,
        )
        logger.info("Cloud recording stopped for meet %s: %s", meet.id, recording_url)
        return {"stopResp": response, "recordingUrl": recording_url}

    def query(self, meet_id: str) -> dict:
        meet = self.get_meet(meet_id)
        self._require_session(meet)
        return self.client.query(
            meet.recording_resource_id, meet.recording_sid, meet.recording_mode
        )

    def perform(self, action: str, meet_id: str, mode: Optional[str] = None) -> dict:
        if action == RecordingAction.START:
            return self.start(meet_id, mode)
        if action == RecordingAction.STOP:
            return self.stop(meet_id)
        if action == RecordingAction.QUERY:
            return self.query(meet_id)
        raise ValidationError(f"Unsupported action: {action}")


def notify_webhook(
    url: str, meet_id: str, action: str, result: Any, timeout: float = 10
) -> None:
    """POST the outcome of a recording action; failures are only logged."""
    payload = {
        "meetId": meet_id,
        "action": action,
        "timestamp": utcnow().isoformat(),
        "result": result,
    }
    try:
        response = requests.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Webhook notification failed: %s", exc)
