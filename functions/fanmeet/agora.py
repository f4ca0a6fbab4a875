"""
Agora Cloud Recording REST client.

See https://docs.agora.io/en/cloud-recording/reference/restful-api for the
acquire -> start -> query -> stop flow.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

from fanmeet.errors import UpstreamApiError

logger = logging.getLogger(__name__)

AGORA_BASE_URL = "https://api.agora.io/v1"


class RecordingClient(Protocol):
    def acquire(self, cname: str, uid: str, expire_hours: int) -> str:
        ...

    def start(
        self, resource_id: str, mode: str, cname: str, uid: str, client_request: dict
    ) -> dict:
        ...

    def stop(self, resource_id: str, sid: str, mode: str, cname: str, uid: str) -> dict:
        ...

    def query(self, resource_id: str, sid: str, mode: str) -> dict:
        ...


@dataclass
class InMemoryRecordingClient:
    """Test double that hands out fake resource ids and sids."""

    calls: list = field(default_factory=list)
    file_list: list = field(
        default_factory=lambda: [{"fileName": "recordings/sample.m3u8"}]
    )

    def acquire(self, cname: str, uid: str, expire_hours: int) -> str:
        self.calls.append(("acquire", cname))
        return f"resource-{uuid.uuid4().hex[:8]}"

    def start(
        self, resource_id: str, mode: str, cname: str, uid: str, client_request: dict
    ) -> dict:
        self.calls.append(("start", cname, resource_id, mode, client_request))
        return {"resourceId": resource_id, "sid": f"sid-{uuid.uuid4().hex[:8]}"}

    def stop(self, resource_id: str, sid: str, mode: str, cname: str, uid: str) -> dict:
        self.calls.append(("stop", cname, resource_id, sid, mode))
        return {
            "resourceId": resource_id,
            "sid": sid,
            "serverResponse": {"fileList": list(self.file_list)},
        }

    def query(self, resource_id: str, sid: str, mode: str) -> dict:
        self.calls.append(("query", resource_id, sid, mode))
        return {"resourceId": resource_id, "sid": sid, "serverResponse": {"status": 5}}


class AgoraRecordingClient:
    def __init__(
        self,
        app_id: str,
        customer_id: str,
        customer_secret: str,
        *,
        base_url: str = AGORA_BASE_URL,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = f"{base_url.rstrip('/')}/apps/{app_id}/cloud_recording"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (customer_id or "", customer_secret or "")

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> dict:
        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            json=body,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok:
            logger.error("Agora API error %s: %s", response.status_code, payload)
            message = payload.get("message") or payload.get("error")
            raise UpstreamApiError(
                message or "Agora API request failed",
                upstream_status=response.status_code,
                payload=payload,
            )
        return payload

    def acquire(self, cname: str, uid: str, expire_hours: int) -> str:
        payload = self._request(
            "POST",
            "/acquire",
            {
                "cname": cname,
                "uid": uid,
                "clientRequest": {"resourceExpiredHour": expire_hours},
            },
        )
        return payload["resourceId"]

    def start(
        self, resource_id: str, mode: str, cname: str, uid: str, client_request: dict
    ) -> dict:
        return self._request(
            "POST",
            f"/resourceid/{resource_id}/mode/{mode}/start",
            {"cname": cname, "uid": uid, "clientRequest": client_request},
        )

    def stop(self, resource_id: str, sid: str, mode: str, cname: str, uid: str) -> dict:
        return self._request(
            "POST",
            f"/resourceid/{resource_id}/sid/{sid}/mode/{mode}/stop",
            {"cname": cname, "uid": uid, "clientRequest": {}},
        )

    def query(self, resource_id: str, sid: str, mode: str) -> dict:
        return self._request("GET", f"/resourceid/{resource_id}/sid/{sid}/mode/{mode}/query")
