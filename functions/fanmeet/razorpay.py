"""
Razorpay X REST client for contacts, fund accounts and payouts.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

from fanmeet.errors import UpstreamApiError

logger = logging.getLogger(__name__)

RAZORPAY_BASE_URL = "https://api.razorpay.com/v1"


class PaymentsClient(Protocol):
    def create_contact(self, payload: dict) -> dict:
        ...

    def create_fund_account(self, payload: dict) -> dict:
        ...

    def create_payout(self, payload: dict) -> dict:
        ...


@dataclass
class InMemoryRazorpayClient:
    """Test double recording every call; set ``fail_with`` to simulate a Razorpay error."""

    calls: list = field(default_factory=list)
    fail_with: Optional[str] = None

    def _record(self, kind: str, prefix: str, payload: dict) -> dict:
        self.calls.append((kind, payload))
        if self.fail_with:
            raise UpstreamApiError(
                self.fail_with,
                upstream_status=400,
                payload={"error": {"description": self.fail_with}},
            )
        return {"id": f"{prefix}_{uuid.uuid4().hex[:14]}", **payload}

    def create_contact(self, payload: dict) -> dict:
        return self._record("contact", "cont", payload)

    def create_fund_account(self, payload: dict) -> dict:
        return self._record("fund_account", "fa", payload)

    def create_payout(self, payload: dict) -> dict:
        return self._record("payout", "pout", payload)


class RazorpayClient:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = RAZORPAY_BASE_URL,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (key_id or "", key_secret or "")

    def _post(self, path: str, payload: dict, fallback_error: str) -> dict:
        response = self.session.request(
            "POST",
            f"{self.base_url}{path}",
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.ok:
            logger.error("Razorpay error %s on %s: %s", response.status_code, path, data)
            description = (data.get("error") or {}).get("description")
            raise UpstreamApiError(
                description or fallback_error,
                upstream_status=response.status_code,
                payload=data,
            )
        return data

    def create_contact(self, payload: dict) -> dict:
        return self._post("/contacts", payload, "Failed to create contact")

    def create_fund_account(self, payload: dict) -> dict:
        return self._post("/fund_accounts", payload, "Failed to create fund account")

    def create_payout(self, payload: dict) -> dict:
        return self._post("/payouts", payload, "Payout failed at Razorpay")
