"""
Supabase Auth (GoTrue) access for caller verification and admin operations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

from fanmeet.errors import ConfigurationError, UpstreamApiError

logger = logging.getLogger(__name__)


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None


class AuthClient(Protocol):
    """Operations the functions need from Supabase Auth."""

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        ...

    def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        ...

    def generate_magic_link(self, email: str) -> str:
        ...


@dataclass
class InMemoryAuthClient:
    """Test double mapping bearer tokens to users."""

    users: dict = field(default_factory=dict)
    tokens: dict = field(default_factory=dict)
    base_url: str = "https://example.test/auth/v1/verify"

    def add_user(self, user: AuthUser, token: Optional[str] = None) -> AuthUser:
        self.users[user.id] = user
        if token:
            self.tokens[token] = user.id
        return user

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        user_id = self.tokens.get(access_token)
        return self.users.get(user_id) if user_id else None

    def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        return self.users.get(user_id)

    def generate_magic_link(self, email: str) -> str:
        return f"{self.base_url}?type=magiclink&email={email}"


class SupabaseAuthClient:
    """Thin wrapper over the GoTrue REST endpoints exposed by Supabase."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        service_role_key: str,
        *,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        if not url:
            raise ConfigurationError("SUPABASE_URL is required for SupabaseAuthClient")
        self.base_url = f"{url.rstrip('/')}/auth/v1"
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        *,
        api_key: str,
        bearer: str,
        json: Optional[dict] = None,
    ) -> requests.Response:
        return self.session.request(
            method,
            f"{self.base_url}{path}",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {bearer}",
                "Content-Type": "application/json",
            },
            json=json,
            timeout=self.timeout,
        )

    def _admin_key(self) -> str:
        if not self.service_role_key:
            raise ConfigurationError("SUPABASE_SERVICE_ROLE_KEY is not configured")
        return self.service_role_key

    @staticmethod
    def _to_user(payload: dict) -> Optional[AuthUser]:
        # Admin endpoints wrap the user; /user returns it bare.
        data = payload.get("user", payload) if isinstance(payload, dict) else None
        if not data or not data.get("id"):
            return None
        return AuthUser(id=data["id"], email=data.get("email"))

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        if not access_token:
            return None
        response = self._request(
            "GET", "/user", api_key=self.anon_key or "", bearer=access_token
        )
        if response.status_code in (401, 403):
            return None
        if not response.ok:
            raise UpstreamApiError(
                "Supabase Auth request failed",
                upstream_status=response.status_code,
                payload=response.text,
            )
        return self._to_user(response.json())

    def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        key = self._admin_key()
        response = self._request(
            "GET", f"/admin/users/{user_id}", api_key=key, bearer=key
        )
        if response.status_code == 404:
            return None
        if not response.ok:
            raise UpstreamApiError(
                "Supabase Auth admin lookup failed",
                upstream_status=response.status_code,
                payload=response.text,
            )
        return self._to_user(response.json())

    def generate_magic_link(self, email: str) -> str:
        key = self._admin_key()
        response = self._request(
            "POST",
            "/admin/generate_link",
            api_key=key,
            bearer=key,
            json={"type": "magiclink", "email": email},
        )
        payload = response.json() if response.content else {}
        if not response.ok:
            message = payload.get("msg") or payload.get("error_description") or payload.get(
                "error"
            )
            raise UpstreamApiError(
                message or "Failed to generate magic link",
                upstream_status=response.status_code,
                payload=payload,
            )
        action_link = payload.get("action_link") or (payload.get("properties") or {}).get(
            "action_link"
        )
        if not action_link:
            logger.error("generate_link response missing action_link: %s", payload)
            raise UpstreamApiError("Magic link response missing action_link", payload=payload)
        return action_link
