"""
Exceptions raised by the service layer.

Each class carries the HTTP status the API answers with; the FastAPI app
renders them as ``{"error": message}``.
"""

from __future__ import annotations

from typing import Any, Optional


class FanmeetError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FanmeetError):
    status_code = 400


class NotAuthenticatedError(FanmeetError):
    status_code = 401


class PermissionDeniedError(FanmeetError):
    status_code = 403


class NotFoundError(FanmeetError):
    status_code = 404


class ConfigurationError(FanmeetError):
    status_code = 500


class UpstreamApiError(FanmeetError):
    """A third-party REST API (Razorpay, Agora, Supabase Auth) rejected a call."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.payload = payload
