"""
Dependency wiring for the FastAPI app and the cron scripts.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from fanmeet.agora import AgoraRecordingClient, InMemoryRecordingClient, RecordingClient
from fanmeet.auth import AuthClient, AuthUser, InMemoryAuthClient, SupabaseAuthClient
from fanmeet.config import Settings, get_settings
from fanmeet.db import DbClient, InMemoryDbClient, PostgresDbClient
from fanmeet.errors import NotAuthenticatedError
from fanmeet.razorpay import InMemoryRazorpayClient, PaymentsClient, RazorpayClient
from fanmeet.recordings import RecordingService
from fanmeet.storage import (
    InMemoryRecordingStorage,
    RecordingStorageClient,
    S3RecordingStorage,
)

_db_client: DbClient | None = None
_auth_client: AuthClient | None = None
_payments_client: PaymentsClient | None = None
_recording_client: RecordingClient | None = None
_recording_storage: RecordingStorageClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_auth_client() -> AuthClient:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.supabase_url:
        _auth_client = InMemoryAuthClient()
    else:
        _auth_client = SupabaseAuthClient(
            settings.supabase_url,
            settings.supabase_anon_key or "",
            settings.supabase_service_role_key or "",
            timeout=settings.request_timeout_seconds,
        )
    return _auth_client


def get_payments_client() -> PaymentsClient:
    global _payments_client
    if _payments_client:
        return _payments_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _payments_client = InMemoryRazorpayClient()
    else:
        _payments_client = RazorpayClient(
            settings.razorpay_key_id or "",
            settings.razorpay_key_secret or "",
            base_url=settings.razorpay_base_url,
            timeout=settings.request_timeout_seconds,
        )
    return _payments_client


def get_recording_client() -> RecordingClient:
    global _recording_client
    if _recording_client:
        return _recording_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.agora_app_id:
        _recording_client = InMemoryRecordingClient()
    else:
        _recording_client = AgoraRecordingClient(
            settings.agora_app_id,
            settings.agora_customer_id or "",
            settings.agora_customer_secret or "",
            base_url=settings.agora_base_url,
            timeout=settings.request_timeout_seconds,
        )
    return _recording_client


def get_recording_storage() -> RecordingStorageClient:
    global _recording_storage
    if _recording_storage:
        return _recording_storage

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.agora_storage_bucket:
        _recording_storage = InMemoryRecordingStorage()
    else:
        _recording_storage = S3RecordingStorage(
            bucket=settings.agora_storage_bucket,
            access_key_id=settings.agora_storage_access_key or "",
            secret_access_key=settings.agora_storage_secret_key or "",
            region=settings.recording_storage_region,
            endpoint=settings.recording_storage_endpoint,
        )
    return _recording_storage


def get_recording_service(
    db: DbClient = Depends(get_db_client),
    client: RecordingClient = Depends(get_recording_client),
    settings: Settings = Depends(get_settings),
) -> RecordingService:
    return RecordingService(db, client, settings)


def get_bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    auth: AuthClient = Depends(get_auth_client),
) -> AuthUser:
    user = auth.get_user(token) if token else None
    if not user:
        raise NotAuthenticatedError("Not authenticated")
    return user
