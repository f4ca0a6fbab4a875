"""
Storage abstraction for the S3-compatible bucket Agora writes recordings to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config


class RecordingStorageClient(Protocol):
    """Defines the operations the API needs from recording storage."""

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...


@dataclass
class InMemoryRecordingStorage:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/recordings"

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"


@dataclass
class S3RecordingStorage:
    """
    S3-compatible storage client for the recordings bucket.
    """

    bucket: str
    access_key_id: str
    secret_access_key: str
    region: Optional[str] = None
    endpoint: Optional[str] = None

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )
