"""
Item availability checkers.

A checker answers one question for the worker pool: does the object for an
item id exist, and under which key. Implementations must be safe to call
repeatedly for the same id. Raising an exception means "could not tell"
and is retried at job level; ``available=False`` is a definite answer.

Dependencies: boto3 (S3 backend only)
"""

import asyncio
import hashlib
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

HEALTH_CHECK_KEY = "__health_check_marker__"
_MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


@dataclass(frozen=True)
class ItemCheckResult:
    """
    Outcome of one availability check.

    An available result must carry the object ``key``: workers build the
    download URL from it, and an available result without a key is counted
    as a failed item.
    """

    available: bool
    key: str | None = None
    size: int | None = None


class ItemChecker(Protocol):
    """Protocol for item availability backends."""

    async def check(self, item_id: int) -> ItemCheckResult:
        """
        Report whether the object for ``item_id`` exists.

        Return ``available=True`` only together with the object key. Raise on
        backend errors so the job is retried instead of marking items missing.
        """
        ...

    def download_url(self, key: str) -> str:
        """Build a client download URL for an available object."""
        ...

    async def ping(self) -> bool:
        """Return True if the backend is reachable."""
        ...


def object_key_for(item_id: int) -> str:
    """Storage key for an item; only the numeric id reaches the path."""
    return f"downloads/{abs(int(item_id))}.zip"


class MockItemChecker:
    """
    Deterministic checker used when no bucket is configured.

    Ids divisible by ``divisor`` exist; their size is derived from the key
    so repeated checks agree.
    """

    def __init__(
        self, divisor: int = 7, base_url: str = "https://storage.example.com"
    ):
        if divisor < 1:
            raise ValueError(f"divisor must be >= 1, got: {divisor}")
        self.divisor = divisor
        self.base_url = base_url.rstrip("/")

    async def check(self, item_id: int) -> ItemCheckResult:
        if item_id % self.divisor != 0:
            return ItemCheckResult(available=False)

        key = object_key_for(item_id)
        digest = hashlib.sha256(key.encode()).hexdigest()
        size = int(digest[:8], 16) % 10_000_000 + 1000
        return ItemCheckResult(available=True, key=key, size=size)

    def download_url(self, key: str) -> str:
        return f"{self.base_url}/{key}?token={uuid.uuid4()}"

    async def ping(self) -> bool:
        return True


class S3ItemChecker:
    """S3-backed checker using HEAD requests and presigned GET URLs."""

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        force_path_style: bool = False,
        url_expires_in: int = 3600,
        client: Any | None = None,
    ) -> None:
        """
        Initialize S3 checker for the downloads bucket.

        Args:
            bucket: S3 bucket holding the download archives
            region: AWS region of the bucket
            endpoint_url: Custom endpoint for S3-compatible stores
            access_key_id: Explicit credentials (default credential chain if None)
            secret_access_key: Explicit credentials
            force_path_style: Use path-style addressing (MinIO)
            url_expires_in: Presigned URL lifetime in seconds
            client: Preconfigured boto3 S3 client (used as-is)
        """
        self._bucket = bucket
        self._url_expires_in = url_expires_in
        self._s3_client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(s3={"addressing_style": "path"}) if force_path_style else None,
        )

    async def check(self, item_id: int) -> ItemCheckResult:
        return await asyncio.to_thread(self._head, object_key_for(item_id))

    def _head(self, key: str) -> ItemCheckResult:
        try:
            response = self._s3_client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return ItemCheckResult(available=False)
            raise
        return ItemCheckResult(
            available=True, key=key, size=response.get("ContentLength")
        )

    def download_url(self, key: str) -> str:
        return self._s3_client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=self._url_expires_in,
        )

    async def ping(self) -> bool:
        try:
            await asyncio.to_thread(self._head, HEALTH_CHECK_KEY)
            return True
        except Exception as e:
            logger.warning(
                "Storage health check failed",
                extra={"bucket": self._bucket, "error": str(e)},
            )
            return False
