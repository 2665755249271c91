"""Artifact publisher.

Walks a build output directory and uploads every file to the object store
under ``<project>/<relative path>``, with per-file content type, cache policy
and optional gzip encoding.

Uploads run in batches of ``concurrency`` files: each batch is started
together and awaited as a whole before the next one begins, so no more than
``concurrency`` uploads are ever in flight. A failed upload never stops the
others; failures are counted and reported once at the end.
"""

import asyncio
import gzip
import mimetypes
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError, NoCredentialsError
from botocore.exceptions import ConnectionError as BotoConnectionError

from app.config import settings
from app.core.exceptions import (
    AccessDeniedError,
    BucketNotFoundError,
    DeployError,
    NetworkError,
    PartialUploadError,
    UpstreamServiceError,
)
from app.models.deployment import PublishResult, UploadUnit
from app.utils.logging import get_logger

DEFAULT_CONTENT_TYPE = "application/octet-stream"

NO_CACHE = "no-cache, no-store, must-revalidate"
ONE_YEAR_CACHE = "public, max-age=31536000, immutable"
ONE_DAY_CACHE = "public, max-age=86400"

HTML_EXTENSIONS = frozenset({".html", ".htm"})
LONG_CACHE_EXTENSIONS = frozenset(
    {
        # scripts and styles
        ".js", ".mjs", ".css",
        # images
        ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".avif", ".ico", ".bmp",
        # fonts
        ".woff", ".woff2", ".ttf", ".otf", ".eot",
    }
)

# mimetypes differs between platforms for these
CONTENT_TYPE_OVERRIDES = {
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".svg": "image/svg+xml",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".wasm": "application/wasm",
    ".avif": "image/avif",
    ".webp": "image/webp",
}

COMPRESSIBLE_TYPES = frozenset(
    {
        "application/javascript",
        "application/json",
        "application/manifest+json",
        "application/xml",
        "image/svg+xml",
    }
)


def resolve_content_type(path: Path | str) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in CONTENT_TYPE_OVERRIDES:
        return CONTENT_TYPE_OVERRIDES[suffix]
    guessed, _ = mimetypes.guess_type(Path(path).name)
    return guessed or DEFAULT_CONTENT_TYPE


def resolve_cache_control(path: Path | str) -> str:
    """Cache policy by file category.

    HTML is the entry point and must always reflect the latest deployment;
    hashed assets can be cached for a year; anything else for a day.
    """
    suffix = Path(path).suffix.lower()
    if suffix in HTML_EXTENSIONS:
        return NO_CACHE
    if suffix in LONG_CACHE_EXTENSIONS:
        return ONE_YEAR_CACHE
    return ONE_DAY_CACHE


def is_compressible(content_type: str) -> bool:
    return content_type.startswith("text/") or content_type in COMPRESSIBLE_TYPES


def resolve_content_policy(path: Path | str) -> tuple[str, str, str | None]:
    """Return (content type, cache control, content encoding) for a file."""
    content_type = resolve_content_type(path)
    encoding = "gzip" if is_compressible(content_type) else None
    return content_type, resolve_cache_control(path), encoding


class ObjectStore(Protocol):
    """Destination for published files."""

    bucket: str

    async def put_object(self, unit: UploadUnit, body: bytes) -> None: ...


class S3ObjectStore:
    """boto3-backed object store.

    Transient errors are retried inside botocore ("standard" retry mode:
    exponential backoff with jitter, bounded by ``max_attempts``).
    """

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        max_attempts: int | None = None,
        max_connections: int | None = None,
        client: Any = None,
    ):
        self.bucket = bucket or settings.s3_bucket_name
        self.region = region or settings.aws_region
        self.max_attempts = max_attempts or settings.s3_max_attempts
        self.max_connections = max_connections or max(10, settings.upload_concurrency)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                config=Config(
                    retries={"max_attempts": self.max_attempts, "mode": "standard"},
                    max_pool_connections=self.max_connections,
                ),
            )
        return self._client

    async def put_object(self, unit: UploadUnit, body: bytes) -> None:
        await asyncio.to_thread(self._put_object, unit, body)

    def _put_object(self, unit: UploadUnit, body: bytes) -> None:
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": unit.object_key,
            "Body": body,
            "ContentType": unit.content_type,
            "CacheControl": unit.cache_control,
        }
        if unit.content_encoding:
            params["ContentEncoding"] = unit.content_encoding

        try:
            self.client.put_object(**params)
        except ClientError as e:
            raise classify_client_error(e, self.bucket, unit.object_key) from e
        except NoCredentialsError as e:
            raise AccessDeniedError(self.bucket, unit.object_key) from e
        except (BotoConnectionError, HTTPClientError) as e:
            raise NetworkError(str(e)) from e
        except BotoCoreError as e:
            raise UpstreamServiceError(f"S3 upload failed: {e}") from e


def classify_client_error(error: ClientError, bucket: str, key: str) -> DeployError:
    code = error.response.get("Error", {}).get("Code", "")
    if code == "NoSuchBucket":
        return BucketNotFoundError(bucket)
    if code in ("AccessDenied", "AllAccessDisabled", "InvalidAccessKeyId", "SignatureDoesNotMatch"):
        return AccessDeniedError(bucket, key)
    return UpstreamServiceError(f"S3 upload failed ({code or 'unknown'}): {error}", {"key": key})


class ArtifactPublisher:
    """Uploads a build output directory with bounded parallelism."""

    def __init__(self, store: ObjectStore, concurrency: int | None = None):
        self.store = store
        self.concurrency = settings.upload_concurrency if concurrency is None else concurrency
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.logger = get_logger("publisher")

    def collect_units(self, local_directory: Path, remote_key_prefix: str) -> list[UploadUnit]:
        """Every regular file under ``local_directory``, in a stable order."""
        root = Path(local_directory)
        prefix = remote_key_prefix.strip("/")
        units = []
        for path in sorted(root.rglob("*")):
            if not path.is_file() or path.is_symlink():
                continue
            relative = path.relative_to(root).as_posix()
            content_type, cache_control, encoding = resolve_content_policy(path)
            units.append(
                UploadUnit(
                    local_path=path,
                    object_key=f"{prefix}/{relative}" if prefix else relative,
                    content_type=content_type,
                    cache_control=cache_control,
                    content_encoding=encoding,
                )
            )
        return units

    async def publish(self, local_directory: Path, remote_key_prefix: str) -> PublishResult:
        """Upload everything under ``local_directory``.

        Raises:
            PartialUploadError: Some files failed; carries the failed count
            BucketNotFoundError, AccessDeniedError, NetworkError: Every file
                failed for the same reason
        """
        units = await asyncio.to_thread(self.collect_units, local_directory, remote_key_prefix)
        total = len(units)

        self.logger.info(
            "publisher.started",
            bucket=self.store.bucket,
            prefix=remote_key_prefix,
            files=total,
            concurrency=self.concurrency,
        )

        uploaded = 0
        failures: list[Exception] = []
        batches = 0

        for start in range(0, total, self.concurrency):
            batch = units[start : start + self.concurrency]
            batches += 1
            outcomes = await asyncio.gather(
                *(self._upload(unit) for unit in batch),
                return_exceptions=True,
            )
            batch_failures = [o for o in outcomes if isinstance(o, Exception)]
            failures.extend(batch_failures)
            uploaded += len(batch) - len(batch_failures)

            self.logger.debug(
                "publisher.batch.completed",
                batch=batches,
                size=len(batch),
                failed=len(batch_failures),
            )

        if failures:
            self.logger.error(
                "publisher.failed",
                bucket=self.store.bucket,
                prefix=remote_key_prefix,
                failed=len(failures),
                uploaded=uploaded,
                cause=str(failures[0]),
            )
            raise self._aggregate(failures, uploaded)

        self.logger.info(
            "publisher.completed",
            bucket=self.store.bucket,
            prefix=remote_key_prefix,
            uploaded=uploaded,
            batches=batches,
        )
        return PublishResult(uploaded=uploaded, failed=0, total=total, batches=batches)

    async def _upload(self, unit: UploadUnit) -> UploadUnit:
        body = await asyncio.to_thread(_read_body, unit)
        try:
            await self.store.put_object(unit, body)
        except Exception as e:
            self.logger.warning(
                "publisher.upload_failed",
                key=unit.object_key,
                error=str(e),
            )
            raise
        return unit

    def _aggregate(self, failures: list[Exception], uploaded: int) -> Exception:
        first = failures[0]
        same_cause = all(type(f) is type(first) for f in failures)
        if uploaded == 0 and same_cause and isinstance(first, DeployError):
            first.details.update({"failed": len(failures), "uploaded": 0})
            return first
        return PartialUploadError(len(failures), uploaded, str(first))


def _read_body(unit: UploadUnit) -> bytes:
    data = unit.local_path.read_bytes()
    if unit.content_encoding == "gzip":
        return gzip.compress(data, mtime=0)
    return data
