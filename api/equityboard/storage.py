
import io
from datetime import timedelta
from typing import Iterable, List, Optional

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as TransportError

from .config import MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET, MINIO_SECURE
from .errors import BlobNotFound, StorageError
from .logger import get_logger

logger = get_logger(__name__)

_MISSING_CODES = ("NoSuchKey", "NoSuchObject", "NoSuchBucket")

_client = Minio(
    MINIO_ENDPOINT,
    access_key=MINIO_ACCESS_KEY,
    secret_key=MINIO_SECRET_KEY,
    secure=MINIO_SECURE,
)

def ensure_bucket():
    if not _client.bucket_exists(MINIO_BUCKET):
        _client.make_bucket(MINIO_BUCKET)

def put_bytes(key: str, data: bytes, content_type: str = "application/octet-stream"):
    try:
        ensure_bucket()
        _client.put_object(MINIO_BUCKET, key, io.BytesIO(data), length=len(data), content_type=content_type)
    except (S3Error, TransportError) as exc:
        raise StorageError(f"upload failed: {key}", {"key": key, "reason": str(exc)}) from exc

def get_bytes(key: str) -> bytes:
    try:
        resp = _client.get_object(MINIO_BUCKET, key)
    except S3Error as exc:
        if exc.code in _MISSING_CODES:
            raise BlobNotFound(key) from exc
        raise StorageError(f"download failed: {key}", {"key": key, "reason": str(exc)}) from exc
    except TransportError as exc:
        raise StorageError(f"download failed: {key}", {"key": key, "reason": str(exc)}) from exc
    try:
        return resp.read()
    finally:
        resp.close()
        resp.release_conn()

def delete_object(key: str):
    try:
        _client.remove_object(MINIO_BUCKET, key)
    except (S3Error, TransportError) as exc:
        raise StorageError(f"delete failed: {key}", {"key": key, "reason": str(exc)}) from exc

def delete_objects(keys: Iterable[Optional[str]]) -> List[str]:
    """Attempt every deletion; return the keys that could not be removed."""
    failed = []
    for key in keys:
        if not key:
            continue
        try:
            delete_object(key)
        except StorageError as exc:
            logger.warning("blob delete failed", key=key, reason=exc.details.get("reason"))
            failed.append(key)
    return failed

def signed_url(key: str, ttl_seconds: int) -> str:
    try:
        return _client.presigned_get_object(MINIO_BUCKET, key, expires=timedelta(seconds=ttl_seconds))
    except (S3Error, TransportError) as exc:
        raise StorageError(f"could not sign url: {key}", {"key": key, "reason": str(exc)}) from exc
