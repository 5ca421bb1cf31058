# app/market/core/r2_client.py
import logging
import mimetypes
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.market.core.config import settings
from app.market.core.errors import ObjectNotFound, StorageError

logger = logging.getLogger(__name__)

# S3 가 "없음" 으로 돌려주는 에러 코드들 (get_object / head_object)
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def guess_content_type(filename: str) -> str:
    ctype, _ = mimetypes.guess_type(filename)
    return ctype or "application/octet-stream"


class R2Storage:
    """
    Cloudflare R2 (S3 호환) 래퍼.
    boto3 에러를 ObjectNotFound / StorageError 로 바꿔서 서비스 계층에 넘긴다.
    """

    def __init__(self, client, bucket: str, public_base_url: str = "", endpoint_url: str = ""):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url
        self.endpoint_url = endpoint_url

    @classmethod
    def from_settings(cls) -> "R2Storage":
        endpoint_url = settings.CF_R2_ENDPOINT_URL or (
            f"https://{settings.CF_R2_ACCOUNT_ID}.r2.cloudflarestorage.com"
        )
        timeout = settings.REQUEST_TIMEOUT_SECONDS
        client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=settings.CF_R2_ACCESS_KEY_ID,
            aws_secret_access_key=settings.CF_R2_SECRET_ACCESS_KEY,
            region_name="auto",
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2},
            ),
        )
        return cls(
            client,
            bucket=settings.CF_R2_BUCKET_NAME,
            public_base_url=settings.CF_R2_PUBLIC_BASE_URL,
            endpoint_url=endpoint_url,
        )

    def _translate(self, key: str, exc: Exception) -> StorageError:
        if isinstance(exc, ClientError):
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                return ObjectNotFound(key)
        return StorageError(f"R2 request for {key!r} failed: {exc}")

    def retrieve(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(key, e) from e

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            err = self._translate(key, e)
            if isinstance(err, ObjectNotFound):
                return False
            raise err from e
        return True

    def store(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        """
        업로드 후 object key 를 그대로 돌려준다.
        key 예: "designs/12/logo-pack.zip"
        """
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or guess_content_type(key),
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(key, e) from e
        return key

    def public_url(self, key: str) -> str:
        """R2 object key -> 외부에서 접근 가능한 URL"""
        if self.public_base_url:
            base = self.public_base_url.rstrip("/")
            return f"{base}/{key}"

        return f"{self.endpoint_url}/{self.bucket}/{key}"

    def presigned_url(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(key, e) from e


_storage: Optional[R2Storage] = None


def get_storage() -> R2Storage:
    """FastAPI 의존성. 첫 호출 때 클라이언트를 만든다."""
    global _storage
    if _storage is None:
        _storage = R2Storage.from_settings()
        logger.info("R2 storage client ready (bucket=%s)", _storage.bucket)
    return _storage
