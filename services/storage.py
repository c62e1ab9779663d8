# S3-compatible object store client (MinIO, AWS S3, ...).
#
# Usage:
#   store = ObjectStore.from_config(cfg.storage)
#   result = store.upload_file("alice/photo/photo_1.jpg", f, size, "image/jpeg")
#   print(result.url)
#
# Every method is blocking (boto3); call from async code through
# asyncio.to_thread.

import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

import services.logger as log
from services.config_schema import StorageConfig
from services.error import StorageConfigError, StorageError
from services.message import UploadResult

l = log.get_logger()

MiB = 1024 * 1024

# Payloads above this go through the managed multipart transfer
LARGE_OBJECT_THRESHOLD = 50 * MiB
LARGE_OBJECT_PART_SIZE = 5 * MiB

URL_EXPIRY = 7 * 24 * 60 * 60  # seconds; also the SigV4 maximum

_DEFAULT_REGION = "us-east-1"
_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    etag: str = ""
    content_type: str = ""
    last_modified: datetime | None = None


def endpoint_url(cfg: StorageConfig) -> str:
    """``host[:port]``, or the explicit endpoint, with a scheme chosen by ``ssl``."""
    endpoint = cfg.host
    if cfg.port:
        endpoint = f"{cfg.host}:{cfg.port}"
    if cfg.endpoint:
        endpoint = cfg.endpoint
    if "://" in endpoint:
        return endpoint
    scheme = "https" if cfg.ssl else "http"
    return f"{scheme}://{endpoint}"


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class ObjectStore:
    """Uploads, lists, fetches and deletes objects in one bucket."""

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, cfg: StorageConfig, client=None) -> "ObjectStore":
        """
        Validate *cfg*, connect, and make sure the bucket exists.

        :param client: pre-built S3 client; one is created from *cfg* when omitted.
        :raises StorageConfigError: a required setting is empty.
        :raises StorageError: the bucket cannot be checked or created.
        """
        missing = [
            name for name in ("host", "access_key", "secret_key", "bucket")
            if not getattr(cfg, name)
        ]
        if missing:
            raise StorageConfigError(f"missing required storage configuration: {', '.join(missing)}")

        if client is None:
            try:
                client = boto3.client(
                    "s3",
                    endpoint_url=endpoint_url(cfg),
                    aws_access_key_id=cfg.access_key,
                    aws_secret_access_key=cfg.secret_key,
                    region_name=cfg.region or _DEFAULT_REGION,
                    config=BotoConfig(
                        signature_version="s3v4",
                        s3={"addressing_style": "path"},
                        connect_timeout=cfg.connect_timeout,
                        read_timeout=cfg.read_timeout,
                    ),
                )
            except (BotoCoreError, ValueError) as e:
                raise StorageError("failed to create storage client", e) from e

        store = cls(client, cfg.bucket)
        store.ensure_bucket(cfg.region)
        return store

    def ensure_bucket(self, region: str = "") -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in _MISSING_BUCKET_CODES:
                raise StorageError("failed to check if bucket exists", e) from e
        except BotoCoreError as e:
            raise StorageError("failed to check if bucket exists", e) from e

        kwargs = {"Bucket": self.bucket}
        if region and region != _DEFAULT_REGION:
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self.client.create_bucket(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to create bucket", e) from e
        l.info(f"Created bucket '{self.bucket}'")

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload_file(self, key: str, fileobj: BinaryIO, size: int, content_type: str) -> UploadResult:
        """Store *size* bytes from *fileobj* under *key* and mint a 7 day URL."""
        if size > LARGE_OBJECT_THRESHOLD:
            self._upload_large(key, fileobj, content_type)
        else:
            self._upload_small(key, fileobj, size, content_type)

        try:
            url = self.get_file_url(key)
        except StorageError as e:
            raise StorageError("file uploaded but failed to generate URL", e.cause) from e
        return UploadResult(key=key, url=url, expires_in=URL_EXPIRY)

    def _upload_small(self, key: str, fileobj: BinaryIO, size: int, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=fileobj,
                ContentLength=size,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to upload file", e) from e

    def _upload_large(self, key: str, fileobj: BinaryIO, content_type: str) -> None:
        transfer = TransferConfig(
            multipart_threshold=LARGE_OBJECT_PART_SIZE,
            multipart_chunksize=LARGE_OBJECT_PART_SIZE,
        )
        try:
            self.client.upload_fileobj(
                fileobj,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
                Config=transfer,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to upload file", e) from e

    # ------------------------------------------------------------------
    # Everything else
    # ------------------------------------------------------------------

    def get_file_url(self, key: str, expiry: int = URL_EXPIRY) -> str:
        """Presigned GET URL for *key*, valid for *expiry* seconds."""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(expiry),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to generate presigned URL", e) from e

    def download_file(self, key: str):
        """Return a readable stream of the object's bytes. Caller closes it."""
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)["Body"]
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to download file", e) from e

    def list_files(self, prefix: str = "") -> list[ObjectInfo]:
        objects: list[ObjectInfo] = []
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append(ObjectInfo(
                        key=item["Key"],
                        size=item.get("Size", 0),
                        etag=item.get("ETag", "").strip('"'),
                        last_modified=item.get("LastModified"),
                    ))
        except (ClientError, BotoCoreError) as e:
            raise StorageError("error listing objects", e) from e
        return objects

    def delete_file(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to delete file", e) from e

    def get_object_info(self, key: str) -> ObjectInfo:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("failed to get object info", e) from e
        return ObjectInfo(
            key=key,
            size=head.get("ContentLength", 0),
            etag=head.get("ETag", "").strip('"'),
            content_type=head.get("ContentType", ""),
            last_modified=head.get("LastModified"),
        )

    @staticmethod
    def generate_object_name(original_filename: str) -> str:
        """``report.pdf`` → ``report_<ns timestamp>.pdf``"""
        base, ext = os.path.splitext(original_filename)
        return f"{base}_{time.time_ns()}{ext}"
