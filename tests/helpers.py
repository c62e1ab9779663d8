"""In-memory stand-ins for the S3 client and the media fetcher."""
from __future__ import annotations

import asyncio
import hashlib
import io
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from botocore.exceptions import ClientError

from services.media import classify, local_path_for

# Objects above this are kept as size + digest only
_KEEP_BYTES_LIMIT = 8 * 1024 * 1024
_CHUNK = 1024 * 1024


def client_error(code: str, op: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


@dataclass
class FakeObject:
    size: int
    digest: str
    content_type: str
    data: bytes | None


class FakePaginator:
    def __init__(self, client: "FakeS3Client"):
        self.client = client

    def paginate(self, Bucket, Prefix=""):
        keys = sorted(k for k in self.client.bucket(Bucket) if k.startswith(Prefix))
        # Two keys per page to exercise pagination
        for i in range(0, max(len(keys), 1), 2):
            chunk = keys[i:i + 2]
            contents = [
                {
                    "Key": k,
                    "Size": self.client.bucket(Bucket)[k].size,
                    "ETag": f'"{self.client.bucket(Bucket)[k].digest[:32]}"',
                    "LastModified": datetime(2026, 1, 1, tzinfo=timezone.utc),
                }
                for k in chunk
            ]
            yield {"Contents": contents} if contents else {}


class FakeS3Client:
    """The subset of the boto3 S3 client the object store uses."""

    def __init__(self, buckets=()):
        self.buckets: dict[str, dict[str, FakeObject]] = {b: {} for b in buckets}
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self._signatures = 0

    def bucket(self, name: str) -> dict[str, FakeObject]:
        if name not in self.buckets:
            raise client_error("NoSuchBucket", "GetBucket")
        return self.buckets[name]

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise self.fail_on[op]

    def _store(self, bucket: str, key: str, fileobj, content_type: str) -> int:
        digest = hashlib.sha256()
        buf = io.BytesIO()
        size = 0
        while True:
            chunk = fileobj.read(_CHUNK)
            if not chunk:
                break
            size += len(chunk)
            digest.update(chunk)
            if size <= _KEEP_BYTES_LIMIT:
                buf.write(chunk)
        data = buf.getvalue() if size <= _KEEP_BYTES_LIMIT else None
        self.bucket(bucket)[key] = FakeObject(size, digest.hexdigest(), content_type, data)
        return size

    # -- boto3 surface -------------------------------------------------

    def head_bucket(self, Bucket):
        self.calls.append(("head_bucket", Bucket))
        self._maybe_fail("head_bucket")
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket, **kwargs):
        self.calls.append(("create_bucket", Bucket, kwargs))
        self._maybe_fail("create_bucket")
        self.buckets[Bucket] = {}
        return {}

    def put_object(self, Bucket, Key, Body, ContentLength, ContentType):
        self.calls.append(("put_object", Key, ContentLength, ContentType))
        self._maybe_fail("put_object")
        self._store(Bucket, Key, Body, ContentType)
        return {"ETag": '"x"'}

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None, Config=None):
        self.calls.append(("upload_fileobj", Key, ExtraArgs, Config))
        self._maybe_fail("upload_fileobj")
        self._store(Bucket, Key, Fileobj, (ExtraArgs or {}).get("ContentType", ""))

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        self.calls.append(("generate_presigned_url", Params["Key"], ExpiresIn))
        self._maybe_fail("generate_presigned_url")
        self._signatures += 1
        return (
            f"https://s3.test/{Params['Bucket']}/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=sig{self._signatures}"
        )

    def get_object(self, Bucket, Key):
        self.calls.append(("get_object", Key))
        obj = self.bucket(Bucket).get(Key)
        if obj is None:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(obj.data or b"")}

    def head_object(self, Bucket, Key):
        obj = self.bucket(Bucket).get(Key)
        if obj is None:
            raise client_error("404", "HeadObject")
        return {
            "ContentLength": obj.size,
            "ContentType": obj.content_type,
            "ETag": f'"{obj.digest[:32]}"',
            "LastModified": datetime(2026, 1, 1, tzinfo=timezone.utc),
        }

    def delete_object(self, Bucket, Key):
        self.calls.append(("delete_object", Key))
        self.bucket(Bucket).pop(Key, None)
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    # -- test helpers --------------------------------------------------

    def resolve(self, url: str) -> bytes:
        """What a GET on a presigned URL would return."""
        parsed = urlparse(url)
        assert "X-Amz-Signature" in parse_qs(parsed.query)
        bucket, key = parsed.path.lstrip("/").split("/", 1)
        return self.bucket(bucket)[key].data

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeFetcher:
    """Writes *size* bytes where the real fetcher would, or fails with *fail*."""

    def __init__(self, media_dir: Path, size: int = 10 * 1024, fail: Exception | None = None,
                 sparse: bool = False, delay: float = 0.0):
        self.media_dir = Path(media_dir)
        self.size = size
        self.fail = fail
        self.sparse = sparse
        self.delay = delay
        self.calls: list[tuple] = []

    async def fetch(self, ref, sender):
        self.calls.append((ref, sender))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        path = local_path_for(self.media_dir, sender, ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            if self.sparse:
                f.truncate(self.size)
            else:
                f.write(os.urandom(self.size))
        return path, classify(ref.kind)
