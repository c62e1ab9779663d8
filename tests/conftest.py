"""Shared pytest fixtures for relay tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from services.config import ENV_OVERRIDES  # noqa: E402
from services.storage import ObjectStore  # noqa: E402
from tests.helpers import FakeS3Client  # noqa: E402

BUCKET = "media"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep the developer's MINIO_* / TG_* variables out of the tests."""
    for env in ENV_OVERRIDES:
        monkeypatch.delenv(env, raising=False)
    monkeypatch.delenv("BRIDGE_DATA_PATH", raising=False)


@pytest.fixture
def fake_s3():
    return FakeS3Client(buckets=[BUCKET])


@pytest.fixture
def store(fake_s3):
    return ObjectStore(fake_s3, BUCKET)
