"""Tests for the command line entry point and exit codes."""
from __future__ import annotations

import io
from unittest.mock import patch

import main
from services.storage import ObjectStore
from tests.conftest import BUCKET
from tests.helpers import FakeS3Client


def _store_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BRIDGE_DATA_PATH", str(tmp_path))
    monkeypatch.setenv("MINIO_HOST", "minio.local")
    monkeypatch.setenv("MINIO_ACCESS_KEY", "minioadmin")
    monkeypatch.setenv("MINIO_SECRET_KEY", "minio-secret-key")
    monkeypatch.setenv("MINIO_BUCKET", BUCKET)


def test_convert(tmp_path, capsys):
    src = tmp_path / "config.json"
    src.write_text('{"relay": {"worker_pool": 3}}', encoding="utf-8")

    assert main.cli(["convert", str(src), str(tmp_path / "config.yaml")]) == 0
    assert "worker_pool: 3" in (tmp_path / "config.yaml").read_text(encoding="utf-8")


def test_convert_missing_source(tmp_path):
    assert main.cli(["convert", str(tmp_path / "nope.json"), str(tmp_path / "x.yaml")]) == 1


def test_run_without_bot_token_exits_1(tmp_path, monkeypatch):
    _store_env(monkeypatch, tmp_path)
    assert main.cli(["run"]) == 1


def test_run_with_broken_config_exits_1(tmp_path, monkeypatch):
    monkeypatch.setenv("BRIDGE_DATA_PATH", str(tmp_path))
    (tmp_path / "config.json").write_text("{", encoding="utf-8")
    assert main.cli([]) == 1


def test_interrupt_exits_0(monkeypatch, tmp_path):
    monkeypatch.setenv("BRIDGE_DATA_PATH", str(tmp_path))

    async def interrupted(cfg):
        raise KeyboardInterrupt

    monkeypatch.setattr(main, "main", interrupted)
    assert main.cli(["run"]) == 0


def test_store_commands(tmp_path, monkeypatch, capsys):
    _store_env(monkeypatch, tmp_path)
    client = FakeS3Client(buckets=[BUCKET])
    ObjectStore(client, BUCKET).upload_file("alice/photo/a.jpg", io.BytesIO(b"abc"), 3, "image/jpeg")

    with patch("services.storage.boto3.client", return_value=client):
        assert main.cli(["ls", "alice/"]) == 0
        assert "alice/photo/a.jpg" in capsys.readouterr().out

        assert main.cli(["url", "alice/photo/a.jpg"]) == 0
        assert "X-Amz-Expires=604800" in capsys.readouterr().out

        assert main.cli(["stat", "alice/photo/a.jpg"]) == 0
        assert "image/jpeg" in capsys.readouterr().out

        assert main.cli(["rm", "alice/photo/a.jpg"]) == 0
        assert client.buckets[BUCKET] == {}

        assert main.cli(["stat", "alice/photo/a.jpg"]) == 1


def test_store_commands_need_credentials(tmp_path, monkeypatch):
    monkeypatch.setenv("BRIDGE_DATA_PATH", str(tmp_path))
    assert main.cli(["ls"]) == 1
