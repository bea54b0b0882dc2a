"""Tests for the filekit CLI against a local store."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from filekit.cli import main


@pytest.fixture
def store(tmp_path: Path, monkeypatch) -> Path:
    """Point the environment at a fresh local store."""
    for name in ("CLOUDFLARE_R2_BUCKET", "AWS_S3_BUCKET", "S3_BUCKET", "S3_ENDPOINT",
                 "FILEKIT_STORAGE_ALLOWED_TYPES", "FILEKIT_STORAGE_MAX_SIZE",
                 "FILEKIT_STORAGE_BASE_URL", "FILEKIT_ENV", "APP_ENV"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FILEKIT_STORAGE_STRATEGY", "local")
    monkeypatch.setenv("FILEKIT_STORAGE_DIR", str(tmp_path / "store"))
    return tmp_path / "store"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def sample(tmp_path: Path) -> Path:
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello world")
    return path


class TestPutGet:
    """put / get / url."""

    def test_put_then_get_stdout(self, runner: CliRunner, store: Path, sample: Path):
        result = runner.invoke(main, ["put", str(sample), "docs/hello.txt"])
        assert result.exit_code == 0, result.output
        assert "Stored" in result.output
        assert (store / "docs" / "hello.txt").read_bytes() == b"hello world"

        result = runner.invoke(main, ["get", "docs/hello.txt"])
        assert result.exit_code == 0
        assert result.stdout_bytes == b"hello world"

    def test_get_to_file(self, runner: CliRunner, store: Path, sample: Path, tmp_path: Path):
        runner.invoke(main, ["put", str(sample), "hello.txt"])
        out = tmp_path / "copy.txt"
        result = runner.invoke(main, ["get", "hello.txt", "-o", str(out)])
        assert result.exit_code == 0
        assert out.read_bytes() == b"hello world"

    def test_get_missing_exits_1(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["get", "missing.txt"])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_invalid_key_exits_1(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["get", "../etc/passwd"])
        assert result.exit_code == 1
        assert "invalid path components" in result.output

    def test_put_rejected_type(self, runner: CliRunner, store: Path, sample: Path):
        result = runner.invoke(main, ["put", str(sample), "blob", "--content-type", "application/x-evil"])
        assert result.exit_code == 1
        assert "not allowed" in result.output

    def test_url(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["url", "a/b.png"])
        assert result.exit_code == 0
        assert result.output.strip() == "/uploads/a/b.png"


class TestManage:
    """ls / rm / cp / sign / info."""

    def test_ls_json(self, runner: CliRunner, store: Path, sample: Path):
        runner.invoke(main, ["put", str(sample), "a.txt"])
        runner.invoke(main, ["put", str(sample), "b.txt"])
        result = runner.invoke(main, ["ls", "--json"])
        assert result.exit_code == 0
        entries = json.loads(result.output)
        assert [e["key"] for e in entries] == ["a.txt", "b.txt"]
        assert entries[0]["size"] == 11

    def test_ls_table_and_limit(self, runner: CliRunner, store: Path, sample: Path):
        runner.invoke(main, ["put", str(sample), "a.txt"])
        runner.invoke(main, ["put", str(sample), "b.txt"])
        result = runner.invoke(main, ["ls", "--limit", "1"])
        assert result.exit_code == 0
        assert "a.txt" in result.output
        assert "b.txt" not in result.output

    def test_ls_empty(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["ls"])
        assert result.exit_code == 0
        assert "No files" in result.output

    def test_rm(self, runner: CliRunner, store: Path, sample: Path):
        runner.invoke(main, ["put", str(sample), "a.txt"])
        assert "Deleted" in runner.invoke(main, ["rm", "a.txt"]).output
        assert "Not found" in runner.invoke(main, ["rm", "a.txt"]).output

    def test_cp(self, runner: CliRunner, store: Path, sample: Path):
        runner.invoke(main, ["put", str(sample), "a.txt"])
        result = runner.invoke(main, ["cp", "a.txt", "backup/a.txt"])
        assert result.exit_code == 0
        assert (store / "backup" / "a.txt").read_bytes() == b"hello world"

    def test_sign_unsupported_locally(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["sign", "a.txt"])
        assert result.exit_code == 1
        assert "not supported" in result.output

    def test_sign_bad_expiry(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["sign", "a.txt", "--expires", "5"])
        assert result.exit_code == 2

    def test_info_json(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["info", "--json"])
        assert result.exit_code == 0
        details = json.loads(result.output)
        assert details["strategy"] == "local"
        assert details["max_file_size"] == "50MB"
        assert details["max_file_size_bytes"] == 50 * 1024 * 1024

    def test_info_table(self, runner: CliRunner, store: Path):
        result = runner.invoke(main, ["info"])
        assert result.exit_code == 0
        assert "local" in result.output

    def test_bad_configuration_exits_1(self, runner: CliRunner, store: Path, monkeypatch):
        monkeypatch.setenv("FILEKIT_STORAGE_STRATEGY", "ftp")
        result = runner.invoke(main, ["info"])
        assert result.exit_code == 1
        assert "not recognized" in result.output
