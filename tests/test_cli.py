"""Tests for the deploystore CLI."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterator
from pathlib import Path

import pytest
from conftest import make_zip
from sqlalchemy.pool import NullPool
from typer.testing import CliRunner

from deploystore import cli
from deploystore.config import settings
from deploystore.db import create_engine

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the CLI at a throwaway SQLite catalog and blob directory."""
    # Each command runs its own event loop, so connections must not be pooled
    engine = create_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}", echo=False, poolclass=NullPool
    )
    monkeypatch.setattr(cli, "engine", engine)
    monkeypatch.setattr(settings, "blob_backend", "filesystem")
    monkeypatch.setattr(settings, "blob_root", str(tmp_path / "blobs"))
    yield tmp_path
    asyncio.run(engine.dispose())


def deploy(workspace: Path, files: dict[str, bytes | None]) -> str:
    archive = workspace / "site.zip"
    archive.write_bytes(make_zip(files))
    result = runner.invoke(
        cli.app, ["deploy", "site_1", str(archive), "--context", "commit-abc123"]
    )
    assert result.exit_code == 0, result.output
    match = re.search(r"Deployment ([0-9a-f]{32})", result.output)
    assert match, result.output
    return match.group(1)


def test_deploy_reports_counts(workspace: Path) -> None:
    archive = workspace / "site.zip"
    archive.write_bytes(make_zip({"index.html": b"<html>", "copy.html": b"<html>", "img/": None}))

    result = runner.invoke(cli.app, ["deploy", "site_1", str(archive)])

    assert result.exit_code == 0, result.output
    assert "Files linked" in result.output
    assert "Deduplicated" in result.output
    assert len(list((workspace / "blobs").rglob("*"))) == 2  # one shard dir, one blob


def test_deploy_missing_archive(workspace: Path) -> None:
    result = runner.invoke(cli.app, ["deploy", "site_1", str(workspace / "nope.zip")])
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_deploy_corrupt_archive(workspace: Path) -> None:
    archive = workspace / "bad.zip"
    archive.write_bytes(b"not a zip at all")

    result = runner.invoke(cli.app, ["deploy", "site_1", str(archive)])

    assert result.exit_code == 1
    output = " ".join(result.output.split())
    assert "Error" in output
    assert "has no files" in output


def test_show_deployment(workspace: Path) -> None:
    deployment_id = deploy(workspace, {"index.html": b"<html>", "app.js": b"1"})

    result = runner.invoke(cli.app, ["show-deployment", deployment_id])

    assert result.exit_code == 0, result.output
    assert "site_1" in result.output
    assert "index.html" in result.output
    assert "app.js" in result.output
    assert "commit-abc123" in result.output


def test_show_missing_deployment(workspace: Path) -> None:
    runner.invoke(cli.app, ["init-db"])
    result = runner.invoke(cli.app, ["show-deployment", "missing"])
    assert result.exit_code == 1


def test_fetch_to_file(workspace: Path) -> None:
    deployment_id = deploy(workspace, {"docs/readme.txt": b"read me"})
    target = workspace / "out.txt"

    result = runner.invoke(
        cli.app, ["fetch", deployment_id, "docs/readme.txt", "-o", str(target)]
    )

    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"read me"


def test_fetch_unknown_path(workspace: Path) -> None:
    deployment_id = deploy(workspace, {"a.txt": b"a"})
    result = runner.invoke(cli.app, ["fetch", deployment_id, "b.txt"])
    assert result.exit_code == 1


def test_gc_dry_run_then_collect(workspace: Path) -> None:
    deployment_id = deploy(workspace, {"a.txt": b"a"})

    dry = runner.invoke(cli.app, ["gc", "--retention-days", "0", "--dry-run"])
    assert dry.exit_code == 0, dry.output
    assert "1 file(s)" in dry.output

    still_there = runner.invoke(cli.app, ["fetch", deployment_id, "a.txt"])
    assert still_there.exit_code == 0

    collected = runner.invoke(cli.app, ["gc", "--retention-days", "0"])
    assert collected.exit_code == 0, collected.output
    assert "1 deleted" in collected.output
    assert [p for p in (workspace / "blobs").rglob("*") if p.is_file()] == []

    gone = runner.invoke(cli.app, ["fetch", deployment_id, "a.txt"])
    assert gone.exit_code == 1


def test_gc_keeps_recent_content(workspace: Path) -> None:
    deploy(workspace, {"a.txt": b"a"})

    result = runner.invoke(cli.app, ["gc", "--retention-days", "7"])

    assert result.exit_code == 0, result.output
    assert "0 deleted" in result.output
