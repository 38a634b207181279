import json

import pytest

from catalog_ingest.cli import main

from .conftest import MODERN_CATALOG


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    for name in ("SOURCE_DIR", "OUTPUT_DIR", "HEALTH_DIR", "SYNC_DIR", "LOGS_DIR"):
        monkeypatch.setenv(name, str(tmp_path / name.lower()))
    monkeypatch.setenv("NODE_ENV", "development")
    sources = tmp_path / "source_dir"
    sources.mkdir()
    (sources / "catalog_2023_01.txt").write_text(MODERN_CATALOG, encoding="utf-8")
    return tmp_path


def test_run_directory_with_sync(workspace, capsys):
    code = main([str(workspace / "source_dir"), "--extension", ".txt", "--sync", "--json"])

    assert code == 0
    out = capsys.readouterr().out
    summary = json.loads(out[out.index('{\n  "sources"'):])
    assert summary["sources"] == 1
    assert summary["sync"]["courses"]["updated"] == summary["courses"]
    assert (workspace / "sync_dir" / "courses").is_dir()


def test_missing_file_exits_with_failure(workspace, capsys):
    code = main([str(workspace / "source_dir" / "catalog_2020_01.txt")])

    assert code == 1
    assert "[failed] catalog_2020_01.txt" in capsys.readouterr().out


def test_bad_override_table_exits_with_error(workspace, capsys):
    bad = workspace / "overrides.json"
    bad.write_text("{not json")

    code = main([str(workspace / "source_dir"), "--extension", ".txt", "--overrides", str(bad)])

    assert code == 2
    err = capsys.readouterr().err
    error = json.loads(err[err.index('{\n  "status"'):])
    assert error["code"] == "CONFIGURATION_ERROR"
