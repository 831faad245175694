"""Tests for sqlkv put/get/delete/scan commands."""

import json

from sqlkv.cli import app
from sqlkv.storage_sqlite import SqliteStore
from tests.cli.conftest import invoke


def test_put_then_get(runner, cli_db):
    result = invoke(runner, ["put", "greeting", "hello", "--tag", "v1"], cli_db)
    assert result.exit_code == 0
    result = invoke(runner, ["get", "greeting"], cli_db)
    assert result.exit_code == 0
    assert result.output.strip() == "hello"


def test_put_overwrites(runner, cli_db):
    invoke(runner, ["put", "k", "1"], cli_db)
    invoke(runner, ["put", "k", "2"], cli_db)
    result = invoke(runner, ["get", "k"], cli_db)
    assert result.output.strip() == "2"


def test_put_json_value_is_normalized(runner, cli_db):
    result = invoke(runner, ["put", "cfg", '{ "b": 1,  "a": [1, 2] }', "--json-value"], cli_db)
    assert result.exit_code == 0
    result = invoke(runner, ["get", "cfg"], cli_db)
    assert result.output.strip() == '{"b":1,"a":[1,2]}'


def test_put_invalid_json_value(runner, cli_db):
    result = invoke(runner, ["put", "cfg", "{not json", "--json-value"], cli_db)
    assert result.exit_code == 2
    assert "not valid JSON" in result.output


def test_put_empty_key(runner, cli_db):
    result = invoke(runner, ["put", "", "v"], cli_db)
    assert result.exit_code == 2


def test_get_json(runner, seeded_db):
    result = invoke(runner, ["--json", "get", "job:003"], seeded_db)
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data == {"key": "job:003", "value": '{"state": "running"}', "tag": "20240103"}


def test_get_missing_key(runner, seeded_db):
    result = invoke(runner, ["get", "job:999"], seeded_db)
    assert result.exit_code == 4
    assert "Key not found: job:999" in result.output


def test_delete(runner, seeded_db):
    result = invoke(runner, ["--json", "delete", "job:001"], seeded_db)
    assert result.exit_code == 0
    assert json.loads(result.output) == {"deleted": 1}
    result = invoke(runner, ["--json", "delete", "job:001"], seeded_db)
    assert json.loads(result.output) == {"deleted": 0}


def test_scan_ascending(runner, seeded_db):
    result = invoke(runner, ["--json", "scan", "job:002"], seeded_db)
    assert result.exit_code == 0
    keys = [row["key"] for row in json.loads(result.output)]
    assert keys == ["job:002", "job:003", "user:alice"]


def test_scan_descending_with_limit(runner, seeded_db):
    result = invoke(runner, ["--json", "scan", "job:003", "--desc", "--limit", "2"], seeded_db)
    assert result.exit_code == 0
    keys = [row["key"] for row in json.loads(result.output)]
    assert keys == ["job:003", "job:002"]


def test_scan_descending_defaults_to_largest_key(runner, seeded_db):
    result = invoke(runner, ["--json", "scan", "--desc", "-l", "1"], seeded_db)
    rows = json.loads(result.output)
    assert rows == [{"key": "user:alice", "tag": "", "value": '"admin"'}]


def test_scan_text_table(runner, seeded_db):
    result = invoke(runner, ["scan", "job:", "--limit", "3"], seeded_db)
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].split() == ["key", "tag", "value"]
    assert len(lines) == 2 + 3
    assert "job:001" in lines[2]


def test_scan_negative_limit_rejected(runner, seeded_db):
    result = invoke(runner, ["scan", "--limit", "-1"], seeded_db)
    assert result.exit_code == 2


def test_named_store(runner, cli_db):
    invoke(runner, ["--name", "jobs", "put", "k", "v"], cli_db)
    result = invoke(runner, ["--name", "other", "get", "k"], cli_db)
    assert result.exit_code == 4
    store = SqliteStore(cli_db, name="jobs")
    try:
        assert store.get("k") == "v"
    finally:
        store.close()


def test_storage_uri_selects_sqlite_file(runner, tmp_path):
    path = str(tmp_path / "via-uri.db")
    result = runner.invoke(app, ["--storage-uri", f"sqlite:///{path}", "put", "k", "v"])
    assert result.exit_code == 0
    store = SqliteStore(path)
    try:
        assert store.get("k") == "v"
    finally:
        store.close()
