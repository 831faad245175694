"""Tests for StoreConfig loading."""

from __future__ import annotations

import pytest

from sqlkv.config import StoreConfig, config_from_env, load_config


def test_defaults():
    cfg = StoreConfig()
    assert cfg.default_name == "kv"
    assert cfg.busy_timeout_ms == 50000
    assert cfg.journal_mode == "WAL"
    assert cfg.value_type == "jsonb"


def test_normalizes_case():
    cfg = StoreConfig(journal_mode="wal", value_type="TEXT")
    assert cfg.journal_mode == "WAL"
    assert cfg.value_type == "text"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"journal_mode": "sideways"},
        {"value_type": "blob"},
        {"busy_timeout_ms": -1},
        {"pool_min_size": 0},
        {"pool_min_size": 5, "pool_max_size": 2},
    ],
)
def test_rejects_invalid_values(kwargs):
    with pytest.raises(ValueError):
        StoreConfig(**kwargs)


def test_load_config_yaml(tmp_path):
    path = tmp_path / "sqlkv.yaml"
    path.write_text("default_name: sessions\nvalue_type: text\npool_max_size: 4\n")
    cfg = load_config(path)
    assert cfg.default_name == "sessions"
    assert cfg.value_type == "text"
    assert cfg.pool_max_size == 4
    assert cfg.busy_timeout_ms == 50000


def test_load_config_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == StoreConfig()


def test_load_config_unknown_key(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("cache_size: 10\n")
    with pytest.raises(ValueError, match="cache_size"):
        load_config(path)


def test_load_config_requires_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_config_from_env_overlays(monkeypatch):
    monkeypatch.setenv("SQLKV_BUSY_TIMEOUT_MS", "10")
    monkeypatch.setenv("SQLKV_JOURNAL_MODE", "delete")
    cfg = config_from_env(StoreConfig(default_name="base"))
    assert cfg.busy_timeout_ms == 10
    assert cfg.journal_mode == "DELETE"
    assert cfg.default_name == "base"


def test_config_from_env_without_overrides_returns_base(monkeypatch):
    for field_name in ("default_name", "busy_timeout_ms", "journal_mode", "value_type"):
        monkeypatch.delenv(f"SQLKV_{field_name.upper()}", raising=False)
    monkeypatch.delenv("SQLKV_POOL_MIN_SIZE", raising=False)
    monkeypatch.delenv("SQLKV_POOL_MAX_SIZE", raising=False)
    base = StoreConfig(default_name="base")
    assert config_from_env(base) is base
