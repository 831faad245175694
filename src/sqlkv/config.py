"""Configuration for sqlkv stores."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

JOURNAL_MODES = ("DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF")
VALUE_TYPES = ("jsonb", "json", "text")


@dataclass
class StoreConfig:
    """Tunables shared by both backends."""

    default_name: str = "kv"
    busy_timeout_ms: int = 50000
    journal_mode: str = "WAL"
    value_type: str = "jsonb"
    pool_min_size: int = 1
    pool_max_size: int = 10

    def __post_init__(self) -> None:
        self.journal_mode = self.journal_mode.upper()
        if self.journal_mode not in JOURNAL_MODES:
            raise ValueError(f"Unsupported journal_mode '{self.journal_mode}'")
        self.value_type = self.value_type.lower()
        if self.value_type not in VALUE_TYPES:
            raise ValueError(f"Unsupported value_type '{self.value_type}'")
        if self.busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if self.pool_min_size < 1 or self.pool_max_size < self.pool_min_size:
            raise ValueError("pool sizes must satisfy 1 <= pool_min_size <= pool_max_size")


def _from_mapping(data: dict[str, Any]) -> StoreConfig:
    known = {f.name for f in fields(StoreConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}")
    return StoreConfig(**data)


def load_config(path: str | Path) -> StoreConfig:
    """Load a StoreConfig from a YAML mapping."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return StoreConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return _from_mapping(data)


def config_from_env(base: StoreConfig | None = None) -> StoreConfig:
    """Overlay SQLKV_* environment variables on top of base."""
    cfg = base or StoreConfig()
    overrides: dict[str, Any] = {}
    for f in fields(StoreConfig):
        raw = os.getenv(f"SQLKV_{f.name.upper()}")
        if raw is None:
            continue
        overrides[f.name] = int(raw) if f.type in ("int", int) else raw
    if not overrides:
        return cfg
    merged = {f.name: getattr(cfg, f.name) for f in fields(StoreConfig)}
    merged.update(overrides)
    return StoreConfig(**merged)
