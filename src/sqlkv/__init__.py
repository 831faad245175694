"""sqlkv: ordered key-value store with tag-scoped retention on SQLite or PostgreSQL."""

__version__ = "0.1.0"

from sqlkv.codec import decode_value, encode_value
from sqlkv.config import StoreConfig, load_config
from sqlkv.errors import BackendError, DecodeError, SqlkvError, TransactionConflictError
from sqlkv.storage import (
    CountResult,
    Entry,
    KVStore,
    KVStoreProtocol,
    StopFlag,
    open_store,
    parse_storage_target,
)
from sqlkv.storage_sqlite import SqliteStore, TransactionState

__all__ = [
    "__version__",
    "Entry",
    "CountResult",
    "StopFlag",
    "KVStore",
    "KVStoreProtocol",
    "SqliteStore",
    "TransactionState",
    "open_store",
    "parse_storage_target",
    "StoreConfig",
    "load_config",
    "encode_value",
    "decode_value",
    "SqlkvError",
    "BackendError",
    "DecodeError",
    "TransactionConflictError",
]
