"""
auth/store.py -- Key-value persistence adapters for session entries.

Pattern: Repository. TokenStore is the four-operation contract the session
manager depends on; the classes below are dumb adapters over a medium. No
retry, validation or encoding lives here -- auth/tokens.py owns the entry
format and auth/session.py owns the validity rules.

Adapters:
  MemoryTokenStore -- dict-backed, volatile. Default for tests and one-shot use.
  NullTokenStore   -- silently no-ops every call. Stands in where there is no
                      persistent medium at all; the session manager still works,
                      it just never recovers a session from storage.
  SqlTokenStore    -- durable, SQLAlchemy Core over SQLite by default. Lets a
                      second process (or the next CLI invocation) reach the same
                      session, the way a reloaded browser tab does.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from core/ other than core.config.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from core.config import Settings, get_settings

logger = logging.getLogger("plate.store")


@runtime_checkable
class TokenStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def clear(self) -> None: ...


# ---------------------------------------------------------------------------
# Volatile adapters
# ---------------------------------------------------------------------------


class MemoryTokenStore:
    """In-process dict. Lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class NullTokenStore:
    """Accepts every write and forgets it. get() always returns None."""

    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str) -> None:
        return None

    def remove(self, key: str) -> None:
        return None

    def clear(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Durable adapter
# ---------------------------------------------------------------------------

_metadata = MetaData()

_kv_store = Table(
    "kv_store",
    _metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
    Column("updated_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so a reader never blocks on a concurrent write.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqlTokenStore:
    """Durable key-value store on SQLAlchemy Core.

    Usage:
        store = SqlTokenStore()                              # SQLite file default
        store = SqlTokenStore("sqlite:///:memory:")          # tests
        store.set("authentication", encoded)
        store.get("authentication")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().token_store_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def get(self, key: str) -> str | None:
        with self.engine.connect() as conn:
            row = conn.execute(_kv_store.select().where(_kv_store.c.key == key)).fetchone()
        return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Replace any existing value for key.

        Delete-then-insert in one transaction keeps this portable across
        backends that spell upsert differently.
        """
        with self.engine.begin() as conn:
            conn.execute(_kv_store.delete().where(_kv_store.c.key == key))
            conn.execute(_kv_store.insert().values(key=key, value=value, updated_at=_now_iso()))

    def remove(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_kv_store.delete().where(_kv_store.c.key == key))

    def clear(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(_kv_store.delete())

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_token_store(settings: Settings | None = None) -> TokenStore:
    """Return the adapter named by settings.token_store."""
    settings = settings or get_settings()
    if settings.token_store == "memory":
        return MemoryTokenStore()
    if settings.token_store == "null":
        logger.info("Session storage disabled; sessions will not survive this process")
        return NullTokenStore()
    return SqlTokenStore(settings.token_store_url)
