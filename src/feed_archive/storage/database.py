"""Explicitly owned SQLite handle shared by every cache store."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from feed_archive.errors import TransactionFailure
from feed_archive.storage.alembic_runner import upgrade_head
from feed_archive.storage.common import (
    WRITE_LOCK_OPTION,
    build_sqlite_engine,
    connect_sqlite_with_policy,
)

logger = logging.getLogger(__name__)


class CacheDatabase:
    """Owns the engine; stores receive it instead of opening their own connections.

    Lifecycle: ``open()`` at startup (creates the file, migrates the schema),
    ``close()`` at shutdown. Also usable as a context manager.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self._engine: Engine | None = None

    def __enter__(self) -> CacheDatabase:
        self.open()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError(f"Cache database is not open: {self.db_path}")
        return self._engine

    def open(self) -> None:
        if self._engine is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        upgrade_head(self.db_path)
        self._engine = build_sqlite_engine(
            db_path=self.db_path,
            busy_timeout_ms=self.busy_timeout_ms,
        )
        logger.info("Opened cache database %s", self.db_path)

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Closed cache database %s", self.db_path)

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Session for lookups; never takes the write lock."""

        with Session(self.engine) as session:
            yield session

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """All-or-nothing write scope.

        Commits once when the block exits cleanly. Any exception rolls the
        whole block back; storage faults surface as ``TransactionFailure``.
        """

        with Session(self.engine) as session:
            try:
                session.connection(execution_options={WRITE_LOCK_OPTION: True})
                yield session
                session.commit()
            except SQLAlchemyError as error:
                session.rollback()
                raise TransactionFailure(f"Cache transaction rolled back: {error}") from error
            except BaseException:
                session.rollback()
                raise

    def raw_connection(self) -> sqlite3.Connection:
        """Plain sqlite3 connection for tests and ad-hoc debugging queries."""

        return connect_sqlite_with_policy(
            db_path=self.db_path,
            busy_timeout_ms=self.busy_timeout_ms,
        )
