"""SQL-backed durable tier for checkpoints.

Any async SQLAlchemy URL is accepted; SQLite through aiosqlite is the default.
Timestamps are stored as naive UTC so ordering comparisons behave the same on
every backend.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    Text,
    and_,
    delete,
    event,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config.store_config import StoreConfig
from ..exceptions import CheckpointStorageError
from ..models.checkpoint_models import (
    CheckpointRecord,
    CheckpointStatistics,
    ThreadRef,
)
from ..models.state_models import utc_now
from .base import BaseCheckpointRepository

logger = logging.getLogger(__name__)


def _to_db_ts(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_ts(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a SQLite database file."""
    url = make_url(database_url)
    if not url.get_backend_name().startswith("sqlite"):
        return
    db_path = url.database
    if db_path and db_path != ":memory:":
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)


def build_checkpoint_table(table_name: str, metadata: MetaData) -> Table:
    """Define the checkpoint table under a configurable name."""
    return Table(
        table_name,
        metadata,
        Column("thread_id", String(255), primary_key=True),
        Column("checkpoint_ns", String(255), primary_key=True, default=""),
        Column("checkpoint_id", String(64), primary_key=True),
        Column("parent_checkpoint_id", String(64), nullable=True),
        Column("type", String(64), nullable=False),
        Column("checkpoint", Text, nullable=False),
        Column("metadata", Text, nullable=False),
        Column("encoding", String(16), nullable=False, default="json"),
        Column("stage", String(64), nullable=False, default=""),
        Column("checkpoint_ts", DateTime(), nullable=False),
        Column("created_at", DateTime(), nullable=False),
        Column("updated_at", DateTime(), nullable=False),
        Index(f"ix_{table_name}_thread_ts", "thread_id", "checkpoint_ns", "checkpoint_ts"),
        Index(f"ix_{table_name}_stage", "stage"),
    )


class SQLCheckpointRepository(BaseCheckpointRepository):
    """Relational store of checkpoint rows keyed by (thread, namespace, id)."""

    def __init__(self, config: StoreConfig, engine: Optional[AsyncEngine] = None):
        """
        Initialize the durable tier.

        Args:
            config: Store configuration
            engine: Pre-built async engine (created from ``config.database_url``
                when omitted)
        """
        self.config = config
        self._engine = engine
        self._owns_engine = engine is None
        self._metadata = MetaData()
        self.table = build_checkpoint_table(config.table_name, self._metadata)

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            ensure_sqlite_directory(self.config.database_url)
            self._engine = create_async_engine(self.config.database_url, echo=False)
            if self._engine.dialect.name == "sqlite":
                event.listen(self._engine.sync_engine, "connect", _set_sqlite_pragmas)
            logger.info(f"Created checkpoint database engine ({self._engine.dialect.name})")
        return self._engine

    def _row_to_record(self, row) -> CheckpointRecord:
        data = row._mapping
        return CheckpointRecord(
            thread_id=data["thread_id"],
            checkpoint_ns=data["checkpoint_ns"],
            checkpoint_id=data["checkpoint_id"],
            parent_checkpoint_id=data["parent_checkpoint_id"],
            type=data["type"],
            checkpoint=data["checkpoint"],
            metadata=data["metadata"],
            encoding=data["encoding"],
            stage=data["stage"],
            checkpoint_ts=_from_db_ts(data["checkpoint_ts"]),
        )

    def _scope(self, thread_id: str, checkpoint_ns: str):
        return and_(
            self.table.c.thread_id == thread_id,
            self.table.c.checkpoint_ns == checkpoint_ns,
        )

    def _address(self, ref: ThreadRef):
        return and_(
            self._scope(ref.thread_id, ref.checkpoint_ns),
            self.table.c.checkpoint_id == ref.checkpoint_id,
        )

    async def setup(self) -> None:
        engine = self._get_engine()
        try:
            async with engine.begin() as conn:
                await conn.run_sync(self._metadata.create_all)
            logger.info(f"Checkpoint table {self.config.table_name!r} ready")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create checkpoint table: {e}")
            raise CheckpointStorageError(f"Failed to set up checkpoint table: {e}") from e

    async def upsert(self, record: CheckpointRecord) -> None:
        engine = self._get_engine()
        now = _to_db_ts(utc_now())
        values = {
            "parent_checkpoint_id": record.parent_checkpoint_id,
            "type": record.type,
            "checkpoint": record.checkpoint,
            "metadata": record.metadata,
            "encoding": record.encoding,
            "stage": record.stage,
            "checkpoint_ts": _to_db_ts(record.checkpoint_ts),
            "updated_at": now,
        }
        update_stmt = update(self.table).where(self._address(record.ref)).values(**values)

        try:
            try:
                async with engine.begin() as conn:
                    result = await conn.execute(update_stmt)
                    if result.rowcount == 0:
                        await conn.execute(
                            insert(self.table).values(
                                thread_id=record.thread_id,
                                checkpoint_ns=record.checkpoint_ns,
                                checkpoint_id=record.checkpoint_id,
                                created_at=now,
                                **values,
                            )
                        )
            except IntegrityError:
                # A concurrent writer inserted the same address first
                async with engine.begin() as conn:
                    await conn.execute(update_stmt)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist checkpoint {record.checkpoint_id}: {e}")
            raise CheckpointStorageError(
                f"Failed to persist checkpoint {record.checkpoint_id}"
            ) from e

    async def fetch(self, ref: ThreadRef) -> Optional[CheckpointRecord]:
        stmt = select(self.table).where(self._address(ref))
        rows = await self._fetch_all(stmt, f"checkpoint {ref.checkpoint_id}")
        return self._row_to_record(rows[0]) if rows else None

    async def fetch_latest(self, thread_id: str, checkpoint_ns: str) -> Optional[CheckpointRecord]:
        stmt = (
            select(self.table)
            .where(self._scope(thread_id, checkpoint_ns))
            .order_by(self.table.c.checkpoint_ts.desc(), self.table.c.created_at.desc())
            .limit(1)
        )
        rows = await self._fetch_all(stmt, f"latest checkpoint of {thread_id}")
        return self._row_to_record(rows[0]) if rows else None

    async def query(
        self,
        thread_id: str,
        checkpoint_ns: str,
        before_ts: Optional[datetime] = None,
    ) -> List[CheckpointRecord]:
        conditions = [self._scope(thread_id, checkpoint_ns)]
        if before_ts is not None:
            conditions.append(self.table.c.checkpoint_ts < _to_db_ts(before_ts))
        stmt = (
            select(self.table)
            .where(and_(*conditions))
            .order_by(self.table.c.checkpoint_ts.desc(), self.table.c.created_at.desc())
        )
        rows = await self._fetch_all(stmt, f"checkpoints of {thread_id}")
        return [self._row_to_record(row) for row in rows]

    async def fetch_thread(self, thread_id: str) -> List[CheckpointRecord]:
        stmt = (
            select(self.table)
            .where(self.table.c.thread_id == thread_id)
            .order_by(self.table.c.checkpoint_ts.asc(), self.table.c.created_at.asc())
        )
        rows = await self._fetch_all(stmt, f"history of {thread_id}")
        return [self._row_to_record(row) for row in rows]

    async def delete(self, ref: ThreadRef) -> bool:
        stmt = delete(self.table).where(self._address(ref))
        return await self._execute_delete(stmt, f"checkpoint {ref.checkpoint_id}") > 0

    async def list_threads(self) -> List[Tuple[str, str]]:
        stmt = select(self.table.c.thread_id, self.table.c.checkpoint_ns).distinct()
        rows = await self._fetch_all(stmt, "thread list")
        return [(row.thread_id, row.checkpoint_ns) for row in rows]

    async def delete_older_than(self, thread_id: str, checkpoint_ns: str, cutoff: datetime) -> int:
        stmt = delete(self.table).where(
            and_(
                self._scope(thread_id, checkpoint_ns),
                self.table.c.checkpoint_ts < _to_db_ts(cutoff),
            )
        )
        return await self._execute_delete(stmt, f"expired checkpoints of {thread_id}")

    async def delete_beyond_rank(self, thread_id: str, checkpoint_ns: str, keep: int) -> int:
        engine = self._get_engine()
        overflow = (
            select(self.table.c.checkpoint_id)
            .where(self._scope(thread_id, checkpoint_ns))
            .order_by(self.table.c.checkpoint_ts.desc(), self.table.c.created_at.desc())
            .offset(keep)
        )
        try:
            async with engine.begin() as conn:
                ids = [row.checkpoint_id for row in (await conn.execute(overflow)).all()]
                if not ids:
                    return 0
                result = await conn.execute(
                    delete(self.table).where(
                        and_(
                            self._scope(thread_id, checkpoint_ns),
                            self.table.c.checkpoint_id.in_(ids),
                        )
                    )
                )
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Failed to trim checkpoints of {thread_id}: {e}")
            raise CheckpointStorageError(f"Failed to trim checkpoints of {thread_id}") from e

    async def statistics(self, thread_id: Optional[str] = None) -> CheckpointStatistics:
        engine = self._get_engine()
        table = self.table
        scope = table.c.thread_id == thread_id if thread_id is not None else None

        def scoped(stmt):
            return stmt.where(scope) if scope is not None else stmt

        try:
            async with engine.connect() as conn:
                totals = (
                    await conn.execute(
                        scoped(
                            select(
                                func.count(),
                                func.min(table.c.checkpoint_ts),
                                func.max(table.c.checkpoint_ts),
                            ).select_from(table)
                        )
                    )
                ).one()
                by_thread = (
                    await conn.execute(
                        scoped(select(table.c.thread_id, func.count())).group_by(table.c.thread_id)
                    )
                ).all()
                by_stage = (
                    await conn.execute(
                        scoped(select(table.c.stage, func.count())).group_by(table.c.stage)
                    )
                ).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to compute checkpoint statistics: {e}")
            raise CheckpointStorageError("Failed to compute checkpoint statistics") from e

        total, oldest, newest = totals
        return CheckpointStatistics(
            total_checkpoints=total,
            checkpoints_by_thread={row[0]: row[1] for row in by_thread},
            checkpoints_by_stage={row[0]: row[1] for row in by_stage},
            oldest_checkpoint=_from_db_ts(_parse_ts(oldest)),
            newest_checkpoint=_from_db_ts(_parse_ts(newest)),
        )

    async def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            logger.info("Checkpoint database engine disposed")
            self._engine = None

    async def _fetch_all(self, stmt, what: str):
        engine = self._get_engine()
        try:
            async with engine.connect() as conn:
                return (await conn.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {what}: {e}")
            raise CheckpointStorageError(f"Failed to load {what}") from e

    async def _execute_delete(self, stmt, what: str) -> int:
        engine = self._get_engine()
        try:
            async with engine.begin() as conn:
                result = await conn.execute(stmt)
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete {what}: {e}")
            raise CheckpointStorageError(f"Failed to delete {what}") from e


def _parse_ts(value) -> Optional[datetime]:
    # SQLite returns aggregate results over DateTime columns as strings
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """Enable WAL mode for concurrent reads during workflow execution."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()
