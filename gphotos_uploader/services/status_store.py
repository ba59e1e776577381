"""
StatusStore - durable mapping from local path to upload status.

Each call runs in its own session and transaction, so the store can be
shared by every task of the pipeline without extra locking.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..database import FileRecord, create_engine, init_schema
from ..exceptions import StoreError
from ..models import FileStatus

logger = logging.getLogger(__name__)


class StatusStore:
    """
    Repository for FileRecord rows.

    Usage:
        async with StatusStore(db_path) as store:
            await store.upsert_pending("/photos/a.jpg")
            await store.record_outcome("/photos/a.jpg", FileStatus.SUCCESS)
    """

    def __init__(self, db_path: Union[str, Path], echo: bool = False):
        self._db_path = db_path
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    async def open(cls, db_path: Union[str, Path], echo: bool = False) -> "StatusStore":
        """Create the engine and the schema. Raises StoreError when the database is unusable."""
        store = cls(db_path, echo=echo)
        await store.start()
        return store

    async def start(self) -> None:
        if self._engine is not None:
            return
        try:
            engine, session_factory = create_engine(self._db_path, echo=self._echo)
            await init_schema(engine)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"can't open status database {self._db_path}: {exc}") from exc
        self._engine, self._session_factory = engine, session_factory
        logger.debug("Status database ready at %s", self._db_path)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.close()

    def _session(self) -> AsyncSession:
        if self._session_factory is None:
            raise StoreError("StatusStore not opened. Use 'async with' or StatusStore.open().")
        return self._session_factory()

    async def upsert_pending(self, path: str) -> None:
        """Create a Pending record if the path is unknown. Existing status is left as is."""
        stmt = (
            insert(FileRecord)
            .values(path=str(path), status=FileStatus.PENDING)
            .on_conflict_do_nothing(index_elements=[FileRecord.path])
        )
        await self._execute(stmt, f"upsert {path}")

    async def record_outcome(self, path: str, status: FileStatus) -> None:
        """Set the status unconditionally."""
        stmt = (
            insert(FileRecord)
            .values(path=str(path), status=status)
            .on_conflict_do_update(
                index_elements=[FileRecord.path],
                set_={"status": status, "updated_at": func.now()},
            )
        )
        await self._execute(stmt, f"record {status.value} for {path}")

    async def delete(self, path: str) -> bool:
        """Remove the record for path. Returns True when a row was removed."""
        stmt = delete(FileRecord).where(FileRecord.path == str(path))
        result = await self._execute(stmt, f"delete {path}")
        return bool(result.rowcount)

    async def get(self, path: str) -> Optional[FileRecord]:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(FileRecord).where(FileRecord.path == str(path))
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"can't read record for {path}: {exc}") from exc

    async def get_status(self, path: str) -> Optional[FileStatus]:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(FileRecord.status).where(FileRecord.path == str(path))
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"can't read status for {path}: {exc}") from exc

    async def list_not_success(self) -> List[str]:
        """Paths whose status is anything but Success, oldest first."""
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(FileRecord.path)
                    .where(FileRecord.status != FileStatus.SUCCESS)
                    .order_by(FileRecord.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreError(f"can't list retry candidates: {exc}") from exc

    async def _execute(self, stmt, action: str):
        try:
            async with self._session() as session:
                async with session.begin():
                    return await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"can't {action}: {exc}") from exc
