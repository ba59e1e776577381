"""Database engine, session factory and the ``files`` table."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Union

from sqlalchemy import DateTime, Enum, Integer, Text, func
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from .models import FileStatus

MEMORY_DB = ":memory:"


class Base(DeclarativeBase):
    pass


class FileRecord(Base):
    """One row per unique local path with its last known upload status."""

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(Text, unique=True, nullable=False, index=True)
    status: Mapped[FileStatus] = mapped_column(
        Enum(
            FileStatus,
            native_enum=False,
            length=16,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=FileStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<FileRecord(path={self.path!r}, status='{self.status.value}')>"


def database_url(db_path: Union[str, Path]) -> str:
    if str(db_path) == MEMORY_DB:
        return f"sqlite+aiosqlite:///{MEMORY_DB}"
    return f"sqlite+aiosqlite:///{Path(db_path)}"


def create_engine(
    db_path: Union[str, Path],
    echo: bool = False,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create async engine and session factory.

    Returns (engine, session_factory) tuple. An in-memory database shares one
    connection so every session sees the same tables.
    """
    url = database_url(db_path)
    if str(db_path) == MEMORY_DB:
        engine = create_async_engine(url, echo=echo, poolclass=StaticPool)
    else:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        engine = create_async_engine(url, echo=echo)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def init_schema(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
