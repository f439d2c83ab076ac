from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from loguru import logger
from sqlalchemy import Boolean, CheckConstraint, Integer, String, event, inspect
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool

from . import config
from .errors import StorageError
from .records import Field, Level, WordRecord


class Base(DeclarativeBase):
    pass


_READ_ONLY_OPTION = "word_store_read_only"
_LEVEL_TOKENS = ", ".join(f"'{level.token}'" for level in Level)


class Word(Base):
    """A vocabulary entry; progress columns live on the same row."""
    __tablename__ = "words"
    __table_args__ = (
        CheckConstraint(f"level IN ({_LEVEL_TOKENS})", name="ck_words_level"),
        CheckConstraint("practice_count >= 0", name="ck_words_practice_count"),
        {"sqlite_autoincrement": True},
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    expression: Mapped[str] = mapped_column(String, nullable=False)
    reading: Mapped[str] = mapped_column(String, nullable=False)
    meaning: Mapped[str] = mapped_column(String, nullable=False)
    level: Mapped[str] = mapped_column(String, nullable=False)
    # Progress
    practice_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    familiar: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    user_marked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")

    def to_record(self) -> WordRecord:
        return WordRecord(
            id=self.id,
            expression=self.expression,
            reading=self.reading,
            meaning=self.meaning,
            level=Level(self.level),
            practice_count=self.practice_count,
            familiar=self.familiar,
            user_marked=self.user_marked,
        )


FIELD_COLUMNS: Dict[Field, Any] = {
    Field.ID: Word.id,
    Field.EXPRESSION: Word.expression,
    Field.READING: Word.reading,
    Field.MEANING: Word.meaning,
    Field.LEVEL: Word.level,
    Field.PRACTICE_COUNT: Word.practice_count,
    Field.FAMILIAR: Word.familiar,
    Field.USER_MARKED: Word.user_marked,
}


def column_for(field: Field) -> Any:
    return FIELD_COLUMNS[field]


def _is_memory_url(url: str) -> bool:
    return make_url(url).database in (None, "", ":memory:")


class WordStore:
    """Handle on the word database: one async engine with a small connection pool.

    Share the store object between tasks; each operation checks out its own
    connection for the length of one transaction. An in-memory database has a
    single connection, so its transactions run one at a time.
    """

    def __init__(self, url: Optional[str] = None, pool_size: int = config.POOL_SIZE, echo: bool = False) -> None:
        self.url = url or config.database_url()
        self._memory_lock: Optional[asyncio.Lock] = None
        if _is_memory_url(self.url):
            self.engine: AsyncEngine = create_async_engine(self.url, echo=echo, poolclass=StaticPool)
            self._memory_lock = asyncio.Lock()
        else:
            self.engine = create_async_engine(
                self.url, echo=echo, poolclass=AsyncAdaptedQueuePool, pool_size=pool_size, max_overflow=0,
            )
        self._install_sqlite_hooks()
        # Reads share the pool but open with a deferred BEGIN
        self.read_engine: AsyncEngine = self.engine.execution_options(**{_READ_ONLY_OPTION: True})
        # Prevent attribute expiration on commit so returned objects remain accessible
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        self.read_sessionmaker = async_sessionmaker(self.read_engine, expire_on_commit=False)

    def _install_sqlite_hooks(self) -> None:
        sync_engine = self.engine.sync_engine

        @event.listens_for(sync_engine, "connect")
        def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None

        @event.listens_for(sync_engine, "begin")
        def _begin(conn: Any) -> None:
            if conn.get_execution_options().get(_READ_ONLY_OPTION):
                conn.exec_driver_sql("BEGIN")
            else:
                # Writers take the lock up front so they wait on the busy
                # timeout instead of failing a lock upgrade.
                conn.exec_driver_sql("BEGIN IMMEDIATE")

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold the in-memory connection for one unit of work; no-op for file databases."""
        if self._memory_lock is None:
            yield
            return
        async with self._memory_lock:
            yield

    @asynccontextmanager
    async def transaction(self, read_only: bool = False) -> AsyncIterator[AsyncSession]:
        """Session bound to a single transaction; commits on success, rolls back on error.

        ``read_only`` transactions start deferred and do not queue behind writers.
        """
        factory = self.read_sessionmaker if read_only else self.sessionmaker
        try:
            async with self.exclusive():
                async with factory() as session:
                    async with session.begin():
                        yield session
        except SQLAlchemyError as exc:
            logger.error(f"Storage failure on {self.url}: {exc}")
            raise StorageError(str(exc)) from exc

    async def close(self) -> None:
        await self.engine.dispose()

    async def __aenter__(self) -> "WordStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"WordStore({self.url!r})"


async def init_db(store: WordStore) -> None:
    """Create the ``words`` table if it does not exist yet."""
    try:
        async with store.exclusive():
            async with store.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc
    logger.debug(f"Schema ready on {store.url}")


async def is_db_initialized(store: WordStore) -> bool:
    try:
        async with store.exclusive():
            async with store.read_engine.connect() as conn:
                return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(Word.__tablename__))
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc


async def drop_schema(store: WordStore) -> None:
    """Drop and recreate the schema. Every word is removed and ids start over."""
    try:
        async with store.exclusive():
            async with store.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
                await conn.run_sync(Base.metadata.create_all)
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc
    logger.warning(f"Dropped and recreated schema on {store.url}")
