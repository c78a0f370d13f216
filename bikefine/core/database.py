import logging
from typing import AsyncIterator, List, Optional

from fastapi import Request
from sqlalchemy import Table, inspect, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bikefine.core.exceptions import DatabaseConfigError
from bikefine.models.base import Base

# Registers every table on Base.metadata
from bikefine.models import admin, case, payment, query, user  # noqa: F401

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "users",
    "cases",
    "queries",
    "admin_users",
    "admin_sessions",
    "admin_activities",
    "payments",
    "query_attachments",
    "query_responses",
)


class Database:
    """Connection handle owned by the application.

    The engine is created on first use and then reused for every request;
    ``create_app`` builds one instance and keeps it on ``app.state``.
    """

    def __init__(self, url: Optional[str], name: Optional[str] = None, echo: bool = False):
        self.url = url
        self.name = name
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    def get_db(self) -> AsyncEngine:
        if self._engine is None:
            if not self.url:
                raise DatabaseConfigError("DATABASE_URL environment variable is not set")
            logger.info("Connecting to database %s", self.name or self.url.split("://", 1)[0])
            self._engine = create_async_engine(self.url, echo=self.echo)
            self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)
        return self._engine

    def session(self) -> AsyncSession:
        self.get_db()
        return self._sessionmaker()

    def get_collection(self, name: str) -> Table:
        if name not in COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return Base.metadata.tables[name]

    async def create_all(self) -> None:
        async with self.get_db().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        async with self.get_db().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def list_collections(self) -> List[str]:
        async with self.get_db().connect() as conn:
            return await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None


async def aget_db(request: Request) -> AsyncIterator[AsyncSession]:
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
