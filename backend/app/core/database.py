from __future__ import annotations

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

_executor: ThreadPoolExecutor | None = None

T = TypeVar("T")


def normalize_database_url(database_url: str) -> str:
    """Map plain ``postgres://`` style URLs onto the psycopg driver."""
    for prefix in ("postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return "postgresql+psycopg://" + database_url[len(prefix):]
    if database_url.startswith("sqlite://") and not database_url.startswith("sqlite:///"):
        # "sqlite://path/to.db" is accepted for a relative path
        return "sqlite:///" + database_url[len("sqlite://"):]
    return database_url


def create_database_engine(database_url: str, *, pool_size: int = 20, pool_timeout: float = 2) -> Engine:
    url = make_url(normalize_database_url(database_url))
    if url.get_backend_name() == "sqlite":
        if not url.database or url.database == ":memory:":
            # every executor thread must share the single in-memory connection
            return create_engine(
                url,
                echo=False,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        echo=False,
        future=True,
        pool_size=pool_size,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
    )


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=8)
    return _executor


async def run_sync(func: Callable[..., T], /, *args, **kwargs) -> T:
    loop = asyncio.get_running_loop()
    executor = _get_executor()
    partial = functools.partial(func, *args, **kwargs)
    future = executor.submit(partial)
    return await asyncio.wrap_future(future, loop=loop)


class AsyncSession:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, instance) -> None:  # type: ignore[no-untyped-def]
        self._session.add(instance)

    async def execute(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        return await run_sync(self._session.execute, *args, **kwargs)

    async def commit(self) -> None:
        await run_sync(self._session.commit)

    async def get(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        return await run_sync(self._session.get, *args, **kwargs)

    async def close(self) -> None:
        await run_sync(self._session.close)

    async def rollback(self) -> None:
        await run_sync(self._session.rollback)


async def shutdown_executor() -> None:
    global _executor
    if _executor is not None:
        _executor.shutdown(wait=False)
        _executor = None


@asynccontextmanager
async def get_db_session(session_factory: sessionmaker[Session]) -> AsyncIterator[AsyncSession]:
    session = session_factory()
    wrapper = AsyncSession(session)
    try:
        yield wrapper
    finally:
        await wrapper.close()
