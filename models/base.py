"""
SQLAlchemy declarative base and session factory helpers.

Everything that touches the database here runs in worker threads (the queue,
the worker pool, the janitor, the entity repositories), so a single sync
engine is enough. Engines are built by the code that owns them instead of at
import time: the queue service builds one from settings, tests build one on
SQLite.

SQLite notes (tests only):
- ":memory:" databases live inside one connection, so they need StaticPool
  and check_same_thread=False to be shared between threads.
- File databases get a normal pool; each thread uses its own connection,
  which is what the concurrent claim tests rely on.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base class for all ORM models. SQLAlchemy uses this to track table metadata."""
    pass


def create_db_engine(url: str, echo: bool = False) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    """
    Session factory used by every component.

    expire_on_commit=False keeps loaded attributes readable after the session
    closes: the queue hands detached Job objects to worker threads.
    """
    return sessionmaker(engine, expire_on_commit=False)
