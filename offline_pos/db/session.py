"""Local database engine and session management."""

from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from offline_pos.db.base import Base


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """Create the engine backing the local durable store.

    SQLite is the expected backend on a till. File databases get WAL
    journaling so readers never block on the writer; in-memory databases
    share one connection across threads.
    """
    url = make_url(database_url)
    connect_args = {}
    pool_config = {}

    if url.get_backend_name() == "sqlite":
        connect_args = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            pool_config = {"poolclass": StaticPool}
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    else:
        pool_config = {
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        **pool_config,
    )

    if url.get_backend_name() == "sqlite":
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if url.database not in (None, "", ":memory:"):
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA synchronous=FULL")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create tables if needed and return a session factory bound to *engine*."""
    # Import models so they are registered with Base.metadata
    import offline_pos.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
