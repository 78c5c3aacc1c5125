from contextlib import contextmanager
import os
from pathlib import Path
from typing import Callable, ContextManager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/ordering.db")

SessionFactory = Callable[[], ContextManager[Session]]


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


def build_engine(url: str = DATABASE_URL) -> Engine:
    """Create an engine, preparing the sqlite file location when needed."""
    if url.startswith("sqlite"):
        if _is_memory_sqlite(url):
            # one shared connection, otherwise every checkout sees an empty database
            return create_engine(
                url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        db_path = url.split("sqlite:///")[-1]
        # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, future=True, connect_args={"timeout": 30})
    return create_engine(url, future=True, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> SessionFactory:
    """Return a ``get_session``-style context manager factory bound to ``engine``.

    The yielded session commits when the block exits normally and rolls back
    on any exception, so a block is one unit of work.
    """
    maker = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def _session():
        session = maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session


engine = build_engine(DATABASE_URL)
get_session = make_session_factory(engine)
