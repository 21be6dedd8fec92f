from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from app.core.config import get_settings
from app.core.errors import ConflictError

settings = get_settings()

# ---------------------------------------------------------
# Postgres connection (production)
#
# - sslmode=require   : enforce SSL when running in the cloud
# - pool_size=5       : the order transaction holds a connection for the
#                       duration of the payment call, keep a few around
# - pool_pre_ping=True: validate connections before using them
#
# SQLite (local runs / tests) uses a single shared connection so an
# in-memory database survives across sessions.
# ---------------------------------------------------------

db_url = settings.DATABASE_URL


def _build_engine(url: str):
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # Append sslmode=require if it is not already present
    if "sslmode=" not in url:
        if "?" in url:
            url = url + "&sslmode=require"
        else:
            url = url + "?sslmode=require"

    return create_engine(
        url,
        echo=False,        # set to True if you want to debug SQL queries
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=5,
    )


engine = _build_engine(db_url)


def create_db_and_tables() -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    Usage:

        from fastapi import Depends

        @router.get("/example")
        def example_endpoint(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine) as session:
        yield session


@contextmanager
def transaction(session: Session):
    """
    Commit on success, roll back on any exception.

    Services wrap each mutating operation in this block; repositories only
    flush. Unique-constraint violations and lost optimistic updates surface
    as a retryable ConflictError.
    """
    try:
        yield session
        session.commit()
    except (IntegrityError, StaleDataError) as exc:
        session.rollback()
        raise ConflictError("Concurrent modification, please retry") from exc
    except Exception:
        session.rollback()
        raise
