"""Database engine and session helpers (SQLModel-compatible)."""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, SQLModel

from ambiente.core.exceptions import ConfigurationError
from ambiente.core.settings import settings


def normalize_db_url(url: str) -> str:
    """Normalize database URL for SQLAlchemy.

    - Force explicit psycopg driver for Postgres URLs
    - Force explicit PyMySQL driver for MySQL URLs
    - Leave other schemes untouched
    """
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://") :]
    if url.startswith("postgresql://") and "+" not in url.split(":", 1)[0]:
        return "postgresql+psycopg://" + url[len("postgresql://") :]
    if url.startswith("mysql://"):
        return "mysql+pymysql://" + url[len("mysql://") :]
    return url


def _connect_args(url: str) -> dict:
    # Sync endpoints run in a threadpool; SQLite must allow cross-thread use.
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


def build_engine(url: str) -> Engine:
    db_url = normalize_db_url(url)
    try:
        return create_engine(
            db_url,
            future=True,
            pool_pre_ping=True,
            connect_args=_connect_args(db_url),
        )
    except ModuleNotFoundError as exc:  # pragma: no cover - runtime dependency hint
        raise ConfigurationError(
            f"Database driver missing for {db_url.split(':', 1)[0]}. Install the driver "
            "or use SQLite locally: DATABASE_URL=sqlite:///apps/ambiente/ambiente.db",
        ) from exc


DB_URL = normalize_db_url(settings.database_url)
engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    class_=Session,
)


def init_db(bind: Engine | None = None) -> None:
    """Create tables for every registered SQLModel model.

    Errors propagate: the service does not start without its store.
    """
    import ambiente.models  # noqa: F401  (registers tables on the metadata)

    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Generator[Session, None, None]:
    """Yield a SQLModel session scoped to the request lifecycle."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


__all__ = [
    "DB_URL",
    "SessionLocal",
    "build_engine",
    "engine",
    "get_session",
    "init_db",
    "normalize_db_url",
]
