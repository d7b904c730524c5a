from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from backend.app.core.config import settings


def build_engine(url: str) -> Engine:
    """Create an engine for *url*.

    SQLite connections get foreign keys switched on and every transaction
    opened with ``BEGIN IMMEDIATE``, so concurrent checkouts queue on the
    write lock instead of failing on a read-to-write lock upgrade.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True)

    engine = create_engine(
        url,
        echo=False,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.SQLITE_BUSY_TIMEOUT,
        },
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        # Hand transaction control to SQLAlchemy (pysqlite would emit its own BEGIN)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables."""
    # Import all models so they are registered on Base.metadata
    import backend.app.models.audit  # noqa: F401
    import backend.app.models.inventory  # noqa: F401
    import backend.app.models.sales  # noqa: F401
    import backend.app.models.supplier  # noqa: F401
    import backend.app.models.user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
