import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

# SQLite VM instructions between deadline checks
_PROGRESS_INTERVAL = 10_000


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    is_sqlite = settings.database_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
    elif settings.database_url.startswith("postgresql") and settings.query_timeout_ms:
        connect_args["options"] = f"-c statement_timeout={settings.query_timeout_ms}"
    eng = create_engine(
        settings.database_url, connect_args=connect_args, pool_pre_ping=not is_sqlite
    )
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_pragmas)
        if settings.query_timeout_ms:
            install_sqlite_query_timeout(eng, settings.query_timeout_ms)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def install_sqlite_query_timeout(eng: Engine, timeout_ms: int) -> None:
    """Abort SQLite statements that run longer than ``timeout_ms``.

    SQLite has no server-side statement timeout, so every connection gets a
    progress handler that interrupts the running statement once the deadline
    recorded by ``before_cursor_execute`` has passed. The interrupted
    statement raises ``sqlite3.OperationalError: interrupted``.

    The deadline is cleared once ``execute`` returns, so rows fetched lazily
    from the cursor afterwards are not bounded by it. Aggregates and the
    paginated listings do their work in the first step.
    """

    timeout_secs = timeout_ms / 1000

    def _on_connect(dbapi_conn, record):
        def _past_deadline() -> int:
            deadline = record.info.get("query_deadline")
            if deadline is not None and time.monotonic() > deadline:
                return 1
            return 0

        dbapi_conn.set_progress_handler(_past_deadline, _PROGRESS_INTERVAL)

    def _before_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_deadline"] = time.monotonic() + timeout_secs

    def _after_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.pop("query_deadline", None)

    event.listen(eng, "connect", _on_connect)
    event.listen(eng, "before_cursor_execute", _before_execute)
    event.listen(eng, "after_cursor_execute", _after_execute)


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
