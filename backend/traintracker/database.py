import time
from typing import Generator

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from traintracker.config import settings


def build_engine(url: str) -> Engine:
    """Engine for ``url``; SQLite gets WAL and a busy timeout, servers get a sized pool."""
    is_sqlite = url.startswith("sqlite")
    kwargs: dict = {"pool_pre_ping": True}
    if is_sqlite:
        # Reports arrive on FastAPI's threadpool
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    new_engine = create_engine(url, **kwargs)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _sqlite_on_connect(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return new_engine


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create the train_reports table if it is missing."""
    from traintracker.models import Base
    Base.metadata.create_all(bind=bind or engine)


def ping(db: Session) -> tuple[str, float]:
    """Round-trip ``SELECT 1``; returns (status, latency in ms). Errors become the status."""
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
        status = "ok"
    except Exception as e:
        status = f"error: {e}"
    return status, round((time.perf_counter() - started) * 1000, 1)
