from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from pricewatch.core.config import settings

Base = declarative_base()


def create_db_engine(
    url: str | None = None,
    connect_timeout: int | None = None,
    statement_timeout: int | None = None,
) -> Engine:
    url = url or settings.DATABASE_URL
    timeout = connect_timeout or settings.DB_CONNECT_TIMEOUT_SECONDS
    statement_timeout = statement_timeout or settings.DB_STATEMENT_TIMEOUT_SECONDS

    if url.startswith("sqlite"):
        # sqlite3 "timeout" bounds how long a statement waits on a locked database
        connect_args = {"check_same_thread": False, "timeout": timeout}
    else:
        connect_args = {"connect_timeout": timeout}
        if url.startswith("postgresql"):
            connect_args["options"] = f"-c statement_timeout={int(statement_timeout * 1000)}"

    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency: one session per request from the app's factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
