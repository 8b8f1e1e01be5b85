import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pricewatch.database.connection import Base, create_db_engine
from pricewatch.models import price_alert, token_price  # noqa: F401
from pricewatch.services.alert_store import AlertStore
from pricewatch.services.price_store import PriceStore

from fakes import FakePriceSource, RecordingNotifier

TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture()
def engine():
    # fresh in-memory database per test
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def file_engine(tmp_path):
    # on-disk database with a connection pool, so threads get their own connections
    engine = create_db_engine(f"sqlite:///{tmp_path / 'pricewatch.db'}", connect_timeout=5)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def price_store(session_factory):
    return PriceStore(session_factory)


@pytest.fixture()
def alert_store(session_factory):
    return AlertStore(session_factory)


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def price_source():
    return FakePriceSource()
