from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  註冊所有資料表
from database import Base, Settings, get_db
from core.exceptions import TransferFailed
from core.round_manager import RoundManager
from services.oracle_service import RandomnessOracleClient, get_oracle_client
from services.payout_service import PayoutExecutor, get_payout_executor

T0 = datetime(2024, 1, 1, 12, 0, 0)
STAKE = 100
INTERVAL = 30


class FailingPayout(PayoutExecutor):
    """模擬收款方拒絕轉帳"""

    def pay(self, db, round_obj, recipient, amount):
        raise TransferFailed(recipient, amount)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        stake_amount=STAKE,
        round_interval_seconds=INTERVAL,
        vrf_key_hash="0xfeed",
        vrf_subscription_id=7,
        vrf_request_confirmations=3,
        vrf_callback_gas_limit=100_000
    )


@pytest.fixture
def oracle(settings):
    return RandomnessOracleClient.from_settings(settings)


@pytest.fixture
def payout():
    return PayoutExecutor()


@pytest.fixture
def lottery(db, settings):
    return RoundManager.initialize(db, settings, now=T0)


@pytest.fixture
def client(session_factory, lottery, oracle, payout):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_oracle_client] = lambda: oracle
    app.dependency_overrides[get_payout_executor] = lambda: payout
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
