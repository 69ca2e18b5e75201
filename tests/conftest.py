from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from typing import Generator, Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from bankfeed.core.database import Base, configure_sqlite, get_db
from bankfeed.core.deps import get_current_user
from bankfeed.main import app
from bankfeed import models


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # temp file so the developer's db.sqlite3 is never touched
    fd, path = tempfile.mkstemp(prefix="bankfeed_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(path + suffix)
        except OSError:
            pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    configure_sqlite(eng)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    # demo user with one account and two categories, plus a second user to test scoping
    demo = models.User(email="demo@example.com", is_active=True)
    other = models.User(email="other@example.com", is_active=True)
    session.add_all([demo, other])
    session.flush()
    session.add_all(
        [
            models.Account(
                user_id=demo.id,
                name="Main Checking",
                type=models.AccountType.CHECKING,
                currency="EUR",
                current_balance=Decimal("1000.00"),
                provider_account_id="prov-main",
            ),
            models.Category(user_id=demo.id, name="Food", type=models.TxnType.EXPENSE),
            models.Category(user_id=demo.id, name="Salary", type=models.TxnType.INCOME),
            models.Account(
                user_id=other.id,
                name="Other Checking",
                type=models.AccountType.CHECKING,
                currency="EUR",
                current_balance=Decimal("0"),
            ),
            models.Category(user_id=other.id, name="Other Food", type=models.TxnType.EXPENSE),
        ]
    )
    session.commit()

    try:
        yield session
    finally:
        session.close()
        with engine.begin() as conn:
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())


@pytest.fixture()
def user(db_session) -> models.User:
    return db_session.query(models.User).filter_by(email="demo@example.com").one()


@pytest.fixture()
def other_user(db_session) -> models.User:
    return db_session.query(models.User).filter_by(email="other@example.com").one()


@pytest.fixture()
def account(db_session, user) -> models.Account:
    return db_session.query(models.Account).filter_by(user_id=user.id, name="Main Checking").one()


@pytest.fixture()
def other_account(db_session, other_user) -> models.Account:
    return db_session.query(models.Account).filter_by(user_id=other_user.id).one()


@pytest.fixture()
def food(db_session, user) -> models.Category:
    return db_session.query(models.Category).filter_by(user_id=user.id, name="Food").one()


@pytest.fixture()
def salary(db_session, user) -> models.Category:
    return db_session.query(models.Category).filter_by(user_id=user.id, name="Salary").one()


@pytest.fixture()
def other_category(db_session, other_user) -> models.Category:
    return db_session.query(models.Category).filter_by(user_id=other_user.id).one()


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    demo = db_session.query(models.User).filter_by(email="demo@example.com").one()
    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_current_user] = lambda: demo
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def act_as():
    """Switch the authenticated user for subsequent requests."""

    def _act_as(u: models.User) -> None:
        app.dependency_overrides[get_current_user] = lambda: u

    return _act_as
