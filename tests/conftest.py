from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from finance_tracker import models
from finance_tracker.database import get_db, init_db
from finance_tracker.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
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
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    # password hashing is irrelevant here, so skip bcrypt
    u = models.User(name="Asha", email="asha@example.com", password="x",
                    monthly_income=85000, emergency_fund=255000)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def other_user(db):
    u = models.User(name="Ravi", email="ravi@example.com", password="x")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def add_budget(db, user_id, category, month, year, limit, spent=0.0):
    budget = models.Budget(user_id=user_id, category=category, monthly_limit=limit,
                           current_spent=spent, month=month, year=year)
    db.add(budget)
    db.commit()
    db.refresh(budget)
    return budget


def spent(db, user_id, category, month, year):
    db.expire_all()
    budget = db.query(models.Budget).filter_by(user_id=user_id, category=category, month=month, year=year).one()
    return budget.current_spent


def at(year, month, day=15):
    return datetime(year, month, day, 12, 0)
