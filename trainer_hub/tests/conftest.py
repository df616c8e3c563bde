import os

# Point the app at SQLite before any trainer_hub module builds its engine.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SQLALCHEMY_DATABASE_URL"] = "sqlite://"

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from trainer_hub.database import Base
from trainer_hub import crud, models, schemas

# Monday
TODAY = date(2026, 10, 19)

# Setup in-memory SQLite for testing
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def catalog(db):
    crud.seed_default_packages(db)
    return crud.get_packages(db)


def make_client(db, **overrides):
    data = {
        "name": "Rachel Green",
        "email": "rachel@example.com",
        "phone": "+1 555 123 4567",
        "package": "10x PK 60MIN",
        "location": "Hawthorn Park",
    }
    data.update(overrides)
    client, _ = crud.create_client(db, schemas.ClientCreate(**data), today=TODAY)
    return client


@pytest.fixture
def client(db):
    return make_client(db)


def set_balance(db, client_id, *, total=None, left=None):
    values = {}
    if total is not None:
        values["total_sessions"] = total
    if left is not None:
        values["sessions_left"] = left
    db.query(models.Client).filter(models.Client.id == client_id).update(values)
    db.commit()
