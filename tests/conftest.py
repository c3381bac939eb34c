import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import planner.models  # noqa: F401
from planner.database import Base
from planner.storage import InMemoryStore


@pytest.fixture
def store():
    """Provide an empty in-memory draft store."""
    return InMemoryStore()


@pytest.fixture
def session_factory():
    """Provide a session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()
