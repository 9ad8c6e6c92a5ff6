import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend import config
from backend.app import app, get_resolver
from backend.db import get_db, init_db
from helpers import FakeUpstream


@pytest.fixture(autouse=True)
def settings(monkeypatch):
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(config, "AUTH_TRANSPORT", "bearer")


# create in-memory test database
@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


@pytest.fixture(name="session")
def session_fixture(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture(name="upstream")
def upstream_fixture():
    return FakeUpstream()


@pytest.fixture(name="api_app")
def api_app_fixture(session, upstream):
    resolver = upstream.resolver()
    app.dependency_overrides[get_db] = lambda: session
    app.dependency_overrides[get_resolver] = lambda: resolver
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(name="client")
def client_fixture(api_app):
    return TestClient(api_app)
