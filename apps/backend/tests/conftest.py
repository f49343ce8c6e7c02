from __future__ import annotations

import os
import tempfile
from typing import Generator, Any

import pytest
from sqlalchemy.orm import sessionmaker

# the app lifespan runs init_db against the configured URL; keep it off disk
os.environ.setdefault("YENBUDGET_DATABASE_URL", "sqlite://")

from yenbudget.core.database import Base, make_engine
from yenbudget.core.deps import get_books
from yenbudget.main import app
from yenbudget import models  # noqa: F401 - register tables
from yenbudget.services import BookRegistry, SqlStateStore


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # keep the developer's budget.sqlite3 untouched
    fd, path = tempfile.mkstemp(prefix="yenbudget_test_", suffix=".sqlite3")
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
    eng = make_engine(test_db_url)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield TestingSessionLocal
    # wipe every table so each test starts from the default seed
    with engine.begin() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        for tbl in reversed(Base.metadata.sorted_tables):
            conn.execute(tbl.delete())
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture()
def sql_store(session_factory) -> SqlStateStore:
    return SqlStateStore(session_factory)


@pytest.fixture()
def books(sql_store) -> BookRegistry:
    return BookRegistry(sql_store)


@pytest.fixture(autouse=True)
def override_dependency(books):
    app.dependency_overrides[get_books] = lambda: books
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(books):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
