import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def _no_generation_key(monkeypatch):
    # Tests never reach the hosted model unless they patch requests themselves.
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


@pytest.fixture
def temp_db(monkeypatch, tmp_path):
    import db

    db_path = tmp_path / "test.db"
    monkeypatch.setattr(db, "DB_PATH", str(db_path))

    previous_pool = db._pool
    db._pool = db.SQLiteConnectionPool(str(db_path), max_connections=10)
    db.init()
    yield str(db_path)
    db._pool.close_all()
    db._pool = previous_pool


@pytest.fixture
def learner(temp_db):
    import db

    db.create_profile("learner-1", "Asha")
    return "learner-1"
