import asyncio
import os
import tempfile

import pytest

# Settings are read at import time, so the environment must be ready first.
_tmp_dir = tempfile.mkdtemp(prefix="harvi-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp_dir}/test.db"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["CASCADE_TIMEOUT_SECONDS"] = "10"
os.environ["SQLITE_BUSY_TIMEOUT_SECONDS"] = "1"

from fastapi.testclient import TestClient  # noqa: E402

from harvi.core.auth import create_access_token  # noqa: E402
from harvi.core.database import AsyncSessionLocal, create_tables, drop_tables  # noqa: E402
from harvi.main import app  # noqa: E402


def reset_database():
    async def reset():
        await drop_tables()
        await create_tables()

    asyncio.run(reset())


@pytest.fixture
def test_client():
    """
    TestClient over a freshly emptied SQLite database.
    """
    reset_database()
    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin_headers():
    token = create_access_token(data={"sub": 1, "type": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def run_in_session():
    """Run `fn(session)` against the test database and return its result."""

    def _run(fn):
        async def go():
            async with AsyncSessionLocal() as session:
                return await fn(session)

        return asyncio.run(go())

    return _run


@pytest.fixture
def seed(test_client, admin_headers):
    """
    Y1 -> M1 -> S1 -> L1 (one question), plus a sibling subject S2 with L2
    and an unattached lecture L-free.
    """

    def post(path, body):
        r = test_client.post(f"/admin/{path}", json=body, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()

    post("years", {"id": "Y1", "name": "Year 1", "icon": "1"})
    post("modules", {"id": "M1", "yearId": "Y1", "name": "Cardiology"})
    post("subjects", {"id": "S1", "moduleId": "M1", "name": "Anatomy"})
    post("subjects", {"id": "S2", "moduleId": "M1", "name": "Physiology"})
    post("lectures", {
        "id": "L1",
        "subjectId": "S1",
        "title": "Heart chambers",
        "questions": [
            {"id": "q1", "text": "How many chambers?", "options": ["2", "4"], "correctAnswer": 1},
        ],
    })
    post("lectures", {"id": "L2", "subjectId": "S2", "title": "Cardiac cycle", "questions": []})
    post("lectures", {"id": "L-free", "title": "Unassigned lecture"})
    return test_client
