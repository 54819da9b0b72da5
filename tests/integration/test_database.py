"""Integration tests for the request-scoped database session."""

from sqlalchemy import func, select

from assessment_platform import database
from assessment_platform.database import get_db
from assessment_platform.kernel.models import Competency


async def competency_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(Competency))).scalar_one()


class TestRequestSession:
    async def test_uncommitted_work_is_discarded(self, session_factory, monkeypatch):
        monkeypatch.setattr(database, "async_session_maker", session_factory)
        sessions = get_db()
        session = await sessions.__anext__()

        session.add(Competency(name="Draft"))
        await session.flush()
        await sessions.aclose()

        assert await competency_count(session_factory) == 0

    async def test_explicit_commit_persists(self, session_factory, monkeypatch):
        monkeypatch.setattr(database, "async_session_maker", session_factory)
        sessions = get_db()
        session = await sessions.__anext__()

        session.add(Competency(name="Kept"))
        await session.commit()
        await sessions.aclose()

        assert await competency_count(session_factory) == 1
