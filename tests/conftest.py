"""
Pytest fixtures for the assessment platform tests.

Every test gets its own SQLite file so committed state never leaks between
tests. The application settings are pointed at SQLite before any module
that reads them is imported.
"""

import os
import tempfile
import uuid
from typing import AsyncGenerator, List

_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_tmp.name}"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-0123456789"
os.environ["EMAIL_ENABLED"] = "false"

from assessment_platform.config import get_settings

get_settings.cache_clear()

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from assessment_platform.engines.assessment.levels import Level
from assessment_platform.kernel.identity.jwt import JWTManager
from assessment_platform.kernel.identity.password import hash_password
from assessment_platform.kernel.models import Base, Competency, Question, User, UserRole


PASSWORD = "TestPassword123"


def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database file with every table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


async def make_user(
    session: AsyncSession,
    email: str,
    role: UserRole = UserRole.STUDENT,
    verified: bool = True,
    full_name: str = "Test User",
) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(PASSWORD),
        full_name=full_name,
        role=role,
        email_verified=verified,
    )
    session.add(user)
    await session.commit()
    return user


async def seed_bank(session: AsyncSession, competencies: int = 4) -> List[Competency]:
    """
    Competencies named "Competency 01".. with one active question at every
    level. Option 0 is always the correct answer.
    """
    created = []
    for n in range(1, competencies + 1):
        competency = Competency(name=f"Competency {n:02d}", description=f"Area {n}")
        session.add(competency)
        await session.flush()
        for level in Level:
            session.add(
                Question(
                    competency_id=competency.id,
                    level=level.value,
                    text=f"{competency.name} question at {level.value}?",
                    options=["Right", "Wrong 1", "Wrong 2", "Wrong 3"],
                    correct_option_index=0,
                    is_active=True,
                )
            )
        created.append(competency)
    await session.commit()
    return created


@pytest_asyncio.fixture
async def student(db_session: AsyncSession) -> User:
    """A verified student."""
    return await make_user(db_session, "student@example.com", full_name="Sam Student")


@pytest_asyncio.fixture
async def other_student(db_session: AsyncSession) -> User:
    return await make_user(db_session, "other@example.com", full_name="Olive Other")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    """A verified admin."""
    return await make_user(db_session, "admin@example.com", role=UserRole.ADMIN, full_name="Ada Admin")


@pytest_asyncio.fixture
async def bank(db_session: AsyncSession) -> List[Competency]:
    """Four competencies, so each step has eight questions."""
    return await seed_bank(db_session, competencies=4)


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key="test-secret-key-for-testing-only",
        algorithm="HS256",
        access_token_expire_minutes=30,
        refresh_token_expire_days=7,
    )


class RecordingMailer:
    """Mailer stand-in that keeps every message instead of sending it."""

    def __init__(self, fail_with: Exception = None):
        self.sent = []
        self.fail_with = fail_with

    async def send(self, recipient, template_key, context, attachments=()):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(
            {
                "recipient": recipient,
                "template_key": template_key,
                "context": dict(context),
                "attachments": list(attachments),
            }
        )
        return True


class FakeRenderer:
    """Certificate renderer that skips WeasyPrint."""

    def __init__(self):
        self.rendered = []

    def render_pdf(self, data) -> bytes:
        self.rendered.append(data)
        return b"%PDF-1.7 fake certificate"


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Create extra users: ``await user_factory(email, role=..., verified=...)``."""

    async def create(email: str, **kwargs) -> User:
        return await make_user(db_session, email, **kwargs)

    return create


@pytest.fixture
def bank_factory(db_session: AsyncSession):
    """Seed a bank of a given size: ``await bank_factory(22)``."""

    async def create(competencies: int) -> List[Competency]:
        return await seed_bank(db_session, competencies=competencies)

    return create
