"""
Test configuration: in-memory SQLite database and an HTTP client bound to it.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("RETENTION_SCHEDULER_ENABLED", "false")

from collections.abc import AsyncIterator, Callable  # noqa: E402
from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from docvault.database import Base, get_db  # noqa: E402
from docvault.main import app  # noqa: E402
from docvault.models import Document, DocumentVersion, User  # noqa: E402
from docvault.services import content_codec, retention  # noqa: E402


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker) -> AsyncIterator[AsyncSession]:
    async with session_maker() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(email="writer@test.com")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
async def test_document(db_session: AsyncSession, test_user: User) -> Document:
    document = Document(creator_id=test_user.id, name="Test Document", content="Initial content")
    db_session.add(document)
    await db_session.commit()
    await db_session.refresh(document)
    return document


@pytest.fixture
def version_factory(db_session: AsyncSession) -> Callable:
    """Insert a full-snapshot version row directly, with an explicit timestamp."""

    async def create(
        document: Document,
        version_number: int,
        content: str,
        created_at: datetime,
        is_auto_save: bool = True,
    ) -> DocumentVersion:
        version = DocumentVersion(
            document_id=document.id,
            version_number=version_number,
            stored_content=content_codec.compress(content),
            content_size=content_codec.content_size(content),
            content_hash=content_codec.content_hash(content),
            author_id=document.creator_id,
            is_auto_save=is_auto_save,
            created_at=created_at,
            updated_at=created_at,
        )
        db_session.add(version)
        await db_session.commit()
        return version

    return create


@pytest.fixture
async def client(session_maker, monkeypatch) -> AsyncIterator[AsyncClient]:
    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    # Jobs open their own sessions.
    monkeypatch.setattr(retention, "async_session_maker", session_maker)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    return {"X-User-Id": str(test_user.id)}
