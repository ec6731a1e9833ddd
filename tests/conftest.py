import os
from typing import AsyncGenerator, Callable

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Never reach a real database from tests.
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "eduhive_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory MongoDB with all document models bound."""
    from mongomock_motor import AsyncMongoMockClient

    from eduhive.db.init import init_db
    client = AsyncMongoMockClient()
    await init_db(client["eduhive_test"])
    yield client["eduhive_test"]


@pytest_asyncio.fixture
async def make_user(db) -> Callable:
    from eduhive.models.user import User
    counter = {"n": 0}

    async def _make(balance: int = 0, role: str = "user") -> User:
        counter["n"] += 1
        user = User(email=f"user{counter['n']}@example.com", name=f"User {counter['n']}", role=role)
        await user.insert()
        if balance:
            # Seed through the ledger so the balance is explained by an entry.
            from eduhive.services import ledger
            await ledger.record_transaction(user.id, balance, "credit", description="Seed balance")
            user = await User.get(user.id)
        return user

    return _make


@pytest_asyncio.fixture
async def make_course(db) -> Callable:
    from eduhive.models.course import Course, Lecture

    async def _make(price: float = 0, is_paid: bool | None = None, lectures: list[float] | None = None, title: str = "Course"):
        course = Course(title=title, price=price, is_paid=price > 0 if is_paid is None else is_paid)
        await course.insert()
        created = []
        for i, duration in enumerate(lectures or []):
            lec = Lecture(course_id=course.id, title=f"Lecture {i + 1}", order_index=i + 1, duration=duration)
            await lec.insert()
            created.append(lec)
        return course, created

    return _make


@pytest_asyncio.fixture
async def client(db) -> AsyncGenerator[AsyncClient, None]:
    from eduhive.main import app
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def login(client) -> Callable:
    """Attach a signed session cookie for user to the shared client."""
    from eduhive.core.security import create_session_cookie
    from eduhive.deps import SESSION_COOKIE_NAME

    def _login(user) -> AsyncClient:
        cookie = create_session_cookie({"user_id": str(user.id), "session_version": user.session_version})
        client.cookies.set(SESSION_COOKIE_NAME, cookie)
        return client

    return _login
