import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date
from typing import AsyncGenerator, Awaitable, Callable, Dict, List

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.auth.schemas import CurrentUser
from app.auth.security import create_access_token
from app.core.models import Course, LecturerCourse, Semester, User
from app.db.session import Base, get_db


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database per test, with foreign keys enforced."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def as_actor(user: User) -> CurrentUser:
    return CurrentUser(id=user.id, role=user.role)


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject={"user_id": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    counter = {"n": 0}

    async def _make(role: str, full_name: str = "") -> User:
        counter["n"] += 1
        user = User(
            full_name=full_name or f"{role.title()} {counter['n']}",
            email=f"{role.lower()}{counter['n']}@university.test",
            role=role,
            status="ACTIVE",
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture()
async def student(make_user) -> User:
    return await make_user("STUDENT", "Ama Mensah")


@pytest.fixture()
async def other_student(make_user) -> User:
    return await make_user("STUDENT", "Kofi Boateng")


@pytest.fixture()
async def registrar(make_user) -> User:
    return await make_user("REGISTRAR", "Registrar Office")


@pytest.fixture()
async def admin(make_user) -> User:
    return await make_user("ADMIN")


@pytest.fixture()
async def staff(make_user) -> User:
    return await make_user("STAFF", "Dr. Owusu")


@pytest.fixture()
def make_semester(db_session: AsyncSession) -> Callable[..., Awaitable[Semester]]:
    async def _make(code: str, name: str = "", is_active: bool = False, **kwargs) -> Semester:
        sem = Semester(
            name=name or f"Semester {code}",
            code=code,
            start_date=kwargs.pop("start_date", date(2025, 9, 1)),
            end_date=kwargs.pop("end_date", date(2025, 12, 20)),
            is_active=is_active,
            **kwargs,
        )
        db_session.add(sem)
        await db_session.commit()
        return sem

    return _make


@pytest.fixture()
async def semester(make_semester) -> Semester:
    return await make_semester("S1", "Semester I 2025/2026", is_active=True)


@pytest.fixture()
async def courses(db_session: AsyncSession) -> List[Course]:
    rows = [
        Course(code="CSC101", name="Introduction to Computing"),
        Course(code="MTH111", name="Calculus I"),
        Course(code="PHY121", name="Mechanics"),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest.fixture()
async def lecturer_link(db_session: AsyncSession, staff: User, courses: List[Course], semester: Semester) -> LecturerCourse:
    """staff teaches courses[0] in semester."""
    link = LecturerCourse(lecturer_id=staff.id, course_id=courses[0].id, semester_id=semester.id)
    db_session.add(link)
    await db_session.commit()
    return link
