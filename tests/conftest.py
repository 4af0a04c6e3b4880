import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.db.models.database import Base, Role, User, UserRoles
from app.schemas.lecturer.courses import CreateCourse
from app.services.lecturer.course import CourseService
from app.services.shares.course_structure import CourseStructureService
from app.services.user.course_enroll import CourseEnrolls


# ==============================
# 🧩 DATABASE
# ==============================


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ==============================
# 🧩 FACTORIES
# ==============================


@pytest.fixture
def make_user(db):
    async def _make(fullname: str = "Nguyễn Văn A", roles=("USER",)) -> User:
        user = User(fullname=fullname, email=f"{uuid.uuid4().hex[:10]}@example.com")
        db.add(user)
        await db.flush()

        for name in roles:
            role = await db.scalar(select(Role).where(Role.role_name == name))
            if role is None:
                role = Role(role_name=name)
                db.add(role)
                await db.flush()
            db.add(UserRoles(user_id=user.id, role_id=role.id))

        await db.commit()
        return user

    return _make


@pytest.fixture
async def learner(make_user):
    return await make_user("Trần Thị Học Viên")


@pytest.fixture
async def lecturer(make_user):
    return await make_user("Lê Văn Giảng Viên", roles=("LECTURER",))


@pytest.fixture
def make_course(db):
    async def _make(instructor: User, sections: list, certificate=None, **kwargs):
        schema = CreateCourse(
            title=kwargs.pop("title", "Lập trình Python cơ bản"),
            tags=kwargs.pop("tags", ["python", "backend"]),
            sections=sections,
            certificate=certificate,
            **kwargs,
        )
        created = await CourseService(db).create_course_async(instructor, schema)
        return await CourseStructureService(db).get_course_structure_async(created.course_id)

    return _make


@pytest.fixture
def enroll(db):
    async def _enroll(user: User, course_id: uuid.UUID):
        return await CourseEnrolls(db).enroll_async(course_id, user)

    return _enroll
