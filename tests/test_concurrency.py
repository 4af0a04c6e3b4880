import pytest
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConflictError, NotFoundError
from app.db.models.database import CourseEnrollments
from app.services.shares.concurrency import run_with_retry
from tests.factories import video


async def test_retries_after_stale_write(db):
    calls = []

    async def action():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("version changed")
        return "ok"

    assert await run_with_retry(db, action, "test", max_retries=3) == "ok"
    assert len(calls) == 2


async def test_exhausted_retries_raise_conflict(db):
    calls = []

    async def action():
        calls.append(1)
        raise StaleDataError("version changed")

    with pytest.raises(ConflictError) as exc:
        await run_with_retry(db, action, "test", max_retries=3)

    assert len(calls) == 3
    assert exc.value.status_code == 503
    assert exc.value.headers["Retry-After"] == "1"


async def test_http_errors_are_not_retried(db):
    calls = []

    async def action():
        calls.append(1)
        raise NotFoundError()

    with pytest.raises(NotFoundError):
        await run_with_retry(db, action, "test")
    assert len(calls) == 1


async def test_concurrent_enrollment_write_is_detected(
    session_factory, db, learner, lecturer, make_course, enroll
):
    structure = await make_course(lecturer, [{"title": "A", "lectures": [video("A1", 60)]}])
    enrollment_id = (await enroll(learner, structure.course_id))["enrollment_id"]

    async with session_factory() as first, session_factory() as second:
        stmt = select(CourseEnrollments).where(CourseEnrollments.id == enrollment_id)
        mine = await first.scalar(stmt)
        theirs = await second.scalar(stmt)

        theirs.total_time_spent = 120
        await second.commit()

        # bản đọc cũ ghi đè → version không khớp
        mine.total_time_spent = 30
        with pytest.raises(StaleDataError):
            await first.commit()
        await first.rollback()

        fresh = await first.scalar(stmt)
        assert fresh.total_time_spent == 120
        assert fresh.version == 2
