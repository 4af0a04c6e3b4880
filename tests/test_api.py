import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm.exc import StaleDataError

from app.core.security import SecurityService
from app.core.settings import settings
from app.db.sesson import get_session
from app.main import app
from app.services.user.learning import LearningService
from tests.factories import quiz, video

API = "/api/v1"


@pytest.fixture
async def client(session_factory, monkeypatch):
    monkeypatch.setattr(settings, "SECRET_KEY", "test-secret-key-with-at-least-32-bytes!")

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def login(client: AsyncClient, user) -> None:
    token = await SecurityService().create_access_token(str(user.id))
    client.cookies.clear()
    client.cookies.set("access_token", token)


COURSE = {
    "title": "FastAPI thực chiến",
    "tags": ["fastapi", "sqlalchemy"],
    "sections": [
        {"title": "Chương 1", "lectures": [video("Mở đầu", 60), quiz("Kiểm tra", 5, duration=60)]},
        {"title": "Chương 2", "lectures": [video("Tổng kết", 180)]},
    ],
}


@pytest.fixture
async def course(client, lecturer):
    await login(client, lecturer)
    res = await client.post(f"{API}/lecturer/courses", json=COURSE)
    assert res.status_code == 201
    course_id = res.json()["course_id"]

    res = await client.get(f"{API}/lecturer/courses/{course_id}/structure")
    assert res.status_code == 200
    return res.json()


async def test_requires_login(client):
    res = await client.get(f"{API}/learning/progress/overview")
    assert res.status_code == 401


async def test_learner_cannot_author_courses(client, learner):
    await login(client, learner)
    res = await client.post(f"{API}/lecturer/courses", json=COURSE)
    assert res.status_code == 403


async def test_full_learning_flow(client, learner, lecturer, course):
    course_id = course["course_id"]
    quiz_id = course["sections"][0]["lectures"][1]["id"]

    await login(client, learner)
    res = await client.post(f"{API}/enrollments/{course_id}")
    assert res.status_code == 201

    # đề quiz cho học viên không lộ đáp án
    res = await client.get(f"{API}/quiz/{course_id}/lessons/{quiz_id}")
    assert res.status_code == 200
    assert "correct_answers" not in res.json()["questions"][0]

    res = await client.post(
        f"{API}/quiz/{course_id}/attempts",
        json={"lesson_id": quiz_id, "answers": [[0], [0], [0], [0], [1]], "time_taken": 40},
    )
    assert res.status_code == 200
    assert res.json()["attempt"]["score"] == 80
    assert res.json()["lesson_completed"] is True

    for s_idx, l_idx in [(0, 0), (1, 0)]:
        res = await client.post(
            f"{API}/learning/{course_id}/lessons/complete",
            json={"section_index": s_idx, "lecture_index": l_idx, "time_spent": 30},
        )
        assert res.status_code == 200
    assert res.json()["overall_progress"] == 100

    res = await client.get(f"{API}/certificates/check-eligibility/{course_id}")
    assert res.json()["eligible"] is True
    assert res.json()["data"]["quiz_average_score"] == 80

    res = await client.post(f"{API}/certificates/generate/{course_id}")
    assert res.status_code == 200
    cert = res.json()
    assert cert["grade"] == "A"

    res = await client.get(f"{API}/certificates/render/{cert['certificate_id']}")
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/html")

    res = await client.get(f"{API}/enrollments/my-courses")
    assert res.json()["courses"][0]["has_certificate"] is True

    # tra cứu công khai
    client.cookies.clear()
    res = await client.get(f"{API}/certificates/verify/{cert['certificate_id']}")
    assert res.status_code == 200
    assert res.json()["grade"] == "A"


async def test_error_mapping(client, learner, course):
    course_id = course["course_id"]
    await login(client, learner)

    res = await client.get(f"{API}/learning/{course_id}/progress")
    assert res.status_code == 404

    await client.post(f"{API}/enrollments/{course_id}")
    res = await client.post(
        f"{API}/learning/{course_id}/lessons/complete",
        json={"section_index": 4, "lecture_index": 0},
    )
    assert res.status_code == 400

    # chỉ số âm cũng đi cùng đường lỗi 400
    res = await client.post(
        f"{API}/learning/{course_id}/lessons/complete",
        json={"section_index": 0, "lecture_index": -1},
    )
    assert res.status_code == 400

    res = await client.post(f"{API}/certificates/generate/{course_id}")
    assert res.status_code == 400
    assert res.json()["detail"] == "no progress recorded"

    res = await client.get(f"{API}/certificates/verify/CERT-0-00000000")
    assert res.status_code == 404


async def test_conflict_maps_to_503(client, learner, course, monkeypatch):
    course_id = course["course_id"]
    await login(client, learner)
    await client.post(f"{API}/enrollments/{course_id}")

    async def always_stale(self, *args, **kwargs):
        raise StaleDataError("version changed")

    monkeypatch.setattr(LearningService, "complete_in_transaction", always_stale)
    res = await client.post(
        f"{API}/learning/{course_id}/lessons/complete",
        json={"section_index": 0, "lecture_index": 0},
    )
    assert res.status_code == 503
    assert res.headers["retry-after"] == "1"


async def test_request_id_header(client):
    res = await client.get("/", headers={"X-Request-ID": "abc123"})
    assert res.headers["x-request-id"] == "abc123"

    res = await client.get("/")
    assert len(res.headers["x-request-id"]) == 32


async def test_instructor_certificate_routes(client, learner, lecturer, make_user, course):
    course_id = course["course_id"]
    quiz_id = course["sections"][0]["lectures"][1]["id"]

    await login(client, learner)
    await client.post(f"{API}/enrollments/{course_id}")
    await client.post(
        f"{API}/quiz/{course_id}/attempts",
        json={"lesson_id": quiz_id, "answers": [[0], [0], [0], [0], [0]]},
    )
    for s_idx, l_idx in [(0, 0), (1, 0)]:
        await client.post(
            f"{API}/learning/{course_id}/lessons/complete",
            json={"section_index": s_idx, "lecture_index": l_idx},
        )

    # học viên không được cấp hộ
    res = await client.post(f"{API}/certificates/generate", json={"course_id": course_id, "user_id": str(learner.id)})
    assert res.status_code == 403

    other = await make_user("Giảng viên khác", roles=("LECTURER",))
    await login(client, other)
    res = await client.post(f"{API}/certificates/generate", json={"course_id": course_id, "user_id": str(learner.id)})
    assert res.status_code == 403
    res = await client.get(f"{API}/certificates/course/{course_id}/all")
    assert res.status_code == 403

    await login(client, lecturer)
    res = await client.post(f"{API}/certificates/generate", json={"course_id": course_id, "user_id": str(learner.id)})
    assert res.status_code == 200
    assert res.json()["grade"] == "A+"

    res = await client.get(f"{API}/certificates/course/{course_id}/all", params={"page": 1, "size": 5})
    assert res.status_code == 200
    assert res.json()["total"] == 1
    assert res.json()["items"][0]["student_name"] == "Trần Thị Học Viên"
