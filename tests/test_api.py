import httpx
import pytest

from contest_judge import main
from contest_judge.models import JudgeStatus
from contest_judge.processor import SubmissionProcessor

from stubs import StubExecutor


@pytest.fixture
async def processor(db, monkeypatch):
    processor = SubmissionProcessor(db, StubExecutor(), workers=2)
    monkeypatch.setattr(main, "processor", processor)
    await processor.start()
    yield processor
    await processor.stop()


@pytest.fixture
async def client(processor):
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://judge") as client:
        yield client


async def test_judge_submission(client, processor, make_problem, make_submission):
    problem_id = await make_problem([("1 2", "1 2"), ("3", "3")])
    submission_id = await make_submission(problem_id, status=JudgeStatus.PENDING)

    response = await client.post(f"/api/judge/{submission_id}")
    assert response.status_code == 202
    assert response.json() == {"submission_id": submission_id, "status": "QUEUED"}

    await processor.join()

    response = await client.get(f"/api/submissions/{submission_id}")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ACCEPTED"
    assert body["score"] == 100
    assert body["execution_time"] == 20
    assert body["memory_used"] == 1000
    assert body["message"] == "All 2 test cases passed successfully"


async def test_judge_unknown_submission(client):
    response = await client.post("/api/judge/404")
    assert response.status_code == 404


async def test_judge_finished_submission_conflicts(client, make_problem, make_submission):
    problem_id = await make_problem([("1", "1")])
    submission_id = await make_submission(problem_id, status=JudgeStatus.WRONG_ANSWER)

    response = await client.post(f"/api/judge/{submission_id}")
    assert response.status_code == 409


async def test_get_unknown_submission(client):
    response = await client.get("/api/submissions/404")
    assert response.status_code == 404


async def test_metrics(client, processor, make_problem, make_submission):
    problem_id = await make_problem([("1", "2")])
    submission_id = await make_submission(problem_id)

    await client.post(f"/api/judge/{submission_id}")
    await processor.join()

    response = await client.get("/api/judge/metrics")
    assert response.status_code == 200
    assert response.json()["completed"] == 1
    assert response.json()["by_status"] == {"WRONG_ANSWER": 1}


async def test_languages(client):
    response = await client.get("/api/languages")
    assert response.status_code == 200
    languages = response.json()
    assert languages["PYTHON"] == {"kind": "interpreted", "source_file": "solution.py"}
    assert languages["CPP"]["kind"] == "compiled"
    assert set(languages) == {"JAVA", "PYTHON", "CPP", "C"}


async def test_judge_twice_conflicts(client, processor, make_problem, make_submission):
    problem_id = await make_problem([("1", "1")])
    submission_id = await make_submission(problem_id, status=JudgeStatus.PENDING)

    first = await client.post(f"/api/judge/{submission_id}")
    second = await client.post(f"/api/judge/{submission_id}")
    await processor.join()

    assert first.status_code == 202
    assert second.status_code == 409
    assert len(processor.executor.calls) == 1
