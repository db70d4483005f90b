import os
import tempfile

# Point the package at a scratch data directory before it is imported
os.environ.setdefault("JUDGE_DATA_DIR", tempfile.mkdtemp(prefix="contest_judge_test_"))

import pytest

from contest_judge.models import Base, JudgeStatus, Problem, Submission, TestCase, async_session, engine


@pytest.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_session
    await engine.dispose()


@pytest.fixture
def make_problem(db):
    async def make(cases, time_limit=2, memory_limit=256):
        """cases: iterable of (input, expected_output) pairs."""
        async with db() as session:
            problem = Problem(title="Two Sum", time_limit=time_limit, memory_limit=memory_limit)
            session.add(problem)
            await session.flush()
            for idx, (stdin, expected) in enumerate(cases):
                session.add(TestCase(problem_id=problem.id, input=stdin,
                                     expected_output=expected, is_hidden=idx > 0))
            await session.commit()
            return problem.id
    return make


@pytest.fixture
def make_submission(db):
    async def make(problem_id, code="print(input())", language="PYTHON",
                   status=JudgeStatus.QUEUED):
        async with db() as session:
            submission = Submission(user_id=1, contest_id=1, problem_id=problem_id, code=code,
                                    language=language, status=status.value)
            session.add(submission)
            await session.commit()
            return submission.id
    return make


@pytest.fixture
def load_submission(db):
    async def load(submission_id):
        async with db() as session:
            return await session.get(Submission, submission_id)
    return load
