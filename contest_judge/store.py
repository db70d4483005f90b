import logging
from typing import List, Optional

from sqlalchemy import select, update

from .models import JudgeStatus, Problem, Submission, TestCase, async_session, can_transition

logger = logging.getLogger(__name__)


class SubmissionNotFound(LookupError):
    pass


class ProblemNotFound(LookupError):
    pass


class InvalidTransition(ValueError):
    pass


class SubmissionStore:
    """Reads and writes what the judging pipeline needs; one short session per call."""

    def __init__(self, session_factory=async_session):
        self.session_factory = session_factory

    async def get_submission(self, submission_id: int) -> Submission:
        async with self.session_factory() as session:
            submission = await session.get(Submission, submission_id)
            if submission is None:
                raise SubmissionNotFound(f"Submission not found with ID: {submission_id}")
            return submission

    async def get_problem(self, problem_id: int) -> Problem:
        async with self.session_factory() as session:
            problem = await session.get(Problem, problem_id)
            if problem is None:
                raise ProblemNotFound(f"Problem not found with ID: {problem_id}")
            return problem

    async def list_test_cases(self, problem_id: int) -> List[TestCase]:
        """Sample and hidden test cases of a problem, in insertion order."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(TestCase).where(TestCase.problem_id == problem_id).order_by(TestCase.id)
            )
            return list(result.scalars().all())

    async def list_by_status(self, *statuses: JudgeStatus) -> List[Submission]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Submission)
                .where(Submission.status.in_([status.value for status in statuses]))
                .order_by(Submission.id)
            )
            return list(result.scalars().all())

    async def transition(self, submission_id: int, status: JudgeStatus, *,
                         score: Optional[int] = None, execution_time: Optional[int] = None,
                         memory_used: Optional[int] = None, message: Optional[str] = None) -> Submission:
        """Move a submission forward; going back or leaving a terminal status is refused.

        The status check and the write are one UPDATE, so of two concurrent
        writers only one can win a given step.
        """
        values = {"status": status.value}
        if status.is_terminal:
            values["score"] = score or 0
        if execution_time is not None:
            values["execution_time"] = execution_time
        if memory_used is not None:
            values["memory_used"] = memory_used
        if message is not None:
            values["message"] = message

        earlier = [s.value for s in JudgeStatus if can_transition(s, status)]
        async with self.session_factory() as session:
            result = await session.execute(
                update(Submission)
                .where(Submission.id == submission_id, Submission.status.in_(earlier))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                submission = await session.get(Submission, submission_id)
                if submission is None:
                    raise SubmissionNotFound(f"Submission not found with ID: {submission_id}")
                raise InvalidTransition(
                    f"Submission {submission_id} cannot move from {submission.status} to {status.value}")
            await session.commit()

            submission = await session.get(Submission, submission_id)
            logger.debug("Updated submission %s - Status: %s, Score: %s",
                         submission_id, status.value, submission.score)
            return submission
