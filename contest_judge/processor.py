import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional, Set

from .config import MAX_CONCURRENT_JUDGES
from .judge import Judge
from .models import JudgeStatus, async_session
from .sandbox import ExecutionScope, SandboxExecutor
from .store import InvalidTransition, SubmissionNotFound, SubmissionStore

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Judging interrupted"


class ProcessorMetrics:
    """Gauges and counters of one processor; the event loop serializes all updates."""

    def __init__(self):
        self.queued = 0
        self.active = 0
        self.completed = 0
        self.system_errors = 0
        self.by_status = Counter()

    def record(self, status: JudgeStatus):
        self.completed += 1
        self.by_status[status.value] += 1
        if status == JudgeStatus.SYSTEM_ERROR:
            self.system_errors += 1

    def snapshot(self) -> dict:
        return {
            "queued": self.queued,
            "active": self.active,
            "completed": self.completed,
            "system_errors": self.system_errors,
            "by_status": dict(self.by_status),
        }


class SubmissionProcessor:
    """Takes queued submissions through RUNNING to a terminal status.

    Every submission is processed end-to-end by one worker; workers share nothing
    but the queue, so a slow sandbox run never holds up other submissions.
    A processor assumes it is the only one judging against its database.
    """

    def __init__(self, session_factory=async_session, executor: Optional[SandboxExecutor] = None,
                 workers: int = MAX_CONCURRENT_JUDGES, store: Optional[SubmissionStore] = None):
        self.store = store or SubmissionStore(session_factory)
        self.executor = executor or SandboxExecutor()
        self.workers = workers
        self.metrics = ProcessorMetrics()
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: List[asyncio.Task] = []
        self._pending: Set[int] = set()  # queued or being judged here
        self._running: Dict[int, ExecutionScope] = {}  # moved to RUNNING by this processor

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self):
        if self.running:
            return
        await self.executor.sweep_orphans()
        self._queue = asyncio.Queue()
        self._tasks = [asyncio.create_task(self._worker(n)) for n in range(self.workers)]
        await self._recover()
        logger.info("Started %d judge workers", self.workers)

    async def stop(self, drain: bool = True):
        """Stop the workers; without draining, submissions being judged end as SYSTEM_ERROR."""
        if not self.running:
            return
        if drain:
            await self._queue.join()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._pending.clear()
        self.metrics.queued = 0
        logger.info("Judge workers stopped")

    async def join(self):
        """Wait until every enqueued submission has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def enqueue(self, submission_id: int):
        """Mark a submission QUEUED and hand it to the worker pool (best-effort FIFO)."""
        if not self.running:
            raise RuntimeError("Submission processor is not running")
        if submission_id in self._pending:
            raise InvalidTransition(f"Submission {submission_id} is already queued")

        self._pending.add(submission_id)
        try:
            submission = await self.store.get_submission(submission_id)
            status = JudgeStatus(submission.status)
            if status == JudgeStatus.PENDING:
                await self.store.transition(submission_id, JudgeStatus.QUEUED)
            elif status != JudgeStatus.QUEUED:
                raise InvalidTransition(f"Submission {submission_id} is already {status.value}")
        except BaseException:
            self._pending.discard(submission_id)
            raise

        self._put(submission_id)

    def _put(self, submission_id: int):
        self._pending.add(submission_id)
        self.metrics.queued += 1
        self._queue.put_nowait(submission_id)

    async def _recover(self):
        """Settle what a previous run left behind: RUNNING rows fail, QUEUED rows are judged again."""
        for submission in await self.store.list_by_status(JudgeStatus.RUNNING):
            logger.warning("[Judge #%s] Was still running when the judge stopped", submission.id)
            await self._fail(submission.id, INTERRUPTED_MESSAGE)

        queued = await self.store.list_by_status(JudgeStatus.QUEUED)
        for submission in queued:
            if submission.id not in self._pending:
                self._put(submission.id)
        if queued:
            logger.info("Re-queued %d submissions", len(queued))

    async def _worker(self, n: int):
        while True:
            submission_id = await self._queue.get()
            self.metrics.queued -= 1
            try:
                await self.process(submission_id)
            except Exception:
                logger.exception("[Worker %d] Unhandled error for submission %s", n, submission_id)
            finally:
                self._pending.discard(submission_id)
                self._queue.task_done()

    async def process(self, submission_id: int) -> Optional[JudgeStatus]:
        """Judge one submission and persist its terminal status.

        Returns the terminal status written, or None when the submission was
        missing or not in a state this processor may advance.
        """
        scope = ExecutionScope(submission_id)
        self.metrics.active += 1
        try:
            return await self._process(submission_id, scope)
        except asyncio.CancelledError:
            if self._running.get(submission_id) is scope:
                logger.warning("[Judge #%s] Judging interrupted", submission_id)
                await self._fail(submission_id, INTERRUPTED_MESSAGE)
            raise
        except Exception as e:
            logger.exception("[Judge #%s] Error during processing", submission_id)
            return await self._fail(submission_id, f"Internal system error during processing: {e}")
        finally:
            if self._running.get(submission_id) is scope:
                del self._running[submission_id]
            self.metrics.active -= 1
            await self._release(scope)

    async def _process(self, submission_id: int, scope: ExecutionScope) -> Optional[JudgeStatus]:
        try:
            submission = await self.store.get_submission(submission_id)
        except SubmissionNotFound:
            logger.error("[Judge #%s] Submission not found", submission_id)
            return None

        status = JudgeStatus(submission.status)
        if status not in (JudgeStatus.PENDING, JudgeStatus.QUEUED):
            logger.warning("[Judge #%s] Skipping submission in status %s", submission_id, status.value)
            return None

        problem = await self.store.get_problem(submission.problem_id)
        test_cases = await self.store.list_test_cases(problem.id)
        if not test_cases:
            logger.warning("[Judge #%s] No test cases found for problem %s", submission_id, problem.id)
            return await self._fail(submission_id, "No test cases available for this problem")

        logger.info("[Judge #%s] Problem: %s, %d test cases", submission_id, problem.id, len(test_cases))
        try:
            if status == JudgeStatus.PENDING:
                await self.store.transition(submission_id, JudgeStatus.QUEUED)
            await self.store.transition(submission_id, JudgeStatus.RUNNING,
                                        message="Executing code against test cases...")
        except InvalidTransition:
            logger.warning("[Judge #%s] Already picked up elsewhere, skipping", submission_id)
            return None
        self._running[submission_id] = scope

        judge = Judge(self.executor, submission_id)
        result = await judge.run(submission.code, submission.language, test_cases,
                                 problem.time_limit, problem.memory_limit, scope=scope)

        await self.store.transition(
            submission_id, result.status,
            score=result.score,
            execution_time=result.time_used,
            memory_used=result.memory_used,
            message=result.message,
        )
        self.metrics.record(result.status)
        logger.info("[Judge #%s] Result: %s, Time: %sms, Memory: %sKB, Score: %s",
                    submission_id, result.status.value, result.time_used, result.memory_used, result.score)
        return result.status

    async def _fail(self, submission_id: int, message: str) -> Optional[JudgeStatus]:
        try:
            await self.store.transition(submission_id, JudgeStatus.SYSTEM_ERROR, score=0, message=message)
        except Exception:
            logger.exception("[Judge #%s] Failed to record system error", submission_id)
            return None
        self.metrics.record(JudgeStatus.SYSTEM_ERROR)
        return JudgeStatus.SYSTEM_ERROR

    async def _release(self, scope: ExecutionScope):
        try:
            await self.executor.release(scope)
        except Exception:
            logger.exception("[Judge #%s] Cleanup failed", scope.owner)
