import logging
from dataclasses import dataclass, replace
from typing import Optional, Sequence, Union

from .config import MAX_MESSAGE_LENGTH
from .evaluator import evaluate
from .languages import Language
from .models import JudgeStatus, TestCase
from .result import ExecutionResult
from .sandbox import ExecutionScope, SandboxExecutor

logger = logging.getLogger(__name__)

# The whole program could not be evaluated, earlier passes do not count.
ZERO_SCORE_STATUSES = (JudgeStatus.COMPILATION_ERROR, JudgeStatus.SYSTEM_ERROR)


def calculate_score(status: JudgeStatus, passed: int, total: int) -> int:
    """round(100 * passed / total), halves rounded up."""
    if status in ZERO_SCORE_STATUSES or total <= 0:
        return 0
    return (200 * passed + total) // (2 * total)


@dataclass(frozen=True)
class JudgeResult:
    result: ExecutionResult
    score: int
    passed: int
    total: int
    executed: int
    failed_case: int = 0  # 1-based, 0 if accepted
    message: str = ""

    @property
    def status(self) -> JudgeStatus:
        return self.result.status

    @property
    def time_used(self) -> Optional[int]:
        return self.result.execution_time

    @property
    def memory_used(self) -> Optional[int]:
        return self.result.memory_used


class Judge:
    """Runs one submission against the test cases of its problem, stopping at the first failure."""

    def __init__(self, executor: SandboxExecutor, submission_id: int = 0):
        self.executor = executor
        self.submission_id = submission_id

    async def run(self, code: str, language: Union[str, Language], test_cases: Sequence[TestCase],
                  time_limit: float, memory_limit: int,
                  scope: Optional[ExecutionScope] = None) -> JudgeResult:
        total = len(test_cases)
        if not total:
            return JudgeResult(ExecutionResult.system_error("No test cases available for this problem"),
                               score=0, passed=0, total=0, executed=0,
                               message="No test cases available for this problem")

        logger.info("[Judge #%s] Language: %s, %d test cases", self.submission_id, language, total)

        total_time: Optional[int] = None
        max_memory: Optional[int] = None
        passed = 0

        for idx, test_case in enumerate(test_cases, 1):
            logger.debug("[Judge #%s] Running test case %d/%d", self.submission_id, idx, total)
            result = await self._run_single_test(code, language, test_case, time_limit, memory_limit, scope)
            logger.debug("[Judge #%s] Test case %d: %s", self.submission_id, idx, result)

            if result.execution_time is not None:
                total_time = (total_time or 0) + result.execution_time
            if result.memory_used is not None:
                max_memory = max(max_memory or 0, result.memory_used)

            if not result.is_successful:
                logger.info("[Judge #%s] Test case %d failed: %s",
                            self.submission_id, idx, result.status.value)
                return JudgeResult(
                    replace(result, execution_time=total_time, memory_used=max_memory),
                    score=calculate_score(result.status, passed, total),
                    passed=passed,
                    total=total,
                    executed=idx,
                    failed_case=idx,
                    message=self._failure_message(result, idx, total),
                )
            passed += 1

        logger.info("[Judge #%s] All %d test cases passed", self.submission_id, total)
        return JudgeResult(
            ExecutionResult.success("All test cases passed", total_time, max_memory),
            score=calculate_score(JudgeStatus.ACCEPTED, passed, total),
            passed=passed,
            total=total,
            executed=total,
            message=f"All {total} test cases passed successfully",
        )

    async def _run_single_test(self, code: str, language: Union[str, Language], test_case: TestCase,
                               time_limit: float, memory_limit: int,
                               scope: Optional[ExecutionScope]) -> ExecutionResult:
        try:
            result = await self.executor.run(code, language, test_case.input,
                                             time_limit, memory_limit, scope=scope)
        except Exception as e:
            logger.exception("[Judge #%s] SYSTEM_ERROR while running test case", self.submission_id)
            return ExecutionResult.system_error(f"Error during test case execution: {e}")

        if not result.is_successful:
            return result

        # Keep the run's measurements on the comparison verdict
        verdict = evaluate(test_case.expected_output, result.output)
        return replace(verdict, execution_time=result.execution_time, memory_used=result.memory_used)

    @staticmethod
    def _failure_message(result: ExecutionResult, idx: int, total: int) -> str:
        detail = result.error_output
        if not detail or not detail.strip():
            detail = f"Execution failed - {result.status.words}"
        return f"Test case {idx}/{total}: {detail.strip()}"[:MAX_MESSAGE_LENGTH]
