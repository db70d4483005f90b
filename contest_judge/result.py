from dataclasses import dataclass
from typing import Optional

from .models import JudgeStatus


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one sandbox run, or of a whole submission once aggregated."""
    status: JudgeStatus
    output: Optional[str] = None
    error_output: Optional[str] = None
    execution_time: Optional[int] = None  # ms
    memory_used: Optional[int] = None  # KB
    exit_code: Optional[int] = None

    @property
    def is_successful(self) -> bool:
        return self.status == JudgeStatus.ACCEPTED

    @classmethod
    def success(cls, output: str, execution_time: Optional[int] = None,
                memory_used: Optional[int] = None) -> "ExecutionResult":
        return cls(JudgeStatus.ACCEPTED, output, None, execution_time, memory_used, 0)

    @classmethod
    def wrong_answer(cls, actual_output: Optional[str], message: str) -> "ExecutionResult":
        return cls(JudgeStatus.WRONG_ANSWER, actual_output, message, exit_code=0)

    @classmethod
    def time_limit_exceeded(cls, execution_time: Optional[int]) -> "ExecutionResult":
        return cls(JudgeStatus.TIME_LIMIT_EXCEEDED, None, "Time limit exceeded",
                   execution_time, None, 124)

    @classmethod
    def memory_limit_exceeded(cls, memory_used: Optional[int],
                              execution_time: Optional[int] = None) -> "ExecutionResult":
        return cls(JudgeStatus.MEMORY_LIMIT_EXCEEDED, None, "Memory limit exceeded",
                   execution_time, memory_used, 137)

    @classmethod
    def runtime_error(cls, message: str, exit_code: int, execution_time: Optional[int] = None,
                      memory_used: Optional[int] = None) -> "ExecutionResult":
        return cls(JudgeStatus.RUNTIME_ERROR, None, message, execution_time, memory_used, exit_code)

    @classmethod
    def compilation_error(cls, message: str) -> "ExecutionResult":
        return cls(JudgeStatus.COMPILATION_ERROR, None, message, exit_code=1)

    @classmethod
    def system_error(cls, message: str) -> "ExecutionResult":
        return cls(JudgeStatus.SYSTEM_ERROR, None, message, exit_code=-1)

    def __str__(self) -> str:
        def clip(text):
            return None if text is None else text[:100]
        return (f"ExecutionResult(status={self.status.value}, output={clip(self.output)!r}, "
                f"error={clip(self.error_output)!r}, time={self.execution_time}, "
                f"memory={self.memory_used}, exit_code={self.exit_code})")
