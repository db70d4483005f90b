import logging
from typing import Optional

from .config import MAX_ERROR_SNIPPET
from .result import ExecutionResult

logger = logging.getLogger(__name__)


def normalize_output(output: Optional[str]) -> str:
    """Unify line endings, trim the whole text and trailing whitespace of every line."""
    if output is None:
        return ""
    text = output.replace("\r\n", "\n").replace("\r", "\n").strip()
    return "\n".join(line.rstrip() for line in text.split("\n"))


def evaluate(expected_output: Optional[str], actual_output: Optional[str]) -> ExecutionResult:
    """Compare program output with the expected output of a test case.

    Only whitespace is normalized; there is no numeric tolerance and no
    order-insensitive comparison.
    """
    if not expected_output and not actual_output:
        return ExecutionResult.success(actual_output or "")

    if expected_output is None or actual_output is None:
        logger.debug("Output mismatch: expected=%r, actual=%r", expected_output, actual_output)
        return ExecutionResult.wrong_answer(actual_output, "Output mismatch")

    expected = normalize_output(expected_output)
    actual = normalize_output(actual_output)
    if expected == actual:
        return ExecutionResult.success(actual_output)

    logger.debug("Output mismatch: expected=%r, actual=%r", expected, actual)
    half = MAX_ERROR_SNIPPET // 2
    return ExecutionResult.wrong_answer(
        actual_output, f"Expected: {expected[:half]}, Got: {actual[:half]}")
