"""Turn the sandbox's raw output stream into an ExecutionResult.

The run scripts print a small envelope around the program's own output::

    SUCCESS
    Exit Code: 0
    Execution Time: 0.042s
    Memory: 10240KB
    === PROGRAM OUTPUT ===
    <program stdout/stderr>
    === RESOURCE USAGE ===
    Memory Limit: 256MB

Verdict and resource markers are only looked for in the envelope, never in the
program region. A ``meta.json`` written by the sandbox, when available, takes
precedence over the markers.
"""
import logging
import re
from typing import Optional, Tuple

from .config import MAX_ERROR_SNIPPET
from .models import JudgeStatus
from .result import ExecutionResult

logger = logging.getLogger(__name__)

EXECUTION_TIME_PATTERN = re.compile(r"Execution Time: ([0-9.]+)s")
MEMORY_USAGE_PATTERN = re.compile(r"Memory: ([0-9]+)KB")

OUTPUT_START = "=== PROGRAM OUTPUT ==="
OUTPUT_END = "=== RESOURCE USAGE ==="

COMPILATION_ERROR = "COMPILATION_ERROR"
SYNTAX_ERROR = "SYNTAX_ERROR"
TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
MEMORY_LIMIT_EXCEEDED = "MEMORY_LIMIT_EXCEEDED"
RUNTIME_ERROR = "RUNTIME_ERROR"
SUCCESS = "SUCCESS"

MARKERS = (COMPILATION_ERROR, SYNTAX_ERROR, TIME_LIMIT_EXCEEDED,
           MEMORY_LIMIT_EXCEEDED, RUNTIME_ERROR, SUCCESS)

EXIT_TIMEOUT = 124
EXIT_KILLED = 137


def split_output(output: str) -> Tuple[str, str]:
    """Return (envelope, program output) of a raw sandbox stream."""
    output = output or ""
    start = output.find(OUTPUT_START)
    if start == -1:
        return output, ""
    body_start = start + len(OUTPUT_START)
    end = output.find(OUTPUT_END, body_start)
    if end == -1:
        return output[:start], output[body_start:].strip()
    return output[:start] + output[end:], output[body_start:end].strip()


def parse_execution_time(text: str) -> Optional[int]:
    match = EXECUTION_TIME_PATTERN.search(text or "")
    if not match:
        return None
    try:
        return int(float(match.group(1)) * 1000)
    except ValueError:
        logger.warning("Failed to parse execution time: %s", match.group(1))
        return None


def parse_memory_usage(text: str) -> Optional[int]:
    match = MEMORY_USAGE_PATTERN.search(text or "")
    if not match:
        return None
    return int(match.group(1))


def extract_error_message(envelope: str, error_output: Optional[str],
                          program_output: str, exit_code: int) -> str:
    for marker in (COMPILATION_ERROR, SYNTAX_ERROR):
        index = envelope.find(marker)
        if index != -1:
            return envelope[index:index + MAX_ERROR_SNIPPET].strip()
    if error_output and error_output.strip():
        return error_output.strip()[:MAX_ERROR_SNIPPET]
    if program_output:
        return program_output[:MAX_ERROR_SNIPPET]
    return f"Exit code: {exit_code}"


def _metadata_int(metadata: dict, key: str) -> Optional[int]:
    value = metadata.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed %s in sandbox metadata: %r", key, value)
        return None


def _signals(envelope: str, metadata: dict) -> set:
    status = metadata.get("status")
    if status is not None:
        status = str(status).upper()
        if status in MARKERS:
            return {status}
        logger.warning("Unknown status in sandbox metadata: %r", status)
    return {marker for marker in MARKERS if marker in envelope}


def parse_execution_output(output: str, error_output: Optional[str], exit_code: int,
                           elapsed_ms: int, metadata: Optional[dict] = None) -> ExecutionResult:
    """Classify one sandbox run.

    First match wins: compilation/syntax error, time limit (marker or exit 124),
    memory limit (marker or exit 137), runtime error (marker or non-zero exit),
    success marker. Anything else is a system error.
    """
    metadata = metadata or {}
    envelope, program_output = split_output(output)
    if metadata.get("program_output") is not None:
        program_output = str(metadata["program_output"]).strip()

    meta_exit = _metadata_int(metadata, "exit_code")
    if meta_exit is not None:
        exit_code = meta_exit

    execution_time = _metadata_int(metadata, "time_ms")
    if execution_time is None:
        execution_time = parse_execution_time(envelope)
    if execution_time is None:
        execution_time = elapsed_ms

    memory_used = _metadata_int(metadata, "memory_kb")
    if memory_used is None:
        memory_used = parse_memory_usage(envelope)

    signals = _signals(envelope, metadata)

    if COMPILATION_ERROR in signals or SYNTAX_ERROR in signals:
        return ExecutionResult.compilation_error(
            extract_error_message(envelope, error_output, program_output, exit_code))
    if TIME_LIMIT_EXCEEDED in signals or exit_code == EXIT_TIMEOUT:
        return ExecutionResult.time_limit_exceeded(execution_time)
    if MEMORY_LIMIT_EXCEEDED in signals or exit_code == EXIT_KILLED:
        return ExecutionResult.memory_limit_exceeded(memory_used, execution_time)
    if RUNTIME_ERROR in signals or exit_code != 0:
        return ExecutionResult.runtime_error(
            extract_error_message(envelope, error_output, program_output, exit_code),
            exit_code, execution_time, memory_used)
    if SUCCESS in signals:
        return ExecutionResult.success(program_output, execution_time, memory_used)
    return ExecutionResult.system_error("Unknown execution result")
