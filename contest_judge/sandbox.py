import asyncio
import json
import logging
import shutil
import time
import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .config import (
    CONTAINER_RUNTIME, SANDBOX_IMAGE, SANDBOX_USER, SANDBOX_CPUS, SANDBOX_PIDS_LIMIT,
    SANDBOX_MOUNT, WORK_DIR, SUPERVISOR_GRACE_SECONDS, COMPILE_TIMEOUT,
    COMPILE_MEMORY_LIMIT, KILL_TIMEOUT, MAX_MESSAGE_LENGTH,
)
from .languages import Language, LanguageSpec, UnsupportedLanguageError, resolve_language
from .parser import COMPILATION_ERROR, parse_execution_output
from .result import ExecutionResult

logger = logging.getLogger(__name__)

INPUT_FILE = "input.txt"
META_FILE = "meta.json"
CONTAINER_PREFIX = "judge_"
EXECUTION_PREFIX = "exec_"


def new_execution_id() -> str:
    return EXECUTION_PREFIX + uuid.uuid4().hex[:12]


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ExecutionWorkspace:
    """Private directory holding the files of exactly one sandbox invocation."""

    def __init__(self, root: Path, execution_id: Optional[str] = None):
        self.execution_id = execution_id or new_execution_id()
        self.path = Path(root) / self.execution_id

    @property
    def container_name(self) -> str:
        return CONTAINER_PREFIX + self.execution_id

    @property
    def build_container_name(self) -> str:
        return f"{self.container_name}_build"

    def create(self) -> "ExecutionWorkspace":
        self.path.mkdir(parents=True)
        return self

    def write_source(self, spec: LanguageSpec, code: str) -> Path:
        source = self.path / spec.source_file
        source.write_text(code, encoding="utf-8")
        return source

    def write_input(self, data: Optional[str]) -> Path:
        input_file = self.path / INPUT_FILE
        input_file.write_text(data or "", encoding="utf-8")
        return input_file

    def read_metadata(self) -> Optional[dict]:
        """Structured result the sandbox may leave next to the source file."""
        meta_file = self.path / META_FILE
        if not meta_file.is_file():
            return None
        try:
            metadata = json.loads(meta_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Unreadable sandbox metadata in %s: %s", self.execution_id, e)
            return None
        if not isinstance(metadata, dict):
            logger.warning("Ignoring non-object sandbox metadata in %s", self.execution_id)
            return None

        output_file = metadata.get("output_file")
        if output_file:
            root = self.path.resolve()
            target = (root / str(output_file)).resolve()
            if root in target.parents and target.is_file():
                metadata["program_output"] = target.read_text(encoding="utf-8", errors="replace")
            else:
                logger.warning("Sandbox output file %r is outside workspace %s",
                               output_file, self.execution_id)
        return metadata

    def destroy(self):
        shutil.rmtree(self.path, ignore_errors=True)


class ExecutionScope:
    """Tracks the executions started on behalf of one submission."""

    def __init__(self, owner=None):
        self.owner = owner
        self.execution_ids: List[str] = []
        self.released = False

    def register(self, execution_id: str):
        self.execution_ids.append(execution_id)

    def __len__(self):
        return len(self.execution_ids)


class SandboxExecutor:
    """Runs untrusted programs in throw-away, network-less containers.

    The container enforces CPU time and memory ceilings itself; this class only
    supervises a secondary wall-clock timeout and guarantees that the workspace
    and the container are gone once a run returns.
    """

    def __init__(self, runtime: Optional[Sequence[str]] = None, image: str = SANDBOX_IMAGE,
                 work_dir: Path = WORK_DIR, grace_seconds: float = SUPERVISOR_GRACE_SECONDS,
                 compile_timeout: float = COMPILE_TIMEOUT, kill_timeout: float = KILL_TIMEOUT):
        self.runtime = list(runtime or CONTAINER_RUNTIME)
        self.image = image
        self.work_dir = Path(work_dir)
        self.grace_seconds = grace_seconds
        self.compile_timeout = compile_timeout
        self.kill_timeout = kill_timeout
        self.work_dir.mkdir(parents=True, exist_ok=True)

    async def run(self, source_code: str, language: Union[str, Language], stdin: Optional[str],
                  time_limit: float, memory_limit: int,
                  scope: Optional[ExecutionScope] = None) -> ExecutionResult:
        """Compile (if needed) and run one program against one input.

        Never raises; infrastructure failures come back as SYSTEM_ERROR.
        """
        workspace = ExecutionWorkspace(self.work_dir)
        if scope is not None:
            scope.register(workspace.execution_id)

        try:
            spec = resolve_language(language)
            workspace.create()
            workspace.write_source(spec, source_code)
            workspace.write_input(stdin)

            if spec.is_compiled:
                compile_result = await self._compile(spec, workspace, memory_limit)
                if compile_result is not None:
                    return compile_result

            return await self._execute(spec, workspace, time_limit, memory_limit)
        except UnsupportedLanguageError as e:
            return ExecutionResult.system_error(str(e))
        except Exception as e:
            logger.exception("Error running execution %s", workspace.execution_id)
            return ExecutionResult.system_error(f"Error during test case execution: {e}")
        finally:
            await self.cleanup(workspace.execution_id)

    def _container_args(self, name: str, workspace: ExecutionWorkspace, memory_limit: int) -> List[str]:
        return [
            *self.runtime, "run", "--rm",
            "--name", name,
            "-v", f"{workspace.path.resolve()}:{SANDBOX_MOUNT}",
            "-u", SANDBOX_USER,
            f"--memory={memory_limit}m",
            f"--memory-swap={memory_limit}m",
            f"--cpus={SANDBOX_CPUS}",
            f"--pids-limit={SANDBOX_PIDS_LIMIT}",
            "--network=none",
        ]

    def build_run_command(self, spec: LanguageSpec, workspace: ExecutionWorkspace,
                          time_limit: float, memory_limit: int) -> List[str]:
        return self._container_args(workspace.container_name, workspace, memory_limit) + [
            self.image,
            spec.run_script,
            f"{SANDBOX_MOUNT}/{spec.source_file}",
            f"{SANDBOX_MOUNT}/{INPUT_FILE}",
            f"{time_limit:g}",
            str(memory_limit),
        ]

    def build_compile_command(self, spec: LanguageSpec, workspace: ExecutionWorkspace,
                              memory_limit: int) -> List[str]:
        memory = max(memory_limit, COMPILE_MEMORY_LIMIT)
        return self._container_args(workspace.build_container_name, workspace, memory) + [
            "-w", SANDBOX_MOUNT,
            self.image,
            *spec.compile_command,
        ]

    async def _compile(self, spec: LanguageSpec, workspace: ExecutionWorkspace,
                       memory_limit: int) -> Optional[ExecutionResult]:
        cmd = self.build_compile_command(spec, workspace, memory_limit)
        logger.debug("Compiling %s: %s", workspace.execution_id, " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Sandbox launch failed for %s: %s", workspace.execution_id, e)
            return ExecutionResult.system_error(f"Sandbox launch failed: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.compile_timeout)
        except asyncio.TimeoutError:
            await self._terminate(process, workspace.build_container_name)
            return ExecutionResult.compilation_error("Compilation timeout")

        text = (stdout + stderr).decode("utf-8", errors="replace").strip()
        if process.returncode != 0 or COMPILATION_ERROR in text:
            return ExecutionResult.compilation_error(
                text[:MAX_MESSAGE_LENGTH] or f"Compiler exited with code {process.returncode}")
        return None

    async def _execute(self, spec: LanguageSpec, workspace: ExecutionWorkspace,
                       time_limit: float, memory_limit: int) -> ExecutionResult:
        cmd = self.build_run_command(spec, workspace, time_limit, memory_limit)
        logger.debug("Running %s: %s", workspace.execution_id, " ".join(cmd))

        start_time = time.perf_counter()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Sandbox launch failed for %s: %s", workspace.execution_id, e)
            return ExecutionResult.system_error(f"Sandbox launch failed: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=time_limit + self.grace_seconds
            )
        except asyncio.TimeoutError:
            elapsed_ms = _elapsed_ms(start_time)
            logger.warning("Execution %s still running after %.1fs, killing it",
                           workspace.execution_id, time_limit + self.grace_seconds)
            await self._terminate(process, workspace.container_name)
            return ExecutionResult.time_limit_exceeded(elapsed_ms)
        except asyncio.CancelledError:
            await self._terminate(process, workspace.container_name)
            raise

        elapsed_ms = _elapsed_ms(start_time)
        return parse_execution_output(
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            process.returncode,
            elapsed_ms,
            workspace.read_metadata(),
        )

    async def _terminate(self, process: asyncio.subprocess.Process, container_name: str):
        try:
            process.kill()
        except ProcessLookupError:
            pass  # already exited
        await process.wait()
        await self._remove_containers(container_name)

    async def _runtime_call(self, *args: str) -> Optional[bytes]:
        """Run a container runtime management command; None when it failed to run."""
        try:
            process = await asyncio.create_subprocess_exec(
                *self.runtime, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.debug("Container runtime unavailable for %s: %s", args[0], e)
            return None

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            logger.warning("Container runtime call %r timed out", " ".join(args))
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            return None
        return stdout

    async def _remove_containers(self, *names: str):
        await self._runtime_call("rm", "-f", *names)

    async def cleanup(self, execution_id: str):
        """Force-remove the containers of a run and delete its workspace. Idempotent."""
        workspace = ExecutionWorkspace(self.work_dir, execution_id)
        await self._remove_containers(workspace.container_name, workspace.build_container_name)
        workspace.destroy()
        if workspace.path.exists():
            logger.warning("Workspace %s could not be fully removed", execution_id)
        else:
            logger.debug("Cleaned up execution: %s", execution_id)

    async def release(self, scope: ExecutionScope):
        for execution_id in scope.execution_ids:
            await self.cleanup(execution_id)
        scope.released = True

    async def sweep_orphans(self) -> int:
        """Remove containers and workspaces left behind by a crashed worker.

        Only safe while no run is in flight, i.e. before the worker pool starts.
        """
        listing = await self._runtime_call(
            "ps", "-a", "--filter", f"name={CONTAINER_PREFIX}{EXECUTION_PREFIX}",
            "--format", "{{.Names}}",
        )
        names = []
        if listing is not None:
            names = [name for name in listing.decode("utf-8", errors="replace").split()
                     if name.startswith(CONTAINER_PREFIX + EXECUTION_PREFIX)]
        if names:
            await self._remove_containers(*names)

        workspaces = [path for path in self.work_dir.glob(EXECUTION_PREFIX + "*") if path.is_dir()]
        for path in workspaces:
            shutil.rmtree(path, ignore_errors=True)

        if names or workspaces:
            logger.info("Swept %d orphaned containers and %d workspaces", len(names), len(workspaces))
        return len(names) + len(workspaces)
