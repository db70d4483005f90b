import os
import shlex
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.environ.get("JUDGE_DATA_DIR", BASE_DIR / "data"))
WORK_DIR = Path(os.environ.get("JUDGE_WORK_DIR", DATA_DIR / "executions"))

# Create directories
DATA_DIR.mkdir(parents=True, exist_ok=True)
WORK_DIR.mkdir(parents=True, exist_ok=True)

# Sandbox settings
CONTAINER_RUNTIME = shlex.split(os.environ.get("JUDGE_CONTAINER_RUNTIME", "docker"))
SANDBOX_IMAGE = os.environ.get("JUDGE_SANDBOX_IMAGE", "judge-executor:latest")
SANDBOX_USER = os.environ.get("JUDGE_SANDBOX_USER", "coderunner")
SANDBOX_CPUS = os.environ.get("JUDGE_SANDBOX_CPUS", "1.0")
SANDBOX_PIDS_LIMIT = int(os.environ.get("JUDGE_SANDBOX_PIDS_LIMIT", 64))
SANDBOX_MOUNT = "/tmp/execution"
SANDBOX_SCRIPT_DIR = os.environ.get("JUDGE_SANDBOX_SCRIPT_DIR", "/usr/local/bin/judge")

SUPERVISOR_GRACE_SECONDS = float(os.environ.get("JUDGE_SUPERVISOR_GRACE_SECONDS", 5))
COMPILE_TIMEOUT = float(os.environ.get("JUDGE_COMPILE_TIMEOUT", 30))
COMPILE_MEMORY_LIMIT = int(os.environ.get("JUDGE_COMPILE_MEMORY_LIMIT", 512))  # MB
KILL_TIMEOUT = float(os.environ.get("JUDGE_KILL_TIMEOUT", 5))

# Judge settings
MAX_CONCURRENT_JUDGES = int(os.environ.get("JUDGE_MAX_CONCURRENT", 4))
DEFAULT_TIME_LIMIT = 2  # seconds
DEFAULT_MEMORY_LIMIT = 256  # MB
MAX_MESSAGE_LENGTH = 2000
MAX_ERROR_SNIPPET = 500

LOG_LEVEL = os.environ.get("JUDGE_LOG_LEVEL", "INFO")

# Database
DATABASE_URL = os.environ.get("JUDGE_DATABASE_URL", f"sqlite+aiosqlite:///{DATA_DIR}/judge.db")
