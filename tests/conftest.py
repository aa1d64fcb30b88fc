import shutil
import sys
import time
from pathlib import Path
from typing import List, Tuple

import pytest

from coderun.core.models import Language, Stage
from coderun.executor.process import ProcessRunner
from coderun.runners.base import Adapter, compile_stage, run_stage
from coderun.services.engine import ExecutionEngine
from coderun.settings import Settings

PY = sys.executable


def requires(binary: str):
    return pytest.mark.skipif(shutil.which(binary) is None, reason=f"{binary} not installed")


linux_proc = pytest.mark.skipif(not Path("/proc/self/stat").exists(), reason="needs /proc")


class PyCompiledAdapter(Adapter):
    """Two-stage stand-in toolchain: byte-compile, then run."""
    language = Language.KOTLIN
    extension = "py"
    templates = (
        compile_stage(PY, "-m", "py_compile", "{source}"),
        run_stage(PY, "{source}"),
    )


class RecordingRunner(ProcessRunner):
    def __init__(self, **kw):
        super().__init__(**kw)
        self.calls: List[Tuple[Stage, Tuple[str, ...]]] = []

    async def run(self, stage, workdir, stdin_lines=()):
        self.calls.append((stage, tuple(stdin_lines)))
        return await super().run(stage, workdir, stdin_lines)


def pid_alive(pid: int) -> bool:
    try:
        with open(f"/proc/{pid}/stat") as f:
            state = f.read().rsplit(")", 1)[1].split()[0]
    except (FileNotFoundError, ProcessLookupError):
        return False
    return state != "Z"


def wait_dead(pid: int, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            return True
        time.sleep(0.05)
    return not pid_alive(pid)


@pytest.fixture
def exec_root(tmp_path) -> Path:
    return tmp_path / "execution_zone"


@pytest.fixture
def settings(exec_root) -> Settings:
    return Settings(
        execution_root=exec_root,
        compile_timeout_s=20,
        run_timeout_s=10,
        kill_grace_s=2,
        languages={"py": {"run_command": PY}},
    )


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner(kill_grace_s=2)


@pytest.fixture
def engine(settings, runner) -> ExecutionEngine:
    eng = ExecutionEngine.from_settings(settings)
    eng.runner = runner
    eng.registry.register(PyCompiledAdapter(stderr_fails=True))
    return eng


def leftovers(root: Path) -> list:
    return sorted(p.name for p in root.iterdir()) if root.exists() else []
