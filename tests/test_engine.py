import asyncio
import threading
import time

from coderun.core.models import Language, Status, StageKind, Submission
from coderun.executor.process import ProcessRunner
from coderun.runners.registry import AdapterRegistry
from coderun.services.engine import INTERNAL_ERROR_MESSAGE, ExecutionEngine
from coderun.services.workspace import WorkspaceManager
from coderun.settings import Settings
from conftest import PY, PyCompiledAdapter, leftovers


def _exec(engine, lang, code, stdin=()):
    return asyncio.run(engine.execute(Submission(language=lang, source_code=code, stdin_lines=tuple(stdin))))


def test_hello(engine, exec_root):
    res = _exec(engine, Language.PYTHON, 'print("Hello, World!")\n')
    assert res.status is Status.SUCCESS and res.success
    assert res.output == "Hello, World!\n"
    assert res.error_message == ""
    assert leftovers(exec_root) == []


def test_stdin_lines_are_fed(engine):
    res = _exec(engine, Language.PYTHON, "import sys\nfor l in sys.stdin: print(l, end='')\n", ["a", "b", "c"])
    assert res.output == "a\nb\nc\n"


def test_runtime_error_carries_stderr_only(engine, exec_root):
    res = _exec(engine, Language.PYTHON, 'print("visible")\nraise ValueError("boom")\n')
    assert res.status is Status.RUNTIME_ERROR and not res.success
    assert "ValueError: boom" in res.error_message
    assert "visible" not in res.error_message
    assert res.output == ""
    assert leftovers(exec_root) == []


def test_nonzero_exit_without_stderr(engine):
    res = _exec(engine, Language.PYTHON, 'print("out")\nimport sys\nsys.exit(2)\n')
    assert res.status is Status.RUNTIME_ERROR
    assert res.error_message == "Process exited with status 2"


def test_stderr_on_success_fails_by_default(engine):
    res = _exec(engine, Language.PYTHON, 'import sys\nprint("ok")\nsys.stderr.write("warn\\n")\n')
    assert res.status is Status.RUNTIME_ERROR
    assert res.error_message == "warn\n"


def test_stderr_policy_per_language(exec_root):
    s = Settings(execution_root=exec_root, languages={"py": {"run_command": PY, "stderr_fails": False}})
    engine = ExecutionEngine.from_settings(s)
    res = _exec(engine, Language.PYTHON, 'import sys\nprint("ok")\nsys.stderr.write("warn\\n")\n')
    assert res.status is Status.SUCCESS
    assert res.output == "ok\n"


def test_timeout(exec_root):
    s = Settings(execution_root=exec_root, languages={"py": {"run_command": PY, "run_timeout_s": 0.5}})
    engine = ExecutionEngine.from_settings(s)
    res = _exec(engine, Language.PYTHON, "while True:\n    pass\n")
    assert res.status is Status.TIMEOUT
    assert "0.5s" in res.error_message
    assert leftovers(exec_root) == []


def test_unsupported_language_creates_no_workspace(engine, runner, exec_root):
    engine.registry = AdapterRegistry([engine.registry.resolve(Language.PYTHON)])
    res = _exec(engine, Language.KOTLIN, "fun main() {}")
    assert res.status is Status.UNSUPPORTED_LANGUAGE
    assert "kt" in res.error_message
    assert runner.calls == []
    assert not exec_root.exists()


def test_compile_error_skips_run_stage(engine, runner, exec_root):
    res = _exec(engine, PyCompiledAdapter.language, "def broken(:\n    pass\n")
    assert res.status is Status.COMPILE_ERROR
    assert "SyntaxError" in res.error_message
    assert [c[0].kind for c in runner.calls] == [StageKind.COMPILE]
    assert leftovers(exec_root) == []


def test_compile_then_run(engine, runner):
    res = _exec(engine, PyCompiledAdapter.language, "print(input()[::-1])\n", ["abc"])
    assert res.status is Status.SUCCESS
    assert res.output == "cba\n"
    kinds = [(c[0].kind, c[1]) for c in runner.calls]
    assert kinds == [(StageKind.COMPILE, ()), (StageKind.RUN, ("abc",))]


def test_missing_toolchain_is_internal_error(exec_root):
    s = Settings(execution_root=exec_root, languages={"js": {"run_command": "no-such-node-9f2c"}})
    res = _exec(ExecutionEngine.from_settings(s), Language.JAVASCRIPT, "console.log(1)")
    assert res.status is Status.INTERNAL_ERROR
    assert res.error_message == INTERNAL_ERROR_MESSAGE
    assert leftovers(exec_root) == []


def test_workspace_failure_is_internal_error(tmp_path, runner):
    blocker = tmp_path / "zone"
    blocker.write_text("")
    engine = ExecutionEngine.from_settings(Settings(execution_root=blocker, languages={"py": {"run_command": PY}}))
    engine.runner = runner
    res = _exec(engine, Language.PYTHON, "print(1)")
    assert res.status is Status.INTERNAL_ERROR
    assert runner.calls == []


def test_unexpected_failure_still_releases(engine, exec_root):
    class Exploding(ProcessRunner):
        async def run(self, stage, workdir, stdin_lines=()):
            assert workdir.exists()
            raise RuntimeError("stream setup failed")

    engine.runner = Exploding()
    res = _exec(engine, Language.PYTHON, "print(1)")
    assert res.status is Status.INTERNAL_ERROR
    assert "stream setup" not in res.error_message
    assert leftovers(exec_root) == []


def test_concurrent_submissions_are_isolated(engine, exec_root):
    code = 'import time\nfor i in range(200):\n    print("{tag}", i)\n    time.sleep(0.001)\n'

    async def both():
        return await asyncio.gather(
            engine.execute(Submission(Language.PYTHON, code.format(tag="left"))),
            engine.execute(Submission(Language.PYTHON, code.format(tag="right"))),
        )

    left, right = asyncio.run(both())
    assert left.output == "".join(f"left {i}\n" for i in range(200))
    assert right.output == "".join(f"right {i}\n" for i in range(200))
    assert leftovers(exec_root) == []


def test_identical_submissions_give_identical_results(engine):
    code = "import sys\nprint(sum(int(x) for x in sys.stdin))\n"
    first = _exec(engine, Language.PYTHON, code, ["1", "2", "3"])
    second = _exec(engine, Language.PYTHON, code, ["1", "2", "3"])
    assert first == second
    assert first.output == "6\n"


def test_workspace_io_runs_off_the_event_loop(engine, exec_root):
    seen = {}

    class Tracking(WorkspaceManager):
        def allocate(self, source_code, extension):
            seen["allocate"] = threading.get_ident()
            return super().allocate(source_code, extension)

        def release(self, workspace):
            seen["release"] = threading.get_ident()
            super().release(workspace)

    engine.workspaces = Tracking(exec_root)
    loop_thread = threading.get_ident()
    res = _exec(engine, Language.PYTHON, "print(1)")
    assert res.status is Status.SUCCESS
    assert seen["allocate"] != loop_thread
    assert seen["release"] != loop_thread
    assert leftovers(exec_root) == []


def test_slow_release_does_not_stall_other_submissions(engine, exec_root):
    class SlowRelease(WorkspaceManager):
        def release(self, workspace):
            time.sleep(1.0)
            super().release(workspace)

    engine.workspaces = SlowRelease(exec_root)
    ticks = []

    async def ticker():
        end = time.monotonic() + 0.8
        while time.monotonic() < end:
            ticks.append(time.monotonic())
            await asyncio.sleep(0.05)

    async def both():
        return await asyncio.gather(
            engine.execute(Submission(Language.PYTHON, "print(1)")),
            ticker(),
        )

    res, _ = asyncio.run(both())
    assert res.status is Status.SUCCESS
    gaps = [b - a for a, b in zip(ticks, ticks[1:])]
    assert gaps and max(gaps) < 0.6
