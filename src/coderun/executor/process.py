from __future__ import annotations
import asyncio
import os
import shutil
import signal
import subprocess
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

import structlog

from ..core.errors import ProcessStartError, ToolchainNotFound
from ..core.models import ExecutionOutcome, Stage
from .rlimits import make_preexec

log = structlog.get_logger(__name__)


class ProcessRunner:
    """
    Runs one stage as a child process leading its own process group.

    stdin feeding, stdout draining and stderr draining run as concurrent
    tasks while the leader's exit is awaited under the stage deadline.
    Draining while the child runs keeps it from blocking on a full pipe.
    Once the leader exits the group is killed, so descendants that inherited
    the pipes cannot hold the drains open; the stage times out only when the
    leader itself is still running at the deadline.
    """

    def __init__(
        self,
        *,
        kill_grace_s: float = 2.0,
        limits: Optional[Mapping[str, int]] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.kill_grace_s = kill_grace_s
        self.preexec = make_preexec(limits or {})
        self.env = env

    async def run(
        self, stage: Stage, workdir: Path, stdin_lines: Sequence[str] = ()
    ) -> ExecutionOutcome:
        slog = log.bind(kind=stage.kind.value, command=stage.command)
        start = time.monotonic()
        proc = await self._spawn(stage, workdir)
        slog.debug("stage_started", pid=proc.pid, timeout_s=stage.timeout_s)

        out, err = bytearray(), bytearray()
        io = [
            asyncio.ensure_future(self._feed(proc.stdin, stdin_lines)),
            asyncio.ensure_future(self._drain(proc.stdout, out)),
            asyncio.ensure_future(self._drain(proc.stderr, err)),
        ]
        try:
            try:
                rc = await asyncio.wait_for(self._exited(proc), timeout=stage.timeout_s)
            except asyncio.TimeoutError:
                self._kill_group(proc)
                await self._reap(proc)
                duration = time.monotonic() - start
                slog.warning("stage_timeout", pid=proc.pid, timeout_s=stage.timeout_s)
                return ExecutionOutcome(
                    exit_code=proc.returncode if proc.returncode is not None else -signal.SIGKILL,
                    stdout=b"",
                    stderr=b"",
                    timed_out=True,
                    duration_s=duration,
                )

            # leader is gone: descendants still holding the pipes go with the group
            self._kill_group(proc)
            _, pending = await asyncio.wait(io, timeout=self.kill_grace_s)
            if pending:
                slog.warning("stage_drain_incomplete", pid=proc.pid, grace_s=self.kill_grace_s)
        finally:
            self._kill_group(proc)
            for task in io:
                task.cancel()
            await asyncio.gather(*io, return_exceptions=True)

        duration = time.monotonic() - start
        slog.info("stage_finished", exit_code=rc, duration_s=round(duration, 3),
                  stdout_bytes=len(out), stderr_bytes=len(err))
        return ExecutionOutcome(exit_code=rc, stdout=bytes(out), stderr=bytes(err), duration_s=duration)

    async def _spawn(self, stage: Stage, workdir: Path) -> asyncio.subprocess.Process:
        env = self.env if self.env is not None else dict(os.environ)
        if shutil.which(stage.command, path=env.get("PATH")) is None:
            raise ToolchainNotFound(stage.command)
        try:
            return await asyncio.create_subprocess_exec(
                stage.command,
                *stage.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(workdir),
                env=env,
                start_new_session=True,
                preexec_fn=self.preexec,
            )
        except FileNotFoundError as e:
            raise ToolchainNotFound(stage.command) from e
        except (OSError, subprocess.SubprocessError) as e:
            raise ProcessStartError(f"failed to start {stage.command}: {e}") from e

    @staticmethod
    async def _feed(stdin: asyncio.StreamWriter, lines: Sequence[str]) -> None:
        try:
            for line in lines:
                stdin.write(line.encode("utf-8") + b"\n")
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # child exited or closed its input before reading everything
            log.debug("stdin_closed_by_child")
        finally:
            stdin.close()

    @staticmethod
    async def _drain(stream: asyncio.StreamReader, buf: bytearray) -> None:
        # chunked so a drain cut short still leaves what it read in buf
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                return
            buf += chunk

    @staticmethod
    async def _exited(proc: asyncio.subprocess.Process) -> int:
        # returncode is set when the leader is reaped; Process.wait() can also
        # wait for pipe EOF, which a surviving descendant may hold back
        delay = 0.005
        while proc.returncode is None:
            await asyncio.sleep(delay)
            delay = min(delay * 2, 0.05)
        return proc.returncode

    @staticmethod
    def _kill_group(proc: asyncio.subprocess.Process) -> None:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass  # group already empty
        except PermissionError as e:
            log.warning("kill_group_denied", pid=proc.pid, error=str(e))

    async def _reap(self, proc: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(self._exited(proc), timeout=self.kill_grace_s)
        except asyncio.TimeoutError:
            log.error("stage_reap_timeout", pid=proc.pid, grace_s=self.kill_grace_s)
