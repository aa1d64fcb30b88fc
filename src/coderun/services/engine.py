from __future__ import annotations
import asyncio
from typing import List, Optional

import structlog

from ..core.errors import EngineError, UnsupportedLanguage
from ..core.models import (
    ExecutionOutcome,
    Result,
    Stage,
    StageKind,
    Status,
    Submission,
    Workspace,
)
from ..core.utils import decode_stream
from ..executor.process import ProcessRunner
from ..runners.registry import AdapterRegistry, build_registry
from ..settings import Settings
from .workspace import WorkspaceManager

log = structlog.get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error while executing submission"


class ExecutionEngine:
    """
    Per submission: resolve adapter -> allocate workspace -> run stages in
    order, stopping at the first failure -> release workspace -> Result.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        workspaces: WorkspaceManager,
        runner: Optional[ProcessRunner] = None,
    ):
        self.registry = registry
        self.workspaces = workspaces
        self.runner = runner or ProcessRunner()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutionEngine":
        return cls(
            registry=build_registry(settings),
            workspaces=WorkspaceManager(settings.execution_root),
            runner=ProcessRunner(kill_grace_s=settings.kill_grace_s, limits=settings.limits),
        )

    async def execute(self, submission: Submission) -> Result:
        slog = log.bind(language=getattr(submission.language, "value", submission.language))
        try:
            adapter = self.registry.resolve(submission.language)
        except UnsupportedLanguage as e:
            slog.info("submission_unsupported_language")
            return Result(status=Status.UNSUPPORTED_LANGUAGE, error_message=str(e))

        workspace: Optional[Workspace] = None
        try:
            workspace = await asyncio.to_thread(
                self.workspaces.allocate, submission.source_code, adapter.extension
            )
            slog = slog.bind(workspace=workspace.id)
            result = await self._run_stages(adapter.stages(workspace), workspace, submission)
        except EngineError as e:
            slog.error("submission_internal_error", error=str(e), exc_info=True)
            result = Result(status=Status.INTERNAL_ERROR, error_message=INTERNAL_ERROR_MESSAGE)
        except Exception:
            slog.exception("submission_internal_error")
            result = Result(status=Status.INTERNAL_ERROR, error_message=INTERNAL_ERROR_MESSAGE)
        finally:
            if workspace is not None:
                # rmtree and its retry backoff stay off the event loop
                await asyncio.to_thread(self.workspaces.release, workspace)

        slog.info("submission_finished", status=result.status.value)
        return result

    async def _run_stages(
        self, stages: List[Stage], workspace: Workspace, submission: Submission
    ) -> Result:
        last: Optional[ExecutionOutcome] = None
        for stage in stages:
            stdin = submission.stdin_lines if stage.kind is StageKind.RUN else ()
            outcome = await self.runner.run(stage, workspace.directory, stdin)
            if outcome.timed_out:
                return Result(
                    status=Status.TIMEOUT,
                    error_message=f"Execution timed out after {stage.timeout_s:g}s",
                )
            if outcome.failed(stage.stderr_fails):
                return self._stage_failure(stage, outcome)
            last = outcome

        return Result(status=Status.SUCCESS, output=decode_stream(last.stdout) if last else "")

    @staticmethod
    def _stage_failure(stage: Stage, outcome: ExecutionOutcome) -> Result:
        if stage.kind is StageKind.COMPILE:
            # compilers print diagnostics on either stream
            diagnostics = decode_stream(outcome.stdout + outcome.stderr)
            return Result(
                status=Status.COMPILE_ERROR,
                error_message=diagnostics or f"Compiler exited with status {outcome.exit_code}",
            )
        return Result(
            status=Status.RUNTIME_ERROR,
            error_message=decode_stream(outcome.stderr)
            or f"Process exited with status {outcome.exit_code}",
        )
