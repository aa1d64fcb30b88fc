from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from ..core.models import Language, Stage, StageKind, Workspace


@dataclass(frozen=True)
class StageTemplate:
    """
    A stage before it is bound to a workspace. ``command`` and ``args`` may
    carry the placeholders {source}, {stem}, {dir}, {artifact} and {entry}.
    """
    kind: StageKind
    command: str
    args: Tuple[str, ...] = ()
    timeout_s: float = 10.0


class Adapter:
    """Per-language strategy: turns a workspace into an ordered stage list."""

    language: Language
    extension: str
    templates: Tuple[StageTemplate, ...] = ()

    def __init__(
        self,
        *,
        timeouts: Optional[Dict[StageKind, float]] = None,
        commands: Optional[Dict[StageKind, str]] = None,
        stderr_fails: bool = True,
    ):
        timeouts = timeouts or {}
        commands = commands or {}
        self.stderr_fails = stderr_fails
        self.templates = tuple(
            replace(
                t,
                command=commands.get(t.kind) or t.command,
                timeout_s=timeouts.get(t.kind, t.timeout_s),
            )
            for t in self.templates
        )

    @property
    def kinds(self) -> List[StageKind]:
        return [t.kind for t in self.templates]

    def entry(self, workspace: Workspace) -> str:
        return workspace.source_file.stem

    def context(self, workspace: Workspace) -> Dict[str, str]:
        return {
            "source": str(workspace.source_file),
            "stem": workspace.source_file.stem,
            "dir": str(workspace.directory),
            "artifact": str(workspace.directory / workspace.id),
            "entry": self.entry(workspace),
        }

    def stages(self, workspace: Workspace) -> List[Stage]:
        ctx = self.context(workspace)
        return [
            Stage(
                kind=t.kind,
                command=t.command.format(**ctx),
                args=tuple(a.format(**ctx) for a in t.args),
                timeout_s=t.timeout_s,
                stderr_fails=self.stderr_fails,
            )
            for t in self.templates
        ]


def compile_stage(command: str, *args: str) -> StageTemplate:
    return StageTemplate(StageKind.COMPILE, command, args)


def run_stage(command: str, *args: str) -> StageTemplate:
    return StageTemplate(StageKind.RUN, command, args)
