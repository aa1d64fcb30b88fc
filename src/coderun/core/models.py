from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Tuple


class Language(str, Enum):
    C = "c"
    CPP = "cpp"
    GO = "go"
    JAVA = "java"
    RUST = "rs"
    JAVASCRIPT = "js"
    TYPESCRIPT = "ts"
    PYTHON = "py"
    RUBY = "rb"
    PERL = "pl"
    LUA = "lua"
    KOTLIN = "kt"
    HASKELL = "hs"
    CRYSTAL = "cr"
    D = "d"
    DART = "dart"
    JULIA = "jl"
    R = "r"


class StageKind(str, Enum):
    COMPILE = "compile"
    RUN = "run"


class Status(str, Enum):
    SUCCESS = "Success"
    COMPILE_ERROR = "CompileError"
    RUNTIME_ERROR = "RuntimeError"
    TIMEOUT = "Timeout"
    UNSUPPORTED_LANGUAGE = "UnsupportedLanguage"
    INTERNAL_ERROR = "InternalError"


@dataclass(frozen=True)
class Submission:
    language: Language
    source_code: str
    stdin_lines: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Stage:
    kind: StageKind
    command: str
    args: Tuple[str, ...]
    timeout_s: float
    stderr_fails: bool = True  # any stderr output fails the stage


@dataclass(frozen=True)
class Workspace:
    id: str
    directory: Path   # <root>/<id>
    source_file: Path # <root>/<id>/<id>.<ext>


@dataclass(frozen=True)
class ExecutionOutcome:
    exit_code: int
    stdout: bytes
    stderr: bytes
    timed_out: bool = False
    duration_s: float = 0.0

    def failed(self, stderr_fails: bool = True) -> bool:
        if self.timed_out or self.exit_code != 0:
            return True
        return stderr_fails and len(self.stderr) > 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Result:
    status: Status
    output: str = ""
    error_message: str = ""
    timestamp: datetime = field(default_factory=_utcnow, compare=False)

    @property
    def success(self) -> bool:
        return self.status is Status.SUCCESS

    def to_response(self) -> Dict[str, Any]:
        """
        Shape consumed by the HTTP layer: ``output`` only on success,
        ``error`` only on failure.
        """
        body: Dict[str, Any] = {"success": self.success, "timestamp": self.timestamp}
        if self.success:
            body["output"] = self.output
        else:
            body["error"] = self.error_message
        return body
