from __future__ import annotations
import re
from typing import Optional

from ..core.models import Language, Workspace
from .base import Adapter, compile_stage, run_stage


class CAdapter(Adapter):
    language = Language.C
    extension = "c"
    templates = (
        compile_stage("gcc", "{source}", "-o", "{artifact}", "-lm"),
        run_stage("{artifact}"),
    )


class CppAdapter(Adapter):
    language = Language.CPP
    extension = "cpp"
    templates = (
        compile_stage("g++", "{source}", "-o", "{artifact}"),
        run_stage("{artifact}"),
    )


class GoAdapter(Adapter):
    language = Language.GO
    extension = "go"
    templates = (
        compile_stage("go", "build", "-o", "{artifact}", "{source}"),
        run_stage("{artifact}"),
    )


class RustAdapter(Adapter):
    language = Language.RUST
    extension = "rs"
    templates = (
        compile_stage("rustc", "-o", "{artifact}", "{source}"),
        run_stage("{artifact}"),
    )


class HaskellAdapter(Adapter):
    language = Language.HASKELL
    extension = "hs"
    templates = (
        compile_stage("ghc", "-o", "{artifact}", "{source}"),
        run_stage("{artifact}"),
    )


class CrystalAdapter(Adapter):
    language = Language.CRYSTAL
    extension = "cr"
    templates = (
        compile_stage("crystal", "build", "{source}", "-o", "{artifact}"),
        run_stage("{artifact}"),
    )


class DAdapter(Adapter):
    language = Language.D
    extension = "d"
    templates = (
        compile_stage("dmd", "{source}", "-of={artifact}"),
        run_stage("{artifact}"),
    )


class DartAdapter(Adapter):
    language = Language.DART
    extension = "dart"
    templates = (
        compile_stage("dart", "compile", "exe", "{source}", "-o", "{artifact}"),
        run_stage("{artifact}"),
    )


class TypeScriptAdapter(Adapter):
    """tsc emits ``<stem>.js`` next to the source; node runs it."""
    language = Language.TYPESCRIPT
    extension = "ts"
    templates = (
        compile_stage("tsc", "--outDir", "{dir}", "{source}"),
        run_stage("node", "{dir}/{stem}.js"),
    )


class KotlinAdapter(Adapter):
    """Top-level ``fun main`` lands in the file facade class ``<Stem>Kt``."""
    language = Language.KOTLIN
    extension = "kt"
    templates = (
        compile_stage("kotlinc", "{source}", "-d", "{dir}"),
        run_stage("kotlin", "-cp", "{dir}", "{entry}"),
    )

    def entry(self, workspace: Workspace) -> str:
        stem = workspace.source_file.stem
        return stem[:1].upper() + stem[1:] + "Kt"


# comments, string and char literals: dropped before scanning for braces
_JAVA_NOISE = re.compile(
    r"//[^\n]*|/\*.*?\*/|\"(?:\\.|[^\"\\\n])*\"|'(?:\\.|[^'\\\n])*'",
    re.S,
)
_JAVA_TOKEN = re.compile(
    r"(?P<brace>[{}])"
    r"|\b(?:class|interface|enum|record)\s+(?P<type>[A-Za-z_$][\w$]*)"
    r"|(?P<main>\bstatic\s+void\s+main\s*\()"
)


def java_main_class(src: str) -> Optional[str]:
    """Top-level type whose body (at any depth) declares ``static void main``."""
    code = _JAVA_NOISE.sub(" ", src)
    depth = 0
    pending = None  # top-level type declared, body not opened yet
    current = None  # top-level type whose body we are in
    for m in _JAVA_TOKEN.finditer(code):
        if m.group("brace") == "{":
            if depth == 0 and pending:
                current, pending = pending, None
            depth += 1
        elif m.group("brace") == "}":
            depth = max(depth - 1, 0)
            if depth == 0:
                current = None
        elif m.group("type"):
            if depth == 0:
                pending = m.group("type")
        elif current:
            return current
    return None


class JavaAdapter(Adapter):
    """
    javac writes one .class per declared class into the workspace; the run
    stage launches the top-level class that declares ``main``.
    """
    language = Language.JAVA
    extension = "java"
    templates = (
        compile_stage("javac", "-d", "{dir}", "{source}"),
        run_stage("java", "-cp", "{dir}", "{entry}"),
    )

    def entry(self, workspace: Workspace) -> str:
        try:
            src = workspace.source_file.read_text(encoding="utf-8")
        except OSError:
            return super().entry(workspace)
        return java_main_class(src) or super().entry(workspace)
