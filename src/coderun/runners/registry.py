from __future__ import annotations
from typing import Dict, Iterable, List, Type, Union

from ..core.errors import UnsupportedLanguage
from ..core.models import Language, Stage, StageKind, Workspace
from ..settings import Settings
from .base import Adapter
from .compiled import (
    CAdapter,
    CppAdapter,
    CrystalAdapter,
    DAdapter,
    DartAdapter,
    GoAdapter,
    HaskellAdapter,
    JavaAdapter,
    KotlinAdapter,
    RustAdapter,
    TypeScriptAdapter,
)
from .interpreted import (
    JavaScriptAdapter,
    JuliaAdapter,
    LuaAdapter,
    PerlAdapter,
    PythonAdapter,
    RAdapter,
    RubyAdapter,
)

BUILTIN_ADAPTERS: List[Type[Adapter]] = [
    CAdapter,
    CppAdapter,
    GoAdapter,
    JavaAdapter,
    RustAdapter,
    KotlinAdapter,
    HaskellAdapter,
    CrystalAdapter,
    DAdapter,
    DartAdapter,
    TypeScriptAdapter,
    JavaScriptAdapter,
    PythonAdapter,
    RubyAdapter,
    PerlAdapter,
    LuaAdapter,
    JuliaAdapter,
    RAdapter,
]


class AdapterRegistry:
    def __init__(self, adapters: Iterable[Adapter] = ()):
        self._adapters: Dict[Language, Adapter] = {}
        for a in adapters:
            self.register(a)

    def register(self, adapter: Adapter) -> None:
        self._adapters[adapter.language] = adapter

    def resolve(self, language: Union[Language, str]) -> Adapter:
        try:
            return self._adapters[Language(language)]
        except (KeyError, ValueError):
            tag = language.value if isinstance(language, Language) else str(language)
            raise UnsupportedLanguage(tag) from None

    def stages(self, language: Union[Language, str], workspace: Workspace) -> List[Stage]:
        return self.resolve(language).stages(workspace)

    def languages(self) -> List[Language]:
        return list(self._adapters)


def build_registry(settings: Settings) -> AdapterRegistry:
    """Built-in adapters with timeouts, commands and stderr policy from settings."""
    registry = AdapterRegistry()
    for cls in BUILTIN_ADAPTERS:
        tag = cls.language.value
        timeouts = {k: settings.timeout_for(tag, k.value) for k in StageKind}
        commands = {}
        for k in StageKind:
            cmd = settings.command_for(tag, k.value)
            if cmd:
                commands[k] = cmd
        registry.register(
            cls(
                timeouts=timeouts,
                commands=commands,
                stderr_fails=settings.stderr_fails_for(tag),
            )
        )
    return registry
