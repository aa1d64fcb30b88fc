from __future__ import annotations


class EngineError(Exception):
    """Base class for failures recovered at the submission boundary."""


class UnsupportedLanguage(EngineError):
    def __init__(self, language: str):
        super().__init__(f"Language not supported: {language}")
        self.language = language


class WorkspaceCreationError(EngineError):
    pass


class ToolchainNotFound(EngineError):
    def __init__(self, command: str):
        super().__init__(f"Failed to find the binary: {command}")
        self.command = command


class ProcessStartError(EngineError):
    pass
