from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- server ----
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # ---- workspaces ----
    execution_root: Path = Path("execution_zone")

    # ---- stage defaults ----
    compile_timeout_s: float = 10.0
    run_timeout_s: float = 10.0
    kill_grace_s: float = 2.0
    stderr_fails: bool = True

    # ---- merged from YAML ----
    # languages.<tag>: compile_command, run_command, compile_timeout_s, run_timeout_s, stderr_fails
    languages: Dict[str, Dict[str, Any]] = {}
    # cpu_seconds, memory_bytes, nofile
    limits: Dict[str, int] = {}

    model_config = SettingsConfigDict(env_prefix="CODERUN_", extra="ignore")

    def language(self, tag: str) -> Dict[str, Any]:
        return self.languages.get(tag) or {}

    def timeout_for(self, tag: str, kind: str) -> float:
        default = self.compile_timeout_s if kind == "compile" else self.run_timeout_s
        return float(self.language(tag).get(f"{kind}_timeout_s", default))

    def command_for(self, tag: str, kind: str) -> Optional[str]:
        return self.language(tag).get(f"{kind}_command")

    def stderr_fails_for(self, tag: str) -> bool:
        return bool(self.language(tag).get("stderr_fails", self.stderr_fails))


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    return data if isinstance(data, dict) else {}


def load_settings(conf: Optional[Path] = None) -> Settings:
    # 0) base from CODERUN_* env
    s = Settings()

    # 1) conf/coderun.yaml (or CODERUN_CONF)
    path = conf or Path(os.environ.get("CODERUN_CONF", "conf/coderun.yaml"))
    data = _read_yaml(path)

    defaults = data.get("defaults") or {}
    if not isinstance(defaults, dict):
        defaults = {}
    server = data.get("server") or {}
    if not isinstance(server, dict):
        server = {}
    languages = data.get("languages") or {}
    if not isinstance(languages, dict):
        languages = {}
    limits = data.get("limits") or {}
    if not isinstance(limits, dict):
        limits = {}

    # 2) merge, keeping the declared field types
    return s.model_copy(
        update={
            "host": str(server.get("host", s.host)),
            "port": int(server.get("port", s.port)),
            "log_level": str(server.get("log_level", s.log_level)).upper(),
            "cors_origins": list(server.get("cors_origins", s.cors_origins)),
            "execution_root": Path(str(data.get("execution_root", s.execution_root))),
            "compile_timeout_s": float(defaults.get("compile_timeout_s", s.compile_timeout_s)),
            "run_timeout_s": float(defaults.get("run_timeout_s", s.run_timeout_s)),
            "kill_grace_s": float(defaults.get("kill_grace_s", s.kill_grace_s)),
            "stderr_fails": bool(defaults.get("stderr_fails", s.stderr_fails)),
            "languages": {**s.languages, **{str(k): dict(v or {}) for k, v in languages.items()}},
            "limits": {**s.limits, **{str(k): int(v) for k, v in limits.items()}},
        }
    )
