from __future__ import annotations
import resource
from typing import Callable, Mapping, Optional


def apply_rlimits(
    cpu_seconds: Optional[int] = None,
    memory_bytes: Optional[int] = None,
    nofile: Optional[int] = None,
) -> None:
    """
    Per-process ceilings: CPU time, address space, open descriptors.
    Runs in the child between fork and exec; an unset value keeps the
    inherited limit.
    """
    if cpu_seconds:
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
    if memory_bytes:
        resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
    if nofile:
        resource.setrlimit(resource.RLIMIT_NOFILE, (nofile, nofile))


def make_preexec(limits: Mapping[str, int]) -> Optional[Callable[[], None]]:
    cpu = limits.get("cpu_seconds")
    mem = limits.get("memory_bytes")
    nofile = limits.get("nofile")
    if not (cpu or mem or nofile):
        return None

    def _preexec():
        apply_rlimits(cpu, mem, nofile)

    return _preexec
