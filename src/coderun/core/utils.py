from __future__ import annotations
import uuid


def new_workspace_id() -> str:
    # leading letter: JVM and D toolchains derive class/module names from the file name
    return "ws" + uuid.uuid4().hex


def decode_stream(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")
