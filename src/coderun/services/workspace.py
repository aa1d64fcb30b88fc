from __future__ import annotations
import shutil
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import structlog

from ..core.errors import WorkspaceCreationError
from ..core.models import Workspace
from ..core.utils import new_workspace_id

log = structlog.get_logger(__name__)


class WorkspaceManager:
    """
    One directory per submission under a fixed execution root:
      <root>/<id>/
        ├─ <id>.<ext>   (submitted source)
        └─ ...          (build artifacts written by compile stages)
    """

    def __init__(self, root: Path, *, release_retries: int = 5):
        # always absolute: stage commands run with cwd=<root>/<id>
        self.root = root if root.is_absolute() else root.resolve()
        self.release_retries = release_retries

    def allocate(self, source_code: str, extension: str) -> Workspace:
        ws_id = new_workspace_id()
        directory = self.root / ws_id
        source_file = directory / f"{ws_id}.{extension}"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            directory.mkdir(mode=0o700)
            source_file.write_text(source_code, encoding="utf-8")
        except OSError as e:
            shutil.rmtree(directory, ignore_errors=True)
            raise WorkspaceCreationError(f"could not create workspace {directory}: {e}") from e

        log.debug("workspace_allocated", workspace=ws_id, source=source_file.name)
        return Workspace(id=ws_id, directory=directory, source_file=source_file)

    def release(self, workspace: Workspace) -> None:
        """Remove the workspace tree. Releasing twice is a no-op."""
        for attempt in range(self.release_retries):
            if not workspace.directory.exists():
                if attempt == 0:
                    log.debug("workspace_already_released", workspace=workspace.id)
                return
            try:
                shutil.rmtree(workspace.directory)
            except FileNotFoundError:
                return
            except OSError as e:
                log.warning("workspace_release_retry", workspace=workspace.id, attempt=attempt, error=str(e))
                time.sleep(0.1)
                continue
            log.debug("workspace_released", workspace=workspace.id)
            return
        log.error("workspace_release_failed", workspace=workspace.id, directory=str(workspace.directory))

    @contextmanager
    def workspace(self, source_code: str, extension: str) -> Iterator[Workspace]:
        ws = self.allocate(source_code, extension)
        try:
            yield ws
        finally:
            self.release(ws)
