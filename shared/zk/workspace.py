"""
Session Workspaces
==================

Allocates one scratch directory per proof so concurrent sessions never
share circuit inputs or outputs.

Version: 0.1.0
"""

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from shared.logging import get_logger


logger = get_logger(__name__)


class WorkspaceAllocator:
    """
    Hands out session-scoped working directories under a common root.

    Usage:
        allocator = WorkspaceAllocator()

        with allocator.allocate(session_id) as work_dir:
            ...  # removed on exit, whatever happened inside
    """

    PREFIX = "zkv-"

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root) if root else None
        self._active: set[Path] = set()

    @property
    def active(self) -> frozenset[Path]:
        """Directories currently handed out."""
        return frozenset(self._active)

    @contextmanager
    def allocate(self, session_id: str) -> Iterator[Path]:
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)

        path = Path(
            tempfile.mkdtemp(
                prefix=f"{self.PREFIX}{session_id}-",
                dir=self.root,
            )
        )
        self._active.add(path)
        logger.debug("zk_workspace_allocated", path=str(path))

        try:
            yield path
        finally:
            self._active.discard(path)
            shutil.rmtree(path, ignore_errors=True)
            logger.debug("zk_workspace_released", path=str(path))
