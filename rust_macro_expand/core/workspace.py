from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from types import TracebackType
from typing import Optional

from rust_macro_expand.core.errors import ResourceError

logger = logging.getLogger(__name__)


class EphemeralWorkspace:
    """A uniquely named temp directory that is removed exactly once.

    Nothing is ever written outside ``path``.
    """

    def __init__(
        self,
        name: str,
        prefix: str = "rust-macro-expand-",
        base_dir: str | Path | None = None,
    ) -> None:
        try:
            self._path = Path(
                tempfile.mkdtemp(
                    prefix=f"{prefix}{name}-",
                    dir=str(base_dir) if base_dir is not None else None,
                )
            )
        except OSError as e:
            raise ResourceError(code="E_WORKSPACE_CREATE", message=str(e), file=name) from e
        self._disposed = False
        logger.debug("created workspace %s", self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _resolve(self, relative: str | Path) -> Path:
        if self._disposed:
            raise ResourceError(
                code="E_WORKSPACE_DISPOSED",
                message="workspace was already removed",
                file=str(self._path),
            )
        target = (self._path / relative).resolve()
        if target != self._path.resolve() and self._path.resolve() not in target.parents:
            raise ResourceError(
                code="E_WORKSPACE_ESCAPE",
                message=f"refusing to write outside the workspace: {relative}",
                file=str(self._path),
            )
        return target

    def create_dir(self, relative: str | Path) -> Path:
        target = self._resolve(relative)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ResourceError(code="E_WORKSPACE_WRITE", message=str(e), file=str(target)) from e
        return target

    def create_file(self, relative: str | Path, content: str) -> Path:
        target = self._resolve(relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ResourceError(code="E_WORKSPACE_WRITE", message=str(e), file=str(target)) from e
        logger.debug("created %s", target)
        return target

    def dispose(self) -> None:
        if self._disposed:
            return
        # Marked first: a failed removal is never retried through this handle.
        self._disposed = True
        logger.debug("deleting workspace %s", self._path)
        try:
            shutil.rmtree(self._path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ResourceError(
                code="E_WORKSPACE_DELETE", message=str(e), file=str(self._path)
            ) from e

    def __enter__(self) -> EphemeralWorkspace:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc is None:
            self.dispose()
            return
        try:
            self.dispose()
        except ResourceError:
            logger.exception("could not remove workspace %s during teardown", self._path)
