from __future__ import annotations

import logging
from pathlib import Path

from rust_macro_expand.core.discovery import MANIFEST_NAME
from rust_macro_expand.core.errors import ResourceError
from rust_macro_expand.core.manifest import copy_manifest
from rust_macro_expand.core.workspace import EphemeralWorkspace

logger = logging.getLogger(__name__)


def mirrored_location(source_path: Path, crate_dir: Path) -> Path:
    """Where the source file sits inside the workspace: src/<dirs under src>/<name>."""
    src_root = crate_dir / "src"
    try:
        rel = source_path.relative_to(src_root)
    except ValueError:
        rel = Path(source_path.name)
    return Path("src") / rel


class SessionHandle:
    """One tracked document: its crate, its expand command and its workspace.

    The handle owns the workspace; ``dispose`` removes it.
    """

    def __init__(
        self,
        crate_dir: Path,
        command: str,
        source_path: Path,
        workspace: EphemeralWorkspace,
        expanded_path: Path,
    ) -> None:
        self.crate_dir = crate_dir
        self.command = command
        self.source_path = source_path
        self.workspace = workspace
        self.expanded_path = expanded_path

    @classmethod
    def create(
        cls,
        crate_dir: str | Path,
        command: str,
        source_path: str | Path,
        *,
        base_dir: str | Path | None = None,
    ) -> SessionHandle:
        crate = Path(crate_dir).resolve()
        source = Path(source_path).resolve()
        workspace = EphemeralWorkspace(source.name, base_dir=base_dir)
        try:
            rel = mirrored_location(source, crate)
            workspace.create_dir(rel.parent)
            expanded = workspace.create_file(rel, "")
            copy_manifest(crate, workspace.path)
        except BaseException:
            try:
                workspace.dispose()
            except ResourceError:
                logger.exception("could not remove workspace %s", workspace.path)
            raise
        return cls(crate, command, source, workspace, expanded)

    @property
    def descriptor_path(self) -> Path:
        return self.workspace.path / MANIFEST_NAME

    @property
    def disposed(self) -> bool:
        return self.workspace.disposed

    def dispose(self) -> None:
        self.workspace.dispose()

    def __repr__(self) -> str:
        return f"SessionHandle(source={self.source_path}, workspace={self.workspace.path})"
