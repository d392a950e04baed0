from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExpandError(Exception):
    """Base error envelope. Prefer printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<expand>"
        return f"{loc}: {self.code}: {self.message}"


class DiscoveryError(ExpandError):
    """No crate root above the document, or no package name in its manifest."""


class ValidationError(ExpandError):
    """No document given, or the document is not a Rust source file."""


class ResourceError(ExpandError):
    """Workspace, manifest or registry I/O failed."""


@dataclass(frozen=True)
class ExecutionError(ExpandError):
    """The expand tool could not be spawned, exited non-zero, or ran past its deadline."""

    command: Optional[str] = None
    exit_code: Optional[int] = None
    stderr: str = ""

    def detail(self) -> str:
        lines = [self.message]
        if self.command:
            lines.append(f"Command: {self.command}")
        if self.exit_code is not None:
            if self.exit_code < 0:
                lines.append(f"Signal: {-self.exit_code}")
            else:
                lines.append(f"Exit code: {self.exit_code}")
        if self.stderr.strip():
            lines.append(self.stderr.strip())
        return "\n".join(lines)
