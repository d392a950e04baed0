from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from rust_macro_expand.core.errors import ExecutionError, ResourceError
from rust_macro_expand.core.invoker import ToolInvoker, ToolOutput
from rust_macro_expand.core.session import SessionHandle
from rust_macro_expand.core.settings import Settings
from rust_macro_expand.core.view import ArtifactView

logger = logging.getLogger(__name__)


NEWLINE = "\r\n"
PROVENANCE = "Generated by rust-macro-expand"
FAILURE_TITLE = "Executing command failed!"
WARNINGS_TITLE = "Warnings:"


def compose_header(
    settings: Settings,
    command: str,
    source_path: str | Path,
    timestamp: datetime,
) -> str:
    """Header lines enabled by ``settings``, in fixed order, each ending in CRLF."""
    lines = [f"// {PROVENANCE}"]
    if settings.display_timestamp:
        lines.append(f"// Timestamp: {timestamp.strftime('%c')}")
    if settings.display_cargo_command:
        lines.append(f"// Expand command: {command}")
    if settings.display_cargo_command_path:
        lines.append(f"// Executed in: {source_path}")
    return "".join(line + NEWLINE for line in lines)


def _comment_block(title: str, detail: str) -> str:
    # A "*/" inside the detail would end the block early.
    body = detail.replace("*/", "* /").replace("\r\n", "\n").split("\n")
    return NEWLINE.join(["/*", title, *body, "*/"]) + NEWLINE


def compose_failure(error: ExecutionError) -> str:
    return _comment_block(FAILURE_TITLE, error.detail())


def compose_body(output: ToolOutput, settings: Settings) -> str:
    if settings.display_warnings and output.stderr.strip():
        return _comment_block(WARNINGS_TITLE, output.stderr.strip()) + output.stdout
    return output.stdout


class ArtifactRenderer:
    """Runs a session's command and writes what came back into its artifact.

    Tool failures become an inline comment block; ``render`` does not raise
    for them, so the artifact is written and shown on every call.
    """

    def __init__(
        self,
        view: ArtifactView,
        invoker: Optional[ToolInvoker] = None,
        clock: Callable[[], datetime] = datetime.now,
        timeout: float | None = None,
    ) -> None:
        self.view = view
        self.invoker = invoker or ToolInvoker(busy=view.busy)
        self.clock = clock
        self.timeout = timeout

    async def render(self, session: SessionHandle, settings: Settings, *, focus: bool = True) -> None:
        header = compose_header(settings, session.command, session.source_path, self.clock())
        try:
            output = await self.invoker.run_captured(
                session.command, session.crate_dir, timeout=self.timeout
            )
        except ExecutionError as e:
            logger.warning("expand failed for %s: %s", session.source_path, e)
            text = header + NEWLINE + compose_failure(e)
        else:
            text = header + NEWLINE + compose_body(output, settings)
            if settings.notify_warnings and output.stderr.strip():
                self.view.notify(
                    f"{session.source_path.name}: expand reported warnings\n{output.stderr.strip()}"
                )

        logger.debug("writing %s", session.expanded_path)
        await asyncio.to_thread(_write, session.expanded_path, text)
        await self.view.show(session.expanded_path, focus=focus)


def _write(path: Path, text: str) -> None:
    # newline="" keeps the CRLF header exactly as composed.
    try:
        with path.open("w", encoding="utf-8", newline="") as f:
            f.write(text)
    except OSError as e:
        raise ResourceError(code="E_WORKSPACE_WRITE", message=str(e), file=str(path)) from e
