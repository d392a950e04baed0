from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, ContextManager, Optional

from rust_macro_expand.core.errors import ExecutionError

logger = logging.getLogger(__name__)


BUSY_TITLE = "Expanding macros"

BusyIndicator = Callable[[str], ContextManager[object]]


@dataclass(frozen=True)
class ToolOutput:
    stdout: str
    stderr: str


def _build_env() -> dict[str, str]:
    """Environment for the expand tool.

    - Disables ANSI colours so the artifact holds plain text
    """
    env = dict(os.environ)
    env["CARGO_TERM_COLOR"] = "never"
    return env


def _no_busy(title: str) -> ContextManager[object]:
    return contextlib.nullcontext()


def _kill(proc: asyncio.subprocess.Process) -> None:
    # The tool runs in its own process group so cargo's children go too.
    with contextlib.suppress(ProcessLookupError):
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()


class ToolInvoker:
    """Runs the expand command out of process and awaits its completion.

    The busy indicator cannot be used to cancel; cancelling the awaiting task
    (or hitting ``timeout``) kills the child process.
    """

    def __init__(self, busy: Optional[BusyIndicator] = None, title: str = BUSY_TITLE) -> None:
        self._busy = busy or _no_busy
        self.title = title

    async def run(self, command: str, cwd: str | Path, *, timeout: float | None = None) -> str:
        out = await self.run_captured(command, cwd, timeout=timeout)
        return out.stdout

    async def run_captured(
        self, command: str, cwd: str | Path, *, timeout: float | None = None
    ) -> ToolOutput:
        logger.info("running %r in %s", command, cwd)
        with self._busy(self.title):
            try:
                proc = await asyncio.create_subprocess_shell(
                    command,
                    cwd=str(cwd),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=_build_env(),
                    start_new_session=(os.name == "posix"),
                )
            except OSError as e:
                raise ExecutionError(
                    code="E_EXEC_SPAWN",
                    message=f"could not start command: {e}",
                    file=str(cwd),
                    command=command,
                ) from e

            try:
                stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout)
            except asyncio.TimeoutError:
                _kill(proc)
                await proc.wait()
                raise ExecutionError(
                    code="E_EXEC_TIMEOUT",
                    message=f"command did not finish within {timeout:g}s",
                    file=str(cwd),
                    command=command,
                )
            except asyncio.CancelledError:
                _kill(proc)
                with contextlib.suppress(Exception):
                    await asyncio.shield(proc.wait())
                raise

        stdout = stdout_b.decode("utf-8", errors="replace")
        stderr = stderr_b.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            rc = proc.returncode
            if rc is not None and rc < 0:
                reason = f"terminated by signal {-rc}"
            else:
                reason = f"exited with status {rc}"
            logger.warning("command %r %s", command, reason)
            raise ExecutionError(
                code="E_EXEC_FAILED",
                message=f"command {reason}",
                file=str(cwd),
                command=command,
                exit_code=rc,
                stderr=stderr,
            )
        return ToolOutput(stdout=stdout, stderr=stderr)
