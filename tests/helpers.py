import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from rust_macro_expand.core.errors import ExecutionError
from rust_macro_expand.core.invoker import ToolOutput
from rust_macro_expand.core.view import NullView


def python_command(code: str) -> str:
    """Shell command running ``code`` with this interpreter. Extra args are ignored by -c."""
    return f'"{sys.executable}" -c "{code}"'


class FakeInvoker:
    def __init__(
        self,
        stdout: str = "fn expanded() {}\n",
        stderr: str = "",
        error: Optional[ExecutionError] = None,
        hold: bool = False,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.error = error
        self.calls: list[tuple[str, Path]] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        if not hold:
            self.release.set()

    async def run_captured(self, command, cwd, *, timeout=None):
        self.calls.append((command, Path(cwd)))
        self.started.set()
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return ToolOutput(stdout=self.stdout, stderr=self.stderr)


class RecordingView(NullView):
    def __init__(self) -> None:
        super().__init__()
        self.shown: list[tuple[Path, bool]] = []
        self.closed: list[Path] = []
        self.notes: list[str] = []

    async def show(self, path, *, focus):
        await super().show(path, focus=focus)
        self.shown.append((path, focus))

    async def close(self, path):
        await super().close(path)
        self.closed.append(path)

    def notify(self, message):
        self.notes.append(message)


class StepClock:
    """Each call is one minute later than the previous one."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current
