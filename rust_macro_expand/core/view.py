from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import ContextManager, Iterator, Optional, Protocol

from rich.console import Console
from rich.status import Status


class ArtifactView(Protocol):
    """Where generated artifacts are shown to the user."""

    async def show(self, path: Path, *, focus: bool) -> None: ...

    async def close(self, path: Path) -> None: ...

    def notify(self, message: str) -> None: ...

    def busy(self, title: str) -> ContextManager[object]: ...


class NullView:
    """Headless view: records what is open, shows nothing."""

    def __init__(self) -> None:
        self.open: set[Path] = set()

    async def show(self, path: Path, *, focus: bool) -> None:
        self.open.add(path)

    async def close(self, path: Path) -> None:
        self.open.discard(path)

    def notify(self, message: str) -> None:
        return

    def busy(self, title: str) -> ContextManager[object]:
        return contextlib.nullcontext()


class ConsoleView:
    """Prints artifacts to a rich console.

    ``focus=False`` refreshes an artifact that is already on screen without
    announcing it as newly opened.
    """

    def __init__(self, console: Console | None = None, err_console: Console | None = None) -> None:
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.open: set[Path] = set()
        self._status: Optional[Status] = None
        self._busy_depth = 0

    async def show(self, path: Path, *, focus: bool) -> None:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        title = str(path) if focus or path not in self.open else f"{path} (updated)"
        self.open.add(path)
        self.console.rule(title)
        self.console.print(text, markup=False, highlight=False, soft_wrap=True)

    async def close(self, path: Path) -> None:
        if path in self.open:
            self.open.discard(path)
            self.err_console.print(f"closed {path}", style="dim")

    def notify(self, message: str) -> None:
        self.err_console.print(message, style="yellow")

    @contextlib.contextmanager
    def busy(self, title: str) -> Iterator[None]:
        # rich allows one live display at a time; overlapping renders share it.
        if self._busy_depth == 0:
            self._status = self.err_console.status(title)
            self._status.start()
        self._busy_depth += 1
        try:
            yield
        finally:
            self._busy_depth -= 1
            if self._busy_depth == 0 and self._status is not None:
                self._status.stop()
                self._status = None
