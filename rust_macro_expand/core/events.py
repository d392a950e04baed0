"""In-process event bus connecting the document host to the session store.

Handlers run on the event loop thread. Plain callables are invoked inline;
coroutine functions are scheduled as tasks so a slow expansion never blocks
delivery of the next notification.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Union

from rust_macro_expand.core.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class DocumentSaved(Event):
    path: Path


@dataclass(frozen=True)
class DocumentClosed(Event):
    path: Path


@dataclass(frozen=True)
class SettingsChanged(Event):
    settings: Settings


@dataclass(frozen=True)
class ArtifactChanged(Event):
    source_path: Path
    expanded_path: Path


@dataclass(frozen=True)
class ArtifactClosed(Event):
    source_path: Path
    expanded_path: Path


Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type[Event], list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task[Any]] = set()

    def subscribe(self, event_type: type[Event], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def unsubscribe(self, event_type: type[Event], handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for i, h in enumerate(handlers):
            if h == handler:
                handlers.pop(i)
                return

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every handler of its type.

        A handler that raises is logged; remaining handlers still run.
        """
        for handler in list(self._handlers.get(type(event), [])):
            try:
                result = handler(event)
            except Exception:
                logger.exception("handler %r failed for %s", handler, type(event).__name__)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("async handler failed", exc_info=exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled handler task (including ones they schedule) is done."""
        while True:
            pending = [t for t in self._pending if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
