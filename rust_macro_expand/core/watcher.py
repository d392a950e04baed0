from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from rust_macro_expand.core.events import DocumentClosed, DocumentSaved, EventBus, SettingsChanged
from rust_macro_expand.core.settings import SettingsError, load_settings

logger = logging.getLogger(__name__)


def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return None


class DocumentWatcher:
    """Turns file changes on disk into document events.

    - modified source file  -> DocumentSaved
    - removed source file   -> DocumentClosed (and the file is no longer watched)
    - modified settings     -> SettingsChanged (invalid settings are logged and skipped)
    """

    def __init__(self, bus: EventBus, *, interval: float = 0.5) -> None:
        self.bus = bus
        self.interval = interval
        self._documents: dict[Path, Optional[float]] = {}
        self._settings_path: Optional[Path] = None
        self._settings_mtime: Optional[float] = None

    @property
    def documents(self) -> list[Path]:
        return list(self._documents)

    def track(self, path: str | Path) -> None:
        p = Path(path).resolve()
        self._documents[p] = _mtime(p)

    def untrack(self, path: str | Path) -> None:
        self._documents.pop(Path(path).resolve(), None)

    def watch_settings(self, path: str | Path) -> None:
        self._settings_path = Path(path).resolve()
        self._settings_mtime = _mtime(self._settings_path)

    def poll(self) -> None:
        for path, seen in list(self._documents.items()):
            current = _mtime(path)
            if current is None:
                logger.debug("%s disappeared", path)
                self.untrack(path)
                self.bus.publish(DocumentClosed(path))
            elif current != seen:
                self._documents[path] = current
                self.bus.publish(DocumentSaved(path))

        if self._settings_path is not None:
            current = _mtime(self._settings_path)
            if current is not None and current != self._settings_mtime:
                self._settings_mtime = current
                try:
                    settings = load_settings(self._settings_path)
                except (SettingsError, OSError) as e:
                    logger.error("ignoring settings change in %s: %s", self._settings_path, e)
                else:
                    logger.info("settings reloaded from %s", self._settings_path)
                    self.bus.publish(SettingsChanged(settings))

    async def run(self, stop: asyncio.Event) -> None:
        """Poll until ``stop`` is set or nothing is left to watch."""
        while not stop.is_set() and self._documents:
            self.poll()
            try:
                await asyncio.wait_for(stop.wait(), self.interval)
            except asyncio.TimeoutError:
                pass
