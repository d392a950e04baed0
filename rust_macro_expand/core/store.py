"""Session store: one live session per tracked source document.

The store is created once per process and passed to whoever needs it. It
listens on the event bus for document saves, document closes and settings
changes, and publishes ArtifactChanged / ArtifactClosed in return.

Renders for one session are not queued. If a save arrives while an explicit
expand is still waiting on the tool, both run, and the artifact shows
whichever finished last.

A close that arrives while a document's session is still being created is
remembered; the session is torn down as soon as creation finishes.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from types import TracebackType
from typing import Any, Optional

from rust_macro_expand.core.errors import ResourceError
from rust_macro_expand.core.events import (
    ArtifactChanged,
    ArtifactClosed,
    DocumentClosed,
    DocumentSaved,
    EventBus,
    SettingsChanged,
)
from rust_macro_expand.core.registry import InMemoryRegistry, ProjectRegistry
from rust_macro_expand.core.renderer import ArtifactRenderer
from rust_macro_expand.core.session import SessionHandle
from rust_macro_expand.core.settings import DEFAULT_SETTINGS, Settings
from rust_macro_expand.core.view import ArtifactView, NullView

logger = logging.getLogger(__name__)


def session_key(path: str | Path) -> str:
    return str(Path(path).resolve())


def _discard(session: SessionHandle) -> None:
    try:
        session.dispose()
    except ResourceError:
        logger.exception("could not remove workspace %s", session.workspace.path)


class SessionStore:
    def __init__(
        self,
        *,
        bus: Optional[EventBus] = None,
        settings: Settings = DEFAULT_SETTINGS,
        registry: Optional[ProjectRegistry] = None,
        view: Optional[ArtifactView] = None,
        renderer: Optional[ArtifactRenderer] = None,
        workspace_root: str | Path | None = None,
    ) -> None:
        self.bus = bus or EventBus()
        self.registry: ProjectRegistry = registry if registry is not None else InMemoryRegistry()
        self.view: ArtifactView = view or (renderer.view if renderer else NullView())
        self.renderer = renderer or ArtifactRenderer(self.view)
        self.workspace_root = workspace_root
        self._settings = settings
        self._sessions: dict[str, SessionHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._renders: dict[str, set[asyncio.Task[None]]] = {}
        self._closed_while_starting: set[str] = set()

        self.bus.subscribe(DocumentSaved, self._on_saved)
        self.bus.subscribe(DocumentClosed, self._on_closed)
        self.bus.subscribe(SettingsChanged, self._on_settings_changed)

    # -- table ---------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def sessions(self) -> dict[str, SessionHandle]:
        return dict(self._sessions)

    def get(self, source_path: str | Path) -> Optional[SessionHandle]:
        return self._sessions.get(session_key(source_path))

    def __contains__(self, source_path: object) -> bool:
        if not isinstance(source_path, (str, Path)):
            return False
        return session_key(source_path) in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # -- operations ----------------------------------------------------------

    async def expand(
        self, crate_dir: str | Path, command: str, source_path: str | Path
    ) -> SessionHandle:
        """Find or create the session for ``source_path``, render it and show it.

        An existing session keeps the command it was created with.
        """
        key = session_key(source_path)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            session = self._sessions.get(key)
            if session is None:
                try:
                    session = await self._bootstrap(crate_dir, command, source_path)
                except BaseException:
                    self._closed_while_starting.discard(key)
                    raise
                if key in self._closed_while_starting:
                    self._closed_while_starting.discard(key)
                    self._locks.pop(key, None)
                    logger.info("%s was closed while its session was starting", key)
                    await self._dispose(key, session)
                    return session
                self._sessions[key] = session
                logger.info("tracking %s in %s", session.source_path, session.workspace.path)
            elif command != session.command:
                logger.debug("keeping original command %r for %s", session.command, key)

        await self._render(key, session, focus=True)
        return session

    async def _bootstrap(
        self, crate_dir: str | Path, command: str, source_path: str | Path
    ) -> SessionHandle:
        create = asyncio.ensure_future(
            asyncio.to_thread(
                SessionHandle.create,
                crate_dir,
                command,
                source_path,
                base_dir=self.workspace_root,
            )
        )
        try:
            session = await asyncio.shield(create)
        except asyncio.CancelledError:
            # The worker thread runs to completion anyway; remove what it built.
            await self._discard_orphan(create)
            raise
        try:
            self.registry.add(str(session.descriptor_path))
        except BaseException:
            _discard(session)
            raise
        return session

    async def _discard_orphan(self, create: asyncio.Future[SessionHandle]) -> None:
        try:
            orphan = await create
        except Exception:
            # SessionHandle.create already removed its own workspace.
            return
        _discard(orphan)

    async def _render(self, key: str, session: SessionHandle, *, focus: bool) -> None:
        settings = self._settings
        task = asyncio.ensure_future(self.renderer.render(session, settings, focus=focus))
        pending = self._renders.setdefault(key, set())
        pending.add(task)
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # Only the render itself was cancelled (document closed, or cancel()).
            logger.info("render of %s was cancelled", session.source_path)
            return
        finally:
            pending.discard(task)
        self.bus.publish(ArtifactChanged(session.source_path, session.expanded_path))

    def cancel(self, source_path: str | Path) -> int:
        """Cancel in-flight renders for ``source_path``; returns how many were cancelled."""
        pending = self._renders.get(session_key(source_path), set())
        cancelled = 0
        for task in list(pending):
            if not task.done():
                task.cancel()
                cancelled += 1
        return cancelled

    async def document_saved(self, source_path: str | Path) -> None:
        if not self._settings.expand_on_save:
            return
        key = session_key(source_path)
        session = self._sessions.get(key)
        if session is None:
            return
        await self._render(key, session, focus=False)

    async def document_closed(self, source_path: str | Path) -> None:
        key = session_key(source_path)
        session = self._sessions.pop(key, None)
        if session is None:
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                # expand() disposes the session once its bootstrap finishes.
                self._closed_while_starting.add(key)
            return
        self._locks.pop(key, None)
        await self._dispose(key, session)

    async def _dispose(self, key: str, session: SessionHandle) -> None:
        pending = self._renders.pop(key, set())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        try:
            self.registry.remove(str(session.descriptor_path))
            await self.view.close(session.expanded_path)
        finally:
            session.dispose()
        logger.info("stopped tracking %s", session.source_path)
        self.bus.publish(ArtifactClosed(session.source_path, session.expanded_path))

    def settings_changed(self, settings: Settings) -> None:
        # In-flight renders keep the snapshot they started with.
        self._settings = settings

    async def aclose(self) -> None:
        """Close every session. Failures are logged; the first one is raised at the end."""
        errors: list[ResourceError] = []
        for key in list(self._sessions):
            session = self._sessions.pop(key)
            self._locks.pop(key, None)
            try:
                await self._dispose(key, session)
            except ResourceError as e:
                logger.error("could not tear down %s: %s", session.source_path, e)
                errors.append(e)
        if errors:
            raise errors[0]

    async def __aenter__(self) -> SessionStore:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc is None:
            await self.aclose()
            return
        try:
            await self.aclose()
        except ResourceError:
            logger.exception("teardown failed while handling another error")

    # -- bus handlers ----------------------------------------------------------

    async def _on_saved(self, event: DocumentSaved) -> None:
        await self.document_saved(event.path)

    async def _on_closed(self, event: DocumentClosed) -> None:
        await self.document_closed(event.path)

    def _on_settings_changed(self, event: SettingsChanged) -> None:
        self.settings_changed(event.settings)

    def detach(self) -> None:
        """Stop listening on the bus."""
        handlers: list[tuple[Any, Any]] = [
            (DocumentSaved, self._on_saved),
            (DocumentClosed, self._on_closed),
            (SettingsChanged, self._on_settings_changed),
        ]
        for event_type, handler in handlers:
            self.bus.unsubscribe(event_type, handler)
