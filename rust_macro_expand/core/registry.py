from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from rust_macro_expand.core.errors import ResourceError


LINKED_PROJECTS_KEY = "rust-analyzer.linkedProjects"


class ProjectRegistry(Protocol):
    """Shared, externally owned list of manifest paths (rust-analyzer linkedProjects)."""

    def paths(self) -> list[str]: ...

    def add(self, path: str) -> None: ...

    def remove(self, path: str) -> bool: ...


class InMemoryRegistry:
    def __init__(self, paths: list[str] | None = None) -> None:
        self._paths: list[str] = list(paths or [])

    def paths(self) -> list[str]:
        return list(self._paths)

    def add(self, path: str) -> None:
        self._paths.append(path)

    def remove(self, path: str) -> bool:
        try:
            self._paths.remove(path)
        except ValueError:
            return False
        return True


class JsonSettingsRegistry:
    """linkedProjects stored in an editor settings file (e.g. .vscode/settings.json).

    The file is shared with other writers, so it is re-read on every operation
    and keys other than ``key`` are written back untouched.
    """

    def __init__(self, file: str | Path, key: str = LINKED_PROJECTS_KEY) -> None:
        self.file = Path(file)
        self.key = key

    def _load(self) -> dict[str, Any]:
        if not self.file.exists():
            return {}
        try:
            raw = self.file.read_text(encoding="utf-8")
        except OSError as e:
            raise ResourceError(code="E_REGISTRY_READ", message=str(e), file=str(self.file)) from e
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ResourceError(code="E_REGISTRY_READ", message=str(e), file=str(self.file)) from e
        if not isinstance(data, dict):
            raise ResourceError(
                code="E_REGISTRY_READ",
                message="settings file must hold a JSON object",
                file=str(self.file),
            )
        return data

    def _store(self, data: dict[str, Any]) -> None:
        try:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            self.file.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise ResourceError(code="E_REGISTRY_WRITE", message=str(e), file=str(self.file)) from e

    def _linked(self, data: dict[str, Any]) -> list[str]:
        value = data.get(self.key) or []
        if not isinstance(value, list):
            raise ResourceError(
                code="E_REGISTRY_READ",
                message=f"'{self.key}' must be a list",
                file=str(self.file),
                path=self.key,
            )
        return [str(p) for p in value]

    def paths(self) -> list[str]:
        return self._linked(self._load())

    def add(self, path: str) -> None:
        data = self._load()
        data[self.key] = self._linked(data) + [path]
        self._store(data)

    def remove(self, path: str) -> bool:
        data = self._load()
        linked = self._linked(data)
        if path not in linked:
            return False
        linked.remove(path)
        data[self.key] = linked
        self._store(data)
        return True
