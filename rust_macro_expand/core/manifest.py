from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import TOMLKitError

from rust_macro_expand.core.discovery import MANIFEST_NAME
from rust_macro_expand.core.errors import ResourceError


def is_relative_path(value: str) -> bool:
    return not (os.path.isabs(value) or value.startswith("~"))


def _rewrite(container: Any, crate_dir: str) -> int:
    changed = 0
    if isinstance(container, dict):
        for key in list(container.keys()):
            value = container[key]
            if key == "path" and isinstance(value, str):
                if value and is_relative_path(value):
                    container[key] = os.path.normpath(os.path.join(crate_dir, str(value)))
                    changed += 1
            else:
                changed += _rewrite(value, crate_dir)
    elif isinstance(container, list):
        for item in container:
            changed += _rewrite(item, crate_dir)
    return changed


def rewrite_local_paths(text: str, crate_dir: str | Path) -> str:
    """Point every relative ``path = "..."`` in a manifest at the original crate.

    Covers dependency tables (inline or not), ``[lib]``, ``[[bin]]`` and any
    other table carrying a ``path`` key. Replacements are absolute, so a second
    pass finds nothing left to rewrite.
    """
    doc = tomlkit.parse(text)
    if _rewrite(doc, str(Path(crate_dir).resolve())) == 0:
        return text
    return tomlkit.dumps(doc)


def copy_manifest(crate_dir: str | Path, dest_dir: str | Path) -> Path:
    src = Path(crate_dir) / MANIFEST_NAME
    dest = Path(dest_dir) / MANIFEST_NAME
    try:
        text = src.read_text(encoding="utf-8")
    except OSError as e:
        raise ResourceError(code="E_MANIFEST_READ", message=str(e), file=str(src)) from e
    try:
        rewritten = rewrite_local_paths(text, crate_dir)
    except TOMLKitError as e:
        raise ResourceError(code="E_MANIFEST_PARSE", message=str(e), file=str(src)) from e
    try:
        dest.write_text(rewritten, encoding="utf-8")
    except OSError as e:
        raise ResourceError(code="E_WORKSPACE_WRITE", message=str(e), file=str(dest)) from e
    return dest
