from __future__ import annotations

import logging
from pathlib import Path

from rust_macro_expand.core.discovery import (
    DEFAULT_FLAGS,
    DEFAULT_TOOL,
    build_command,
    path_to_module,
    resolve_document,
)
from rust_macro_expand.core.session import SessionHandle
from rust_macro_expand.core.store import SessionStore

logger = logging.getLogger(__name__)


async def expand_document(
    store: SessionStore,
    path: str | Path | None,
    *,
    tool: str = DEFAULT_TOOL,
    flags: str = DEFAULT_FLAGS,
) -> SessionHandle:
    """Expand macros in ``path``: the module it defines, or the whole crate for lib.rs.

    ValidationError / DiscoveryError are raised before the store is touched.
    """
    info = resolve_document(path)
    module = path_to_module(info.source_path, info.crate_dir)
    logger.info("running expand on crate %s, module %r", info.crate_name, module or "<crate>")
    command = build_command(module, tool=tool, flags=flags)
    return await store.expand(info.crate_dir, command, info.source_path)
