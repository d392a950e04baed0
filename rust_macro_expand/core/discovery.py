from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import tomlkit
from tomlkit.exceptions import TOMLKitError

from rust_macro_expand.core.errors import DiscoveryError, ValidationError


MANIFEST_NAME = "Cargo.toml"
SOURCE_SUFFIX = ".rs"

DEFAULT_TOOL = "cargo expand"
DEFAULT_FLAGS = "--silent"

# Files directly under src/ that stand for the crate itself.
CRATE_ROOT_MODULES = ("lib", "main")


@dataclass(frozen=True)
class DocumentInfo:
    source_path: Path
    crate_dir: Path
    crate_name: str


def validate_source(path: str | Path | None) -> Path:
    """Return the absolute path of a Rust source document or raise ValidationError."""
    if path is None or not str(path).strip():
        raise ValidationError(
            code="E_NO_DOCUMENT",
            message="cannot expand when no document is given",
        )

    p = Path(path).expanduser().resolve()
    if not p.is_file():
        raise ValidationError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )
    if p.suffix != SOURCE_SUFFIX:
        raise ValidationError(
            code="E_UNSUPPORTED_LANGUAGE",
            message=f"only Rust ({SOURCE_SUFFIX}) files can be expanded",
            file=str(p),
        )
    return p


def find_crate_dir(source_path: str | Path) -> Path:
    """Walk upward from the document's directory to the nearest Cargo.toml."""
    start = Path(source_path).resolve().parent
    for parent in [start] + list(start.parents):
        if (parent / MANIFEST_NAME).is_file():
            return parent
    raise DiscoveryError(
        code="E_NO_MANIFEST",
        message=f"no {MANIFEST_NAME} found above the document",
        file=str(source_path),
    )


def read_crate_name(crate_dir: str | Path) -> str:
    manifest = Path(crate_dir) / MANIFEST_NAME
    try:
        doc = tomlkit.parse(manifest.read_text(encoding="utf-8"))
    except OSError as e:
        raise DiscoveryError(code="E_MANIFEST_READ", message=str(e), file=str(manifest)) from e
    except TOMLKitError as e:
        raise DiscoveryError(code="E_MANIFEST_PARSE", message=str(e), file=str(manifest)) from e

    package = doc.get("package")
    name = package.get("name") if isinstance(package, dict) else None
    if not isinstance(name, str) or not name.strip():
        raise DiscoveryError(
            code="E_NO_CRATE_NAME",
            message="could not read the crate name",
            file=str(manifest),
            path="package.name",
        )
    return str(name)


def path_to_module(source_path: str | Path, crate_dir: str | Path) -> str:
    """Map a source file to the module path cargo-expand understands.

    crate/src/lib.rs        -> ""
    crate/src/foo/bar.rs    -> "foo::bar"
    crate/src/foo/mod.rs    -> "foo"
    """
    rel = Path(source_path).resolve().relative_to(Path(crate_dir).resolve())
    parts = list(rel.parts)
    if parts and parts[0] == "src":
        parts = parts[1:]
    if not parts:
        return ""

    if parts[-1] == "mod" + SOURCE_SUFFIX:
        parts = parts[:-1]
    elif parts[-1].endswith(SOURCE_SUFFIX):
        parts[-1] = parts[-1][: -len(SOURCE_SUFFIX)]

    if len(parts) == 1 and parts[0] in CRATE_ROOT_MODULES:
        return ""
    return "::".join(parts).strip()


def build_command(module: str, tool: str = DEFAULT_TOOL, flags: str = DEFAULT_FLAGS) -> str:
    # Crate root keeps the trailing space: "cargo expand --silent ".
    return f"{tool} {flags} {module}"


def resolve_document(path: str | Path | None) -> DocumentInfo:
    source = validate_source(path)
    crate_dir = find_crate_dir(source)
    return DocumentInfo(
        source_path=source,
        crate_dir=crate_dir,
        crate_name=read_crate_name(crate_dir),
    )
