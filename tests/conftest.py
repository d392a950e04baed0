from pathlib import Path

import pytest

MANIFEST = """[package]
name = "demo"
version = "0.1.0"
edition = "2021"

[dependencies]
helper = { path = "../helper" }
serde = "1"
"""


@pytest.fixture
def crate(tmp_path: Path) -> Path:
    """A small library crate: lib.rs, foo/mod.rs and foo/bar.rs."""
    root = tmp_path / "demo"
    (root / "src" / "foo").mkdir(parents=True)
    (root / "Cargo.toml").write_text(MANIFEST, encoding="utf-8")
    (root / "src" / "lib.rs").write_text("pub mod foo;\n", encoding="utf-8")
    (root / "src" / "foo" / "mod.rs").write_text("pub mod bar;\n", encoding="utf-8")
    (root / "src" / "foo" / "bar.rs").write_text(
        "#[derive(Debug)]\npub struct Bar;\n", encoding="utf-8"
    )
    return root.resolve()


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    root = tmp_path / "workspaces"
    root.mkdir()
    return root
