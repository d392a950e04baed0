import json
from pathlib import Path

import pytest

from rust_macro_expand.core.errors import ResourceError
from rust_macro_expand.core.registry import InMemoryRegistry, JsonSettingsRegistry


def test_in_memory_removes_one_entry():
    reg = InMemoryRegistry(["/a/Cargo.toml"])
    reg.add("/b/Cargo.toml")
    reg.add("/b/Cargo.toml")
    assert reg.remove("/b/Cargo.toml") is True
    assert reg.paths() == ["/a/Cargo.toml", "/b/Cargo.toml"]
    assert reg.remove("/c/Cargo.toml") is False


def test_json_registry_creates_file(tmp_path: Path):
    f = tmp_path / ".vscode" / "settings.json"
    reg = JsonSettingsRegistry(f)
    reg.add("/tmp/x/Cargo.toml")
    data = json.loads(f.read_text(encoding="utf-8"))
    assert data == {"rust-analyzer.linkedProjects": ["/tmp/x/Cargo.toml"]}


def test_json_registry_keeps_other_settings(tmp_path: Path):
    f = tmp_path / "settings.json"
    f.write_text(
        json.dumps(
            {
                "editor.tabSize": 4,
                "rust-analyzer.linkedProjects": ["/work/Cargo.toml"],
            }
        ),
        encoding="utf-8",
    )
    reg = JsonSettingsRegistry(f)
    reg.add("/tmp/x/Cargo.toml")
    assert reg.paths() == ["/work/Cargo.toml", "/tmp/x/Cargo.toml"]

    assert reg.remove("/tmp/x/Cargo.toml") is True
    data = json.loads(f.read_text(encoding="utf-8"))
    assert data["editor.tabSize"] == 4
    assert data["rust-analyzer.linkedProjects"] == ["/work/Cargo.toml"]


def test_json_registry_remove_unknown_leaves_file(tmp_path: Path):
    f = tmp_path / "settings.json"
    f.write_text('{"rust-analyzer.linkedProjects": ["/work/Cargo.toml"]}', encoding="utf-8")
    before = f.read_text(encoding="utf-8")
    assert JsonSettingsRegistry(f).remove("/tmp/other/Cargo.toml") is False
    assert f.read_text(encoding="utf-8") == before


def test_json_registry_invalid_file(tmp_path: Path):
    f = tmp_path / "settings.json"
    f.write_text("{ not json", encoding="utf-8")
    with pytest.raises(ResourceError) as ei:
        JsonSettingsRegistry(f).add("/tmp/x/Cargo.toml")
    assert ei.value.code == "E_REGISTRY_READ"
