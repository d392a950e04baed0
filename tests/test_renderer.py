import asyncio
from datetime import datetime
from pathlib import Path

import pytest

import rust_macro_expand.core.renderer as renderer_mod
from helpers import FakeInvoker, RecordingView, StepClock
from rust_macro_expand.core.errors import ExecutionError
from rust_macro_expand.core.renderer import ArtifactRenderer, compose_failure, compose_header
from rust_macro_expand.core.session import SessionHandle
from rust_macro_expand.core.settings import Settings

WHEN = datetime(2024, 5, 1, 12, 0, 0)
STAMP = f"// Timestamp: {WHEN.strftime('%c')}"
COMMAND_LINE = "// Expand command: cargo expand --silent foo::bar"
PATH_LINE = "// Executed in: /work/demo/src/foo/bar.rs"


@pytest.mark.parametrize("timestamp", [False, True])
@pytest.mark.parametrize("command", [False, True])
@pytest.mark.parametrize("path", [False, True])
def test_header_lines_follow_settings(timestamp: bool, command: bool, path: bool):
    settings = Settings(
        display_timestamp=timestamp,
        display_cargo_command=command,
        display_cargo_command_path=path,
    )
    header = compose_header(
        settings, "cargo expand --silent foo::bar", "/work/demo/src/foo/bar.rs", WHEN
    )

    expected = ["// Generated by rust-macro-expand"]
    if timestamp:
        expected.append(STAMP)
    if command:
        expected.append(COMMAND_LINE)
    if path:
        expected.append(PATH_LINE)
    assert header == "".join(line + "\r\n" for line in expected)


def test_failure_block_neutralises_comment_end():
    err = ExecutionError(
        code="E_EXEC_FAILED",
        message="command exited with status 101",
        exit_code=101,
        stderr="error: bad */ token",
    )
    block = compose_failure(err)
    assert block.startswith("/*\r\nExecuting command failed!\r\n")
    assert block.endswith("*/\r\n")
    assert block.count("*/") == 1
    assert "bad * / token" in block


def _session(crate: Path, workspace_root: Path) -> SessionHandle:
    return SessionHandle.create(
        crate,
        "cargo expand --silent foo::bar",
        crate / "src" / "foo" / "bar.rs",
        base_dir=workspace_root,
    )


def _read(path: Path) -> str:
    with path.open("r", encoding="utf-8", newline="") as f:
        return f.read()


def test_success_writes_header_blank_line_and_output(crate: Path, workspace_root: Path):
    session = _session(crate, workspace_root)
    view = RecordingView()
    invoker = FakeInvoker(stdout="mod bar {\n    struct Bar;\n}\n")
    renderer = ArtifactRenderer(view, invoker, clock=StepClock(WHEN))

    asyncio.run(renderer.render(session, Settings()))

    text = _read(session.expanded_path)
    assert text.startswith("// Generated by rust-macro-expand\r\n" + STAMP + "\r\n")
    assert "\r\n\r\nmod bar {\n    struct Bar;\n}\n" in text
    assert invoker.calls == [("cargo expand --silent foo::bar", crate)]
    assert view.shown == [(session.expanded_path, True)]
    session.dispose()


def test_tool_failure_is_rendered_not_raised(crate: Path, workspace_root: Path):
    session = _session(crate, workspace_root)
    view = RecordingView()
    err = ExecutionError(
        code="E_EXEC_FAILED",
        message="command exited with status 1",
        command=session.command,
        exit_code=1,
        stderr="error: macro not found",
    )
    renderer = ArtifactRenderer(view, FakeInvoker(error=err), clock=StepClock(WHEN))

    asyncio.run(renderer.render(session, Settings(display_timestamp=False)))

    text = _read(session.expanded_path)
    assert "/*\r\nExecuting command failed!\r\n" in text
    assert "error: macro not found" in text
    assert "Exit code: 1" in text
    assert text.rstrip().endswith("*/")
    assert view.shown == [(session.expanded_path, True)]
    session.dispose()


def test_artifact_written_once_per_render(crate: Path, workspace_root: Path, monkeypatch):
    session = _session(crate, workspace_root)
    writes: list[Path] = []
    original = renderer_mod._write

    def counting_write(path, text):
        writes.append(path)
        original(path, text)

    monkeypatch.setattr(renderer_mod, "_write", counting_write)
    err = ExecutionError(code="E_EXEC_SPAWN", message="could not start command")
    ok = ArtifactRenderer(RecordingView(), FakeInvoker())
    bad = ArtifactRenderer(RecordingView(), FakeInvoker(error=err))

    asyncio.run(ok.render(session, Settings()))
    asyncio.run(bad.render(session, Settings()))
    assert writes == [session.expanded_path, session.expanded_path]
    session.dispose()


def test_warnings_displayed_and_notified(crate: Path, workspace_root: Path):
    session = _session(crate, workspace_root)
    view = RecordingView()
    invoker = FakeInvoker(stdout="fn f() {}\n", stderr="warning: unused import")
    renderer = ArtifactRenderer(view, invoker)

    settings = Settings(display_warnings=True, notify_warnings=True)
    asyncio.run(renderer.render(session, settings, focus=False))

    text = _read(session.expanded_path)
    assert "/*\r\nWarnings:\r\nwarning: unused import\r\n*/\r\nfn f() {}\n" in text
    assert len(view.notes) == 1
    assert "warning: unused import" in view.notes[0]
    assert view.shown == [(session.expanded_path, False)]
    session.dispose()


def test_warnings_hidden_when_disabled(crate: Path, workspace_root: Path):
    session = _session(crate, workspace_root)
    view = RecordingView()
    invoker = FakeInvoker(stdout="fn f() {}\n", stderr="warning: unused import")
    renderer = ArtifactRenderer(view, invoker)

    asyncio.run(renderer.render(session, Settings(display_warnings=False)))

    text = _read(session.expanded_path)
    assert "Warnings:" not in text
    assert "unused import" not in text
    assert text.endswith("\r\n\r\nfn f() {}\n")
    assert view.notes == []
    session.dispose()
