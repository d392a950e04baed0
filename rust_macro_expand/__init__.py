"""Expand Rust macros for one source file into a disposable, editor-linked workspace."""

__version__ = "0.3.0"
