"""Markdown writers for vault reports."""

from ideabank.writers.report import (
    build_chapter_report,
    render_markdown,
    render_text,
    write_chapter_report,
)

__all__ = [
    "build_chapter_report",
    "render_markdown",
    "render_text",
    "write_chapter_report",
]
