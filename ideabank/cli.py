"""Chapter report from the command line.

Usage:
    ideabank-report                     # text to stdout
    ideabank-report --format markdown --output vault/reports/chapters.md
    ideabank-report --sweep --format json

Run with --sweep to archive fully published ideas before reporting.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from ideabank.channels import load_channel_configs
from ideabank.config import settings
from ideabank.db.connection import close_db, get_session_factory, init_db
from ideabank.services.coordinator import IdeaCoordinator
from ideabank.writers.report import build_chapter_report, render_markdown, render_text

logger = logging.getLogger(__name__)

FORMATS = ("text", "markdown", "json")


async def run_report(
    fmt: str = "text",
    sweep: bool = False,
    coordinator: Optional[IdeaCoordinator] = None,
) -> str:
    """Build the report (optionally after an archive sweep) and render it."""
    coordinator = coordinator or IdeaCoordinator(get_session_factory(), load_channel_configs())
    if sweep:
        sealed = await coordinator.archive_sweep()
        print(f"Archive sweep sealed {len(sealed)} ideas", file=sys.stderr)

    report = await coordinator.read(build_chapter_report)
    if fmt == "json":
        return json.dumps(report, indent=2, ensure_ascii=False)
    if fmt == "markdown":
        return render_markdown(report)
    return render_text(report)


async def _main(args: argparse.Namespace) -> None:
    await init_db()
    try:
        output = await run_report(args.format, sweep=args.sweep)
    finally:
        await close_db()

    if args.output:
        path = Path(args.output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(output, encoding="utf-8")
        print(f"Report written to {path}", file=sys.stderr)
    else:
        print(output)


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(description="Idea Bank chapter report")
    parser.add_argument(
        "--format",
        choices=FORMATS,
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--sweep",
        action="store_true",
        help="Run the archive sweep before reporting",
    )
    parser.add_argument(
        "--output",
        help="Write the report to this file instead of stdout",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help=f"Override DATABASE_URL (default: {settings.DATABASE_URL.split('@')[-1]})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    if args.database_url:
        settings.DATABASE_URL = args.database_url

    asyncio.run(_main(args))


if __name__ == "__main__":
    main()
