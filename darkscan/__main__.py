"""
One-shot scan from the command line.

    python -m darkscan page.html
    python -m darkscan page.html --verifier null --mark

Prints the getResults payload as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from darkscan.categories import load_category_bank
from darkscan.config import settings
from darkscan.document import parse_html
from darkscan.engine import ScanEngine
from darkscan.highlight import DocumentHighlighter, NullHighlighter
from darkscan.logging import get_logger, setup_logging
from darkscan.verifier.factory import get_verifier

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="darkscan", description="Scan an HTML file for dark patterns.")
    parser.add_argument("file", type=Path, help="HTML file to scan")
    parser.add_argument("--config", default=settings.CATEGORY_CONFIG, help="Category config file")
    parser.add_argument(
        "--verifier", default=settings.VERIFIER, choices=["semantic", "inprocess", "null"],
        help="Semantic verifier to use",
    )
    parser.add_argument("--mark", action="store_true", help="Wrap detections in highlight spans")
    return parser


async def run(args: argparse.Namespace) -> dict:
    document = parse_html(args.file.read_text(encoding="utf-8"))
    bank = load_category_bank(args.config)
    verifier = get_verifier(args.verifier)
    engine = ScanEngine(
        document,
        bank,
        verifier=verifier,
        highlighter=DocumentHighlighter() if args.mark else NullHighlighter(),
    )
    try:
        await verifier.initialize()
        await engine.scan()
    finally:
        await verifier.close()
    return engine.get_results()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(stream=sys.stderr, fmt="text")
    if not args.file.is_file():
        logger.error("No such file: %s", args.file)
        return 2
    results = asyncio.run(run(args))
    json.dump(results, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
