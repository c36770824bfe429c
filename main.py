# main.py
"""CLI entry point for the Fine Format dataset generator."""

from __future__ import annotations

import argparse
import sys

from config import settings

from models import DomainProfile
from orchestration.cli_runner import run_generate, run_server


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fine-format")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(handler=run_server)

    generate = commands.add_parser("generate", help="Generate a Q&A dataset")
    generate.add_argument(
        "--source", action="append", required=True, help="Text file to learn from"
    )
    generate.add_argument(
        "--gaps", default=None, help="JSON file of knowledge gaps (skips analysis)"
    )
    generate.add_argument("--target", type=int, default=settings.SYNTHETIC_QA_TARGET)
    generate.add_argument(
        "--profile",
        choices=[p.value for p in DomainProfile],
        default=settings.DEFAULT_DOMAIN_PROFILE,
    )
    generate.add_argument("--output", default=f"{settings.BASE_OUTPUT_DIR}/dataset.jsonl")
    generate.add_argument("--no-clean", action="store_true")
    generate.add_argument("--validate", action="store_true")
    generate.add_argument(
        "--augment", action="store_true", help="Ground the cleaned text with web search first"
    )
    generate.add_argument(
        "--direct-target",
        type=int,
        default=settings.QA_PAIR_COUNT_TARGET,
        help="Pairs drawn straight from the sources (0 disables)",
    )
    generate.set_defaults(handler=run_generate)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and dispatch."""
    args = build_parser().parse_args(argv)
    if getattr(args, "target", 1) <= 0:
        build_parser().error("--target must be positive")
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
