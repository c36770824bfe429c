# orchestration/cli_runner.py
"""Command-line runners for dataset generation and the HTTP service."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import structlog
import uvicorn
from config import settings
from core.errors import FineFormatError, InvalidRequest
from core.llm_interface import llm_service
from utils.logging import setup_logging

from models import DomainProfile, KnowledgeGap
from orchestration.dataset_pipeline import DatasetPipeline, load_gaps, write_jsonl
from server.app import create_app
from ui.progress import RichProgressReporter

logger = structlog.get_logger(__name__)


def _read_sources(paths: list[str]) -> dict[str, str]:
    sources: dict[str, str] = {}
    for path in paths:
        file_path = Path(path)
        try:
            sources[file_path.name] = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InvalidRequest(f"Cannot read source {path}", details=str(exc)) from exc
    return sources


def _read_gaps(path: str | None) -> list[KnowledgeGap] | None:
    if not path:
        return None
    try:
        return load_gaps(path)
    except (OSError, ValueError) as exc:
        # ValueError covers both malformed JSON and pydantic validation failures.
        raise InvalidRequest(f"Cannot load gaps from {path}", details=str(exc)) from exc


async def _generate(args: argparse.Namespace) -> int:
    pipeline = DatasetPipeline()
    try:
        sources = _read_sources(args.source)
        gaps = _read_gaps(args.gaps)
        with RichProgressReporter() as progress:
            result = await pipeline.run(
                sources,
                domain_profile=DomainProfile(args.profile),
                target_count=args.target,
                gaps=gaps,
                clean=not args.no_clean,
                validate=args.validate,
                augment=args.augment,
                direct_count=args.direct_target,
                on_progress=progress,
            )
    finally:
        await llm_service.aclose()
    write_jsonl(result.records, args.output)
    if result.failed_gap_ids:
        logger.warning("Gaps without output: %s", ", ".join(result.failed_gap_ids))
    return 0


def run_generate(args: argparse.Namespace) -> int:
    """Build a dataset from local files and write it as JSONL."""
    setup_logging()
    try:
        return asyncio.run(_generate(args))
    except KeyboardInterrupt:
        logger.info("Generation interrupted by user; shutting down.")
        return 130
    except FineFormatError as exc:
        logger.error("Generation failed: %s", exc.message, details=exc.details)
        return 1


def run_server(args: argparse.Namespace) -> int:
    """Serve the chat proxy and preprocessing API with uvicorn."""
    setup_logging()
    uvicorn.run(
        create_app(),
        host=args.host or settings.SERVER_HOST,
        port=args.port or settings.SERVER_PORT,
        log_config=None,
    )
    return 0
