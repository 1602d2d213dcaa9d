# =============================================================================
# src/cli/analyze.py - CLI Analyze Command (PDFs + queries -> answers)
# =============================================================================
#
# Runs the document query pipeline from the command line, bypassing the HTTP
# server entirely.  Same components, same validation limits, same progress
# events as POST /api/v1/ingest.
#
# Typical usage:
#   python -m src.cli.analyze tender.pdf -q "Wann ist die Abgabefrist?"
#   python -m src.cli.analyze a.pdf b.pdf -q "Q1" -q "Q2" --json
#   python -m src.cli.analyze a.pdf -q "Q1" --json -o events.ndjson
#
# Output modes:
#   - Text (default): progress lines on stderr, then a report of answers per
#     file on stdout (or --output)
#   - JSON (--json): the NDJSON progress stream, one event per line, ending
#     with the completion or error event
#
# Logs always go to stderr so stdout carries only the report or stream.
# =============================================================================

"""Standalone CLI for running the tenderLens query pipeline.

Usage::

    python -m src.cli.analyze FILE.pdf [FILE.pdf ...] -q QUERY [-q QUERY ...]
        [--json] [--output PATH] [--quiet]

Exit code is 0 when the run completed, 1 on invalid input or a failed run.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import TextIO

from src.models.document import SourceDocument
from src.models.pipeline import ProgressEvent, ProgressEventType
from src.models.query import Answer, ProcessingResult, QueryType

_VERDICT_LABELS = {
    "true": "WAHR",
    "false": "FALSCH",
    "unknown": "UNBEKANNT",
}


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_answer(index: int, answer: Answer) -> list[str]:
    lines = [f"  {index}. [{answer.query_type.value}] {answer.query}"]
    if answer.query_type is QueryType.CONDITION and answer.verdict is not None:
        lines.append(f"     Verdict: {_VERDICT_LABELS[answer.verdict.value]}")
    for paragraph in answer.answer.splitlines():
        if paragraph.strip():
            lines.append(f"     {paragraph.rstrip()}")
    sources = ", ".join(answer.sources) if answer.sources else "none"
    lines.append(f"     Confidence: {answer.confidence:.0%}  |  Sources: {sources}")
    return lines


def _format_text_output(result: ProcessingResult) -> str:
    """Format the run result as a human-readable report, one section per file."""
    lines: list[str] = []
    sep = "=" * 60

    lines.append(sep)
    lines.append("  tenderLens - Query Report")
    lines.append(sep)

    for file_result in result.file_results:
        lines.append("")
        lines.append(f"FILE: {file_result.filename}")
        lines.append("-" * 40)
        for index, answer in enumerate(file_result.answers, start=1):
            lines.extend(_format_answer(index, answer))
            lines.append("")

    lines.append(sep)
    return "\n".join(lines)


def _progress_line(event: ProgressEvent) -> str:
    prefix = f"[{event.current_step}/{event.total_steps}]"
    if event.error:
        return f"{prefix} {event.message}: {event.error}"
    return f"{prefix} {event.message}"


# ---------------------------------------------------------------------------
# Input loading
# ---------------------------------------------------------------------------


def _load_documents(paths: list[Path], app_config) -> list[SourceDocument]:  # noqa: ANN001
    """Read PDF files; missing or non-PDF paths are reported and skipped."""
    from src.services.upload_validator import is_pdf_upload

    documents: list[SourceDocument] = []
    for path in paths:
        if not path.is_file():
            print(f"Warning: File not found, skipped: {path}", file=sys.stderr)
            continue
        if not is_pdf_upload(path.name, "application/pdf", app_config.pdf.validation):
            print(f"Warning: Not a PDF, skipped: {path}", file=sys.stderr)
            continue
        documents.append(SourceDocument(filename=path.name, content=path.read_bytes()))
    return documents


# ---------------------------------------------------------------------------
# Pipeline runner
# ---------------------------------------------------------------------------


async def _run(
    paths: list[Path],
    raw_queries: list[str],
    json_output: bool,
    output_file: str | None,
    quiet: bool,
) -> int:
    """Validate input, run the pipeline and write the report or stream.

    Returns 0 on success, 1 on validation error or failed run.
    """
    # Deferred import: src.main builds the FastAPI app at import time.
    from src.main import build_pipeline, settings
    from src.services.upload_validator import normalize_queries, validate_batch
    from src.utils.errors import DocumentValidationError, TenderLensError
    from src.utils.logging import configure_logging

    configure_logging(
        log_level="WARNING" if quiet else settings.log_level,
        json_output=json_output,
        stream=sys.stderr,
    )

    try:
        components = build_pipeline()
    except TenderLensError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    app_config = components["app_config"]
    if not quiet:
        configure_logging(
            log_level=app_config.logging.effective_level,
            json_output=json_output,
            stream=sys.stderr,
        )
    documents = _load_documents(paths, app_config)
    queries = normalize_queries(raw_queries)
    try:
        validate_batch(documents, queries, app_config.pdf.validation, app_config.limits)
    except DocumentValidationError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    pipeline = components["pipeline"]
    tracker = components["progress_tracker"]
    run_id = pipeline.new_run_id()
    failure: list[str] = []

    out: TextIO = open(output_file, "w", encoding="utf-8") if output_file else sys.stdout
    try:
        def _on_event(event: ProgressEvent) -> None:
            if event.kind is ProgressEventType.ERROR:
                failure.append(event.error or event.message)
            if json_output:
                out.write(event.to_ndjson())
                out.flush()
            elif not quiet:
                print(_progress_line(event), file=sys.stderr)

        tracker.register_listener(run_id, _on_event)
        print(
            f"Analyzing {len(documents)} file(s) with {len(queries)} query(ies)",
            file=sys.stderr,
        )
        start = time.monotonic()
        result = await pipeline.run(documents, queries, run_id=run_id)
        print(f"Done in {time.monotonic() - start:.1f}s", file=sys.stderr)

        if result is None:
            print(f"Error: {failure[0] if failure else 'processing failed'}", file=sys.stderr)
            return 1
        if not json_output:
            out.write(_format_text_output(result) + "\n")
    finally:
        tracker.forget(run_id)
        if output_file:
            out.close()
            print(f"Results written to: {output_file}", file=sys.stderr)

    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the analyze CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.analyze",
        description=(
            "Answer questions and check conditions against tender PDFs "
            "from the command line."
        ),
    )
    parser.add_argument(
        "files",
        nargs="+",
        type=str,
        help="PDF files to analyze.",
    )
    parser.add_argument(
        "--query", "-q",
        action="append",
        dest="queries",
        required=True,
        help="A question or condition; repeat for several.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print the NDJSON progress stream instead of a report.",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write results to a file instead of stdout.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and hide progress lines.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the analyze tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    paths = [Path(p).resolve() for p in args.files]
    exit_code = asyncio.run(
        _run(paths, args.queries, args.json_output, args.output, args.quiet)
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
