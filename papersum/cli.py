"""Command-line interface for papersum.

Entry point: ``papersum`` (configured in ``pyproject.toml``).

Usage:
    papersum paper.md [options]          # summarize a Markdown paper
    papersum paper.pdf [options]         # convert, then summarize
    papersum --test-connection [options] # check credentials and endpoint

Key options:
    --provider, --base-url, --model, --timeout, --retries,
    --max-steps, --temperature, --max-output-tokens, --language,
    --output-dir, --reparse, --extractor, --no-front-matter,
    --verbose/--no-verbose, --log-file.

The API key is read from ``LLM_API_KEY`` (a ``.env`` file in the working
directory is loaded first).  ``LLM_PROVIDER`` and ``LLM_MODEL`` provide
defaults for ``--provider`` and ``--model``.
"""

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from tqdm.auto import tqdm

from papersum.llm import PROVIDER_PRESETS, create_client
from papersum.log import setup_logging
from papersum.models import (
    Config,
    ConfigurationError,
    PipelineError,
    SummarizationProgress,
)
from papersum.pipeline import summarize_file

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    parsed = int(value)
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return parsed


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments, configure logging, and run the requested action."""
    load_dotenv()

    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.test_connection and args.source is None:
        parser.error("SOURCE is required unless --test-connection is given")

    if args.log_file:
        log_file = Path(args.log_file)
    else:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = Path("logs") / f"run_{ts}.log"
    setup_logging(verbose=args.verbose, log_file=log_file)

    config = Config(
        provider=args.provider,
        base_url=args.base_url,
        model=args.model,
        timeout_s=args.timeout,
        retries=args.retries,
        temperature=args.temperature,
        max_output_tokens=args.max_output_tokens,
        max_steps=args.max_steps,
        language=args.language,
        reparse=args.reparse,
        extractor=args.extractor,
        output_dir=Path(args.output_dir) if args.output_dir else None,
        front_matter=args.front_matter,
        verbose=args.verbose,
    )

    if args.test_connection:
        _run_connection_test(config)
    else:
        _run_single(Path(args.source), config)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _run_connection_test(config: Config) -> None:
    try:
        client = create_client(config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    logger.info("Testing connection to %s (model=%s)", client.base_url, client.model)
    result = client.test_connection()
    if not result.success:
        logger.error("Connection failed: %s", result.error)
        sys.exit(1)
    logger.info("Connection OK — model=%s  latency=%.0fms", result.model, result.latency_ms)


def _run_single(source_path: Path, config: Config) -> None:
    """Summarize one document, showing agent progress as a tqdm bar."""
    if not source_path.exists():
        logger.error("File not found: %s", source_path)
        sys.exit(1)

    logger.info("Summarizing: %s", source_path.name)
    with tqdm(total=100, desc=source_path.name, unit="%", leave=False) as bar:
        try:
            result = summarize_file(
                source_path, config, on_progress=_progress_updater(bar)
            )
        except PipelineError as exc:
            logger.error("%s", exc)
            sys.exit(1)

    if result.status == "aborted":
        logger.warning(
            "Step limit reached before the model finalized; the summary may be incomplete"
        )
    logger.info(
        "Done — %d sections summarized in %d steps: %s",
        result.sections_summarized,
        result.steps,
        result.summary_path,
    )


def _progress_updater(bar):
    def _update(progress: SummarizationProgress) -> None:
        target = int(progress.progress)
        if target > bar.n:
            bar.update(target - bar.n)
        if progress.current_section:
            bar.set_postfix_str(progress.current_section[:40])
        else:
            bar.set_postfix_str(progress.stage)

    return _update


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="papersum",
        description=(
            "Summarize a research paper section by section with an LLM agent. "
            "Accepts a Markdown file or a PDF (converted with docling)."
        ),
    )

    parser.add_argument(
        "source",
        metavar="SOURCE",
        nargs="?",
        help="Markdown (.md) or PDF file to summarize.",
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        default=False,
        help="Send a minimal request to verify credentials and endpoint, then exit.",
    )

    _default_provider = os.environ.get("LLM_PROVIDER", "deepseek")
    parser.add_argument(
        "--provider",
        choices=sorted(PROVIDER_PRESETS),
        default=_default_provider,
        help=f"Provider preset for base URL and default model (default: {_default_provider}).",
    )
    parser.add_argument(
        "--base-url",
        metavar="URL",
        default=None,
        help="OpenAI-compatible API base URL (overrides the preset).",
    )
    parser.add_argument(
        "--model",
        metavar="MODEL",
        default=os.environ.get("LLM_MODEL"),
        help="Model identifier (default: LLM_MODEL env var, else the preset's model).",
    )
    parser.add_argument(
        "--timeout",
        metavar="S",
        type=float,
        default=120.0,
        help="Timeout per chat request in seconds (default: 120).",
    )
    parser.add_argument(
        "--retries",
        metavar="N",
        type=_positive_int,
        default=3,
        help="Attempts per chat request before giving up (default: 3).",
    )
    parser.add_argument(
        "--max-steps",
        metavar="N",
        type=_positive_int,
        default=50,
        help="Maximum agent steps before the run stops with partial output (default: 50).",
    )
    parser.add_argument(
        "--temperature",
        metavar="T",
        type=float,
        default=0.3,
        help="Sampling temperature for agent turns (default: 0.3).",
    )
    parser.add_argument(
        "--max-output-tokens",
        metavar="N",
        type=_positive_int,
        default=4096,
        help="max_tokens sent with every chat request (default: 4096).",
    )
    parser.add_argument(
        "--language",
        metavar="LANG",
        default=None,
        help="Language to write summaries in (default: left to the model).",
    )
    parser.add_argument(
        "--output-dir",
        metavar="DIR",
        default=None,
        help="Directory for {stem}_summary.md (default: next to the source).",
    )
    parser.add_argument(
        "--reparse",
        action="store_true",
        default=False,
        help="Convert a PDF again even if a cached .md exists.",
    )
    parser.add_argument(
        "--extractor",
        choices=["auto", "docling", "pypdf"],
        default="auto",
        help="PDF extraction backend strategy (default: auto).",
    )
    parser.add_argument(
        "--no-front-matter",
        dest="front_matter",
        action="store_false",
        default=True,
        help="Do not prepend YAML metadata to the written summary.",
    )
    parser.add_argument(
        "--verbose",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable DEBUG-level logging (per-step agent traces).",
    )
    parser.add_argument(
        "--log-file",
        metavar="FILE",
        default=None,
        help="Write log output to FILE (default: logs/run_TIMESTAMP.log).",
    )

    return parser


if __name__ == "__main__":
    main()
