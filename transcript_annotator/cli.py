"""
Command line interface for transcript-annotator.

Subcommands:
- transcript-annotator annotate: run one annotation session over a transcript
- transcript-annotator segment: print speaker turns without enrichment

INPUT is either a Deepgram pre-recorded response body or a JSON list of
word objects with ``text``, ``speaker`` and ``start``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from . import __version__
from .config import VALID_FINANCIAL_PROVIDERS, VALID_LLM_PROVIDERS, AnnotatorConfig
from .exceptions import AnnotatorError, MalformedInputError
from .pipeline import AnnotationPipeline
from .providers.llm import create_enrichment_providers, create_llm_from_config
from .turns import segment_words, words_from_deepgram

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="transcript-annotator",
        description="Segment and annotate speaker-tagged transcripts with LLM enrichment.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ============================================================================
    # annotate subcommand
    # ============================================================================
    p_annotate = subparsers.add_parser(
        "annotate",
        help="Segment a transcript into turns and run every enrichment on it.",
    )
    p_annotate.add_argument(
        "input",
        type=Path,
        help="Deepgram response JSON or a JSON list of word objects.",
    )
    p_annotate.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output JSON path (default: stdout).",
    )
    p_annotate.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON configuration file (overrides TRANSCRIPT_ANNOTATOR_* env vars).",
    )
    p_annotate.add_argument(
        "--provider",
        choices=list(VALID_LLM_PROVIDERS),
        default=None,
        help="LLM backend (default: openai).",
    )
    p_annotate.add_argument(
        "--model",
        default=None,
        help="LLM model name (default: backend default).",
    )
    p_annotate.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Per-call provider timeout in milliseconds (default: 30000).",
    )
    p_annotate.add_argument(
        "--financial-provider",
        choices=list(VALID_FINANCIAL_PROVIDERS),
        default=None,
        help="Attach market data to COMPANY/TICKER lookups (needs POLYGON_API_KEY).",
    )
    p_annotate.add_argument(
        "--market-context",
        type=Path,
        default=None,
        help="JSON market snapshot passed to the factual-error provider.",
    )
    p_annotate.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )

    # ============================================================================
    # segment subcommand
    # ============================================================================
    p_segment = subparsers.add_parser(
        "segment",
        help="Print speaker turns for a transcript without calling any provider.",
    )
    p_segment.add_argument("input", type=Path, help="Deepgram response JSON or word list.")
    p_segment.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output JSON path (default: stdout).",
    )
    p_segment.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")

    return parser


def load_words(path: Path) -> list[Any]:
    """
    Load word objects from a transcript file.

    Raises:
        AnnotatorError: If the file cannot be read.
        MalformedInputError: If the file is not JSON or holds neither a
            Deepgram response nor a word list.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise AnnotatorError(f"Cannot read input file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Invalid JSON in input file {path}: {e.msg}") from e

    if isinstance(data, dict):
        return words_from_deepgram(data)
    if isinstance(data, list):
        return data
    raise MalformedInputError(
        f"Input must be a Deepgram response object or a list of words, got {type(data).__name__}"
    )


def load_market_context(path: Path) -> dict[str, Any]:
    """
    Load a market snapshot for the error provider.

    Raises:
        AnnotatorError: If the file cannot be read.
        MalformedInputError: If the file is not a JSON object.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise AnnotatorError(f"Cannot read market context file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Invalid JSON in market context file {path}: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedInputError(
            f"Market context must be a JSON object, got {type(data).__name__}"
        )
    return data


def _write_output(result: dict[str, Any], output: Path | None) -> None:
    text = json.dumps(result, indent=2, ensure_ascii=False)
    if output is None:
        print(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    print(f"[done] Wrote {output}", file=sys.stderr)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _handle_annotate_command(args: argparse.Namespace) -> int:
    config = AnnotatorConfig.from_sources(
        config_file=args.config,
        llm_provider=args.provider,
        llm_model=args.model,
        provider_timeout_ms=args.timeout_ms,
        financial_provider=args.financial_provider,
    )
    market_context = None
    if args.market_context is not None:
        market_context = load_market_context(args.market_context)
    words = load_words(args.input)
    logger.info("Loaded %d words from %s", len(words), args.input)

    llm = create_llm_from_config(config)
    providers = create_enrichment_providers(config, llm=llm)
    pipeline = AnnotationPipeline(providers, config, market_context=market_context)
    result = asyncio.run(pipeline.run(words))
    result["metadata"] = {
        "annotatorVersion": __version__,
        "llmProvider": config.llm_provider,
        "llmModel": llm.model,
        "financialProvider": config.financial_provider,
        "source": str(args.input),
    }
    _write_output(result, args.output)
    return 0


def _handle_segment_command(args: argparse.Namespace) -> int:
    turns = segment_words(load_words(args.input))
    _write_output({"turns": [t.to_dict() for t in turns]}, args.output)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main CLI entry point.

    Returns:
        0 on success, 1 on AnnotatorError, 2 on unexpected error.
    """
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        _configure_logging(args.verbose)

        if args.command == "annotate":
            return _handle_annotate_command(args)
        elif args.command == "segment":
            return _handle_segment_command(args)
        else:
            parser.error(f"Unknown command: {args.command}")

        return 0

    except AnnotatorError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
