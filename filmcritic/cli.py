from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .classifier import classify, user_message
from .decoder import decode, decode_final_report, decode_financials, decode_social_snippets
from .logging_utils import configure_logging, log_exception
from .resolver import ModelResolver, get_resolver

_LOGGER = logging.getLogger("filmcritic.cli")
_CONSOLE = Console()
_API_KEY_ENV = "GEMINI_API_KEY"
_DECODERS = {
    "analysis": decode,
    "financials": decode_financials,
    "social": decode_social_snippets,
    "report": decode_final_report,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filmcritic")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Find a working Gemini model for an API key.")
    resolve.add_argument("--api-key", type=str, default=None, help=f"Defaults to ${_API_KEY_ENV}.")

    sub.add_parser("models", help="Show the model catalog and current selection.")

    decode_cmd = sub.add_parser("decode", help="Decode a saved model answer into JSON.")
    decode_cmd.add_argument("path", type=Path)
    decode_cmd.add_argument("--kind", choices=sorted(_DECODERS), default="analysis")

    classify_cmd = sub.add_parser("classify", help="Classify a provider error message.")
    classify_cmd.add_argument("message", type=str)
    return parser


def _resolve(resolver: ModelResolver, api_key: str | None) -> int:
    key = api_key or os.environ.get(_API_KEY_ENV, "")
    if not key:
        _CONSOLE.print(f"No API key given; pass --api-key or set {_API_KEY_ENV}.")
        return 2

    async def _run() -> str | None:
        await resolver.warm_cache()
        return await resolver.resolve(key)

    model_id = asyncio.run(_run())
    table = Table(title="Model probes")
    table.add_column("model")
    table.add_column("valid")
    table.add_column("ms", justify="right")
    table.add_column("error")
    for result in resolver.state.validation_cache.values():
        table.add_row(
            result.model_id,
            "yes" if result.is_valid else "no",
            f"{result.response_time_ms:.0f}" if result.response_time_ms is not None else "-",
            Text(result.error or ""),
        )
    _CONSOLE.print(table)
    if model_id is None:
        _CONSOLE.print("No working model found.")
        return 1
    _CONSOLE.print(f"Selected model: {model_id}")
    return 0


def _models(resolver: ModelResolver) -> int:
    selected = asyncio.run(resolver.current_selection())
    table = Table(title="Model catalog")
    table.add_column("id")
    table.add_column("name")
    table.add_column("category")
    table.add_column("selected")
    for model in resolver.available_models():
        table.add_row(
            model.id,
            model.display_name,
            model.category,
            "*" if model.id == selected else "",
        )
    _CONSOLE.print(table)
    _CONSOLE.print(f"Candidate order: {', '.join(resolver.candidates())}")
    return 0


def _decode(path: Path, kind: str) -> int:
    text = path.read_text(encoding="utf-8")
    record: Any = _DECODERS[kind](text)
    _CONSOLE.print_json(json.dumps(record.model_dump(mode="json")))
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)

        if args.command == "resolve":
            return _resolve(get_resolver(), args.api_key)

        if args.command == "models":
            return _models(get_resolver())

        if args.command == "decode":
            return _decode(args.path, args.kind)

        if args.command == "classify":
            kind = classify(args.message)
            _CONSOLE.print(
                f"{kind.value}: {user_message(kind, args.message)}",
                markup=False,
                soft_wrap=True,
            )
            return 0

        parser.print_help()
        return 1
    except Exception as exc:
        debug = bool(os.environ.get("FILMCRITIC_DEBUG"))
        _LOGGER.warning("filmcritic CLI failed: %s", exc, exc_info=debug)
        log_exception("filmcritic CLI", exc)
        # Exception text may contain "[...]", which rich would read as markup.
        _CONSOLE.print(f"filmcritic failed: {type(exc).__name__}: {exc}", markup=False, soft_wrap=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
