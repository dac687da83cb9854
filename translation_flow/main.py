"""Command-line entrypoint: translate one text and print the result as JSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from translation_flow.config import load_settings
from translation_flow.errors import TranslationError
from translation_flow.models import TranslateOptions
from translation_flow.service import TranslationService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translation Flow")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--text", help="Text to translate")
    source.add_argument("--file", help="Read the text from this file")
    parser.add_argument("--target-lang", help="Target language code (e.g. zh-CN, fr)")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--strategy", help="Force a strategy (simple, enhanced, long-text, long-html, config-key)")
    parser.add_argument("--max-chunk-size", type=int, help="Chunk size for long text")
    parser.add_argument("--resource-type", help="Resource type passed to hooks and logs")
    parser.add_argument("--field-name", help="Field name (enables brand-word rules such as vendor)")
    parser.add_argument("--status", action="store_true", help="Print the service status report")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] %(message)s",
    )

    text: Optional[str] = args.text
    if args.file:
        path = Path(args.file)
        if not path.exists():
            print(f"[Error] Input file not found: {args.file}", file=sys.stderr)
            return 1
        text = path.read_text(encoding="utf-8")

    if text is None and not args.status:
        print("[Error] Provide --text or --file (or --status)", file=sys.stderr)
        return 2
    if text is not None and not args.target_lang:
        print("[Error] --target-lang is required", file=sys.stderr)
        return 2

    try:
        settings = load_settings(args.config)
    except TranslationError as e:
        print(f"[Error] {e}", file=sys.stderr)
        return 1

    exit_code = 0
    output = {}
    with TranslationService(settings, start_sweeper=False) as service:
        if text is not None:
            options = TranslateOptions(
                strategy=args.strategy,
                max_chunk_size=args.max_chunk_size,
                resource_type=args.resource_type,
                field_name=args.field_name,
            )
            result = service.translate(text, args.target_lang, options, raise_on_failure=False)
            output["result"] = result.to_dict()
            if not result.success:
                exit_code = 1
        if args.status:
            output["status"] = service.status()

    print(json.dumps(output, ensure_ascii=False, indent=2, default=str))
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
