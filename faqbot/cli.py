from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from .bootstrap import load_engine, load_engine_with_summary


def _print_json(obj) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _cmd_ask(args: argparse.Namespace) -> int:
    engine = load_engine()
    try:
        result = engine.resolver.resolve(args.message, debug=args.debug)
    finally:
        engine.close()
    if args.debug:
        _print_json(result.model_dump())
    else:
        print(result.reply)
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in import file: {path}") from e
    if not isinstance(payload, list):
        raise ValueError(f"Import file must contain a JSON array of {{question, answer}}: {path}")

    engine = load_engine()
    try:
        result = engine.coordinator.save_entries(payload)
    finally:
        engine.close()
    _print_json(result.model_dump(exclude_none=True))
    return 0 if result.success else 1


def _cmd_summary(args: argparse.Namespace) -> int:
    engine, summary = load_engine_with_summary()
    engine.close()
    _print_json(summary)
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    app = create_app()
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="faqbot", description="FAQ answer engine: ask, import, summary, serve.")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    ask = sub.add_parser("ask", help="Answer one message and print the reply")
    ask.add_argument("message")
    ask.add_argument("--debug", action="store_true", help="Print the full resolution (source, score) and trace to stderr")
    ask.set_defaults(func=_cmd_ask)

    imp = sub.add_parser("import", help="Replace the knowledge base with a JSON array of {question, answer}")
    imp.add_argument("file")
    imp.set_defaults(func=_cmd_import)

    summ = sub.add_parser("summary", help="Print entry count, tiers and configuration notes")
    summ.set_defaults(func=_cmd_summary)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=3000)
    serve.set_defaults(func=_cmd_serve)

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
