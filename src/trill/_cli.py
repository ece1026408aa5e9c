"""Trill CLI — trill decode / trill headers / trill config.

Entry point for the ``trill`` command-line interface. Tools for inspecting
captured payloads and checking a project's protocol settings.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys
from pathlib import Path


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the trill CLI."""
    parser = argparse.ArgumentParser(
        prog="trill",
        description="Reactive SSE responses for Chirp handlers.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # trill decode
    decode_parser = subparsers.add_parser(
        "decode",
        help="Print the blocks of a captured event-stream payload",
    )
    decode_parser.add_argument("file", help="Payload file ('-' for stdin)")
    decode_parser.add_argument("--json", action="store_true", help="Emit JSON")

    # trill headers
    headers_parser = subparsers.add_parser(
        "headers",
        help="Print the headers sent with protocol responses",
    )
    headers_parser.add_argument("root", nargs="?", default=".", help="Project root")
    headers_parser.add_argument("--http-version", default="1.1", help="HTTP version")

    # trill config
    config_parser = subparsers.add_parser(
        "config",
        help="Print the resolved configuration",
    )
    config_parser.add_argument("root", nargs="?", default=".", help="Project root")

    return parser


def _get_version() -> str:
    from trill import __version__

    return __version__


def _read_payload(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _cmd_decode(args: argparse.Namespace) -> int:
    from trill.protocol.decode import DecodeError, parse_stream

    try:
        blocks = parse_stream(_read_payload(args.file))
    except (OSError, DecodeError) as exc:
        print(f"trill: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(
            [
                {
                    "event": b.event,
                    "id": b.envelope.id,
                    "retry": b.envelope.retry_ms,
                    "data": list(b.data),
                }
                for b in blocks
            ],
            indent=2,
        ))
        return 0

    for index, block in enumerate(blocks, start=1):
        extras = []
        if block.envelope.id is not None:
            extras.append(f"id={block.envelope.id}")
        if block.envelope.retry_ms is not None:
            extras.append(f"retry={block.envelope.retry_ms}")
        suffix = f" ({', '.join(extras)})" if extras else ""
        print(f"#{index} {block.event}{suffix}")
        for line in block.data:
            print(f"    {line}")
    print(f"{len(blocks)} block(s)")
    return 0


def _cmd_headers(args: argparse.Namespace) -> int:
    from trill.config_loader import load_config
    from trill.protocol.headers import response_headers

    config = load_config(Path(args.root))
    for name, value in response_headers(config, args.http_version).items():
        print(f"{name}: {value}")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    from trill.config_loader import load_config

    config = load_config(Path(args.root))
    for field in dataclasses.fields(config):
        print(f"{field.name} = {getattr(config, field.name)!r}")
    return 0


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from trill._errors import ConfigError

    commands = {"decode": _cmd_decode, "headers": _cmd_headers, "config": _cmd_config}
    try:
        code = commands[args.command](args)
    except ConfigError as exc:
        print(f"trill: {exc}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
