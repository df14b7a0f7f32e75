from __future__ import annotations

import argparse
import sys

from .core import DEFAULT_JOBS, PLATFORM_FORMATS, VALIDATION_MODES, VersionerError
from .commands import (
    command_check,
    command_dump,
    command_matrix,
    command_symbols,
)


def add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--catalog", help="Path to target catalog JSON (default: built-in Android catalog).")
    parser.add_argument(
        "--arch",
        action="append",
        help="Architecture to check (repeatable, default: every catalog architecture).",
    )
    parser.add_argument(
        "--api",
        action="append",
        type=int,
        help="API level to check (repeatable, default: every catalog API level).",
    )


def add_header_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("header_dir", help="Root of the header tree to compile.")
    parser.add_argument("deps_dir", nargs="?", help="Optional dependency include root (common/ and <arch>/ subtrees).")
    parser.add_argument("--compiler", help="clang executable used to parse headers.")
    parser.add_argument(
        "--jobs",
        "-j",
        type=int,
        default=DEFAULT_JOBS,
        help=f"Maximum concurrent header compilations (default: {DEFAULT_JOBS}).",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print diagnostics and verbose-only findings.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="versioner",
        description="Reconcile header availability annotations with platform library exports.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Extract declarations, sanity check them and validate against a platform.")
    add_header_arguments(check)
    add_selection_arguments(check)
    check.add_argument("--platform", help="Platform directory with stub libraries or symbol manifests.")
    check.add_argument(
        "--mode",
        choices=VALIDATION_MODES,
        help="Compare against canonical stubs (strict) or real device libraries (relaxed). Default: stub.",
    )
    check.add_argument(
        "--platform-format",
        choices=PLATFORM_FORMATS,
        default="auto",
        help="How platform symbols are stored (default: auto).",
    )
    check.add_argument("--report", help="Write check report JSON to path.")
    check.add_argument("--markdown-report", help="Write markdown report to path.")
    check.add_argument("--sarif-report", help="Write SARIF report to path.")
    check.set_defaults(func=command_check)

    dump = sub.add_parser("dump", help="List declarations extracted from the headers.")
    add_header_arguments(dump)
    add_selection_arguments(dump)
    dump.add_argument("--functions", action="store_true", help="List function declarations.")
    dump.add_argument("--variables", action="store_true", help="List variable declarations.")
    dump.add_argument(
        "--multiply-declared",
        action="store_true",
        help="List symbols declared in more than one location for some target.",
    )
    dump.set_defaults(func=command_dump)

    symbols = sub.add_parser("symbols", help="List platform symbols and the targets exporting them.")
    add_selection_arguments(symbols)
    symbols.add_argument("--platform", required=True, help="Platform directory with stub libraries or symbol manifests.")
    symbols.add_argument(
        "--platform-format",
        choices=PLATFORM_FORMATS,
        default="auto",
        help="How platform symbols are stored (default: auto).",
    )
    symbols.add_argument("--verbose", "-v", action="store_true", help="Report duplicate manifest entries.")
    symbols.set_defaults(func=command_symbols)

    matrix = sub.add_parser("matrix", help="Print the compilation matrix for the selection.")
    add_selection_arguments(matrix)
    matrix.add_argument("--print-json", action="store_true", help="Print levels per architecture as JSON.")
    matrix.set_defaults(func=command_matrix)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return int(args.func(args))
    except VersionerError as exc:
        print(f"versioner error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
