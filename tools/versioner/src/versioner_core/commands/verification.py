from __future__ import annotations

import argparse

from ..core import *  # noqa: F401,F403
from .common import build_declarations, load_selection


def resolve_mode(args: argparse.Namespace) -> str | None:
    if args.mode and not args.platform:
        raise VersionerError("can't validate availability without a --platform directory to compare against")
    if not args.platform:
        return None
    return args.mode or MODE_STUB


def command_check(args: argparse.Namespace) -> int:
    mode = resolve_mode(args)
    catalog, types = load_selection(args)
    declarations = build_declarations(args, catalog, types)
    base = Path.cwd()

    sanity = check_availability_consistency(declarations, base=base)
    validation: CheckResult | None = None
    if mode is not None:
        if sanity.passed:
            platform = build_platform_database(
                Path(args.platform).resolve(),
                types,
                catalog,
                platform_format=args.platform_format,
                verbose=bool(args.verbose),
            )
            validation = cross_validate(
                declarations,
                platform,
                types,
                mode=mode,
                verbose=bool(args.verbose),
                base=base,
            )
        else:
            print("Sanity check failed; skipping cross-validation.", file=sys.stderr)
            validation = CheckResult(name=VALIDATION_CHECK, skipped=True)

    report = build_report(types, sanity, validation, mode)

    if args.report:
        write_json(Path(args.report).resolve(), report)
    if args.markdown_report:
        write_markdown_report(Path(args.markdown_report).resolve(), report)
    if args.sarif_report:
        write_sarif_report(Path(args.sarif_report).resolve(), report)

    print_report(report)
    return 0 if report.get("status") == "pass" else 1
