from __future__ import annotations

import argparse

from ..core import *  # noqa: F401,F403
from .common import build_declarations, load_selection


def print_declarations(title: str, database: DeclarationDatabase, names: list[str], base: Path) -> None:
    print(f"\n{title}:")
    for name in names:
        sites = database.site_locations(name)
        print(f"    {name} declared in {len(sites)} locations:")
        for location, targets in sites:
            print(f"        {location.dump(base)}\t({describe_targets(targets)})")


def command_dump(args: argparse.Namespace) -> int:
    catalog, types = load_selection(args)
    database = build_declarations(args, catalog, types)
    base = Path.cwd()

    show_all = not (args.functions or args.variables or args.multiply_declared)
    if args.functions or show_all:
        print_declarations("Functions", database, database.names_of_kind(FUNCTION), base)
    if args.variables or show_all:
        print_declarations("Variables", database, database.names_of_kind(VARIABLE), base)
    if args.multiply_declared or show_all:
        multiply_declared = database.multiply_declared()
        if multiply_declared:
            print_declarations("Multiply declared symbols", database, multiply_declared, base)
        else:
            print("\nNo multiply declared symbols.")
    return 0


def command_symbols(args: argparse.Namespace) -> int:
    catalog, types = load_selection(args)
    platform = build_platform_database(
        Path(args.platform).resolve(),
        types,
        catalog,
        platform_format=args.platform_format,
        verbose=bool(args.verbose),
    )
    print("Symbols:")
    for name in platform.names():
        print(f"    {name}: {describe_targets(platform.symbols[name])}")
    return 0


def command_matrix(args: argparse.Namespace) -> int:
    _catalog, types = load_selection(args)
    if args.print_json:
        print(json.dumps(levels_by_arch(types), indent=2, sort_keys=True))
        return 0
    for compilation_type in types:
        print(compilation_type.describe())
    return 0
