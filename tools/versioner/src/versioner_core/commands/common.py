from __future__ import annotations

import argparse

from ..core import *  # noqa: F401,F403


def load_selection(args: argparse.Namespace) -> tuple[TargetCatalog, list[CompilationType]]:
    catalog_path = Path(args.catalog).resolve() if getattr(args, "catalog", None) else None
    catalog = load_catalog(catalog_path)
    types = generate_compilation_matrix(
        catalog,
        architectures=getattr(args, "arch", None),
        api_levels=getattr(args, "api", None),
    )
    if not types:
        raise VersionerError("compilation matrix is empty for the selected architectures and API levels")
    return catalog, sorted(types)


def build_declarations(
    args: argparse.Namespace,
    catalog: TargetCatalog,
    types: list[CompilationType],
) -> DeclarationDatabase:
    header_root = Path(args.header_dir).resolve()
    dependency_root = Path(args.deps_dir).resolve() if args.deps_dir else None
    parser = ClangHeaderParser(catalog, compiler=args.compiler)
    return build_declaration_database(
        types,
        header_root=header_root,
        dependency_root=dependency_root,
        catalog=catalog,
        parser=parser,
        jobs=int(args.jobs),
        verbose=bool(args.verbose),
    )
