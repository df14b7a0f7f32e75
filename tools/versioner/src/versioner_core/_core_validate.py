from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_catalog import levels_by_arch
from ._core_database import DeclarationDatabase
from ._core_model import (
    ERROR,
    WARNING,
    CheckResult,
    CompilationType,
    Declaration,
    DeclarationAvailability,
    Issue,
    dedupe_issues,
)
from ._core_symbols import SymbolDatabase

VALIDATION_CHECK = "validation"
MODE_STUB = "stub"
MODE_REAL = "real"
VALIDATION_MODES = (MODE_STUB, MODE_REAL)


def architecture_window(cells: Mapping[CompilationType, Declaration], arch: str) -> DeclarationAvailability:
    """First non-empty resolved availability of a symbol, in level order."""
    for compilation_type in sorted(cells):
        if compilation_type.arch != arch:
            continue
        availability = cells[compilation_type].resolved_availability()
        if availability is not None and not availability.empty():
            return availability
    return DeclarationAvailability()


def _is_exported_declaration(declaration: Declaration) -> bool:
    return any(location.is_extern for location in declaration.locations.values())


class _ArchitectureCheck:
    """Cross-validation state for one symbol on one architecture."""

    def __init__(
        self,
        name: str,
        arch: str,
        levels: list[int],
        cells: Mapping[CompilationType, Declaration],
        platform: SymbolDatabase,
        base: Path | None,
    ) -> None:
        self.name = name
        self.arch = arch
        self.levels = levels
        self.cells = {
            compilation_type: declaration
            for compilation_type, declaration in cells.items()
            if compilation_type.arch == arch
        }
        self.platform = platform
        self.window = architecture_window(self.cells, arch)
        first = self.cells[min(self.cells)].first_location()
        self.location = first.describe(base) if first else None
        self.exported_levels = [level for level in platform.levels(name, arch) if level in levels]

    def issue(self, category: str, severity: str, message: str, levels: Iterable[int]) -> Issue:
        return Issue(
            symbol=self.name,
            category=category,
            severity=severity,
            message=message,
            arch=self.arch,
            levels=tuple(sorted(set(levels))),
            location=self.location,
        )

    def nearest_declaration(self, level: int) -> Declaration:
        """Cell declared closest to ``level``; ties go to the lower level."""
        nearest = min(
            self.cells,
            key=lambda compilation_type: (abs(compilation_type.api_level - level), compilation_type.api_level),
        )
        return self.cells[nearest]

    def check_window_levels(self, verbose: bool) -> list[Issue]:
        issues: list[Issue] = []
        checked: list[int] = []
        missing: list[int] = []

        for level in self.levels:
            if not self.window.covers(level):
                continue
            compilation_type = CompilationType(self.arch, level)
            declaration = self.cells.get(compilation_type)
            # Levels the headers hide are still inside the declared window.
            has_definition = declaration is not None and declaration.has_definition()
            if declaration is None:
                declaration = self.nearest_declaration(level)
            if not _is_exported_declaration(declaration):
                continue
            checked.append(level)

            exported_kind = self.platform.kind_at(self.name, compilation_type)
            if exported_kind is None:
                if not has_definition:
                    missing.append(level)
                continue

            declared_kind = declaration.kind()
            if declared_kind != INCONSISTENT and exported_kind != declared_kind:
                issues.append(
                    self.issue(
                        "kind-mismatch",
                        ERROR,
                        f"declared as {declared_kind} but exported as {exported_kind} at {compilation_type.describe()}",
                        [level],
                    )
                )

        if not missing:
            return issues
        if len(missing) == len(checked):
            if verbose:
                issues.append(
                    self.issue(
                        "not-exported",
                        WARNING,
                        f"not exported by any {self.arch} library at levels {join_values(missing)}",
                        missing,
                    )
                )
            return issues

        issues.append(
            self.issue(
                "missing-symbol",
                ERROR,
                f"declared available but missing from {self.arch} libraries at levels {join_values(missing)}",
                missing,
            )
        )
        return issues

    def check_export_window(self) -> list[Issue]:
        issues: list[Issue] = []
        introduced = self.window.introduced
        obsoleted = self.window.obsoleted

        too_early = [level for level in self.exported_levels if introduced and level < introduced]
        if too_early:
            issues.append(
                self.issue(
                    "exported-too-early",
                    ERROR,
                    f"exported at levels {join_values(too_early)}, earlier than declared introduction at {introduced}",
                    too_early,
                )
            )

        too_late = [level for level in self.exported_levels if obsoleted and level >= obsoleted]
        if too_late:
            issues.append(
                self.issue(
                    "exported-too-late",
                    ERROR,
                    f"exported at levels {join_values(too_late)}, at or after declared obsoletion at {obsoleted}",
                    too_late,
                )
            )
        return issues

    def check_library_gap(self) -> list[Issue]:
        if not self.exported_levels:
            return []
        first = self.exported_levels[0]
        obsoleted = self.window.obsoleted
        present = set(self.exported_levels)
        expected = [
            level
            for level in self.levels
            if level > first and level not in present and not (obsoleted and level >= obsoleted)
        ]
        if not expected:
            return []
        return [
            self.issue(
                "library-gap",
                ERROR,
                f"disappears from {self.arch} libraries after level {first}; expected at levels {join_values(expected)}",
                expected,
            )
        ]


def cross_validate(
    declarations: DeclarationDatabase,
    platform: SymbolDatabase,
    types: Iterable[CompilationType],
    mode: str = MODE_STUB,
    verbose: bool = False,
    base: Path | None = None,
) -> CheckResult:
    """Compare header declarations with what the platform libraries export.

    Both modes check every level inside the declared window against the
    libraries, including levels the headers hide. Stub mode also flags
    exports outside the declared window and symbols that vanish from the
    stubs after first appearing; real device libraries may carry
    symbols earlier than declared, so ``real`` mode skips those checks.
    """
    if mode not in VALIDATION_MODES:
        raise VersionerError(f"unknown validation mode '{mode}'")

    strict = mode == MODE_STUB
    arch_levels = levels_by_arch(types)
    issues: list[Issue] = []

    for name in declarations.names():
        cells = declarations.symbols[name]
        if not any(_is_exported_declaration(declaration) for declaration in cells.values()):
            continue
        if name not in platform.symbols:
            if verbose:
                first = cells[min(cells)].first_location()
                issues.append(
                    Issue(
                        symbol=name,
                        category="unversioned",
                        severity=WARNING,
                        message="not exported by any library",
                        arch="",
                        location=first.describe(base) if first else None,
                    )
                )
            continue

        for arch, levels in arch_levels.items():
            if not any(compilation_type.arch == arch for compilation_type in cells):
                continue
            check = _ArchitectureCheck(name, arch, levels, cells, platform, base)
            forward = check.check_window_levels(verbose)
            issues.extend(forward)
            if not strict:
                continue
            issues.extend(check.check_export_window())
            if not any(issue.category == "missing-symbol" for issue in forward):
                issues.extend(check.check_library_gap())

    return CheckResult(name=VALIDATION_CHECK, issues=dedupe_issues(issues))
