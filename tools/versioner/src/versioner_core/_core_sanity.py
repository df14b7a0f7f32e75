from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_database import DeclarationDatabase
from ._core_model import ERROR, CheckResult, CompilationType, Declaration, Issue, dedupe_issues

SANITY_CHECK = "sanity"


def _location_text(declaration: Declaration, base: Path | None) -> str | None:
    location = declaration.first_location()
    return location.describe(base) if location else None


def check_availability_consistency(database: DeclarationDatabase, base: Path | None = None) -> CheckResult:
    """Validate availability metadata before it is compared with libraries.

    Every (symbol, target) cell must resolve to one availability, and within
    one architecture that availability must not change from one API level to
    the next while the same declaration site is still in view.
    """
    issues: list[Issue] = []

    for name in database.names():
        cells = database.symbols[name]
        previous: tuple[CompilationType, Declaration] | None = None

        for compilation_type in sorted(cells):
            declaration = cells[compilation_type]

            if declaration.kind() == INCONSISTENT:
                issues.append(
                    Issue(
                        symbol=name,
                        category="inconsistent-kind",
                        severity=ERROR,
                        message=f"declared as both function and variable at {compilation_type.describe()}",
                        arch=compilation_type.arch,
                        levels=(compilation_type.api_level,),
                        location=_location_text(declaration, base),
                    )
                )

            if declaration.resolved_availability() is None:
                values = ", ".join(sorted(value.describe() for value in declaration.availabilities()))
                issues.append(
                    Issue(
                        symbol=name,
                        category="inconsistent-availability",
                        severity=ERROR,
                        message=f"declarations disagree on availability at {compilation_type.describe()}: {values}",
                        arch=compilation_type.arch,
                        levels=(compilation_type.api_level,),
                        location=_location_text(declaration, base),
                    )
                )
                previous = None
                continue

            if previous is not None and previous[0].arch == compilation_type.arch:
                issue = _compare_levels(name, previous, (compilation_type, declaration), base)
                if issue is not None:
                    issues.append(issue)
            previous = (compilation_type, declaration)

    return CheckResult(name=SANITY_CHECK, issues=dedupe_issues(issues))


def _compare_levels(
    name: str,
    previous: tuple[CompilationType, Declaration],
    current: tuple[CompilationType, Declaration],
    base: Path | None,
) -> Issue | None:
    previous_type, previous_declaration = previous
    current_type, current_declaration = current
    before = previous_declaration.resolved_availability()
    after = current_declaration.resolved_availability()
    if before == after:
        return None

    # A disjoint set of declaration sites is a new declaration, not drift.
    if not set(previous_declaration.locations) & set(current_declaration.locations):
        return None

    return Issue(
        symbol=name,
        category="availability-drift",
        severity=ERROR,
        message=(
            f"availability changed from {before.describe()} at {previous_type.describe()} "
            f"to {after.describe()} at {current_type.describe()}"
        ),
        arch=current_type.arch,
        levels=(previous_type.api_level, current_type.api_level),
        location=_location_text(current_declaration, base),
    )
