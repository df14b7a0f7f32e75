from __future__ import annotations

from ._core_base import *  # noqa: F401,F403


@dataclass(frozen=True, order=True)
class CompilationType:
    arch: str
    api_level: int

    def describe(self) -> str:
        return f"{self.arch}-{self.api_level}"


@dataclass(frozen=True)
class DeclarationAvailability:
    introduced: int = 0
    deprecated: int = 0
    obsoleted: int = 0

    def empty(self) -> bool:
        return not (self.introduced or self.deprecated or self.obsoleted)

    def describe(self) -> str:
        return f"[{self.introduced},{self.deprecated},{self.obsoleted}]"

    def dump(self) -> str:
        parts: list[str] = []
        if self.introduced:
            parts.append(f"introduced = {self.introduced}")
        if self.deprecated:
            parts.append(f"deprecated = {self.deprecated}")
        if self.obsoleted:
            parts.append(f"obsoleted = {self.obsoleted}")
        return ", ".join(parts)

    def covers(self, api_level: int) -> bool:
        if self.introduced and api_level < self.introduced:
            return False
        if self.obsoleted and api_level >= self.obsoleted:
            return False
        return True

    def as_dict(self) -> dict[str, int]:
        return {
            "introduced": self.introduced,
            "deprecated": self.deprecated,
            "obsoleted": self.obsoleted,
        }


@dataclass(frozen=True, order=True)
class DeclarationLocation:
    """One place a symbol is declared.

    Equality, ordering and hashing use the identity key only; availability
    is carried along but never participates in comparisons.
    """

    filename: str
    line: int
    column: int
    kind: str
    is_extern: bool
    is_definition: bool
    availability: DeclarationAvailability = field(default_factory=DeclarationAvailability, compare=False)

    def identity(self) -> tuple[str, int, int, str, bool, bool]:
        return (self.filename, self.line, self.column, self.kind, self.is_extern, self.is_definition)

    def describe(self, base: Path | None = None) -> str:
        return f"{to_display_path(self.filename, base)}:{self.line}:{self.column}"

    def dump(self, base: Path | None = None) -> str:
        linkage = "extern" if self.is_extern else "static"
        declaration_type = "definition" if self.is_definition else "declaration"
        text = f"{linkage} {self.kind} {declaration_type} @ {self.describe(base)}"
        if self.availability.empty():
            return f"{text}\t[no availability]"
        return f"{text}\t[{self.availability.dump()}]"


@dataclass
class Declaration:
    name: str
    locations: dict[tuple[str, int, int, str, bool, bool], DeclarationLocation] = field(default_factory=dict)

    def add_location(self, location: DeclarationLocation) -> DeclarationLocation:
        key = location.identity()
        existing = self.locations.get(key)
        if existing is None:
            self.locations[key] = location
            return location
        if existing.availability != location.availability:
            raise VersionerError(
                f"availability attribute mismatch for '{self.name}' at {location.describe()}: "
                f"{existing.availability.describe()} vs {location.availability.describe()}"
            )
        return existing

    def sorted_locations(self) -> list[DeclarationLocation]:
        return sorted(self.locations.values())

    def kind(self) -> str:
        kinds = {location.kind for location in self.locations.values()}
        if len(kinds) == 1:
            return next(iter(kinds))
        return INCONSISTENT

    def has_definition(self) -> bool:
        return any(location.is_definition for location in self.locations.values())

    def availabilities(self) -> set[DeclarationAvailability]:
        return {location.availability for location in self.locations.values()}

    def resolved_availability(self) -> DeclarationAvailability | None:
        values = self.availabilities()
        if len(values) == 1:
            return next(iter(values))
        return None

    def first_location(self) -> DeclarationLocation | None:
        ordered = self.sorted_locations()
        return ordered[0] if ordered else None

    def dump(self, base: Path | None = None) -> list[str]:
        lines = [f"    {self.name} declared in {len(self.locations)} locations:"]
        for location in self.sorted_locations():
            lines.append(f"        {location.dump(base)}")
        return lines


@dataclass
class HeaderDatabase:
    declarations: dict[str, Declaration] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)

    def add(self, name: str, location: DeclarationLocation) -> DeclarationLocation:
        declaration = self.declarations.get(name)
        if declaration is None:
            declaration = Declaration(name=name)
            self.declarations[name] = declaration
        return declaration.add_location(location)

    def note(self, message: str) -> None:
        if message not in self.notes:
            self.notes.append(message)


ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Issue:
    symbol: str
    category: str
    severity: str
    message: str
    arch: str
    levels: tuple[int, ...] = ()
    location: str | None = None

    def sort_key(self) -> tuple[Any, ...]:
        return (self.symbol, self.arch, self.levels, self.category, self.message, self.location or "")

    def describe(self) -> str:
        where = f" ({self.location})" if self.location else ""
        return f"[{self.severity}] {self.category}: {self.message}{where}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "category": self.category,
            "severity": self.severity,
            "message": self.message,
            "arch": self.arch,
            "levels": list(self.levels),
            "location": self.location,
        }


@dataclass
class CheckResult:
    name: str
    issues: list[Issue] = field(default_factory=list)
    skipped: bool = False

    @property
    def passed(self) -> bool:
        return not self.skipped and not any(issue.severity == ERROR for issue in self.issues)

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        return "pass" if self.passed else "fail"

    def errors(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity == ERROR]

    def warnings(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity == WARNING]


def dedupe_issues(issues: Iterable[Issue]) -> list[Issue]:
    return sorted(set(issues), key=Issue.sort_key)
