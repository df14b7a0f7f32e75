from __future__ import annotations

from typing import TypeVar

from ._core_base import *  # noqa: F401,F403
from ._core_model import CompilationType, Declaration, DeclarationLocation, HeaderDatabase

V = TypeVar("V")

LocationIdentity = tuple[str, int, int, str, bool, bool]


def transpose(per_target: Mapping[CompilationType, Mapping[str, V]]) -> dict[str, dict[CompilationType, V]]:
    """Turn a target-first mapping into a symbol-first one.

    Targets partition the input, so every (symbol, target) cell is written
    exactly once and values are never merged.
    """
    result: dict[str, dict[CompilationType, V]] = {}
    for compilation_type in sorted(per_target):
        for name, value in per_target[compilation_type].items():
            result.setdefault(name, {})[compilation_type] = value
    return result


@dataclass
class DeclarationDatabase:
    symbols: dict[str, dict[CompilationType, Declaration]] = field(default_factory=dict)

    @classmethod
    def transpose(cls, per_target: Mapping[CompilationType, HeaderDatabase]) -> DeclarationDatabase:
        return cls(
            symbols=transpose(
                {compilation_type: database.declarations for compilation_type, database in per_target.items()}
            )
        )

    def types(self) -> set[CompilationType]:
        return {compilation_type for cells in self.symbols.values() for compilation_type in cells}

    def project(self, compilation_type: CompilationType) -> dict[str, Declaration]:
        return {
            name: cells[compilation_type]
            for name, cells in self.symbols.items()
            if compilation_type in cells
        }

    def names(self) -> list[str]:
        return sorted(self.symbols)

    def names_of_kind(self, kind: str) -> list[str]:
        out: list[str] = []
        for name in self.names():
            kinds = {declaration.kind() for declaration in self.symbols[name].values()}
            if kind in kinds:
                out.append(name)
        return out

    def multiply_declared(self) -> list[str]:
        return [
            name
            for name in self.names()
            if any(len(declaration.locations) > 1 for declaration in self.symbols[name].values())
        ]

    def declaration_sites(self) -> dict[tuple[str, LocationIdentity], set[CompilationType]]:
        """Map every (symbol, location identity) to the targets it was observed at."""
        sites: dict[tuple[str, LocationIdentity], set[CompilationType]] = {}
        for name, cells in self.symbols.items():
            for compilation_type, declaration in cells.items():
                for identity in declaration.locations:
                    sites.setdefault((name, identity), set()).add(compilation_type)
        return sites

    def site_locations(self, name: str) -> list[tuple[DeclarationLocation, list[CompilationType]]]:
        """Distinct declaration locations of one symbol with the targets that saw them."""
        cells = self.symbols.get(name, {})
        seen: dict[tuple[LocationIdentity, Any], DeclarationLocation] = {}
        targets: dict[tuple[LocationIdentity, Any], set[CompilationType]] = {}
        for compilation_type, declaration in cells.items():
            for identity, location in declaration.locations.items():
                key = (identity, location.availability)
                seen.setdefault(key, location)
                targets.setdefault(key, set()).add(compilation_type)
        ordered = sorted(seen, key=lambda key: (seen[key], seen[key].availability.describe()))
        return [(seen[key], sorted(targets[key])) for key in ordered]
