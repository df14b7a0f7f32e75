from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_catalog import TargetCatalog
from ._core_database import transpose
from ._core_model import CompilationType

NM_FUNCTION_CODES = {"T", "W", "i"}
NM_VARIABLE_CODES = {"D", "B", "R", "V", "G", "S", "u"}
ELF_FUNCTION_TYPES = {"FUNC", "IFUNC", "GNU_IFUNC"}
ELF_VARIABLE_TYPES = {"OBJECT", "TLS", "COMMON"}
MANIFEST_SUFFIXES = {
    ".functions.txt": FUNCTION,
    ".variables.txt": VARIABLE,
}
PLATFORM_FORMATS = ("auto", "manifest", "binary")

_OBJDUMP_LINE = re.compile(
    r"^(?P<address>[0-9A-Fa-f]+)\s(?P<flags>.{7})\s(?P<section>\S+)\s+(?P<size>[0-9A-Fa-f]+)\s+(?P<rest>.+)$"
)


def strip_symbol_version(symbol: str) -> str:
    return symbol.split("@", 1)[0]


def parse_nm_exports(output: str) -> dict[str, str]:
    exports: dict[str, str] = {}
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or line.endswith(":"):
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        type_code = parts[-2]
        symbol = strip_symbol_version(parts[-1])
        if not symbol or len(type_code) != 1:
            continue
        if type_code in NM_FUNCTION_CODES:
            exports[symbol] = FUNCTION
        elif type_code in NM_VARIABLE_CODES:
            exports[symbol] = VARIABLE
    return exports


def parse_readelf_exports(output: str) -> dict[str, str]:
    exports: dict[str, str] = {}
    for raw_line in output.splitlines():
        parts = raw_line.split()
        if len(parts) < 8:
            continue
        number_token = parts[0]
        if not number_token.endswith(":") or not number_token[:-1].isdigit():
            continue
        symbol_type = parts[3].upper()
        bind = parts[4].upper()
        visibility = parts[5].upper()
        section = parts[6].upper()
        name = strip_symbol_version(parts[7])
        if section == "UND" or not name:
            continue
        if bind not in {"GLOBAL", "WEAK", "GNU_UNIQUE", "UNIQUE"}:
            continue
        if visibility in {"HIDDEN", "INTERNAL"}:
            continue
        if symbol_type in ELF_FUNCTION_TYPES:
            exports[name] = FUNCTION
        elif symbol_type in ELF_VARIABLE_TYPES:
            exports[name] = VARIABLE
    return exports


def parse_objdump_exports(output: str) -> dict[str, str]:
    exports: dict[str, str] = {}
    for raw_line in output.splitlines():
        match = _OBJDUMP_LINE.match(raw_line.rstrip())
        if not match:
            continue
        flags = match.group("flags")
        if flags[0] not in {"g", "u"} and flags[1] != "w":
            continue
        if match.group("section") == "*UND*":
            continue
        name = strip_symbol_version(match.group("rest").split()[-1])
        if not name:
            continue
        if flags[6] == "F" or flags[4] == "i":
            exports[name] = FUNCTION
        elif flags[6] == "O":
            exports[name] = VARIABLE
    return exports


def build_export_command_specs(binary_path: Path) -> list[tuple[str, list[str], str]]:
    return [
        ("nm", ["nm", "-D", "--defined-only", str(binary_path)], "nm"),
        ("llvm-nm", ["llvm-nm", "-D", "--defined-only", str(binary_path)], "nm"),
        ("readelf", ["readelf", "--dyn-syms", "-W", str(binary_path)], "readelf"),
        ("objdump", ["objdump", "-T", str(binary_path)], "objdump"),
    ]


def parse_exports_with_format(output: str, parse_format: str) -> dict[str, str]:
    if parse_format == "readelf":
        return parse_readelf_exports(output)
    if parse_format == "objdump":
        return parse_objdump_exports(output)
    return parse_nm_exports(output)


def read_exports(binary_path: Path) -> dict[str, str]:
    """Read the dynamic export table of one shared library as name -> kind."""
    if not binary_path.is_file():
        raise VersionerError(f"shared library '{binary_path}' does not exist.")

    tool_errors: list[str] = []
    for _tool_name, command, parse_format in build_export_command_specs(binary_path):
        if shutil.which(command[0]) is None:
            continue
        try:
            proc = subprocess.run(command, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as exc:
            message = exc.stderr.strip() or exc.stdout.strip() or "unknown command failure"
            tool_errors.append(f"{format_command(command)}: {message}")
            continue
        # First successful tool wins; symbol tables are never mixed across tools.
        return parse_exports_with_format(proc.stdout, parse_format=parse_format)

    if tool_errors:
        raise VersionerError("Failed to query binary exports. " + " | ".join(tool_errors))
    raise VersionerError("No export listing tool found. Install one of: nm, llvm-nm, readelf, objdump.")


def manifest_kind(path: Path) -> str:
    for suffix, kind in MANIFEST_SUFFIXES.items():
        if path.name.endswith(suffix):
            return kind
    raise VersionerError(f"cannot infer symbol kind from manifest name '{path.name}'")


def read_manifest(path: Path, verbose: bool = False) -> dict[str, str]:
    kind = manifest_kind(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise VersionerError(f"Unable to read manifest '{path}': {exc}") from exc

    symbols: dict[str, str] = {}
    for raw_line in text.splitlines():
        name = raw_line.strip()
        if not name:
            continue
        if name in symbols and verbose:
            print(f"versioner: duplicate symbol '{name}' in {path}", file=sys.stderr)
        symbols[name] = kind
    return symbols


def target_directory(platform_dir: Path, compilation_type: CompilationType) -> Path:
    return platform_dir / f"android-{compilation_type.api_level}" / f"arch-{compilation_type.arch}"


def find_platform_file(
    platform_dir: Path,
    compilation_type: CompilationType,
    filename: str,
    catalog: TargetCatalog,
) -> Path | None:
    """Find a manifest in a layered platform tree.

    Each level only carries the files that changed, so a miss falls through
    to the nearest lower supported level, never below the architecture floor.
    """
    floor = catalog.min_api_for(compilation_type.arch)
    supported = set(catalog.api_levels)
    for level in range(compilation_type.api_level, floor - 1, -1):
        if level not in supported:
            continue
        candidate = (
            target_directory(platform_dir, CompilationType(compilation_type.arch, level)) / "symbols" / filename
        )
        if candidate.is_file():
            return candidate
    return None


def detect_platform_format(platform_dir: Path) -> str:
    require_directory(platform_dir, "platform directory")
    for suffix in MANIFEST_SUFFIXES:
        if any(platform_dir.rglob(f"*{suffix}")):
            return "manifest"
    return "binary"


@dataclass
class SymbolDatabase:
    symbols: dict[str, dict[CompilationType, str]] = field(default_factory=dict)

    @classmethod
    def transpose(cls, per_target: Mapping[CompilationType, Mapping[str, str]]) -> SymbolDatabase:
        return cls(symbols=transpose(per_target))

    def names(self) -> list[str]:
        return sorted(self.symbols)

    def kind_at(self, name: str, compilation_type: CompilationType) -> str | None:
        return self.symbols.get(name, {}).get(compilation_type)

    def levels(self, name: str, arch: str) -> list[int]:
        return sorted(
            compilation_type.api_level
            for compilation_type in self.symbols.get(name, {})
            if compilation_type.arch == arch
        )


def collect_manifest_symbols(
    platform_dir: Path,
    compilation_type: CompilationType,
    catalog: TargetCatalog,
    verbose: bool = False,
) -> dict[str, str]:
    symbols: dict[str, str] = {}
    for filename in catalog.manifest_files:
        path = find_platform_file(platform_dir, compilation_type, filename, catalog)
        if path is not None:
            symbols.update(read_manifest(path, verbose=verbose))
    return symbols


def collect_binary_symbols(platform_dir: Path, compilation_type: CompilationType) -> dict[str, str]:
    directory = target_directory(platform_dir, compilation_type)
    if not directory.is_dir():
        raise VersionerError(f"no libraries for {compilation_type.describe()}: '{directory}' does not exist.")
    symbols: dict[str, str] = {}
    for path in collect_files(directory):
        if ".so" in path.name:
            symbols.update(read_exports(path))
    return symbols


def build_platform_database(
    platform_dir: Path,
    types: Iterable[CompilationType],
    catalog: TargetCatalog,
    platform_format: str = "auto",
    verbose: bool = False,
) -> SymbolDatabase:
    if platform_format not in PLATFORM_FORMATS:
        raise VersionerError(f"unknown platform format '{platform_format}'")
    require_directory(platform_dir, "platform directory")
    if platform_format == "auto":
        platform_format = detect_platform_format(platform_dir)

    per_target: dict[CompilationType, dict[str, str]] = {}
    for compilation_type in sorted(types):
        if platform_format == "manifest":
            per_target[compilation_type] = collect_manifest_symbols(platform_dir, compilation_type, catalog, verbose)
        else:
            per_target[compilation_type] = collect_binary_symbols(platform_dir, compilation_type)
    return SymbolDatabase.transpose(per_target)
