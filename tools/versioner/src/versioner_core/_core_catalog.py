from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_model import CompilationType

DEFAULT_MANIFEST_FILES = (
    "libc.so.functions.txt",
    "libc.so.variables.txt",
    "libdl.so.functions.txt",
    "libm.so.functions.txt",
    "libm.so.variables.txt",
)


@dataclass(frozen=True)
class TargetCatalog:
    architectures: tuple[str, ...]
    api_levels: tuple[int, ...]
    min_api: Mapping[str, int]
    triples: Mapping[str, str]
    platform: str = "android"
    api_level_macro: str = "__ANDROID_API__"
    defines: tuple[str, ...] = ("ANDROID", "_FORTIFY_SOURCE=2", "_GNU_SOURCE")
    header_blacklist: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    manifest_files: tuple[str, ...] = DEFAULT_MANIFEST_FILES

    def min_api_for(self, arch: str) -> int:
        try:
            return self.min_api[arch]
        except KeyError as exc:
            raise VersionerError(f"unsupported architecture '{arch}'") from exc

    def triple_for(self, arch: str) -> str:
        try:
            return self.triples[arch]
        except KeyError as exc:
            raise VersionerError(f"no target triple for architecture '{arch}'") from exc

    def is_blacklisted(self, header: str, arch: str) -> bool:
        return arch in self.header_blacklist.get(header, ())

    def as_dict(self) -> dict[str, Any]:
        return {
            "architectures": list(self.architectures),
            "api_levels": list(self.api_levels),
            "min_api": dict(self.min_api),
            "triples": dict(self.triples),
            "platform": self.platform,
            "api_level_macro": self.api_level_macro,
            "defines": list(self.defines),
            "header_blacklist": {name: list(archs) for name, archs in self.header_blacklist.items()},
            "manifest_files": list(self.manifest_files),
        }


_ANDROID_ARCHS = ("arm", "arm64", "mips", "mips64", "x86", "x86_64")

DEFAULT_CATALOG = TargetCatalog(
    architectures=_ANDROID_ARCHS,
    api_levels=(9, 12, 13, 14, 15, 16, 17, 18, 19, 21, 23, 24),
    min_api={
        "arm": 9,
        "arm64": 21,
        "mips": 9,
        "mips64": 21,
        "x86": 9,
        "x86_64": 21,
    },
    triples={
        "arm": "arm-linux-androideabi",
        "arm64": "aarch64-linux-android",
        "mips": "mipsel-linux-android",
        "mips64": "mips64el-linux-android",
        "x86": "i686-linux-android",
        "x86_64": "x86_64-linux-android",
    },
    header_blacklist={
        # Internal header.
        "sys/_system_properties.h": _ANDROID_ARCHS,
        # time64.h #errors when included on LP64 archs.
        "time64.h": ("arm64", "mips64", "x86_64"),
    },
)


def validate_catalog(catalog: TargetCatalog) -> TargetCatalog:
    if not catalog.architectures:
        raise VersionerError("catalog must define at least one architecture")
    if not catalog.api_levels:
        raise VersionerError("catalog must define at least one API level")
    for arch in catalog.architectures:
        if arch not in catalog.min_api:
            raise VersionerError(f"catalog architecture '{arch}' has no minimum API level")
        if arch not in catalog.triples:
            raise VersionerError(f"catalog architecture '{arch}' has no target triple")
        if catalog.min_api[arch] not in catalog.api_levels:
            raise VersionerError(
                f"catalog minimum API level {catalog.min_api[arch]} for '{arch}' is not a supported level"
            )
    for header, archs in catalog.header_blacklist.items():
        unknown = sorted(set(archs) - set(catalog.architectures))
        if unknown:
            raise VersionerError(f"catalog header_blacklist['{header}'] names unknown architectures: {join_values(unknown)}")
    return catalog


def catalog_from_payload(payload: dict[str, Any], base: TargetCatalog = DEFAULT_CATALOG) -> TargetCatalog:
    validate_with_jsonschema("catalog", payload)

    architectures = tuple(normalize_string_list(payload.get("architectures"), "architectures")) or base.architectures
    raw_levels = payload.get("api_levels")
    api_levels = tuple(sorted(set(raw_levels))) if raw_levels else base.api_levels

    min_api = dict(payload.get("min_api") or base.min_api)
    triples = dict(payload.get("triples") or base.triples)

    blacklist_raw = payload.get("header_blacklist")
    if blacklist_raw is None:
        header_blacklist = {}
        for name, archs in base.header_blacklist.items():
            kept = tuple(arch for arch in archs if arch in architectures)
            if kept:
                header_blacklist[name] = kept
    else:
        header_blacklist = {
            name: tuple(normalize_string_list(archs, f"header_blacklist.{name}"))
            for name, archs in blacklist_raw.items()
        }

    catalog = TargetCatalog(
        architectures=architectures,
        api_levels=api_levels,
        min_api=min_api,
        triples=triples,
        platform=str(payload.get("platform", base.platform)),
        api_level_macro=str(payload.get("api_level_macro", base.api_level_macro)),
        defines=tuple(normalize_string_list(payload["defines"], "defines")) if "defines" in payload else base.defines,
        header_blacklist=header_blacklist,
        manifest_files=(
            tuple(normalize_string_list(payload["manifest_files"], "manifest_files"))
            if "manifest_files" in payload
            else base.manifest_files
        ),
    )
    return validate_catalog(catalog)


def load_catalog(path: Path | None) -> TargetCatalog:
    if path is None:
        return DEFAULT_CATALOG
    return catalog_from_payload(load_json(path))


def generate_compilation_matrix(
    catalog: TargetCatalog,
    architectures: Iterable[str] | None = None,
    api_levels: Iterable[int] | None = None,
) -> set[CompilationType]:
    selected_archs = set(architectures or ()) or set(catalog.architectures)
    selected_levels = set(api_levels or ()) or set(catalog.api_levels)

    unknown_archs = sorted(selected_archs - set(catalog.architectures))
    if unknown_archs:
        raise VersionerError(f"unsupported architecture(s): {join_values(unknown_archs)}")
    unknown_levels = sorted(selected_levels - set(catalog.api_levels))
    if unknown_levels:
        raise VersionerError(f"unsupported API level(s): {join_values(unknown_levels)}")

    matrix: set[CompilationType] = set()
    for arch in selected_archs:
        floor = catalog.min_api_for(arch)
        for level in selected_levels:
            if level >= floor:
                matrix.add(CompilationType(arch=arch, api_level=level))
    return matrix


def levels_by_arch(types: Iterable[CompilationType]) -> dict[str, list[int]]:
    out: dict[str, list[int]] = {}
    for compilation_type in sorted(types):
        out.setdefault(compilation_type.arch, []).append(compilation_type.api_level)
    return out
