from __future__ import annotations

from ._core_base import *  # noqa: F401,F403
from ._core_catalog import TargetCatalog
from ._core_model import CompilationType, DeclarationAvailability, DeclarationLocation, HeaderDatabase

# Declaration contexts that still count as file scope.
FILE_SCOPE_KINDS = {"TranslationUnitDecl", "LinkageSpecDecl", "ExternCContextDecl"}

DECL_FLAGS = {"implicit", "used", "referenced", "invalid", "constexpr", "imported", "hidden"}

_TREE_PREFIX = re.compile(r"^[| `\-]*")
_LOCATION_TOKEN = re.compile(
    r"line:(?P<line_line>\d+):(?P<line_col>\d+)"
    r"|col:(?P<col_col>\d+)"
    r"|(?P<file><[^<>]+>|[^\s<>,'\"=]+):(?P<file_line>\d+):(?P<file_col>\d+)"
)


@dataclass
class _PendingDecl:
    depth: int
    kind: str
    name: str
    location: tuple[str, int, int]
    storage: set[str]
    has_init: bool
    has_body: bool = False
    unavailable: bool = False
    asm_label: str | None = None
    availability_attrs: list[list[str]] = field(default_factory=list)


class _LocationTracker:
    """Expands the elided locations of a textual clang AST dump.

    The dumper only prints the parts of a location that changed since the
    previous one, so every location on every line must be fed in order.
    """

    def __init__(self) -> None:
        self.filename = ""
        self.line = 0

    def consume(self, segment: str) -> list[tuple[int, tuple[str, int, int]]]:
        out: list[tuple[int, tuple[str, int, int]]] = []
        for match in _LOCATION_TOKEN.finditer(segment):
            if match.group("line_line") is not None:
                self.line = int(match.group("line_line"))
                column = int(match.group("line_col"))
            elif match.group("col_col") is not None:
                column = int(match.group("col_col"))
            else:
                self.filename = match.group("file")
                self.line = int(match.group("file_line"))
                column = int(match.group("file_col"))
            out.append((match.start(), (self.filename, self.line, column)))
        return out


def _split_tree_line(raw_line: str) -> tuple[int, str]:
    prefix = _TREE_PREFIX.match(raw_line)
    width = prefix.end() if prefix else 0
    return width // 2, raw_line[width:]


def _range_end(text: str) -> int:
    start = text.find("<")
    if start < 0:
        return -1
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _parse_version_major(token: str) -> int:
    head = token.split(".", 1)[0]
    return int(head) if head.isdigit() else 0


def _parse_decl_line(
    depth: int,
    kind: str,
    body: str,
    locations: list[tuple[int, tuple[str, int, int]]],
) -> _PendingDecl | None:
    quote = body.find("'")
    head = body if quote < 0 else body[:quote]
    range_end = _range_end(head)
    own = [entry for entry in locations if entry[0] > range_end]
    if range_end < 0 or not own:
        # <invalid sloc>: builtins and other implicit declarations.
        return None
    loc_start, location = own[0]

    after_loc = _LOCATION_TOKEN.match(head, loc_start)
    rest = head[after_loc.end():] if after_loc else ""
    rest = re.sub(r"^\s*<Spelling=.*>", "", rest)
    words = [word for word in rest.split() if word not in DECL_FLAGS]
    if not words:
        return None
    if "implicit" in rest.split():
        return None

    tail = body[body.rfind("'") + 1:].split() if quote >= 0 else []
    storage = {word for word in tail if word in {"extern", "static", "inline", "__private_extern__"}}
    has_init = any(word in {"cinit", "callinit", "listinit", "parenlistinit"} for word in tail)
    return _PendingDecl(
        depth=depth,
        kind=kind,
        name=words[-1],
        location=location,
        storage=storage,
        has_init=has_init,
    )


def _attach_child(pending: _PendingDecl, kind: str, body: str) -> None:
    if kind == "CompoundStmt":
        pending.has_body = True
        return
    if kind == "UnavailableAttr":
        pending.unavailable = True
        return
    if kind == "AsmLabelAttr":
        match = re.search(r"\"([^\"]*)\"", body)
        if match and match.group(1):
            pending.asm_label = match.group(1)
        return
    if kind == "AvailabilityAttr":
        quote = body.find('"')
        head = body if quote < 0 else body[:quote]
        range_end = _range_end(head)
        args = head[range_end + 1:].split() if range_end >= 0 else []
        args = [arg for arg in args if arg not in {"Inherited", "Implicit"}]
        if len(args) >= 4:
            pending.availability_attrs.append(args)


def _finish_decl(
    pending: _PendingDecl,
    database: HeaderDatabase,
    catalog: TargetCatalog,
    compilation_type: CompilationType,
) -> None:
    filename, line, column = pending.location
    name = pending.asm_label or pending.name
    is_extern = "static" not in pending.storage

    if pending.kind == "FunctionDecl":
        kind = FUNCTION
        is_definition = pending.has_body
    else:
        kind = VARIABLE
        if pending.has_init:
            is_definition = True
        elif "extern" in pending.storage:
            is_definition = False
        else:
            raise VersionerError(
                f"declaration '{name}' is a tentative definition at {filename}:{line}:{column} "
                f"({compilation_type.describe()})"
            )

    if pending.unavailable:
        # Declarations that exist only for compile-time diagnostics.
        return

    introduced = deprecated = obsoleted = 0
    for args in pending.availability_attrs:
        platform = args[0]
        if platform != catalog.platform:
            database.note(f"skipping non-{catalog.platform} platform {platform} for '{name}'")
            continue
        introduced = _parse_version_major(args[1]) or introduced
        deprecated = _parse_version_major(args[2]) or deprecated
        obsoleted = _parse_version_major(args[3]) or obsoleted

    location = DeclarationLocation(
        filename=filename,
        line=line,
        column=column,
        kind=kind,
        is_extern=is_extern,
        is_definition=is_definition,
        availability=DeclarationAvailability(introduced, deprecated, obsoleted),
    )
    try:
        database.add(name, location)
    except VersionerError as exc:
        raise VersionerError(f"{exc} ({compilation_type.describe()})") from exc


def parse_ast_dump(
    dump: str,
    compilation_type: CompilationType,
    catalog: TargetCatalog,
) -> HeaderDatabase:
    database = HeaderDatabase()
    tracker = _LocationTracker()
    ancestors: list[tuple[int, str]] = []
    pending: _PendingDecl | None = None

    for raw_line in dump.splitlines():
        if not raw_line.strip():
            continue
        depth, body = _split_tree_line(raw_line)
        kind = body.split(" ", 1)[0]

        quote = min([index for index in (body.find("'"), body.find('"')) if index >= 0], default=len(body))
        locations = tracker.consume(body[:quote])

        if pending is not None and depth <= pending.depth:
            _finish_decl(pending, database, catalog, compilation_type)
            pending = None
        if pending is not None and depth == pending.depth + 1:
            _attach_child(pending, kind, body)

        while ancestors and ancestors[-1][0] >= depth:
            ancestors.pop()
        file_scope = all(ancestor_kind in FILE_SCOPE_KINDS for _, ancestor_kind in ancestors)
        ancestors.append((depth, kind))

        if kind in {"FunctionDecl", "VarDecl"} and file_scope and depth > 0:
            pending = _parse_decl_line(depth, kind, body, locations)

    if pending is not None:
        _finish_decl(pending, database, catalog, compilation_type)
    return database


def build_umbrella_source(headers: Iterable[Path]) -> str:
    lines = [f'#include "{Path(header).resolve().as_posix()}"' for header in headers]
    return "\n".join(lines) + "\n"


def build_compile_command(
    compiler: str,
    catalog: TargetCatalog,
    compilation_type: CompilationType,
    search_path: Iterable[Path],
) -> list[str]:
    command = [compiler, "-x", "c", "-fsyntax-only", "-nostdlibinc"]
    for include_dir in search_path:
        command.extend(["-isystem", str(include_dir)])
    for define in catalog.defines:
        command.append(f"-D{define}")
    command.append(f"-D{catalog.api_level_macro}={compilation_type.api_level}")
    command.extend(
        [
            "-Wno-unknown-attributes",
            "-fno-color-diagnostics",
            "-target",
            catalog.triple_for(compilation_type.arch),
            "-Xclang",
            "-ast-dump",
            "-",
        ]
    )
    return command


class ClangHeaderParser:
    """Header Parser backed by clang's textual AST dump.

    One umbrella translation unit per compilation type includes every header
    of the architecture; instances hold no mutable state and are shared by
    all workers.
    """

    def __init__(self, catalog: TargetCatalog, compiler: str | None = None) -> None:
        self.catalog = catalog
        self.compiler = resolve_compiler(compiler)

    def __call__(
        self,
        compilation_type: CompilationType,
        headers: tuple[Path, ...],
        search_path: tuple[Path, ...],
    ) -> HeaderDatabase:
        command = build_compile_command(self.compiler, self.catalog, compilation_type, search_path)
        try:
            proc = subprocess.run(
                command,
                input=build_umbrella_source(headers),
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as exc:
            message = exc.stderr.strip() or exc.stdout.strip() or "unknown compiler error"
            raise VersionerError(
                f"header compilation failed for {compilation_type.describe()}. "
                f"command={format_command(command)}; error={message}"
            ) from exc
        except OSError as exc:
            raise VersionerError(f"unable to run '{self.compiler}': {exc}") from exc
        return parse_ast_dump(proc.stdout, compilation_type, self.catalog)
