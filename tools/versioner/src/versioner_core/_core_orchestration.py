from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

from ._core_base import *  # noqa: F401,F403
from ._core_catalog import TargetCatalog, levels_by_arch
from ._core_database import DeclarationDatabase
from ._core_model import CompilationType, HeaderDatabase

HeaderParser = Callable[[CompilationType, tuple[Path, ...], tuple[Path, ...]], HeaderDatabase]


@dataclass(frozen=True)
class ArchitectureInputs:
    headers: tuple[Path, ...]
    search_path: tuple[Path, ...]


def collect_headers(header_root: Path, arch: str, catalog: TargetCatalog) -> tuple[Path, ...]:
    headers: list[Path] = []
    for path in collect_files(header_root):
        relative = path.relative_to(header_root).as_posix()
        if catalog.is_blacklisted(relative, arch):
            continue
        headers.append(path)
    return tuple(headers)


def generate_search_path(header_root: Path, dependency_root: Path | None, arch: str) -> tuple[Path, ...]:
    search_path = [header_root]
    if dependency_root is None:
        return tuple(search_path)

    require_directory(dependency_root, "dependency directory")
    layered = [dependency_root / "common", dependency_root / arch]
    if any(directory.is_dir() for directory in layered):
        for directory in layered:
            if directory.is_dir():
                search_path.extend(list_subdirectories(directory))
    else:
        search_path.extend(list_subdirectories(dependency_root))
    return tuple(search_path)


def collect_architecture_inputs(
    types: Iterable[CompilationType],
    header_root: Path,
    dependency_root: Path | None,
    catalog: TargetCatalog,
) -> dict[str, ArchitectureInputs]:
    require_directory(header_root, "header directory")
    inputs: dict[str, ArchitectureInputs] = {}
    for arch in sorted({compilation_type.arch for compilation_type in types}):
        inputs[arch] = ArchitectureInputs(
            headers=collect_headers(header_root, arch, catalog),
            search_path=generate_search_path(header_root, dependency_root, arch),
        )
    return inputs


def compile_headers(
    types: Iterable[CompilationType],
    inputs: Mapping[str, ArchitectureInputs],
    parser: HeaderParser,
    jobs: int = DEFAULT_JOBS,
) -> dict[CompilationType, HeaderDatabase]:
    """Run the header parser once per compilation type on a bounded pool.

    Submission blocks while ``jobs`` units are in flight. The first failure
    stops submission, cancels queued units and is re-raised once every
    running unit has finished, so callers never see a partial result.
    """
    if jobs < 1:
        raise VersionerError(f"jobs must be positive, got {jobs}")

    results: dict[CompilationType, HeaderDatabase] = {}
    results_lock = threading.Lock()
    failures: list[BaseException] = []
    failed = threading.Event()
    slots = threading.BoundedSemaphore(jobs)
    futures: list[Future[None]] = []

    def run_unit(compilation_type: CompilationType) -> None:
        try:
            if failed.is_set():
                return
            arch_inputs = inputs[compilation_type.arch]
            database = parser(compilation_type, arch_inputs.headers, arch_inputs.search_path)
            with results_lock:
                results[compilation_type] = database
        except BaseException:
            # Must be visible to the submitter before the slot frees up.
            failed.set()
            raise
        finally:
            slots.release()

    def on_done(future: Future[None]) -> None:
        if future.cancelled():
            # Never started, so run_unit did not release its slot.
            slots.release()
            return
        error = future.exception()
        if error is None:
            return
        with results_lock:
            failures.append(error)
        failed.set()
        for other in futures:
            other.cancel()

    with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix=TOOL_NAME) as executor:
        for compilation_type in sorted(types):
            slots.acquire()
            if failed.is_set():
                slots.release()
                break
            future = executor.submit(run_unit, compilation_type)
            futures.append(future)
            future.add_done_callback(on_done)

    if failures:
        raise failures[0]
    return results


def build_declaration_database(
    types: Iterable[CompilationType],
    header_root: Path,
    dependency_root: Path | None,
    catalog: TargetCatalog,
    parser: HeaderParser,
    jobs: int = DEFAULT_JOBS,
    verbose: bool = False,
) -> DeclarationDatabase:
    matrix = sorted(types)
    inputs = collect_architecture_inputs(matrix, header_root, dependency_root, catalog)
    per_target = compile_headers(matrix, inputs, parser, jobs=jobs)

    if verbose:
        notes = sorted({note for database in per_target.values() for note in database.notes})
        for note in notes:
            print(f"versioner: {note}", file=sys.stderr)

    return DeclarationDatabase.transpose(per_target)


def describe_targets(types: Iterable[CompilationType]) -> str:
    return "; ".join(f"{arch}: {join_values(levels)}" for arch, levels in levels_by_arch(types).items())
