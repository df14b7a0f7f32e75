from __future__ import annotations

import contextlib
import io
import subprocess
import tempfile
import unittest
from unittest import mock
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
import versioner_core as versioner  # noqa: E402
from versioner_core import _core_symbols as symbols_core  # noqa: E402


def make_catalog(api_levels: tuple[int, ...]) -> versioner.TargetCatalog:
    return versioner.TargetCatalog(
        architectures=("arm", "arm64"),
        api_levels=api_levels,
        min_api={"arm": 9, "arm64": 21},
        triples={"arm": "arm-linux-androideabi", "arm64": "aarch64-linux-android"},
    )


def write_manifest(platform: Path, level: int, arch: str, filename: str, names: list[str]) -> Path:
    path = platform / f"android-{level}" / f"arch-{arch}" / "symbols" / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(names) + "\n", encoding="utf-8")
    return path


class PlatformSymbolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.platform = Path(self.temp_dir.name) / "platform"
        self.platform.mkdir()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_layered_manifest_falls_back_to_lower_level(self) -> None:
        catalog = make_catalog((9, 12, 14))
        level_9 = write_manifest(self.platform, 9, "arm", "libc.so.functions.txt", ["malloc"])
        # Below the floor and unsupported; must never be reached.
        write_manifest(self.platform, 5, "arm", "libc.so.functions.txt", ["ancient"])

        found = versioner.find_platform_file(
            self.platform, versioner.CompilationType("arm", 14), "libc.so.functions.txt", catalog
        )
        self.assertEqual(found, level_9)

        below_floor = versioner.find_platform_file(
            self.platform, versioner.CompilationType("arm", 8), "libc.so.functions.txt", catalog
        )
        self.assertIsNone(below_floor)

    def test_layered_manifest_prefers_nearest_level(self) -> None:
        catalog = make_catalog((9, 12, 14))
        write_manifest(self.platform, 9, "arm", "libc.so.functions.txt", ["malloc"])
        level_12 = write_manifest(self.platform, 12, "arm", "libc.so.functions.txt", ["malloc", "newer"])

        found = versioner.find_platform_file(
            self.platform, versioner.CompilationType("arm", 14), "libc.so.functions.txt", catalog
        )
        self.assertEqual(found, level_12)

    def test_read_manifest_trims_and_reports_duplicates(self) -> None:
        path = self.platform / "libm.so.variables.txt"
        path.write_text("  signgam \n\n\nsigngam\n__fe_dfl_env\n", encoding="utf-8")

        stderr = io.StringIO()
        with contextlib.redirect_stderr(stderr):
            symbols = versioner.read_manifest(path, verbose=True)

        self.assertEqual(symbols, {"signgam": versioner.VARIABLE, "__fe_dfl_env": versioner.VARIABLE})
        self.assertIn("duplicate symbol 'signgam'", stderr.getvalue())

        quiet = io.StringIO()
        with contextlib.redirect_stderr(quiet):
            versioner.read_manifest(path)
        self.assertEqual(quiet.getvalue(), "")

    def test_read_manifest_rejects_unknown_suffix(self) -> None:
        path = self.platform / "libc.so.txt"
        path.write_text("malloc\n", encoding="utf-8")
        with self.assertRaises(versioner.VersionerError):
            versioner.read_manifest(path)

    def test_build_platform_database_from_layered_manifests(self) -> None:
        catalog = make_catalog((9, 12, 21))
        write_manifest(self.platform, 9, "arm", "libc.so.functions.txt", ["malloc"])
        write_manifest(self.platform, 9, "arm", "libc.so.variables.txt", ["environ"])
        write_manifest(self.platform, 21, "arm", "libc.so.functions.txt", ["malloc", "posix_fadvise"])
        write_manifest(self.platform, 21, "arm64", "libc.so.functions.txt", ["malloc", "posix_fadvise"])

        types = versioner.generate_compilation_matrix(catalog)
        database = versioner.build_platform_database(self.platform, types, catalog)

        self.assertEqual(database.levels("malloc", "arm"), [9, 12, 21])
        self.assertEqual(database.levels("posix_fadvise", "arm"), [21])
        self.assertEqual(database.levels("environ", "arm"), [9, 12, 21])
        self.assertEqual(database.levels("environ", "arm64"), [])
        self.assertEqual(database.kind_at("environ", versioner.CompilationType("arm", 12)), versioner.VARIABLE)

    def test_detect_platform_format(self) -> None:
        self.assertEqual(versioner.detect_platform_format(self.platform), "binary")
        write_manifest(self.platform, 9, "arm", "libc.so.functions.txt", ["malloc"])
        self.assertEqual(versioner.detect_platform_format(self.platform), "manifest")

    def test_missing_platform_directory_is_fatal(self) -> None:
        catalog = make_catalog((9,))
        with self.assertRaises(versioner.VersionerError):
            versioner.build_platform_database(
                self.platform / "missing", {versioner.CompilationType("arm", 9)}, catalog
            )

    def test_binary_layout_requires_target_directory(self) -> None:
        catalog = make_catalog((9,))
        with self.assertRaises(versioner.VersionerError) as ctx:
            versioner.build_platform_database(
                self.platform, {versioner.CompilationType("arm", 9)}, catalog, platform_format="binary"
            )
        self.assertIn("arm-9", str(ctx.exception))

    def test_parse_nm_exports_classifies_kinds(self) -> None:
        nm_output = """
0000000000012340 T malloc
0000000000012350 W pthread_atfork
0000000000012360 i memcpy
0000000000020000 D environ
0000000000020010 B __progname
0000000000012370 t local_helper
0000000000012380 T versioned@@LIBC
""".strip()
        exports = versioner.parse_nm_exports(nm_output)
        self.assertEqual(
            exports,
            {
                "malloc": versioner.FUNCTION,
                "pthread_atfork": versioner.FUNCTION,
                "memcpy": versioner.FUNCTION,
                "environ": versioner.VARIABLE,
                "__progname": versioner.VARIABLE,
                "versioned": versioner.FUNCTION,
            },
        )

    def test_parse_readelf_exports_classifies_kinds(self) -> None:
        readelf_output = """
Symbol table '.dynsym' contains 6 entries:
   Num:    Value          Size Type    Bind   Vis      Ndx Name
     0: 0000000000000000     0 NOTYPE  LOCAL  DEFAULT  UND
     1: 0000000000000000     0 FUNC    GLOBAL DEFAULT  UND abort@LIBC (2)
     2: 0000000000001234    16 FUNC    GLOBAL DEFAULT   12 malloc@@LIBC
     3: 0000000000002000     8 OBJECT  GLOBAL DEFAULT   20 environ@@LIBC
     4: 0000000000001254    16 FUNC    WEAK   DEFAULT   12 pthread_atfork
     5: 0000000000001264    16 FUNC    GLOBAL HIDDEN    12 hidden_symbol
""".strip()
        exports = versioner.parse_readelf_exports(readelf_output)
        self.assertEqual(
            exports,
            {
                "malloc": versioner.FUNCTION,
                "environ": versioner.VARIABLE,
                "pthread_atfork": versioner.FUNCTION,
            },
        )

    def test_parse_objdump_exports_classifies_kinds(self) -> None:
        objdump_output = """
0000000000000000      DF *UND*  0000000000000000  Base        strlen
0000000000001234 g    DF .text  0000000000000010  LIBC        malloc
0000000000002000 g    DO .data  0000000000000008  LIBC        environ
0000000000001244 l    DF .text  0000000000000010  Base        helper
0000000000001254  w   DF .text  0000000000000010  Base        pthread_atfork
""".strip()
        exports = versioner.parse_objdump_exports(objdump_output)
        self.assertEqual(
            exports,
            {
                "malloc": versioner.FUNCTION,
                "environ": versioner.VARIABLE,
                "pthread_atfork": versioner.FUNCTION,
            },
        )

    def test_read_exports_uses_first_successful_tool(self) -> None:
        binary_path = self.platform / "libc.so"
        binary_path.write_bytes(b"\x7fELF")

        command_specs = [
            ("nm", ["nm", "-D", "--defined-only", str(binary_path)], "nm"),
            ("readelf", ["readelf", "--dyn-syms", "-W", str(binary_path)], "readelf"),
        ]
        run_results = [
            subprocess.CalledProcessError(1, command_specs[0][1], output="", stderr="nm: bad file"),
            subprocess.CompletedProcess(
                args=command_specs[1][1],
                returncode=0,
                stdout="     1: 0000000000001244 16 FUNC GLOBAL DEFAULT 12 malloc\n",
                stderr="",
            ),
        ]

        with mock.patch.object(symbols_core, "build_export_command_specs", return_value=command_specs):
            with mock.patch.object(symbols_core.shutil, "which", return_value="/usr/bin/fake-tool"):
                with mock.patch.object(symbols_core.subprocess, "run", side_effect=run_results) as run_mock:
                    exports = versioner.read_exports(binary_path)

        self.assertEqual(run_mock.call_count, 2)
        self.assertEqual(exports, {"malloc": versioner.FUNCTION})

    def test_read_exports_missing_library_is_fatal(self) -> None:
        with self.assertRaises(versioner.VersionerError):
            versioner.read_exports(self.platform / "libmissing.so")

    def test_symbol_database_transposes_targets(self) -> None:
        arm_9 = versioner.CompilationType("arm", 9)
        arm_12 = versioner.CompilationType("arm", 12)
        database = versioner.SymbolDatabase.transpose(
            {
                arm_9: {"malloc": versioner.FUNCTION},
                arm_12: {"malloc": versioner.FUNCTION, "environ": versioner.VARIABLE},
            }
        )
        self.assertEqual(database.names(), ["environ", "malloc"])
        self.assertEqual(database.symbols["malloc"], {arm_9: versioner.FUNCTION, arm_12: versioner.FUNCTION})


if __name__ == "__main__":
    unittest.main()
