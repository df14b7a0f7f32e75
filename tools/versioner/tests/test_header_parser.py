from __future__ import annotations

import subprocess
import unittest
from unittest import mock
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
import versioner_core as versioner  # noqa: E402
from versioner_core import _core_parser as parser_core  # noqa: E402


SAMPLE_DUMP = """
TranslationUnitDecl 0x1 <<invalid sloc>> <invalid sloc>
|-TypedefDecl 0x2 <<invalid sloc>> <invalid sloc> implicit __int128_t '__int128'
| `-BuiltinType 0x3 '__int128'
|-FunctionDecl 0x10 </work/include/foo.h:3:1, col:51> col:6 foo 'void (void)'
| `-AvailabilityAttr 0x11 <col:21, col:49> android 14 0 0 "" "" 0
|-FunctionDecl 0x20 <line:5:1, col:40> col:5 bar 'int (int)'
| |-ParmVarDecl 0x21 <col:9, col:13> col:13 x 'int'
| `-AsmLabelAttr 0x22 <col:16, col:39> "__bar_impl"
|-FunctionDecl 0x30 <line:7:1, line:10:1> line:7:19 baz 'int (void)' static inline
| `-CompoundStmt 0x31 <col:30, line:10:1>
|   |-DeclStmt 0x34 <line:8:3, col:14>
|   | `-VarDecl 0x35 <col:3, col:13> col:7 used local 'int' cinit
|   |   `-IntegerLiteral 0x36 <col:13> 'int' 1
|   `-ReturnStmt 0x32 <line:9:3, col:10>
|     `-ImplicitCastExpr 0x37 <col:10> 'int' <LValueToRValue>
|       `-DeclRefExpr 0x38 <col:10> 'int' lvalue Var 0x35 'local' 'int'
|-VarDecl 0x40 <line:11:1, col:12> col:12 errno_value 'int' extern
|-VarDecl 0x50 </work/include/bar.h:2:1, col:26> col:18 limit 'const int' static cinit
| `-IntegerLiteral 0x51 <col:26> 'int' 4
|-FunctionDecl 0x60 <line:4:1, col:60> col:6 gone 'void (void)'
| `-UnavailableAttr 0x61 <col:20, col:58> ""
|-FunctionDecl 0x70 <line:6:1, col:70> col:6 mac_only 'void (void)'
| `-AvailabilityAttr 0x71 <col:25, col:68> macos 10 0 0 "" "" 0
`-LinkageSpecDecl 0x80 <line:8:1, line:10:1> line:8:8 C
  `-FunctionDecl 0x81 <line:9:1, col:40> col:6 wrapped 'void (void)'
    `-AvailabilityAttr 0x82 <col:20, col:38> android 21 23 0 "" "" 0
""".strip()


TENTATIVE_DUMP = """
TranslationUnitDecl 0x1 <<invalid sloc>> <invalid sloc>
`-VarDecl 0x40 </work/include/counter.h:4:1, col:5> col:5 counter 'int'
""".strip()


UNAVAILABLE_TENTATIVE_DUMP = """
TranslationUnitDecl 0x1 <<invalid sloc>> <invalid sloc>
`-VarDecl 0x40 </work/include/counter.h:6:1, col:50> col:5 retired_counter 'int'
  `-UnavailableAttr 0x41 <col:9, col:48> ""
""".strip()


REDECLARATION_DUMP = """
TranslationUnitDecl 0x1 <<invalid sloc>> <invalid sloc>
|-FunctionDecl 0x10 </work/include/time.h:4:1, col:49> col:6 clock_thing 'void (void)'
| `-AvailabilityAttr 0x11 <col:20, col:47> android 14 0 0 "" "" 0
|-FunctionDecl 0x20 prev 0x10 <line:12:1, col:24> col:6 clock_thing 'void (void)'
| `-AvailabilityAttr 0x21 <line:4:20, col:47> Inherited android 14 0 0 "" "" 0
`-VarDecl 0x30 <line:14:1, col:30> col:12 <Spelling=line:10:20> tz_alias 'char *' extern
""".strip()


class HeaderParserTests(unittest.TestCase):
    def setUp(self) -> None:
        self.catalog = versioner.DEFAULT_CATALOG
        self.compilation_type = versioner.CompilationType("arm", 21)

    def test_parse_ast_dump_collects_file_scope_declarations(self) -> None:
        database = versioner.parse_ast_dump(SAMPLE_DUMP, self.compilation_type, self.catalog)

        self.assertEqual(
            set(database.declarations),
            {"foo", "__bar_impl", "baz", "errno_value", "limit", "mac_only", "wrapped"},
        )

        foo = database.declarations["foo"].first_location()
        self.assertEqual((foo.filename, foo.line, foo.column), ("/work/include/foo.h", 3, 6))
        self.assertEqual(foo.kind, versioner.FUNCTION)
        self.assertTrue(foo.is_extern)
        self.assertFalse(foo.is_definition)
        self.assertEqual(foo.availability, versioner.DeclarationAvailability(introduced=14))

        bar = database.declarations["__bar_impl"].first_location()
        self.assertEqual((bar.line, bar.column), (5, 5))

        baz = database.declarations["baz"].first_location()
        self.assertEqual((baz.line, baz.column), (7, 19))
        self.assertTrue(baz.is_definition)
        self.assertFalse(baz.is_extern)

        errno_value = database.declarations["errno_value"].first_location()
        self.assertEqual(errno_value.kind, versioner.VARIABLE)
        self.assertFalse(errno_value.is_definition)
        self.assertTrue(errno_value.is_extern)
        self.assertEqual(errno_value.line, 11)

        limit = database.declarations["limit"].first_location()
        self.assertEqual((limit.filename, limit.line, limit.column), ("/work/include/bar.h", 2, 18))
        self.assertTrue(limit.is_definition)
        self.assertFalse(limit.is_extern)

        wrapped = database.declarations["wrapped"].first_location()
        self.assertEqual((wrapped.filename, wrapped.line), ("/work/include/bar.h", 9))
        self.assertEqual(wrapped.availability, versioner.DeclarationAvailability(introduced=21, deprecated=23))

    def test_parse_ast_dump_skips_locals_and_unavailable(self) -> None:
        database = versioner.parse_ast_dump(SAMPLE_DUMP, self.compilation_type, self.catalog)
        self.assertNotIn("local", database.declarations)
        self.assertNotIn("gone", database.declarations)
        self.assertNotIn("bar", database.declarations)

    def test_parse_ast_dump_notes_other_platform_availability(self) -> None:
        database = versioner.parse_ast_dump(SAMPLE_DUMP, self.compilation_type, self.catalog)
        self.assertTrue(database.declarations["mac_only"].first_location().availability.empty())
        self.assertIn("skipping non-android platform macos for 'mac_only'", database.notes)

    def test_tentative_definition_is_fatal_for_every_target(self) -> None:
        for compilation_type in [versioner.CompilationType("arm", 9), versioner.CompilationType("x86_64", 24)]:
            with self.assertRaises(versioner.VersionerError) as ctx:
                versioner.parse_ast_dump(TENTATIVE_DUMP, compilation_type, self.catalog)
            self.assertIn("tentative definition", str(ctx.exception))
            self.assertIn("counter", str(ctx.exception))
            self.assertIn(compilation_type.describe(), str(ctx.exception))

    def test_unavailable_tentative_definition_is_still_fatal(self) -> None:
        with self.assertRaises(versioner.VersionerError) as ctx:
            versioner.parse_ast_dump(UNAVAILABLE_TENTATIVE_DUMP, self.compilation_type, self.catalog)
        self.assertIn("retired_counter", str(ctx.exception))

    def test_redeclaration_inherits_availability(self) -> None:
        database = versioner.parse_ast_dump(REDECLARATION_DUMP, self.compilation_type, self.catalog)

        clock_thing = database.declarations["clock_thing"]
        self.assertEqual(
            [(location.filename, location.line, location.column) for location in clock_thing.sorted_locations()],
            [("/work/include/time.h", 4, 6), ("/work/include/time.h", 12, 6)],
        )
        self.assertEqual(clock_thing.resolved_availability(), versioner.DeclarationAvailability(introduced=14))
        self.assertEqual(clock_thing.kind(), versioner.FUNCTION)

    def test_macro_spelled_declaration_uses_expansion_location(self) -> None:
        database = versioner.parse_ast_dump(REDECLARATION_DUMP, self.compilation_type, self.catalog)

        tz_alias = database.declarations["tz_alias"].first_location()
        self.assertEqual((tz_alias.filename, tz_alias.line, tz_alias.column), ("/work/include/time.h", 14, 12))
        self.assertEqual(tz_alias.kind, versioner.VARIABLE)
        self.assertTrue(tz_alias.is_extern)
        self.assertFalse(tz_alias.is_definition)

    def test_build_compile_command_targets_architecture_and_level(self) -> None:
        command = versioner.build_compile_command(
            "/usr/bin/clang",
            self.catalog,
            versioner.CompilationType("arm64", 21),
            [Path("/work/include"), Path("/work/deps/common/kernel")],
        )
        self.assertEqual(command[0], "/usr/bin/clang")
        self.assertIn("-D__ANDROID_API__=21", command)
        self.assertIn("-D_FORTIFY_SOURCE=2", command)
        self.assertEqual(command[command.index("-target") + 1], "aarch64-linux-android")
        self.assertEqual(command.count("-isystem"), 2)
        self.assertEqual(command[-1], "-")

    def test_build_umbrella_source_includes_every_header(self) -> None:
        source = versioner.build_umbrella_source([Path("/work/include/a.h"), Path("/work/include/sys/b.h")])
        self.assertEqual(source, '#include "/work/include/a.h"\n#include "/work/include/sys/b.h"\n')

    def test_clang_header_parser_runs_compiler(self) -> None:
        completed = subprocess.CompletedProcess(args=["clang"], returncode=0, stdout=SAMPLE_DUMP, stderr="")
        with mock.patch.object(parser_core, "resolve_compiler", return_value="/usr/bin/clang"):
            parser = versioner.ClangHeaderParser(self.catalog)
        with mock.patch.object(parser_core.subprocess, "run", return_value=completed) as run_mock:
            database = parser(self.compilation_type, (Path("/work/include/foo.h"),), (Path("/work/include"),))

        self.assertIn("foo", database.declarations)
        kwargs = run_mock.call_args.kwargs
        self.assertIn('#include "', kwargs["input"])
        self.assertTrue(kwargs["check"])

    def test_clang_header_parser_failure_is_fatal(self) -> None:
        error = subprocess.CalledProcessError(1, ["clang"], output="", stderr="foo.h:1:1: error: boom")
        with mock.patch.object(parser_core, "resolve_compiler", return_value="/usr/bin/clang"):
            parser = versioner.ClangHeaderParser(self.catalog)
        with mock.patch.object(parser_core.subprocess, "run", side_effect=error):
            with self.assertRaises(versioner.VersionerError) as ctx:
                parser(self.compilation_type, (), (Path("/work/include"),))
        self.assertIn("arm-21", str(ctx.exception))
        self.assertIn("boom", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
