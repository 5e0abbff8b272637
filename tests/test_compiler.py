# =============================================================================
# test_compiler.py - Compiler Pipeline Tests
# =============================================================================
# Tests for DataViewCompiler, CompilerOptions and compile_dataview().
#
# Test coverage includes:
#   - Clean compilation results
#   - Diagnostics rendered as a comment block
#   - Pragma overrides
#   - Independence of successive compilations
#   - The fatal unterminated comment case
#   - Compiling from a file
# =============================================================================

import pytest
from cdv.dataview import (
    CompileResult,
    CompilerOptions,
    DataViewCompiler,
    compile_dataview,
)
from cdv.dataview.errors import DiagnosticCollector, PragmaError


EXAMPLE = """\
/* Sensor record */
#pragma json(true)

enum Kind : uint8_t {
   TEMPERATURE,
   HUMIDITY
};

struct Header {
   Kind kind;
   boolean valid;
   Uint:3 channel;
   uint16_t count;
};

struct Sample : Header {
   float values[4];
   char label[8];
};
"""


# =============================================================================
# Result Tests
# =============================================================================

class TestCompileResult:
    """Test the result of a clean compile."""

    def test_example_compiles(self):
        result = compile_dataview(EXAMPLE)
        assert isinstance(result, CompileResult)
        assert result.success
        assert result.diagnostics == ""
        assert result.language == "js"
        assert result.platform == "xs"
        assert "export const Kind = Object.freeze({" in result.code
        assert "export class Header extends DataView {" in result.code
        assert "export class Sample extends Header {" in result.code
        assert "toJSON() {" in result.code

    def test_language_and_platform_from_source(self):
        result = compile_dataview("#pragma language(typescript/web)\nstruct A {\n uint8_t a;\n};\n")
        assert result.language == "ts"
        assert result.platform == "web"

    def test_empty_source(self):
        result = compile_dataview("", {"outputSource": "false"})
        assert result.success
        assert result.code == "\n"


# =============================================================================
# Diagnostic Tests
# =============================================================================

class TestDiagnostics:
    """Errors are collected and rendered, never raised."""

    def test_errors_do_not_stop_compilation(self):
        source = "struct A {\n uint8_t a;\n uint8_t a;\n};\nstruct B {\n uint8_t b;\n};\n"
        result = compile_dataview(source, filename="two.h")
        assert not result.success
        assert len(result.errors) == 1
        assert "export class A extends DataView {" in result.code
        assert "export class B extends DataView {" in result.code

    def test_diagnostic_block(self):
        source = "struct A {\n uint8_t a;\n uint8_t a;\n};\n"
        result = compile_dataview(source, filename="dup.h")
        assert result.diagnostics.startswith("/*\n")
        assert "dup.h:3:10: error: duplicate field name 'a'" in result.diagnostics
        assert "     uint8_t a;" in result.diagnostics
        assert "1 error, 0 warnings" in result.diagnostics
        assert result.diagnostics.endswith("*/\n")

    def test_unterminated_comment_is_fatal(self):
        result = compile_dataview("struct A {\n uint8_t a;\n};\n/* open", {"outputSource": "false"})
        assert len(result.errors) == 1
        assert "unterminated block comment" in result.diagnostics
        assert "class A" not in result.code

    def test_max_errors(self):
        source = "".join(f"bad{i};\n" for i in range(10))
        compiler = DataViewCompiler(CompilerOptions(max_errors=3))
        result = compiler.compile_source(source)
        assert len(result.errors) == 3

    def test_collector_report_empty(self):
        assert DiagnosticCollector().report() == ""

    def test_padding_only_struct_warns(self):
        """Warnings are reported but do not fail the compile."""
        result = compile_dataview("struct P {\n uint8_t __pad[4];\n};\n", filename="pad.h")
        assert result.success
        assert "pad.h:1:1: warning: 'P' has only padding fields" in result.diagnostics
        assert "0 errors, 1 warning" in result.diagnostics

    def test_huge_integer_is_diagnostic(self):
        source = "enum E { A = 1" + "0" * 400 + " * 1.5 };\nstruct B {\n uint8_t z;\n};\n"
        result = compile_dataview(source)
        assert len(result.errors) == 1
        assert "expression result is not finite" in result.diagnostics
        assert "class B" in result.code


# =============================================================================
# Option Tests
# =============================================================================

class TestOptions:
    """Test CompilerOptions and pragma overrides."""

    def test_defaults(self):
        options = CompilerOptions()
        assert options.filename == "<input>"
        assert options.pragma_overrides == {}
        assert options.padding_prefix == "__"

    def test_empty_padding_prefix(self):
        with pytest.raises(ValueError):
            CompilerOptions(padding_prefix="")

    def test_custom_padding_prefix(self):
        result = compile_dataview(
            "struct A {\n uint8_t reserved_a;\n uint8_t b;\n};\n",
            {"outputSource": "false"},
            padding_prefix="reserved_",
        )
        assert "reserved_a" not in result.code
        assert "get b()" in result.code

    def test_override_applies_before_source(self):
        result = compile_dataview("struct A {\n uint16_t a;\n};\n", {"endian": "big"})
        assert "return this.getUint16(0, false);" in result.code

    def test_source_pragma_wins_over_override(self):
        result = compile_dataview(
            "#pragma endian(little)\nstruct A {\n uint16_t a;\n};\n",
            {"endian": "big"},
        )
        assert "return this.getUint16(0, true);" in result.code

    def test_override_selects_conditional_branch(self):
        source = (
            "#if defined(__COMPILEDATAVIEW_TYPESCRIPT__)\n"
            "struct Ts {\n uint8_t a;\n};\n"
            "#else\n"
            "struct Js {\n uint8_t a;\n};\n"
            "#endif\n"
        )
        result = compile_dataview(source, {"language": "typescript", "outputSource": "false"})
        assert "class Ts" in result.code
        assert "class Js" not in result.code

    def test_inject_override(self):
        result = compile_dataview(
            "struct B {\n uint8_t z;\n};\n",
            {"inject": "// injected", "outputSource": "false"},
        )
        assert result.errors == []
        assert result.code.startswith("// injected\n")

    def test_invalid_override_is_diagnostic(self):
        result = compile_dataview("struct A {\n uint8_t a;\n};\n", {"endian": "sideways"})
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], PragmaError)
        assert "class A" in result.code


# =============================================================================
# Re-entrancy Tests
# =============================================================================

class TestIndependence:
    """Nothing carries over between compilations."""

    def test_same_compiler_twice(self):
        compiler = DataViewCompiler()
        first = compiler.compile_source("struct A {\n uint8_t a;\n};\n")
        second = compiler.compile_source("struct A {\n uint8_t a;\n};\n")
        assert first.success and second.success
        assert first.code == second.code

    def test_pragmas_reset(self):
        compile_dataview("#pragma language(typescript)\nstruct A {\n uint8_t a;\n};\n")
        assert compile_dataview("struct A {\n uint8_t a;\n};\n").language == "js"


# =============================================================================
# File Tests
# =============================================================================

class TestCompileFile:
    """Test compiling from the filesystem."""

    def test_compile_file(self, tmp_path):
        path = tmp_path / "point.h"
        path.write_text("struct Point {\n int32_t x;\n int32_t y;\n};\n", encoding="utf-8")
        result = DataViewCompiler().compile_file(str(path))
        assert result.success
        assert "class Point" in result.code

    def test_file_name_in_diagnostics(self, tmp_path):
        path = tmp_path / "bad.h"
        path.write_text("oops;\n", encoding="utf-8")
        result = DataViewCompiler().compile_file(str(path))
        assert f"{path}:1:1: error: unexpected 'oops'" in result.diagnostics

    def test_file_name_does_not_stick(self, tmp_path):
        path = tmp_path / "bad.h"
        path.write_text("oops;\n", encoding="utf-8")
        compiler = DataViewCompiler()
        compiler.compile_file(str(path))
        assert compiler.options.filename == "<input>"
        result = compiler.compile_source("oops;\n")
        assert "<input>:1:1: error" in result.diagnostics

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DataViewCompiler().compile_file(str(tmp_path / "missing.h"))
