# =============================================================================
# test_parser.py - Declaration Parser and Layout Tests
# =============================================================================
# Tests for the declaration parser: byte layout of structs, unions and
# enums, and error recovery.
#
# Test coverage includes:
#   - Natural alignment and the pack setting
#   - Bitfield runs and their backing words
#   - Text, padding, nested and flexible array fields
#   - Named and anonymous unions
#   - Struct inheritance and typedef
#   - Enums, enum constants in array counts
#   - One diagnostic per bad declaration, with parsing continuing after it
# =============================================================================

import pytest
from cdv.dataview.codegen import CodeGenerator
from cdv.dataview.errors import (
    DiagnosticCollector,
    DuplicateNameError,
    UnknownTypeError,
)
from cdv.dataview.lexer import DataViewLexer
from cdv.dataview.parser import DeclarationParser
from cdv.dataview.pragmas import PragmaState
from cdv.dataview.types import (
    BitfieldKind,
    FlexibleKind,
    NestedKind,
    NumericKind,
    TextKind,
    TypeKind,
    TypeRegistry,
)


# =============================================================================
# Helper Functions
# =============================================================================

class Parsed:
    """Registry, constants and errors of one parse."""

    def __init__(self, parser: DeclarationParser, registry: TypeRegistry,
                 collector: DiagnosticCollector):
        self.registry = registry
        self.constants = parser.constants
        self.errors = collector.errors

    def type(self, name: str):
        info = self.registry.lookup(name)
        assert info is not None, f"{name} was not registered"
        return info

    def fields(self, name: str) -> dict:
        return {f.name: f for f in self.type(name).fields}

    @property
    def messages(self) -> list:
        return [e.message for e in self.errors]


def parse(source: str, **settings) -> Parsed:
    """Parse a description with the given initial settings."""
    pragmas = PragmaState(**settings)
    registry = TypeRegistry()
    collector = DiagnosticCollector()
    generator = CodeGenerator(pragmas, registry)
    lexer = DataViewLexer(source, "<test>")
    parser = DeclarationParser(
        list(lexer.tokenize()), pragmas, registry, generator, collector,
        source_line=lexer.source_line,
    )
    parser.parse()
    return Parsed(parser, registry, collector)


# =============================================================================
# Basic Layout Tests
# =============================================================================

class TestBasicLayout:
    """Test offsets and sizes of simple structs."""

    def test_point(self):
        result = parse("struct Point {\n int32_t x;\n int32_t y;\n};")
        assert result.errors == []
        point = result.type("Point")
        assert point.kind == TypeKind.STRUCT
        assert point.byte_length == 8
        assert point.alignment == 4
        fields = result.fields("Point")
        assert fields["x"].byte_offset == 0
        assert fields["y"].byte_offset == 4
        assert isinstance(fields["y"].kind, NumericKind)
        assert fields["y"].kind.primitive.name == "Int32"

    def test_natural_alignment(self):
        result = parse("struct A {\n uint8_t a;\n uint32_t b;\n};")
        assert result.fields("A")["b"].byte_offset == 4
        assert result.type("A").byte_length == 8

    def test_pack_one(self):
        result = parse("struct A {\n uint8_t a;\n uint32_t b;\n};", pack=1)
        assert result.fields("A")["b"].byte_offset == 1
        assert result.type("A").byte_length == 5

    def test_pack_pragma(self):
        result = parse("#pragma pack(2)\nstruct A {\n uint8_t a;\n double d;\n};")
        assert result.fields("A")["d"].byte_offset == 2
        assert result.type("A").alignment == 2

    def test_pack_pragma_with_trailing_comment(self):
        result = parse("#pragma pack(2) /* two */\nstruct A {\n uint8_t a;\n double d;\n};")
        assert result.errors == []
        assert result.fields("A")["d"].byte_offset == 2

    def test_no_trailing_padding(self):
        """byte_length excludes tail padding; aligned_length includes it."""
        result = parse("struct A {\n uint32_t b;\n uint8_t a;\n};")
        info = result.type("A")
        assert info.byte_length == 5
        assert info.aligned_length == 8

    def test_type_aliases(self):
        result = parse("struct A {\n Uint16 a;\n double b;\n uint64_t c;\n};")
        fields = result.fields("A")
        assert fields["a"].kind.primitive.name == "Uint16"
        assert fields["b"].kind.primitive.name == "Float64"
        assert fields["c"].kind.primitive.name == "BigUint64"
        assert result.type("A").byte_length == 24

    def test_number_array(self):
        result = parse("struct A {\n uint8_t tag;\n int16_t values[3];\n};")
        values = result.fields("A")["values"]
        assert values.byte_offset == 2
        assert values.byte_count == 6
        assert values.kind.count == 3


# =============================================================================
# Bitfield Layout Tests
# =============================================================================

class TestBitfieldLayout:
    """Consecutive bitfields share one backing word."""

    def test_boolean_and_declared_bitfield(self):
        result = parse("struct Flags {\n boolean a;\n uint32_t b:3;\n};")
        assert result.errors == []
        fields = result.fields("Flags")
        assert fields["a"].kind == BitfieldKind(1, 0, 4, True)
        assert fields["b"].kind == BitfieldKind(3, 1, 4, False)
        assert fields["a"].byte_offset == fields["b"].byte_offset == 0
        assert result.type("Flags").byte_length == 4

    def test_uint_prefix_form(self):
        result = parse("struct A {\n Uint:3 a;\n Uint:3 b;\n uint8_t c;\n};")
        fields = result.fields("A")
        assert fields["a"].kind.word_bytes == 1
        assert fields["b"].kind.bit_offset == 3
        assert fields["c"].byte_offset == 1
        assert result.type("A").byte_length == 2

    def test_parenthesized_width(self):
        result = parse("struct A {\n Uint:(2 + 2) a;\n};")
        assert result.fields("A")["a"].kind.bit_count == 4

    def test_run_overflow_starts_new_word(self):
        result = parse("struct A {\n Uint:20 a;\n Uint:20 b;\n};")
        fields = result.fields("A")
        assert fields["a"].byte_offset == 0
        assert fields["a"].kind.word_bytes == 4
        assert fields["b"].byte_offset == 4
        assert fields["b"].kind.bit_offset == 0
        assert result.type("A").byte_length == 8

    def test_msb_order(self):
        result = parse("struct A {\n Uint:3 a;\n Uint:5 b;\n};", bitfields="msb")
        fields = result.fields("A")
        assert fields["a"].kind.bit_offset == 5
        assert fields["b"].kind.bit_offset == 0


# =============================================================================
# Other Field Kind Tests
# =============================================================================

class TestFieldKinds:
    """Test text, padding, nested and flexible fields."""

    def test_text(self):
        result = parse("struct A {\n char name[8];\n char c;\n uint8_t x;\n};")
        fields = result.fields("A")
        assert fields["name"].kind == TextKind(8)
        assert fields["c"].kind == TextKind(None)
        assert fields["c"].byte_offset == 8
        assert fields["x"].byte_offset == 9

    def test_padding_takes_space(self):
        result = parse("struct A {\n uint8_t __pad0[4];\n uint32_t v;\n};")
        fields = result.fields("A")
        assert fields["__pad0"].is_padding
        assert not fields["v"].is_padding
        assert fields["v"].byte_offset == 4
        assert result.type("A").byte_length == 8

    def test_nested_struct_and_array(self):
        source = (
            "struct P {\n int16_t x;\n int16_t y;\n};\n"
            "struct L {\n uint8_t tag;\n P a;\n P pts[2];\n};\n"
        )
        result = parse(source)
        assert result.errors == []
        fields = result.fields("L")
        assert fields["a"].byte_offset == 2
        assert fields["a"].kind == NestedKind(result.type("P"), None)
        assert fields["pts"].byte_offset == 6
        assert fields["pts"].byte_count == 8
        assert result.type("L").byte_length == 14
        assert result.type("L").alignment == 2

    def test_flexible_array(self):
        result = parse("struct Packet {\n uint16_t len;\n uint8_t data[];\n};")
        info = result.type("Packet")
        data = result.fields("Packet")["data"]
        assert isinstance(data.kind, FlexibleKind)
        assert data.byte_offset == 2
        assert info.has_flexible
        assert info.byte_length == 2

    def test_zero_length_array_is_flexible(self):
        result = parse("struct Packet {\n uint8_t len;\n int8_t data[0];\n};")
        assert isinstance(result.fields("Packet")["data"].kind, FlexibleKind)


# =============================================================================
# Union Tests
# =============================================================================

class TestUnions:
    """Test named and anonymous unions."""

    def test_named_union(self):
        result = parse("union U {\n uint8_t b;\n uint32_t w;\n};")
        info = result.type("U")
        assert info.kind == TypeKind.UNION
        assert info.byte_length == 4
        assert [f.byte_offset for f in info.fields] == [0, 0]

    def test_anonymous_union(self):
        source = (
            "struct S {\n"
            " uint8_t tag;\n"
            " union {\n"
            "  uint16_t s;\n"
            "  uint32_t w;\n"
            " };\n"
            " uint8_t after;\n"
            "};\n"
        )
        result = parse(source)
        assert result.errors == []
        info = result.type("S")
        assert [f.name for f in info.fields] == ["tag", "s", "w", "after"]
        fields = result.fields("S")
        assert fields["s"].byte_offset == 4
        assert fields["w"].byte_offset == 4
        assert fields["after"].byte_offset == 8
        assert info.byte_length == 9
        assert info.alignment == 4

    def test_nested_unions_rejected(self):
        source = (
            "struct S {\n"
            " union {\n"
            "  union {\n"
            "   uint8_t a;\n"
        )
        result = parse(source)
        assert "unions cannot be nested" in result.messages


# =============================================================================
# Inheritance and typedef Tests
# =============================================================================

class TestInheritance:
    """A struct can extend an earlier struct."""

    def test_child_layout(self):
        source = (
            "struct Base {\n uint32_t id;\n};\n"
            "struct Child : Base {\n uint16_t v;\n};\n"
        )
        result = parse(source)
        child = result.type("Child")
        assert child.parent == "Base"
        assert child.byte_length == 6
        assert result.fields("Child")["v"].byte_offset == 4
        assert [f.name for f in result.registry.all_fields(child)] == ["id", "v"]

    def test_inherited_name_is_duplicate(self):
        source = (
            "struct Base {\n uint32_t id;\n};\n"
            "struct Child : Base {\n uint16_t id;\n};\n"
        )
        result = parse(source)
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], DuplicateNameError)

    def test_unknown_parent(self):
        result = parse("struct Child : Missing {\n uint16_t v;\n};\n")
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], UnknownTypeError)
        assert "Child" not in result.registry

    def test_typedef(self):
        result = parse("typedef struct {\n uint8_t a;\n} Byte;\n")
        assert result.errors == []
        assert result.type("Byte").byte_length == 1

    def test_typedef_without_name(self):
        result = parse("typedef struct {\n uint8_t a;\n};\n")
        assert result.messages == ["typedef requires a name after '}'"]


# =============================================================================
# Enum Tests
# =============================================================================

class TestEnums:
    """Test enum values, backing types and constant use."""

    def test_values(self):
        result = parse("enum Color : uint8_t {\n RED,\n GREEN = 5,\n BLUE\n};")
        assert result.errors == []
        assert result.constants == {"RED": 0, "GREEN": 5, "BLUE": 6}
        info = result.type("Color")
        assert info.kind == TypeKind.ENUM
        assert info.byte_length == 1

    def test_enum_field(self):
        result = parse("enum Mode {\n OFF,\n ON\n};\nstruct A {\n Mode m;\n};")
        kind = result.fields("A")["m"].kind
        assert kind.enum_name == "Mode"
        assert kind.primitive.name == "Int32"

    def test_constants_in_array_count(self):
        result = parse("enum {\n N = 3\n};\nstruct A {\n uint8_t a[N * 2];\n};")
        assert result.errors == []
        assert result.type("A").byte_length == 6

    def test_string_value(self):
        result = parse('enum Names {\n FIRST = "a",\n SECOND = FIRST + "b"\n};')
        assert result.constants == {"FIRST": "a", "SECOND": "ab"}

    def test_implicit_value_after_string(self):
        result = parse('enum Names {\n FIRST = "a",\n SECOND\n};')
        assert result.messages == ["'SECOND' needs a value"]
        assert "Names" in result.registry

    def test_invalid_backing_type(self):
        result = parse("enum E : float {\n A\n};")
        assert result.messages == ["invalid enum backing type 'float'"]
        assert result.type("E").backing.name == "Int32"

    def test_duplicate_constant_recovery(self):
        result = parse("enum A {\n X,\n Y\n};\nenum B {\n X,\n Z\n};")
        assert len(result.errors) == 1
        assert "Z" in result.constants


# =============================================================================
# Error Recovery Tests
# =============================================================================

class TestErrorRecovery:
    """Each bad declaration produces one error and parsing continues."""

    def test_duplicate_field(self):
        source = (
            "struct A {\n uint8_t a;\n uint8_t a;\n uint8_t b;\n};\n"
            "struct B {\n uint8_t z;\n};\n"
        )
        result = parse(source)
        assert result.messages == ["duplicate field name 'a'"]
        assert list(result.fields("A")) == ["a", "b"]
        assert "B" in result.registry

    def test_duplicate_field_same_line(self):
        """The statement after a failed one on the same line still compiles."""
        result = parse("struct A { uint8_t a; uint8_t a; uint8_t b; };")
        assert len(result.errors) == 1
        assert list(result.fields("A")) == ["a", "b"]

    def test_duplicate_type(self):
        source = (
            "struct A {\n uint8_t a;\n};\n"
            "struct A {\n uint16_t b;\n};\n"
            "struct C {\n uint8_t c;\n};\n"
        )
        result = parse(source)
        assert result.messages == ["duplicate type name 'A'"]
        assert result.type("A").byte_length == 1
        assert "C" in result.registry

    def test_unknown_type(self):
        result = parse("struct A {\n Foo f;\n uint8_t b;\n};\n")
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], UnknownTypeError)
        assert result.fields("A")["b"].byte_offset == 0

    def test_unknown_type_hint(self):
        result = parse("struct A {\n uint32 f;\n};\n")
        assert "did you mean" in (result.errors[0].hint or "")

    def test_error_location(self):
        result = parse("struct A {\n uint8_t a;\n uint8_t a;\n};\n")
        error = result.errors[0]
        assert error.location.line == 3
        assert error.source_line == " uint8_t a;"

    @pytest.mark.parametrize("field,message", [
        ("uint8_t a:9;", "9 bits do not fit in Uint8"),
        ("float f:3;", "Float32 fields cannot be bitfields"),
        ("Uint a;", "Uint fields require a bit count"),
        ("Uint:3 a[2];", "bitfield arrays are not supported"),
        ("boolean b[2];", "Boolean fields cannot be arrays or bitfields"),
        ("char c:2;", "char fields cannot be bitfields"),
        ("uint16_t d[];", "flexible array member must be uint8_t or int8_t"),
        ("Uint:40 w;", "bitfield width 40 is outside 1..32"),
    ])
    def test_field_rules(self, field, message):
        result = parse(f"struct A {{\n {field}\n uint8_t ok;\n}};\n")
        assert result.messages == [message]
        assert "ok" in result.fields("A")

    def test_flexible_must_be_last(self):
        result = parse("struct A {\n uint8_t len;\n uint8_t d[];\n uint8_t e;\n};\n")
        assert result.messages == ["flexible array member 'd' must be the last field"]

    def test_flexible_struct_cannot_be_nested(self):
        source = (
            "struct Packet {\n uint8_t len;\n uint8_t data[];\n};\n"
            "struct Outer {\n uint8_t x;\n Packet p;\n};\n"
        )
        result = parse(source)
        assert result.messages == ["'Packet' ends in a flexible array member and cannot be nested"]

    def test_nested_declaration(self):
        source = (
            "struct A {\n"
            " struct B { uint8_t x; };\n"
            " uint8_t y;\n"
            "};\n"
        )
        result = parse(source)
        assert result.messages == ["cannot declare struct inside a struct"]
        assert list(result.fields("A")) == ["y"]
        assert "B" not in result.registry

    def test_empty_struct(self):
        result = parse("struct E {\n};\nstruct F {\n uint8_t f;\n};\n")
        assert result.messages == ["empty struct 'E'"]
        assert "F" in result.registry

    def test_incomplete_struct(self):
        result = parse("struct A {\n uint8_t a;\n")
        assert result.messages == ["incomplete struct at end of file"]
        assert "A" not in result.registry

    def test_unexpected_top_level(self):
        result = parse("foo;\nstruct A {\n uint8_t a;\n};\n")
        assert result.messages == ["unexpected 'foo'"]
        assert "A" in result.registry

    def test_missing_semicolon(self):
        result = parse("struct A {\n uint8_t a\n uint8_t b;\n};\n")
        assert len(result.errors) == 1
        assert "b" in result.fields("A")

    def test_language_after_declarations(self):
        source = "struct A {\n uint8_t a;\n};\n#pragma language(typescript)\n"
        result = parse(source)
        assert result.messages == ["language must be set before any declarations"]

    def test_unknown_pragma_continues(self):
        result = parse("#pragma colour(red)\nstruct A {\n uint8_t a;\n};\n")
        assert result.messages == ["unknown pragma 'colour'"]
        assert "A" in result.registry

    def test_directive_inside_struct(self):
        source = "struct A {\n#if 0\n uint8_t hidden;\n#endif\n uint8_t shown;\n};\n"
        result = parse(source)
        assert result.errors == []
        assert list(result.fields("A")) == ["shown"]

    def test_conditional_else_branch(self):
        source = "#if 0\nstruct A {\n uint8_t a;\n};\n#else\nstruct B {\n uint8_t b;\n};\n#endif\n"
        result = parse(source)
        assert "A" not in result.registry
        assert "B" in result.registry
