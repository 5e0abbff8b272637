# =============================================================================
# test_lexer.py - Description Lexer Unit Tests
# =============================================================================
# Tests for the layout description lexer/tokenizer.
#
# Test coverage includes:
#   - Identifiers, numbers, strings and punctuation
#   - Multi-character operators
#   - Line comments (dropped) and block comments (kept verbatim)
#   - Directives at line start, pragma payloads and #error text
#   - NEWLINE tokens only at the end of directive lines
#   - Line tracking and the split() flat view
#   - Unterminated block comments
# =============================================================================

import pytest
from cdv.dataview.lexer import DataViewLexer, DTokenType, split, tokenize
from cdv.dataview.errors import UnterminatedCommentError


# =============================================================================
# Helper Function
# =============================================================================

def lex(source: str) -> list:
    """Tokenize and drop the trailing EOF token."""
    return [t for t in tokenize(source, "<test>") if t.type != DTokenType.EOF]


def kinds(source: str) -> list:
    """Token types of a source, EOF excluded."""
    return [t.type for t in lex(source)]


# =============================================================================
# Basic Token Recognition Tests
# =============================================================================

class TestBasicTokens:
    """Test basic token recognition for simple inputs."""

    def test_empty_source(self):
        """Empty source produces only EOF."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type == DTokenType.EOF

    def test_struct_header(self):
        tokens = lex("struct Point {")
        assert [t.text for t in tokens] == ["struct", "Point", "{"]
        assert tokens[0].type == DTokenType.IDENTIFIER
        assert tokens[2].type == DTokenType.LBRACE

    def test_field_declaration(self):
        assert kinds("uint8_t data[4];") == [
            DTokenType.IDENTIFIER,
            DTokenType.IDENTIFIER,
            DTokenType.LBRACKET,
            DTokenType.NUMBER,
            DTokenType.RBRACKET,
            DTokenType.SEMICOLON,
        ]

    def test_bitfield_declaration(self):
        assert [t.text for t in lex("Uint:3 mode;")] == ["Uint", ":", "3", "mode", ";"]

    def test_identifier_with_dollar(self):
        tokens = lex("$value")
        assert tokens[0].type == DTokenType.IDENTIFIER
        assert tokens[0].text == "$value"

    def test_assign_is_separate_from_equality(self):
        tokens = lex("A = 1 == 1")
        assert tokens[1].type == DTokenType.ASSIGN
        assert tokens[3].type == DTokenType.OPERATOR
        assert tokens[3].text == "=="

    def test_unknown_character(self):
        """Characters outside the language become OTHER tokens."""
        tokens = lex("@")
        assert tokens[0].type == DTokenType.OTHER
        assert tokens[0].text == "@"


# =============================================================================
# Number and String Tests
# =============================================================================

class TestLiterals:
    """Test numeric and string literal scanning."""

    @pytest.mark.parametrize("source,text", [
        ("42", "42"),
        ("0x1F", "0x1F"),
        ("0b1010", "0b1010"),
        ("0o17", "0o17"),
        ("1.5", "1.5"),
        ("1e3", "1e3"),
        ("1_000", "1_000"),
    ])
    def test_number_text(self, source, text):
        tokens = lex(source)
        assert len(tokens) == 1
        assert tokens[0].type == DTokenType.NUMBER
        assert tokens[0].text == text

    def test_integer_suffix_dropped(self):
        tokens = lex("10u")
        assert len(tokens) == 1
        assert tokens[0].text == "10"

    def test_double_quoted_string(self):
        tokens = lex('"hello"')
        assert tokens[0].type == DTokenType.STRING
        assert tokens[0].text == "hello"

    def test_single_quoted_string_with_escape(self):
        tokens = lex("'a\\'b'")
        assert tokens[0].text == "a'b"


# =============================================================================
# Operator Tests
# =============================================================================

class TestOperators:
    """Multi-character operators are single tokens."""

    @pytest.mark.parametrize("op", ["==", "!=", "&&", "||", "<<", ">>", "<=", ">=", ">>>"])
    def test_multi_character_operator(self, op):
        tokens = lex(f"a {op} b")
        assert [t.text for t in tokens] == ["a", op, "b"]
        assert tokens[1].type == DTokenType.OPERATOR

    def test_operators_without_spaces(self):
        assert [t.text for t in lex("a>=b")] == ["a", ">=", "b"]

    def test_ternary_punctuation(self):
        assert kinds("a ? b : c")[1] == DTokenType.QUESTION


# =============================================================================
# Comment Tests
# =============================================================================

class TestComments:
    """Test comment handling."""

    def test_line_comment_dropped(self):
        assert [t.text for t in lex("uint8_t a; // the a field")] == ["uint8_t", "a", ";"]

    def test_block_comment_kept(self):
        tokens = lex("/* header */ struct")
        assert tokens[0].type == DTokenType.COMMENT
        assert tokens[0].text == "/* header */"
        assert tokens[1].text == "struct"

    def test_block_comment_advances_lines(self):
        tokens = lex("/* one\ntwo\n*/\nstruct")
        assert tokens[0].line == 1
        assert tokens[1].text == "struct"
        assert tokens[1].line == 4

    def test_unterminated_block_comment(self):
        with pytest.raises(UnterminatedCommentError) as exc_info:
            tokenize("struct A {\n/* never closed\n")
        assert exc_info.value.location.line == 2
        assert "unterminated block comment" in str(exc_info.value)


# =============================================================================
# Directive Tests
# =============================================================================

class TestDirectives:
    """Test #directive recognition and payloads."""

    def test_pragma_value_is_one_blob(self):
        tokens = lex('#pragma import({ Shape } from "./shape")')
        assert [t.type for t in tokens] == [
            DTokenType.DIRECTIVE,
            DTokenType.IDENTIFIER,
            DTokenType.BLOB,
            DTokenType.NEWLINE,
        ]
        assert tokens[0].directive == "pragma"
        assert tokens[1].text == "import"
        assert tokens[2].text == '{ Shape } from "./shape"'

    def test_pragma_value_with_nested_parentheses(self):
        tokens = lex("#pragma inject(static size() { return 4; })")
        assert tokens[2].text == "static size() { return 4; }"

    def test_unbalanced_pragma_value(self):
        tokens = lex("#pragma json(true\nstruct")
        assert tokens[2].type == DTokenType.OTHER
        assert tokens[2].text.startswith("(")
        assert tokens[3].type == DTokenType.NEWLINE

    def test_error_text_is_one_blob(self):
        tokens = lex("#error unsupported platform // why")
        assert tokens[0].directive == "error"
        assert tokens[1].type == DTokenType.BLOB
        assert tokens[1].text == "unsupported platform"

    def test_if_condition_tokens(self):
        tokens = lex("#if defined(__COMPILEDATAVIEW_TYPESCRIPT__)\nstruct")
        assert tokens[0].directive == "if"
        assert [t.text for t in tokens[1:5]] == ["defined", "(", "__COMPILEDATAVIEW_TYPESCRIPT__", ")"]
        assert tokens[5].type == DTokenType.NEWLINE
        assert tokens[6].text == "struct"

    def test_indented_directive(self):
        tokens = lex("   #endif")
        assert tokens[0].type == DTokenType.DIRECTIVE
        assert tokens[0].text == "#endif"

    def test_hash_not_at_line_start(self):
        """A '#' after other tokens on the line is not a directive."""
        tokens = lex("struct A # pragma")
        assert tokens[2].type == DTokenType.OTHER

    def test_newline_only_in_directives(self):
        types = kinds("struct A\n{\n uint8_t a;\n}")
        assert DTokenType.NEWLINE not in types

    def test_directive_at_end_of_input_gets_newline(self):
        assert kinds("#endif")[-1] == DTokenType.NEWLINE


# =============================================================================
# Position Tracking Tests
# =============================================================================

class TestPositions:
    """Test line and column tracking."""

    def test_columns(self):
        tokens = lex("struct Point {")
        assert [t.column for t in tokens] == [1, 8, 14]

    def test_location(self):
        token = lex("\n  uint8_t")[0]
        assert str(token.location) == "<test>:2:3"

    def test_source_line(self):
        lexer = DataViewLexer("struct A {\n  uint8_t a;\n};")
        assert lexer.source_line(2) == "  uint8_t a;"
        assert lexer.source_line(99) == ""

    def test_split(self):
        texts, lines = split("struct A {\n uint8_t a;\n};")
        assert texts == ["struct", "A", "{", "uint8_t", "a", ";", "}", ";"]
        assert lines == [1, 1, 1, 2, 2, 2, 3, 3]
