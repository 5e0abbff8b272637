"""
DataView Description Lexer (Tokenizer)
======================================

This module converts layout description source text into a flat stream of
tokens for the conditional filter and the declaration parser.

Token Categories
----------------
- Identifiers: type names, field names, keywords (struct, union, enum, ...)
- Numbers: decimal, hexadecimal (0x), binary (0b), octal (0o), fractions
- Strings: "double quoted" or 'single quoted'
- Punctuation: { } [ ] ( ) : ; , = ?
- Operators: + - * / % ^ ! ~ & | < > == != && || << >> >>> <= >=
- Block comments: kept verbatim as one COMMENT token
- Directives: #if, #else, #endif, #error, #pragma (only at line start)

Line comments (// ...) are discarded. Newlines separate tokens and are
only reported as NEWLINE tokens while inside a directive line, where they
mark the end of the directive.

Directive Payloads
------------------
A pragma value is taken verbatim, so it may contain anything that is
valid in generated code:

    #pragma import({ MyInterface } from "./MyInterface")

produces DIRECTIVE('#pragma'), IDENTIFIER('import'),
BLOB('{ MyInterface } from "./MyInterface"'), NEWLINE. The text of an
#error directive is likewise delivered as a single BLOB.

Example Usage
-------------
>>> from cdv.dataview.lexer import DataViewLexer
>>> lexer = DataViewLexer('struct Point { int32_t x; };')
>>> for token in lexer.tokenize():
...     print(token)
Token(IDENTIFIER, 'struct', 1:1)
Token(IDENTIFIER, 'Point', 1:8)
Token(LBRACE, '{', 1:14)
Token(IDENTIFIER, 'int32_t', 1:16)
Token(IDENTIFIER, 'x', 1:24)
Token(SEMICOLON, ';', 1:25)
Token(RBRACE, '}', 1:27)
Token(SEMICOLON, ';', 1:28)
Token(EOF, 1:29)
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import string

from cdv.errors import SourceLocation
from cdv.dataview.errors import UnterminatedCommentError


# =============================================================================
# Token Type Enumeration
# =============================================================================

class DTokenType(Enum):
    """Token types for the layout description language."""

    # === Structural Tokens ===
    EOF = auto()            # End of input
    NEWLINE = auto()        # End of a directive line

    # === Identifiers and Literals ===
    IDENTIFIER = auto()     # Type, field and keyword names
    NUMBER = auto()         # Numeric literals (all formats)
    STRING = auto()         # String literals

    # === Preprocessor ===
    DIRECTIVE = auto()      # #if, #else, #endif, #error, #pragma, ...
    BLOB = auto()           # Raw pragma value or #error text

    # === Comments ===
    COMMENT = auto()        # /* ... */ preserved verbatim

    # === Delimiters ===
    LBRACE = auto()         # {
    RBRACE = auto()         # }
    LBRACKET = auto()       # [
    RBRACKET = auto()       # ]
    LPAREN = auto()         # (
    RPAREN = auto()         # )
    COLON = auto()          # :
    SEMICOLON = auto()      # ;
    COMMA = auto()          # ,
    ASSIGN = auto()         # =
    QUESTION = auto()       # ?

    # === Operators ===
    OPERATOR = auto()       # Arithmetic, bitwise, logical and comparison

    # === Anything Else ===
    OTHER = auto()          # Unrecognized character, reported by the parser


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class DToken:
    """
    Represents a single token from a layout description.

    Attributes:
        type: The DTokenType classification
        text: The token text as it appeared in the source (payload for BLOB)
        line: Line number in source (1-indexed)
        column: Column number in source (1-indexed)
        filename: Name of the source file
    """
    type: DTokenType
    text: str
    line: int
    column: int
    filename: str = "<input>"

    def __repr__(self) -> str:
        """Format token for debugging output."""
        if self.type == DTokenType.EOF:
            return f"Token(EOF, {self.line}:{self.column})"
        return f"Token({self.type.name}, {self.text!r}, {self.line}:{self.column})"

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)

    @property
    def directive(self) -> Optional[str]:
        """Directive keyword without the leading '#', or None."""
        if self.type != DTokenType.DIRECTIVE:
            return None
        return self.text[1:]

    def is_punct(self, text: str) -> bool:
        """Return True for a delimiter or operator token with this exact text."""
        return (
            self.type not in (
                DTokenType.IDENTIFIER,
                DTokenType.NUMBER,
                DTokenType.STRING,
                DTokenType.COMMENT,
                DTokenType.BLOB,
            )
            and self.text == text
        )


# =============================================================================
# Lexer Implementation
# =============================================================================

class DataViewLexer:
    """
    Tokenizes layout description source in a single forward pass.

    No input is rejected here except an unterminated block comment;
    anything else that does not form a token becomes an OTHER token and
    is reported by the parser with full context.

    Usage:
        lexer = DataViewLexer(source_text, filename)
        tokens = list(lexer.tokenize())

    Attributes:
        source: The source text being tokenized
        filename: Name of the source file (for error reporting)
    """

    IDENT_START = string.ascii_letters + "_$"
    IDENT_CHARS = string.ascii_letters + string.digits + "_$"

    DELIMITERS = {
        "{": DTokenType.LBRACE,
        "}": DTokenType.RBRACE,
        "[": DTokenType.LBRACKET,
        "]": DTokenType.RBRACKET,
        "(": DTokenType.LPAREN,
        ")": DTokenType.RPAREN,
        ":": DTokenType.COLON,
        ";": DTokenType.SEMICOLON,
        ",": DTokenType.COMMA,
        "?": DTokenType.QUESTION,
    }

    # Longest first so ">>>" wins over ">>" and ">"
    OPERATORS = (
        ">>>",
        "==", "!=", "&&", "||", "<<", ">>", "<=", ">=",
        "+", "-", "*", "/", "%", "^", "!", "~", "&", "|", "<", ">",
    )

    ESCAPE_SEQUENCES = {
        "n": "\n",
        "r": "\r",
        "t": "\t",
        "0": "\0",
        "\\": "\\",
        "'": "'",
        '"': '"',
    }

    def __init__(self, source: str, filename: str = "<input>"):
        """
        Initialize the lexer with source text.

        Args:
            source: The layout description to tokenize
            filename: Name of the source file (for error messages)
        """
        self.source = source
        self.filename = filename
        self.lines = source.split("\n")

        self._pos = 0
        self._line = 1
        self._column = 1

        # True from a directive keyword until the end of its line
        self._in_directive = False
        # True until the first non-blank character of the current line
        self._at_line_start = True

    def tokenize(self) -> Iterator[DToken]:
        """
        Generate tokens from the source text.

        Yields:
            DToken objects representing each lexical element

        Raises:
            UnterminatedCommentError: If a block comment is never closed
        """
        while not self._at_end():
            char = self._peek()

            if char == "\n":
                line, column = self._line, self._column
                self._advance()
                self._at_line_start = True
                if self._in_directive:
                    self._in_directive = False
                    yield self._make_token(DTokenType.NEWLINE, "\n", line, column)
                continue

            if char in " \t\r\f\v":
                self._advance()
                continue

            if char == "/" and self._peek(1) == "/":
                self._skip_line_comment()
                continue

            if char == "/" and self._peek(1) == "*":
                yield self._scan_block_comment()
                continue

            if char == "#" and self._at_line_start:
                self._at_line_start = False
                yield from self._scan_directive()
                continue

            self._at_line_start = False
            yield self._scan_token()

        if self._in_directive:
            self._in_directive = False
            yield self._make_token(DTokenType.NEWLINE, "\n")

        yield self._make_token(DTokenType.EOF, "")

    # =========================================================================
    # Character Access Methods
    # =========================================================================

    def _at_end(self) -> bool:
        """Check if we've reached the end of source."""
        return self._pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        """
        Look at character at current position + offset without advancing.

        Returns empty string if past end of source.
        """
        pos = self._pos + offset
        if pos >= len(self.source):
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Consume and return the current character, tracking line and column."""
        if self._at_end():
            return ""

        char = self.source[self._pos]
        self._pos += 1

        if char == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1

        return char

    @staticmethod
    def _is_digit(char: str) -> bool:
        """Check for a decimal digit (the empty end-of-input string is not one)."""
        return char != "" and char in string.digits

    def _make_token(
        self,
        token_type: DTokenType,
        text: str,
        start_line: Optional[int] = None,
        start_column: Optional[int] = None,
    ) -> DToken:
        """Create a token at the current or specified position."""
        return DToken(
            type=token_type,
            text=text,
            line=start_line or self._line,
            column=start_column or self._column,
            filename=self.filename,
        )

    def source_line(self, line: int) -> str:
        """Return the text of a 1-indexed source line (empty if out of range)."""
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].rstrip("\r")
        return ""

    # =========================================================================
    # Comments
    # =========================================================================

    def _skip_line_comment(self) -> None:
        """Skip a line comment, leaving the newline for the main loop."""
        while not self._at_end() and self._peek() != "\n":
            self._advance()

    def _scan_block_comment(self) -> DToken:
        """
        Scan a block comment and return it verbatim.

        Raises:
            UnterminatedCommentError: If no closing */ is found
        """
        start_line = self._line
        start_column = self._column
        start = self._pos

        self._advance()
        self._advance()

        while not self._at_end():
            if self._peek() == "*" and self._peek(1) == "/":
                self._advance()
                self._advance()
                return self._make_token(
                    DTokenType.COMMENT,
                    self.source[start:self._pos],
                    start_line,
                    start_column,
                )
            self._advance()

        raise UnterminatedCommentError(
            SourceLocation(self.filename, start_line, start_column),
            source_line=self.source_line(start_line),
        )

    # =========================================================================
    # Directives
    # =========================================================================

    def _scan_directive(self) -> Iterator[DToken]:
        """
        Scan a '#word' directive and any raw payload it carries.

        #pragma name(value) yields the value as one BLOB with balanced
        parentheses; #error yields the rest of the line as one BLOB.
        """
        start_line = self._line
        start_column = self._column
        self._advance()  # consume '#'

        while self._peek() in (" ", "\t"):
            self._advance()

        word_start = self._pos
        while self._peek() and self._peek() in self.IDENT_CHARS:
            self._advance()
        word = self.source[word_start:self._pos]

        self._in_directive = True
        yield self._make_token(DTokenType.DIRECTIVE, "#" + word, start_line, start_column)

        if word == "error":
            yield self._scan_rest_of_line()
        elif word == "pragma":
            while self._peek() in (" ", "\t"):
                self._advance()
            if self._peek() and self._peek() in self.IDENT_START:
                yield self._scan_identifier(self._line, self._column)
                while self._peek() in (" ", "\t"):
                    self._advance()
                if self._peek() == "(":
                    yield self._scan_pragma_value()

    def _scan_rest_of_line(self) -> DToken:
        """Return the remainder of the line (minus a line comment) as a BLOB."""
        start_line = self._line
        start_column = self._column
        start = self._pos
        while not self._at_end() and self._peek() != "\n":
            if self._peek() == "/" and self._peek(1) == "/":
                break
            self._advance()
        text = self.source[start:self._pos].strip()
        return self._make_token(DTokenType.BLOB, text, start_line, start_column)

    def _scan_pragma_value(self) -> DToken:
        """
        Return the text between balanced parentheses as a BLOB.

        The scan stops at the end of the line if the parentheses never
        balance; the partial value is then returned as an OTHER token
        starting with "(" so the parser can report the missing ")".
        """
        start_line = self._line
        start_column = self._column
        self._advance()  # consume '('
        start = self._pos
        depth = 1
        quote = ""

        while not self._at_end() and self._peek() != "\n":
            char = self._peek()
            if quote:
                if char == "\\":
                    self._advance()
                elif char == quote:
                    quote = ""
            elif char in "\"'`":
                quote = char
            elif char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    text = self.source[start:self._pos]
                    self._advance()  # consume ')'
                    return self._make_token(DTokenType.BLOB, text.strip(), start_line, start_column)
            self._advance()

        # Unbalanced: hand back what we have, marked by the leading "("
        return self._make_token(
            DTokenType.OTHER, "(" + self.source[start:self._pos], start_line, start_column
        )

    # =========================================================================
    # Token Scanning
    # =========================================================================

    def _scan_token(self) -> DToken:
        """Scan one ordinary token."""
        start_line = self._line
        start_column = self._column
        char = self._peek()

        if char in self.IDENT_START:
            return self._scan_identifier(start_line, start_column)

        if self._is_digit(char) or (char == "." and self._is_digit(self._peek(1))):
            return self._scan_number(start_line, start_column)

        if char in "\"'":
            return self._scan_string(start_line, start_column)

        if char in self.DELIMITERS:
            self._advance()
            return self._make_token(self.DELIMITERS[char], char, start_line, start_column)

        for operator in self.OPERATORS:
            if self.source.startswith(operator, self._pos):
                for _ in operator:
                    self._advance()
                return self._make_token(DTokenType.OPERATOR, operator, start_line, start_column)

        if char == "=":
            self._advance()
            return self._make_token(DTokenType.ASSIGN, "=", start_line, start_column)

        self._advance()
        return self._make_token(DTokenType.OTHER, char, start_line, start_column)

    def _scan_identifier(self, start_line: int, start_column: int) -> DToken:
        """Scan an identifier or keyword."""
        start = self._pos
        while self._peek() and self._peek() in self.IDENT_CHARS:
            self._advance()
        return self._make_token(
            DTokenType.IDENTIFIER, self.source[start:self._pos], start_line, start_column
        )

    def _scan_number(self, start_line: int, start_column: int) -> DToken:
        """
        Scan a numeric literal.

        Prefixed literals (0x, 0b, 0o) take their digits; decimals may have
        a fraction and an exponent. C integer suffixes (u, l) are dropped.
        """
        start = self._pos

        if self._peek() == "0" and self._peek(1) in ("x", "X", "b", "B", "o", "O"):
            self._advance()
            self._advance()
            while self._peek() and self._peek() in string.hexdigits + "_":
                self._advance()
        else:
            while self._peek() and self._peek() in string.digits + "_":
                self._advance()
            if self._peek() == "." and self._is_digit(self._peek(1)):
                self._advance()
                while self._peek() and self._peek() in string.digits:
                    self._advance()
            if self._peek() in ("e", "E") and (
                self._is_digit(self._peek(1))
                or (self._peek(1) in ("+", "-") and self._is_digit(self._peek(2)))
            ):
                self._advance()
                self._advance()
                while self._peek() and self._peek() in string.digits:
                    self._advance()

        text = self.source[start:self._pos]
        while self._peek() and self._peek() in "uUlL":
            self._advance()

        return self._make_token(DTokenType.NUMBER, text, start_line, start_column)

    def _scan_string(self, start_line: int, start_column: int) -> DToken:
        """
        Scan a quoted string and return its decoded contents.

        An unterminated string ends at the end of the line; the parser
        reports whatever follows as out of place.
        """
        quote = self._advance()
        chars = []

        while not self._at_end() and self._peek() != "\n":
            char = self._advance()
            if char == quote:
                break
            if char == "\\":
                escaped = self._advance()
                chars.append(self.ESCAPE_SEQUENCES.get(escaped, escaped))
            else:
                chars.append(char)

        return self._make_token(DTokenType.STRING, "".join(chars), start_line, start_column)


# =============================================================================
# Convenience Functions
# =============================================================================

def tokenize(source: str, filename: str = "<input>") -> list[DToken]:
    """
    Tokenize source text into a list ending with an EOF token.

    Raises:
        UnterminatedCommentError: If a block comment is never closed
    """
    return list(DataViewLexer(source, filename).tokenize())


def split(source: str) -> tuple[list[str], list[int]]:
    """
    Split source text into token texts and a parallel list of line numbers.

    This is the flat view of the token stream; the EOF token is omitted.

    Example:
        >>> split("struct A {\\n uint8_t a;\\n};")
        (['struct', 'A', '{', 'uint8_t', 'a', ';', '}', ';'], [1, 1, 1, 2, 2, 2, 3, 3])
    """
    texts = []
    lines = []
    for token in DataViewLexer(source).tokenize():
        if token.type == DTokenType.EOF:
            break
        texts.append(token.text)
        lines.append(token.line)
    return texts, lines
