"""
Declaration Parser and Layout Engine
====================================

This module parses the filtered token stream of a layout description,
computes the byte layout of every struct, union and enum, and drives the
code generator as each field and each type is resolved.

Grammar (Simplified EBNF)
-------------------------
description     ::= (declaration | pragma | comment | ';')*
declaration     ::= struct_decl | union_decl | enum_decl | typedef_decl
struct_decl     ::= 'struct' IDENTIFIER (':' IDENTIFIER)? '{' member* '}' ';'?
union_decl      ::= 'union' IDENTIFIER '{' member* '}' ';'?
typedef_decl    ::= 'typedef' ('struct' | 'union') IDENTIFIER? '{' member* '}' IDENTIFIER ';'?
enum_decl       ::= 'enum' IDENTIFIER? (':' type)? '{' (enumerator (',' enumerator)* ','?)? '}' ';'?
enumerator      ::= IDENTIFIER ('=' expression)?

member          ::= field | anonymous_union | pragma | comment | ';'
anonymous_union ::= 'union' '{' member* '}' ';'
field           ::= type IDENTIFIER ('[' expression? ']' | ':' expression)? ';'
                  | 'Uint' ':' bits IDENTIFIER ';'

Nesting
-------
Exactly one struct (or union) is open at a time; declaring a struct, enum
or typedef inside another is an error. An anonymous union is not a new
type; its members overlap inside the enclosing struct.

Layout Rules
------------
- Numbers align to min(pack, width)
- char and char[N] are byte aligned
- Consecutive bitfields share one backing word (see bitfields.py)
- Nested structs align to min(pack, nested alignment); arrays of them use
  the nested type's aligned length as stride
- A flexible array member (uint8_t data[]) must be the last field
- Fields whose name starts with the padding prefix take space but get no
  accessors

Error Recovery
--------------
Every error becomes one diagnostic. Parsing resumes at the next statement:
after the next ';', before a '}', or at the first token on a later line.
A struct whose header is invalid (duplicate name, unknown parent) is still
parsed, so its fields produce no further errors, but it is not registered.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from cdv.errors import SourceLocation
from cdv.dataview.bitfields import BitfieldRun, PendingBitfield
from cdv.dataview.codegen import CodeGenerator
from cdv.dataview.errors import (
    DataViewError,
    DataViewLayoutError,
    DataViewSyntaxError,
    DiagnosticCollector,
    DuplicateNameError,
    ExpressionError,
    UnknownTypeError,
)
from cdv.dataview.expressions import ConstantEvaluator, Value
from cdv.dataview.lexer import DToken, DTokenType
from cdv.dataview.pragmas import PragmaState
from cdv.dataview.preprocessor import ConditionalFilter
from cdv.dataview.types import (
    BITFIELD,
    BOOLEAN,
    BUILTIN_TYPE_NAMES,
    CHAR,
    MAX_BITFIELD_BITS,
    PRIMITIVES,
    BitfieldKind,
    FieldDescriptor,
    FieldKind,
    FlexibleKind,
    NestedKind,
    NumericKind,
    Primitive,
    TextKind,
    TypeInfo,
    TypeKind,
    TypeRegistry,
    align_up,
    resolve_alias,
)


logger = logging.getLogger(__name__)

# Element types allowed for a flexible array member
FLEXIBLE_TYPES = ("Int8", "Uint8")

# Keywords that begin a type declaration
DECLARATION_KEYWORDS = ("struct", "union", "enum", "typedef")


# =============================================================================
# Parse Contexts
# =============================================================================

@dataclass
class StructContext:
    """
    Layout state of the struct or union being parsed.

    Attributes:
        name: Type name (None for a typedef until its closing name is read)
        kind: STRUCT or UNION
        location: Where the declaration starts
        parent: Parent struct for inherited layouts
        cursor: Next free byte offset
        alignment: Largest field alignment so far
        field_names: Names declared so far, inherited ones included
        bitfields: Pending bitfield run
        union_width: Largest member size while inside a union, else None
        union_alignment: Largest member alignment of the open union
        union_fields: Members of an open anonymous union, at offset 0
        flexible: Name of the flexible array member, if any
        fields: Resolved fields of this type
        discard: Parse the body but do not register or emit the type
        is_typedef: Name follows the closing brace
    """
    name: Optional[str]
    kind: TypeKind
    location: SourceLocation
    parent: Optional[str] = None
    cursor: int = 0
    alignment: int = 1
    field_names: set[str] = field(default_factory=set)
    bitfields: BitfieldRun = field(default_factory=BitfieldRun)
    union_width: Optional[int] = None
    union_alignment: int = 1
    union_fields: list[FieldDescriptor] = field(default_factory=list)
    flexible: Optional[str] = None
    fields: list[FieldDescriptor] = field(default_factory=list)
    discard: bool = False
    is_typedef: bool = False

    @property
    def in_union(self) -> bool:
        """True while members overlap (named union or anonymous union)."""
        return self.union_width is not None

    @property
    def in_anonymous_union(self) -> bool:
        """True inside 'union { ... };' within a struct."""
        return self.in_union and self.kind == TypeKind.STRUCT

    def allocate(self, size: int, alignment: int) -> int:
        """
        Reserve size bytes at the given alignment.

        Inside a union every member starts at the union's beginning (offset
        0 relative to it) and only the widest member counts.

        Returns:
            Offset of the reserved bytes (relative to the union inside one)
        """
        if self.in_union:
            self.union_width = max(self.union_width, size)
            self.union_alignment = max(self.union_alignment, alignment)
            return 0
        offset = align_up(self.cursor, alignment)
        self.cursor = offset + size
        self.alignment = max(self.alignment, alignment)
        return offset


@dataclass
class EnumContext:
    """Enum being parsed: its members and the next implicit value."""
    name: Optional[str]
    backing: Primitive
    members: dict[str, Value] = field(default_factory=dict)
    next_value: Optional[int] = 0


# =============================================================================
# Parser
# =============================================================================

class DeclarationParser:
    """
    Parses layout declarations and feeds resolved fields to the generator.

    The parser owns the conditional filter and pulls tokens through it one
    at a time, so pragmas are applied before any later #if is evaluated.

    Usage:
        parser = DeclarationParser(tokens, pragmas, registry, generator, collector)
        parser.parse()
    """

    def __init__(
        self,
        tokens: Iterable[DToken],
        pragmas: PragmaState,
        registry: TypeRegistry,
        generator: CodeGenerator,
        collector: DiagnosticCollector,
        padding_prefix: str = "__",
        source_line: Callable[[int], str] = lambda line: "",
    ):
        """
        Initialize the parser.

        Args:
            tokens: Raw token stream from the lexer, ending with EOF
            pragmas: Settings for this compilation
            registry: Registry receiving declared types
            generator: Code generator receiving resolved declarations
            collector: Receives all diagnostics
            padding_prefix: Field name prefix marking layout-only fields
            source_line: Returns the text of a source line for diagnostics
        """
        self.pragmas = pragmas
        self.registry = registry
        self.generator = generator
        self.collector = collector
        self.padding_prefix = padding_prefix
        self._source_line = source_line

        self.constants: dict[str, Value] = {}
        self._filter = ConditionalFilter(
            pragmas.feature_flags, collector.add, source_line
        )
        self._stream = self._filter.filter(tokens)
        self._buffer: deque[DToken] = deque()
        self._eof: Optional[DToken] = None
        self._previous: Optional[DToken] = None
        self._consumed = 0

        self._declarations_seen = False
        self._comment_seen = False

    def parse(self) -> None:
        """Parse the whole stream, recording every error in the collector."""
        while not self.collector.should_stop():
            token = self._peek()
            if token.type == DTokenType.EOF:
                break
            start = self._consumed
            try:
                self._parse_statement()
            except DataViewError as e:
                self._record(e, token)
                self._synchronize(token.line, start)

    # =========================================================================
    # Token Access Methods
    # =========================================================================

    def _peek(self, offset: int = 0) -> DToken:
        """Look ahead without consuming; past the end, EOF is repeated."""
        while len(self._buffer) <= offset:
            if self._eof is not None:
                return self._eof
            token = next(self._stream, None)
            if token is None or token.type == DTokenType.EOF:
                self._eof = token or DToken(DTokenType.EOF, "", 0, 0)
                return self._eof
            self._buffer.append(token)
        return self._buffer[offset]

    def _advance(self) -> DToken:
        """Consume and return the current token."""
        token = self._peek()
        if token.type != DTokenType.EOF:
            self._buffer.popleft()
            self._consumed += 1
            self._previous = token
        return token

    def _check(self, text: str) -> bool:
        """True if the current token is the punctuation text."""
        return self._peek().is_punct(text)

    def _match(self, text: str) -> Optional[DToken]:
        """Consume the current token if it is the punctuation text."""
        if self._check(text):
            return self._advance()
        return None

    def _expect(self, text: str, what: Optional[str] = None) -> DToken:
        """
        Consume the punctuation text or raise.

        Raises:
            DataViewSyntaxError: If the current token is something else
        """
        if self._check(text):
            return self._advance()
        raise self._unexpected(self._peek(), what or f"'{text}'")

    def _expect_identifier(self, what: str) -> DToken:
        """Consume an identifier or raise."""
        token = self._peek()
        if token.type == DTokenType.IDENTIFIER:
            return self._advance()
        raise self._unexpected(token, what)

    def _unexpected(self, token: DToken, expected: Optional[str] = None) -> DataViewSyntaxError:
        """Build the error for an unexpected token."""
        if token.type == DTokenType.EOF:
            found = "end of file"
        elif token.type == DTokenType.NEWLINE:
            found = "end of line"
        else:
            found = f"'{token.text}'"
        message = f"expected {expected}, found {found}" if expected else f"unexpected {found}"
        return DataViewSyntaxError(message, token.location)

    def _collect(self, *stops: str) -> list[DToken]:
        """
        Consume expression tokens up to (not including) a stop punctuation.

        Parentheses and brackets nest; a stop inside them does not end the
        expression. Collection also ends at a directive, a newline or EOF.
        """
        tokens = []
        depth = 0
        while True:
            token = self._peek()
            if token.type in (DTokenType.EOF, DTokenType.DIRECTIVE, DTokenType.NEWLINE):
                return tokens
            if depth == 0 and any(token.is_punct(stop) for stop in stops):
                return tokens
            if token.is_punct("(") or token.is_punct("["):
                depth += 1
            elif (token.is_punct(")") or token.is_punct("]")) and depth > 0:
                depth -= 1
            tokens.append(self._advance())

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _record(self, error: DataViewError, token: DToken) -> None:
        """Add an error with the location and text of its source line."""
        location = error.location or token.location
        self.collector.add(error.with_context(location, self._source_line(location.line)))

    def _report(self, error: DataViewError) -> None:
        """Record an error raised without a token context."""
        location = error.location
        line = self._source_line(location.line) if location else None
        self.collector.add(error.with_context(location, line))

    def _synchronize(self, line: int, start: int, stop_at_comma: bool = False) -> None:
        """
        Skip to the next statement after an error.

        Stops after a ';' (or ',' in an enum), before a '}' or a directive,
        or at the first token of a line after the failing statement.
        Always consumes at least one token so recovery makes progress. A
        statement that failed after reading its own terminator is already
        complete.
        """
        if self._consumed == start:
            if self._peek().type != DTokenType.EOF:
                self._advance()
        elif self._previous is not None and (
            self._previous.is_punct(";")
            or self._previous.is_punct("}")
            or (stop_at_comma and self._previous.is_punct(","))
        ):
            return

        while True:
            token = self._peek()
            if token.type in (DTokenType.EOF, DTokenType.DIRECTIVE) or token.line > line:
                return
            if token.is_punct(";") or (stop_at_comma and token.is_punct(",")):
                self._advance()
                return
            if token.is_punct("}"):
                return
            self._advance()

    # =========================================================================
    # Top-Level Statements
    # =========================================================================

    def _parse_statement(self) -> None:
        """Parse one top-level statement."""
        token = self._peek()

        if token.type == DTokenType.COMMENT:
            self._advance()
            self._handle_comment(token)
        elif token.type == DTokenType.DIRECTIVE:
            self._parse_directive()
        elif token.is_punct(";"):
            self._advance()
        elif token.type == DTokenType.IDENTIFIER and token.text == "struct":
            self._parse_struct(TypeKind.STRUCT)
        elif token.type == DTokenType.IDENTIFIER and token.text == "union":
            self._parse_struct(TypeKind.UNION)
        elif token.type == DTokenType.IDENTIFIER and token.text == "enum":
            self._parse_enum()
        elif token.type == DTokenType.IDENTIFIER and token.text == "typedef":
            self._advance()
            keyword = self._peek()
            if keyword.type == DTokenType.IDENTIFIER and keyword.text == "struct":
                self._parse_struct(TypeKind.STRUCT, is_typedef=True)
            elif keyword.type == DTokenType.IDENTIFIER and keyword.text == "union":
                self._parse_struct(TypeKind.UNION, is_typedef=True)
            else:
                raise DataViewSyntaxError(
                    "typedef supports only struct and union",
                    keyword.location,
                )
        elif token.type == DTokenType.OTHER:
            raise DataViewSyntaxError(f"unexpected character '{token.text}'", token.location)
        else:
            raise DataViewSyntaxError(
                f"unexpected '{token.text}'",
                token.location,
                hint="expected struct, union, enum, typedef or #pragma",
            )

    def _handle_comment(self, token: DToken) -> None:
        """Pass a block comment through according to the comments setting."""
        first = not self._comment_seen
        self._comment_seen = True
        mode = self.pragmas.comments
        if mode == "true" or (mode == "header" and first and not self._declarations_seen):
            self.generator.add_comment(token.text)

    # =========================================================================
    # Directives
    # =========================================================================

    def _parse_directive(self) -> None:
        """
        Parse a #pragma line; any other surviving directive is an error.

        The pragma is applied before its NEWLINE is read, so the settings
        are already in effect when the next line is filtered.
        """
        directive = self._advance()
        if directive.directive != "pragma":
            raise DataViewSyntaxError(
                f"invalid preprocessor directive '{directive.text}'",
                directive.location,
                hint="supported directives are #if, #else, #endif, #error and #pragma",
            )

        name = self._peek()
        if name.type != DTokenType.IDENTIFIER:
            raise DataViewSyntaxError("expected pragma name", directive.location)
        self._advance()

        value = self._peek()
        if value.type == DTokenType.OTHER and value.text.startswith("("):
            self._advance()
            raise DataViewSyntaxError(
                f"missing ')' in pragma {name.text}",
                value.location,
            )
        if value.type != DTokenType.BLOB:
            raise DataViewSyntaxError(
                f"expected '(' after pragma {name.text}",
                name.location,
                hint=f"write #pragma {name.text}(value)",
            )
        self._advance()

        if name.text == "inject":
            self.generator.inject(value.text)
        else:
            self.pragmas.apply(name.text, value.text, self._declarations_seen)
        logger.debug(f"line {directive.line}: pragma {name.text}({value.text})")

        # End of the directive line, after any trailing comments
        while self._peek().type == DTokenType.COMMENT:
            self._advance()
        token = self._peek()
        if token.type == DTokenType.NEWLINE:
            self._advance()
        elif token.type != DTokenType.EOF:
            raise self._unexpected(token, "end of line")

    # =========================================================================
    # Structs and Unions
    # =========================================================================

    def _parse_struct(self, kind: TypeKind, is_typedef: bool = False) -> None:
        """
        Parse a struct, union or typedef declaration through its closing brace.

        Header problems are reported without abandoning the body.
        """
        keyword = self._advance()
        location = keyword.location
        name_token = None
        if self._peek().type == DTokenType.IDENTIFIER:
            name_token = self._advance()

        parent_token = None
        if self._match(":"):
            parent_token = self._expect_identifier("parent struct name")

        self._expect("{")
        self._declarations_seen = True

        name = None if is_typedef or name_token is None else name_token.text
        ctx = StructContext(name=name, kind=kind, location=location, is_typedef=is_typedef)
        if kind == TypeKind.UNION:
            ctx.union_width = 0

        self._check_header(ctx, name_token, parent_token)

        self.generator.open_class(ctx.name)
        logger.debug(f"line {keyword.line}: open {keyword.text} {ctx.name}")

        closed = self._parse_body(ctx)

        if not closed:
            self.generator.discard_class()
            return

        if is_typedef:
            self._read_typedef_name(ctx)
        self._match(";")
        self._close_struct(ctx)

    def _check_header(
        self,
        ctx: StructContext,
        name_token: Optional[DToken],
        parent_token: Optional[DToken],
    ) -> None:
        """Validate name and parent, marking the context discarded on error."""
        if not ctx.is_typedef:
            if name_token is None:
                word = "union" if ctx.kind == TypeKind.UNION else "struct"
                message = (
                    "anonymous union must be declared inside a struct"
                    if ctx.kind == TypeKind.UNION
                    else "struct requires a name"
                )
                self._report(DataViewSyntaxError(message, ctx.location))
                ctx.discard = True
                logger.debug(f"{ctx.location}: unnamed {word} discarded")
            elif name_token.text in self.registry or name_token.text in BUILTIN_TYPE_NAMES:
                self._report(DuplicateNameError("type", name_token.text, name_token.location))
                ctx.discard = True

        if parent_token is None:
            return

        parent = self.registry.lookup(parent_token.text)
        if parent is None or not parent.is_aggregate:
            self._report(UnknownTypeError(
                parent_token.text,
                parent_token.location,
                similar=self.registry.similar(parent_token.text),
            ))
            ctx.discard = True
        elif parent.has_flexible:
            self._report(DataViewLayoutError(
                f"cannot extend '{parent.name}', it ends in a flexible array member",
                parent_token.location,
            ))
            ctx.discard = True
        elif ctx.kind == TypeKind.UNION:
            self._report(DataViewSyntaxError("a union cannot extend a struct", parent_token.location))
            ctx.discard = True
        else:
            ctx.parent = parent.name
            ctx.cursor = parent.byte_length
            ctx.alignment = parent.alignment
            ctx.field_names.update(f.name for f in self.registry.all_fields(parent))

    def _read_typedef_name(self, ctx: StructContext) -> None:
        """Read the name after a typedef's closing brace."""
        token = self._peek()
        if token.type != DTokenType.IDENTIFIER:
            self._report(DataViewSyntaxError("typedef requires a name after '}'", token.location))
            ctx.discard = True
            return
        self._advance()
        if token.text in self.registry or token.text in BUILTIN_TYPE_NAMES:
            self._report(DuplicateNameError("type", token.text, token.location))
            ctx.discard = True
            return
        ctx.name = token.text

    def _parse_body(self, ctx: StructContext) -> bool:
        """
        Parse members up to the closing brace.

        Returns:
            True if the body was closed, False at end of file or when too
            many errors were collected
        """
        while not self.collector.should_stop():
            token = self._peek()
            start = self._consumed

            if token.type == DTokenType.EOF:
                word = "union" if ctx.kind == TypeKind.UNION else "struct"
                self._report(DataViewSyntaxError(
                    f"incomplete {word} at end of file",
                    ctx.location,
                    hint="add the closing '};'",
                ))
                return False

            try:
                if token.is_punct("}"):
                    self._advance()
                    if ctx.in_anonymous_union:
                        self._close_anonymous_union(ctx, token)
                        continue
                    self._flush_bitfields(ctx)
                    return True
                self._parse_member(ctx)
            except DataViewError as e:
                self._record(e, token)
                self._synchronize(token.line, start)

        return False

    def _parse_member(self, ctx: StructContext) -> None:
        """Parse one member statement inside a struct or union body."""
        token = self._peek()

        if token.type == DTokenType.COMMENT:
            self._advance()
            self._handle_comment(token)
        elif token.type == DTokenType.DIRECTIVE:
            self._parse_directive()
        elif token.is_punct(";"):
            self._advance()
        elif token.type == DTokenType.OTHER:
            raise DataViewSyntaxError(f"unexpected character '{token.text}'", token.location)
        elif token.type != DTokenType.IDENTIFIER:
            raise self._unexpected(token, "field declaration")
        elif token.text == "union" and self._peek(1).is_punct("{"):
            self._open_anonymous_union(ctx)
        elif token.text in DECLARATION_KEYWORDS:
            self._skip_nested_declaration()
            raise DataViewSyntaxError(
                f"cannot declare {token.text} inside a struct",
                token.location,
                hint="declare it before the enclosing struct and use its name as the field type",
            )
        else:
            self._parse_field(ctx)

    def _skip_nested_declaration(self) -> None:
        """Consume a nested declaration through its matching brace and ';'."""
        depth = 0
        while True:
            token = self._peek()
            if token.type == DTokenType.EOF:
                return
            if token.is_punct(";") and depth == 0:
                self._advance()
                return
            self._advance()
            if token.is_punct("{"):
                depth += 1
            elif token.is_punct("}"):
                depth -= 1
                if depth <= 0:
                    self._match(";")
                    return

    def _open_anonymous_union(self, ctx: StructContext) -> None:
        """Start overlapping members inside the open struct."""
        keyword = self._advance()
        self._advance()  # '{'
        if ctx.in_union:
            raise DataViewSyntaxError("unions cannot be nested", keyword.location)
        self._flush_bitfields(ctx)
        ctx.union_width = 0
        ctx.union_alignment = 1
        ctx.union_fields = []

    def _close_anonymous_union(self, ctx: StructContext, brace: DToken) -> None:
        """Place the members of an anonymous union in the enclosing struct."""
        self._flush_bitfields(ctx)
        width = ctx.union_width
        alignment = ctx.union_alignment
        members = ctx.union_fields
        ctx.union_width = None
        ctx.union_fields = []

        if width == 0:
            self._expect(";", "';' after anonymous union")
            raise DataViewLayoutError("empty union", brace.location)

        start = align_up(ctx.cursor, alignment)
        for fd in members:
            fd.byte_offset += start
            self._add_field(ctx, fd)
        ctx.cursor = start + align_up(width, alignment)
        ctx.alignment = max(ctx.alignment, alignment)
        logger.debug(f"anonymous union at {start}, {width} bytes")

        self._expect(";", "';' after anonymous union")

    def _close_struct(self, ctx: StructContext) -> None:
        """
        Register a completed struct or union and emit its class.

        Raises:
            DataViewLayoutError: If the type has no content
        """
        if ctx.discard or ctx.name is None:
            self.generator.discard_class()
            return

        if ctx.kind == TypeKind.UNION:
            size = ctx.union_width
            alignment = max(ctx.alignment, ctx.union_alignment)
        else:
            size = ctx.cursor
            alignment = ctx.alignment

        if size == 0:
            self.generator.discard_class()
            word = "union" if ctx.kind == TypeKind.UNION else "struct"
            raise DataViewLayoutError(f"empty {word} '{ctx.name}'", ctx.location)

        info = TypeInfo(
            name=ctx.name,
            kind=ctx.kind,
            byte_length=size,
            alignment=min(self.pragmas.pack, alignment),
            parent=ctx.parent,
            fields=ctx.fields,
            has_flexible=ctx.flexible is not None,
        )
        self.registry.register(info)
        self.generator.close_class(info)
        if ctx.fields and all(f.is_padding for f in ctx.fields):
            message = f"'{info.name}' has only padding fields"
            self.collector.add_warning(message, ctx.location)
            logger.warning(f"{ctx.location}: {message}")
        logger.debug(
            f"registered {ctx.kind.name.lower()} {info.name}: "
            f"{info.byte_length} bytes, align {info.alignment}"
        )

    # =========================================================================
    # Fields
    # =========================================================================

    def _parse_field(self, ctx: StructContext) -> None:
        """Parse 'type name [count];', 'type name : bits;' or 'Uint:bits name;'."""
        type_token = self._advance()

        bits_tokens = None
        if type_token.text == BITFIELD and self._check(":"):
            self._advance()
            if self._check("("):
                bits_tokens = [self._advance()] + self._collect(")")
                bits_tokens.append(self._expect(")"))
            else:
                bits_tokens = [self._advance()]

        name_token = self._expect_identifier("field name")

        count_tokens = None
        if self._match("["):
            count_tokens = self._collect("]")
            self._expect("]")
        elif self._check(":"):
            if bits_tokens is not None:
                raise DataViewSyntaxError("bit count given twice", self._peek().location)
            self._advance()
            bits_tokens = self._collect(";")

        self._expect(";", f"';' after field '{name_token.text}'")
        self._declare_field(ctx, type_token, name_token, count_tokens, bits_tokens)

    def _expression_scope(self) -> dict[str, Value]:
        """Identifiers visible to array counts and enum values."""
        scope = dict(self.pragmas.feature_flags())
        scope.update(self.constants)
        return scope

    def _declare_field(
        self,
        ctx: StructContext,
        type_token: DToken,
        name_token: DToken,
        count_tokens: Optional[list[DToken]],
        bits_tokens: Optional[list[DToken]],
    ) -> None:
        """
        Resolve a parsed field declaration and place it in the layout.

        Raises:
            DataViewLayoutError: For any violated layout rule
            UnknownTypeError: If the type is not built in or declared
            ExpressionError: If the count or bit width is invalid
        """
        name = name_token.text
        location = name_token.location

        if ctx.flexible is not None:
            raise DataViewLayoutError(
                f"flexible array member '{ctx.flexible}' must be the last field",
                location,
            )
        if name in ctx.field_names:
            raise DuplicateNameError("field", name, location)

        evaluator = ConstantEvaluator(self._expression_scope())

        bits = None
        if bits_tokens is not None:
            bits = evaluator.evaluate_count(bits_tokens, location, "bitfield width")
            if bits > MAX_BITFIELD_BITS:
                raise DataViewLayoutError(
                    f"bitfield width {bits} is outside 1..{MAX_BITFIELD_BITS}",
                    location,
                )

        flexible = False
        count = None
        if count_tokens is not None:
            if not count_tokens or (len(count_tokens) == 1 and count_tokens[0].text == "0"):
                flexible = True
            else:
                count = evaluator.evaluate_count(count_tokens, location)

        is_array = flexible or count is not None
        type_name = type_token.text
        alias = resolve_alias(type_name)
        padding = name.startswith(self.padding_prefix)

        if type_name == BITFIELD:
            if bits is None:
                raise DataViewLayoutError(
                    "Uint fields require a bit count",
                    location,
                    hint=f"write Uint:N {name}; or Uint {name}:N;",
                )
            if is_array:
                raise DataViewLayoutError("bitfield arrays are not supported", location)
            ctx.field_names.add(name)
            self._add_bitfield(ctx, PendingBitfield(name, bits, is_padding=padding, line=name_token.line))
            return

        if alias == BOOLEAN:
            if bits is not None or is_array:
                raise DataViewLayoutError(
                    "Boolean fields cannot be arrays or bitfields",
                    location,
                )
            ctx.field_names.add(name)
            self._add_bitfield(
                ctx, PendingBitfield(name, 1, is_boolean=True, is_padding=padding, line=name_token.line)
            )
            return

        if alias is not None:
            self._declare_numeric(ctx, name_token, PRIMITIVES[alias], None, bits, count, flexible)
            return

        if type_name == CHAR:
            if bits is not None:
                raise DataViewLayoutError("char fields cannot be bitfields", location)
            if flexible:
                raise self._flexible_type_error(location)
            ctx.field_names.add(name)
            self._place(ctx, name_token, TextKind(count), count or 1, 1)
            return

        info = self.registry.lookup(type_name)
        if info is None:
            raise UnknownTypeError(
                type_name,
                type_token.location,
                similar=self.registry.similar(type_name),
            )

        if info.kind == TypeKind.ENUM:
            self._declare_numeric(ctx, name_token, info.backing, info.name, bits, count, flexible)
            return

        if bits is not None:
            raise DataViewLayoutError(f"'{type_name}' fields cannot be bitfields", location)
        if flexible:
            raise self._flexible_type_error(location)
        if info.has_flexible:
            raise DataViewLayoutError(
                f"'{type_name}' ends in a flexible array member and cannot be nested",
                location,
            )

        ctx.field_names.add(name)
        size = info.byte_length if count is None else count * info.aligned_length
        self._place(ctx, name_token, NestedKind(info, count), size, min(self.pragmas.pack, info.alignment))

    def _declare_numeric(
        self,
        ctx: StructContext,
        name_token: DToken,
        primitive: Primitive,
        enum_name: Optional[str],
        bits: Optional[int],
        count: Optional[int],
        flexible: bool,
    ) -> None:
        """Place a number, number array, integer bitfield or flexible byte array."""
        name = name_token.text
        location = name_token.location
        padding = name.startswith(self.padding_prefix)

        if bits is not None:
            if not primitive.is_integer:
                raise DataViewLayoutError(
                    f"{primitive.name} fields cannot be bitfields",
                    location,
                    hint="bitfields require an integer type of at most 32 bits",
                )
            if count is not None or flexible:
                raise DataViewLayoutError("bitfield arrays are not supported", location)
            if bits > primitive.byte_count * 8:
                raise DataViewLayoutError(
                    f"{bits} bits do not fit in {primitive.name}",
                    location,
                )
            ctx.field_names.add(name)
            self._add_bitfield(ctx, PendingBitfield(
                name, bits, declared_bytes=primitive.byte_count, is_padding=padding, line=name_token.line
            ))
            return

        if flexible:
            if primitive.name not in FLEXIBLE_TYPES or enum_name is not None:
                raise self._flexible_type_error(location)
            if ctx.in_union:
                raise DataViewLayoutError("a union cannot contain a flexible array member", location)
            ctx.field_names.add(name)
            self._place(ctx, name_token, FlexibleKind(primitive), 0, 1)
            ctx.flexible = name
            return

        ctx.field_names.add(name)
        size = primitive.byte_count * (count or 1)
        kind = NumericKind(primitive, count, enum_name)
        self._place(ctx, name_token, kind, size, min(self.pragmas.pack, primitive.byte_count))

    @staticmethod
    def _flexible_type_error(location: SourceLocation) -> DataViewLayoutError:
        return DataViewLayoutError(
            "flexible array member must be uint8_t or int8_t",
            location,
        )

    def _place(
        self,
        ctx: StructContext,
        name_token: DToken,
        kind: FieldKind,
        size: int,
        alignment: int,
    ) -> None:
        """Allocate a non-bitfield field and hand it to the generator."""
        self._flush_bitfields(ctx)
        offset = ctx.allocate(size, alignment)
        name = name_token.text
        fd = FieldDescriptor(
            name=name,
            kind=kind,
            byte_offset=offset,
            byte_count=size,
            is_padding=name.startswith(self.padding_prefix),
            line=name_token.line,
        )
        self._add_field(ctx, fd)

    def _add_field(self, ctx: StructContext, fd: FieldDescriptor) -> None:
        """Record a placed field; anonymous union members wait for the union to close."""
        if ctx.in_anonymous_union:
            ctx.union_fields.append(fd)
            return
        ctx.fields.append(fd)
        self.generator.emit_field(fd)

    def _add_bitfield(self, ctx: StructContext, pending: PendingBitfield) -> None:
        """Add a bitfield to the run, flushing first if it would overflow."""
        if not ctx.bitfields.fits(pending.bit_count):
            self._flush_bitfields(ctx)
        ctx.bitfields.add(pending)
        if ctx.in_union:
            self._flush_bitfields(ctx)

    def _flush_bitfields(self, ctx: StructContext) -> None:
        """Allocate the backing word of the pending run and place its fields."""
        run = ctx.bitfields
        if not run:
            return

        word = run.word_bytes()
        offset = ctx.allocate(word, min(self.pragmas.pack, word))
        for pending, bit_offset in run.assign(self.pragmas.bitfields):
            kind = BitfieldKind(pending.bit_count, bit_offset, word, pending.is_boolean)
            self._add_field(ctx, FieldDescriptor(
                name=pending.name,
                kind=kind,
                byte_offset=offset,
                byte_count=word,
                is_padding=pending.is_padding,
                line=pending.line,
            ))
        logger.debug(f"flushed {len(run)} bitfields ({run.total_bits} bits) into {word}-byte word")
        run.clear()

    # =========================================================================
    # Enums
    # =========================================================================

    def _parse_enum(self) -> None:
        """Parse an enum declaration, adding its constants to the scope."""
        keyword = self._advance()
        name_token = None
        if self._peek().type == DTokenType.IDENTIFIER:
            name_token = self._advance()

        backing = PRIMITIVES["Int32"]
        if self._match(":"):
            type_token = self._expect_identifier("enum backing type")
            alias = resolve_alias(type_token.text)
            primitive = PRIMITIVES.get(alias) if alias else None
            if primitive is None or not primitive.is_integer:
                self._report(DataViewLayoutError(
                    f"invalid enum backing type '{type_token.text}'",
                    type_token.location,
                    hint="use an integer type of at most 32 bits",
                ))
            else:
                backing = primitive

        self._expect("{")
        self._declarations_seen = True

        name = name_token.text if name_token else None
        if name is not None and (name in self.registry or name in BUILTIN_TYPE_NAMES):
            self._report(DuplicateNameError("type", name, name_token.location))
            name = None

        ctx = EnumContext(name, backing)
        closed = self._parse_enum_body(ctx, keyword)
        if not closed:
            return
        self._match(";")

        if ctx.name is None:
            return

        self.registry.register(TypeInfo(
            name=ctx.name,
            kind=TypeKind.ENUM,
            byte_length=backing.byte_count,
            alignment=min(self.pragmas.pack, backing.byte_count),
            backing=backing,
        ))
        self.generator.emit_enum(ctx.name, ctx.members)
        logger.debug(f"registered enum {ctx.name} ({len(ctx.members)} members, {backing.name})")

    def _parse_enum_body(self, ctx: EnumContext, keyword: DToken) -> bool:
        """Parse enumerators up to the closing brace."""
        while not self.collector.should_stop():
            token = self._peek()
            start = self._consumed

            if token.type == DTokenType.EOF:
                self._report(DataViewSyntaxError(
                    "incomplete enum at end of file",
                    keyword.location,
                    hint="add the closing '};'",
                ))
                return False

            try:
                if token.is_punct("}"):
                    self._advance()
                    return True
                if token.type == DTokenType.COMMENT:
                    self._advance()
                    self._handle_comment(token)
                elif token.type == DTokenType.DIRECTIVE:
                    self._parse_directive()
                else:
                    self._parse_enumerator(ctx)
            except DataViewError as e:
                self._record(e, token)
                self._synchronize(token.line, start, stop_at_comma=True)

        return False

    def _parse_enumerator(self, ctx: EnumContext) -> None:
        """Parse 'NAME [= expression]' and its trailing ',' if any."""
        name_token = self._expect_identifier("enum constant name")
        name = name_token.text
        if name in self.constants:
            raise DuplicateNameError("enum constant", name, name_token.location)

        if self._match("="):
            tokens = self._collect(",", "}")
            evaluator = ConstantEvaluator(self._expression_scope())
            value = evaluator.evaluate(tokens, name_token.location)
        else:
            if ctx.next_value is None:
                raise ExpressionError(
                    f"'{name}' needs a value",
                    name_token.location,
                    hint="implicit values follow only integer constants",
                )
            value = ctx.next_value

        if not self._match(","):
            if not self._check("}"):
                raise self._unexpected(self._peek(), "',' or '}'")

        self.constants[name] = value
        ctx.members[name] = value
        if isinstance(value, int) and not isinstance(value, bool):
            ctx.next_value = value + 1
        else:
            ctx.next_value = None
