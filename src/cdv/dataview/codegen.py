"""
DataView Class Code Generator
=============================

This module turns resolved fields into JavaScript or TypeScript source.
The parser calls it incrementally: a class is opened when a struct starts,
every field is emitted as soon as its offset is known, and the class text
is finished when the struct closes and its size is final.

Code Generation Strategy
------------------------
Each struct becomes a class extending DataView (or the class named by
``#pragma extends``, or the parent struct). Each field becomes a getter
and a setter that read and write the underlying buffer:

| Field kind        | Getter returns                    | Setter                     |
|-------------------|-----------------------------------|----------------------------|
| number            | this.getInt32(off, littleEndian)  | this.setInt32(...)         |
| number array      | typed array or EndianArray view   | element-wise copy          |
| char / char[N]    | string (up to first zero byte)    | encode, check length, pad  |
| bitfield, Boolean | masked bits of the backing word   | read-modify-write the word |
| nested struct     | view of the nested class          | byte copy                  |
| nested array      | StructArray view                  | element-wise byte copy     |
| flexible array    | Uint8Array over rest of buffer    | copy, length checked       |

Output Dialects
---------------
Everything that differs between JavaScript and TypeScript goes through an
EmitTarget, with one method per emitted construct. The accessor bodies
themselves are identical in both dialects.

Byte Order
----------
``endian(little)`` and ``endian(big)`` become the literal ``true`` and
``false`` arguments. ``endian(host)`` with a known ``hostEndian`` does too.
With ``hostEndian(unknown)`` the generated module declares a
``hostLittleEndian`` variable that the first constructed instance fills in
by probing ``new Uint16Array([1])``.

Output Layout
-------------
    import lines
    hostLittleEndian variable (if needed)
    runtime helpers (if needed)
    enums, classes, passed-through comments and injected code
    export list (TypeScript)
    the original description as // comments
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from cdv.dataview.pragmas import PragmaState
from cdv.dataview.runtime import ENDIAN_ARRAY, HELPER_ORDER, STRUCT_ARRAY, helper_source
from cdv.dataview.types import (
    BitfieldKind,
    FieldDescriptor,
    FlexibleKind,
    NestedKind,
    NumericKind,
    Primitive,
    TextKind,
    TypeInfo,
    TypeRegistry,
)
from cdv.dataview.expressions import Value


logger = logging.getLogger(__name__)

# Indentation of class members and of statements inside them
MEMBER = "   "
BODY = MEMBER * 2
NESTED = MEMBER * 3

HOST_VARIABLE = "hostLittleEndian"


def to_hex(value: int, byte_count: int = 4) -> str:
    """
    Format value as an uppercase hexadecimal literal of at most byte_count bytes.

    Example:
        >>> to_hex(~0x30, 1)
        '0xCF'
    """
    value &= (1 << (byte_count * 8)) - 1
    return f"0x{value:X}"


def format_value(value: Value, typescript: bool = False) -> str:
    """Format a constant as a JavaScript literal."""
    if isinstance(value, bool):
        if typescript:
            return "1" if value else "0"
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, float):
        return repr(value)
    return str(value)


# =============================================================================
# Output Dialects
# =============================================================================

class EmitTarget(ABC):
    """
    Formatting of the constructs that differ between output dialects.

    Subclasses implement one method per construct; the generator never
    checks the language itself.
    """

    typescript = False

    @abstractmethod
    def annotate(self, type_name: str) -> str:
        """Type annotation suffix for a declaration (empty in JavaScript)."""
        pass

    @abstractmethod
    def class_header(
        self, name: str, base: str, implements: Optional[str], export: bool
    ) -> str:
        """Opening line of a class declaration."""
        pass

    @abstractmethod
    def constructor_header(self) -> str:
        """Opening line of the generated constructor."""
        pass

    @abstractmethod
    def enum_declaration(
        self, name: str, members: dict[str, Value], export: bool
    ) -> list[str]:
        """Complete enum declaration."""
        pass

    @abstractmethod
    def from_header(self, class_name: str, parameter_type: Optional[str]) -> str:
        """Opening line of the static from() method."""
        pass

    @abstractmethod
    def from_source(self, class_name: str, field_name: str, strict: bool) -> str:
        """Expression reading one field from the from() argument."""
        pass

    @abstractmethod
    def export_list(self, names: list[str]) -> list[str]:
        """Trailing export statement."""
        pass

    @abstractmethod
    def host_variable(self) -> str:
        """Declaration of the module-level host byte order flag."""
        pass

    @abstractmethod
    def generic(self, name: str, argument: str) -> str:
        """Instantiation of a generic helper class."""
        pass

    @abstractmethod
    def map_parameter(self, type_name: str) -> str:
        """Parameter of an Array.from() mapping callback."""
        pass

    def getter(self, name: str, type_name: str) -> str:
        """Opening line of a getter."""
        return f"get {name}(){self.annotate(type_name)} {{"

    def setter(self, name: str, type_name: str) -> str:
        """Opening line of a setter."""
        return f"set {name}(value{self.annotate(type_name)}) {{"

    def to_json_header(self) -> str:
        """Opening line of toJSON()."""
        return f"toJSON(){self.annotate('object')} {{"


class JavaScriptTarget(EmitTarget):
    """Plain JavaScript module output."""

    def annotate(self, type_name: str) -> str:
        return ""

    def class_header(self, name, base, implements, export):
        prefix = "export " if export else ""
        return f"{prefix}class {name} extends {base} {{"

    def constructor_header(self):
        return "constructor(data, offset, byteLength) {"

    def enum_declaration(self, name, members, export):
        prefix = "export " if export else ""
        lines = [f"{prefix}const {name} = Object.freeze({{"]
        for member, value in members.items():
            lines.append(f"{MEMBER}{member}: {format_value(value)},")
        lines.append("});")
        return lines

    def from_header(self, class_name, parameter_type):
        return "static from(obj) {"

    def from_source(self, class_name, field_name, strict):
        return f"obj.{field_name}"

    def export_list(self, names):
        return []

    def host_variable(self):
        return f"let {HOST_VARIABLE};"

    def generic(self, name, argument):
        return name

    def map_parameter(self, type_name):
        return "item"


class TypeScriptTarget(EmitTarget):
    """TypeScript module output; exports are collected in one trailing list."""

    typescript = True

    def annotate(self, type_name: str) -> str:
        return f": {type_name}" if type_name else ""

    def class_header(self, name, base, implements, export):
        clause = f" implements {implements}" if implements else ""
        return f"class {name} extends {base}{clause} {{"

    def constructor_header(self):
        return "constructor(data?: ArrayBufferLike, offset?: number, byteLength?: number) {"

    def enum_declaration(self, name, members, export):
        lines = [f"enum {name} {{"]
        for member, value in members.items():
            lines.append(f"{MEMBER}{member} = {format_value(value, typescript=True)},")
        lines.append("}")
        return lines

    def from_header(self, class_name, parameter_type):
        return f"static from(obj: {parameter_type or 'object'}): {class_name} {{"

    def from_source(self, class_name, field_name, strict):
        if strict:
            return f"obj.{field_name}"
        return f"(<{class_name}> obj).{field_name}"

    def export_list(self, names):
        if not names:
            return []
        return [f"export {{ {', '.join(names)} }};"]

    def host_variable(self):
        return f"let {HOST_VARIABLE}: boolean | undefined;"

    def generic(self, name, argument):
        return f"{name}<{argument}>"

    def map_parameter(self, type_name):
        return f"(item: {type_name})"


# =============================================================================
# Code Generator
# =============================================================================

@dataclass
class ClassBuffer:
    """
    Members of the class currently being generated.

    Attributes:
        name: Class name (None until a typedef name is known)
        lines: Member lines emitted so far
        uses_host_probe: A member reads hostLittleEndian
    """
    name: Optional[str]
    lines: list[str] = field(default_factory=list)
    uses_host_probe: bool = False


class CodeGenerator:
    """
    Generates DataView classes from resolved declarations.

    The generator reads the live PragmaState, so a pragma between two
    fields affects only the fields after it. Class-level settings (export,
    extends, json and friends) are read when the class closes.

    Usage:
        generator = CodeGenerator(pragmas, registry)
        generator.open_class("Point")
        generator.emit_field(descriptor)
        generator.close_class(type_info)
        code = generator.assemble(source)
    """

    def __init__(self, pragmas: PragmaState, registry: TypeRegistry):
        self.pragmas = pragmas
        self.registry = registry

        self._body: list[str] = []
        self._class: Optional[ClassBuffer] = None
        self._helpers: set[str] = set()
        self._needs_host_variable = False
        self._exports: list[str] = []

    @property
    def target(self) -> EmitTarget:
        """Dialect selected by the language pragma."""
        if self.pragmas.typescript:
            return TypeScriptTarget()
        return JavaScriptTarget()

    # =========================================================================
    # Top-Level Output
    # =========================================================================

    def _emit(self, line: str = "") -> None:
        """Emit a line into the open class, or at top level."""
        if self._class is not None:
            self._class.lines.append(line)
        else:
            self._body.append(line)

    def add_comment(self, text: str) -> None:
        """Pass a block comment through at the current position."""
        prefix = MEMBER if self._class is not None else ""
        self._emit(prefix + text)

    def inject(self, code: str) -> None:
        """Insert literal code at the current position."""
        prefix = MEMBER if self._class is not None else ""
        self._emit(prefix + code)

    def emit_enum(self, name: str, members: dict[str, Value]) -> None:
        """Emit a named enum."""
        export = self.pragmas.export
        self._body.extend(self.target.enum_declaration(name, members, export))
        self._body.append("")
        if export:
            self._exports.append(name)
        logger.debug(f"emitted enum {name} with {len(members)} members")

    # =========================================================================
    # Classes
    # =========================================================================

    def open_class(self, name: Optional[str]) -> None:
        """Start collecting members of a class."""
        self._class = ClassBuffer(name)

    def discard_class(self) -> None:
        """Drop the open class without emitting it."""
        self._class = None

    def close_class(self, info: TypeInfo) -> None:
        """
        Finish the open class now that its layout is final.

        Args:
            info: Registered type of the struct or union
        """
        buffer = self._class
        self._class = None
        if buffer is None:
            return

        target = self.target
        pragmas = self.pragmas
        length = info.byte_length
        base = info.parent or pragmas.extends

        lines = [target.class_header(info.name, base, pragmas.implements, pragmas.export)]
        if pragmas.output_byte_length:
            lines.append(f"{MEMBER}static byteLength = {length};")
            lines.append("")

        lines.append(MEMBER + target.constructor_header())
        if info.has_flexible:
            default_length = f"(data.byteLength - (offset ?? 0))"
        else:
            default_length = str(length)
        lines.append(f"{BODY}if (data)")
        lines.append(f"{NESTED}super(data, offset ?? 0, byteLength ?? {default_length});")
        lines.append(f"{BODY}else")
        if info.parent:
            lines.append(f"{NESTED}super(new ArrayBuffer({length}), 0, {length});")
        else:
            lines.append(f"{NESTED}super(new ArrayBuffer({length}));")
        if buffer.uses_host_probe:
            lines.append(f"{BODY}if (undefined === {HOST_VARIABLE})")
            lines.append(
                f"{NESTED}{HOST_VARIABLE} = !!new Uint8Array(new Uint16Array([1]).buffer)[0];"
            )
        if pragmas.check_byte_length:
            lines.append(f"{BODY}if (this.byteLength < {length})")
            lines.append(f'{NESTED}throw new RangeError("{info.name} requires {length} bytes");')
        lines.append(f"{MEMBER}}}")

        lines.extend(buffer.lines)

        if pragmas.json:
            lines.extend(self._json_methods(info))

        lines.append("}")
        lines.append("")

        self._body.extend(lines)
        if pragmas.export:
            self._exports.append(info.name)
        logger.debug(f"emitted class {info.name} ({length} bytes)")

    # =========================================================================
    # Fields
    # =========================================================================

    def emit_field(self, fd: FieldDescriptor) -> None:
        """
        Emit the accessors of one field into the open class.

        Padding fields produce nothing.
        """
        if fd.is_padding or self._class is None:
            return

        kind = fd.kind
        if isinstance(kind, NumericKind):
            accessors = self._numeric(fd, kind)
        elif isinstance(kind, TextKind):
            accessors = self._text(fd, kind)
        elif isinstance(kind, BitfieldKind):
            accessors = self._bitfield(fd, kind)
        elif isinstance(kind, NestedKind):
            accessors = self._nested(fd, kind)
        elif isinstance(kind, FlexibleKind):
            accessors = self._flexible(fd, kind)
        else:
            raise TypeError(f"unhandled field kind {kind!r}")

        get_type, get_body, set_type, set_body = accessors
        target = self.target

        if self.pragmas.get:
            self._emit(MEMBER + target.getter(fd.name, get_type))
            self._emit_block(get_body)
            self._emit(f"{MEMBER}}}")

        if self.pragmas.set:
            self._emit(MEMBER + target.setter(fd.name, set_type))
            self._emit_block(set_body)
            self._emit(f"{MEMBER}}}")

    def _emit_block(self, statements: list[str]) -> None:
        """Emit statements at body indentation; leading spaces nest further."""
        for statement in statements:
            self._emit(BODY + statement)

    def _endian(self, byte_count: int) -> str:
        """Byte order argument for a DataView call (empty for single bytes)."""
        if byte_count == 1:
            return ""
        return ", " + self._endian_value()

    def _endian_value(self) -> str:
        """Byte order as a JavaScript expression."""
        endian = self.pragmas.endian
        if endian == "host":
            host = self.pragmas.host_endian
            if host == "little":
                return "true"
            if host == "big":
                return "false"
            self._needs_host_variable = True
            if self._class is not None:
                self._class.uses_host_probe = True
            return HOST_VARIABLE
        return "true" if endian == "little" else "false"

    def _native_array(self, primitive: Primitive, offset: int) -> bool:
        """
        True if a typed array can view this numeric array directly.

        Typed arrays use the host's byte order and need element alignment.
        A struct packed below the element width may itself sit at an
        unaligned offset, so only fully aligned layouts qualify.
        """
        if primitive.byte_count == 1:
            return True
        if self.pragmas.pack < primitive.byte_count or offset % primitive.byte_count:
            return False
        endian = self.pragmas.endian
        host = self.pragmas.host_endian
        if endian == "host":
            return True
        return endian == host

    @staticmethod
    def _view_offset(offset: int) -> str:
        """Absolute buffer offset of a field as a JavaScript expression."""
        if offset == 0:
            return "this.byteOffset"
        return f"this.byteOffset + {offset}"

    def _value_type(self, kind: NumericKind) -> str:
        """TypeScript type of one numeric element."""
        return kind.enum_name or kind.primitive.value_type

    def _numeric(self, fd: FieldDescriptor, kind: NumericKind):
        """Accessors for numbers and number arrays."""
        p = kind.primitive
        off = fd.byte_offset
        endian = self._endian(p.byte_count)
        element = self._value_type(kind)

        if kind.count is None:
            return (
                element,
                [f"return this.get{p.name}({off}{endian});"],
                element,
                [f"this.set{p.name}({off}, value{endian});"],
            )

        setter = [
            f"for (let i = 0, j = {off}; i < {kind.count}; i++, j += {p.byte_count})",
            f"{MEMBER}this.set{p.name}(j, value[i]{endian});",
        ]

        if self._native_array(p, off):
            return (
                p.array_type,
                [f"return new {p.array_type}(this.buffer, {self._view_offset(off)}, {kind.count});"],
                f"ArrayLike<{element}>",
                setter,
            )

        self._helpers.add(ENDIAN_ARRAY)
        helper = self.target.generic(ENDIAN_ARRAY, p.value_type)
        return (
            helper,
            [
                f'return new {helper}(this, {off}, {kind.count}, "{p.name}", '
                f"{p.byte_count}{endian});"
            ],
            f"ArrayLike<{element}>",
            setter,
        )

    def _text(self, fd: FieldDescriptor, kind: TextKind):
        """Accessors for a character or fixed-length text buffer."""
        off = fd.byte_offset

        if kind.count is None:
            return (
                "string",
                [f"return String.fromCharCode(this.getUint8({off}));"],
                "string",
                [f"this.setUint8({off}, value.charCodeAt(0));"],
            )

        count = kind.count
        bytes_view = f"new Uint8Array(this.buffer, {self._view_offset(off)}, {count})"

        if self.pragmas.platform == "xs":
            decode = "String.fromArrayBuffer(bytes.slice(0, end).buffer)"
            encode = "new Uint8Array(ArrayBuffer.fromString(value))"
        else:
            decode = "new TextDecoder().decode(bytes.subarray(0, end))"
            encode = "new TextEncoder().encode(value)"

        getter = [
            f"const bytes = {bytes_view};",
            "let end = bytes.indexOf(0);",
            "if (end < 0)",
            f"{MEMBER}end = {count};",
            f"return {decode};",
        ]
        setter = [
            f"const encoded = {encode};",
            f"if (encoded.byteLength > {count})",
            f'{MEMBER}throw new Error("too long");',
            f"const bytes = {bytes_view};",
            "bytes.set(encoded);",
            "bytes.fill(0, encoded.byteLength);",
        ]
        return "string", getter, "string", setter

    def _bitfield(self, fd: FieldDescriptor, kind: BitfieldKind):
        """Accessors for bits inside a backing word (Boolean included)."""
        off = fd.byte_offset
        word = kind.word_bytes
        word_type = {1: "Uint8", 2: "Uint16", 4: "Uint32"}[word]
        endian = self._endian(word)
        read = f"this.get{word_type}({off}{endian})"
        value_type = "boolean" if kind.is_boolean else "number"

        if kind.bit_count == 32:
            return (
                value_type,
                [f"return {read};"],
                value_type,
                [f"this.set{word_type}({off}, value{endian});"],
            )

        shifted = kind.mask << kind.bit_offset
        clear = to_hex(~shifted, word)
        shift_right = f" >> {kind.bit_offset}" if kind.bit_offset else ""
        shift_left = f" << {kind.bit_offset}" if kind.bit_offset else ""

        if kind.is_boolean:
            getter = [f"return Boolean({read} & {to_hex(shifted, word)});"]
            setter = [
                f"const t = {read};",
                f"this.set{word_type}({off}, value ? (t | {to_hex(shifted, word)}) : (t & {clear}){endian});",
            ]
        elif kind.bit_count == 1:
            getter = [f"return ({read}{shift_right}) & 0x1;"]
            setter = [
                f"const t = {read};",
                f"this.set{word_type}({off}, (value & 1) ? (t | {to_hex(shifted, word)}) : (t & {clear}){endian});",
            ]
        else:
            mask = to_hex(kind.mask, word)
            if shift_right:
                getter = [f"return ({read}{shift_right}) & {mask};"]
            else:
                getter = [f"return {read} & {mask};"]
            setter = [
                f"const t = {read} & {clear};",
                f"this.set{word_type}({off}, t | ((value & {mask}){shift_left}){endian});",
            ]

        return value_type, getter, value_type, setter

    def _nested(self, fd: FieldDescriptor, kind: NestedKind):
        """Accessors for an embedded struct or an array of them."""
        info = kind.type_info
        off = fd.byte_offset

        if kind.count is None:
            return (
                info.name,
                [f"return new {info.name}(this.buffer, {self._view_offset(off)});"],
                info.name,
                [
                    f"for (let i = 0; i < {info.byte_length}; i++)",
                    f"{MEMBER}this.setUint8(i + {off}, value.getUint8(i));",
                ],
            )

        self._helpers.add(STRUCT_ARRAY)
        helper = self.target.generic(STRUCT_ARRAY, info.name)
        return (
            helper,
            [
                f"return new {helper}(this, {off}, {kind.count}, {info.name}, "
                f"{info.aligned_length});"
            ],
            f"ArrayLike<{info.name}>",
            [
                f"const items = this.{fd.name};",
                f"for (let i = 0; i < {kind.count}; i++)",
                f"{MEMBER}items[i] = value[i];",
            ],
        )

    def _flexible(self, fd: FieldDescriptor, kind: FlexibleKind):
        """Accessors for a trailing byte array sized by the buffer."""
        p = kind.primitive
        off = fd.byte_offset
        view = f"new {p.array_type}(this.buffer, {self._view_offset(off)}, this.byteLength - {off})"
        return (
            p.array_type,
            [f"return {view};"],
            "ArrayLike<number>",
            [
                f"const bytes = {view};",
                "if (value.length > bytes.length)",
                f'{MEMBER}throw new RangeError("too long");',
                "bytes.set(value);",
            ],
        )

    # =========================================================================
    # JSON Support
    # =========================================================================

    def _json_methods(self, info: TypeInfo) -> list[str]:
        """toJSON() and static from() for a class, inherited fields included."""
        target = self.target
        strict = self.pragmas.strict_from
        fields = [f for f in self.registry.all_fields(info) if not f.is_padding]

        lines = [MEMBER + target.to_json_header(), f"{BODY}return {{"]
        for fd in fields:
            lines.append(f"{NESTED}{fd.name}: {self._json_value(fd)},")
        lines.append(f"{BODY}}};")
        lines.append(f"{MEMBER}}}")

        assignable = [f for f in fields if not isinstance(f.kind, FlexibleKind)]
        parameter_type = None
        if strict and target.typescript:
            members = " ".join(f"{fd.name}: {self._from_type(fd)};" for fd in assignable)
            parameter_type = f"{{ {members} }}" if members else "{}"

        lines.append(MEMBER + target.from_header(info.name, parameter_type))
        lines.append(f"{BODY}const result = new {info.name};")
        for fd in assignable:
            source = target.from_source(info.name, fd.name, strict)
            assignment = f"result.{fd.name} = {self._from_value(fd, source)};"
            if strict:
                lines.append(BODY + assignment)
            else:
                lines.append(f'{BODY}if ("{fd.name}" in obj) {assignment}')
        lines.append(f"{BODY}return result;")
        lines.append(f"{MEMBER}}}")
        return lines

    @staticmethod
    def _json_value(fd: FieldDescriptor) -> str:
        """Expression serializing one field."""
        kind = fd.kind
        if isinstance(kind, NestedKind):
            if kind.count is None:
                return f"this.{fd.name}.toJSON()"
            return f"Array.from(this.{fd.name}, item => item.toJSON())"
        if isinstance(kind, FlexibleKind):
            return f"Array.from(this.{fd.name})"
        if isinstance(kind, NumericKind) and kind.count is not None:
            return f"Array.from(this.{fd.name})"
        return f"this.{fd.name}"

    def _from_value(self, fd: FieldDescriptor, source: str) -> str:
        """Expression converting one from() input into the setter's type."""
        kind = fd.kind
        if isinstance(kind, NestedKind):
            name = kind.type_info.name
            if kind.count is None:
                return f"{name}.from({source})"
            item = self.target.map_parameter("object")
            return f"Array.from({source}, {item} => {name}.from(item))"
        return source

    def _from_type(self, fd: FieldDescriptor) -> str:
        """TypeScript type of one member of a strict from() argument."""
        kind = fd.kind
        if isinstance(kind, NumericKind):
            element = self._value_type(kind)
            return element if kind.count is None else f"ArrayLike<{element}>"
        if isinstance(kind, BitfieldKind):
            return "boolean" if kind.is_boolean else "number"
        if isinstance(kind, NestedKind):
            return "object" if kind.count is None else "ArrayLike<object>"
        return "string"

    # =========================================================================
    # Final Assembly
    # =========================================================================

    def assemble(self, source: str) -> str:
        """
        Assemble the complete output module.

        Args:
            source: Original description, appended as comments when
                outputSource is enabled

        Returns:
            Generated JavaScript or TypeScript source
        """
        target = self.target
        lines = []

        for clause in self.pragmas.imports:
            lines.append(f"import {clause};")
        if self.pragmas.imports:
            lines.append("")

        if self._needs_host_variable:
            lines.append(target.host_variable())
            lines.append("")

        for name in HELPER_ORDER:
            if name in self._helpers:
                lines.extend(helper_source(name, target.typescript).splitlines())
                lines.append("")

        lines.extend(self._body)

        export = target.export_list(self._exports)
        if export:
            lines.extend(export)
            lines.append("")

        if self.pragmas.output_source:
            lines.append("/*")
            lines.append(f"{MEMBER}View classes generated by cdv from the following description:")
            lines.append("*/")
            lines.append("")
            source_lines = source.split("\n")
            if source_lines and source_lines[-1] == "":
                source_lines.pop()
            for line in source_lines:
                lines.append(f"// {line.rstrip()}")

        return "\n".join(lines).rstrip("\n") + "\n"
