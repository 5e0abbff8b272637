"""
DataView Type System
====================

This module defines the types a layout description can use, the resolved
field descriptors handed to the code generator, and the registry of
user-declared structs, unions and enums.

Built-in Types
--------------
| Description type      | DataView type | Size (bytes) |
|-----------------------|---------------|--------------|
| int8_t / Int8         | Int8          | 1            |
| uint8_t / Uint8       | Uint8         | 1            |
| int16_t / Int16       | Int16         | 2            |
| uint16_t / Uint16     | Uint16        | 2            |
| int32_t / Int32       | Int32         | 4            |
| uint32_t / Uint32     | Uint32        | 4            |
| float / Float32       | Float32       | 4            |
| double / Float64      | Float64       | 8            |
| int64_t / BigInt64    | BigInt64      | 8            |
| uint64_t / BigUint64  | BigUint64     | 8            |
| bool / boolean        | Boolean       | 1 bit        |
| char                  | (text)        | 1 per char   |
| Uint                  | (bitfield)    | N bits       |

Field Kinds
-----------
Every field resolves to exactly one FieldKind variant, and the code
generator dispatches on the variant:

- NumericKind: a fixed-width number or array of numbers (enums too)
- TextKind: a single character or fixed-length text buffer
- BitfieldKind: bits inside a backing 8/16/32-bit word (Boolean included)
- NestedKind: a previously declared struct or union, or an array of them
- FlexibleKind: trailing byte array sized by the underlying buffer
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Union
import difflib

from cdv.dataview.errors import DuplicateNameError


# =============================================================================
# Primitive Types
# =============================================================================

@dataclass(frozen=True)
class Primitive:
    """
    A DataView numeric type.

    Attributes:
        name: DataView accessor suffix (getUint16 -> "Uint16")
        byte_count: Storage width in bytes
        category: "int", "float" or "bigint"
        signed: True for signed integers and floats
    """
    name: str
    byte_count: int
    category: str
    signed: bool

    @property
    def is_integer(self) -> bool:
        """True for integers that fit a JavaScript number (bitfield capable)."""
        return self.category == "int"

    @property
    def value_type(self) -> str:
        """TypeScript type of a single element."""
        return "bigint" if self.category == "bigint" else "number"

    @property
    def array_type(self) -> str:
        """Name of the matching typed array class."""
        return f"{self.name}Array"


PRIMITIVES: dict[str, Primitive] = {
    p.name: p for p in (
        Primitive("Int8", 1, "int", True),
        Primitive("Uint8", 1, "int", False),
        Primitive("Int16", 2, "int", True),
        Primitive("Uint16", 2, "int", False),
        Primitive("Int32", 4, "int", True),
        Primitive("Uint32", 4, "int", False),
        Primitive("Float32", 4, "float", True),
        Primitive("Float64", 8, "float", True),
        Primitive("BigInt64", 8, "bigint", True),
        Primitive("BigUint64", 8, "bigint", False),
    )
}

BOOLEAN = "Boolean"
CHAR = "char"
BITFIELD = "Uint"

# Description type names mapped to DataView names
TYPE_ALIASES: dict[str, str] = {
    "int8_t": "Int8",
    "uint8_t": "Uint8",
    "int16_t": "Int16",
    "uint16_t": "Uint16",
    "int32_t": "Int32",
    "uint32_t": "Uint32",
    "int64_t": "BigInt64",
    "uint64_t": "BigUint64",
    "float": "Float32",
    "double": "Float64",
    "boolean": BOOLEAN,
    "bool": BOOLEAN,
    BOOLEAN: BOOLEAN,
}
TYPE_ALIASES.update({name: name for name in PRIMITIVES})

BUILTIN_TYPE_NAMES = frozenset(TYPE_ALIASES) | {CHAR, BITFIELD}

# Largest backing word for a bitfield run, in bits
MAX_BITFIELD_BITS = 32


def resolve_alias(name: str) -> Optional[str]:
    """Map a built-in type name to its DataView name, or None."""
    return TYPE_ALIASES.get(name)


def align_up(value: int, alignment: int) -> int:
    """Round value up to a multiple of alignment."""
    if alignment <= 1:
        return value
    return (value + alignment - 1) // alignment * alignment


# =============================================================================
# Field Kinds
# =============================================================================

@dataclass(frozen=True)
class NumericKind:
    """
    Fixed-width number, or array of them.

    Attributes:
        primitive: Element type
        count: Element count for arrays, None for a scalar
        enum_name: Enum the field was declared with, if any
    """
    primitive: Primitive
    count: Optional[int] = None
    enum_name: Optional[str] = None


@dataclass(frozen=True)
class TextKind:
    """Single character (count None) or fixed-length text buffer."""
    count: Optional[int] = None


@dataclass(frozen=True)
class BitfieldKind:
    """
    Bits within a backing word.

    Attributes:
        bit_count: Field width in bits (1..32)
        bit_offset: Position of the least significant bit within the word
        word_bytes: Backing word size (1, 2 or 4)
        is_boolean: True for Boolean fields (always one bit)
    """
    bit_count: int
    bit_offset: int
    word_bytes: int
    is_boolean: bool = False

    @property
    def mask(self) -> int:
        """Unshifted mask covering bit_count bits."""
        return (1 << self.bit_count) - 1


@dataclass(frozen=True)
class NestedKind:
    """
    Embedded struct or union.

    Attributes:
        type_info: Registered type of the embedded value
        count: Element count for arrays, None for a single value
    """
    type_info: "TypeInfo"
    count: Optional[int] = None


@dataclass(frozen=True)
class FlexibleKind:
    """Trailing byte array whose length comes from the buffer at run time."""
    primitive: Primitive


FieldKind = Union[NumericKind, TextKind, BitfieldKind, NestedKind, FlexibleKind]


@dataclass
class FieldDescriptor:
    """
    A field with its final position in the struct.

    Attributes:
        name: Field name
        kind: Resolved FieldKind variant
        byte_offset: Offset from the start of the struct
        byte_count: Bytes consumed (backing word size for bitfields)
        is_padding: Layout-only field, never emitted
        line: Source line of the declaration
    """
    name: str
    kind: FieldKind
    byte_offset: int
    byte_count: int
    is_padding: bool = False
    line: int = 0


# =============================================================================
# Type Registry
# =============================================================================

class TypeKind(Enum):
    """Kinds of user-declared types."""
    STRUCT = auto()
    UNION = auto()
    ENUM = auto()


@dataclass
class TypeInfo:
    """
    A registered user type.

    Attributes:
        name: Declared type name
        kind: Struct, union or enum
        byte_length: Size without trailing padding
        alignment: Alignment requirement (capped by pack)
        aligned_length: byte_length rounded up to alignment (array stride)
        parent: Parent struct name for inherited layouts
        fields: Resolved fields declared by this type (not the parent's)
        backing: Backing integer for enums
        has_flexible: Whether the struct ends in a flexible array member
    """
    name: str
    kind: TypeKind
    byte_length: int
    alignment: int = 1
    aligned_length: int = 0
    parent: Optional[str] = None
    fields: list[FieldDescriptor] = field(default_factory=list)
    backing: Optional[Primitive] = None
    has_flexible: bool = False

    def __post_init__(self):
        if not self.aligned_length:
            self.aligned_length = align_up(self.byte_length, self.alignment)

    @property
    def is_aggregate(self) -> bool:
        """True for structs and unions (types that become classes)."""
        return self.kind in (TypeKind.STRUCT, TypeKind.UNION)


class TypeRegistry:
    """
    Registry of user-declared types for one compilation.

    Append-only: registering a name twice raises DuplicateNameError.
    """

    def __init__(self):
        self._types: dict[str, TypeInfo] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._types

    def __len__(self) -> int:
        return len(self._types)

    def register(self, info: TypeInfo) -> None:
        """
        Add a type to the registry.

        Raises:
            DuplicateNameError: If the name is already registered or built in
        """
        if info.name in self._types or info.name in BUILTIN_TYPE_NAMES:
            raise DuplicateNameError("type", info.name)
        self._types[info.name] = info

    def lookup(self, name: str) -> Optional[TypeInfo]:
        """Return the TypeInfo for name, or None."""
        return self._types.get(name)

    def similar(self, name: str) -> list[str]:
        """Built-in or declared type names close to name, for hints."""
        candidates = list(BUILTIN_TYPE_NAMES) + list(self._types)
        return difflib.get_close_matches(name, candidates, n=3)

    def all_fields(self, info: TypeInfo) -> list[FieldDescriptor]:
        """Fields of info including those inherited from its parents, parents first."""
        chain = []
        current: Optional[TypeInfo] = info
        while current is not None:
            chain.append(current)
            current = self._types.get(current.parent) if current.parent else None
        result = []
        for item in reversed(chain):
            result.extend(item.fields)
        return result
