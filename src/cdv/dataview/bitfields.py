"""
Bitfield Packer
===============

Consecutive bitfields (``Uint`` fields with a bit count, integer fields
with a bit count, and ``Boolean`` fields) share one backing word. The
packer accumulates such a run and, when the run is flushed, decides the
word size and the bit position of every field.

Word Size
---------
The word is the smallest of 8, 16 or 32 bits that holds all the bits of
the run. A field declared with an explicit integer type widens the word to
at least that type, as in C, so:

    boolean a;          // 1 bit
    uint32_t b:3;       // 3 bits, declared 32-bit

packs into one 32-bit word, while ``Uint a:3; Uint b:3;`` packs into an
8-bit word.

Flushing
--------
A run is flushed when the next bitfield would take it past 32 bits, when
a non-bitfield field follows, and when the enclosing struct closes.

Bit Order
---------
With ``#pragma bitfields(lsb)`` (the default) the first field occupies
the least significant bits. With ``msb`` it occupies the most significant
bits of the word.
"""

from dataclasses import dataclass

from cdv.dataview.types import MAX_BITFIELD_BITS


@dataclass
class PendingBitfield:
    """
    A bitfield waiting for its run to be flushed.

    Attributes:
        name: Field name
        bit_count: Width in bits
        is_boolean: True for Boolean fields
        declared_bytes: Width of the declared integer type (0 for Uint/Boolean)
        is_padding: Layout-only field
        line: Source line of the declaration
    """
    name: str
    bit_count: int
    is_boolean: bool = False
    declared_bytes: int = 0
    is_padding: bool = False
    line: int = 0


class BitfieldRun:
    """
    An ordered run of bitfields destined for one backing word.

    Example:
        run = BitfieldRun()
        run.add(PendingBitfield("a", 1, is_boolean=True))
        run.add(PendingBitfield("b", 3, declared_bytes=4))
        run.word_bytes()            # 4
        run.assign("lsb")           # [(a, 0), (b, 1)]
    """

    def __init__(self):
        self.fields: list[PendingBitfield] = []

    def __len__(self) -> int:
        return len(self.fields)

    def __bool__(self) -> bool:
        return bool(self.fields)

    @property
    def total_bits(self) -> int:
        """Bits accumulated so far."""
        return sum(f.bit_count for f in self.fields)

    def fits(self, bit_count: int) -> bool:
        """True if bit_count more bits still fit in a 32-bit word."""
        return self.total_bits + bit_count <= MAX_BITFIELD_BITS

    def add(self, pending: PendingBitfield) -> None:
        """Append a bitfield; the caller flushes first if it does not fit."""
        self.fields.append(pending)

    def word_bytes(self) -> int:
        """Backing word size in bytes for the current run."""
        total = self.total_bits
        if total <= 8:
            size = 1
        elif total <= 16:
            size = 2
        else:
            size = 4
        declared = max((f.declared_bytes for f in self.fields), default=0)
        return max(size, declared)

    def assign(self, order: str = "lsb") -> list[tuple[PendingBitfield, int]]:
        """
        Compute each field's bit offset (position of its lowest bit).

        Args:
            order: "lsb" to fill from bit 0 upward, "msb" from the top down

        Returns:
            (field, bit_offset) pairs in declaration order
        """
        word_bits = self.word_bytes() * 8
        result = []
        accumulated = 0
        for pending in self.fields:
            if order == "msb":
                offset = word_bits - accumulated - pending.bit_count
            else:
                offset = accumulated
            result.append((pending, offset))
            accumulated += pending.bit_count
        return result

    def clear(self) -> None:
        """Forget the run after it has been flushed."""
        self.fields.clear()
