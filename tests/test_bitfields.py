# =============================================================================
# test_bitfields.py - Bitfield Packing Tests
# =============================================================================
# Tests for BitfieldRun: word sizing, the 32-bit limit and bit offsets in
# lsb and msb order.
# =============================================================================

from cdv.dataview.bitfields import BitfieldRun, PendingBitfield


def make_run(*widths: int) -> BitfieldRun:
    """Build a run of Uint bitfields named f0, f1, ..."""
    run = BitfieldRun()
    for i, width in enumerate(widths):
        run.add(PendingBitfield(f"f{i}", width))
    return run


# =============================================================================
# Word Size Tests
# =============================================================================

class TestWordSize:
    """The word is the smallest of 8, 16 or 32 bits that holds the run."""

    def test_byte_word(self):
        assert make_run(3, 3).word_bytes() == 1

    def test_exactly_eight_bits(self):
        assert make_run(4, 4).word_bytes() == 1

    def test_short_word(self):
        assert make_run(5, 5).word_bytes() == 2

    def test_long_word(self):
        assert make_run(16, 1).word_bytes() == 4

    def test_declared_type_widens_word(self):
        run = BitfieldRun()
        run.add(PendingBitfield("a", 1, is_boolean=True))
        run.add(PendingBitfield("b", 3, declared_bytes=4))
        assert run.total_bits == 4
        assert run.word_bytes() == 4


# =============================================================================
# Capacity Tests
# =============================================================================

class TestCapacity:
    """A run never exceeds 32 bits."""

    def test_fits(self):
        run = make_run(30)
        assert run.fits(2)
        assert not run.fits(3)

    def test_empty_run(self):
        run = BitfieldRun()
        assert not run
        assert len(run) == 0
        assert run.fits(32)

    def test_clear(self):
        run = make_run(1, 2)
        run.clear()
        assert not run
        assert run.total_bits == 0


# =============================================================================
# Bit Order Tests
# =============================================================================

class TestAssign:
    """Test bit offsets in both orders."""

    def test_lsb_order(self):
        offsets = [offset for _, offset in make_run(1, 3, 4).assign("lsb")]
        assert offsets == [0, 1, 4]

    def test_msb_order(self):
        offsets = [offset for _, offset in make_run(1, 3, 4).assign("msb")]
        assert offsets == [7, 4, 0]

    def test_msb_in_wider_word(self):
        offsets = [offset for _, offset in make_run(4, 6).assign("msb")]
        assert offsets == [12, 6]

    def test_assign_keeps_declaration_order(self):
        names = [pending.name for pending, _ in make_run(2, 2, 2).assign()]
        assert names == ["f0", "f1", "f2"]
