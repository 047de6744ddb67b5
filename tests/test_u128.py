import pytest

from taddelivery import u128

SEQ = bytes(range(16))
ONES = b"\xff" * 16
ZERO = bytes(16)
ONE = b"\x01" + bytes(15)


def test_lrot_by_one_byte_moves_bytes_up():
    assert u128.lrot(SEQ, 8) == SEQ[15:] + SEQ[:15]


def test_rrot_by_one_byte_moves_bytes_down():
    assert u128.rrot(SEQ, 8) == SEQ[1:] + SEQ[:1]


@pytest.mark.parametrize("shift", [0, 1, 3, 7, 8, 13, 64, 100, 127, 128, 130])
def test_rotations_are_inverse(shift):
    value = bytes((i * 37 + 11) & 0xFF for i in range(16))
    assert u128.rrot(u128.lrot(value, shift), shift) == value


def test_rotation_by_full_width_is_identity():
    assert u128.lrot(SEQ, 128) == SEQ
    assert u128.lrot(SEQ, 130) == u128.lrot(SEQ, 2)


def test_lrot_single_bit_wraps_top_bit():
    top = bytes(15) + b"\x80"
    assert u128.lrot(top, 1) == ONE


def test_bitwise_operations():
    assert u128.xor(SEQ, SEQ) == ZERO
    assert u128.or_(SEQ, ZERO) == SEQ
    assert u128.and_(SEQ, ONES) == SEQ
    assert u128.and_(SEQ, ZERO) == ZERO


def test_add_overflow_wraps():
    assert u128.add(ONES, ONE) == ZERO


def test_sub_underflow_wraps():
    assert u128.sub(ZERO, ONE) == ONES


def test_add_sub_round_trip():
    a = bytes((i * 91 + 5) & 0xFF for i in range(16))
    b = bytes((i * 53 + 200) & 0xFF for i in range(16))
    assert u128.sub(u128.add(a, b), b) == a


def test_add32_matches_add():
    a = bytes((i * 17) & 0xFF for i in range(16))
    b = 0xDEADBEEF
    assert u128.add32(a, b) == u128.add(a, b.to_bytes(4, "little") + bytes(12))


def test_add32_carries_into_high_bytes():
    low_full = b"\xff" * 4 + bytes(12)
    assert u128.add32(low_full, 1) == bytes(4) + b"\x01" + bytes(11)


def test_swap_reverses_and_is_involution():
    assert u128.swap(SEQ) == bytes(reversed(SEQ))
    assert u128.swap(u128.swap(SEQ)) == SEQ


def test_wrong_length_raises():
    with pytest.raises(ValueError):
        u128.add(b"\x00" * 15, ZERO)
    with pytest.raises(ValueError):
        u128.swap(b"\x00" * 17)