"""Arithmetic and bit operations on 128-bit little-endian values held in 16 bytes."""

_SIZE = 16
_BITS = 128
_MASK = (1 << _BITS) - 1


def _to_int(value) -> int:
    data = bytes(value)
    if len(data) != _SIZE:
        raise ValueError(f"expected {_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data, "little")


def _to_bytes(number: int) -> bytes:
    return (number & _MASK).to_bytes(_SIZE, "little")


def lrot(num, shift: int) -> bytes:
    """Rotate towards more significant bits by ``shift % 128``."""
    value = _to_int(num)
    amount = shift % _BITS
    return _to_bytes((value << amount) | (value >> (_BITS - amount)))


def rrot(num, shift: int) -> bytes:
    """Rotate towards less significant bits by ``shift % 128``."""
    value = _to_int(num)
    amount = shift % _BITS
    return _to_bytes((value >> amount) | (value << (_BITS - amount)))


def xor(a, b) -> bytes:
    """Bitwise exclusive or."""
    return _to_bytes(_to_int(a) ^ _to_int(b))


def or_(a, b) -> bytes:
    """Bitwise or."""
    return _to_bytes(_to_int(a) | _to_int(b))


def and_(a, b) -> bytes:
    """Bitwise and."""
    return _to_bytes(_to_int(a) & _to_int(b))


def add(a, b) -> bytes:
    """Sum modulo 2**128."""
    return _to_bytes(_to_int(a) + _to_int(b))


def add32(a, b: int) -> bytes:
    """Add a 32-bit unsigned value modulo 2**128."""
    return _to_bytes(_to_int(a) + (b & 0xFFFFFFFF))


def sub(a, b) -> bytes:
    """Difference modulo 2**128."""
    return _to_bytes(_to_int(a) - _to_int(b))


def swap(data) -> bytes:
    """Reverse the byte order."""
    _to_int(data)
    return bytes(reversed(bytes(data)))