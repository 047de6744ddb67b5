"""Sanity checks for the first sector of a DSi or 3DS NAND image."""

from __future__ import annotations

import struct
from dataclasses import dataclass

SECTOR_SIZE = 0x200

MBR_PARTITIONS = 4
MBR_PARTITION_SIZE = 16
MBR_BOOTSTRAP_SIZE = SECTOR_SIZE - (2 + MBR_PARTITIONS * MBR_PARTITION_SIZE)
MBR_SIGNATURE = b"\x55\xaa"

NCSD_PARTITIONS = 8
NCSD_SIGNATURE_SIZE = 0x100
NCSD_HEADER_SIZE = NCSD_SIGNATURE_SIZE + 0x060
NCSD_MAGIC = 0x4453434E

_PARTITION = struct.Struct("<B3sB3sII")
_NCSD_FIXED = struct.Struct("<IIQ")
_KNOWN_NCSD_FS_TYPES = frozenset({1, 3, 4})


class Sector0Error(ValueError):
    """Sector 0 failed a check; ``code`` is -1 (signature/magic) or -2 (contents)."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ChsAddress:
    """A cylinder/head/sector address as stored in a partition entry."""

    head: int
    sector_and_cyl_high: int
    cylinder_low: int


@dataclass(frozen=True)
class MbrPartition:
    """One 16-byte entry of an MBR partition table."""

    status: int
    chs_first: ChsAddress
    partition_type: int
    chs_last: ChsAddress
    offset: int
    length: int

    @classmethod
    def from_bytes(cls, data) -> "MbrPartition":
        data = bytes(data)
        if len(data) != MBR_PARTITION_SIZE:
            raise ValueError(
                f"partition entry must be {MBR_PARTITION_SIZE} bytes, got {len(data)}"
            )
        status, first, ptype, last, offset, length = _PARTITION.unpack(data)
        return cls(status, ChsAddress(*first), ptype, ChsAddress(*last), offset, length)

    def pack(self) -> bytes:
        first = self.chs_first
        last = self.chs_last
        return _PARTITION.pack(
            self.status,
            bytes([first.head, first.sector_and_cyl_high, first.cylinder_low]),
            self.partition_type,
            bytes([last.head, last.sector_and_cyl_high, last.cylinder_low]),
            self.offset,
            self.length,
        )


def _entry(status, first, ptype, last, offset, length) -> MbrPartition:
    return MbrPartition(status, ChsAddress(*first), ptype, ChsAddress(*last), offset, length)


_EMPTY = _entry(0, (0, 0, 0), 0, (0, 0, 0), 0, 0)

DSI_PARTITION_TABLE = (
    _entry(0, (3, 24, 4), 6, (15, 224, 59), 0x00000877, 0x00066F89),
    _entry(0, (2, 206, 60), 6, (15, 224, 190), 0x0006784, 0x000105B3),
    _entry(0, (2, 222, 191), 1, (15, 224, 191), 0x00077E5, 0x000001A3),
    _EMPTY,
)

N3DS_PARTITION_TABLE = (
    _entry(0, (4, 24, 0), 6, (1, 160, 63), 0x0000009, 0x00047DA9),
    _entry(0, (4, 142, 64), 6, (1, 160, 195), 0x0004808, 0x000105B3),
    _EMPTY,
    _EMPTY,
)


def _sector(sector0) -> bytes:
    data = bytes(sector0)
    if len(data) < SECTOR_SIZE:
        raise ValueError(f"sector 0 must be {SECTOR_SIZE} bytes, got {len(data)}")
    return data[:SECTOR_SIZE]


def parse_ncsd(sector0) -> tuple[int, ...]:
    """Check a 3DS NCSD header; return its partition filesystem types."""
    data = _sector(sector0)
    magic, _size, _media_id = _NCSD_FIXED.unpack_from(data, NCSD_SIGNATURE_SIZE)
    if magic != NCSD_MAGIC:
        raise Sector0Error(-1, "NCSD magic mismatch")
    start = NCSD_SIGNATURE_SIZE + _NCSD_FIXED.size
    fs_types = tuple(data[start:start + NCSD_PARTITIONS])
    for fs_type in fs_types:
        if fs_type == 0:
            break
        if fs_type not in _KNOWN_NCSD_FS_TYPES:
            raise Sector0Error(-2, f"unknown NCSD partition type {fs_type}")
    return fs_types


def parse_mbr(sector0, is_3ds) -> list[MbrPartition]:
    """Check the MBR signature and first partition; return all four entries."""
    data = _sector(sector0)
    if data[SECTOR_SIZE - 2:SECTOR_SIZE] != MBR_SIGNATURE:
        raise Sector0Error(-1, "MBR signature mismatch")
    partitions = [
        MbrPartition.from_bytes(
            data[MBR_BOOTSTRAP_SIZE + i * MBR_PARTITION_SIZE:
                 MBR_BOOTSTRAP_SIZE + (i + 1) * MBR_PARTITION_SIZE]
        )
        for i in range(MBR_PARTITIONS)
    ]
    reference = N3DS_PARTITION_TABLE if is_3ds else DSI_PARTITION_TABLE
    # Only the first partition is compared; the third has been seen to vary.
    if partitions[0] != reference[0]:
        raise Sector0Error(-2, "first partition does not match the expected layout")
    return partitions