"""FAT12 boot sector generation for DSiWare save files."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, fields
from typing import BinaryIO

_SECTOR_SIZE = 0x200
_U16 = 0xFFFF
_U32 = 0xFFFFFFFF

_LAYOUT = struct.Struct("<3s8sHBHBHHBHHHIIBBBI11s8s448sH")


def _align(value: int, alignment: int) -> int:
    remainder = value % alignment
    return value + alignment - remainder if remainder else value


@dataclass
class FatHeader:
    """The 512-byte FAT boot sector and BIOS parameter block."""

    bytes_per_sec: int = _SECTOR_SIZE
    sec_per_clus: int = 1
    rsvd_sec_cnt: int = 1
    num_fats: int = 2
    root_ent_cnt: int = 0x20
    tot_sec16: int = 0
    media: int = 0xF8
    fat_sz16: int = 0
    sec_per_trk: int = 1
    num_heads: int = 1
    hidd_sec: int = 0
    tot_sec32: int = 0
    drv_num: int = 0x05
    reserved1: int = 0
    boot_sig: int = 0x29
    vol_id: int = 0x12345678
    vol_lab: bytes = b"VOLUMELABEL"
    fil_sys_type: bytes = b"FAT12   "
    boot_code: bytes = field(default=bytes(448), repr=False)
    boot_sign: int = 0xAA55
    jmp_boot: bytes = b"\xe9\x00\x00"
    oem_name: bytes = b"MSWIN4.1"

    def pack(self) -> bytes:
        return _LAYOUT.pack(
            self.jmp_boot,
            self.oem_name,
            self.bytes_per_sec,
            self.sec_per_clus,
            self.rsvd_sec_cnt,
            self.num_fats,
            self.root_ent_cnt,
            self.tot_sec16,
            self.media,
            self.fat_sz16,
            self.sec_per_trk,
            self.num_heads,
            self.hidd_sec,
            self.tot_sec32,
            self.drv_num,
            self.reserved1,
            self.boot_sig,
            self.vol_id,
            self.vol_lab,
            self.fil_sys_type,
            self.boot_code,
            self.boot_sign,
        )

    @classmethod
    def from_bytes(cls, data) -> "FatHeader":
        data = bytes(data)
        if len(data) < _LAYOUT.size:
            raise ValueError(f"FAT header needs {_LAYOUT.size} bytes, got {len(data)}")
        (jmp_boot, oem_name, bytes_per_sec, sec_per_clus, rsvd_sec_cnt, num_fats,
         root_ent_cnt, tot_sec16, media, fat_sz16, sec_per_trk, num_heads, hidd_sec,
         tot_sec32, drv_num, reserved1, boot_sig, vol_id, vol_lab, fil_sys_type,
         boot_code, boot_sign) = _LAYOUT.unpack_from(data)
        return cls(
            bytes_per_sec=bytes_per_sec,
            sec_per_clus=sec_per_clus,
            rsvd_sec_cnt=rsvd_sec_cnt,
            num_fats=num_fats,
            root_ent_cnt=root_ent_cnt,
            tot_sec16=tot_sec16,
            media=media,
            fat_sz16=fat_sz16,
            sec_per_trk=sec_per_trk,
            num_heads=num_heads,
            hidd_sec=hidd_sec,
            tot_sec32=tot_sec32,
            drv_num=drv_num,
            reserved1=reserved1,
            boot_sig=boot_sig,
            vol_id=vol_id,
            vol_lab=vol_lab,
            fil_sys_type=fil_sys_type,
            boot_code=boot_code,
            boot_sign=boot_sign,
            jmp_boot=jmp_boot,
            oem_name=oem_name,
        )


def compute_fat_header(size: int) -> FatHeader:
    """Build the FAT12 header for a save file of ``size`` bytes."""
    size &= _U32
    max_sectors = (size // _SECTOR_SIZE) & _U16

    sector_count = 1
    sec_per_trk = 1
    num_heads = 1
    next_count = 0
    while next_count <= max_sectors:
        next_count = (sec_per_trk * (num_heads + 1) * (num_heads + 1)) & _U16
        if next_count <= max_sectors:
            num_heads = (num_heads + 1) & _U16
            sector_count = next_count

            sec_per_trk = (sec_per_trk + 1) & _U16
            next_count = (sec_per_trk * num_heads * num_heads) & _U16
            if next_count <= max_sectors:
                sector_count = next_count

    next_count = ((sec_per_trk + 1) * num_heads * num_heads) & _U16
    if next_count <= max_sectors:
        sec_per_trk = (sec_per_trk + 1) & _U16
        sector_count = next_count

    if sector_count > (8 << 10):
        sec_per_cluster = 8
    elif sector_count > (1 << 10):
        sec_per_cluster = 4
    else:
        sec_per_cluster = 1

    root_entry_count = 0x20 if size < 0x8C000 else 0x200

    total_clusters = (_align(sector_count, sec_per_cluster) // sec_per_cluster) & _U16
    fat_bytes = ((_align(total_clusters, 2) // 2) * 3) & _U32
    fat_size = (_align(fat_bytes, _SECTOR_SIZE) // _SECTOR_SIZE) & _U16

    return FatHeader(
        sec_per_clus=sec_per_cluster,
        root_ent_cnt=root_entry_count,
        tot_sec16=sector_count,
        fat_sz16=fat_size,
        sec_per_trk=sec_per_trk,
        num_heads=num_heads,
    )


def init_fat_header(f: BinaryIO) -> FatHeader:
    """Write a FAT12 header sized to the open file at its start; return it."""
    f.seek(0, 2)
    header = compute_fat_header(f.tell())
    f.seek(0)
    f.write(header.pack())
    return header