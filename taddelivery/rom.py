"""Reading DS/DSi ROM headers and banners and describing installed titles."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass

from taddelivery.storage import format_bytes, get_file_size_path, size_in_blocks

DSI_HEADER_MIN_SIZE = 0x240
BANNER_TITLES_OFFSET = 0x240
BANNER_TITLE_CHARS = 128
BANNER_LANGUAGES = 8
_BANNER_MIN_LANGUAGES = 6
_TITLE_BYTES = BANNER_TITLE_CHARS * 2

_UNIT_CODES = {0: "NDS", 2: "NDS+DSi", 3: "DSi"}
_PROGRAM_TYPES = {0x3: "Normal", 0xB: "Sys", 0xF: "Debug/Sys"}
_DSI_TID_HIGHS = frozenset(
    {0x00030004, 0x00030005, 0x00030011, 0x00030015, 0x00030017, 0x00030000}
)

_OK = 0o47
_BAD = 0o41


def _cstr(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("latin-1")


@dataclass(frozen=True)
class RomHeader:
    """The fields of a DSi ROM header that the tool uses."""

    game_title: str
    game_code: str
    unit_code: int
    program_type: int
    banner_offset: int
    tid_low: int
    tid_high: int
    public_sav_size: int
    private_sav_size: int

    @classmethod
    def from_bytes(cls, data) -> "RomHeader":
        data = bytes(data)
        if len(data) < DSI_HEADER_MIN_SIZE:
            raise ValueError(
                f"ROM header needs {DSI_HEADER_MIN_SIZE} bytes, got {len(data)}"
            )
        (banner_offset,) = struct.unpack_from("<I", data, 0x68)
        tid_low, tid_high, pub, prv = struct.unpack_from("<IIII", data, 0x230)
        return cls(
            game_title=_cstr(data[0x00:0x0C]),
            game_code=_cstr(data[0x0C:0x10]),
            unit_code=data[0x12],
            program_type=data[0x1C],
            banner_offset=banner_offset,
            tid_low=tid_low,
            tid_high=tid_high,
            public_sav_size=pub,
            private_sav_size=prv,
        )


@dataclass(frozen=True)
class RomBanner:
    """A ROM banner's version and its per-language titles as UTF-16 code units."""

    version: int
    titles: tuple

    @classmethod
    def from_bytes(cls, data) -> "RomBanner":
        data = bytes(data)
        minimum = BANNER_TITLES_OFFSET + _BANNER_MIN_LANGUAGES * _TITLE_BYTES
        if len(data) < minimum:
            raise ValueError(f"banner needs at least {minimum} bytes, got {len(data)}")
        (version,) = struct.unpack_from("<H", data, 0)
        count = min(BANNER_LANGUAGES, (len(data) - BANNER_TITLES_OFFSET) // _TITLE_BYTES)
        titles = tuple(
            struct.unpack_from(
                f"<{BANNER_TITLE_CHARS}H", data, BANNER_TITLES_OFFSET + lang * _TITLE_BYTES
            )
            for lang in range(count)
        )
        return cls(version, titles)

    def title(self, language: int = 1, full: bool = False) -> str:
        """The title in ``language``; Japanese and Chinese fall back to English.

        Without ``full`` only the first line is returned.
        """
        lang = 1 if language in (0, 6) else language
        if not 0 <= lang < len(self.titles):
            raise ValueError(f"banner has no title for language {language}")
        chars = []
        for code in self.titles[lang]:
            if code == 0x00F3:
                code = ord("o")
            elif code == 0x00E1:
                code = ord("a")
            ch = chr(code & 0xFF)
            if ch == "\0" or (not full and ch == "\n"):
                break
            chars.append(ch)
        return "".join(chars)


def read_rom_header(path) -> RomHeader:
    """Read the header of the ROM at ``path``."""
    with open(path, "rb") as f:
        return RomHeader.from_bytes(f.read(0x1000))


def read_rom_banner(path) -> RomBanner:
    """Read the banner of the ROM at ``path``."""
    header = read_rom_header(path)
    with open(path, "rb") as f:
        f.seek(header.banner_offset)
        return RomBanner.from_bytes(
            f.read(BANNER_TITLES_OFFSET + BANNER_LANGUAGES * _TITLE_BYTES)
        )


def game_title_path(path, language: int = 1, full: bool = False) -> str:
    """The banner title of the ROM at ``path``."""
    return read_rom_banner(path).title(language, full)


def rom_size(path) -> int:
    """Size in bytes of the ROM at ``path``."""
    return os.path.getsize(path)


def _extra_file_line(path: str, ok: bool) -> str:
    return f"\t\x1b[{_OK if ok else _BAD:o}m{os.path.basename(path)}\n\x1b[47m"


def rom_info(path, language: int = 1) -> str:
    """A text description of the ROM at ``path`` and of its companion files."""
    path = os.fspath(path)
    try:
        header = read_rom_header(path)
        banner = read_rom_banner(path)
    except (OSError, ValueError):
        return "Could not read banner.\n"

    size = rom_size(path)
    parts = [
        f"{banner.title(language, True)}\n\n",
        f"Size: {format_bytes(size)} ({size_in_blocks(size)} blocks)\n",
        f"Label: {header.game_title}\n",
        f"Game Code: {header.game_code}\n",
        f"Unit Code: {_UNIT_CODES.get(header.unit_code, 'unknown')}\n",
        f"Program Type: {_PROGRAM_TYPES.get(header.program_type, 'unknown')}\n",
    ]
    if header.tid_high in _DSI_TID_HIGHS:
        parts.append(f"Title ID: {header.tid_high:08x} {header.tid_low:08x}\n")
    parts.append(f"\n{path}\n")

    dot = path.rfind(".")
    stem = path[:dot] if dot >= 0 else path
    # DSi TMDs are 520 bytes; those from NUS are 2312 and can be trimmed to 520.
    checks = (
        (".tmd", lambda n: n in (520, 2312)),
        (".pub", lambda n: n == header.public_sav_size),
        (".prv", lambda n: n == header.private_sav_size),
        (".bnr", lambda n: n == 0x4000),
    )
    for ext, valid in checks:
        extra = stem + ext
        if os.path.exists(extra):
            parts.append(_extra_file_line(extra, valid(get_file_size_path(extra))))
    return "".join(parts)