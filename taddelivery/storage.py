"""File, directory and free-space helpers used when installing and backing up titles."""

from __future__ import annotations

import os
import shutil
import sys
from typing import Optional, TextIO

BACKUP_PATH = "sd:/_nds/ntm/backup"
BYTES_PER_BLOCK = 1024 * 128
TITLE_LIMIT = 39

_CHUNK_SIZE = 64 * 1024
_MENU_DIRS = ("00030004", "00030005", "0003000f", "00030015")

_GREEN = "\x1b[42m"
_RED = "\x1b[31m"
_YELLOW = "\x1b[33m"
_WHITE = "\x1b[47m"


def format_bytes(size: int) -> str:
    """Render a byte count as B, KB, MB or GB."""
    if size < 1024:
        return f"{int(size)}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f}KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / 1024 / 1024:.2f}MB"
    return f"{size / 1024 / 1024 / 1024:.2f}GB"


def size_in_blocks(size: int) -> int:
    """Number of 128 KiB menu blocks a file of ``size`` bytes is reported as."""
    return ((size // BYTES_PER_BLOCK) * BYTES_PER_BLOCK + BYTES_PER_BLOCK) // BYTES_PER_BLOCK


class ProgressBar:
    """A 30-cell progress bar drawn with terminal escape codes on the bottom line."""

    WIDTH = 30

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout
        self.last_bars = 0

    def update(self, percent: float) -> None:
        """Redraw for a fraction in [0, 1]; nothing is written if the bar is unchanged."""
        percent = min(max(percent, 0.0), 1.0)
        bars = int(self.WIDTH * percent)
        if bars == self.last_bars:
            return
        parts = [_GREEN]
        if self.last_bars <= 0:
            parts.append("\x1b[23;0H[")
            parts.append(f"\x1b[23;{self.WIDTH + 1}H]")
        parts.extend(f"\x1b[23;{1 + i}H|" for i in range(bars))
        parts.append(_WHITE)
        self.stream.write("".join(parts))
        self.last_bars = bars

    def clear(self) -> None:
        """Erase the bar and reset its state."""
        self.last_bars = 0
        self.stream.write("\x1b[23;0H" + " " * (self.WIDTH + 2))


def file_exists(path) -> bool:
    """True if ``path`` can be opened for reading."""
    try:
        with open(path, "rb"):
            return True
    except OSError:
        return False


def get_file_size_path(path) -> int:
    """Size of the file at ``path``, or 0 if it cannot be read."""
    try:
        return os.path.getsize(path)
    except OSError:
        return 0


def copy_file_part(src, offset: int, size: int, dst, progress: Optional[ProgressBar] = None) -> int:
    """Copy ``size`` bytes of ``src`` starting at ``offset`` into a fresh ``dst``.

    Returns the number of bytes copied, which is less than ``size`` when the
    source ends first.
    """
    with open(src, "rb") as fin:
        if file_exists(dst):
            os.remove(dst)
        total = 0
        with open(dst, "wb") as fout:
            fin.seek(offset)
            while True:
                chunk = fin.read(min(_CHUNK_SIZE, size - total))
                fout.write(chunk)
                total += len(chunk)
                if progress is not None:
                    progress.update(total / size if size else 1.0)
                if len(chunk) != _CHUNK_SIZE:
                    break
        if progress is not None:
            progress.clear()
    return total


def copy_file(src, dst, progress: Optional[ProgressBar] = None) -> int:
    """Copy the whole of ``src`` to ``dst``; return the number of bytes copied."""
    return copy_file_part(src, 0, get_file_size_path(src), dst, progress)


def pad_file(path, size: int) -> None:
    """Append ``size`` zero bytes to the file at ``path``."""
    with open(path, "ab") as f:
        f.write(bytes(max(size, 0)))


def dir_exists(path) -> bool:
    """True if ``path`` is a directory that can be listed."""
    try:
        with os.scandir(path):
            return True
    except OSError:
        return False


def _entries(path):
    with os.scandir(path) as it:
        return sorted(
            (e for e in it if e.name not in (".", "..")), key=lambda e: e.name
        )


def copy_dir(src, dst, out: Optional[TextIO] = None) -> bool:
    """Copy the contents of ``src`` into ``dst`` recursively; False if anything failed."""
    write = out.write if out is not None else (lambda _text: None)
    try:
        entries = _entries(src)
    except OSError:
        return False

    result = True
    for entry in entries:
        esrc = os.path.join(src, entry.name)
        edst = os.path.join(dst, entry.name)
        if entry.is_dir(follow_symlinks=False):
            os.makedirs(edst, exist_ok=True)
            if not copy_dir(esrc, edst, out):
                result = False
        else:
            write(f"{esrc} -> \n{edst}...")
            try:
                copy_file(esrc, edst)
            except OSError as exc:
                write(f"{_RED}Fail\n{_YELLOW}{exc.strerror or exc}\n{_WHITE}")
                result = False
            else:
                write(f"{_GREEN}Done\n{_WHITE}")
    return result


def delete_dir(path, out: Optional[TextIO] = None) -> bool:
    """Delete ``path`` and everything under it; False if anything was left behind."""
    if str(path) == "/":
        raise ValueError("refusing to delete the root directory")
    write = out.write if out is not None else (lambda _text: None)

    result = True
    try:
        entries = _entries(path)
    except OSError:
        entries = []
        result = False

    for entry in entries:
        full = os.path.join(path, entry.name)
        if entry.is_dir(follow_symlinks=False):
            if not delete_dir(full, out):
                result = False
        else:
            write(f"{full}...")
            try:
                os.remove(full)
            except OSError:
                write(f"{_RED}Fail\n{_WHITE}")
                result = False
            else:
                write(f"{_GREEN}Done\n{_WHITE}")

    write(f"{path}...")
    try:
        os.rmdir(path)
    except OSError:
        write(f"{_RED}Fail\n{_WHITE}")
        result = False
    else:
        write(f"{_GREEN}Done\n{_WHITE}")
    return result


def get_dir_size(path, block_size: int) -> int:
    """Total size under ``path``, rounding the running total up to ``block_size`` after each file."""
    try:
        entries = _entries(path)
    except OSError:
        return 0

    size = 0
    for entry in entries:
        full = os.path.join(path, entry.name)
        if entry.is_dir(follow_symlinks=False):
            size += get_dir_size(full, block_size)
        else:
            size += get_file_size_path(full)
            if block_size and size % block_size:
                size += block_size - size % block_size
    return size


def menu_slots() -> int:
    """The number of titles the home menu can show."""
    return TITLE_LIMIT


def menu_slots_free(root) -> int:
    """Free home menu slots, given the root of the storage holding ``title/``."""
    free = menu_slots()
    for name in _MENU_DIRS:
        try:
            entries = _entries(os.path.join(root, "title", name))
        except OSError:
            continue
        free -= sum(1 for e in entries if e.is_dir(follow_symlinks=False))
    return free


def _disk_usage(path) -> tuple[int, int]:
    try:
        usage = shutil.disk_usage(path)
    except OSError:
        return 0, 0
    return usage.total, usage.free


def sd_card_size(path) -> int:
    """Total bytes of the filesystem holding ``path``, or 0."""
    return _disk_usage(path)[0]


def sd_card_free(path) -> int:
    """Bytes available on the filesystem holding ``path``, or 0."""
    return _disk_usage(path)[1]


def dsi_size() -> int:
    """Space the DSi menu offers for applications: 1024 blocks."""
    return 1024 * BYTES_PER_BLOCK


def dsi_real_size(root) -> int:
    """Total bytes of the filesystem holding ``root``, or 0."""
    return _disk_usage(root)[0]


def dsi_real_free(root) -> int:
    """Bytes available on the filesystem holding ``root``, or 0."""
    return _disk_usage(root)[1]


def dsi_cluster_size(root) -> int:
    """Block size of the filesystem holding ``root``, or 0 if unknown."""
    statvfs = getattr(os, "statvfs", None)
    if statvfs is None:
        return 0
    try:
        return statvfs(root).f_bsize
    except OSError:
        return 0


def dsi_free(root) -> int:
    """Free DSi menu space: menu space minus installed apps, capped by real free space."""
    block_size = dsi_cluster_size(root)
    size = dsi_size()
    app_size = get_dir_size(os.path.join(root, "title", "00030004"), block_size)
    size = 0 if app_size > size else size - app_size
    return min(dsi_real_free(root), size)