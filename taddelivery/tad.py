"""Unpacking and decrypting TAD title packages and describing their contents."""

from __future__ import annotations

import argparse
import hashlib
import logging
import os
import struct
import sys
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from taddelivery.storage import copy_file_part, format_bytes, size_in_blocks

log = logging.getLogger(__name__)

TAD_TYPE = 0x4973  # "Is"; other types belong to Wii boot2 and netcard packages
ALIGNMENT = 64
HEADER_SIZE = 32

_HEADER = struct.Struct(">IHHIIIIII")

_TMD_TITLE_ID = 396
_TMD_COMPANY = 408
_TMD_VERSION = 476
_TMD_CONTENT_SIZE = 496
_HASH_SIZE = 20

_TICKET_TITLE_KEY = 447
_TICKET_TITLE_ID = 476

_AES_BLOCK = 16
_TID_CHECK_OFFSET = 0x230
_CHUNK = 64 * 1024
_CONTENT_IV = bytes(_AES_BLOCK)

# Common keys are tried in this order, the most frequently used first.
KEY_ENVIRONMENT = (
    ("dev", "TAD_DEV_KEY"),
    ("prod", "TAD_PROD_KEY"),
    ("debugger", "TAD_DEBUGGER_KEY"),
)

TMD_NAME = "temp.tmd"
TICKET_NAME = "temp.tik"
ENCRYPTED_SRL_NAME = "temp.srl.enc"
SRL_NAME = "temp.srl"
DEFAULT_WORKDIR = os.path.join("TADDeliveryTool", "tmp")

_GREEN = "\x1b[42m"
_WHITE = "\x1b[47m"


class TadError(ValueError):
    """A TAD package could not be read or unpacked."""


class KeyFailure(TadError):
    """A common key did not decrypt the content correctly."""


def round_up(value: int, align: int) -> int:
    """Round ``value`` up to a multiple of ``align``."""
    return ((value + align - 1) // align) * align


@dataclass(frozen=True)
class TadHeader:
    """The 32-byte big-endian header at the start of a TAD."""

    hdr_size: int
    tad_type: int
    tad_version: int
    cert_size: int
    crl_size: int
    ticket_size: int
    tmd_size: int
    srl_size: int
    meta_size: int

    @classmethod
    def from_bytes(cls, data) -> "TadHeader":
        data = bytes(data)
        if len(data) < HEADER_SIZE:
            raise TadError(f"TAD header needs {HEADER_SIZE} bytes, got {len(data)}")
        return cls(*_HEADER.unpack_from(data))

    def offsets(self) -> dict[str, int]:
        """Start of each section; every section is aligned to 64 bytes."""
        cert = round_up(self.hdr_size, ALIGNMENT)
        crl = round_up(cert + self.cert_size, ALIGNMENT)
        ticket = round_up(crl + self.crl_size, ALIGNMENT)
        tmd = round_up(ticket + self.ticket_size, ALIGNMENT)
        srl = round_up(tmd + self.tmd_size, ALIGNMENT)
        meta = round_up(srl + self.srl_size, ALIGNMENT)
        return {
            "header": 0,
            "cert": cert,
            "crl": crl,
            "ticket": ticket,
            "tmd": tmd,
            "srl": srl,
            "meta": meta,
        }


@dataclass(frozen=True)
class TadInfo:
    """What the TMD inside a TAD says about its title."""

    file_size: int
    srl_size: int
    tid_high: bytes
    tid_low: bytes
    company: bytes
    version_high: int
    version_low: int

    @property
    def game_code(self) -> str:
        return self.tid_low.decode("latin-1")

    @property
    def version(self) -> str:
        return f"{self.version_high}.{self.version_low}"

    @property
    def nus_version(self) -> int:
        return self.version_high * 256 + self.version_low

    @property
    def title_id(self) -> str:
        return f"{self.tid_high.hex()} {self.tid_low.hex()}"

    @property
    def is_data_title(self) -> bool:
        return self.tid_high[3] == 0x0F


def read_tad_header(path) -> TadHeader:
    """Read the header of the TAD at ``path``."""
    with open(path, "rb") as f:
        return TadHeader.from_bytes(f.read(HEADER_SIZE))


def read_tad_info(path) -> TadInfo:
    """Read title information from the TMD of the TAD at ``path``."""
    with open(path, "rb") as f:
        header = TadHeader.from_bytes(f.read(HEADER_SIZE))
        tmd = header.offsets()["tmd"]
        f.seek(tmd + _TMD_TITLE_ID)
        tid = f.read(8)
        f.seek(tmd + _TMD_COMPANY)
        company = f.read(2)
        f.seek(tmd + _TMD_VERSION)
        version = f.read(2)
        f.seek(0, os.SEEK_END)
        file_size = f.tell()
    if len(tid) < 8 or len(company) < 2 or len(version) < 2:
        raise TadError("TMD is truncated")
    return TadInfo(
        file_size=file_size,
        srl_size=header.srl_size,
        tid_high=tid[:4],
        tid_low=tid[4:],
        company=company,
        version_high=version[0],
        version_low=version[1],
    )


def format_tad_info(path) -> str:
    """A text description of the TAD at ``path`` with terminal colours."""
    path = os.fspath(path)
    info = read_tad_info(path)
    company_chars = info.company.decode("latin-1")
    return "".join(
        [
            "\nSize:\n  ",
            f"{_GREEN}{format_bytes(info.file_size)}{_WHITE}",
            f" ({_GREEN}{size_in_blocks(info.srl_size)} blocks{_WHITE})\n",
            "Game Code:\n  ",
            f"{_GREEN}{info.game_code}{_WHITE}",
            f"\nGame Version:\n  {_GREEN}{info.version}{_WHITE}"
            f" (NUS: {_GREEN}v{info.nus_version}{_WHITE})\n",
            f"Company Code:\n  {_GREEN}{company_chars}{_WHITE}"
            f" ({_GREEN}{info.company.hex()}{_WHITE})\n",
            "Title ID: \n  ",
            f"{_GREEN}{info.title_id}{_WHITE}",
            f"\n\n{path}\n",
        ]
    )


def _check(value, size: int, name: str) -> bytes:
    data = bytes(value)
    if len(data) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(data)}")
    return data


def decrypt_title_key(common_key, title_key_iv, title_key_enc) -> bytes:
    """Decrypt a ticket's title key with a common key (AES-128-CBC)."""
    key = _check(common_key, _AES_BLOCK, "common key")
    iv = _check(title_key_iv, _AES_BLOCK, "title key IV")
    enc = _check(title_key_enc, _AES_BLOCK, "encrypted title key")
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    return decryptor.update(enc) + decryptor.finalize()


def decrypt_tad(
    common_key,
    title_key_iv,
    title_key_enc,
    srl_size,
    tid_low,
    data_title,
    content_hash,
    enc_path,
    dec_path,
) -> str:
    """Decrypt the content at ``enc_path`` into ``dec_path``.

    Executable titles are checked against the title ID stored at 0x230 of the
    decrypted header; data titles against the SHA-1 in the TMD. Raises
    ``KeyFailure`` when the check fails, otherwise returns ``dec_path``.
    """
    title_key = decrypt_title_key(common_key, title_key_iv, title_key_enc)
    tid_low = _check(tid_low, 4, "tid_low")
    decryptor = Cipher(algorithms.AES(title_key), modes.CBC(_CONTENT_IV)).decryptor()
    digest = hashlib.sha1()
    total = round_up(srl_size, _AES_BLOCK)
    pos = 0
    failed = False

    with open(enc_path, "rb") as fin, open(dec_path, "wb") as fout:
        while pos < total:
            chunk = fin.read(min(_CHUNK, total - pos))
            usable = len(chunk) - len(chunk) % _AES_BLOCK
            if usable == 0:
                break
            plain = decryptor.update(chunk[:usable])
            if not data_title and pos <= _TID_CHECK_OFFSET < pos + usable:
                at = _TID_CHECK_OFFSET - pos
                if bytes(reversed(plain[at:at + 4])) != tid_low:
                    fout.write(plain[:at + _AES_BLOCK])
                    failed = True
                    break
            kept = plain[:max(0, srl_size - pos)]
            fout.write(kept)
            digest.update(kept)
            pos += usable
            if usable != len(chunk):
                break

    if data_title and digest.digest() != bytes(content_hash):
        failed = True
    if failed:
        raise KeyFailure("common key does not match this title")
    return os.fspath(dec_path)


def _common_keys() -> list[tuple[str, bytes]]:
    keys = []
    for name, variable in KEY_ENVIRONMENT:
        text = os.environ.get(variable)
        if not text:
            continue
        try:
            key = bytes.fromhex(text.strip())
        except ValueError as exc:
            raise TadError(f"{variable} is not valid hexadecimal") from exc
        if len(key) != _AES_BLOCK:
            raise TadError(f"{variable} must hold {_AES_BLOCK} bytes")
        keys.append((name, key))
    return keys


def open_tad(src, workdir) -> str:
    """Unpack and decrypt the TAD at ``src`` into ``workdir``; return the SRL path.

    Common keys are taken, in order, from the variables in ``KEY_ENVIRONMENT``.
    """
    src = os.fspath(src)
    workdir = os.fspath(workdir)
    try:
        header = read_tad_header(src)
    except OSError as exc:
        raise TadError(f"cannot open {src}: {exc}") from exc
    if header.tad_type != TAD_TYPE:
        raise TadError("unexpected TAD type")
    os.makedirs(workdir, exist_ok=True)
    log.info("Parsing TAD header...")

    offsets = header.offsets()
    with open(src, "rb") as f:
        f.seek(offsets["tmd"] + _TMD_TITLE_ID)
        tid = f.read(8)
        # The TMD holds the true content size; the header's is padded.
        f.seek(offsets["tmd"] + _TMD_CONTENT_SIZE)
        raw = f.read(4 + _HASH_SIZE)
    if len(tid) < 8 or len(raw) < 4 + _HASH_SIZE:
        raise TadError("TMD is truncated")
    tid_high, tid_low = tid[:4], tid[4:]
    srl_size = int.from_bytes(raw[:4], "big")
    content_hash = raw[4:]

    tmd_path = os.path.join(workdir, TMD_NAME)
    tik_path = os.path.join(workdir, TICKET_NAME)
    enc_path = os.path.join(workdir, ENCRYPTED_SRL_NAME)
    dec_path = os.path.join(workdir, SRL_NAME)

    log.info("Copying output files...")
    copy_file_part(src, offsets["tmd"], header.tmd_size, tmd_path)
    copy_file_part(src, offsets["ticket"], header.ticket_size, tik_path)
    copy_file_part(src, offsets["srl"], round_up(srl_size, _AES_BLOCK), enc_path)

    with open(tik_path, "rb") as ticket:
        ticket.seek(_TICKET_TITLE_KEY)
        title_key_enc = ticket.read(_AES_BLOCK)
        ticket.seek(_TICKET_TITLE_ID)
        title_id = ticket.read(8)
    if len(title_key_enc) < _AES_BLOCK or len(title_id) < 8:
        raise TadError("ticket is truncated")
    title_key_iv = title_id + bytes(8)

    keys = _common_keys()
    if not keys:
        names = ", ".join(variable for _, variable in KEY_ENVIRONMENT)
        raise TadError(f"no common keys configured; set one of {names}")

    data_title = tid_high[3] == 0x0F
    log.info("Decrypting SRL...")
    for name, key in keys:
        log.info("Trying %s common key...", name)
        try:
            return decrypt_tad(
                key, title_key_iv, title_key_enc, srl_size, tid_low,
                data_title, content_hash, enc_path, dec_path,
            )
        except KeyFailure:
            log.info("Key fail!")
            if os.path.exists(dec_path):
                os.remove(dec_path)
    raise TadError("All keys failed")


def main(argv=None) -> int:
    """Command line entry point."""
    parser = argparse.ArgumentParser(
        prog="taddelivery", description="Inspect and unpack TAD title packages."
    )
    commands = parser.add_subparsers(dest="command", required=True)
    info = commands.add_parser("info", help="describe a TAD")
    info.add_argument("tad")
    extract = commands.add_parser("extract", help="decrypt the SRL inside a TAD")
    extract.add_argument("tad")
    extract.add_argument("--workdir", default=DEFAULT_WORKDIR)
    args = parser.parse_args(argv)

    try:
        if args.command == "info":
            print(format_tad_info(args.tad), end="")
        else:
            print(open_tad(args.tad, args.workdir))
    except (OSError, TadError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 0