# taddelivery

Tools for working with DSi title packages (TAD files) and the data that
surrounds them on a console's storage:

- `taddelivery.tad`: read a TAD header and its section offsets, describe
  the title recorded in its TMD, and decrypt the contained SRL with a
  common key.
- `taddelivery.rom`: read a DSi ROM header and banner, get the game
  title, and produce a text description of a ROM and its companion
  `.tmd`, `.pub`, `.prv` and `.bnr` files.
- `taddelivery.sector0`: check an MBR or NCSD boot sector of a NAND image.
- `taddelivery.sav`: build a FAT12 boot sector sized to a save file.
- `taddelivery.dsi_crypto`: the DSi AES-CTR and AES-CCM routines and the
  ES block format (encrypt and verify-and-decrypt with a 32-byte metablock).
- `taddelivery.u128`: arithmetic and bit operations on 128-bit
  little-endian values held in 16 bytes.
- `taddelivery.storage`: file and directory copy, delete and size helpers,
  a terminal progress bar, free-space figures and home-menu slot counts.

## Installation

```
pip install taddelivery
```

For running the tests:

```
pip install "taddelivery[test]"
pytest
```

## Common keys

The common keys used to decrypt a TAD's title key are not part of the
package. `open_tad` and `taddelivery extract` read them from these
environment variables, each holding 16 bytes written as hexadecimal, and
try them in this order:

- `TAD_DEV_KEY`
- `TAD_PROD_KEY`
- `TAD_DEBUGGER_KEY`

Variables that are unset are skipped. If none is set, or a value is not
16 bytes of hexadecimal, a `TadError` is raised.

## Command line

The package installs a `taddelivery` command with two subcommands:

```
taddelivery info TITLE.tad
taddelivery extract TITLE.tad --workdir WORKDIR
```

`info` prints the size, game code, version, company code and title ID
recorded in the TAD. `extract` copies the TMD, ticket and encrypted SRL
into the working directory (by default `TADDeliveryTool/tmp`), decrypts
the SRL and prints the path of the decrypted file. On failure the command
prints `ERROR: ...` to standard error and exits with status 1.

See all options with:

```
taddelivery --help
```

## Library use

Show information about a TAD file:

```python
from taddelivery.tad import read_tad_info, format_tad_info

info = read_tad_info("title.tad")
print(info.game_code, info.version, info.title_id)
print(format_tad_info("title.tad"))
```

Unpack and decrypt the SRL from a TAD into a working directory. For
executable titles each key is checked against the title ID in the
decrypted header; for data titles against the SHA-1 hash in the TMD:

```python
from taddelivery.tad import open_tad, TadError

try:
    srl_path = open_tad("title.tad", "work")
except TadError as exc:
    print(f"could not unpack: {exc}")
```

Read a ROM header and its title:

```python
from taddelivery.rom import read_rom_header, game_title_path, rom_info

header = read_rom_header("game.nds")
print(header.game_title, header.game_code)
print(game_title_path("game.nds", 1, False))
print(rom_info("game.nds", 1))
```

Check a NAND boot sector. `parse_mbr` returns the four partition entries
and `parse_ncsd` the partition filesystem types; both raise
`Sector0Error`, whose `code` is -1 for a bad signature and -2 for
unexpected contents:

```python
from taddelivery.sector0 import parse_mbr, Sector0Error

with open("nand.bin", "rb") as f:
    sector = f.read(0x200)
try:
    partitions = parse_mbr(sector, False)
except Sector0Error as exc:
    print(f"bad MBR ({exc.code}): {exc}")
```

Write a FAT12 boot sector at the start of an existing save file; the
header that was written is returned:

```python
from taddelivery.sav import init_fat_header

with open("public.sav", "r+b") as f:
    header = init_fat_header(f)
```

Work with 128-bit little-endian values:

```python
from taddelivery import u128

value = u128.add32(bytes(16), 1)
rotated = u128.lrot(value, 8)
```

Copy a file with a progress bar and measure a directory:

```python
from taddelivery.storage import ProgressBar, copy_file, get_dir_size, format_bytes

copy_file("a.bin", "b.bin", ProgressBar())
print(format_bytes(get_dir_size("title", 0)))
```

## What it does not do

This package works on files and directories you point it at. It does not
install titles onto a console, does not browse, back up, delete or mark
read-only the titles installed on a console's storage, and has no
interactive menu; nor does it talk to a console's NAND or SD card
directly.