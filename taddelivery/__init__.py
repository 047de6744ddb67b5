"""Inspect and unpack DSi TAD title packages, ROM headers, save files and NAND boot sectors."""

__version__ = "0.1.0"

__all__ = ["dsi_crypto", "rom", "sav", "sector0", "storage", "tad", "u128"]