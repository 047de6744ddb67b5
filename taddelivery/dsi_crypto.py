"""DSi flavoured AES-CTR and AES-CCM, plus the ES block format built on them."""

from __future__ import annotations

import os

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

_BLOCK = 16
_ES_MAGIC = 0x3A


def _check(value, size: int, name: str) -> bytes:
    data = bytes(value)
    if len(data) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(data)}")
    return data


def _xor(a: bytes, b: bytes) -> bytes:
    return bytes(x ^ y for x, y in zip(a, b))


class EsDecryptError(ValueError):
    """An ES block failed to decrypt; ``code`` is -1 (magic), -2 (size) or -3 (MAC)."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code


class DsiContext:
    """Cipher state: counter, running MAC, first keystream block and AES key."""

    def __init__(self, key=None):
        self.ctr = bytes(_BLOCK)
        self.mac = bytes(_BLOCK)
        self.s0 = bytes(_BLOCK)
        self.maclen = 0
        self._encryptor = None
        if key is not None:
            self.set_key(key)

    def _aes(self, block: bytes) -> bytes:
        if self._encryptor is None:
            raise RuntimeError("no key has been set")
        return self._encryptor.update(block)

    def set_key(self, key) -> None:
        """Load a key given in DSi byte order."""
        swapped = bytes(reversed(_check(key, _BLOCK, "key")))
        self._encryptor = Cipher(algorithms.AES(swapped), modes.ECB()).encryptor()

    def add_ctr(self, carry: int) -> None:
        """Add ``carry`` to the big-endian 128-bit counter."""
        value = int.from_bytes(self.ctr, "big") + (carry & 0xFFFFFFFF)
        self.ctr = (value & ((1 << 128) - 1)).to_bytes(_BLOCK, "big")

    def set_ctr(self, ctr) -> None:
        """Load a counter given in DSi byte order."""
        self.ctr = bytes(reversed(_check(ctr, _BLOCK, "ctr")))

    def init_ctr(self, key, ctr) -> None:
        self.set_key(key)
        self.set_ctr(ctr)

    def crypt_ctr_block(self, block=None) -> bytes:
        """Encrypt or decrypt one block; with ``None`` return the raw keystream."""
        stream = bytes(reversed(self._aes(self.ctr)))
        result = stream if block is None else _xor(stream, _check(block, _BLOCK, "block"))
        self.add_ctr(1)
        return result

    def crypt_ctr(self, data) -> bytes:
        """Encrypt or decrypt a buffer in counter mode."""
        data = bytes(data)
        out = bytearray()
        for offset in range(0, len(data), _BLOCK):
            chunk = data[offset:offset + _BLOCK]
            padded = chunk + bytes(_BLOCK - len(chunk))
            out += self.crypt_ctr_block(padded)[:len(chunk)]
        return bytes(out)

    def init_ccm(self, key, maclength: int, payloadlength: int, assoclength: int, nonce) -> None:
        """Prepare CCM state for a payload of the given length."""
        nonce = _check(nonce, 12, "nonce")
        self.set_key(key)
        self.maclen = maclength
        m = ((maclength - 2) & 0xFFFFFFFF) // 2
        payload = (payloadlength + 15) & ~15
        flags = ((m << 3) | 2) & 0xFF
        if assoclength:
            flags |= 1 << 6
        rnonce = bytes(reversed(nonce))
        b0 = bytes([flags]) + rnonce + bytes(
            [(payload >> 16) & 0xFF, (payload >> 8) & 0xFF, payload & 0xFF]
        )
        self.mac = self._aes(b0)
        self.ctr = b"\x02" + rnonce + bytes(3)
        self.s0 = self.crypt_ctr_block(None)

    def _tag(self) -> bytes:
        return _xor(bytes(reversed(self.mac)), self.s0)

    def encrypt_ccm_block(self, block) -> tuple[bytes, bytes]:
        """Encrypt one block; return ``(ciphertext, mac)``."""
        block = _check(block, _BLOCK, "block")
        self.mac = self._aes(_xor(self.mac, bytes(reversed(block))))
        tag = self._tag()
        return self.crypt_ctr_block(block), tag

    def decrypt_ccm_block(self, block) -> tuple[bytes, bytes]:
        """Decrypt one block; return ``(plaintext, mac)``."""
        plain = self.crypt_ctr_block(_check(block, _BLOCK, "block"))
        self.mac = self._aes(_xor(self.mac, bytes(reversed(plain))))
        return plain, self._tag()

    def encrypt_ccm(self, data) -> tuple[bytes, bytes]:
        """Encrypt a buffer; return ``(ciphertext, mac)``."""
        data = bytes(data)
        out = bytearray()
        pos = 0
        while len(data) - pos > _BLOCK:
            cipher, _ = self.encrypt_ccm_block(data[pos:pos + _BLOCK])
            out += cipher
            pos += _BLOCK
        tail = data[pos:]
        cipher, tag = self.encrypt_ccm_block(tail + bytes(_BLOCK - len(tail)))
        out += cipher[:len(tail)]
        return bytes(out), tag

    def decrypt_ccm(self, data) -> tuple[bytes, bytes]:
        """Decrypt a buffer; return ``(plaintext, mac)``."""
        data = bytes(data)
        out = bytearray()
        pos = 0
        while len(data) - pos > _BLOCK:
            plain, _ = self.decrypt_ccm_block(data[pos:pos + _BLOCK])
            out += plain
            pos += _BLOCK
        tail = data[pos:]
        saved = self.ctr
        pad = self.crypt_ctr_block(bytes(_BLOCK))
        self.ctr = saved
        plain, tag = self.decrypt_ccm_block(tail + pad[len(tail):])
        out += plain[:len(tail)]
        return bytes(out), tag


class DsiEsContext:
    """Key and nonce settings for ES-format encryption."""

    def __init__(self, key):
        self.key = _check(key, _BLOCK, "key")
        self.nonce = bytes(12)
        self.random_nonce = True

    def set_nonce(self, nonce) -> None:
        self.nonce = _check(nonce, 12, "nonce")
        self.random_nonce = False

    def set_random_nonce(self) -> None:
        self.random_nonce = True

    def decrypt(self, buffer, metablock) -> bytes:
        """Verify and decrypt ``buffer`` against its 32-byte metablock."""
        buffer = bytes(buffer)
        metablock = _check(metablock, 32, "metablock")
        chkmac = metablock[:16]
        ctr = bytes([0]) + metablock[17:29] + bytes(3)

        crypto = DsiContext()
        crypto.init_ctr(self.key, ctr)
        scratch = crypto.crypt_ctr_block(metablock[16:32])
        chksize = (scratch[13] << 16) | (scratch[14] << 8) | scratch[15]

        if scratch[0] != _ES_MAGIC:
            raise EsDecryptError(-1, "metablock magic mismatch")
        if chksize != len(buffer):
            raise EsDecryptError(-2, f"size mismatch: expected {chksize}, got {len(buffer)}")

        crypto.init_ccm(self.key, 16, len(buffer), 0, metablock[17:29])
        plain, genmac = crypto.decrypt_ccm(buffer)
        if genmac != chkmac:
            raise EsDecryptError(-3, "MAC mismatch")
        return plain

    def encrypt(self, buffer) -> tuple[bytes, bytes]:
        """Encrypt ``buffer``; return ``(ciphertext, metablock)``."""
        buffer = bytes(buffer)
        size = len(buffer)
        nonce = os.urandom(12) if self.random_nonce else self.nonce

        crypto = DsiContext()
        crypto.init_ccm(self.key, 16, size, 0, nonce)
        cipher, mac = crypto.encrypt_ccm(buffer)

        scratch = bytes([_ES_MAGIC]) + bytes(12) + bytes(
            [(size >> 16) & 0xFF, (size >> 8) & 0xFF, size & 0xFF]
        )
        crypto.init_ctr(self.key, bytes(1) + nonce + bytes(3))
        enc = crypto.crypt_ctr_block(scratch)
        metablock = mac + enc[:1] + nonce + enc[13:]
        return cipher, metablock