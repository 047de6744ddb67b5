import pytest

from taddelivery.dsi_crypto import DsiContext, DsiEsContext, EsDecryptError

KEY = bytes(range(16))
NONCE = bytes(range(100, 112))


def test_ctr_keystream_matches_aes_standard_vector():
    aes_key = bytes(range(16))
    aes_plain = bytes.fromhex("00112233445566778899aabbccddeeff")
    ctx = DsiContext()
    ctx.init_ctr(bytes(reversed(aes_key)), bytes(reversed(aes_plain)))
    stream = ctx.crypt_ctr_block(None)
    expected = bytes.fromhex("69c4e0d86a7b0430d8cdb78070b4c55a")
    assert stream == bytes(reversed(expected))


def test_ctr_block_advances_counter():
    ctx = DsiContext(KEY)
    ctx.set_ctr(bytes(16))
    ctx.crypt_ctr_block(bytes(16))
    assert ctx.ctr == bytes(15) + b"\x01"


def test_add_ctr_wraps_and_carries():
    ctx = DsiContext()
    ctx.ctr = b"\xff" * 16
    ctx.add_ctr(1)
    assert ctx.ctr == bytes(16)

    ctx.ctr = bytes(12) + b"\xff" * 4
    ctx.add_ctr(1)
    assert ctx.ctr == bytes(11) + b"\x01" + bytes(4)


def test_set_ctr_reverses():
    ctx = DsiContext()
    ctx.set_ctr(bytes(range(16)))
    assert ctx.ctr == bytes(reversed(range(16)))


@pytest.mark.parametrize("length", [0, 5, 16, 33, 64])
def test_crypt_ctr_round_trip(length):
    data = bytes((i * 7) & 0xFF for i in range(length))
    ctr = bytes(range(50, 66))
    enc = DsiContext()
    enc.init_ctr(KEY, ctr)
    cipher = enc.crypt_ctr(data)
    assert len(cipher) == length
    dec = DsiContext()
    dec.init_ctr(KEY, ctr)
    assert dec.crypt_ctr(cipher) == data


def test_init_ccm_sets_counter_and_maclen():
    ctx = DsiContext()
    ctx.init_ccm(KEY, 16, 40, 0, NONCE)
    assert ctx.maclen == 16
    assert ctx.ctr == b"\x02" + bytes(reversed(NONCE)) + b"\x00\x00\x01"


@pytest.mark.parametrize("length", [0, 5, 16, 17, 40, 48])
def test_ccm_round_trip(length):
    data = bytes((i * 13 + 1) & 0xFF for i in range(length))
    enc = DsiContext()
    enc.init_ccm(KEY, 16, length, 0, NONCE)
    cipher, mac = enc.encrypt_ccm(data)
    assert len(cipher) == length

    dec = DsiContext()
    dec.init_ccm(KEY, 16, length, 0, NONCE)
    plain, mac2 = dec.decrypt_ccm(cipher)
    assert plain == data
    assert mac2 == mac


def test_ccm_block_round_trip():
    block = bytes(range(16))
    enc = DsiContext()
    enc.init_ccm(KEY, 16, 16, 0, NONCE)
    cipher, mac = enc.encrypt_ccm_block(block)
    dec = DsiContext()
    dec.init_ccm(KEY, 16, 16, 0, NONCE)
    assert dec.decrypt_ccm_block(cipher) == (block, mac)


def test_missing_key_raises():
    with pytest.raises(RuntimeError):
        DsiContext().crypt_ctr_block(None)


def test_bad_key_length_raises():
    with pytest.raises(ValueError):
        DsiContext(b"short")


def _es():
    es = DsiEsContext(KEY)
    es.set_nonce(NONCE)
    return es


@pytest.mark.parametrize("length", [1, 16, 31, 100])
def test_es_round_trip(length):
    data = bytes((i * 3) & 0xFF for i in range(length))
    cipher, meta = _es().encrypt(data)
    assert len(meta) == 32
    assert meta[17:29] == NONCE
    assert _es().decrypt(cipher, meta) == data


def test_es_fixed_nonce_is_deterministic():
    data = b"hello world, es!"
    first_cipher, first_meta = _es().encrypt(data)
    second_cipher, second_meta = _es().encrypt(data)
    assert len(first_cipher) == len(data)
    assert first_meta[17:29] == NONCE
    assert (first_cipher, first_meta) == (second_cipher, second_meta)
    assert _es().decrypt(second_cipher, first_meta) == data


def test_es_random_nonce_differs():
    es = DsiEsContext(KEY)
    es.set_nonce(NONCE)
    es.set_random_nonce()
    data = b"some data"
    first = es.encrypt(data)
    second = es.encrypt(data)
    assert first[1][17:29] != second[1][17:29]
    assert es.decrypt(*first) == data


def test_es_tampered_data_fails_mac():
    cipher, meta = _es().encrypt(b"payload bytes here")
    tampered = bytes([cipher[0] ^ 1]) + cipher[1:]
    with pytest.raises(EsDecryptError) as info:
        _es().decrypt(tampered, meta)
    assert info.value.code == -3


def test_es_wrong_size_fails():
    cipher, meta = _es().encrypt(b"payload bytes here")
    with pytest.raises(EsDecryptError) as info:
        _es().decrypt(cipher + b"x", meta)
    assert info.value.code == -2


def test_es_wrong_key_fails():
    cipher, meta = _es().encrypt(b"payload bytes here")
    other = DsiEsContext(bytes(16))
    with pytest.raises(EsDecryptError):
        other.decrypt(cipher, meta)