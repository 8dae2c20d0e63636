import pytest

import builders
from helpers import b2i, is_arsc, is_axml, is_cert, is_dex, is_elf, is_valid_dex, split_bits


def test_sniffing(dex_bytes, manifest_bytes, arsc_bytes):
    assert is_dex(dex_bytes)
    assert is_axml(manifest_bytes)
    assert is_arsc(arsc_bytes)
    assert not is_dex(manifest_bytes)
    assert not is_axml(arsc_bytes)
    assert not is_arsc(dex_bytes)
    assert is_elf(b"\x7fELF\x02\x01\x01")
    assert is_cert(b"\x30\x82\x03\x10")


@pytest.mark.parametrize("check", [is_dex, is_axml, is_arsc, is_elf, is_cert, is_valid_dex])
@pytest.mark.parametrize("data", [None, b"", b"\x03", "dex\n035\x00"])
def test_sniffing_rejects_short_or_foreign_input(check, data):
    assert not check(data)


def test_is_dex_only_matches_035():
    assert not is_dex(builders.sample_dex().build(b"039"))


def test_is_valid_dex(dex_bytes):
    assert is_valid_dex(dex_bytes)
    assert is_valid_dex(bytearray(dex_bytes))
    assert not is_valid_dex(dex_bytes[:0x80])
    assert not is_valid_dex(b"dex\n035\x00" + b"\x00" * 8)


def test_b2i():
    assert b2i(b"\x78\x56\x34\x12") == 0x12345678


def test_split_bits():
    assert list(split_bits(0xAD05, 5, 5, 5)) == [5, 8, 11]
    assert list(split_bits(0x12345678, 16, 16)) == [0x5678, 0x1234]
