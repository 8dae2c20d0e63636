from typing import Iterator, Optional

NO_INDEX = 0xFFFFFFFF
NO_ENTRY = 0xFFFFFFFF

DEX_MAGIC = b"dex\n035\x00"
AXML_MAGIC = b"\x03\x00\x08\x00"
ARSC_MAGIC = b"\x02\x00\x0c\x00"
ELF_MAGIC = b"\x7fELF"
CERT_MAGIC = b"\x30\x82"


def b2i(raw_bytes: bytes) -> int:
    return int.from_bytes(raw_bytes, "little")


def split_bits(value: int, *widths: int) -> Iterator[int]:
    """Yields consecutive bit fields of `value`, least significant first."""
    for width in widths:
        yield value & ((1 << width) - 1)
        value >>= width


def _starts_with(data: Optional[bytes], magic: bytes) -> bool:
    if not isinstance(data, (bytes, bytearray, memoryview)):
        return False
    return bytes(data[:len(magic)]) == magic


def is_dex(data: Optional[bytes]) -> bool:
    return _starts_with(data, DEX_MAGIC)


def is_axml(data: Optional[bytes]) -> bool:
    return _starts_with(data, AXML_MAGIC)


def is_arsc(data: Optional[bytes]) -> bool:
    return _starts_with(data, ARSC_MAGIC)


def is_elf(data: Optional[bytes]) -> bool:
    return _starts_with(data, ELF_MAGIC)


def is_cert(data: Optional[bytes]) -> bool:
    return _starts_with(data, CERT_MAGIC)


def is_valid_dex(data: Optional[bytes]) -> bool:
    from dex import decode_dex
    from errors import DecodeError

    if not isinstance(data, (bytes, bytearray, memoryview)):
        return False
    try:
        decode_dex(bytes(data))
    except DecodeError:
        return False
    return True
