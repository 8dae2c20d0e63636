from contextlib import contextmanager
from typing import Optional

import kaitaistruct


class DecodeError(Exception):
    """Structural failure while decoding a DEX, AXML or ARSC buffer."""

    def __init__(self, msg: str, offset: Optional[int] = None):
        super().__init__(msg)
        self.offset = offset


class MalformedHeader(DecodeError):
    pass


class OutOfBounds(DecodeError):
    pass


class UnknownChunkType(DecodeError):
    def __init__(self, chunk_type: int, offset: Optional[int] = None):
        super().__init__("chunk type error: type:%#06x at %s" % (chunk_type, offset), offset)
        self.chunk_type = chunk_type


class ReadError(DecodeError):
    pass


class ResourceLookupError(Exception):
    """A well-formed file was asked for something it does not hold."""


class InvalidIndex(ResourceLookupError, IndexError):
    pass


class InvalidIdentifier(ResourceLookupError, ValueError):
    pass


class NotFound(ResourceLookupError, KeyError):
    def __str__(self):
        return str(self.args[0]) if self.args else ""


@contextmanager
def decoding(what: str):
    """Turns runtime stream failures into DecodeError subclasses."""
    try:
        yield
    except kaitaistruct.ValidationNotEqualError as ex:
        raise MalformedHeader(f"{what}: expected {ex.expected!r}, got {ex.actual!r}") from ex
    except EOFError as ex:
        raise OutOfBounds(f"{what}: {ex}") from ex
    except InvalidIndex as ex:
        # a dangling index inside the file is corruption, not a failed lookup
        raise OutOfBounds(f"{what}: {ex}") from ex
