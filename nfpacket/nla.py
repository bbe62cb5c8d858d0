"""Netlink attribute (NLA) encoding and decoding."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import ClassVar, TypeVar

from .constants import NLA_F_NESTED

NLA_HEADER_LEN = 4
_HEADER = struct.Struct("=HH")

T = TypeVar("T")


class DecodeError(ValueError):
    """Raised when bytes cannot be decoded into a message or attribute."""


def align(length: int) -> int:
    """Round ``length`` up to the 4-byte netlink alignment."""
    return (length + 3) & ~3


class Nla(ABC):
    """A netlink attribute: a type, a value, and its wire encoding."""

    kind: int
    nested: ClassVar[bool] = False

    @abstractmethod
    def value_len(self) -> int:
        """Length of the encoded value, without header or padding."""

    @abstractmethod
    def emit_value(self) -> bytes:
        """Encode the attribute value."""

    def buffer_len(self) -> int:
        """Length of the whole attribute on the wire, padding included."""
        return align(NLA_HEADER_LEN + self.value_len())

    def emit(self) -> bytes:
        """Encode header, value and padding."""
        value = self.emit_value()
        if len(value) != self.value_len():
            raise ValueError(
                f"encoded value is {len(value)} bytes, expected {self.value_len()}"
            )
        length = NLA_HEADER_LEN + len(value)
        if length > 0xFFFF:
            raise ValueError(f"attribute of {length} bytes is too long")
        kind = self.kind | (NLA_F_NESTED if self.nested else 0)
        return _HEADER.pack(length, kind) + value + bytes(align(length) - length)


@dataclass(frozen=True)
class DefaultNla(Nla):
    """An attribute kept as its raw type field and value bytes."""

    kind: int
    value: bytes

    def value_len(self) -> int:
        return len(self.value)

    def emit_value(self) -> bytes:
        return bytes(self.value)


def iter_nlas(data: bytes) -> Iterator[tuple[int, bytes]]:
    """Yield ``(raw_type, value)`` for each attribute in ``data``.

    The type is returned as found on the wire, flags included.
    """
    data = bytes(data)
    offset = 0
    while offset < len(data):
        remaining = len(data) - offset
        if remaining < NLA_HEADER_LEN:
            raise DecodeError(
                f"buffer of {remaining} bytes is smaller than an attribute header"
            )
        length, kind = _HEADER.unpack_from(data, offset)
        if length < NLA_HEADER_LEN:
            raise DecodeError(f"attribute length {length} is smaller than its header")
        if length > remaining:
            raise DecodeError(
                f"attribute length {length} exceeds the {remaining} bytes available"
            )
        yield kind, data[offset + NLA_HEADER_LEN : offset + length]
        offset += align(length)


def parse_nlas(data: bytes, parser: Callable[[int, bytes], T]) -> list[T]:
    """Parse every attribute in ``data`` with ``parser(raw_type, value)``."""
    try:
        return [parser(kind, value) for kind, value in iter_nlas(data)]
    except DecodeError as err:
        raise DecodeError(f"failed to parse NLAs: {err}") from err


def default_nlas(data: bytes) -> list[DefaultNla]:
    """Parse every attribute in ``data`` as a :class:`DefaultNla`."""
    return parse_nlas(data, DefaultNla)


def nlas_buffer_len(nlas: Iterable[Nla]) -> int:
    """Total encoded length of ``nlas``."""
    return sum(nla.buffer_len() for nla in nlas)


def emit_nlas(nlas: Iterable[Nla]) -> bytes:
    """Encode ``nlas`` one after another."""
    return b"".join(nla.emit() for nla in nlas)