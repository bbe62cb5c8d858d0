"""Attributes of nflog packet messages."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar, Union

from . import constants
from .nflog_config import _check_uint, _parse_uint
from .nla import DecodeError, DefaultNla, Nla

_PACKET_HDR = struct.Struct(">HBx")
_TIMESTAMP = struct.Struct(">QQ")
_HW_ADDR = struct.Struct(">H2x8s")
_HW_ADDR_SLOTS = 8


def _require(data: bytes, size: int, name: str) -> None:
    if len(data) < size:
        raise DecodeError(
            f"invalid {name} value: needs {size} bytes, got {len(data)}"
        )


def _set_checked(obj, field: str, bits: int, what: str) -> None:
    object.__setattr__(obj, field, _check_uint(getattr(obj, field), bits, what))


@dataclass(frozen=True)
class PacketHdr(Nla):
    """Hardware protocol and netfilter hook of a logged packet."""

    hw_protocol: int
    hook: int
    kind: ClassVar[int] = constants.NFULA_PACKET_HDR

    def __post_init__(self) -> None:
        _set_checked(self, "hw_protocol", 16, "hw protocol")
        _set_checked(self, "hook", 8, "hook")

    def value_len(self) -> int:
        return _PACKET_HDR.size

    def emit_value(self) -> bytes:
        return _PACKET_HDR.pack(self.hw_protocol, self.hook)

    @classmethod
    def parse(cls, data: bytes) -> PacketHdr:
        _require(data, _PACKET_HDR.size, "NFULA_PACKET_HDR")
        return cls(*_PACKET_HDR.unpack_from(data))


@dataclass(frozen=True)
class TimeStamp(Nla):
    """Time the packet was logged, as seconds and microseconds."""

    sec: int
    usec: int
    kind: ClassVar[int] = constants.NFULA_TIMESTAMP

    def __post_init__(self) -> None:
        _set_checked(self, "sec", 64, "seconds")
        _set_checked(self, "usec", 64, "microseconds")

    def value_len(self) -> int:
        return _TIMESTAMP.size

    def emit_value(self) -> bytes:
        return _TIMESTAMP.pack(self.sec, self.usec)

    @classmethod
    def parse(cls, data: bytes) -> TimeStamp:
        _require(data, _TIMESTAMP.size, "NFULA_TIMESTAMP")
        return cls(*_TIMESTAMP.unpack_from(data))


@dataclass(frozen=True)
class HwAddr(Nla):
    """Hardware source address: its length and up to eight address bytes."""

    length: int
    address: bytes
    kind: ClassVar[int] = constants.NFULA_HWADDR

    def __post_init__(self) -> None:
        _set_checked(self, "length", 16, "address length")
        address = bytes(self.address)
        if len(address) > _HW_ADDR_SLOTS:
            raise ValueError(
                f"hardware address holds at most {_HW_ADDR_SLOTS} bytes, "
                f"got {len(address)}"
            )
        object.__setattr__(self, "address", address.ljust(_HW_ADDR_SLOTS, b"\0"))

    def value_len(self) -> int:
        return _HW_ADDR.size

    def emit_value(self) -> bytes:
        return _HW_ADDR.pack(self.length, self.address)

    @classmethod
    def parse(cls, data: bytes) -> HwAddr:
        _require(data, _HW_ADDR.size, "NFULA_HWADDR")
        return cls(*_HW_ADDR.unpack_from(data))


@dataclass(frozen=True)
class _UintNla(Nla):
    """An attribute whose value is a big-endian unsigned integer."""

    value: int
    size: ClassVar[int] = 4

    def __post_init__(self) -> None:
        _set_checked(self, "value", self.size * 8, type(self).__name__)

    def value_len(self) -> int:
        return self.size

    def emit_value(self) -> bytes:
        return self.value.to_bytes(self.size, "big")


@dataclass(frozen=True)
class Mark(_UintNla):
    """Packet mark."""

    kind: ClassVar[int] = constants.NFULA_MARK


@dataclass(frozen=True)
class IfIndexInDev(_UintNla):
    """Index of the input interface."""

    kind: ClassVar[int] = constants.NFULA_IFINDEX_INDEV


@dataclass(frozen=True)
class IfIndexOutDev(_UintNla):
    """Index of the output interface."""

    kind: ClassVar[int] = constants.NFULA_IFINDEX_OUTDEV


@dataclass(frozen=True)
class IfIndexPhysInDev(_UintNla):
    """Index of the physical input interface."""

    kind: ClassVar[int] = constants.NFULA_IFINDEX_PHYSINDEV


@dataclass(frozen=True)
class IfIndexPhysOutDev(_UintNla):
    """Index of the physical output interface."""

    kind: ClassVar[int] = constants.NFULA_IFINDEX_PHYSOUTDEV


@dataclass(frozen=True)
class Uid(_UintNla):
    """User id of the owning socket."""

    kind: ClassVar[int] = constants.NFULA_UID


@dataclass(frozen=True)
class Seq(_UintNla):
    """Per-group sequence number."""

    kind: ClassVar[int] = constants.NFULA_SEQ


@dataclass(frozen=True)
class SeqGlobal(_UintNla):
    """Global sequence number."""

    kind: ClassVar[int] = constants.NFULA_SEQ_GLOBAL


@dataclass(frozen=True)
class Gid(_UintNla):
    """Group id of the owning socket."""

    kind: ClassVar[int] = constants.NFULA_GID


@dataclass(frozen=True)
class HwType(_UintNla):
    """Hardware type of the interface."""

    kind: ClassVar[int] = constants.NFULA_HWTYPE
    size: ClassVar[int] = 2


@dataclass(frozen=True)
class HwHeaderLen(_UintNla):
    """Length of the hardware header."""

    kind: ClassVar[int] = constants.NFULA_HWLEN
    size: ClassVar[int] = 2


@dataclass(frozen=True)
class _BytesNla(Nla):
    """An attribute whose value is an opaque run of bytes."""

    data: bytes

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))


@dataclass(frozen=True)
class Payload(_BytesNla):
    """The logged packet, starting at its network header."""

    kind: ClassVar[int] = constants.NFULA_PAYLOAD

    def value_len(self) -> int:
        return len(self.data)

    def emit_value(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class HwHeader(_BytesNla):
    """The packet's hardware header."""

    kind: ClassVar[int] = constants.NFULA_HWHEADER

    def value_len(self) -> int:
        return len(self.data)

    def emit_value(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class Prefix(Nla):
    """Log prefix; stored without the terminating NUL sent on the wire."""

    text: bytes
    kind: ClassVar[int] = constants.NFULA_PREFIX

    def __post_init__(self) -> None:
        text = self.text.encode() if isinstance(self.text, str) else bytes(self.text)
        if b"\0" in text:
            raise ValueError("prefix cannot contain a NUL byte")
        object.__setattr__(self, "text", text)

    def value_len(self) -> int:
        return len(self.text) + 1

    def emit_value(self) -> bytes:
        return self.text + b"\0"


PacketNla = Union[
    PacketHdr,
    Mark,
    TimeStamp,
    IfIndexInDev,
    IfIndexOutDev,
    IfIndexPhysInDev,
    IfIndexPhysOutDev,
    HwAddr,
    Payload,
    Prefix,
    Uid,
    Seq,
    SeqGlobal,
    Gid,
    HwType,
    HwHeader,
    HwHeaderLen,
    DefaultNla,
]

_UINT_KINDS: dict[int, tuple[type[_UintNla], str]] = {
    constants.NFULA_MARK: (Mark, "NFULA_MARK"),
    constants.NFULA_IFINDEX_INDEV: (IfIndexInDev, "NFULA_IFINDEX_INDEV"),
    constants.NFULA_IFINDEX_OUTDEV: (IfIndexOutDev, "NFULA_IFINDEX_OUTDEV"),
    constants.NFULA_IFINDEX_PHYSINDEV: (IfIndexPhysInDev, "NFULA_IFINDEX_PHYSINDEV"),
    constants.NFULA_IFINDEX_PHYSOUTDEV: (
        IfIndexPhysOutDev,
        "NFULA_IFINDEX_PHYSOUTDEV",
    ),
    constants.NFULA_UID: (Uid, "NFULA_UID"),
    constants.NFULA_SEQ: (Seq, "NFULA_SEQ"),
    constants.NFULA_SEQ_GLOBAL: (SeqGlobal, "NFULA_SEQ_GLOBAL"),
    constants.NFULA_GID: (Gid, "NFULA_GID"),
    constants.NFULA_HWTYPE: (HwType, "NFULA_HWTYPE"),
    constants.NFULA_HWLEN: (HwHeaderLen, "NFULA_HWLEN"),
}


def _parse_prefix(payload: bytes) -> Prefix:
    if not payload.endswith(b"\0"):
        raise DecodeError("invalid NFULA_PREFIX value: missing NUL terminator")
    text = payload[:-1]
    if b"\0" in text:
        raise DecodeError("invalid NFULA_PREFIX value: interior NUL byte")
    return Prefix(text)


_OTHER_KINDS = {
    constants.NFULA_PACKET_HDR: PacketHdr.parse,
    constants.NFULA_TIMESTAMP: TimeStamp.parse,
    constants.NFULA_HWADDR: HwAddr.parse,
    constants.NFULA_PAYLOAD: Payload,
    constants.NFULA_PREFIX: _parse_prefix,
    constants.NFULA_HWHEADER: HwHeader,
}


def parse_packet_nla(kind: int, payload: bytes) -> PacketNla:
    """Decode one packet attribute from its raw type and value."""
    payload = bytes(payload)
    attr_type = kind & constants.NLA_TYPE_MASK
    if attr_type in _UINT_KINDS:
        cls, name = _UINT_KINDS[attr_type]
        return cls(_parse_uint(payload, cls.size, name))
    parser = _OTHER_KINDS.get(attr_type)
    if parser is None:
        return DefaultNla(kind, payload)
    return parser(payload)