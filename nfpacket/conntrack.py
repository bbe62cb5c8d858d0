"""Connection tracking (ctnetlink) messages and their attributes."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterator
from dataclasses import dataclass
from typing import ClassVar, Union

from . import constants
from .nflog_config import _check_uint, _parse_uint
from .nla import (
    DecodeError,
    DefaultNla,
    Nla,
    default_nlas,
    emit_nlas,
    nlas_buffer_len,
    parse_nlas,
)

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_ADDRESS_TYPES = (ipaddress.IPv4Address, ipaddress.IPv6Address)


def _to_address(value) -> IpAddress:
    if isinstance(value, _ADDRESS_TYPES):
        return value
    if isinstance(value, (bytes, bytearray)):
        return _parse_ip(bytes(value))
    return ipaddress.ip_address(value)


def _parse_ip(payload: bytes) -> IpAddress:
    if len(payload) == 4:
        return ipaddress.IPv4Address(payload)
    if len(payload) == 16:
        return ipaddress.IPv6Address(payload)
    raise DecodeError(f"invalid IP address of {len(payload)} bytes")


@dataclass(frozen=True)
class _IpMember(Nla):
    address: IpAddress
    _v4_kind: ClassVar[int]
    _v6_kind: ClassVar[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _to_address(self.address))

    @property
    def kind(self) -> int:
        return self._v4_kind if self.address.version == 4 else self._v6_kind

    def _address_len(self) -> int:
        return 4 if self.address.version == 4 else 16


@dataclass(frozen=True)
class IpSrc(_IpMember):
    """Source address of a connection tuple."""

    _v4_kind: ClassVar[int] = constants.CTA_IP_V4_SRC
    _v6_kind: ClassVar[int] = constants.CTA_IP_V6_SRC

    def value_len(self) -> int:
        return self._address_len()

    def emit_value(self) -> bytes:
        return self.address.packed


@dataclass(frozen=True)
class IpDst(_IpMember):
    """Destination address of a connection tuple."""

    _v4_kind: ClassVar[int] = constants.CTA_IP_V4_DST
    _v6_kind: ClassVar[int] = constants.CTA_IP_V6_DST

    def value_len(self) -> int:
        return self._address_len()

    def emit_value(self) -> bytes:
        return self.address.packed


IpMember = Union[IpSrc, IpDst]


class _MemberList:
    """Behaviour shared by containers of nested attributes in ``members``."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", tuple(self.members))

    def __iter__(self) -> Iterator:
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class _NestedNla(_MemberList, Nla):
    members: tuple
    nested: ClassVar[bool] = True


@dataclass(frozen=True)
class IpTuple(_NestedNla):
    """The addresses of one direction of a connection."""

    kind: ClassVar[int] = constants.CTA_TUPLE_IP

    def value_len(self) -> int:
        return nlas_buffer_len(self.members)

    def emit_value(self) -> bytes:
        return emit_nlas(self.members)


@dataclass(frozen=True)
class ProtoNum(Nla):
    """Layer 4 protocol number."""

    value: int
    kind: ClassVar[int] = constants.CTA_PROTO_NUM

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", _check_uint(self.value, 8, "protocol"))

    def value_len(self) -> int:
        return 1

    def emit_value(self) -> bytes:
        return bytes([self.value])


@dataclass(frozen=True)
class _Port(Nla):
    port: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "port", _check_uint(self.port, 16, "port"))


@dataclass(frozen=True)
class SrcPort(_Port):
    """Source port."""

    kind: ClassVar[int] = constants.CTA_PROTO_SRC_PORT

    def value_len(self) -> int:
        return 2

    def emit_value(self) -> bytes:
        return self.port.to_bytes(2, "big")


@dataclass(frozen=True)
class DstPort(_Port):
    """Destination port."""

    kind: ClassVar[int] = constants.CTA_PROTO_DST_PORT

    def value_len(self) -> int:
        return 2

    def emit_value(self) -> bytes:
        return self.port.to_bytes(2, "big")


ProtoMember = Union[ProtoNum, SrcPort, DstPort, DefaultNla]


@dataclass(frozen=True)
class ProtoTuple(_NestedNla):
    """The protocol and ports of one direction of a connection."""

    kind: ClassVar[int] = constants.CTA_TUPLE_PROTO

    def value_len(self) -> int:
        return nlas_buffer_len(self.members)

    def emit_value(self) -> bytes:
        return emit_nlas(self.members)


ConnectionMember = Union[IpTuple, ProtoTuple, DefaultNla]


@dataclass(frozen=True)
class ConnectionTuple(_MemberList):
    """The members of one direction of a connection."""

    members: tuple

    def value_len(self) -> int:
        return nlas_buffer_len(self.members)

    def emit_value(self) -> bytes:
        return emit_nlas(self.members)


@dataclass(frozen=True)
class _TupleNla(Nla):
    tuple: ConnectionTuple
    nested: ClassVar[bool] = True

    def __post_init__(self) -> None:
        if not isinstance(self.tuple, ConnectionTuple):
            object.__setattr__(self, "tuple", ConnectionTuple(self.tuple))


@dataclass(frozen=True)
class TupleOrig(_TupleNla):
    """Tuple of the original direction."""

    kind: ClassVar[int] = constants.CTA_TUPLE_ORIG

    def value_len(self) -> int:
        return self.tuple.value_len()

    def emit_value(self) -> bytes:
        return self.tuple.emit_value()


@dataclass(frozen=True)
class TupleReply(_TupleNla):
    """Tuple of the reply direction."""

    kind: ClassVar[int] = constants.CTA_TUPLE_REPLY

    def value_len(self) -> int:
        return self.tuple.value_len()

    def emit_value(self) -> bytes:
        return self.tuple.emit_value()


ConnectionNla = Union[TupleOrig, TupleReply, DefaultNla]

_PROPERTY_OF = {
    IpSrc: ("src_ip", "address"),
    IpDst: ("dst_ip", "address"),
    ProtoNum: ("protocol", "value"),
    SrcPort: ("src_port", "port"),
    DstPort: ("dst_port", "port"),
}


@dataclass(frozen=True)
class ConnectionProperties:
    """Addresses, ports and protocol gathered from a connection tuple."""

    src_ip: IpAddress
    dst_ip: IpAddress
    src_port: int
    dst_port: int
    protocol: int

    @classmethod
    def from_tuple(cls, connection_tuple: ConnectionTuple) -> ConnectionProperties:
        """Collect the properties; raise DecodeError if any is missing."""
        found: dict[str, object] = {}
        for member in connection_tuple:
            if not isinstance(member, (IpTuple, ProtoTuple)):
                continue
            for inner in member:
                entry = _PROPERTY_OF.get(type(inner))
                if entry is not None:
                    name, attr = entry
                    found[name] = getattr(inner, attr)
        try:
            return cls(**found)
        except TypeError:
            raise DecodeError("Connection properties incomplete") from None


class _NlaListMessage:
    """Behaviour shared by messages whose body is the attributes in ``nlas``."""

    SUBSYS: ClassVar[int] = constants.NFNL_SUBSYS_CTNETLINK

    def __post_init__(self) -> None:
        object.__setattr__(self, "nlas", tuple(self.nlas))


@dataclass(frozen=True)
class ConnectionNew(_NlaListMessage):
    """A connection was created."""

    nlas: tuple
    message_type: ClassVar[int] = constants.IPCTNL_MSG_CT_NEW

    def buffer_len(self) -> int:
        return nlas_buffer_len(self.nlas)

    def emit(self) -> bytes:
        return emit_nlas(self.nlas)


@dataclass(frozen=True)
class ConnectionDelete(_NlaListMessage):
    """A connection was destroyed."""

    nlas: tuple
    message_type: ClassVar[int] = constants.IPCTNL_MSG_CT_DELETE

    def buffer_len(self) -> int:
        return nlas_buffer_len(self.nlas)

    def emit(self) -> bytes:
        return emit_nlas(self.nlas)


@dataclass(frozen=True)
class ConntrackOther(_NlaListMessage):
    """Any other conntrack message, its attributes kept raw."""

    message_type: int
    nlas: tuple

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "message_type", _check_uint(self.message_type, 8, "message type")
        )
        super().__post_init__()

    def buffer_len(self) -> int:
        return nlas_buffer_len(self.nlas)

    def emit(self) -> bytes:
        return emit_nlas(self.nlas)


NfConntrackMessage = Union[ConnectionNew, ConnectionDelete, ConntrackOther]


def parse_ip_member(kind: int, payload: bytes) -> IpMember:
    """Decode one address attribute."""
    payload = bytes(payload)
    attr_type = kind & constants.NLA_TYPE_MASK
    if attr_type in (constants.CTA_IP_V4_SRC, constants.CTA_IP_V6_SRC):
        return IpSrc(_parse_ip(payload))
    if attr_type in (constants.CTA_IP_V4_DST, constants.CTA_IP_V6_DST):
        return IpDst(_parse_ip(payload))
    raise DecodeError(f"Unhandled IP type: {attr_type}")


def parse_ip_tuple(data: bytes) -> IpTuple:
    """Decode the nested attributes of a CTA_TUPLE_IP attribute."""
    return IpTuple(parse_nlas(data, parse_ip_member))


_PROTO_KINDS = {
    constants.CTA_PROTO_NUM: (ProtoNum, 1, "CTA_PROTO_NUM"),
    constants.CTA_PROTO_SRC_PORT: (SrcPort, 2, "CTA_PROTO_SRC_PORT"),
    constants.CTA_PROTO_DST_PORT: (DstPort, 2, "CTA_PROTO_DST_PORT"),
}


def parse_proto_member(kind: int, payload: bytes) -> ProtoMember:
    """Decode one protocol attribute."""
    payload = bytes(payload)
    entry = _PROTO_KINDS.get(kind & constants.NLA_TYPE_MASK)
    if entry is None:
        return DefaultNla(kind, payload)
    cls, size, name = entry
    return cls(_parse_uint(payload, size, name))


def parse_proto_tuple(data: bytes) -> ProtoTuple:
    """Decode the nested attributes of a CTA_TUPLE_PROTO attribute."""
    return ProtoTuple(parse_nlas(data, parse_proto_member))


def parse_connection_member(kind: int, payload: bytes) -> ConnectionMember:
    """Decode one member of a connection tuple."""
    payload = bytes(payload)
    match kind & constants.NLA_TYPE_MASK:
        case constants.CTA_TUPLE_IP:
            return parse_ip_tuple(payload)
        case constants.CTA_TUPLE_PROTO:
            return parse_proto_tuple(payload)
        case _:
            return DefaultNla(kind, payload)


def parse_connection_tuple(data: bytes) -> ConnectionTuple:
    """Decode the members of a connection tuple."""
    return ConnectionTuple(parse_nlas(data, parse_connection_member))


def parse_connection_nla(kind: int, payload: bytes) -> ConnectionNla:
    """Decode one top-level attribute of a conntrack message."""
    payload = bytes(payload)
    match kind & constants.NLA_TYPE_MASK:
        case constants.CTA_TUPLE_ORIG:
            return TupleOrig(parse_connection_tuple(payload))
        case constants.CTA_TUPLE_REPLY:
            return TupleReply(parse_connection_tuple(payload))
        case _:
            return DefaultNla(kind, payload)


def parse_conntrack_message(message_type: int, data: bytes) -> NfConntrackMessage:
    """Decode the attributes that follow the netfilter header."""
    match message_type:
        case constants.IPCTNL_MSG_CT_NEW:
            return ConnectionNew(parse_nlas(data, parse_connection_nla))
        case constants.IPCTNL_MSG_CT_DELETE:
            return ConnectionDelete(parse_nlas(data, parse_connection_nla))
        case _:
            return ConntrackOther(message_type, default_nlas(data))