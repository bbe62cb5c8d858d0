"""Netfilter (nfnetlink) messages: the netfilter header and its subsystems."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar, Union

from . import constants
from .conntrack import (
    ConnectionDelete,
    ConnectionNew,
    ConntrackOther,
    NfConntrackMessage,
    parse_conntrack_message,
)
from .nflog_config import parse_config_nla
from .nflog_packet import parse_packet_nla
from .nla import DecodeError, default_nlas, emit_nlas, nlas_buffer_len, parse_nlas

NETFILTER_HEADER_LEN = 4
_NETFILTER_HEADER = struct.Struct(">BBH")


def _check_uint(value: int, bits: int, what: str) -> int:
    value = int(value)
    if not 0 <= value < 1 << bits:
        raise ValueError(f"{what} must fit in {bits} unsigned bits, got {value}")
    return value


@dataclass(frozen=True)
class NetfilterHeader:
    """The generic nfnetlink header: family, version and resource id."""

    family: int
    version: int
    res_id: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "family", _check_uint(self.family, 8, "family"))
        object.__setattr__(self, "version", _check_uint(self.version, 8, "version"))
        object.__setattr__(self, "res_id", _check_uint(self.res_id, 16, "res_id"))

    def buffer_len(self) -> int:
        return NETFILTER_HEADER_LEN

    def emit(self) -> bytes:
        return _NETFILTER_HEADER.pack(self.family, self.version, self.res_id)

    @classmethod
    def parse(cls, data: bytes) -> NetfilterHeader:
        if len(data) < NETFILTER_HEADER_LEN:
            raise DecodeError(
                f"buffer of {len(data)} bytes is smaller than the netfilter header"
            )
        return cls(*_NETFILTER_HEADER.unpack_from(data))


@dataclass(frozen=True)
class _NfLogMessage:
    nlas: tuple
    SUBSYS: ClassVar[int] = constants.NFNL_SUBSYS_ULOG

    def __post_init__(self) -> None:
        object.__setattr__(self, "nlas", tuple(self.nlas))

    def buffer_len(self) -> int:
        return nlas_buffer_len(self.nlas)

    def emit(self) -> bytes:
        return emit_nlas(self.nlas)


@dataclass(frozen=True)
class NfLogConfig(_NfLogMessage):
    """An nflog configuration message."""

    message_type: ClassVar[int] = constants.NFULNL_MSG_CONFIG

    def buffer_len(self) -> int:
        return super().buffer_len()

    def emit(self) -> bytes:
        return super().emit()


@dataclass(frozen=True)
class NfLogPacket(_NfLogMessage):
    """A packet logged by nflog."""

    message_type: ClassVar[int] = constants.NFULNL_MSG_PACKET

    def buffer_len(self) -> int:
        return super().buffer_len()

    def emit(self) -> bytes:
        return super().emit()


@dataclass(frozen=True)
class NfLogOther:
    """Any other nflog message, its attributes kept raw."""

    message_type: int
    nlas: tuple
    SUBSYS: ClassVar[int] = constants.NFNL_SUBSYS_ULOG

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "message_type", _check_uint(self.message_type, 8, "message type")
        )
        object.__setattr__(self, "nlas", tuple(self.nlas))

    def buffer_len(self) -> int:
        return nlas_buffer_len(self.nlas)

    def emit(self) -> bytes:
        return emit_nlas(self.nlas)


NfLogMessage = Union[NfLogConfig, NfLogPacket, NfLogOther]


@dataclass(frozen=True)
class OtherSubsysMessage:
    """A message of a subsystem this package does not decode."""

    subsys: int
    message_type: int
    nlas: tuple

    def __post_init__(self) -> None:
        object.__setattr__(self, "subsys", _check_uint(self.subsys, 8, "subsystem"))
        object.__setattr__(
            self, "message_type", _check_uint(self.message_type, 8, "message type")
        )
        object.__setattr__(self, "nlas", tuple(self.nlas))

    def buffer_len(self) -> int:
        return nlas_buffer_len(self.nlas)

    def emit(self) -> bytes:
        return emit_nlas(self.nlas)


NetfilterMessageInner = Union[NfConntrackMessage, NfLogMessage, OtherSubsysMessage]

_KNOWN_INNER = (
    ConnectionNew,
    ConnectionDelete,
    ConntrackOther,
    NfLogConfig,
    NfLogPacket,
    NfLogOther,
)


def parse_nflog_message(message_type: int, data: bytes) -> NfLogMessage:
    """Decode the attributes of an nflog message that follow the header."""
    match message_type:
        case constants.NFULNL_MSG_CONFIG:
            return NfLogConfig(parse_nlas(data, parse_config_nla))
        case constants.NFULNL_MSG_PACKET:
            return NfLogPacket(parse_nlas(data, parse_packet_nla))
        case _:
            return NfLogOther(message_type, default_nlas(data))


@dataclass(frozen=True)
class NetfilterMessage:
    """A netfilter header followed by a subsystem message."""

    header: NetfilterHeader
    inner: NetfilterMessageInner

    def subsys(self) -> int:
        if isinstance(self.inner, OtherSubsysMessage):
            return self.inner.subsys
        if isinstance(self.inner, _KNOWN_INNER):
            return self.inner.SUBSYS
        raise TypeError(f"unsupported inner message {self.inner!r}")

    def message_type(self) -> int:
        return self.inner.message_type

    def netlink_type(self) -> int:
        """The 16-bit netlink message type: subsystem and message type."""
        return (self.subsys() << 8) | self.message_type()

    def buffer_len(self) -> int:
        return self.header.buffer_len() + self.inner.buffer_len()

    def emit(self) -> bytes:
        return self.header.emit() + self.inner.emit()

    @classmethod
    def parse(cls, data: bytes, message_type: int) -> NetfilterMessage:
        """Decode a netlink payload whose netlink type is ``message_type``."""
        data = bytes(data)
        try:
            header = NetfilterHeader.parse(data)
        except DecodeError as err:
            raise DecodeError(f"failed to parse netfilter header: {err}") from err
        subsys = (message_type >> 8) & 0xFF
        sub_type = message_type & 0xFF
        body = data[NETFILTER_HEADER_LEN:]
        inner: NetfilterMessageInner
        if subsys == constants.NFNL_SUBSYS_CTNETLINK:
            try:
                inner = parse_conntrack_message(sub_type, body)
            except DecodeError as err:
                raise DecodeError(
                    f"failed to parse nfconntrack payload: {err}"
                ) from err
        elif subsys == constants.NFNL_SUBSYS_ULOG:
            try:
                inner = parse_nflog_message(sub_type, body)
            except DecodeError as err:
                raise DecodeError(f"failed to parse nflog payload: {err}") from err
        else:
            inner = OtherSubsysMessage(subsys, sub_type, default_nlas(body))
        return cls(header, inner)