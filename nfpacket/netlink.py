"""Netlink framing of netfilter messages."""

from __future__ import annotations

import struct
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Union

from . import constants
from .message import NetfilterHeader, NetfilterMessage, NfLogConfig
from .nla import DecodeError, align

_HEADER = struct.Struct("=IHHII")
_ERROR_CODE = struct.Struct("=i")


@dataclass
class NetlinkHeader:
    """The netlink message header."""

    length: int = 0
    message_type: int = 0
    flags: int = 0
    sequence_number: int = 0
    port_number: int = 0

    def emit(self) -> bytes:
        try:
            return _HEADER.pack(
                self.length,
                self.message_type,
                self.flags,
                self.sequence_number,
                self.port_number,
            )
        except struct.error as err:
            raise ValueError(f"invalid netlink header field: {err}") from err

    @classmethod
    def parse(cls, data: bytes) -> NetlinkHeader:
        if len(data) < constants.NLMSG_HDR_LEN:
            raise DecodeError(
                f"buffer of {len(data)} bytes is smaller than a netlink header"
            )
        return cls(*_HEADER.unpack_from(data))


@dataclass(frozen=True)
class ErrorMessage:
    """An NLMSG_ERROR payload; a code of ``None`` is an acknowledgement."""

    code: int | None = None
    header: bytes = b""

    def __post_init__(self) -> None:
        if self.code == 0:
            object.__setattr__(self, "code", None)
        object.__setattr__(self, "header", bytes(self.header))

    def buffer_len(self) -> int:
        return _ERROR_CODE.size + len(self.header)

    def emit(self) -> bytes:
        return _ERROR_CODE.pack(self.code or 0) + self.header


# NOOP, DONE and OVERRUN messages keep their payload as raw bytes.
NetlinkPayload = Union[NetfilterMessage, ErrorMessage, bytes]

_RAW_TYPES = (constants.NLMSG_NOOP, constants.NLMSG_DONE, constants.NLMSG_OVERRUN)


@dataclass
class NetlinkMessage:
    """A netlink header and its payload."""

    header: NetlinkHeader = field(default_factory=NetlinkHeader)
    payload: NetlinkPayload = b""

    def _payload_len(self) -> int:
        if isinstance(self.payload, (bytes, bytearray)):
            return len(self.payload)
        return self.payload.buffer_len()

    def _payload_bytes(self) -> bytes:
        if isinstance(self.payload, (bytes, bytearray)):
            return bytes(self.payload)
        return self.payload.emit()

    def buffer_len(self) -> int:
        return constants.NLMSG_HDR_LEN + self._payload_len()

    def finalize(self) -> None:
        """Set the header's length and message type from the payload."""
        self.header.length = self.buffer_len()
        if isinstance(self.payload, NetfilterMessage):
            self.header.message_type = self.payload.netlink_type()
        elif isinstance(self.payload, ErrorMessage):
            self.header.message_type = constants.NLMSG_ERROR

    def serialize(self) -> bytes:
        return self.header.emit() + self._payload_bytes()

    @classmethod
    def deserialize(cls, data: bytes) -> NetlinkMessage:
        """Decode the first message in ``data``."""
        data = bytes(data)
        header = NetlinkHeader.parse(data)
        if header.length < constants.NLMSG_HDR_LEN:
            raise DecodeError(
                f"message length {header.length} is smaller than the header"
            )
        if header.length > len(data):
            raise DecodeError(
                f"message length {header.length} exceeds the "
                f"{len(data)} bytes available"
            )
        body = data[constants.NLMSG_HDR_LEN : header.length]
        payload: NetlinkPayload
        if header.message_type == constants.NLMSG_ERROR:
            if len(body) < _ERROR_CODE.size:
                raise DecodeError("error message is too short")
            (code,) = _ERROR_CODE.unpack_from(body)
            payload = ErrorMessage(code, body[_ERROR_CODE.size :])
        elif header.message_type in _RAW_TYPES:
            payload = body
        else:
            payload = NetfilterMessage.parse(body, header.message_type)
        return cls(header, payload)


def iter_messages(data: bytes) -> Iterator[NetlinkMessage]:
    """Yield each netlink message in a received datagram."""
    data = bytes(data)
    offset = 0
    while offset < len(data):
        message = NetlinkMessage.deserialize(data[offset:])
        if message.header.length == 0:
            break
        yield message
        offset += align(message.header.length)
        if data[offset : offset + 4] == b"\0\0\0\0":
            break


def config_request(family: int, group_num: int, nlas: Iterable) -> NetlinkMessage:
    """Build an acknowledged nflog configuration request."""
    message = NetlinkMessage(
        NetlinkHeader(flags=constants.NLM_F_REQUEST | constants.NLM_F_ACK),
        NetfilterMessage(
            NetfilterHeader(family, constants.NFNETLINK_V0, group_num),
            NfLogConfig(nlas),
        ),
    )
    message.finalize()
    return message