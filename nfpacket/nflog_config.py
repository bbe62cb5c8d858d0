"""Attributes of nflog configuration messages."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from datetime import timedelta
from typing import ClassVar, Union

from . import constants
from .nla import DecodeError, DefaultNla, Nla

_U32_MAX = 0xFFFFFFFF
_CONFIG_MODE_LEN = 6
_CONFIG_MODE = struct.Struct(">IBx")


class ConfigCommand(enum.IntEnum):
    """Commands carried by an NFULA_CFG_CMD attribute."""

    NONE = 0
    BIND = 1
    UNBIND = 2
    PF_BIND = 3
    PF_UNBIND = 4


class CopyMode(enum.IntEnum):
    """How much of each packet nflog copies to user space."""

    NONE = 0
    META = 1
    PACKET = 2


class ConfigFlags(enum.IntFlag):
    """Flags carried by an NFULA_CFG_FLAGS attribute."""

    SEQ = 0x0001
    SEQ_GLOBAL = 0x0002
    CONNTRACK = 0x0004


_KNOWN_FLAGS = ConfigFlags.SEQ | ConfigFlags.SEQ_GLOBAL | ConfigFlags.CONNTRACK


def _check_uint(value: int, bits: int, what: str) -> int:
    """Return ``value`` as an int, or raise ValueError if it does not fit."""
    value = int(value)
    if not 0 <= value < 1 << bits:
        raise ValueError(f"{what} must fit in {bits} unsigned bits, got {value}")
    return value


def _parse_uint(payload: bytes, size: int, name: str) -> int:
    """Decode a big-endian unsigned integer of exactly ``size`` bytes."""
    if len(payload) != size:
        raise DecodeError(
            f"invalid {name} value: expected {size} bytes, got {len(payload)}"
        )
    return int.from_bytes(payload, "big")


def _known_or_int(enum_cls, value: int, what: str):
    value = _check_uint(value, 8, what)
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _set_checked(obj, field: str, bits: int, what: str) -> None:
    object.__setattr__(obj, field, _check_uint(getattr(obj, field), bits, what))


@dataclass(frozen=True)
class ConfigCmd(Nla):
    """A configuration command; unknown command numbers are kept as ints."""

    command: ConfigCommand | int
    kind: ClassVar[int] = constants.NFULA_CFG_CMD

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "command", _known_or_int(ConfigCommand, self.command, "command")
        )

    def value_len(self) -> int:
        return 1

    def emit_value(self) -> bytes:
        return bytes([int(self.command)])


@dataclass(frozen=True)
class ConfigMode(Nla):
    """Copy mode and copy range of an nflog group."""

    copy_range: int
    copy_mode: CopyMode | int
    kind: ClassVar[int] = constants.NFULA_CFG_MODE

    def __post_init__(self) -> None:
        _set_checked(self, "copy_range", 32, "copy range")
        object.__setattr__(
            self, "copy_mode", _known_or_int(CopyMode, self.copy_mode, "copy mode")
        )

    @classmethod
    def none(cls) -> ConfigMode:
        return cls(0, CopyMode.NONE)

    @classmethod
    def meta(cls) -> ConfigMode:
        return cls(0, CopyMode.META)

    @classmethod
    def packet_max(cls) -> ConfigMode:
        """Copy whole packets, as much as the kernel allows."""
        return cls(0, CopyMode.PACKET)

    @classmethod
    def packet(cls, copy_range: int) -> ConfigMode:
        """Copy up to ``copy_range`` bytes of each packet."""
        return cls(copy_range, CopyMode.PACKET)

    def value_len(self) -> int:
        return _CONFIG_MODE_LEN

    def emit_value(self) -> bytes:
        return _CONFIG_MODE.pack(self.copy_range, int(self.copy_mode))

    @classmethod
    def parse(cls, data: bytes) -> ConfigMode:
        if len(data) < _CONFIG_MODE_LEN:
            raise DecodeError(
                f"config mode needs {_CONFIG_MODE_LEN} bytes, got {len(data)}"
            )
        copy_range, copy_mode = _CONFIG_MODE.unpack_from(data)
        return cls(copy_range, copy_mode)


@dataclass(frozen=True)
class Timeout(Nla):
    """Flush timeout, in hundredths of a second."""

    hundredth: int
    kind: ClassVar[int] = constants.NFULA_CFG_TIMEOUT

    def __post_init__(self) -> None:
        _set_checked(self, "hundredth", 32, "timeout")

    @classmethod
    def from_timedelta(cls, duration: timedelta) -> Timeout:
        """Convert a duration, truncating to hundredths and saturating."""
        if duration < timedelta(0):
            raise ValueError("timeout cannot be negative")
        millis = duration // timedelta(milliseconds=1)
        return cls(min(millis // 10, _U32_MAX))

    def value_len(self) -> int:
        return 4

    def emit_value(self) -> bytes:
        return self.hundredth.to_bytes(4, "big")


@dataclass(frozen=True)
class NlBufSiz(Nla):
    """Size of the kernel's netlink buffer for the group."""

    size: int
    kind: ClassVar[int] = constants.NFULA_CFG_NLBUFSIZ

    def __post_init__(self) -> None:
        _set_checked(self, "size", 32, "buffer size")

    def value_len(self) -> int:
        return 4

    def emit_value(self) -> bytes:
        return self.size.to_bytes(4, "big")


@dataclass(frozen=True)
class QThresh(Nla):
    """Number of packets queued before they are sent to user space."""

    threshold: int
    kind: ClassVar[int] = constants.NFULA_CFG_QTHRESH

    def __post_init__(self) -> None:
        _set_checked(self, "threshold", 32, "queue threshold")

    def value_len(self) -> int:
        return 4

    def emit_value(self) -> bytes:
        return self.threshold.to_bytes(4, "big")


@dataclass(frozen=True)
class Flags(Nla):
    """Group flags."""

    flags: ConfigFlags
    kind: ClassVar[int] = constants.NFULA_CFG_FLAGS

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "flags", ConfigFlags(_check_uint(self.flags, 16, "flags"))
        )

    def value_len(self) -> int:
        return 2

    def emit_value(self) -> bytes:
        return int(self.flags).to_bytes(2, "big")


ConfigNla = Union[ConfigCmd, ConfigMode, NlBufSiz, Timeout, QThresh, Flags, DefaultNla]

_UINT_CONFIG_KINDS = {
    constants.NFULA_CFG_CMD: (ConfigCmd, 1, "NFULA_CFG_CMD"),
    constants.NFULA_CFG_NLBUFSIZ: (NlBufSiz, 4, "NFULA_CFG_NLBUFSIZ"),
    constants.NFULA_CFG_TIMEOUT: (Timeout, 4, "NFULA_CFG_TIMEOUT"),
    constants.NFULA_CFG_QTHRESH: (QThresh, 4, "NFULA_CFG_QTHRESH"),
}


def parse_config_nla(kind: int, payload: bytes) -> ConfigNla:
    """Decode one configuration attribute from its raw type and value."""
    payload = bytes(payload)
    attr_type = kind & constants.NLA_TYPE_MASK
    if attr_type in _UINT_CONFIG_KINDS:
        cls, size, name = _UINT_CONFIG_KINDS[attr_type]
        return cls(_parse_uint(payload, size, name))
    match attr_type:
        case constants.NFULA_CFG_MODE:
            return ConfigMode.parse(payload)
        case constants.NFULA_CFG_FLAGS:
            bits = _parse_uint(payload, 2, "NFULA_CFG_FLAGS")
            return Flags(ConfigFlags(bits & _KNOWN_FLAGS))
        case _:
            return DefaultNla(kind, payload)