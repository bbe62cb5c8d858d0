import struct
from datetime import timedelta

import pytest

from nfpacket import constants
from nfpacket.nla import DecodeError, DefaultNla, default_nlas, emit_nlas, parse_nlas
from nfpacket.nflog_config import (
    ConfigCmd,
    ConfigCommand,
    ConfigFlags,
    ConfigMode,
    CopyMode,
    Flags,
    NlBufSiz,
    QThresh,
    Timeout,
    parse_config_nla,
)

SAMPLES = [
    ConfigCmd(ConfigCommand.BIND),
    ConfigCmd(ConfigCommand.PF_UNBIND),
    ConfigCmd(200),
    ConfigMode.packet_max(),
    ConfigMode.packet(1500),
    ConfigMode.meta(),
    ConfigMode.none(),
    ConfigMode(64, 9),
    NlBufSiz(constants.NLBUFSIZ_MAX),
    Timeout(250),
    QThresh(32),
    Flags(ConfigFlags.SEQ_GLOBAL | ConfigFlags.CONNTRACK),
]


@pytest.mark.parametrize("nla", SAMPLES)
def test_value_round_trip(nla):
    value = nla.emit_value()
    assert len(value) == nla.value_len()
    assert parse_config_nla(nla.kind, value) == nla


def test_list_round_trip_through_wire():
    data = emit_nlas(SAMPLES)
    assert parse_nlas(data, parse_config_nla) == SAMPLES


def test_cmd_wire_layout():
    data = ConfigCmd(ConfigCommand.PF_BIND).emit()
    length, kind = struct.unpack_from("=HH", data)
    assert kind == constants.NFULA_CFG_CMD
    assert length == 4 + ConfigCmd(ConfigCommand.PF_BIND).value_len()
    assert data[4] == ConfigCommand.PF_BIND


def test_cmd_normalises_known_numbers():
    assert ConfigCmd(int(ConfigCommand.BIND)).command is ConfigCommand.BIND
    unknown = ConfigCmd(200).command
    assert unknown == 200 and not isinstance(unknown, ConfigCommand)


def test_cmd_out_of_range():
    with pytest.raises(ValueError):
        ConfigCmd(256)


def test_mode_wire_bytes():
    assert ConfigMode.packet(0xFFFF).emit_value() == b"\x00\x00\xff\xff\x02\x00"


def test_mode_constructors():
    assert ConfigMode.packet_max() == ConfigMode(0, CopyMode.PACKET)
    assert ConfigMode.packet(1500) == ConfigMode(1500, CopyMode.PACKET)
    assert ConfigMode.meta().copy_mode is CopyMode.META


def test_mode_parse_too_short():
    with pytest.raises(DecodeError):
        ConfigMode.parse(b"\x00\x00\x00")


def test_timeout_from_timedelta():
    assert Timeout.from_timedelta(timedelta(milliseconds=100)) == Timeout(10)


def test_timeout_truncates():
    assert Timeout.from_timedelta(timedelta(milliseconds=19)).hundredth == 1


def test_timeout_saturates():
    assert Timeout.from_timedelta(timedelta(days=10**6)).hundredth == 0xFFFFFFFF


def test_timeout_negative():
    with pytest.raises(ValueError):
        Timeout.from_timedelta(timedelta(seconds=-1))


def test_flags_emit_big_endian():
    flags = Flags(ConfigFlags.SEQ_GLOBAL)
    assert flags.emit_value() == int(ConfigFlags.SEQ_GLOBAL).to_bytes(2, "big")


def test_flags_parse_drops_unknown_bits():
    parsed = parse_config_nla(constants.NFULA_CFG_FLAGS, b"\xff\xff")
    assert parsed == Flags(ConfigFlags.SEQ | ConfigFlags.SEQ_GLOBAL | ConfigFlags.CONNTRACK)


def test_nlbufsiz_out_of_range():
    with pytest.raises(ValueError):
        NlBufSiz(1 << 32)


@pytest.mark.parametrize(
    "kind, payload, name",
    [
        (constants.NFULA_CFG_CMD, b"", "NFULA_CFG_CMD"),
        (constants.NFULA_CFG_NLBUFSIZ, b"\x00\x00\x01", "NFULA_CFG_NLBUFSIZ"),
        (constants.NFULA_CFG_TIMEOUT, b"\x00", "NFULA_CFG_TIMEOUT"),
        (constants.NFULA_CFG_QTHRESH, b"\x00" * 5, "NFULA_CFG_QTHRESH"),
        (constants.NFULA_CFG_FLAGS, b"\x01", "NFULA_CFG_FLAGS"),
    ],
)
def test_wrong_lengths_raise(kind, payload, name):
    with pytest.raises(DecodeError, match=name):
        parse_config_nla(kind, payload)


def test_unknown_kind_becomes_default_nla():
    assert parse_config_nla(99, b"ab") == DefaultNla(99, b"ab")


def test_parsed_config_reencodes_like_default():
    data = emit_nlas([ConfigCmd(ConfigCommand.BIND), Timeout(5)])
    parsed = parse_nlas(data, parse_config_nla)
    assert emit_nlas(parsed) == data
    assert [n.kind for n in default_nlas(data)] == [
        constants.NFULA_CFG_CMD,
        constants.NFULA_CFG_TIMEOUT,
    ]