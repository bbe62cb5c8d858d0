import pytest

from nfpacket import constants
from nfpacket.conntrack import (
    ConnectionNew,
    ConnectionTuple,
    ConntrackOther,
    DstPort,
    IpDst,
    IpSrc,
    IpTuple,
    ProtoNum,
    ProtoTuple,
    SrcPort,
    TupleOrig,
    TupleReply,
)
from nfpacket.message import (
    NetfilterHeader,
    NetfilterMessage,
    NfLogConfig,
    NfLogOther,
    NfLogPacket,
    OtherSubsysMessage,
    parse_nflog_message,
)
from nfpacket.nflog_config import (
    ConfigCmd,
    ConfigCommand,
    ConfigFlags,
    ConfigMode,
    Flags,
    Timeout,
)
from nfpacket.nflog_packet import Mark, Payload, Prefix
from nfpacket.nla import DecodeError, DefaultNla


def _tuple(src, dst, sport, dport):
    return ConnectionTuple(
        [
            IpTuple([IpSrc(src), IpDst(dst)]),
            ProtoTuple([ProtoNum(6), SrcPort(sport), DstPort(dport)]),
        ]
    )


def test_header_wire_bytes():
    header = NetfilterHeader(constants.AF_INET, constants.NFNETLINK_V0, 1)
    assert header.emit() == b"\x02\x00\x00\x01"
    assert header.buffer_len() == len(header.emit())


def test_header_round_trip():
    header = NetfilterHeader(constants.AF_INET6, 0, 513)
    assert NetfilterHeader.parse(header.emit()) == header


def test_header_parse_too_short():
    with pytest.raises(DecodeError):
        NetfilterHeader.parse(b"\x02\x00")


def test_header_rejects_out_of_range_res_id():
    with pytest.raises(ValueError):
        NetfilterHeader(2, 0, 1 << 16)


def test_config_message_type():
    msg = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 0),
        NfLogConfig([ConfigCmd(ConfigCommand.PF_BIND)]),
    )
    assert msg.subsys() == constants.NFNL_SUBSYS_ULOG
    assert msg.message_type() == constants.NFULNL_MSG_CONFIG
    assert msg.netlink_type() == 0x0401


def test_config_round_trip():
    msg = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 1),
        NfLogConfig(
            [
                ConfigCmd(ConfigCommand.BIND),
                Flags(ConfigFlags.SEQ_GLOBAL),
                ConfigMode.packet_max(),
                Timeout(10),
            ]
        ),
    )
    data = msg.emit()
    assert len(data) == msg.buffer_len()
    assert NetfilterMessage.parse(data, msg.netlink_type()) == msg


def test_packet_round_trip():
    msg = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 1),
        NfLogPacket([Mark(7), Prefix(b"drop"), Payload(bytes(range(20)))]),
    )
    parsed = NetfilterMessage.parse(msg.emit(), msg.netlink_type())
    assert parsed == msg
    assert parsed.message_type() == constants.NFULNL_MSG_PACKET


def test_conntrack_round_trip():
    msg = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 0),
        ConnectionNew(
            [
                TupleOrig(_tuple("10.0.0.1", "10.0.0.2", 1234, 80)),
                TupleReply(_tuple("10.0.0.2", "10.0.0.1", 80, 1234)),
            ]
        ),
    )
    assert msg.subsys() == constants.NFNL_SUBSYS_CTNETLINK
    parsed = NetfilterMessage.parse(msg.emit(), msg.netlink_type())
    assert parsed == msg


def test_conntrack_other_round_trip():
    msg = NetfilterMessage(
        NetfilterHeader(0, 0, 0),
        ConntrackOther(constants.IPCTNL_MSG_CT_GET, [DefaultNla(9, b"xy")]),
    )
    assert NetfilterMessage.parse(msg.emit(), msg.netlink_type()) == msg


def test_other_subsystem_round_trip():
    msg = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 0),
        OtherSubsysMessage(constants.NFNL_SUBSYS_QUEUE, 3, [DefaultNla(1, b"abcd")]),
    )
    parsed = NetfilterMessage.parse(msg.emit(), msg.netlink_type())
    assert parsed == msg
    assert parsed.subsys() == constants.NFNL_SUBSYS_QUEUE


def test_parse_nflog_unknown_type():
    nla = DefaultNla(2, b"\x01\x02\x03\x04")
    result = parse_nflog_message(9, nla.emit())
    assert result == NfLogOther(9, [nla])


def test_parse_too_short_buffer():
    with pytest.raises(DecodeError, match="netfilter header"):
        NetfilterMessage.parse(b"\x02", 0x0400)


def test_parse_bad_conntrack_payload():
    # An attribute header that announces more bytes than are present.
    data = NetfilterHeader(2, 0, 0).emit() + b"\x40\x00\x01\x00"
    with pytest.raises(DecodeError, match="nfconntrack"):
        NetfilterMessage.parse(data, constants.NFNL_SUBSYS_CTNETLINK << 8)


def test_parse_bad_nflog_payload():
    bad_mark = DefaultNla(constants.NFULA_MARK, b"\x01").emit()
    data = NetfilterHeader(2, 0, 0).emit() + bad_mark
    netlink_type = (constants.NFNL_SUBSYS_ULOG << 8) | constants.NFULNL_MSG_PACKET
    with pytest.raises(DecodeError, match="nflog"):
        NetfilterMessage.parse(data, netlink_type)