import errno
import io
import ipaddress

import pytest

from nfpacket import constants
from nfpacket.conntrack import (
    ConnectionDelete,
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
from nfpacket.message import NetfilterHeader, NetfilterMessage, NfLogConfig, NfLogPacket
from nfpacket.monitor import (
    describe_conntrack,
    describe_tuple,
    main,
    packet_addresses,
    watch_conntrack,
    watch_nflog,
)
from nfpacket.netlink import ErrorMessage, NetlinkHeader, NetlinkMessage
from nfpacket.nflog_config import ConfigCmd, ConfigCommand, Timeout
from nfpacket.nflog_packet import Mark, Payload
from nfpacket.nla import DecodeError

SRC = ipaddress.IPv4Address("10.0.0.1")
DST = ipaddress.IPv4Address("10.0.0.2")


def _tuple(src, dst, sport, dport):
    return ConnectionTuple(
        [
            IpTuple([IpSrc(src), IpDst(dst)]),
            ProtoTuple([ProtoNum(6), SrcPort(sport), DstPort(dport)]),
        ]
    )


def _ip_header(src, dst):
    return bytes(12) + src.packed + dst.packed


def _wire(payload):
    msg = NetlinkMessage(NetlinkHeader(), payload)
    msg.finalize()
    return msg.serialize()


class FakeSocket:
    def __init__(self, replies):
        self.replies = list(replies)
        self.sent = []

    def send(self, data):
        self.sent.append(data)
        return len(data)

    def recv(self, size):
        if not self.replies:
            raise OSError("socket closed")
        return self.replies.pop(0)[:size]


def test_describe_tuple_complete():
    text = describe_tuple(_tuple(SRC, DST, 1234, 80))
    assert f"src={SRC}" in text
    assert f"dst={DST}" in text
    assert "sport=1234" in text and "dport=80" in text


def test_describe_tuple_incomplete():
    text = describe_tuple(ConnectionTuple([IpTuple([IpSrc(SRC)])]))
    assert text.startswith("[error]")
    assert "incomplete" in text


def test_describe_conntrack_new_and_delete():
    nlas = [TupleOrig(_tuple(SRC, DST, 1, 2)), TupleReply(_tuple(DST, SRC, 2, 1))]
    new_line = describe_conntrack(ConnectionNew(nlas))
    assert new_line.startswith("[new] [orig] ")
    assert "[reply]" in new_line
    assert describe_conntrack(ConnectionDelete(nlas)).startswith("[delete] [orig] ")


def test_describe_conntrack_other():
    assert describe_conntrack(ConntrackOther(constants.IPCTNL_MSG_CT_GET, [])) is None


def test_packet_addresses():
    nlas = [Mark(1), Payload(_ip_header(SRC, DST))]
    assert packet_addresses(nlas) == (SRC, DST)


def test_packet_addresses_without_payload():
    assert packet_addresses([Mark(1)]) is None


def test_packet_addresses_short_payload():
    with pytest.raises(DecodeError):
        packet_addresses([Payload(b"\x45\x00")])


def test_watch_conntrack():
    event = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 0),
        ConnectionNew([TupleOrig(_tuple(SRC, DST, 1234, 80))]),
    )
    sock = FakeSocket([_wire(event)])
    out = io.StringIO()
    watch_conntrack(sock, out)
    lines = out.getvalue().splitlines()
    assert lines[0].startswith("[new] [orig] ")
    assert lines[-1].startswith("error while receiving packets")


def test_watch_nflog():
    ack = _wire(ErrorMessage(None))
    packet = NetfilterMessage(
        NetfilterHeader(constants.AF_INET, 0, 1),
        NfLogPacket([Payload(_ip_header(SRC, DST))]),
    )
    sock = FakeSocket([ack, ack, _wire(packet)])
    out = io.StringIO()
    watch_nflog(sock, 1, out)

    first = NetlinkMessage.deserialize(sock.sent[0]).payload
    assert first.inner == NfLogConfig([ConfigCmd(ConfigCommand.PF_BIND)])
    second = NetlinkMessage.deserialize(sock.sent[1]).payload
    assert second.header.res_id == 1
    assert Timeout(10) in second.inner.nlas
    assert f"Packet from {SRC} to {DST}" in out.getvalue()


def test_watch_nflog_refused():
    sock = FakeSocket([_wire(ErrorMessage(-errno.EPERM))])
    with pytest.raises(OSError) as excinfo:
        watch_nflog(sock, 1, io.StringIO())
    assert excinfo.value.errno == errno.EPERM
    assert len(sock.sent) == 1


def test_main_rejects_unknown_command():
    with pytest.raises(SystemExit) as excinfo:
        main(["bogus"])
    assert excinfo.value.code == 2