# nfpacket

`nfpacket` reads and writes the messages that the Linux netfilter subsystem
exchanges over netlink sockets (`NETLINK_NETFILTER`). It covers:

- **nflog**: configuration requests (bind a protocol family, bind a log group,
  set the copy mode, timeout, queue threshold, buffer size and flags) and the
  logged packets the kernel sends back (packet header, mark, timestamp,
  interface indexes, hardware address, payload, prefix, uid/gid, sequence
  numbers, hardware type and header).
- **conntrack**: connection events (new and destroyed connections) with their
  original and reply tuples: source and destination address, ports and protocol.
- Any other subsystem, message type or attribute is still decoded, its
  attributes kept as raw `DefaultNla` values (type field and value bytes),
  which encode back to the same type and value.

The package is pure Python and has no dependencies.

## Installation

```
pip install nfpacket
```

## Library overview

| Module | What it holds |
| --- | --- |
| `nfpacket.constants` | Address families, subsystem ids, attribute and message type numbers |
| `nfpacket.nla` | Netlink attributes: `Nla`, `DefaultNla`, `align`, `iter_nlas`, `parse_nlas`, `default_nlas`, `emit_nlas`, `nlas_buffer_len`, `DecodeError` |
| `nfpacket.nflog_config` | nflog configuration attributes: `ConfigCmd`, `ConfigMode`, `Timeout`, `NlBufSiz`, `QThresh`, `Flags`, with `ConfigCommand`, `CopyMode`, `ConfigFlags`, and `parse_config_nla` |
| `nfpacket.nflog_packet` | nflog packet attributes: `PacketHdr`, `TimeStamp`, `HwAddr`, `Mark`, `IfIndexInDev`, `Payload`, `Prefix`, `Uid`, `Gid`, `Seq`, … and `parse_packet_nla` |
| `nfpacket.conntrack` | Conntrack tuples and events: `IpSrc`, `IpDst`, `ProtoNum`, `SrcPort`, `DstPort`, `TupleOrig`, `TupleReply`, `ConnectionNew`, `ConnectionDelete`, `ConntrackOther`, `ConnectionProperties` |
| `nfpacket.message` | The netfilter header and message: `NetfilterHeader`, `NetfilterMessage`, `NfLogConfig`, `NfLogPacket`, `NfLogOther`, `OtherSubsysMessage` |
| `nfpacket.netlink` | The netlink envelope: `NetlinkHeader`, `NetlinkMessage`, `ErrorMessage`, `iter_messages`, `config_request` |
| `nfpacket.monitor` | Socket helpers, event formatting and the `nfpacket-monitor` command |

Attribute and message objects are frozen dataclasses. Each attribute has
`value_len()`, `emit_value()`, `buffer_len()` and `emit()`; values that do not
fit their field on the wire raise `ValueError` when the object is built.
Malformed input raises `nfpacket.nla.DecodeError` (a `ValueError`).

### Building an nflog configuration request

```python
from datetime import timedelta

from nfpacket.constants import AF_INET
from nfpacket.nflog_config import ConfigCmd, ConfigCommand, ConfigMode, Timeout
from nfpacket.netlink import config_request

request = config_request(
    AF_INET,
    1,
    [
        ConfigCmd(ConfigCommand.BIND),
        ConfigMode.packet_max(),
        Timeout.from_timedelta(timedelta(milliseconds=100)),
    ],
)
data = request.serialize()   # bytes, ready to send on a NETLINK_NETFILTER socket
```

`config_request` sets the `NLM_F_REQUEST` and `NLM_F_ACK` flags and fills in
the message length and type.

### Decoding what the kernel sends

A single `recv` may hold several netlink messages; `iter_messages` walks them:

```python
from nfpacket.netlink import iter_messages

for message in iter_messages(data):
    print(message.header, message.payload)
```

A single message can be decoded with `NetlinkMessage.deserialize(data)`. Its
payload is a `NetfilterMessage`, an `ErrorMessage` (whose `code` is `None` for
an acknowledgement) or, for NOOP, DONE and OVERRUN messages, raw bytes.

For conntrack events, `ConnectionProperties.from_tuple(...)` turns an original
or reply tuple into addresses, ports and protocol, and raises `DecodeError`
when any of them is missing.

## Command line

`nfpacket-monitor` opens a netfilter netlink socket and prints events. It
needs root privileges or `CAP_NET_ADMIN`.

```
nfpacket-monitor conntrack
```

joins the conntrack "new" and "destroy" groups and prints one line per event,
for example `[new] [orig] src=... dst=... sport=... dport=... proto=6 [reply] ...`.

```
nfpacket-monitor nflog --group 1
```

binds the IPv4 family and the given nflog group (default 1), asking for whole
packets, global sequence numbers and a 100 ms flush timeout. It prints each
request and the kernel's reply, then `Packet from <src> to <dst>` for every
logged packet. Send traffic to the group first, for example with an iptables
`NFLOG` rule for group 1.

Both run until receiving fails or Ctrl-C is pressed. Errors are printed to
standard error and the command exits with status 1.

## What it does not do

- The `nflog` command binds only the IPv4 family and reads addresses from an
  IPv4 header; it does not decode IPv6 or higher-layer packet contents.
- Conntrack support is limited to the original and reply tuples of new and
  destroyed connections. Other conntrack attributes (status, timeouts,
  counters, marks) are kept raw, and there are no helpers to build dump, get
  or delete requests.
- Other netfilter subsystems, such as packet queueing (nfqueue) or nftables,
  are only passed through as raw attributes.

## Running the tests

```
pip install -e ".[test]"
pytest
```