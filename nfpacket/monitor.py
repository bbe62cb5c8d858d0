"""Command-line watchers for conntrack events and nflog packets."""

from __future__ import annotations

import argparse
import ipaddress
import os
import socket
import sys
from collections.abc import Iterable
from datetime import timedelta
from typing import TextIO

from . import constants
from .conntrack import (
    ConnectionDelete,
    ConnectionNew,
    ConnectionProperties,
    ConnectionTuple,
    TupleOrig,
    TupleReply,
)
from .message import NetfilterMessage, NfLogPacket
from .netlink import ErrorMessage, NetlinkMessage, config_request, iter_messages
from .nflog_config import ConfigCmd, ConfigCommand, ConfigFlags, ConfigMode, Flags, Timeout
from .nflog_packet import Payload
from .nla import DecodeError

_RECEIVE_SIZE = 4096
_SOL_NETLINK = 270
_NETLINK_ADD_MEMBERSHIP = 1


def describe_tuple(connection_tuple: ConnectionTuple) -> str:
    """Describe one direction of a connection, or why it is incomplete."""
    try:
        props = ConnectionProperties.from_tuple(connection_tuple)
    except DecodeError as err:
        return f"[error] {err}"
    return (
        f"src={props.src_ip} dst={props.dst_ip} sport={props.src_port} "
        f"dport={props.dst_port} proto={props.protocol}"
    )


def describe_conntrack(message) -> str | None:
    """Describe a new or deleted connection; other messages give ``None``."""
    if isinstance(message, ConnectionNew):
        parts = ["[new]"]
    elif isinstance(message, ConnectionDelete):
        parts = ["[delete]"]
    else:
        return None
    for nla in message.nlas:
        if isinstance(nla, TupleOrig):
            parts += ["[orig]", describe_tuple(nla.tuple)]
        elif isinstance(nla, TupleReply):
            parts += ["[reply]", describe_tuple(nla.tuple)]
    return " ".join(parts)


def packet_addresses(
    nlas: Iterable,
) -> tuple[ipaddress.IPv4Address, ipaddress.IPv4Address] | None:
    """IPv4 source and destination of the first payload attribute, if any."""
    for nla in nlas:
        if isinstance(nla, Payload):
            if len(nla.data) < 20:
                raise DecodeError(
                    f"payload of {len(nla.data)} bytes is too short for an IPv4 header"
                )
            return (
                ipaddress.IPv4Address(nla.data[12:16]),
                ipaddress.IPv4Address(nla.data[16:20]),
            )
    return None


def open_netfilter_socket(groups: Iterable[int]) -> socket.socket:
    """Open a bound netfilter netlink socket joined to ``groups``."""
    sock = socket.socket(socket.AF_NETLINK, socket.SOCK_RAW, constants.NETLINK_NETFILTER)
    try:
        sock.bind((0, 0))
        for group in groups:
            sock.setsockopt(_SOL_NETLINK, _NETLINK_ADD_MEMBERSHIP, group)
    except OSError:
        sock.close()
        raise
    return sock


def _receive(sock):
    """Yield received datagrams until the socket fails or runs dry."""
    while True:
        try:
            data = sock.recv(_RECEIVE_SIZE)
        except OSError as err:
            yield err
            return
        if not data:
            return
        yield data


def watch_conntrack(sock, out: TextIO) -> None:
    """Print new and destroyed connections until receiving fails."""
    for data in _receive(sock):
        if isinstance(data, OSError):
            print(f"error while receiving packets: {data}", file=out, flush=True)
            return
        for message in iter_messages(data):
            if isinstance(message.payload, NetfilterMessage):
                line = describe_conntrack(message.payload.inner)
                if line is not None:
                    print(line, file=out, flush=True)


def _request(sock, request: NetlinkMessage, out: TextIO) -> None:
    print(f">>> {request!r}", file=out, flush=True)
    sock.send(request.serialize())
    reply = NetlinkMessage.deserialize(sock.recv(_RECEIVE_SIZE))
    print(f"<<< {reply!r}", file=out, flush=True)
    if not isinstance(reply.payload, ErrorMessage):
        raise DecodeError(f"expected an acknowledgement, got {reply.payload!r}")
    if reply.payload.code is not None:
        errno = -reply.payload.code
        raise OSError(errno, os.strerror(errno))


def watch_nflog(sock, group: int, out: TextIO) -> None:
    """Bind to an nflog group and print the addresses of logged packets."""
    _request(
        sock,
        config_request(constants.AF_INET, 0, [ConfigCmd(ConfigCommand.PF_BIND)]),
        out,
    )
    _request(
        sock,
        config_request(
            constants.AF_INET,
            group,
            [
                ConfigCmd(ConfigCommand.BIND),
                Flags(ConfigFlags.SEQ_GLOBAL),
                ConfigMode.packet_max(),
                Timeout.from_timedelta(timedelta(milliseconds=100)),
            ],
        ),
        out,
    )
    for data in _receive(sock):
        if isinstance(data, OSError):
            print(f"error while receiving packets: {data}", file=out, flush=True)
            return
        for message in iter_messages(data):
            payload = message.payload
            if isinstance(payload, NetfilterMessage) and isinstance(
                payload.inner, NfLogPacket
            ):
                addresses = packet_addresses(payload.inner.nlas)
                if addresses is not None:
                    src, dst = addresses
                    print(f"Packet from {src} to {dst}", file=out, flush=True)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="nfpacket", description="Watch netfilter conntrack events or nflog packets."
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("conntrack", help="print new and destroyed connections")
    nflog = commands.add_parser("nflog", help="print addresses of logged packets")
    nflog.add_argument("--group", type=int, default=1, help="nflog group number")
    args = parser.parse_args(argv)

    try:
        if args.command == "conntrack":
            groups = [constants.NFNLGRP_CONNTRACK_NEW, constants.NFNLGRP_CONNTRACK_DESTROY]
            with open_netfilter_socket(groups) as sock:
                watch_conntrack(sock, sys.stdout)
        else:
            with open_netfilter_socket([]) as sock:
                watch_nflog(sock, args.group, sys.stdout)
    except KeyboardInterrupt:
        return 0
    except (OSError, ValueError) as err:
        print(f"error: {err}", file=sys.stderr)
        return 1
    return 0