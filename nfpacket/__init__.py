"""Build and parse netfilter netlink messages (nflog and conntrack), with a monitor command."""

__version__ = "0.1.0"

__all__ = [
    "constants",
    "nla",
    "nflog_config",
    "nflog_packet",
    "conntrack",
    "message",
    "netlink",
    "monitor",
]