"""TCP socket options: keep-alive, no-delay, port reuse and fast open."""

from __future__ import annotations

import logging
import socket
import sys
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)

_DARWIN_TCP_FASTOPEN = 0x105
_DARWIN_TCP_FASTOPEN_SERVER = 0x01
_WINDOWS_TCP_FASTOPEN = 15
_LINUX_SO_REUSEPORT = getattr(socket, "SO_REUSEPORT", 15)
_LINUX_TCP_FASTOPEN = getattr(socket, "TCP_FASTOPEN", 23)


@dataclass
class TCPOptions:
    """TCP tuning settings."""

    prefer_ipv4: bool = False
    keep_alive: bool = True
    no_delay: bool = True
    fast_open: bool = False
    fast_open_qlen: int = 20
    reuse_port: bool = False


def _apply_linux(sock: Any, options: TCPOptions, inbound: bool) -> None:
    if options.reuse_port and inbound:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.SOL_SOCKET, _LINUX_SO_REUSEPORT, 1)
        log.debug("port reusing enabled")
    if options.fast_open:
        if inbound:
            sock.setsockopt(socket.IPPROTO_TCP, _LINUX_TCP_FASTOPEN, options.fast_open_qlen)
        log.debug("tcp fast open enabled")


def _apply_darwin(sock: Any, options: TCPOptions, inbound: bool) -> None:
    if options.fast_open:
        if inbound:
            sock.setsockopt(socket.IPPROTO_TCP, _DARWIN_TCP_FASTOPEN, _DARWIN_TCP_FASTOPEN_SERVER)
        log.debug("tcp fast open enabled")


def _apply_windows(sock: Any, options: TCPOptions, inbound: bool) -> None:
    if options.fast_open:
        sock.setsockopt(socket.IPPROTO_TCP, _WINDOWS_TCP_FASTOPEN, 1)
        log.debug("tcp fast open enabled")


def apply_socket_option(sock: Any, options: TCPOptions, inbound: bool) -> None:
    """Apply the platform-specific options; raises OSError when one is refused."""
    platform = sys.platform
    if platform.startswith("linux"):
        _apply_linux(sock, options, inbound)
    elif platform == "darwin":
        _apply_darwin(sock, options, inbound)
    elif platform == "win32":
        _apply_windows(sock, options, inbound)
    else:
        log.warning("tcp options is ignored in this os: %s", platform)


def apply_tcp_listener_option(sock: Any, options: TCPOptions) -> None:
    """Apply the options to a listening socket."""
    apply_socket_option(sock, options, True)


def apply_tcp_conn_option(sock: Any, options: TCPOptions) -> None:
    """Apply keep-alive, no-delay and the platform options to a connection."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, int(options.keep_alive))
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(options.no_delay))
    apply_socket_option(sock, options, False)