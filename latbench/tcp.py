"""TCP socket helpers: servers, accepting, connecting and buffer tuning."""

from __future__ import annotations

import enum
import errno
import functools
import os
import socket

SOCKBUF = 1024 * 1024

TCP_SELECT_PORT = 31233
TCP_XACT_PORT = 31234
TCP_CONTROL_PORT = 31235
TCP_DATA_PORT = 31236
TCP_CONNECT_PORT = 31237
UDP_XACT_PORT = 31238
UDP_DATA_PORT = 31239

_MAX_RETRIES = 10
_RETRY_ERRNOS = {errno.ECONNRESET, errno.ECONNREFUSED, errno.EAGAIN}


class SockOpt(enum.IntFlag):
    """Socket tuning requests."""

    NONE = 0
    READ = 0x0001
    WRITE = 0x0002
    RDWR = 0x0003
    PID = 0x0004
    REUSE = 0x0008


def _grow_buffer(sock: socket.socket, option: int) -> None:
    size = SOCKBUF
    while size > 0:
        try:
            sock.setsockopt(socket.SOL_SOCKET, option, size)
            return
        except OSError:
            size >>= 1


def sock_optimize(sock: socket.socket, flags: int) -> None:
    """Enlarge buffers and set address reuse as ``flags`` ask."""
    flags = SockOpt(flags)
    if flags & SockOpt.READ:
        _grow_buffer(sock, socket.SO_RCVBUF)
    if flags & SockOpt.WRITE:
        _grow_buffer(sock, socket.SO_SNDBUF)
    if flags & SockOpt.REUSE:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)


def tcp_server(port: int, flags: int = SockOpt.NONE) -> socket.socket:
    """A listening TCP socket bound to ``port`` on all interfaces."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
    try:
        sock_optimize(sock, flags)
        sock.bind(("", port))
        sock.listen(100)
    except OSError:
        sock.close()
        raise
    return sock


def tcp_accept(sock: socket.socket, flags: int = SockOpt.NONE) -> socket.socket:
    """Accept one connection and tune it."""
    while True:
        try:
            conn, _ = sock.accept()
            break
        except InterruptedError:
            continue
    sock_optimize(conn, flags)
    return conn


class _PidPorts:
    """Local port numbers derived from the process id, handed out in turn."""

    def __init__(self) -> None:
        self._port = 0

    def next(self) -> int:
        if not self._port:
            self._port = (os.getpid() << 4) & 0xFFFF
            if self._port < 1024:
                self._port += 1024
        self._port += 1
        if self._port > 0xFFFF:
            self._port = 1024
        return self._port


_pid_ports = _PidPorts()


def _bind_pid_port(sock: socket.socket) -> None:
    for _ in range(0x10000):
        try:
            sock.bind(("", _pid_ports.next()))
            return
        except OSError:
            continue
    raise OSError(errno.EADDRINUSE, "no free local port")


@functools.lru_cache(maxsize=None)
def _resolve(host: str) -> str:
    return socket.gethostbyname(host)


def tcp_connect(host: str, port: int, flags: int = SockOpt.NONE) -> socket.socket:
    """Connect to ``host``:``port``, retrying refused or reset attempts.

    Raises the last connection error after ten retries.
    """
    address = (_resolve(host), port)
    tries = 0
    while True:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        try:
            if SockOpt(flags) & SockOpt.PID:
                _bind_pid_port(sock)
            sock_optimize(sock, flags)
            sock.connect(address)
            return sock
        except OSError as exc:
            sock.close()
            tries += 1
            if exc.errno in _RETRY_ERRNOS and tries <= _MAX_RETRIES:
                continue
            raise


def sockport(sock: socket.socket) -> int:
    """The local port a socket is bound to."""
    return sock.getsockname()[1]