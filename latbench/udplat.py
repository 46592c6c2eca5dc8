"""UDP transaction latency: sequenced datagrams bounced off an echo server."""

from __future__ import annotations

import os
import signal
import socket
import struct
import sys
from typing import Optional, Sequence

from .harness import SHORT, TRIES, Results, bench, common_parser, micro_line
from .tcp import UDP_XACT_PORT

MAX_MSIZE = 10 * 1024 * 1024
MIN_MSIZE = 4

_SEQ = struct.Struct("!i")
_TIMEOUT = 15.0
_SERVER_LIFETIME = 60 * 60
_SHUTDOWN_SEQUENCE = (-1, -2, -3, -4)


def serve(sock: socket.socket) -> None:
    """Echo datagrams on a bound UDP socket until a negative sequence arrives."""
    buf = bytearray(MAX_MSIZE)
    view = memoryview(buf)
    while True:
        nbytes, peer = sock.recvfrom_into(buf)
        if nbytes < _SEQ.size:
            continue
        (sent,) = _SEQ.unpack_from(buf)
        if sent < 0:
            return
        # The reply carries the sequence number the client sent.
        _SEQ.pack_into(buf, 0, sent)
        sock.sendto(view[:nbytes], peer)


def shutdown_server(host: str, port: int = UDP_XACT_PORT) -> None:
    """Send the negative sequence numbers that stop the server."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect((host, port))
        for seq in _SHUTDOWN_SEQUENCE:
            sock.send(_SEQ.pack(seq))


def udp_latency(
    host: str,
    port: int = UDP_XACT_PORT,
    msize: int = MIN_MSIZE,
    enough: int = SHORT,
    repetitions: int = TRIES,
) -> Results:
    """Time a ``msize``-byte datagram round trip to the echo server."""
    if not MIN_MSIZE <= msize <= MAX_MSIZE:
        raise ValueError(f"message size must lie in [{MIN_MSIZE}, {MAX_MSIZE}]")
    buf = bytearray(msize)
    seq = [0]
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.connect((host, port))
        sock.settimeout(_TIMEOUT)

        def body(iterations: int) -> None:
            current = seq[0]
            for _ in range(iterations):
                _SEQ.pack_into(buf, 0, current)
                # Stay non-negative: a negative number asks the server to stop.
                current = (current + 1) & 0x7FFFFFFF
                if sock.send(buf) != msize:
                    raise OSError("send failed")
                try:
                    reply = sock.recv(msize)
                except socket.timeout:
                    raise TimeoutError("recv timed out") from None
                if len(reply) != msize:
                    raise OSError("recv failed")
            seq[0] = current

        return bench(body, enough, repetitions)


def _start_server(port: int) -> None:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("", port))
    if os.fork() == 0:
        try:
            signal.alarm(_SERVER_LIFETIME)
            serve(sock)
        finally:
            os._exit(0)
    sock.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = common_parser("lat_udp", "UDP transaction latency.")
    parser.add_argument("-s", dest="server_mode", action="store_true",
                        help="start the server")
    parser.add_argument("-S", dest="shutdown", metavar="HOST",
                        help="shut down the server on HOST")
    parser.add_argument("-m", dest="msize", type=int, default=MIN_MSIZE,
                        help="message size in bytes (at least 4)")
    parser.add_argument("server", nargs="?", help="server host")
    args = parser.parse_args(argv)

    if args.server_mode:
        _start_server(UDP_XACT_PORT)
        return 0
    if args.shutdown:
        shutdown_server(args.shutdown, UDP_XACT_PORT)
        return 0
    if not MIN_MSIZE <= args.msize <= MAX_MSIZE:
        parser.error("message size must be >= 4")
    if args.server is None:
        parser.error("a server host is required")
    results = udp_latency(args.server, UDP_XACT_PORT, args.msize, SHORT,
                          args.repetitions)
    print(micro_line(f"UDP latency using {args.server}", results), file=sys.stderr)
    return 0