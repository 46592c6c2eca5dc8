import socket
import threading

import pytest

from latbench.tcp import (
    SockOpt,
    sock_optimize,
    sockport,
    tcp_accept,
    tcp_connect,
    tcp_server,
)


@pytest.fixture
def server():
    sock = tcp_server(0, SockOpt.REUSE)
    yield sock
    sock.close()


def _closed_port():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    return port


def test_sockport_matches_getsockname(server):
    assert sockport(server) == server.getsockname()[1]
    assert sockport(server) > 0


def test_server_sets_reuse(server):
    with socket.socket() as plain:
        assert plain.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR) == 0
    assert bool(server.getsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR)) is True


def test_sock_optimize_grows_buffers():
    with socket.socket() as plain, socket.socket() as tuned:
        before = plain.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF)
        sock_optimize(tuned, SockOpt.RDWR)
        after = tuned.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF)
        assert after >= before


def test_round_trip(server):
    port = sockport(server)
    accepted = {}

    def accept():
        accepted["conn"] = tcp_accept(server, SockOpt.NONE)

    worker = threading.Thread(target=accept)
    worker.start()
    client = tcp_connect("127.0.0.1", port, SockOpt.NONE)
    worker.join(timeout=5)
    conn = accepted["conn"]
    try:
        client.sendall(b"ping")
        assert conn.recv(4) == b"ping"
        conn.sendall(b"pong")
        assert client.recv(4) == b"pong"
    finally:
        client.close()
        conn.close()


def test_pid_flag_binds_high_local_port(server):
    port = sockport(server)
    client = tcp_connect("127.0.0.1", port, SockOpt.PID)
    try:
        assert client.getsockname()[1] >= 1024
    finally:
        client.close()


def test_connect_refused_raises():
    with pytest.raises(ConnectionRefusedError):
        tcp_connect("127.0.0.1", _closed_port(), SockOpt.NONE)