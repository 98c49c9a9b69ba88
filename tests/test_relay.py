import os
import signal
import socket
import threading

import pytest

from tcprelay.errors import TransferError
from tcprelay.relay import RelayEngine, shutdown_half, write_all

from conftest import recv_all


@pytest.fixture
def pipes():
    """Local input and output pipes: (in_r, in_w, out_r, out_w)."""
    in_r, in_w = os.pipe()
    out_r, out_w = os.pipe()
    fds = [in_r, in_w, out_r, out_w]
    yield fds
    for fd in fds:
        try:
            os.close(fd)
        except OSError:
            pass


@pytest.fixture
def connection():
    peer, conn = socket.socketpair()
    yield peer, conn
    peer.close()
    conn.close()


def read_available(fd):
    os.set_blocking(fd, False)
    chunks = []
    while True:
        try:
            data = os.read(fd, 65536)
        except BlockingIOError:
            break
        if not data:
            break
        chunks.append(data)
    return b''.join(chunks)


def close_fd(fds, index):
    os.close(fds[index])
    fds[index] = -1


def test_bytes_arrive_in_order_regardless_of_chunking(gate, pipes, connection):
    in_r, in_w, out_r, out_w = pipes
    peer, conn = connection
    outbound = bytes(range(256)) * 40
    inbound = b'reply-' * 1000

    os.write(in_w, outbound)
    close_fd(pipes, 1)
    peer.sendall(inbound)
    peer.shutdown(socket.SHUT_WR)

    engine = RelayEngine(7, True, gate, local_in=in_r, local_out=out_w)
    outcome = engine.run(conn)

    assert outcome.signal == 0
    assert outcome.sent == len(outbound)
    assert outcome.received == len(inbound)
    assert recv_all(peer) == outbound
    assert read_available(out_r) == inbound


def test_half_close_keeps_other_direction(gate, pipes, connection):
    in_r, in_w, out_r, out_w = pipes
    peer, conn = connection
    close_fd(pipes, 1)

    seen = []

    def late_reply():
        # Sent only once local input has been shut down
        seen.append(peer.recv(16))
        peer.sendall(b'still flowing')
        peer.shutdown(socket.SHUT_WR)

    replier = threading.Thread(target=late_reply)
    replier.start()
    engine = RelayEngine(1024, True, gate, local_in=in_r, local_out=out_w)
    outcome = engine.run(conn)
    replier.join(5)

    assert seen == [b'']
    assert outcome.sent == 0
    assert read_available(out_r) == b'still flowing'


def test_full_duplex_ends_on_first_close(gate, pipes, connection):
    in_r, in_w, out_r, out_w = pipes
    peer, conn = connection
    close_fd(pipes, 1)

    engine = RelayEngine(1024, False, gate, local_in=in_r, local_out=out_w)
    outcome = engine.run(conn)

    assert outcome.received == 0
    assert peer.recv(16) == b''
    peer.sendall(b'discarded')
    assert read_available(out_r) == b''


def test_signal_ends_session(gate, pipes, connection):
    in_r, in_w, out_r, out_w = pipes
    peer, conn = connection

    timer = threading.Timer(0.2, os.kill, (os.getpid(), signal.SIGINT))
    timer.start()
    engine = RelayEngine(1024, True, gate, local_in=in_r, local_out=out_w)
    outcome = engine.run(conn)
    timer.join()

    assert outcome.signal == signal.SIGINT
    assert outcome.sent == outcome.received == 0


def test_write_error_is_a_transfer_error(gate, pipes, connection):
    in_r, in_w, out_r, out_w = pipes
    peer, conn = connection
    close_fd(pipes, 2)
    peer.sendall(b'nobody reads this')

    engine = RelayEngine(1024, True, gate, local_in=in_r, local_out=out_w)
    with pytest.raises(TransferError, match=f'write\\({out_w}'):
        engine.run(conn)


def test_write_all_resumes_short_writes():
    written = []

    def short_write(data):
        written.append(bytes(data[:3]))
        return min(3, len(data))

    write_all(short_write, 9, memoryview(b'abcdefgh'))
    assert written == [b'abc', b'def', b'gh']


def test_shutdown_half_ignores_pipes(pipes):
    assert not shutdown_half(pipes[3], socket.SHUT_WR)


def test_shutdown_half_on_descriptor(connection):
    peer, conn = connection
    assert shutdown_half(conn.fileno(), socket.SHUT_WR)
    assert peer.recv(16) == b''
    # Only the write half is gone
    peer.sendall(b'back')
    assert conn.recv(16) == b'back'
