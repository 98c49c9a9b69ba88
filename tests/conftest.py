import os
import select
import signal
import socket
import subprocess
import sys
import time

import pytest

from tcprelay.signals import SignalGate

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
HOSTNAME = '127.0.0.1'


def free_tcp_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((HOSTNAME, 0))
        return s.getsockname()[1]


def recv_all(sock):
    chunks = []
    while True:
        data = sock.recv(4096)
        if not data:
            return b''.join(chunks)
        chunks.append(data)


def wait_for_line(proc, marker, timeout=5.0):
    """Reads stderr of proc until a line containing marker shows up."""
    deadline = time.monotonic() + timeout
    fd = proc.stderr.fileno()
    collected = b''
    while time.monotonic() < deadline:
        remaining = deadline - time.monotonic()
        rlist, _, _ = select.select([fd], [], [], remaining)
        if not rlist:
            continue
        chunk = os.read(fd, 4096)
        if not chunk:
            break
        collected += chunk
        if marker.encode() in collected:
            return collected
    raise RuntimeError(f'relay did not log {marker!r}; stderr so far:\n{collected.decode()}')


@pytest.fixture
def gate():
    with SignalGate() as installed:
        yield installed


@pytest.fixture
def relay():
    """Factory starting `python -m tcprelay ARGS` with piped stdio."""
    procs = []
    env = dict(os.environ, PYTHONPATH=ROOT, TCPRELAY_LOG_LEVEL='DEBUG')

    def start(*args):
        proc = subprocess.Popen(
            [sys.executable, '-m', 'tcprelay'] + [str(a) for a in args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=ROOT,
            env=env,
        )
        procs.append(proc)
        return proc

    yield start

    for proc in procs:
        if proc.poll() is None:
            proc.send_signal(signal.SIGKILL)
            proc.wait()
        for stream in (proc.stdin, proc.stdout, proc.stderr):
            if stream and not stream.closed:
                stream.close()
