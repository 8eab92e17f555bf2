import pytest
import socket
import sys
import os
import threading
import time

import requests
from requests.structures import CaseInsensitiveDict

# Add the application path to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import app as flask_app


class FakeRaw:
    """Stands in for urllib3's response: hands out the given chunks as-is."""

    def __init__(self, chunks, headers=None):
        self._chunks = list(chunks)
        self.closed = False
        self.reads = 0
        if headers is not None:
            self.headers = headers

    def stream(self, chunk_size, decode_content=None):
        for chunk in self._chunks:
            if self.closed:
                return
            if isinstance(chunk, Exception):
                raise chunk
            self.reads += 1
            yield chunk

    def close(self):
        self.closed = True

    # requests only calls this (not close) once the body was read to the end
    def release_conn(self):
        self.closed = True


def make_upstream(chunks=(), status=200, headers=None, url="http://radio.example/live", raw_headers=None):
    resp = requests.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.url = url
    resp.raw = FakeRaw(chunks, raw_headers)
    return resp


@pytest.fixture
def app():
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def upstream():
    return make_upstream


class TrickleServer(threading.Thread):
    """Loopback HTTP server that sends ``head`` and then one ``piece`` per interval."""

    def __init__(self, head, piece, interval=0.1, duration=10.0):
        super().__init__(daemon=True)
        self.head = head
        self.piece = piece
        self.interval = interval
        self.duration = duration
        self.stopped = threading.Event()
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.url = "http://127.0.0.1:%d/live" % self.listener.getsockname()[1]

    def run(self):
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(65536)
                conn.sendall(self.head)
                until = time.monotonic() + self.duration
                while not self.stopped.is_set() and time.monotonic() < until:
                    conn.sendall(self.piece)
                    self.stopped.wait(self.interval)
            except OSError:
                # client hung up
                pass

    def stop(self):
        self.stopped.set()
        self.listener.close()


@pytest.fixture
def trickle_server(monkeypatch):
    for var in ("HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(var, raising=False)

    servers = []

    def start(kind):
        server = TrickleServer(*TRICKLES[kind])
        server.start()
        servers.append(server)
        return server.url

    yield start
    for server in servers:
        server.stop()


TRICKLES = {
    # status line, then one more header line every 0.1s; headers never end
    "headers": (b"HTTP/1.0 200 OK\r\n", b"X-Filler: x\r\n"),
    # complete ICY headers, then one audio byte every 0.1s
    "body": (
        b"HTTP/1.0 200 OK\r\nContent-Type: audio/mpeg\r\nicy-metaint: 8192\r\n\r\n",
        b"\x00",
    ),
}
