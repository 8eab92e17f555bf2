"""
Bounded-time HTTP access to a radio upstream.

Every call is a single attempt: one connection, redirects followed, no
retries. A ``Deadline`` caps the wall-clock time of the exchange: when it
fires, every socket opened under it is shut down, which breaks any read
still blocked on the upstream.
"""
import logging
import socket
import threading
from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from . import config
from .errors import InvalidTarget, UpstreamReadError, UpstreamTimeout, UpstreamUnreachable
from .pump import PeekableBody

logger = logging.getLogger(__name__)

# Deadline of the fetch running on this thread; connections opened while it
# is set are shut down when it fires.
_active = threading.local()


def validate_target(raw_url):
    """Check a client supplied upstream URL before anything touches the network."""
    if not raw_url:
        raise InvalidTarget("Missing ?url=")

    url = raw_url.strip()
    try:
        parts = urlsplit(url)
        parts.port  # raises on a malformed port
    except ValueError:
        raise InvalidTarget("Invalid url")

    if not parts.scheme:
        raise InvalidTarget("Invalid url")
    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidTarget("Only http/https allowed")
    if not parts.hostname:
        raise InvalidTarget("Invalid url")
    return url


@dataclass(frozen=True)
class UpstreamRequest:
    url: str
    forwarded_range: Optional[str] = None
    method_is_head: bool = False

    @classmethod
    def from_query(cls, raw_url, forwarded_range=None, method_is_head=False):
        return cls(validate_target(raw_url), forwarded_range or None, method_is_head)

    def retarget(self, url):
        """Same request against another URL (playlist follow-up)."""
        return replace(self, url=validate_target(url))


class Deadline:
    """
    One-shot wall-clock budget.

    Armed when entered, always disarmed when left so the timer never fires
    after the guarded exchange has finished. Callbacks registered with
    ``on_expire`` run once, on the timer thread, when it fires.
    """

    def __init__(self, seconds):
        self.seconds = seconds
        self._fired = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []
        self._timer = threading.Timer(seconds, self._expire)
        self._timer.daemon = True

    @property
    def expired(self):
        return self._fired.is_set()

    def check(self):
        if self.expired:
            raise UpstreamTimeout(f"Upstream did not respond within {self.seconds:g}s")

    def on_expire(self, callback):
        # Runs at once when the deadline has already passed
        with self._lock:
            if not self._fired.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def _expire(self):
        with self._lock:
            self._fired.set()
            callbacks, self._callbacks = self._callbacks, []
        logger.debug("Deadline of %gs passed, aborting %d connection(s)", self.seconds, len(callbacks))
        for callback in callbacks:
            callback()

    def __enter__(self):
        self._timer.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._timer.cancel()
        with self._lock:
            self._callbacks = []
        return False


def _shutdown(sock):
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # already closed by its owner
        pass


class _AbortableConnection:
    def connect(self):
        super().connect()
        deadline = getattr(_active, "deadline", None)
        if deadline is not None:
            sock = self.sock
            deadline.on_expire(lambda: _shutdown(sock))


class _HTTPConnection(_AbortableConnection, HTTPConnection):
    pass


class _HTTPSConnection(_AbortableConnection, HTTPSConnection):
    pass


class _HTTPConnectionPool(HTTPConnectionPool):
    ConnectionCls = _HTTPConnection


class _HTTPSConnectionPool(HTTPSConnectionPool):
    ConnectionCls = _HTTPSConnection


class DeadlineAdapter(HTTPAdapter):
    """Transport adapter whose connections can be cut by a ``Deadline``."""

    def init_poolmanager(self, *args, **kwargs):
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": _HTTPConnectionPool,
            "https": _HTTPSConnectionPool,
        }


def _open_session():
    session = requests.Session()
    session.mount("http://", DeadlineAdapter())
    session.mount("https://", DeadlineAdapter())
    return session


def _header_items(response):
    # urllib3 keeps repeated headers apart, requests joins them with ", "
    raw_headers = getattr(response.raw, "headers", None)
    iteritems = getattr(raw_headers, "iteritems", None)
    if iteritems is not None:
        return list(iteritems())
    return list(response.headers.items())


def _guarded_chunks(response, chunk_size, deadline):
    chunks = response.iter_content(chunk_size=chunk_size)
    while True:
        if deadline is not None:
            deadline.check()
        try:
            chunk = next(chunks)
        except StopIteration:
            # an aborted socket looks like a clean end of stream
            if deadline is not None:
                deadline.check()
            return
        except requests.RequestException as e:
            if isinstance(e, requests.Timeout) or (deadline is not None and deadline.expired):
                raise UpstreamTimeout(f"Upstream read timed out: {e}") from e
            raise UpstreamReadError(f"Upstream read failed: {e}") from e
        if deadline is not None:
            deadline.check()
        yield chunk


class UpstreamResponse:
    """
    Status, headers and body of one upstream exchange.

    The body belongs to whoever holds this object; call ``close`` (or let
    the relay do it) to release the connection.
    """

    def __init__(self, response, chunk_size=config.STREAM_CHUNK_SIZE, deadline=None, on_close=None):
        self.status_code = response.status_code
        self.url = response.url
        self.headers = _header_items(response)
        self.body = PeekableBody(
            _guarded_chunks(response, chunk_size, deadline),
            on_close=on_close or response.close,
        )

    def header(self, name, default=""):
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return default

    def close(self):
        self.body.close()


def _send(target, timeout, user_agent, icy_metadata, chunk_size, deadline, guard_body):
    headers = {
        "Accept": "*/*",
        "Accept-Encoding": "identity",
        "User-Agent": user_agent,
    }
    if target.forwarded_range:
        headers["Range"] = target.forwarded_range
    if icy_metadata:
        headers["Icy-MetaData"] = "1"

    session = _open_session()
    send = session.head if target.method_is_head else session.get
    logger.debug("Fetching %s %s", "HEAD" if target.method_is_head else "GET", target.url)

    _active.deadline = deadline
    try:
        response = send(target.url, headers=headers, allow_redirects=True, stream=True, timeout=timeout)
    except requests.RequestException as e:
        session.close()
        if isinstance(e, requests.Timeout) or deadline.expired:
            raise UpstreamTimeout(f"Upstream did not respond within {timeout:g}s") from e
        raise UpstreamUnreachable(str(e)) from e
    finally:
        _active.deadline = None

    def release():
        response.close()
        session.close()

    if deadline.expired:
        release()
        deadline.check()

    return UpstreamResponse(response, chunk_size, deadline if guard_body else None, on_close=release)


def fetch(
    target,
    timeout,
    user_agent=config.STREAM_USER_AGENT,
    icy_metadata=False,
    chunk_size=config.STREAM_CHUNK_SIZE,
    deadline=None,
):
    """
    Issue one GET (or HEAD) for ``target`` and return an UpstreamResponse.

    Without a ``deadline`` a private one covers the wait for headers only.
    A caller supplied deadline must already be armed; it then also cuts off
    body reads that are still running when it fires.
    """
    if deadline is None:
        with Deadline(timeout) as own:
            return _send(target, timeout, user_agent, icy_metadata, chunk_size, own, guard_body=False)
    return _send(target, timeout, user_agent, icy_metadata, chunk_size, deadline, guard_body=True)
