"""
Single-reader access to an upstream body with peek-then-replay.

Sniffing and playlist detection have to look at the first bytes of a body
that may afterwards be relayed to the client. ``PeekableBody`` keeps the
chunks it has already pulled and hands them out again, in order, before it
touches the live stream, so nothing is lost or duplicated.
"""
import logging

logger = logging.getLogger(__name__)


class PeekableBody:
    def __init__(self, chunks, on_close=None):
        self._chunks = iter(chunks)
        self._retained = []
        self._on_close = on_close
        self.closed = False

    def _next_live(self):
        if self.closed:
            return b""
        for chunk in self._chunks:
            if chunk:
                return chunk
        return b""

    def read(self):
        """Return the next chunk, or b"" once the stream is exhausted."""
        if self._retained:
            return self._retained.pop(0)
        return self._next_live()

    def peek(self, size):
        """
        Return at least ``size`` leading bytes without consuming them.

        Fewer bytes come back only when the stream ends first. Chunks are
        pulled whole, so the result may be longer than ``size``.
        """
        seen = b"".join(self._retained)
        while len(seen) < size:
            chunk = self._next_live()
            if not chunk:
                break
            self._retained.append(chunk)
            seen += chunk
        return seen

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._retained = []
        close_iter = getattr(self._chunks, "close", None)
        if close_iter is not None:
            close_iter()
        if self._on_close is not None:
            self._on_close()


def relay(body):
    """
    Yield every chunk of ``body`` in order, one at a time.

    The body is closed however the iteration ends: exhaustion, the consumer
    closing the generator (client gone), or an upstream error, which is
    re-raised so the transfer aborts instead of looking complete.
    """
    sent = 0
    try:
        while True:
            chunk = body.read()
            if not chunk:
                break
            sent += len(chunk)
            yield chunk
        logger.debug("Upstream finished after %d bytes", sent)
    except GeneratorExit:
        logger.debug("Client went away after %d bytes", sent)
        raise
    except Exception as e:
        logger.warning("Upstream failed mid-stream after %d bytes: %s", sent, e)
        raise
    finally:
        body.close()
