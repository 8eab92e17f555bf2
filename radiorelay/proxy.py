"""
Turn an upstream radio URL into a stream a browser <audio> element accepts.

GET flow: fetch, follow one playlist indirection, sniff the real media type
from the first bytes, then relay those bytes followed by the rest of the
body. HEAD stops after the first fetch and never reads a body.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from . import config
from .errors import InvalidTarget, PlaylistResolutionFailure, UpstreamError
from .fetcher import UpstreamResponse, fetch
from .playlist import is_playlist, parse_playlist
from .pump import relay
from .sniff import choose_content_type, sniff_mime

logger = logging.getLogger(__name__)

# WSGI forbids hop-by-hop headers in an application response
HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


class Resolution(enum.Enum):
    INITIAL = "initial"
    RESOLVED_VIA_PLAYLIST = "resolved-via-playlist"


@dataclass
class ProxiedStream:
    status_code: int
    headers: List[Tuple[str, str]]
    content_type: Optional[str]
    body: Optional[Iterator[bytes]]
    resolution: Resolution
    upstream: UpstreamResponse

    def close(self):
        self.upstream.close()


def outbound_headers(upstream_headers, content_type):
    """Upstream headers minus hop-by-hop ones, plus content type, CORS and no-cache."""
    replaced = {"content-type"}
    replaced.update(k.lower() for k in config.STREAM_CORS_HEADERS)
    replaced.update(k.lower() for k in config.NO_CACHE_HEADERS)

    headers = [
        (name, value)
        for name, value in upstream_headers
        if name.lower() not in HOP_BY_HOP and name.lower() not in replaced
    ]
    if content_type:
        headers.append(("Content-Type", content_type))
    headers.extend(config.STREAM_CORS_HEADERS.items())
    headers.extend(config.NO_CACHE_HEADERS.items())
    return headers


def _fetch_stream(target):
    return fetch(target, timeout=config.STREAM_TIMEOUT, user_agent=config.STREAM_USER_AGENT)


def _playlist_entry(upstream):
    # Peeked, not consumed: the text is still there if we fall back
    text = upstream.body.peek(config.PLAYLIST_MAX_BYTES).decode("utf-8", errors="replace")
    entry = parse_playlist(text)
    if not entry:
        raise PlaylistResolutionFailure("no http(s) stream found in playlist")
    return entry


def follow_playlist(target, upstream):
    """
    Swap a playlist response for the stream it points to.

    Returns ``(response, resolution)``. Any failure leaves the original
    response in place, unread.
    """
    if not is_playlist(upstream.header("content-type"), target.url):
        return upstream, Resolution.INITIAL

    try:
        entry = _playlist_entry(upstream)
        resolved = _fetch_stream(target.retarget(entry))
    except (InvalidTarget, PlaylistResolutionFailure, UpstreamError) as e:
        logger.warning("Playlist at %s not followed, serving it as is: %s", target.url, e)
        return upstream, Resolution.INITIAL

    logger.info("Playlist %s resolved to %s", target.url, entry)
    upstream.close()
    return resolved, Resolution.RESOLVED_VIA_PLAYLIST


def open_stream(target):
    """
    Fetch ``target`` and prepare the outbound status, headers and body.

    Raises UpstreamError when the (first) upstream fetch fails.
    """
    upstream = _fetch_stream(target)

    if target.method_is_head:
        content_type = upstream.header("content-type") or None
        upstream.close()
        return ProxiedStream(
            status_code=upstream.status_code,
            headers=outbound_headers(upstream.headers, content_type),
            content_type=content_type,
            body=None,
            resolution=Resolution.INITIAL,
            upstream=upstream,
        )

    upstream, resolution = follow_playlist(target, upstream)

    try:
        sniffed = sniff_mime(upstream.body.peek(config.SNIFF_MIN_BYTES))
    except UpstreamError:
        upstream.close()
        raise
    content_type = choose_content_type(upstream.header("content-type") or None, sniffed)
    logger.debug(
        "Relaying %s (%s) status=%s sniffed=%s type=%s",
        upstream.url, resolution.value, upstream.status_code, sniffed, content_type,
    )

    return ProxiedStream(
        status_code=upstream.status_code,
        headers=outbound_headers(upstream.headers, content_type),
        content_type=content_type,
        body=relay(upstream.body),
        resolution=resolution,
        upstream=upstream,
    )
