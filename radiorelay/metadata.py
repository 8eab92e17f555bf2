"""Read ICY headers and the first StreamTitle of a radio stream."""
import logging

from . import config
from .fetcher import Deadline, UpstreamRequest, fetch
from .icy import read_metadata_block

logger = logging.getLogger(__name__)


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def resolve_metadata(target):
    """
    Connect to a stream, read its ICY headers and first StreamTitle.

    Audio bytes are read only as far as the first metadata block and then
    thrown away; nothing is relayed. Raises UpstreamError on network failure
    or when the whole exchange overruns ICY_TIMEOUT.
    """
    request = UpstreamRequest(target.url, forwarded_range="bytes=0-")

    with Deadline(config.ICY_TIMEOUT) as deadline:
        upstream = fetch(
            request,
            timeout=config.ICY_TIMEOUT,
            user_agent=config.ICY_USER_AGENT,
            icy_metadata=True,
            chunk_size=config.ICY_CHUNK_SIZE,
            deadline=deadline,
        )
        try:
            metaint = max(_to_int(upstream.header("icy-metaint")), 0)
            title = ""
            if metaint > 0:
                block = read_metadata_block(upstream.body, metaint)
                title = block.title
                logger.debug("ICY block from %s: %r", target.url, block.raw)
        finally:
            upstream.close()

    icy_br = upstream.header("icy-br")
    return {
        "ok": True,
        "url": target.url,
        "contentType": upstream.header("content-type"),
        "icyName": upstream.header("icy-name"),
        "icyBr": icy_br or upstream.header("ice-audio-info"),
        "icyMetaint": metaint,
        "bitrate": _to_int(icy_br),
        "title": title,
    }
