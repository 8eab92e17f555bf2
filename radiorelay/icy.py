"""
Read one interleaved ICY metadata block from a Shoutcast/Icecast body.

The server sends ``icy-metaint`` bytes of audio, then one length byte L,
then L*16 bytes of ``key='value';`` text padded with NULs, then audio again.
"""
import re
from dataclasses import dataclass

STREAM_TITLE_RE = re.compile(r"StreamTitle='([^']*)'", re.IGNORECASE)
BLOCK_UNIT = 16


@dataclass(frozen=True)
class IcyMetadataBlock:
    title: str
    raw: str


EMPTY_BLOCK = IcyMetadataBlock(title="", raw="")


def parse_stream_title(text):
    """Extract the StreamTitle value, e.g. StreamTitle='Artist - Title';"""
    m = STREAM_TITLE_RE.search(text or "")
    return m.group(1).strip() if m else ""


def _skip_audio(body, metaint):
    # Counts whole chunks. Whatever the last skipped chunk holds past the
    # metaint boundary is dropped with it, so the length byte is taken from
    # the start of the next chunk.
    to_skip = metaint
    while to_skip > 0:
        chunk = body.read()
        if not chunk:
            return False
        if len(chunk) <= to_skip:
            to_skip -= len(chunk)
        else:
            to_skip = 0
    return True


def read_metadata_block(body, metaint):
    """
    Skip ``metaint`` audio bytes of ``body`` and parse the block that follows.

    ``body`` is anything with a chunk-returning ``read()`` that yields b""
    at end of stream. Short reads are accumulated; a stream that ends early
    gives a partial or empty title instead of an error.
    """
    if metaint <= 0:
        raise ValueError("metaint must be positive")

    if not _skip_audio(body, metaint):
        return EMPTY_BLOCK

    chunk = body.read()
    if not chunk:
        return EMPTY_BLOCK

    length = chunk[0] * BLOCK_UNIT
    if length == 0:
        return EMPTY_BLOCK

    collected = bytearray(chunk[1:1 + length])
    while len(collected) < length:
        chunk = body.read()
        if not chunk:
            break
        collected += chunk[:length - len(collected)]

    raw = bytes(collected).decode("utf-8", errors="replace").rstrip("\x00")
    return IcyMetadataBlock(title=parse_stream_title(raw), raw=raw)
