"""
Guess the real media type of a stream from its first bytes.

Shoutcast/Icecast servers regularly label audio as ``audio/aacp``,
``text/plain`` or nothing at all, which mobile browsers refuse to play.
"""
from . import config

TEXT_WINDOW = 64


def sniff_mime(first):
    if not first or len(first) < config.SNIFF_MIN_BYTES:
        return None

    head = first[:TEXT_WINDOW].decode("utf-8", errors="replace")
    if head.startswith("#EXTM3U"):
        return "application/vnd.apple.mpegurl"
    if head.startswith("[playlist]"):
        return "audio/x-scpls"

    if first[:3] == b"ID3":
        return "audio/mpeg"
    # ADTS must win over the generic MPEG frame sync, which also matches it
    if first[0] == 0xFF and first[1] in (0xF1, 0xF9):
        return "audio/aac"
    if first[0] == 0xFF and (first[1] & 0xE0) == 0xE0:
        return "audio/mpeg"
    if first[:4] == b"OggS":
        return "audio/ogg"
    if first[:4] == b"fLaC":
        return "audio/flac"

    return None


def choose_content_type(declared, sniffed):
    """Prefer the upstream type unless it is missing or known to break playback."""
    if not sniffed:
        return declared or None

    lowered = (declared or "").lower()
    if not lowered or any(bad in lowered for bad in config.OVERRIDABLE_CONTENT_TYPES):
        return sniffed
    return declared
