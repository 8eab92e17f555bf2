"""
Detect playlist indirections (M3U/M3U8/PLS) and pick the stream they point to.
"""
import re
from urllib.parse import urlsplit

PLAYLIST_CONTENT_TYPES = (
    "mpegurl",
    "x-mpegurl",
    "vnd.apple.mpegurl",
    "scpls",
    "playlist",
)
PLAYLIST_EXTENSIONS = (".m3u", ".m3u8", ".pls")

PLS_ENTRY_RE = re.compile(r"^File\d+=(.+)$", re.IGNORECASE)


def is_http_url(value):
    """True when value parses as an absolute http or https URI."""
    if not value:
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc)


def is_playlist(content_type, url):
    ct = (content_type or "").lower()
    if any(marker in ct for marker in PLAYLIST_CONTENT_TYPES):
        return True

    path = urlsplit(url or "").path.lower()
    return path.endswith(PLAYLIST_EXTENSIONS)


def parse_playlist(text):
    """
    Return the first stream URI in a PLS or M3U playlist, or None.

    PLS ``FileN=`` entries are preferred over bare M3U lines.
    """
    lines = [line.strip() for line in (text or "").splitlines()]
    lines = [line for line in lines if line]

    for line in lines:
        m = PLS_ENTRY_RE.match(line)
        if m and is_http_url(m.group(1).strip()):
            return m.group(1).strip()

    for line in lines:
        if line.startswith("#"):
            continue
        if is_http_url(line):
            return line

    return None
