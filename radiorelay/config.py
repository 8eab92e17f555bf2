import os

from dotenv import load_dotenv

load_dotenv()

# Configuration
DEBUG = os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5000))

# Wall-clock budgets (seconds) for one upstream exchange
STREAM_TIMEOUT = float(os.getenv("STREAM_TIMEOUT", 20))
ICY_TIMEOUT = float(os.getenv("ICY_TIMEOUT", 8))

STREAM_CHUNK_SIZE = 32768
ICY_CHUNK_SIZE = 4096
PLAYLIST_MAX_BYTES = 64 * 1024
SNIFF_MIN_BYTES = 4

STREAM_USER_AGENT = "radio-relay-stream-proxy/2.0"
ICY_USER_AGENT = "radio-relay-icy/1.2"

STREAM_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,OPTIONS",
    "Access-Control-Allow-Headers": "Range,Content-Type,Accept,Origin",
    "Access-Control-Expose-Headers": (
        "Content-Length,Content-Range,Accept-Ranges,Content-Type,"
        "icy-br,icy-metaint,icy-name,icy-description"
    ),
}

ICY_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Accept,Origin",
    "Access-Control-Expose-Headers": "Content-Type",
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-transform",
    "Pragma": "no-cache",
}

# Upstream types that browsers refuse for <audio>; a sniffed type replaces them
OVERRIDABLE_CONTENT_TYPES = (
    "audio/aacp",
    "text/plain",
    "text/html",
    "application/json",
    "application/octet-stream",
)
