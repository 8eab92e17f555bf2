from flask import Flask, Response, jsonify, request, abort
import logging

from radiorelay import config
from radiorelay.errors import InvalidTarget, UpstreamError
from radiorelay.fetcher import UpstreamRequest
from radiorelay.metadata import resolve_metadata
from radiorelay.proxy import open_stream

logging.basicConfig(
    level=logging.DEBUG if config.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)


def text_response(status, body, cors=config.STREAM_CORS_HEADERS):
    resp = Response(body, status=status, content_type='text/plain; charset=utf-8')
    resp.headers.update(cors)
    resp.headers['Cache-Control'] = 'no-store, no-transform'
    return resp


def preflight(cors):
    return Response(status=204, headers=cors)


@app.errorhandler(405)
def method_not_allowed(e):
    cors = config.ICY_CORS_HEADERS if request.path == '/icy' else config.STREAM_CORS_HEADERS
    return text_response(405, "Method not allowed", cors=cors)


@app.route('/stream', methods=['GET', 'HEAD', 'OPTIONS'])
def stream():
    """
    Relay a radio stream with a browser friendly Content-Type and CORS.
    Follows .m3u/.pls playlists and forwards the client's Range header.
    """
    if request.method == 'OPTIONS':
        return preflight(config.STREAM_CORS_HEADERS)

    try:
        target = UpstreamRequest.from_query(
            request.args.get('url'),
            forwarded_range=request.headers.get('Range'),
            method_is_head=request.method == 'HEAD',
        )
    except InvalidTarget as e:
        return text_response(400, str(e))

    try:
        proxied = open_stream(target)
    except UpstreamError as e:
        logger.warning(f"Stream upstream failed for {target.url}: {e}")
        return text_response(502, f"Upstream fetch failed: {e}")

    resp = app.response_class(
        proxied.body if proxied.body is not None else b'',
        status=proxied.status_code,
        headers=proxied.headers,
        direct_passthrough=True,
    )
    if proxied.content_type is None:
        # Keep Flask from claiming text/html for an unlabelled stream
        del resp.headers['Content-Type']

    # Runs even when the body iterator was never started
    resp.call_on_close(proxied.close)
    return resp


@app.route('/icy', methods=['GET', 'OPTIONS'])
def icy():
    """Now-playing info (StreamTitle) plus the stream's ICY headers as JSON."""
    if request.method == 'OPTIONS':
        return preflight(config.ICY_CORS_HEADERS)
    if request.method != 'GET':
        abort(405)

    try:
        target = UpstreamRequest.from_query(request.args.get('url'))
    except InvalidTarget as e:
        return text_response(400, str(e), cors=config.ICY_CORS_HEADERS)

    try:
        data = resolve_metadata(target)
        status = 200
    except UpstreamError as e:
        logger.warning(f"ICY lookup failed for {target.url}: {e}")
        data = {"ok": False, "error": str(e)}
        status = 502

    resp = jsonify(data)
    resp.status_code = status
    resp.headers.update(config.ICY_CORS_HEADERS)
    resp.headers['Cache-Control'] = 'no-store, no-transform'
    return resp


def main():
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG, threaded=True)


if __name__ == '__main__':
    main()
