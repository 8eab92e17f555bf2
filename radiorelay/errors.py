"""Failures of the relay, each carrying the HTTP status it maps to."""


class RelayError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status = 500


class InvalidTarget(RelayError):
    """The ``url`` parameter is missing, malformed or not http(s)."""

    status = 400


class UpstreamError(RelayError):
    status = 502


class UpstreamTimeout(UpstreamError):
    pass


class UpstreamUnreachable(UpstreamError):
    pass


class UpstreamReadError(UpstreamError):
    """The upstream body failed after headers were received."""


class PlaylistResolutionFailure(RelayError):
    """A playlist could not be turned into a playable stream.

    Never reaches a client: the stream proxy falls back to the original
    response instead.
    """
