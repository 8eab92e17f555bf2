"""Browser-friendly relay for Shoutcast/Icecast radio streams."""

__version__ = "2.0.0"
