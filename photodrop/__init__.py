"""Photo Drop: camera capture client and photo upload server."""

__version__ = "0.1.0"
