"""kkp — find and kill whatever is listening on a local port."""

__version__ = "0.1.0"
