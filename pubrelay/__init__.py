"""PubRelay: HTTP publish/subscribe relay."""

__version__ = "0.1.0"
