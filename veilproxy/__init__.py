"""Proxy request routing, per-user traffic accounting and TCP socket options."""

__version__ = "0.1.0"