"""Dashboard HTTP and WebSocket surface."""

from triarb.dashboard.server import create_app


__all__ = ["create_app"]
