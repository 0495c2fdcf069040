"""Route modules for the icalfeed server."""

from .feed_routes import register_feed_routes

__all__ = ["register_feed_routes"]
