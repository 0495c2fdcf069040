"""Feed API routes: events, feed descriptor and health."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import Any, Optional

from aiohttp import web

from icalfeed.calendar.exceptions import InvalidFeedToken, InvalidWindow, RequestError
from icalfeed.calendar.models import PrimitiveEvent
from icalfeed.core.config_manager import AppConfig
from icalfeed.domain.feed_service import FeedService

logger = logging.getLogger(__name__)

INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DATE_FORMAT = "%Y-%m-%d"


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"status": "error", "error": message}, status=status)


def parse_window_bound(raw: Optional[str], name: str) -> datetime:
    """Parse an RFC 3339 query parameter into an aware UTC datetime.

    Raises:
        InvalidWindow: Missing, unparsable or without a UTC offset
    """
    if not raw:
        raise InvalidWindow(f"Missing {name} datetime")
    try:
        value = datetime.fromisoformat(raw.strip().replace(" ", "+"))
    except ValueError as e:
        raise InvalidWindow(f"Invalid {name} datetime") from e
    if value.tzinfo is None:
        raise InvalidWindow(f"Invalid {name} datetime: UTC offset required")
    return value.astimezone(UTC)


def event_to_dict(event: PrimitiveEvent) -> dict[str, str]:
    """Serialize an occurrence: dates as ``YYYY-MM-DD``, instants as ``YYYY-MM-DDTHH:MM:SSZ``."""

    def _dates(start: date, end: date) -> tuple[str, str]:
        return start.strftime(DATE_FORMAT), end.strftime(DATE_FORMAT)

    def _instants(start: datetime, end: datetime) -> tuple[str, str]:
        return start.strftime(INSTANT_FORMAT), end.strftime(INSTANT_FORMAT)

    start, end = event.range.fold(_dates, _instants)
    return {"start": start, "end": end, "title": event.summary}


def register_feed_routes(app: web.Application, config: AppConfig, feed_service: FeedService) -> None:
    """Register feed API routes.

    Args:
        app: aiohttp web application
        config: Configuration snapshot (feeds, colors)
        feed_service: Aggregator serving occurrence lists
    """

    async def get_events(request: web.Request) -> web.Response:
        """Occurrences of the token's feed within ``start``..``end``."""
        params = request.query
        try:
            token = params.get("token")
            if not token:
                raise InvalidFeedToken("Token not present")
            window_start = parse_window_bound(params.get("start"), "start")
            window_end = parse_window_bound(params.get("end"), "end")
            events = await feed_service.get_feed(token, window_start, window_end)
        except RequestError as e:
            logger.debug("Rejected /events request: %s", e)
            return error_response(str(e), e.status_code)
        except Exception:
            logger.exception("Failed to build events feed")
            return error_response("Internal server error", 500)

        return web.json_response([event_to_dict(e) for e in events])

    async def get_feed(request: web.Request) -> web.Response:
        """Descriptor for one or more feeds: combined title, tokens and colors."""
        params = request.query
        if params.get("tokens"):
            tokens = [t for t in params["tokens"].split(",") if t]
        elif params.get("token"):
            tokens = [params["token"]]
        else:
            return error_response("Token not present", 404)

        names = []
        for token in tokens:
            feed = config.get_feed_by_token(token)
            if feed is None:
                return error_response("Invalid token", 404)
            names.append(feed.name)

        return web.json_response(
            {"title": ", ".join(names), "tokens": tokens, "colors": list(config.colors)}
        )

    async def health_check(_request: web.Request) -> web.Response:
        payload: dict[str, Any] = {"status": "ok", "feeds": len(config.feeds)}
        return web.json_response(payload)

    app.router.add_get("/events", get_events)
    app.router.add_get("/feed", get_feed)
    app.router.add_get("/health", health_check)
