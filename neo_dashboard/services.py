import logging
import os
from datetime import date
from itertools import chain
from typing import List, Optional

import httpx
from pydantic import ValidationError

from . import config
from .schemas import FeedResponse, Neo, OrbitalData

logger = logging.getLogger(__name__)

FEED_PATH = "/neo/rest/v1/feed"
NEO_PATH = "/neo/rest/v1/neo/{neo_id}"
ORBITAL_PATH = "/neo/rest/v1/neo/{neo_id}/orbital"


class FeedError(Exception):
    """Base class for failures talking to the NASA NeoWs feed."""


class DateRangeError(FeedError):
    """Requested window rejected locally, before any request is made."""


class UpstreamError(FeedError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(UpstreamError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404)


def build_client() -> httpx.AsyncClient:
    """Client carrying the API key and the fixed request timeout."""

    return httpx.AsyncClient(
        base_url=config.NASA_BASE_URL,
        timeout=config.NASA_TIMEOUT,
        params={"api_key": os.getenv("NASA_API_KEY", config.NASA_API_KEY)},
    )


async def _get(path: str, params: Optional[dict] = None) -> dict:
    async with build_client() as client:
        try:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429:
                logger.error("NASA API rate limit exceeded")
                raise UpstreamError("NASA API rate limit exceeded, try again later", status) from exc
            if status == 403:
                logger.error("Invalid NASA API key")
                raise UpstreamError("NASA API rejected the configured API key", status) from exc
            if status == 404:
                raise NotFoundError(f"Nothing found at {path}") from exc
            logger.error("NASA API error %s for %s", status, path)
            raise UpstreamError(f"NASA API returned status {status}", status) from exc
        except httpx.HTTPError as exc:
            logger.error("NASA API request to %s failed: %s", path, exc)
            raise UpstreamError("NASA API is unreachable") from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamError("Malformed response from NASA API") from exc


def validate_range(start: date, end: date) -> None:
    if end < start:
        raise DateRangeError("End date must not be before start date")
    if (end - start).days > config.MAX_FEED_SPAN_DAYS:
        raise DateRangeError(
            f"NASA API only allows {config.MAX_FEED_SPAN_DAYS}-day ranges maximum"
        )


async def fetch_feed(start: date, end: date) -> FeedResponse:
    """Fetch the NEO feed for ``start`` through ``end`` (inclusive).

    The window is checked locally first; a span the feed would refuse never
    reaches the network.
    """

    validate_range(start, end)
    data = await _get(
        FEED_PATH,
        params={"start_date": start.isoformat(), "end_date": end.isoformat()},
    )
    try:
        feed = FeedResponse.model_validate(data)
    except ValidationError as exc:
        logger.error("Malformed feed response for %s..%s: %s", start, end, exc)
        raise UpstreamError("Malformed response from NASA API") from exc
    logger.info("Fetched %d NEOs for %s..%s", feed.element_count, start, end)
    return feed


def flatten_feed(feed: FeedResponse) -> List[Neo]:
    return list(chain.from_iterable(feed.near_earth_objects.values()))


async def fetch_details(neo_id: str) -> Neo:
    try:
        data = await _get(NEO_PATH.format(neo_id=neo_id))
    except NotFoundError as exc:
        raise NotFoundError(f"NEO {neo_id} not found") from exc
    try:
        return Neo.model_validate(data)
    except ValidationError as exc:
        logger.error("Malformed details for NEO %s: %s", neo_id, exc)
        raise UpstreamError("Malformed response from NASA API") from exc


async def fetch_orbital(neo_id: str) -> Optional[OrbitalData]:
    try:
        data = await _get(ORBITAL_PATH.format(neo_id=neo_id))
    except NotFoundError:
        logger.info("Orbital data not available for NEO %s", neo_id)
        return None
    if not isinstance(data, dict):
        raise UpstreamError("Malformed orbital data from NASA API")
    orbital = data.get("orbital_data")
    if not orbital:
        return None
    try:
        return OrbitalData.model_validate(orbital)
    except ValidationError as exc:
        raise UpstreamError("Malformed orbital data from NASA API") from exc


async def fetch_details_enriched(neo_id: str) -> Neo:
    """Load a NEO and attach its orbital parameters when they can be had.

    Enrichment is best-effort: any failure there returns the primary record
    untouched.
    """

    neo = await fetch_details(neo_id)
    try:
        orbital = await fetch_orbital(neo_id)
    except FeedError as exc:
        logger.info("Skipping orbital data for NEO %s: %s", neo_id, exc)
        return neo
    if orbital is None:
        return neo
    return neo.model_copy(update={"orbital_data": orbital})
