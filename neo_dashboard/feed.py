import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from . import config, services
from .filters import apply_filters
from .schemas import DateRange, FeedState, FilterOptions, Neo

logger = logging.getLogger(__name__)

LIMIT_NOTICE = "Reached NASA API date limit ({days} days in the future)"


def default_date_range(today: date):
    """Today plus the following six days: one full feed window."""

    return today, today + timedelta(days=config.MAX_FEED_SPAN_DAYS - 1)


class NeoFeed:
    """Accumulated NEO list for one page session.

    Holds the fetched records, the loading/error/has_more flags and the
    active filter options. ``grouped`` re-derives the display grouping on
    every access.
    """

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today
        self.neos: List[Neo] = []
        self.loading = False
        self.error: Optional[str] = None
        self.has_more = True
        self.current_end_date: Optional[date] = None
        self.filters = FilterOptions()
        self.notices: List[str] = []
        self.started = False

    def available_date_range(self) -> DateRange:
        today = self._today()
        return DateRange(
            past_limit=today - timedelta(days=config.FEED_HORIZON_DAYS),
            today=today,
            future_limit=today + timedelta(days=config.FEED_HORIZON_DAYS),
        )

    async def fetch(self, start: date, end: date, append: bool = False) -> None:
        self.started = True
        self.loading = True
        self.error = None
        try:
            response = await services.fetch_feed(start, end)
            new_neos = services.flatten_feed(response)

            if append:
                self.neos = self.neos + new_neos
            else:
                self.neos = new_neos
            self.current_end_date = end

            next_possible = end + timedelta(days=1)
            can_load_more = next_possible <= self.available_date_range().future_limit
            self.has_more = can_load_more and len(new_neos) > 0
        except services.FeedError as exc:
            logger.warning("Feed fetch %s..%s failed: %s", start, end, exc)
            self.error = str(exc)
            self.notices.append(self.error)
        finally:
            self.loading = False

    async def load_more(self) -> None:
        if self.loading or not self.has_more or self.current_end_date is None:
            return

        next_start = self.current_end_date + timedelta(days=1)
        next_end = next_start + timedelta(days=config.PAGE_SPAN_DAYS - 1)

        if next_end > self.available_date_range().future_limit:
            self.has_more = False
            self.notices.append(LIMIT_NOTICE.format(days=config.FEED_HORIZON_DAYS))
            return

        await self.fetch(next_start, next_end, append=True)

    async def refresh(self) -> None:
        start, end = default_date_range(self._today())
        await self.fetch(start, end, append=False)

    async def ensure_loaded(self) -> None:
        if not self.started:
            await self.refresh()

    def set_filters(self, **changes) -> FilterOptions:
        merged = {**self.filters.model_dump(), **changes}
        self.filters = FilterOptions.model_validate(merged)
        return self.filters

    @property
    def grouped(self) -> Dict[date, List[Neo]]:
        return apply_filters(self.neos, self.filters)

    def pop_notices(self) -> List[str]:
        notices, self.notices = self.notices, []
        return notices

    def state(self) -> FeedState:
        grouped = self.grouped
        return FeedState(
            near_earth_objects=grouped,
            element_count=sum(len(group) for group in grouped.values()),
            loading=self.loading,
            has_more=self.has_more,
            error=self.error,
            current_end_date=self.current_end_date,
            filters=self.filters,
            available_date_range=self.available_date_range(),
        )
