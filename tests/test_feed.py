from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from neo_dashboard import config
from neo_dashboard.feed import NeoFeed, default_date_range

TODAY = date(2025, 3, 10)


def day(offset):
    return TODAY + timedelta(days=offset)


@pytest.fixture
def feed():
    return NeoFeed(today=lambda: TODAY)


def test_default_date_range():
    assert default_date_range(TODAY) == (TODAY, day(6))


def test_available_date_range(feed):
    rng = feed.available_date_range()
    assert rng.past_limit == day(-7)
    assert rng.future_limit == day(7)


@pytest.mark.asyncio
async def test_refresh_loads_default_window(feed, nasa, make_payload):
    nasa.add(make_payload("1", day(0)))
    nasa.add(make_payload("2", day(3)))

    await feed.refresh()

    params = nasa.requests[0].url.params
    assert (params["start_date"], params["end_date"]) == (day(0).isoformat(), day(6).isoformat())
    assert [n.id for n in feed.neos] == ["1", "2"]
    assert feed.current_end_date == day(6)
    assert feed.has_more
    assert feed.error is None
    assert not feed.loading


@pytest.mark.asyncio
async def test_empty_window_stops_pagination(feed, nasa):
    await feed.refresh()
    assert feed.neos == []
    assert not feed.has_more


@pytest.mark.asyncio
async def test_fetch_replaces_unless_appending(feed, nasa, make_payload):
    nasa.add(make_payload("1", day(0)))
    nasa.add(make_payload("2", day(1)))

    await feed.fetch(day(0), day(0))
    await feed.fetch(day(1), day(1), append=True)
    assert [n.id for n in feed.neos] == ["1", "2"]

    await feed.fetch(day(1), day(1))
    assert [n.id for n in feed.neos] == ["2"]


@pytest.mark.asyncio
async def test_failure_keeps_prior_state(feed, nasa, make_payload):
    nasa.add(make_payload("1", day(0)))
    await feed.refresh()

    nasa.fail_status = 503
    await feed.refresh()

    assert feed.error == "NASA API returned status 503"
    assert [n.id for n in feed.neos] == ["1"]
    assert feed.current_end_date == day(6)
    assert feed.has_more
    assert not feed.loading
    assert feed.pop_notices() == ["NASA API returned status 503"]


@pytest.mark.asyncio
async def test_long_window_rejected_locally(feed, nasa):
    await feed.fetch(day(0), day(9))
    assert nasa.requests == []
    assert "7-day" in feed.error


@pytest.mark.asyncio
async def test_load_more_stops_at_future_limit(feed, nasa, make_payload):
    nasa.add(make_payload("1", day(0)))
    await feed.refresh()
    assert feed.has_more

    await feed.load_more()

    assert not feed.has_more
    assert len(nasa.requests) == 1
    assert feed.pop_notices() == ["Reached NASA API date limit (7 days in the future)"]


@pytest.mark.asyncio
async def test_load_more_appends_next_window(feed, nasa, make_payload, monkeypatch):
    monkeypatch.setattr(config, "PAGE_SPAN_DAYS", 1)
    nasa.add(make_payload("1", day(0)))
    nasa.add(make_payload("2", day(7)))
    await feed.refresh()

    await feed.load_more()

    params = nasa.requests[1].url.params
    assert (params["start_date"], params["end_date"]) == (day(7).isoformat(), day(7).isoformat())
    assert [n.id for n in feed.neos] == ["1", "2"]
    assert feed.current_end_date == day(7)
    assert not feed.has_more


@pytest.mark.asyncio
async def test_load_more_ignored_while_loading(feed, nasa, make_payload):
    nasa.add(make_payload("1", day(0)))
    await feed.refresh()
    feed.loading = True

    await feed.load_more()

    assert len(nasa.requests) == 1
    assert feed.has_more


@pytest.mark.asyncio
async def test_load_more_before_first_fetch_is_noop(feed, nasa):
    await feed.load_more()
    assert nasa.requests == []


@pytest.mark.asyncio
async def test_ensure_loaded_fetches_once(feed, nasa):
    await feed.ensure_loaded()
    await feed.ensure_loaded()
    assert len(nasa.requests) == 1


@pytest.mark.asyncio
async def test_filters_shape_grouped_view(feed, nasa, make_payload):
    nasa.add(make_payload("1", day(0), hazardous=True))
    nasa.add(make_payload("2", day(0)))
    nasa.add(make_payload("3", day(2)))
    await feed.refresh()

    feed.set_filters(show_hazardous_only=True)
    assert {d: [n.id for n in g] for d, g in feed.grouped.items()} == {day(0): ["1"]}

    feed.set_filters(show_hazardous_only=False, start_date=day(2).isoformat())
    state = feed.state()
    assert list(state.near_earth_objects) == [day(2)]
    assert state.element_count == 1
    assert state.filters.show_hazardous_only is False
    assert len(feed.neos) == 3


def test_set_filters_validates(feed):
    with pytest.raises(ValidationError):
        feed.set_filters(sort_order="sideways")
    assert feed.filters.sort_order == "asc"
