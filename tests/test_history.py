from datetime import timedelta

import pytest

from recipefinder.schemas import SearchHistoryEntry
from recipefinder.services.history import SearchHistoryLog


def make_entry(clock, idx, ingredients):
    return SearchHistoryEntry(
        id=f"h{idx}",
        ingredients=ingredients,
        source="static",
        exact_count=1,
        near_count=0,
        results_count=1,
        response_time_ms=5,
        timestamp=clock() + timedelta(seconds=idx),
    )


@pytest.mark.asyncio
async def test_recent_is_newest_first_and_capped(device_store, clock):
    log = SearchHistoryLog(device_store, namespace="d1", limit=3, clock=clock)
    for i in range(5):
        await log.record(make_entry(clock, i, [f"item{i}"]))

    recent = await log.recent()
    assert [e.id for e in recent] == ["h4", "h3", "h2"]
    assert [e.id for e in await log.recent(limit=1)] == ["h4"]


@pytest.mark.asyncio
async def test_preferences_track_frequent_ingredients(device_store, clock):
    log = SearchHistoryLog(device_store, frequent_limit=3, clock=clock)
    await log.record(make_entry(clock, 1, ["egg", "tomato"]))
    await log.record(make_entry(clock, 2, ["onion", "egg"]))
    await log.record(make_entry(clock, 3, ["rice"]))

    prefs = await log.preferences()
    assert prefs.frequent_ingredients == ["rice", "onion", "egg"]
    assert prefs.search_count == 3
    assert prefs.last_search_at == clock() + timedelta(seconds=3)


@pytest.mark.asyncio
async def test_suggest_prefix_before_substring(device_store, clock):
    log = SearchHistoryLog(device_store, clock=clock)
    await log.record(make_entry(clock, 1, ["green pepper", "pepperoni", "egg"]))

    assert await log.suggest("pep") == ["pepperoni", "green pepper"]
    assert await log.suggest("  EG") == ["egg"]
    assert await log.suggest("") == ["green pepper", "pepperoni", "egg"]


@pytest.mark.asyncio
async def test_clear(device_store, clock):
    log = SearchHistoryLog(device_store, clock=clock)
    await log.record(make_entry(clock, 1, ["egg"]))
    assert await log.clear() == 1
    assert await log.recent() == []
    assert (await log.preferences()).search_count == 0
