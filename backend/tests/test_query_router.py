from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_event, rollup_row
from inpwatch.constants import QuerySource
from inpwatch.services.query_router import QueryRouter
from inpwatch.services.rollup_builder import RollupBuilder

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
YESTERDAY = date(2026, 3, 9)
AFTERNOON = datetime(2026, 3, 9, 13, 0, 0)

SAMPLES = {
    "#buy-btn": [100, 150, 900, 120, 110],
    "#menu": [300, 320, 310, 305, 400, 350],
    ".card": [50, 60, 70, 80, 90],
}


@pytest.fixture
def router(db, config) -> QueryRouter:
    return QueryRouter(db, config)


@pytest.fixture
def sampled(seed):
    seed(
        make_event(AFTERNOON + timedelta(minutes=i), latency, selector=selector, page_url=f"/shop{selector[1:]}?ref=ad")
        for selector, values in SAMPLES.items()
        for i, latency in enumerate(values)
    )


def test_buy_button_from_raw(router, seed) -> None:
    seed(make_event(AFTERNOON, latency) for latency in [100, 150, 900, 120, 110])

    page = router.top_offenders(lookback_days=7, min_events=5, prefer_rollups=False, now=NOW)

    assert page.source == QuerySource.RAW
    assert page.total_count == 1
    (row,) = page.rows
    assert (row.selector, row.p75, row.worst, row.events) == ("#buy-btn", 150, 900, 5)
    assert row.avg == 276
    assert row.example_url == "/checkout"


def test_min_events_excludes_small_groups(router, sampled) -> None:
    page = router.top_offenders(lookback_days=7, min_events=6, prefer_rollups=False, now=NOW)

    assert [row.selector for row in page.rows] == ["#menu"]
    assert page.total_count == 1


def test_raw_ranking_by_p75(router, sampled) -> None:
    page = router.top_offenders(lookback_days=7, min_events=1, prefer_rollups=False, now=NOW)

    assert [(row.selector, row.p75) for row in page.rows] == [("#menu", 350), ("#buy-btn", 150), (".card", 80)]


def test_rollups_and_raw_rank_identically(router, sampled, session_factory, config) -> None:
    RollupBuilder(session_factory, config).run_for_day(YESTERDAY)

    raw = router.top_offenders(lookback_days=1, min_events=5, prefer_rollups=False, now=NOW)
    rolled = router.top_offenders(lookback_days=1, min_events=5, prefer_rollups=True, now=NOW)

    assert rolled.source == QuerySource.ROLLUPS
    assert [r.selector for r in rolled.rows] == [r.selector for r in raw.rows]
    assert [(r.p75, r.worst, r.events) for r in rolled.rows] == [(r.p75, r.worst, r.events) for r in raw.rows]
    assert rolled.total_count == raw.total_count == 3


def test_rollup_average_is_weighted_median(router, seed, session_factory, config) -> None:
    seed([
        make_event(AFTERNOON, 90, selector="#a", page_url="/x"),
        make_event(AFTERNOON, 100, selector="#a", page_url="/x?y=1"),
        make_event(AFTERNOON, 110, selector="#a", page_url="/x"),
        make_event(AFTERNOON, 200, selector="#a", page_url="/y"),
    ])
    RollupBuilder(session_factory, config).run_for_day(YESTERDAY)

    (row,) = router.top_offenders(lookback_days=1, min_events=1, prefer_rollups=True, now=NOW).rows

    # (p50 100 x 3 + p50 200 x 1) / 4
    assert row.avg == 125
    assert row.p75 == 200
    assert row.worst == 200
    assert row.events == 4
    assert row.example_url == "/x"


def test_rollup_window_excludes_today_and_old_days(router, seed_rollups) -> None:
    seed_rollups([
        rollup_row(date(2026, 3, 10), selector="#today", p75=999),
        rollup_row(date(2026, 3, 9), selector="#recent", p75=300),
        rollup_row(date(2026, 3, 3), selector="#edge", p75=200),
        rollup_row(date(2026, 3, 2), selector="#old", p75=800),
    ])

    page = router.top_offenders(lookback_days=7, min_events=1, prefer_rollups=True, now=NOW)

    assert [row.selector for row in page.rows] == ["#recent", "#edge"]


def test_rollup_totals_span_days(router, seed_rollups) -> None:
    seed_rollups([
        rollup_row(date(2026, 3, 8), p50=100, p75=150, count=2, worst=400),
        rollup_row(date(2026, 3, 9), p50=200, p75=260, p95=290, count=3, worst=300),
    ])

    (row,) = router.top_offenders(lookback_days=7, min_events=5, prefer_rollups=True, now=NOW).rows

    assert (row.p75, row.worst, row.events, row.avg) == (260, 400, 5, 160)


def test_falls_back_to_raw_without_rollups(router, sampled) -> None:
    page = router.top_offenders(lookback_days=7, min_events=1, prefer_rollups=True, now=NOW)
    assert page.source == QuerySource.RAW
    assert page.total_count == 3


def test_default_preference_comes_from_config(db, config, seed_rollups) -> None:
    seed_rollups([rollup_row(YESTERDAY)])

    assert QueryRouter(db, config).use_rollups() is True
    no_rollups = config.model_copy(update={"prefer_rollups": False})
    assert QueryRouter(db, no_rollups).use_rollups() is False


def test_raw_window_is_relative_to_now(router, seed) -> None:
    seed([
        make_event(datetime(2026, 3, 9, 11, 59, 59), 100, selector="#old"),
        make_event(datetime(2026, 3, 9, 12, 0, 0), 100, selector="#edge"),
        make_event(datetime(2026, 3, 10, 12, 0, 0), 100, selector="#future"),
    ])

    page = router.top_offenders(lookback_days=1, min_events=1, prefer_rollups=False, now=NOW)

    assert [row.selector for row in page.rows] == ["#edge"]


def test_empty_selector_is_not_ranked(router, seed) -> None:
    seed([make_event(AFTERNOON, 5000, selector=""), make_event(AFTERNOON, 10)])

    page = router.top_offenders(lookback_days=7, min_events=1, prefer_rollups=False, now=NOW)

    assert [row.selector for row in page.rows] == ["#buy-btn"]


def test_url_filter(router, sampled, session_factory, config) -> None:
    raw = router.top_offenders(lookback_days=7, min_events=1, url_contains="menu", prefer_rollups=False, now=NOW)
    assert [row.selector for row in raw.rows] == ["#menu"]

    RollupBuilder(session_factory, config).run_for_day(YESTERDAY)
    rolled = router.top_offenders(lookback_days=7, min_events=1, url_contains="card", prefer_rollups=True, now=NOW)
    assert [row.selector for row in rolled.rows] == [".card"]
    assert rolled.rows[0].example_url == "/shopcard"


def test_url_filter_treats_wildcards_literally(router, seed) -> None:
    seed([
        make_event(AFTERNOON, 100, selector="#pct", page_url="/sale/50%off"),
        make_event(AFTERNOON, 200, selector="#other", page_url="/sale/50-off"),
    ])

    page = router.top_offenders(lookback_days=7, min_events=1, url_contains="50%", prefer_rollups=False, now=NOW)

    assert [row.selector for row in page.rows] == ["#pct"]


@pytest.mark.parametrize("prefer_rollups", [False, True])
def test_pagination_and_total(router, sampled, session_factory, config, prefer_rollups) -> None:
    RollupBuilder(session_factory, config).run_for_day(YESTERDAY)

    first = router.top_offenders(lookback_days=7, min_events=1, limit=2, offset=0, prefer_rollups=prefer_rollups, now=NOW)
    second = router.top_offenders(lookback_days=7, min_events=1, limit=2, offset=2, prefer_rollups=prefer_rollups, now=NOW)

    assert [r.selector for r in first.rows] == ["#menu", "#buy-btn"]
    assert [r.selector for r in second.rows] == [".card"]
    assert first.total_count == second.total_count == 3
    assert router.top_offenders_count(lookback_days=7, min_events=1, prefer_rollups=prefer_rollups, now=NOW) == 3


@pytest.mark.parametrize("prefer_rollups", [False, True])
def test_ties_have_a_stable_order(router, seed, session_factory, config, prefer_rollups) -> None:
    seed(make_event(AFTERNOON, 200, selector=selector) for selector in ["#c", "#a", "#b"])
    RollupBuilder(session_factory, config).run_for_day(YESTERDAY)

    orders = {
        tuple(r.selector for r in router.top_offenders(min_events=1, prefer_rollups=prefer_rollups, now=NOW).rows)
        for _ in range(3)
    }

    assert orders == {("#a", "#b", "#c")}


def test_empty_window(router) -> None:
    page = router.top_offenders(prefer_rollups=False, now=NOW)
    assert page.rows == []
    assert page.total_count == 0


def test_inputs_are_clamped(router, sampled) -> None:
    page = router.top_offenders(lookback_days=0, min_events=0, limit=0, offset=-5, prefer_rollups=False, now=NOW)

    assert page.total_count == 3
    assert [row.selector for row in page.rows] == ["#menu"]


def test_selector_events_only_returns_that_selector(router, sampled, seed) -> None:
    seed([make_event(AFTERNOON + timedelta(hours=1), 999, selector="#buy-btn-2")])

    events = router.selector_events("#buy-btn", lookback_days=7, now=NOW)

    assert {event.target_selector for event in events} == {"#buy-btn"}
    assert len(events) == 5


def test_selector_events_newest_first_and_paginated(router, sampled) -> None:
    events = router.selector_events("#buy-btn", lookback_days=7, limit=2, offset=1, now=NOW)

    assert [event.interaction_latency_ms for event in events] == [120, 900]
    assert events[0].timestamp > events[1].timestamp


def test_selector_events_window_and_url_filter(router, seed) -> None:
    seed([
        make_event(datetime(2026, 3, 1), 100, page_url="/old"),
        make_event(AFTERNOON, 200, page_url="/cart?step=1"),
        make_event(AFTERNOON, 300, page_url="/checkout"),
    ])

    recent = router.selector_events("#buy-btn", lookback_days=7, now=NOW)
    cart = router.selector_events("#buy-btn", lookback_days=30, url_contains="cart", now=NOW)

    assert sorted(e.interaction_latency_ms for e in recent) == [200, 300]
    assert [e.page_url for e in cart] == ["/cart?step=1"]
