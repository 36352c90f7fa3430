# tests/test_ranking_engine.py
"""
Orchestrator behaviour:

  Part 1: Request validation happens before any repository call
  Part 2: Pagination and stable ordering
  Part 3: Error propagation (repository failures, malformed items, cancellation)
  Part 4: End-to-end corpus scenario across all four strategies
  Part 5: Extreme counters and unusable coordinates are excluded per item
"""
import threading
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from client.contentRepository import InMemoryContentRepository
from factories import NOW, hours_ago, make_item
from feedRanking.config import RankingConfig
from feedRanking.errors import (
    InvalidRequest, RankingCancelled, RepositoryUnavailable
)
from feedRanking.models import CandidateQuery, GeoPoint
from feedRanking.rankingEngine import RankingEngine, paginate, rank_feed
from feedRanking.strategies import StrategyName


def _five_item_repository() -> InMemoryContentRepository:
    return InMemoryContentRepository([
        make_item(f"p{index}", age_hours=index + 1, like_count=10 * (5 - index), text_length=30)
        for index in range(5)
    ])


def _ids(result):
    return [scored.item.id for scored in result.items]


# ---------------------------------------------------------------------------
# Part 1: validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("kwargs", [
    {'strategy': 'trending'},
    {'strategy': 'discover', 'page': 0},
    {'strategy': 'discover', 'page': -1},
    {'strategy': 'discover', 'page': '2'},
    {'strategy': 'discover', 'page': True},
    {'strategy': 'discover', 'page_size': 0},
    {'strategy': 'discover', 'page_size': 101},
    {'strategy': 'discover', 'page_size': 2.5},
    {'strategy': 'discover', 'timeframe': '7d'},
    {'strategy': 'latest', 'timeframe': '24h'},
    {'strategy': 'popular', 'timeframe': '1y'},
    {'strategy': 'saved'},
    {'strategy': 'saved', 'user_id': 'U', 'category': 'food'},
    {'strategy': 'latest', 'category': 42},
])
def test_invalid_requests_never_touch_repository(kwargs):
    repository = MagicMock()
    engine = RankingEngine(repository)

    with pytest.raises(InvalidRequest):
        engine.rank(**kwargs)

    repository.fetch_candidates.assert_not_called()


def test_invalid_request_is_not_retryable():
    assert InvalidRequest.retryable is False
    assert RepositoryUnavailable.retryable is True


def test_strategy_names_are_case_insensitive():
    result = RankingEngine(_five_item_repository()).rank(' Discover ', now=NOW)
    assert result.strategy == 'discover'


def test_strategy_enum_is_accepted():
    result = RankingEngine(_five_item_repository()).rank(StrategyName.LATEST, now=NOW)
    assert result.strategy == 'latest'


def test_page_size_bound_follows_config():
    engine = RankingEngine(_five_item_repository(), RankingConfig(max_page_size=50))
    with pytest.raises(InvalidRequest):
        engine.rank('discover', page_size=60, now=NOW)


# ---------------------------------------------------------------------------
# Part 2: pagination and ordering
# ---------------------------------------------------------------------------

def test_pages_of_two_over_five_items():
    engine = RankingEngine(_five_item_repository())

    pages = [engine.rank('popular', page=page, page_size=2, now=NOW) for page in (1, 2, 3)]

    assert [len(result.items) for result in pages] == [2, 2, 1]
    assert [result.has_next_page for result in pages] == [True, True, False]
    assert [result.has_prev_page for result in pages] == [False, True, True]
    assert all(result.total_pages == 3 for result in pages)

    all_ids = [item_id for result in pages for item_id in _ids(result)]
    assert len(set(all_ids)) == 5


def test_page_beyond_end_is_empty():
    result = RankingEngine(_five_item_repository()).rank('popular', page=4, page_size=2, now=NOW)
    assert result.items == []
    assert result.has_next_page is False


def test_ranks_are_absolute_positions():
    result = RankingEngine(_five_item_repository()).rank('popular', page=2, page_size=2, now=NOW)
    assert [scored.rank for scored in result.items] == [3, 4]


def test_paginate_slices():
    assert paginate(list(range(5)), 1, 2) == ([0, 1], True)
    assert paginate(list(range(5)), 3, 2) == ([4], False)
    assert paginate([], 1, 10) == ([], False)


@pytest.mark.parametrize("strategy", ['discover', 'popular', 'latest'])
def test_order_is_non_increasing(strategy):
    result = RankingEngine(_five_item_repository()).rank(strategy, page_size=100, now=NOW)

    scores = [scored.score for scored in result.items]
    assert scores == sorted(scores, reverse=True)


def test_ties_break_by_id_ascending():
    repository = InMemoryContentRepository([
        make_item('c', like_count=3),
        make_item('a', like_count=3),
        make_item('b', like_count=3),
    ])

    result = RankingEngine(repository).rank('popular', now=NOW)
    assert _ids(result) == ['a', 'b', 'c']


def test_identical_requests_are_idempotent():
    engine = RankingEngine(_five_item_repository())

    first = engine.rank('discover', user_id='U', page_size=3, now=NOW, followed_author_ids=['author-1'])
    second = engine.rank('discover', user_id='U', page_size=3, now=NOW, followed_author_ids=['author-1'])

    assert first.to_dict() == second.to_dict()


def test_empty_result_is_a_normal_page():
    result = RankingEngine(InMemoryContentRepository()).rank('discover', now=NOW)

    assert result.items == []
    assert result.has_next_page is False
    assert result.total_pages == 0
    assert result.total_docs == 0


def test_breakdown_is_exposed():
    result = RankingEngine(_five_item_repository()).rank('discover', now=NOW)

    breakdown = result.items[0].breakdown
    assert {'engagement', 'freshness', 'diversity', 'quality', 'trending', 'location'} <= set(breakdown)


def test_default_page_size_comes_from_config():
    items = [make_item(f"p{index:02d}") for index in range(25)]
    result = RankingEngine(InMemoryContentRepository(items)).rank('discover', now=NOW)

    assert result.page_size == 20
    assert len(result.items) == 20
    assert result.has_next_page is True


def test_category_all_is_no_filter():
    repository = InMemoryContentRepository([
        make_item('food', categories=('food',)),
        make_item('art', categories=('art',)),
    ])
    engine = RankingEngine(repository)

    assert len(engine.rank('latest', category='all', now=NOW).items) == 2
    assert _ids(engine.rank('latest', category='food', now=NOW)) == ['food']


def test_category_is_passed_to_repository():
    repository = MagicMock()
    repository.fetch_candidates.return_value = []

    RankingEngine(repository).rank('popular', category='food', timeframe='24h', now=NOW)

    repository.fetch_candidates.assert_called_once_with(CandidateQuery(category='food'))


def test_naive_now_is_treated_as_utc():
    naive_now = datetime(2026, 3, 15, 12, 0)
    result = RankingEngine(_five_item_repository()).rank('latest', now=naive_now)
    assert len(result.items) == 5


def test_rank_feed_wrapper():
    result = rank_feed(_five_item_repository(), 'latest', page_size=2, now=NOW)
    assert _ids(result) == ['p0', 'p1']


# ---------------------------------------------------------------------------
# Part 3: errors
# ---------------------------------------------------------------------------

def test_repository_failure_becomes_repository_unavailable():
    repository = MagicMock()
    repository.fetch_candidates.side_effect = ConnectionError("database down")

    with pytest.raises(RepositoryUnavailable) as excinfo:
        RankingEngine(repository).rank('discover', now=NOW)

    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_repository_unavailable_propagates_unchanged():
    repository = MagicMock()
    original = RepositoryUnavailable("timed out")
    repository.fetch_candidates.side_effect = original

    with pytest.raises(RepositoryUnavailable) as excinfo:
        RankingEngine(repository).rank('latest', now=NOW)

    assert excinfo.value is original


def test_malformed_items_are_excluded_not_fatal():
    repository = InMemoryContentRepository([
        make_item('good', like_count=4),
        make_item('negative', like_count=-3),
        make_item('nan', share_count=float('nan')),
        make_item('naive', created_at=datetime(2026, 3, 15, 10, 0)),
    ])

    result = RankingEngine(repository).rank('discover', now=NOW)

    assert _ids(result) == ['good']
    assert sorted(result.excluded_ids) == ['naive', 'nan', 'negative']
    assert result.total_docs == 4
    assert result.total_ranked == 1


def test_saved_item_missing_save_time_is_excluded():
    repository = MagicMock()
    repository.fetch_candidates.return_value = [
        make_item('ok', saved_at=hours_ago(1)),
        make_item('broken'),
    ]

    result = RankingEngine(repository).rank('saved', user_id='U', now=NOW)

    assert _ids(result) == ['ok']
    assert result.excluded_ids == ['broken']


def test_cancel_before_fetch():
    repository = MagicMock()
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(RankingCancelled):
        RankingEngine(repository).rank('discover', now=NOW, cancel_event=cancel_event)

    repository.fetch_candidates.assert_not_called()


def test_cancel_during_fetch_aborts_before_scoring():
    cancel_event = threading.Event()

    def fetch(query):
        cancel_event.set()
        return [make_item()]

    repository = MagicMock()
    repository.fetch_candidates.side_effect = fetch
    engine = RankingEngine(repository)
    engine.strategies[StrategyName.DISCOVER] = MagicMock(wraps=engine.strategies[StrategyName.DISCOVER])

    with pytest.raises(RankingCancelled):
        engine.rank('discover', now=NOW, cancel_event=cancel_event)

    engine.strategies[StrategyName.DISCOVER].score.assert_not_called()


# ---------------------------------------------------------------------------
# Part 4: end-to-end scenario
# ---------------------------------------------------------------------------

@pytest.fixture
def scenario_engine():
    p1 = make_item('P1', age_hours=1, like_count=2, author_id='a1')
    p2 = make_item('P2', age_hours=30, like_count=50, comment_count=10, author_id='a2')
    p3 = make_item('P3', age_hours=10, like_count=7, author_id='a3', status='draft')
    repository = InMemoryContentRepository([p1, p2, p3], saves={'U': [('P3', hours_ago(2))]})
    return RankingEngine(repository)


def test_scenario_discover_returns_published_only(scenario_engine):
    result = scenario_engine.rank('discover', user_id='U', now=NOW)
    assert sorted(_ids(result)) == ['P1', 'P2']


def test_scenario_popular_ranks_decayed_engagement(scenario_engine):
    result = scenario_engine.rank('popular', user_id='U', timeframe='7d', now=NOW)

    assert _ids(result) == ['P2', 'P1']
    p2, p1 = result.items
    assert p2.score == pytest.approx(80 * 0.5 ** (30 / 48))
    assert p1.score == pytest.approx(2 * 0.5 ** (1 / 48))


def test_scenario_popular_24h_window_drops_older_item(scenario_engine):
    result = scenario_engine.rank('popular', user_id='U', timeframe='24h', now=NOW)
    assert _ids(result) == ['P1']


def test_scenario_saved_is_empty(scenario_engine):
    result = scenario_engine.rank('saved', user_id='U', now=NOW)

    assert result.items == []
    assert result.has_next_page is False
    assert result.total_docs == 1


# ---------------------------------------------------------------------------
# Part 5: extreme and corrupt counters or coordinates
# ---------------------------------------------------------------------------

def test_counter_too_large_for_float_is_excluded():
    repository = InMemoryContentRepository([
        make_item('good', like_count=4),
        make_item('corrupt', like_count=10 ** 400),
    ])

    result = RankingEngine(repository).rank('discover', now=NOW)

    assert _ids(result) == ['good']
    assert result.excluded_ids == ['corrupt']


def test_infinite_engagement_does_not_flatten_other_items():
    repository = InMemoryContentRepository([
        make_item('good', like_count=400),
        make_item('huge', like_count=10 ** 308),
    ])

    result = RankingEngine(repository).rank('discover', now=NOW)

    assert _ids(result) == ['good']
    assert result.excluded_ids == ['huge']
    assert result.items[0].breakdown['engagement'] == pytest.approx(0.40)


@pytest.mark.parametrize("coordinates", [
    GeoPoint(float('nan'), 8.5),
    GeoPoint(47.3, float('inf')),
    GeoPoint(95.0, 8.5),
    GeoPoint(47.3, -200.0),
])
def test_unusable_coordinates_are_excluded(coordinates):
    repository = InMemoryContentRepository([
        make_item('good'),
        make_item('lost', coordinates=coordinates, has_location=True),
    ])

    result = RankingEngine(repository).rank('discover', user_location=GeoPoint(47.37, 8.54), now=NOW)

    assert _ids(result) == ['good']
    assert result.excluded_ids == ['lost']
