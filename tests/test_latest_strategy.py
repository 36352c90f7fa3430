# tests/test_latest_strategy.py
"""
Latest feed: hard content gate, category narrowing and chronological keys.
"""
import pytest

from factories import NOW, make_context, make_item
from feedRanking.contentFilters import passes_latest_gate
from feedRanking.strategies import DiscoverStrategy, LatestStrategy


def test_short_stale_unengaged_item_is_excluded_but_still_discoverable():
    item = make_item(text_length=5, age_hours=30)
    context = make_context()

    assert LatestStrategy().filter(item, context) is False
    assert DiscoverStrategy().filter(item, context) is True


@pytest.mark.parametrize("overrides, expected", [
    ({'text_length': 11, 'age_hours': 30}, False),
    ({'text_length': 11, 'age_hours': 30, 'like_count': 1}, True),
    ({'text_length': 11, 'age_hours': 30, 'comment_count': 1}, True),
    ({'text_length': 11, 'age_hours': 30, 'share_count': 5, 'save_count': 5}, False),
    ({'text_length': 11, 'age_hours': 2}, True),
    ({'text_length': 10, 'age_hours': 2}, False),
    ({'text_length': 10, 'age_hours': 2, 'like_count': 9}, False),
])
def test_latest_gate(overrides, expected):
    assert passes_latest_gate(make_item(**overrides), NOW) is expected


def test_category_narrows_candidates():
    strategy = LatestStrategy()
    food = make_item('food', categories=('food',))
    art = make_item('art', categories=('art',))
    context = make_context(category='Food')

    assert strategy.filter(food, context) is True
    assert strategy.filter(art, context) is False


def test_all_category_means_no_filter():
    strategy = LatestStrategy()
    assert strategy.filter(make_item(categories=('art',)), make_context(category='all')) is True


def test_newer_items_sort_first():
    strategy = LatestStrategy()
    context = make_context()
    newer = make_item('newer', age_hours=1)
    older = make_item('older', age_hours=5)

    normalization = strategy.prepare([newer, older], context)
    newer_scored = strategy.score(newer, context, normalization)
    older_scored = strategy.score(older, context, normalization)

    assert newer_scored.score > older_scored.score
    assert newer_scored.breakdown['created_at'] == pytest.approx(newer.created_at.timestamp())
    assert older_scored.breakdown['age_hours'] == pytest.approx(5.0)
