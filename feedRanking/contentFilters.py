"""
Content validation and hard inclusion filters for the ranking core.
"""
import math
import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from feedRanking.config import ALL_CATEGORIES, DEFAULT_CONFIG, RankingConfig
from feedRanking.errors import MalformedContentItem
from feedRanking.models import COUNTER_FIELDS, ContentItem

logger = logging.getLogger(__name__)


def validate_item(item: ContentItem, config: RankingConfig = DEFAULT_CONFIG):
    """
    Check that a content item can be scored safely

    Args:
        item: Content item as returned by the repository
        config: Ranking config whose engagement weights must stay finite

    Raises:
        MalformedContentItem: describing the first problem found
    """
    for name in COUNTER_FIELDS:
        value = getattr(item, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedContentItem(item.id, f"{name} is not an integer: {value!r}")
        if value < 0:
            raise MalformedContentItem(item.id, f"{name} is negative: {value}")

    if not _engagement_is_finite(item, config):
        raise MalformedContentItem(item.id, "engagement counters overflow the weighted engagement")

    if isinstance(item.text_length, bool) or not isinstance(item.text_length, int) or item.text_length < 0:
        raise MalformedContentItem(item.id, f"invalid text_length: {item.text_length!r}")

    for name in ('created_at', 'saved_at'):
        value = getattr(item, name)
        if value is None and name == 'saved_at':
            continue
        if not isinstance(value, datetime):
            raise MalformedContentItem(item.id, f"{name} is not a datetime: {value!r}")
        if value.tzinfo is None:
            raise MalformedContentItem(item.id, f"{name} has no timezone")

    if item.location_relevance is not None:
        relevance = item.location_relevance
        if not isinstance(relevance, (int, float)) or not math.isfinite(relevance) or not 0 <= relevance <= 1:
            raise MalformedContentItem(item.id, f"location_relevance out of range: {relevance!r}")

    if item.coordinates is not None:
        latitude = item.coordinates.latitude
        longitude = item.coordinates.longitude
        if not (_is_finite_number(latitude) and _is_finite_number(longitude)
                and -90 <= latitude <= 90 and -180 <= longitude <= 180):
            raise MalformedContentItem(item.id, f"coordinates out of range: {item.coordinates!r}")


def _is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _engagement_is_finite(item: ContentItem, config: RankingConfig) -> bool:
    weight_sets = (
        (config.discover_like_weight, config.discover_comment_weight,
         config.discover_share_weight, config.discover_save_weight),
        (config.popular_like_weight, config.popular_comment_weight,
         config.popular_share_weight, config.popular_save_weight),
    )
    counters = [getattr(item, name) for name in COUNTER_FIELDS]
    try:
        return all(
            math.isfinite(sum(count * weight for count, weight in zip(counters, weights)))
            for weights in weight_sets
        )
    except OverflowError:
        return False


def partition_valid_items(items: Sequence[ContentItem],
                          config: RankingConfig = DEFAULT_CONFIG) -> Tuple[List[ContentItem], List[str]]:
    """
    Split candidates into scoreable items and excluded ids

    One corrupt record must not break a whole feed request, so malformed items
    are dropped with a diagnostic instead of raising.
    """
    valid_items = []
    excluded_ids = []

    for item in items:
        try:
            validate_item(item, config)
        except MalformedContentItem as e:
            logger.warning(f"Excluding content item from ranking: {e.reason} (id={e.item_id})")
            excluded_ids.append(str(e.item_id))
            continue
        valid_items.append(item)

    if excluded_ids:
        logger.info(f"Validation: excluded {len(excluded_ids)} malformed items from {len(items)} candidates")

    return valid_items, excluded_ids


def is_category_filter(category: Optional[str]) -> bool:
    return bool(category) and category.lower() != ALL_CATEGORIES


def matches_category(item: ContentItem, category: Optional[str]) -> bool:
    if not is_category_filter(category):
        return True
    return category.lower() in item.categories


def within_timeframe(item: ContentItem, now: datetime, window_hours: float) -> bool:
    return item.age_hours(now) <= window_hours


def passes_latest_gate(item: ContentItem, now: datetime, config: RankingConfig = DEFAULT_CONFIG) -> bool:
    """
    Hard quality gate for the Latest feed

    Content must be longer than ``latest_min_text_length`` characters and either
    have at least one like or comment, or be younger than the recency gate.
    """
    if item.text_length <= config.latest_min_text_length:
        return False

    has_engagement = (item.like_count + item.comment_count) >= 1
    is_recent = item.age_hours(now) < config.latest_recency_gate_hours
    return has_engagement or is_recent
