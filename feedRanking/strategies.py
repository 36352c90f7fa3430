"""
Scoring strategies for the four feed variants.

Each strategy is a plain class exposing the same capabilities:

- ``build_query(context)``: coarse candidate filter for the repository
- ``prepare(items, context)``: corpus-relative normalization values
- ``filter(item, context)``: hard inclusion decision
- ``score(item, context, normalization)``: ScoredItem with a breakdown

The orchestrator picks one by ``StrategyName`` and never relies on inheritance.
"""
import math
from enum import Enum
from typing import Dict, Protocol, Sequence

from feedRanking.config import DEFAULT_CONFIG, RankingConfig, timeframe_hours
from feedRanking.contentFilters import (
    is_category_filter, matches_category, passes_latest_gate, within_timeframe
)
from feedRanking.errors import MalformedContentItem
from feedRanking.models import (
    CandidateQuery, ContentItem, NormalizationContext, RankingContext, ScoredItem
)
from feedRanking.timeDecay import (
    distance_relevance, diversity_bonus, engagement_reference, exponential_decay,
    freshness_curve, haversine_km, interactions_per_hour, normalize_engagement
)


class StrategyName(str, Enum):
    DISCOVER = 'discover'
    POPULAR = 'popular'
    LATEST = 'latest'
    SAVED = 'saved'


class RankingStrategy(Protocol):
    name: StrategyName

    def build_query(self, context: RankingContext) -> CandidateQuery:
        ...

    def prepare(self, items: Sequence[ContentItem], context: RankingContext) -> NormalizationContext:
        ...

    def filter(self, item: ContentItem, context: RankingContext) -> bool:
        ...

    def score(self, item: ContentItem, context: RankingContext,
              normalization: NormalizationContext) -> ScoredItem:
        ...


def _published_query(context: RankingContext) -> CandidateQuery:
    category = context.category if is_category_filter(context.category) else None
    return CandidateQuery(category=category)


class DiscoverStrategy:
    """
    Personalized, novelty-balanced feed

    Weighted sum of engagement, freshness, diversity and quality, each
    normalized to [0, 1], plus capped trending and location bonuses. Nothing
    published is excluded; weak items are only down-ranked.
    """

    name = StrategyName.DISCOVER

    def __init__(self, config: RankingConfig = DEFAULT_CONFIG):
        self.config = config

    def build_query(self, context: RankingContext) -> CandidateQuery:
        return _published_query(context)

    def raw_engagement(self, item: ContentItem) -> float:
        config = self.config
        return (item.like_count * config.discover_like_weight
                + item.comment_count * config.discover_comment_weight
                + item.share_count * config.discover_share_weight
                + item.save_count * config.discover_save_weight)

    def prepare(self, items: Sequence[ContentItem], context: RankingContext) -> NormalizationContext:
        raw_values = []
        for item in items:
            try:
                raw_values.append(self.raw_engagement(item))
            except (TypeError, OverflowError):
                # Left out of the reference; score() rejects the same item
                continue

        reference = engagement_reference(raw_values, self.config.engagement_reference_floor)
        return NormalizationContext(engagement_reference=reference)

    def filter(self, item: ContentItem, context: RankingContext) -> bool:
        return item.is_published and matches_category(item, context.category)

    def quality_fraction(self, item: ContentItem) -> float:
        config = self.config
        fraction = 0.0
        if item.has_image:
            fraction += config.quality_image_bonus
        if item.has_location:
            fraction += config.quality_location_bonus
        if item.has_review:
            fraction += config.quality_review_bonus
        if item.text_length > config.quality_text_length_threshold:
            fraction += config.quality_text_length_bonus
        return min(1.0, fraction)

    def trending_bonus(self, item: ContentItem, age_hours: float) -> float:
        config = self.config
        if age_hours > config.trending_window_hours:
            return 0.0
        rate = interactions_per_hour(item.total_interactions, age_hours, config.min_age_hours)
        return min(config.trending_bonus_cap, rate * config.trending_bonus_per_interaction_hour)

    def location_bonus(self, item: ContentItem, context: RankingContext) -> float:
        if context.user_location is None:
            return 0.0

        relevance = item.location_relevance
        if relevance is None and item.coordinates is not None:
            distance = haversine_km(context.user_location, item.coordinates)
            relevance = distance_relevance(distance, self.config.location_falloff_km)
        if relevance is None or not math.isfinite(relevance):
            return 0.0
        return self.config.location_bonus_cap * max(0.0, min(1.0, relevance))

    def score(self, item: ContentItem, context: RankingContext,
              normalization: NormalizationContext) -> ScoredItem:
        config = self.config
        age_hours = item.age_hours(context.now)
        raw_engagement = self.raw_engagement(item)
        if not math.isfinite(raw_engagement):
            raise MalformedContentItem(item.id, f"non-finite engagement: {raw_engagement!r}")

        breakdown = {
            'engagement': config.discover_engagement_weight
                          * normalize_engagement(raw_engagement, normalization.engagement_reference),
            'freshness': config.discover_freshness_weight * freshness_curve(age_hours, config),
            'diversity': config.discover_diversity_weight
                         * diversity_bonus(item.author_id, context.followed_author_ids, context.user_id),
            'quality': config.discover_quality_weight * self.quality_fraction(item),
            'trending': self.trending_bonus(item, age_hours),
            'location': self.location_bonus(item, context),
        }
        score = sum(breakdown.values())
        breakdown['raw_engagement'] = raw_engagement
        return ScoredItem(item=item, score=score, breakdown=breakdown)


class PopularStrategy:
    """
    Virality-weighted ranking inside a 24h/7d/30d window

    Weighted engagement decays exponentially with age; items whose interaction
    rate is strictly above the viral threshold get a multiplier.
    """

    name = StrategyName.POPULAR

    def __init__(self, config: RankingConfig = DEFAULT_CONFIG):
        self.config = config

    def build_query(self, context: RankingContext) -> CandidateQuery:
        return _published_query(context)

    def prepare(self, items: Sequence[ContentItem], context: RankingContext) -> NormalizationContext:
        return NormalizationContext()

    def window_hours(self, context: RankingContext) -> float:
        return timeframe_hours(context.timeframe or self.config.default_timeframe)

    def filter(self, item: ContentItem, context: RankingContext) -> bool:
        return (item.is_published
                and matches_category(item, context.category)
                and within_timeframe(item, context.now, self.window_hours(context)))

    def weighted_engagement(self, item: ContentItem) -> float:
        config = self.config
        return (item.like_count * config.popular_like_weight
                + item.comment_count * config.popular_comment_weight
                + item.share_count * config.popular_share_weight
                + item.save_count * config.popular_save_weight)

    def is_viral(self, item: ContentItem, age_hours: float) -> bool:
        rate = interactions_per_hour(item.total_interactions, age_hours, self.config.min_age_hours)
        return rate > self.config.viral_interactions_per_hour

    def score(self, item: ContentItem, context: RankingContext,
              normalization: NormalizationContext) -> ScoredItem:
        config = self.config
        age_hours = item.age_hours(context.now)
        weighted = self.weighted_engagement(item)
        decay = exponential_decay(age_hours, config.popular_half_life_hours)
        rate = interactions_per_hour(item.total_interactions, age_hours, config.min_age_hours)
        multiplier = config.viral_multiplier if self.is_viral(item, age_hours) else 1.0

        breakdown = {
            'weighted_engagement': weighted,
            'decay': decay,
            'interaction_rate': rate,
            'viral_multiplier': multiplier,
        }
        return ScoredItem(item=item, score=weighted * decay * multiplier, breakdown=breakdown)


class LatestStrategy:
    """Chronological feed behind a hard content-quality gate."""

    name = StrategyName.LATEST

    def __init__(self, config: RankingConfig = DEFAULT_CONFIG):
        self.config = config

    def build_query(self, context: RankingContext) -> CandidateQuery:
        return _published_query(context)

    def prepare(self, items: Sequence[ContentItem], context: RankingContext) -> NormalizationContext:
        return NormalizationContext()

    def filter(self, item: ContentItem, context: RankingContext) -> bool:
        return (item.is_published
                and matches_category(item, context.category)
                and passes_latest_gate(item, context.now, self.config))

    def score(self, item: ContentItem, context: RankingContext,
              normalization: NormalizationContext) -> ScoredItem:
        created = max(0.0, item.created_at.timestamp())
        breakdown = {
            'created_at': created,
            'age_hours': item.age_hours(context.now),
        }
        return ScoredItem(item=item, score=created, breakdown=breakdown)


class SavedStrategy:
    """A user's saved items, most recently saved first."""

    name = StrategyName.SAVED

    def __init__(self, config: RankingConfig = DEFAULT_CONFIG):
        self.config = config

    def build_query(self, context: RankingContext) -> CandidateQuery:
        return CandidateQuery(status=None, saved_by_user=context.user_id)

    def prepare(self, items: Sequence[ContentItem], context: RankingContext) -> NormalizationContext:
        return NormalizationContext()

    def filter(self, item: ContentItem, context: RankingContext) -> bool:
        # Saved sets keep references to items that were unpublished later
        return item.is_published

    def score(self, item: ContentItem, context: RankingContext,
              normalization: NormalizationContext) -> ScoredItem:
        if item.saved_at is None:
            raise MalformedContentItem(item.id, "saved item has no saved_at")
        saved = max(0.0, item.saved_at.timestamp())
        breakdown = {
            'saved_at': saved,
            'created_at': max(0.0, item.created_at.timestamp()),
        }
        return ScoredItem(item=item, score=saved, breakdown=breakdown)


def build_strategies(config: RankingConfig = DEFAULT_CONFIG) -> Dict[StrategyName, RankingStrategy]:
    """Strategy registry keyed by name, all sharing one config."""
    return {
        StrategyName.DISCOVER: DiscoverStrategy(config),
        StrategyName.POPULAR: PopularStrategy(config),
        StrategyName.LATEST: LatestStrategy(config),
        StrategyName.SAVED: SavedStrategy(config),
    }
