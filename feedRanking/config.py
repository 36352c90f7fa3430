"""
Configuration and constants for the feed ranking core.
"""
import os
import logging
from dataclasses import dataclass, fields, replace
from typing import Dict, Tuple

from dotenv import load_dotenv

# Time-based constants
MIN_AGE_HOURS = 1.0 / 60.0  # clamp for rate computations (one minute)
FRESHNESS_SWEET_SPOT_START_HOURS = 2.0
FRESHNESS_SWEET_SPOT_END_HOURS = 24.0
FRESHNESS_FADE_HOURS = 168.0  # freshness reaches zero after a week
FRESHNESS_NEW_FLOOR = 0.5
POPULAR_HALF_LIFE_HOURS = 48.0
LATEST_RECENCY_GATE_HOURS = 24.0
TRENDING_WINDOW_HOURS = 24.0

# Popular timeframes
TIMEFRAME_HOURS: Dict[str, float] = {
    '24h': 24.0,
    '7d': 24.0 * 7,
    '30d': 24.0 * 30,
}
DEFAULT_TIMEFRAME = '7d'

# Engagement thresholds
VIRAL_INTERACTIONS_PER_HOUR = 10.0
VIRAL_MULTIPLIER = 1.5
DISCOVER_ENGAGEMENT_REFERENCE_FLOOR = 100.0

# Bonuses
TRENDING_BONUS_CAP = 0.10
TRENDING_BONUS_PER_INTERACTION_HOUR = 0.01
LOCATION_BONUS_CAP = 0.10
LOCATION_FALLOFF_KM = 25.0

# Content gates
LATEST_MIN_TEXT_LENGTH = 10
QUALITY_TEXT_LENGTH_THRESHOLD = 50

# Pagination
DEFAULT_PAGE_SIZE = 20
MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100

# Category value meaning "no category filter"
ALL_CATEGORIES = 'all'

PUBLISHED_STATUS = 'published'


class LoggingConfig:
    """Logging configuration for the ranking core."""

    LEVEL = logging.INFO
    FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @staticmethod
    def configure_logging():
        """Configure logging for the ranking core."""
        logging.basicConfig(
            level=LoggingConfig.LEVEL,
            format=LoggingConfig.FORMAT
        )


class DiscoverWeights:
    """Component weights for the Discover score (sum to 1.0)."""

    ENGAGEMENT = 0.40
    FRESHNESS = 0.25
    DIVERSITY = 0.20
    QUALITY = 0.15


class EngagementWeights:
    """Per-interaction weights for Discover engagement."""

    LIKES = 3.0
    COMMENTS = 5.0
    SHARES = 7.0
    SAVES = 4.0


class PopularWeights:
    """Per-interaction weights for Popular scoring."""

    LIKES = 1.0
    COMMENTS = 3.0
    SHARES = 5.0
    SAVES = 2.5


class QualityBonuses:
    """Fractional quality contributions (sum to 1.0)."""

    IMAGE = 0.35
    LOCATION = 0.25
    REVIEW = 0.25
    TEXT_LENGTH = 0.15


@dataclass(frozen=True)
class RankingConfig:
    """
    Tunable ranking parameters.

    Defaults mirror the module constants. Use ``dataclasses.replace`` or
    ``RankingConfig.from_env`` to override individual values without touching
    the scoring code.
    """

    min_age_hours: float = MIN_AGE_HOURS

    # Discover
    discover_engagement_weight: float = DiscoverWeights.ENGAGEMENT
    discover_freshness_weight: float = DiscoverWeights.FRESHNESS
    discover_diversity_weight: float = DiscoverWeights.DIVERSITY
    discover_quality_weight: float = DiscoverWeights.QUALITY
    discover_like_weight: float = EngagementWeights.LIKES
    discover_comment_weight: float = EngagementWeights.COMMENTS
    discover_share_weight: float = EngagementWeights.SHARES
    discover_save_weight: float = EngagementWeights.SAVES
    engagement_reference_floor: float = DISCOVER_ENGAGEMENT_REFERENCE_FLOOR
    freshness_sweet_spot_start_hours: float = FRESHNESS_SWEET_SPOT_START_HOURS
    freshness_sweet_spot_end_hours: float = FRESHNESS_SWEET_SPOT_END_HOURS
    freshness_fade_hours: float = FRESHNESS_FADE_HOURS
    freshness_new_floor: float = FRESHNESS_NEW_FLOOR
    quality_image_bonus: float = QualityBonuses.IMAGE
    quality_location_bonus: float = QualityBonuses.LOCATION
    quality_review_bonus: float = QualityBonuses.REVIEW
    quality_text_length_bonus: float = QualityBonuses.TEXT_LENGTH
    quality_text_length_threshold: int = QUALITY_TEXT_LENGTH_THRESHOLD
    trending_window_hours: float = TRENDING_WINDOW_HOURS
    trending_bonus_cap: float = TRENDING_BONUS_CAP
    trending_bonus_per_interaction_hour: float = TRENDING_BONUS_PER_INTERACTION_HOUR
    location_bonus_cap: float = LOCATION_BONUS_CAP
    location_falloff_km: float = LOCATION_FALLOFF_KM

    # Popular
    popular_like_weight: float = PopularWeights.LIKES
    popular_comment_weight: float = PopularWeights.COMMENTS
    popular_share_weight: float = PopularWeights.SHARES
    popular_save_weight: float = PopularWeights.SAVES
    popular_half_life_hours: float = POPULAR_HALF_LIFE_HOURS
    viral_interactions_per_hour: float = VIRAL_INTERACTIONS_PER_HOUR
    viral_multiplier: float = VIRAL_MULTIPLIER
    default_timeframe: str = DEFAULT_TIMEFRAME

    # Latest
    latest_min_text_length: int = LATEST_MIN_TEXT_LENGTH
    latest_recency_gate_hours: float = LATEST_RECENCY_GATE_HOURS

    # Pagination
    default_page_size: int = DEFAULT_PAGE_SIZE
    min_page_size: int = MIN_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE

    @classmethod
    def from_env(cls, prefix: str = 'FEED_', dotenv_path: str = None) -> 'RankingConfig':
        """
        Build a config from environment variables

        Each field can be overridden by ``<prefix><FIELD_NAME>`` in upper case,
        e.g. ``FEED_POPULAR_HALF_LIFE_HOURS=36``. A ``.env`` file is loaded first
        when present.

        Raises:
            ValueError: if a variable cannot be converted to the field type
        """
        load_dotenv(dotenv_path)

        overrides = {}
        for field in fields(cls):
            env_name = f"{prefix}{field.name.upper()}"
            raw_value = os.getenv(env_name)
            if raw_value is None or raw_value == '':
                continue
            try:
                overrides[field.name] = _coerce(raw_value, field.type)
            except ValueError as e:
                raise ValueError(f"Invalid value for {env_name}: {raw_value!r}") from e

        config = cls(**overrides)
        config.validate()
        if overrides:
            logging.getLogger(__name__).info(f"Ranking config overrides from environment: {sorted(overrides)}")
        return config

    def validate(self):
        """Reject configs that would break score or pagination invariants."""
        if self.default_timeframe not in TIMEFRAME_HOURS:
            raise ValueError(f"Unknown default timeframe: {self.default_timeframe}")
        if not 1 <= self.min_page_size <= self.default_page_size <= self.max_page_size:
            raise ValueError("Page size bounds must satisfy 1 <= min <= default <= max")
        if self.min_age_hours <= 0 or self.popular_half_life_hours <= 0:
            raise ValueError("Age clamp and half-life must be positive")
        if not (self.freshness_sweet_spot_start_hours
                <= self.freshness_sweet_spot_end_hours
                < self.freshness_fade_hours):
            raise ValueError("Freshness window must satisfy start <= end < fade")

    def with_overrides(self, **overrides) -> 'RankingConfig':
        config = replace(self, **overrides)
        config.validate()
        return config


def _coerce(raw_value: str, field_type) -> object:
    type_name = field_type if isinstance(field_type, str) else field_type.__name__
    if type_name == 'int':
        return int(raw_value)
    if type_name == 'float':
        return float(raw_value)
    return raw_value


def supported_timeframes() -> Tuple[str, ...]:
    return tuple(TIMEFRAME_HOURS)


def timeframe_hours(timeframe: str) -> float:
    """Window length in hours for a Popular timeframe key (24h, 7d or 30d)."""
    return TIMEFRAME_HOURS[timeframe]


DEFAULT_CONFIG = RankingConfig()
