"""
Feed ranking core - multi-strategy ranking for the local-discovery feeds.

This package ranks pre-fetched content records into four feed variants
(Discover, Popular, Latest, Saved) and paginates the result deterministically.

Main modules:
- rankingEngine: request validation, orchestration and pagination
- strategies: Discover, Popular, Latest and Saved scoring strategies
- timeDecay: exponential decay, freshness sweet spot, diversity math
- contentFilters: item validation and hard inclusion gates
- models: content, context, scored item and page types
- errors: InvalidRequest, RepositoryUnavailable and friends
- config: constants, overridable RankingConfig and logging setup
"""

from feedRanking.config import DEFAULT_CONFIG, LoggingConfig, RankingConfig

from feedRanking.errors import (
    InvalidRequest,
    MalformedContentItem,
    RankingCancelled,
    RankingError,
    RepositoryUnavailable
)

from feedRanking.models import (
    CandidateQuery,
    ContentItem,
    GeoPoint,
    NormalizationContext,
    Page,
    RankingContext,
    ScoredItem
)

from feedRanking.strategies import (
    DiscoverStrategy,
    LatestStrategy,
    PopularStrategy,
    RankingStrategy,
    SavedStrategy,
    StrategyName,
    build_strategies
)

from feedRanking.rankingEngine import (
    RankingEngine,
    paginate,
    rank_feed,
    sort_scored_items,
    validate_request
)

__version__ = "1.0.0"

# Public API
__all__ = [
    # Orchestration
    'RankingEngine',
    'rank_feed',
    'validate_request',
    'sort_scored_items',
    'paginate',

    # Strategies
    'StrategyName',
    'RankingStrategy',
    'DiscoverStrategy',
    'PopularStrategy',
    'LatestStrategy',
    'SavedStrategy',
    'build_strategies',

    # Models
    'CandidateQuery',
    'ContentItem',
    'GeoPoint',
    'NormalizationContext',
    'Page',
    'RankingContext',
    'ScoredItem',

    # Errors
    'RankingError',
    'InvalidRequest',
    'RepositoryUnavailable',
    'RankingCancelled',
    'MalformedContentItem',

    # Configuration
    'RankingConfig',
    'DEFAULT_CONFIG',
    'LoggingConfig',
]
