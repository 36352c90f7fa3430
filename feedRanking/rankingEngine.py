"""
Ranking orchestrator: validation, candidate fetch, scoring, sorting and pagination.
"""
import math
import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from feedRanking.config import (
    ALL_CATEGORIES, DEFAULT_CONFIG, RankingConfig, supported_timeframes
)
from feedRanking.contentFilters import partition_valid_items
from feedRanking.errors import (
    InvalidRequest, MalformedContentItem, RankingCancelled, RankingError,
    RepositoryUnavailable
)
from feedRanking.models import (
    CandidateQuery, ContentItem, GeoPoint, Page, RankingContext, ScoredItem
)
from feedRanking.strategies import RankingStrategy, StrategyName, build_strategies

logger = logging.getLogger(__name__)


def resolve_strategy(strategy: Union[str, StrategyName]) -> StrategyName:
    """Map a caller-supplied strategy name onto the enum."""
    if isinstance(strategy, StrategyName):
        return strategy
    try:
        return StrategyName(str(strategy).strip().lower())
    except ValueError:
        supported = ', '.join(name.value for name in StrategyName)
        raise InvalidRequest(f"Unsupported strategy '{strategy}' (expected one of: {supported})") from None


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_request(
    strategy: Union[str, StrategyName],
    page,
    page_size,
    timeframe: Optional[str] = None,
    category: Optional[str] = None,
    user_id: Optional[str] = None,
    config: RankingConfig = DEFAULT_CONFIG
) -> StrategyName:
    """
    Reject malformed requests before the repository is touched

    Returns:
        The resolved strategy name

    Raises:
        InvalidRequest: on any malformed or unsupported parameter
    """
    strategy_name = resolve_strategy(strategy)

    if not _is_int(page) or page < 1:
        raise InvalidRequest(f"page must be an integer >= 1, got {page!r}")

    if not _is_int(page_size) or not config.min_page_size <= page_size <= config.max_page_size:
        raise InvalidRequest(
            f"page_size must be an integer in [{config.min_page_size}, {config.max_page_size}], got {page_size!r}"
        )

    if category is not None and not isinstance(category, str):
        raise InvalidRequest(f"category must be a string, got {category!r}")

    if timeframe is not None:
        if strategy_name is not StrategyName.POPULAR:
            raise InvalidRequest(f"timeframe is only supported by the popular strategy, not {strategy_name.value}")
        if timeframe not in supported_timeframes():
            raise InvalidRequest(
                f"Unsupported timeframe '{timeframe}' (expected one of: {', '.join(supported_timeframes())})"
            )

    if strategy_name is StrategyName.SAVED:
        if not user_id:
            raise InvalidRequest("saved strategy requires a user id")
        if category and category.lower() != ALL_CATEGORIES:
            raise InvalidRequest("category filtering is not supported by the saved strategy")

    return strategy_name


def sort_scored_items(scored_items: Iterable[ScoredItem]) -> List[ScoredItem]:
    """
    Stable total order: score descending, then id ascending

    Assigns 1-based absolute ranks in place.
    """
    ordered = sorted(scored_items, key=lambda scored: (-scored.score, scored.item.id))
    for position, scored in enumerate(ordered, start=1):
        scored.rank = position
    return ordered


def paginate(ordered: Sequence, page: int, page_size: int) -> Tuple[list, bool]:
    """Slice ``[(page-1)*page_size, page*page_size)`` and report whether more remain."""
    start = (page - 1) * page_size
    end = page * page_size
    return list(ordered[start:end]), len(ordered) > end


class RankingEngine:
    """
    Multi-strategy feed ranking orchestrator

    Holds only the repository and an immutable config, so one engine can serve
    concurrent requests without locking.
    """

    def __init__(self, repository, config: RankingConfig = DEFAULT_CONFIG):
        self.repository = repository
        self.config = config
        self.strategies = build_strategies(config)

    def rank(
        self,
        strategy: Union[str, StrategyName],
        user_id: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        timeframe: Optional[str] = None,
        category: Optional[str] = None,
        followed_author_ids: Optional[Iterable[str]] = None,
        user_location: Optional[GeoPoint] = None,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> Page:
        """
        Rank one page of a feed

        Args:
            strategy: discover, popular, latest or saved
            user_id: Requesting user (required for saved)
            page: 1-based page number
            page_size: Items per page (defaults to config.default_page_size)
            timeframe: 24h, 7d or 30d (popular only)
            category: Optional category slug; 'all' means no filter
            followed_author_ids: Authors the requester follows (discover diversity)
            user_location: Requester location for the discover location bonus
            now: Reference time (defaults to current UTC time)
            cancel_event: Set by the caller to abort before scoring begins

        Returns:
            Page of ScoredItems with per-component breakdowns

        Raises:
            InvalidRequest: malformed request, raised before any repository call
            RepositoryUnavailable: candidate fetch failed
            RankingCancelled: cancel_event was set before scoring
        """
        if page_size is None:
            page_size = self.config.default_page_size

        strategy_name = validate_request(
            strategy, page, page_size, timeframe, category, user_id, self.config
        )
        ranking_strategy = self.strategies[strategy_name]

        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        context = RankingContext(
            now=now,
            user_id=user_id,
            followed_author_ids=frozenset(str(author) for author in (followed_author_ids or ())),
            timeframe=timeframe,
            category=category,
            user_location=user_location
        )

        _check_cancelled(cancel_event, strategy_name)
        candidates = self.fetch_candidates(ranking_strategy.build_query(context))

        valid_items, excluded_ids = partition_valid_items(candidates, self.config)
        eligible_items = [item for item in valid_items if ranking_strategy.filter(item, context)]

        filtered_count = len(valid_items) - len(eligible_items)
        if filtered_count > 0:
            logger.info(f"{strategy_name.value} filter: {len(valid_items)} -> {len(eligible_items)} items")

        _check_cancelled(cancel_event, strategy_name)
        scored_items = self.score_items(ranking_strategy, eligible_items, context, excluded_ids)
        ordered = sort_scored_items(scored_items)
        page_items, has_next_page = paginate(ordered, page, page_size)

        _log_ranking_summary(strategy_name, ordered, page_items, user_id)

        return Page(
            items=page_items,
            page=page,
            page_size=page_size,
            has_next_page=has_next_page,
            strategy=strategy_name.value,
            total_docs=len(candidates),
            total_ranked=len(ordered),
            excluded_ids=excluded_ids
        )

    def fetch_candidates(self, query: CandidateQuery) -> List[ContentItem]:
        """Fetch and materialize candidates, mapping any failure to RepositoryUnavailable."""
        try:
            return list(self.repository.fetch_candidates(query))
        except RankingError:
            raise
        except Exception as e:
            logger.error(f"Candidate fetch failed for {query}: {e}")
            raise RepositoryUnavailable(f"Content repository unavailable: {e}") from e

    def score_items(
        self,
        ranking_strategy: RankingStrategy,
        items: Sequence[ContentItem],
        context: RankingContext,
        excluded_ids: List[str]
    ) -> List[ScoredItem]:
        """
        Score every eligible item, excluding any single item that fails

        Excluded ids are appended to ``excluded_ids``.
        """
        normalization = ranking_strategy.prepare(items, context)
        scored_items = []

        for item in items:
            try:
                scored = ranking_strategy.score(item, context, normalization)
            except (MalformedContentItem, ValueError, TypeError, ArithmeticError) as e:
                logger.warning(f"Excluding item {item.id} from {ranking_strategy.name.value} scoring: {e}")
                excluded_ids.append(item.id)
                continue

            if not math.isfinite(scored.score) or scored.score < 0:
                logger.warning(f"Excluding item {item.id}: invalid score {scored.score!r}")
                excluded_ids.append(item.id)
                continue

            scored_items.append(scored)

        return scored_items


def _check_cancelled(cancel_event: Optional[threading.Event], strategy_name: StrategyName):
    if cancel_event is not None and cancel_event.is_set():
        logger.info(f"Ranking request for {strategy_name.value} cancelled before scoring")
        raise RankingCancelled(f"{strategy_name.value} ranking cancelled")


def _log_ranking_summary(strategy_name: StrategyName, ordered: List[ScoredItem],
                         page_items: List[ScoredItem], user_id: Optional[str]):
    logger.info(f"Ranked {len(ordered)} {strategy_name.value} items for user {user_id or 'anonymous'}, "
                f"serving {len(page_items)}")

    if strategy_name is StrategyName.POPULAR:
        viral_count = sum(1 for scored in ordered if scored.breakdown.get('viral_multiplier', 1.0) > 1.0)
        if viral_count > 0:
            viral_in_page = sum(1 for scored in page_items if scored.breakdown.get('viral_multiplier', 1.0) > 1.0)
            logger.info(f"Viral boost applied to {viral_count} items ({viral_in_page} on this page)")
        else:
            logger.info("No items qualified for viral boost")

    elif strategy_name is StrategyName.DISCOVER and ordered:
        new_voices = sum(1 for scored in page_items if scored.breakdown.get('diversity', 0.0) > 0)
        logger.info(f"Discover page: {new_voices}/{len(page_items)} items from unfollowed authors, "
                    f"top score {ordered[0].score:.3f}")


def rank_feed(repository, strategy: Union[str, StrategyName], config: RankingConfig = None, **kwargs) -> Page:
    """Convenience wrapper building a one-off RankingEngine."""
    engine = RankingEngine(repository, config or DEFAULT_CONFIG)
    return engine.rank(strategy, **kwargs)
