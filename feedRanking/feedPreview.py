"""
Preview the four feeds for one user against a corpus file or a Redis repository.
"""
import os
import sys
import json
import argparse
import logging
from typing import Dict, List, Optional

from dateutil import parser as date_parser
from dotenv import load_dotenv

from client.contentRepository import InMemoryContentRepository, load_items
from feedRanking.config import LoggingConfig, RankingConfig, supported_timeframes
from feedRanking.errors import RankingError
from feedRanking.models import GeoPoint
from feedRanking.rankingEngine import RankingEngine
from feedRanking.strategies import StrategyName

logger = logging.getLogger(__name__)


def load_corpus(path: str) -> Dict:
    """
    Load a JSON corpus file

    Expected shape::

        {
            "items": [{"id": "p1", "authorId": "u1", "createdAt": "...", ...}],
            "saves": {"u9": [{"itemId": "p1", "savedAt": "..."}]},
            "following": {"u9": ["u1", "u2"]}
        }
    """
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def build_memory_repository(corpus: Dict) -> InMemoryContentRepository:
    items, skipped = load_items(corpus.get('items', []))
    if skipped:
        logger.warning(f"Skipped {len(skipped)} unparseable corpus records")

    repository = InMemoryContentRepository(items)
    for user_id, saves in corpus.get('saves', {}).items():
        for save in saves:
            repository.record_save(user_id, str(save['itemId']), date_parser.parse(save['savedAt']))

    logger.info(f"Loaded {len(items)} items into in-memory repository")
    return repository


def seed_redis(redis_repository, corpus: Dict):
    """Copy a corpus file into Redis using the collaborator write helpers."""
    items, _ = load_items(corpus.get('items', []))
    stored = sum(1 for item in items if redis_repository.store_content_item(item))
    for user_id, saves in corpus.get('saves', {}).items():
        for save in saves:
            redis_repository.record_save(user_id, str(save['itemId']), date_parser.parse(save['savedAt']))
    logger.info(f"Seeded Redis with {stored}/{len(items)} items")


def preview_feeds(
    engine: RankingEngine,
    strategies: List[StrategyName],
    user_id: Optional[str],
    page: int,
    page_size: int,
    timeframe: Optional[str],
    category: Optional[str],
    followed_author_ids: List[str],
    user_location: Optional[GeoPoint],
    now=None
) -> Dict[str, Dict]:
    """Rank one page per strategy, reporting per-strategy errors instead of aborting."""
    results = {}
    for strategy in strategies:
        if strategy is StrategyName.SAVED and not user_id:
            logger.info("Skipping saved feed preview: no user given")
            continue
        try:
            result = engine.rank(
                strategy,
                user_id=user_id,
                page=page,
                page_size=page_size,
                timeframe=timeframe if strategy is StrategyName.POPULAR else None,
                category=category if strategy is not StrategyName.SAVED else None,
                followed_author_ids=followed_author_ids,
                user_location=user_location,
                now=now
            )
            results[strategy.value] = result.to_dict()
            logger.info(f"{strategy.value} feed: {len(result.items)} items")
        except RankingError as e:
            logger.error(f"{strategy.value} feed failed: {e}")
            results[strategy.value] = {'error': type(e).__name__, 'message': str(e), 'retryable': e.retryable}
    return results


def main(argv: List[str] = None) -> int:
    """Preview entry point"""
    load_dotenv()

    parser = argparse.ArgumentParser(description='Feed ranking preview')
    parser.add_argument('--corpus', help='JSON corpus file')
    parser.add_argument('--redis-url', default=os.getenv('REDIS_URL'), help='Read candidates from Redis instead')
    parser.add_argument('--seed-redis', action='store_true', help='Copy --corpus into Redis before ranking')
    parser.add_argument('--strategy', choices=[name.value for name in StrategyName], action='append',
                        help='Strategy to preview (repeatable, default: all)')
    parser.add_argument('--user', help='Requesting user id')
    parser.add_argument('--page', type=int, default=1)
    parser.add_argument('--page-size', type=int, default=None)
    parser.add_argument('--timeframe', choices=supported_timeframes(), default=None)
    parser.add_argument('--category', default=None)
    parser.add_argument('--now', default=None, help='Reference time (ISO-8601)')
    parser.add_argument('--lat', type=float, default=None)
    parser.add_argument('--lng', type=float, default=None)
    args = parser.parse_args(argv)

    LoggingConfig.configure_logging()

    if not args.corpus and not args.redis_url:
        parser.error('one of --corpus or --redis-url is required')

    corpus = load_corpus(args.corpus) if args.corpus else {}

    if args.redis_url:
        from client.redis import Client as RedisClient
        repository = RedisClient(args.redis_url)
        if args.seed_redis and corpus:
            seed_redis(repository, corpus)
    else:
        repository = build_memory_repository(corpus)

    config = RankingConfig.from_env()
    engine = RankingEngine(repository, config)

    strategies = [StrategyName(name) for name in args.strategy] if args.strategy else list(StrategyName)
    followed = corpus.get('following', {}).get(args.user, []) if args.user else []
    user_location = GeoPoint(args.lat, args.lng) if args.lat is not None and args.lng is not None else None
    now = date_parser.parse(args.now) if args.now else None

    results = preview_feeds(
        engine, strategies, args.user, args.page, args.page_size or config.default_page_size,
        args.timeframe, args.category, followed, user_location, now
    )
    print(json.dumps(results, indent=2, default=str))

    return 1 if any('error' in result for result in results.values()) else 0


if __name__ == "__main__":
    sys.exit(main())
