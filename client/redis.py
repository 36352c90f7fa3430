import redis
import json
import logging
import os
from dataclasses import replace
from datetime import datetime, timezone
from typing import List

from client.contentRepository import matches_query
from feedRanking.errors import MalformedContentItem, RepositoryUnavailable
from feedRanking.models import CandidateQuery, ContentItem


class Client:
    """
    Redis-backed content repository

    Key layout:
        content:{id}                 JSON record (ContentItem.to_record shape)
        content:all                  set of every stored id
        content:status:{status}      set of ids per publish status
        content:statuses             set of known statuses
        content:category:{slug}      set of ids per category
        saved:{user_id}              sorted set of saved ids scored by save epoch
    """

    def __init__(self, redis_url: str = None, client=None, socket_timeout: float = 5.0):
        """
        Initialize Redis client for content candidates

        Args:
            redis_url: Redis connection URL (from environment)
            client: Pre-built redis client, mainly for tests
            socket_timeout: Seconds before a Redis call is treated as unavailable
        """
        self.logger = logging.getLogger(self.__class__.__name__)

        if client is not None:
            self.client = client
            return

        if not redis_url:
            redis_url = os.getenv('REDIS_URL', 'redis://localhost:6379')

        try:
            self.client = redis.from_url(redis_url, decode_responses=True, socket_timeout=socket_timeout)
            # Test connection
            self.client.ping()
            self.logger.info("Redis connection established")
        except redis.exceptions.RedisError as e:
            self.logger.error(f"Failed to connect to Redis: {e}")
            raise RepositoryUnavailable(f"Redis unavailable: {e}") from e

    def fetch_candidates(self, query: CandidateQuery) -> List[ContentItem]:
        """
        Fetch candidate content items matching a coarse filter

        Args:
            query: Status, category, author and saved-by-user filter

        Returns:
            Unranked items; saved-set results carry saved_at and come newest save first

        Raises:
            RepositoryUnavailable: on any Redis failure or timeout
        """
        try:
            saved_times = {}
            if query.saved_by_user is not None:
                saved_pairs = self.client.zrevrange(f"saved:{query.saved_by_user}", 0, -1, withscores=True)
                item_ids = [item_id for item_id, _ in saved_pairs]
                saved_times = {item_id: score for item_id, score in saved_pairs}
            else:
                item_ids = sorted(self._candidate_ids(query))

            records = self.client.mget([f"content:{item_id}" for item_id in item_ids]) if item_ids else []

        except redis.exceptions.RedisError as e:
            self.logger.error(f"Failed to fetch candidates for {query}: {e}")
            raise RepositoryUnavailable(f"Redis candidate fetch failed: {e}") from e

        items = []
        skipped_count = 0
        for item_id, data in zip(item_ids, records):
            if not data:
                self.logger.debug(f"Content record {item_id} is missing, skipping")
                continue

            try:
                item = ContentItem.from_record(json.loads(data))
            except (json.JSONDecodeError, MalformedContentItem) as e:
                skipped_count += 1
                self.logger.warning(f"Skipping unparseable content record {item_id}: {e}")
                continue

            if item_id in saved_times:
                item = replace(item, saved_at=datetime.fromtimestamp(saved_times[item_id], tz=timezone.utc))

            if matches_query(item, query):
                items.append(item)

        if skipped_count > 0:
            self.logger.info(f"Skipped {skipped_count} unparseable records from {len(item_ids)} candidates")

        self.logger.info(f"Retrieved {len(items)} candidates for {query}")
        return items

    def _candidate_ids(self, query: CandidateQuery) -> set:
        keys = [f"content:status:{query.status}" if query.status is not None else "content:all"]
        if query.category:
            keys.append(f"content:category:{query.category.lower()}")

        if len(keys) == 1:
            return set(self.client.smembers(keys[0]))
        return set(self.client.sinter(keys))

    def store_content_item(self, item: ContentItem) -> bool:
        """
        Store or replace a content record and its index memberships

        Collaborator services own writes; the ranking core only reads.
        """
        try:
            known_statuses = self.client.smembers("content:statuses") or set()

            pipeline = self.client.pipeline()
            pipeline.set(f"content:{item.id}", json.dumps(item.to_record()))
            pipeline.sadd("content:all", item.id)
            for status in known_statuses:
                if status != item.status:
                    pipeline.srem(f"content:status:{status}", item.id)
            pipeline.sadd("content:statuses", item.status)
            pipeline.sadd(f"content:status:{item.status}", item.id)
            for category in item.categories:
                pipeline.sadd(f"content:category:{category}", item.id)
            pipeline.execute()

            self.logger.debug(f"Stored content item {item.id} ({item.status})")
            return True
        except redis.exceptions.RedisError as e:
            self.logger.error(f"Failed to store content item {item.id}: {e}")
            return False

    def record_save(self, user_id: str, item_id: str, saved_at: datetime) -> bool:
        """Add an item to a user's saved set, scored by save time."""
        try:
            self.client.zadd(f"saved:{user_id}", {item_id: saved_at.timestamp()})
            self.logger.debug(f"Recorded save of {item_id} for user {user_id}")
            return True
        except redis.exceptions.RedisError as e:
            self.logger.error(f"Failed to record save of {item_id} for user {user_id}: {e}")
            return False
