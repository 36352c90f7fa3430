"""
Content repository boundary consumed by the ranking core.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from feedRanking.errors import MalformedContentItem
from feedRanking.models import CandidateQuery, ContentItem

logger = logging.getLogger(__name__)


class ContentRepository(Protocol):
    def fetch_candidates(self, query: CandidateQuery) -> Sequence[ContentItem]:
        """
        Return unranked candidates matching the coarse filter

        Raises:
            RepositoryUnavailable: if the backing store cannot be reached
        """
        ...


class InMemoryContentRepository:
    """
    Content repository over an in-process snapshot

    Used for fixtures, previews and tests. Counters are taken as stored; the
    ranking core never computes them.
    """

    def __init__(self, items: Iterable[ContentItem] = (), saves: Dict[str, List[Tuple[str, datetime]]] = None):
        """
        Args:
            items: Content items in the corpus
            saves: Mapping of user id to (item id, saved_at) pairs
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.items: Dict[str, ContentItem] = {}
        self.saves: Dict[str, Dict[str, datetime]] = {}

        for item in items:
            self.add_item(item)
        for user_id, saved in (saves or {}).items():
            for item_id, saved_at in saved:
                self.record_save(user_id, item_id, saved_at)

    def add_item(self, item: ContentItem):
        self.items[item.id] = item

    def record_save(self, user_id: str, item_id: str, saved_at: datetime):
        self.saves.setdefault(user_id, {})[item_id] = saved_at

    def fetch_candidates(self, query: CandidateQuery) -> List[ContentItem]:
        if query.saved_by_user is not None:
            candidates = self._saved_items(query.saved_by_user)
        else:
            candidates = sorted(self.items.values(), key=lambda item: item.id)

        results = [item for item in candidates if matches_query(item, query)]
        self.logger.debug(f"Fetched {len(results)} candidates for {query}")
        return results

    def _saved_items(self, user_id: str) -> List[ContentItem]:
        saved = self.saves.get(user_id, {})
        ordered = sorted(saved.items(), key=lambda pair: pair[1], reverse=True)

        items = []
        for item_id, saved_at in ordered:
            item = self.items.get(item_id)
            if item is None:
                # Dangling reference to deleted content
                continue
            items.append(replace(item, saved_at=saved_at))
        return items


def matches_query(item: ContentItem, query: CandidateQuery) -> bool:
    if query.status is not None and item.status != query.status:
        return False
    if query.category and query.category.lower() not in item.categories:
        return False
    if query.author_in is not None and item.author_id not in query.author_in:
        return False
    return True


def load_items(records: Iterable[Dict]) -> Tuple[List[ContentItem], List[Optional[str]]]:
    """
    Parse raw records, skipping ones that cannot be parsed

    Returns:
        Tuple of (items, ids of skipped records)
    """
    items = []
    skipped = []
    for record in records:
        try:
            items.append(ContentItem.from_record(record))
        except MalformedContentItem as e:
            logger.warning(f"Skipping unparseable content record: {e}")
            skipped.append(e.item_id)
    return items, skipped
