"""
Data model for the feed ranking core.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

from dateutil import parser

from feedRanking.config import PUBLISHED_STATUS
from feedRanking.errors import MalformedContentItem

COUNTER_FIELDS = ('like_count', 'comment_count', 'share_count', 'save_count')


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ContentItem:
    """
    A read-only content record with engagement counters already populated

    ``saved_at`` is only set when the item comes from a user's saved set and is
    the time that user saved it, not the item's creation time.
    """

    id: str
    author_id: str
    created_at: datetime
    status: str = PUBLISHED_STATUS
    text_length: int = 0
    has_image: bool = False
    has_location: bool = False
    has_review: bool = False
    like_count: int = 0
    comment_count: int = 0
    share_count: int = 0
    save_count: int = 0
    categories: Tuple[str, ...] = ()
    location_relevance: Optional[float] = None
    coordinates: Optional[GeoPoint] = None
    saved_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISHED_STATUS

    @property
    def total_interactions(self) -> int:
        return self.like_count + self.comment_count + self.share_count + self.save_count

    def age_hours(self, now: datetime) -> float:
        """Age in hours relative to ``now``; future timestamps count as age zero."""
        return max(0.0, (now - self.created_at).total_seconds() / 3600.0)

    @classmethod
    def from_record(cls, record: Dict) -> 'ContentItem':
        """
        Build a ContentItem from a raw repository record

        Accepts both camelCase (``likeCount``, ``createdAt``) and snake_case keys.

        Raises:
            MalformedContentItem: if required fields are missing or unparseable
        """
        if not isinstance(record, dict):
            raise MalformedContentItem(None, f"record is not an object: {type(record).__name__}")

        item_id = _first(record, 'id', '_id')
        if item_id in (None, ''):
            raise MalformedContentItem(None, "missing id")
        item_id = str(item_id)

        author = _first(record, 'author_id', 'authorId', 'author')
        if isinstance(author, dict):
            author = author.get('id')
        if author in (None, ''):
            raise MalformedContentItem(item_id, "missing author")

        created_at = _parse_timestamp(item_id, _first(record, 'created_at', 'createdAt'), 'created_at')
        if created_at is None:
            raise MalformedContentItem(item_id, "missing created_at")
        saved_at = _parse_timestamp(item_id, _first(record, 'saved_at', 'savedAt'), 'saved_at')

        text_length = _first(record, 'text_length', 'textLength')
        if text_length is None:
            text = _first(record, 'content', 'text', 'caption') or ''
            text_length = len(text)

        counters = {}
        for name in COUNTER_FIELDS:
            camel = _camel(name)
            counters[name] = _parse_counter(item_id, name, _first(record, name, camel))

        coordinates = _parse_coordinates(item_id, _first(record, 'coordinates', 'location_coordinates'))
        location_relevance = _first(record, 'location_relevance', 'locationRelevance')

        try:
            text_length = int(text_length)
            if location_relevance is not None:
                location_relevance = float(location_relevance)
        except (TypeError, ValueError) as e:
            raise MalformedContentItem(item_id, f"bad numeric field: {e}") from e

        return cls(
            id=item_id,
            author_id=str(author),
            created_at=created_at,
            status=str(_first(record, 'status', 'published_state', 'publishedState') or PUBLISHED_STATUS),
            text_length=text_length,
            has_image=_parse_flag(item_id, 'has_image', _first(record, 'has_image', 'hasImage')),
            has_location=(_parse_flag(item_id, 'has_location', _first(record, 'has_location', 'hasLocation'))
                          or coordinates is not None),
            has_review=_parse_flag(item_id, 'has_review', _first(record, 'has_review', 'hasReview')),
            categories=_parse_categories(_first(record, 'categories') or ()),
            location_relevance=location_relevance,
            coordinates=coordinates,
            saved_at=saved_at,
            **counters
        )

    def to_record(self) -> Dict:
        """Serialize to the camelCase record shape repositories store."""
        record = {
            'id': self.id,
            'authorId': self.author_id,
            'createdAt': self.created_at.isoformat(),
            'status': self.status,
            'textLength': self.text_length,
            'hasImage': self.has_image,
            'hasLocation': self.has_location,
            'hasReview': self.has_review,
            'likeCount': self.like_count,
            'commentCount': self.comment_count,
            'shareCount': self.share_count,
            'saveCount': self.save_count,
            'categories': list(self.categories),
        }
        if self.location_relevance is not None:
            record['locationRelevance'] = self.location_relevance
        if self.coordinates is not None:
            record['coordinates'] = {
                'latitude': self.coordinates.latitude,
                'longitude': self.coordinates.longitude
            }
        if self.saved_at is not None:
            record['savedAt'] = self.saved_at.isoformat()
        return record


@dataclass(frozen=True)
class CandidateQuery:
    """
    Coarse filter handed to the content repository

    ``status=None`` means any status. When ``saved_by_user`` is set the
    repository returns that user's saved items (with ``saved_at`` populated)
    ordered by save time, stale unpublished references included.
    """

    status: Optional[str] = PUBLISHED_STATUS
    category: Optional[str] = None
    author_in: Optional[FrozenSet[str]] = None
    saved_by_user: Optional[str] = None


@dataclass(frozen=True)
class RankingContext:
    """Per-request inputs shared by every strategy."""

    now: datetime
    user_id: Optional[str] = None
    followed_author_ids: FrozenSet[str] = frozenset()
    timeframe: Optional[str] = None
    category: Optional[str] = None
    user_location: Optional[GeoPoint] = None


@dataclass(frozen=True)
class NormalizationContext:
    """Corpus-relative reference values computed once per request."""

    engagement_reference: float = 1.0


@dataclass
class ScoredItem:
    item: ContentItem
    score: float
    breakdown: Dict[str, float] = field(default_factory=dict)
    rank: int = 0

    def to_dict(self) -> Dict:
        return {
            'id': self.item.id,
            'rank': self.rank,
            'score': self.score,
            'breakdown': dict(self.breakdown),
            'item': self.item.to_record(),
        }


@dataclass
class Page:
    items: List[ScoredItem]
    page: int
    page_size: int
    has_next_page: bool
    strategy: str = ''
    total_docs: Optional[int] = None
    total_ranked: int = 0
    excluded_ids: List[str] = field(default_factory=list)

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    @property
    def total_pages(self) -> int:
        if self.total_ranked == 0:
            return 0
        return (self.total_ranked + self.page_size - 1) // self.page_size

    def to_dict(self) -> Dict:
        return {
            'strategy': self.strategy,
            'items': [scored.to_dict() for scored in self.items],
            'pagination': {
                'page': self.page,
                'pageSize': self.page_size,
                'hasNextPage': self.has_next_page,
                'hasPrevPage': self.has_prev_page,
                'totalDocs': self.total_docs,
                'totalRanked': self.total_ranked,
                'totalPages': self.total_pages,
            },
            'excludedIds': list(self.excluded_ids),
        }


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


def _first(record: Dict, *keys):
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _parse_timestamp(item_id: str, value, field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        if isinstance(value, datetime):
            timestamp = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            timestamp = datetime.fromtimestamp(value, tz=timezone.utc)
        elif isinstance(value, str):
            timestamp = parser.parse(value)
        else:
            raise ValueError(f"unsupported type {type(value).__name__}")
    except (ValueError, OverflowError) as e:
        raise MalformedContentItem(item_id, f"unparseable {field_name}: {value!r}") from e

    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _parse_counter(item_id: str, name: str, value) -> int:
    if value is None:
        return 0
    if isinstance(value, (list, tuple, set)):
        # Some records carry the relation itself (e.g. list of likers)
        return len(value)
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MalformedContentItem(item_id, f"corrupt {name}: {value!r}") from e


TRUE_STRINGS = {'true', '1', 'yes', 'y', 'on'}
FALSE_STRINGS = {'false', '0', 'no', 'n', 'off', ''}


def _parse_flag(item_id: str, name: str, value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        raise MalformedContentItem(item_id, f"unparseable {name}: {value!r}")
    return bool(value)


def _parse_coordinates(item_id: str, value) -> Optional[GeoPoint]:
    if not value:
        return None
    try:
        if isinstance(value, dict):
            return GeoPoint(float(value['latitude']), float(value['longitude']))
        latitude, longitude = value
        return GeoPoint(float(latitude), float(longitude))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedContentItem(item_id, f"bad coordinates: {value!r}") from e


def _parse_categories(values) -> Tuple[str, ...]:
    categories = []
    for value in values:
        if isinstance(value, dict):
            value = value.get('slug') or value.get('name') or value.get('id')
        if value:
            categories.append(str(value).lower())
    return tuple(categories)
