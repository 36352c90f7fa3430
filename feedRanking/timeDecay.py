"""
Time-decay and diversity math shared by the ranking strategies.

All functions here are pure: they take plain numbers (or items and an explicit
config) and never read the clock or any shared state.
"""
import math
from typing import Iterable, Optional

import numpy as np

from feedRanking.config import DEFAULT_CONFIG, RankingConfig
from feedRanking.models import GeoPoint

EARTH_RADIUS_KM = 6371.0


def clamp_age_hours(age_hours: float, min_age_hours: float = None) -> float:
    """Clamp (near-)zero ages so rates never divide by zero."""
    if min_age_hours is None:
        min_age_hours = DEFAULT_CONFIG.min_age_hours
    return max(min_age_hours, age_hours)


def exponential_decay(age_hours: float, half_life_hours: float) -> float:
    """
    Multiplicative decay factor for content of the given age

    Returns 1.0 at age zero, 0.5 at one half-life, 0.25 at two, and so on.
    """
    if age_hours <= 0:
        return 1.0
    return 0.5 ** (age_hours / half_life_hours)


def freshness_curve(age_hours: float, config: RankingConfig = DEFAULT_CONFIG) -> float:
    """
    Trapezoidal "sweet spot" freshness in [0, 1]

    Starts at ``freshness_new_floor`` for brand new content and ramps up to 1.0
    at the start of the sweet spot. Flat at 1.0 inside the sweet spot, then
    fades linearly to zero at ``freshness_fade_hours``.
    """
    start = config.freshness_sweet_spot_start_hours
    end = config.freshness_sweet_spot_end_hours
    fade = config.freshness_fade_hours
    floor = config.freshness_new_floor

    if age_hours < 0:
        age_hours = 0.0

    if age_hours < start:
        return floor + (1.0 - floor) * (age_hours / start)
    if age_hours <= end:
        return 1.0
    if age_hours >= fade:
        return 0.0
    return 1.0 - (age_hours - end) / (fade - end)


def diversity_bonus(author_id: str, followed_author_ids: Iterable[str], user_id: Optional[str] = None) -> float:
    """1.0 for authors the requester does not already follow, else 0.0."""
    if user_id is not None and author_id == user_id:
        return 0.0
    return 0.0 if author_id in followed_author_ids else 1.0


def interactions_per_hour(interactions: int, age_hours: float, min_age_hours: float = None) -> float:
    return interactions / clamp_age_hours(age_hours, min_age_hours)


def normalize_engagement(raw_engagement: float, reference: float) -> float:
    """Log-scaled engagement in [0, 1] against a reference ceiling."""
    if not (math.isfinite(raw_engagement) and math.isfinite(reference)):
        return 0.0
    if raw_engagement <= 0 or reference <= 0:
        return 0.0
    return min(1.0, math.log1p(raw_engagement) / math.log1p(reference))


def engagement_reference(raw_engagements: Iterable[float], floor: float) -> float:
    """Corpus-relative normalization ceiling, never below ``floor``; non-finite values are ignored."""
    values = np.fromiter(raw_engagements, dtype=float)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return floor
    return max(floor, float(np.max(values)))


def haversine_km(origin: GeoPoint, target: GeoPoint) -> float:
    """Great-circle distance in kilometres."""
    lat1, lon1, lat2, lon2 = np.radians([origin.latitude, origin.longitude, target.latitude, target.longitude])
    d_lat = lat2 - lat1
    d_lon = lon2 - lon1
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(d_lon / 2) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return float(EARTH_RADIUS_KM * c)


def distance_relevance(distance_km: float, falloff_km: float) -> float:
    """Exponential proximity relevance in [0, 1]; unknown distances are irrelevant."""
    if not math.isfinite(distance_km):
        return 0.0
    return math.exp(-max(0.0, distance_km) / falloff_km)
