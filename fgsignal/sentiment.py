#!/usr/bin/env python3
"""
SENTIMENT - CNN Fear & Greed Index with a short-lived file cache.

The endpoint is fronted by bot protection, so requests carry browser-like
headers. Scores may arrive as strings and are normalized to floats. A
reading is cached for CacheConfig.sentiment_ttl_seconds (5 min).
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .config import get_config
from .errors import SentimentUnavailable
from .models import Ok, SentimentReading, SentimentResult, Unavailable
from .transport import get_json

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "max-age=0",
    "Dnt": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Upgrade-Insecure-Requests": "1",
    "User-Agent": ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                   "(KHTML, like Gecko) Chrome/142.0.0.0 Safari/537.36"),
}

OPTIONAL_FIELDS = ("previous_close", "previous_1_week", "previous_1_month", "previous_1_year")


def _to_float(value: Any, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Fear & Greed field {field} is not numeric: {value!r}")


def parse_reading(data: Dict[str, Any]) -> SentimentReading:
    """
    Validate and normalize a Fear & Greed payload.

    Accepts the flat /current shape and the nested {"fear_and_greed": {...}}
    shape. Raises ValueError when rating or score is missing or malformed.
    """
    if not isinstance(data, dict):
        raise ValueError("Fear & Greed response is not a JSON object")
    if isinstance(data.get("fear_and_greed"), dict):
        data = data["fear_and_greed"]

    rating = data.get("rating")
    if not isinstance(rating, str) or not rating:
        raise ValueError("Fear & Greed response has no rating")
    if "score" not in data:
        raise ValueError("Fear & Greed response has no score")

    extras = {
        field: _to_float(data[field], field)
        for field in OPTIONAL_FIELDS
        if data.get(field) is not None
    }
    timestamp = data.get("timestamp")
    return SentimentReading(
        rating=rating,
        score=_to_float(data["score"], "score"),
        timestamp=str(timestamp) if timestamp is not None else None,
        **extras,
    )


def reading_to_dict(reading: SentimentReading) -> Dict[str, Any]:
    data = {"rating": reading.rating.value, "score": reading.score, "timestamp": reading.timestamp}
    for field in OPTIONAL_FIELDS:
        value = getattr(reading, field)
        if value is not None:
            data[field] = value
    return data


class FearGreedSource:
    """CNN Fear & Greed fetcher with a JSON file cache."""

    CACHE_KEY = "current"

    def __init__(self, url: Optional[str] = None, cache_ttl_seconds: Optional[int] = None,
                 cache_dir: Optional[Path] = None):
        cfg = get_config()
        self.url = url or cfg.fear_greed_url
        self.cache_ttl = cfg.cache.sentiment_ttl_seconds if cache_ttl_seconds is None else cache_ttl_seconds
        self.cache_dir = Path(cache_dir) if cache_dir is not None else cfg.cache.cache_dir

    def _get_cache_path(self, key: str) -> Path:
        return self.cache_dir / f"{self.__class__.__name__}_{key}.json"

    def _get_cached(self, key: str) -> Optional[Dict]:
        path = self._get_cache_path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
            cached_at = datetime.fromisoformat(data.get("_cached_at", "2000-01-01T00:00:00+00:00"))
        except ValueError as e:
            logger.warning(f"Ignoring unreadable sentiment cache {path.name}: {e}")
            return None
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - cached_at < timedelta(seconds=self.cache_ttl):
            return data
        return None

    def _set_cache(self, key: str, data: Dict):
        data = dict(data)
        data["_cached_at"] = datetime.now(timezone.utc).isoformat()
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._get_cache_path(key).write_text(json.dumps(data, indent=2))
        except OSError as e:
            # A read-only cache dir only costs an extra request next time
            logger.warning(f"Could not write sentiment cache: {e}")

    def fetch(self, use_cache: bool = True) -> SentimentReading:
        """Current reading. Raises SentimentUnavailable."""
        if use_cache and self.cache_ttl > 0:
            cached = self._get_cached(self.CACHE_KEY)
            if cached:
                try:
                    return parse_reading(cached)
                except ValueError as e:
                    logger.warning(f"Discarding malformed cached sentiment: {e}")

        try:
            data = get_json(self.url, headers=BROWSER_HEADERS)
            reading = parse_reading(data)
        except requests.RequestException as e:
            raise SentimentUnavailable(f"Failed to fetch Fear & Greed Index: {e}", e) from e
        except ValueError as e:
            raise SentimentUnavailable(f"Invalid Fear & Greed Index response: {e}", e) from e

        logger.debug(f"Fear & Greed: {reading.rating.label} ({reading.score:.0f})")
        if self.cache_ttl > 0:
            self._set_cache(self.CACHE_KEY, reading_to_dict(reading))
        return reading


def load_sentiment(source: Optional[FearGreedSource] = None) -> SentimentReading:
    return (source or FearGreedSource()).fetch()


def fetch_sentiment(source: Optional[FearGreedSource] = None) -> SentimentResult:
    """Ok(SentimentReading) | Unavailable, never raises for upstream failures."""
    try:
        return Ok(load_sentiment(source))
    except SentimentUnavailable as e:
        logger.warning(f"Sentiment unavailable: {e}")
        return Unavailable(source=e.source, reason=str(e))
