"""
Canonical item construction and deterministic fingerprints.

- hash_url: identity key of an item within a person's item set
- hash_content: change-detection key for an item's text
"""

import hashlib
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from profilebuilder.sources.types import CareerEvent, NormalizedItem, SourceType

logger = logging.getLogger(__name__)

CONTENT_HASH_CHARS = 1000

# Hosts whose query string carries the resource identity.
_QUERY_IDENTITY = {
    "youtube.com": ("/watch", "v"),
    "www.youtube.com": ("/watch", "v"),
    "m.youtube.com": ("/watch", "v"),
}

_URL_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """
    Canonical form of a URL for hashing.

    Lower-cases scheme and host, drops the fragment and query string
    (except the video id of watch URLs) and strips the trailing slash.
    Pseudo-URLs such as "wikidata:Q1#Org" are only trimmed.
    """
    url = (url or "").strip()
    if not _URL_SCHEME_RE.match(url):
        return url.rstrip("/")

    parts = urlsplit(url)
    netloc = parts.netloc.lower()
    path = parts.path

    query = ""
    identity = _QUERY_IDENTITY.get(netloc)
    if identity and path == identity[0]:
        values = parse_qs(parts.query).get(identity[1])
        if values:
            query = urlencode({identity[1]: values[0]})

    normalized = urlunsplit((parts.scheme.lower(), netloc, path, query, ""))
    return normalized.rstrip("/")


def hash_url(url: str) -> str:
    """md5 hex digest of the normalized URL."""
    return hashlib.md5(normalize_url(url).encode("utf-8")).hexdigest()


def hash_content(text: Optional[str]) -> str:
    """md5 hex digest of the first 1000 characters of the stripped text."""
    snippet = (text or "").strip()[:CONTENT_HASH_CHARS]
    return hashlib.md5(snippet.encode("utf-8")).hexdigest()


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Parse the partial dates sources emit.

    Accepts "YYYY", "YYYY-MM", "YYYY-MM-DD" and ISO timestamps such as
    the knowledge graph's "+2015-12-00T00:00:00Z". Missing month or day
    default to 1.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    match = re.match(r"^\+?(\d{4})(?:-(\d{1,2}))?(?:-(\d{1,2}))?", str(value).strip())
    if not match:
        return None
    year = int(match.group(1))
    if year < 1:
        return None
    month = min(int(match.group(2) or 1) or 1, 12)
    day = int(match.group(3) or 1) or 1
    try:
        return date(year, month, day)
    except ValueError:
        return date(year, month, 1)


def parse_datetime(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Parse an API timestamp into a naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    except ValueError:
        day = parse_date(text)
        return datetime(day.year, day.month, day.day) if day else None


def create_normalized_item(
    source_type: SourceType,
    url: str,
    title: str = "",
    text: str = "",
    published_at: Optional[datetime] = None,
    is_official: bool = False,
    confidence: int = 50,
    metadata: Optional[Dict[str, Any]] = None,
    career_event: Optional[CareerEvent] = None,
) -> NormalizedItem:
    """
    Build a NormalizedItem with both fingerprints computed.

    Args:
        source_type: Source that produced the item
        url: Canonical URL (or pseudo-URL for non-web sources)
        title: Item title
        text: Item body
        published_at: Publication time if known
        is_official: Content from a verified owned channel/handle/id
        confidence: 0-100 prior from the adapter
        metadata: Source-keyed payload
        career_event: Typed career payload for career-tagged items

    Returns:
        NormalizedItem
    """
    meta = dict(metadata or {})
    if career_event is not None:
        meta["career_event"] = career_event.model_dump(mode="json")

    return NormalizedItem(
        source_type=source_type,
        url=url,
        url_hash=hash_url(url),
        content_hash=hash_content(text),
        title=title or "",
        text=text or "",
        published_at=published_at,
        is_official=is_official,
        confidence=max(0, min(100, int(confidence))),
        metadata=meta,
    )
