"""
Podcast source (iTunes Search API).

Searches episodes rather than shows so guest appearances are found.
"""

import logging
import re
from typing import Any, Dict, List

from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.normalizer import create_normalized_item, parse_datetime
from profilebuilder.sources.types import DataSourceResult, FetchParams, NormalizedItem, SourceType

logger = logging.getLogger(__name__)


class ITunesClient(BaseAPIClient):
    SOURCE_NAME = "podcast"
    BASE_URL = "https://itunes.apple.com"

    async def search_episodes(self, term: str, limit: int) -> List[Dict[str, Any]]:
        data = await self.get(
            "search",
            params={"term": term, "media": "podcast", "entity": "podcastEpisode", "limit": limit},
            resource_id=term,
        )
        return data.get("results") or []


class PodcastAdapter(SourceAdapter):
    source_type = SourceType.PODCAST
    name = "Podcast (iTunes) Adapter"
    default_max_results = 10

    def to_item(self, episode: Dict[str, Any]) -> NormalizedItem:
        show = episode.get("collectionName") or episode.get("artistName") or ""
        description = episode.get("description") or episode.get("shortDescription") or ""
        return create_normalized_item(
            source_type=self.source_type,
            url=episode.get("trackViewUrl") or episode.get("collectionViewUrl"),
            title=episode.get("trackName") or show,
            text=f"{show}\n{description}".strip(),
            published_at=parse_datetime(episode.get("releaseDate")),
            confidence=60,
            metadata={
                "show": show,
                "feed_url": episode.get("feedUrl"),
                "thumbnail_url": episode.get("artworkUrl600") or episode.get("artworkUrl100"),
                "duration_ms": episode.get("trackTimeMillis"),
            },
        )

    @staticmethod
    def mentions_excluded(item: NormalizedItem, terms: List[str]) -> bool:
        if not terms:
            return False
        haystack = f"{item.title or ''} {item.text or ''}".lower()
        return any(re.search(rf"\b{re.escape(t.lower())}\b", haystack) for t in terms)

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        async with ITunesClient(base_url=self.settings.itunes_base_url, **self.client_options()) as client:
            episodes = await client.search_episodes(params.person.search_name, self.max_results(params))

        items = []
        for episode in episodes:
            if not (episode.get("trackViewUrl") or episode.get("collectionViewUrl")):
                continue
            item = self.to_item(episode)
            if params.since and item.published_at and item.published_at < params.since:
                continue
            if self.mentions_excluded(item, params.exclude_terms):
                continue
            items.append(item)
        return DataSourceResult.ok(self.source_type, items)
