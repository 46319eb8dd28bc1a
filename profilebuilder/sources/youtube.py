"""
Video platform source (YouTube Data API v3).

With a verified channel id, reads the channel's uploads playlist
(official). Without one, falls back to a relevance search on the
person's name plus organization/AI context (unverified).
"""

import logging
from typing import Any, Dict, List, Optional

from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.normalizer import create_normalized_item, parse_datetime
from profilebuilder.sources.types import DataSourceResult, FetchParams, NormalizedItem, SourceType

logger = logging.getLogger(__name__)


class YouTubeClient(BaseAPIClient):
    """YouTube Data API client. The key travels as a query parameter."""

    SOURCE_NAME = "youtube"
    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def _params(self, **params) -> Dict[str, Any]:
        params["key"] = self.api_key
        return params

    async def uploads_playlist_id(self, channel_id: str) -> Optional[str]:
        data = await self.get(
            "channels",
            params=self._params(part="contentDetails", id=channel_id),
            resource_id=channel_id,
        )
        channels = data.get("items") or []
        if not channels:
            return None
        return channels[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")

    async def playlist_videos(self, playlist_id: str, max_results: int) -> List[Dict[str, Any]]:
        data = await self.get(
            "playlistItems",
            params=self._params(part="snippet", playlistId=playlist_id, maxResults=max_results),
            resource_id=playlist_id,
        )
        videos = []
        for entry in data.get("items") or []:
            snippet = entry.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId")
            if video_id:
                videos.append({"id": video_id, **snippet})
        return videos

    async def search_videos(
        self, query: str, max_results: int, published_after: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        params = self._params(
            part="snippet", q=query, type="video", maxResults=max_results, order="relevance"
        )
        if published_after:
            params["publishedAfter"] = published_after
        data = await self.get("search", params=params, resource_id=query[:60])
        videos = []
        for entry in data.get("items") or []:
            video_id = (entry.get("id") or {}).get("videoId")
            if video_id:
                videos.append({"id": video_id, **(entry.get("snippet") or {})})
        return videos


class YouTubeAdapter(SourceAdapter):
    source_type = SourceType.YOUTUBE
    name = "YouTube Adapter"

    @staticmethod
    def search_query(params: FetchParams) -> str:
        context = params.context_keywords or list(params.person.organizations) + ["AI", "Artificial Intelligence"]
        joined = " | ".join(f'"{k}"' for k in context)
        query = f'"{params.person.search_name}" ({joined})'
        for term in params.exclude_terms:
            query += f" -{term}"
        return query

    def to_item(self, video: Dict[str, Any], official: bool) -> NormalizedItem:
        thumbnails = video.get("thumbnails") or {}
        return create_normalized_item(
            source_type=self.source_type,
            url=f"https://www.youtube.com/watch?v={video['id']}",
            title=video.get("title") or "",
            text=video.get("description") or "",
            published_at=parse_datetime(video.get("publishedAt")),
            is_official=official,
            confidence=90 if official else 60,
            metadata={
                "video_id": video["id"],
                "channel_title": video.get("channelTitle"),
                "thumbnail_url": (thumbnails.get("medium") or {}).get("url"),
            },
        )

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        max_results = self.max_results(params)
        official = bool(params.channel_id)

        async with YouTubeClient(
            api_key=self.settings.google_api_key,
            base_url=self.settings.youtube_base_url,
            **self.client_options(),
        ) as client:
            if official:
                playlist_id = await client.uploads_playlist_id(params.channel_id)
                if not playlist_id:
                    logger.info(f"[youtube] Channel {params.channel_id} has no uploads playlist")
                    return DataSourceResult.ok(self.source_type)
                videos = await client.playlist_videos(playlist_id, max_results)
            else:
                published_after = params.since.strftime("%Y-%m-%dT%H:%M:%SZ") if params.since else None
                videos = await client.search_videos(
                    self.search_query(params), max_results, published_after=published_after
                )

        if official and params.since:
            videos = [
                v for v in videos
                if (parse_datetime(v.get("publishedAt")) or params.since) >= params.since
            ]

        items = [self.to_item(v, official) for v in videos]
        return DataSourceResult.ok(self.source_type, items)
