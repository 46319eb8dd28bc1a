"""
Social-post source.

Posts are retrieved through an OpenAI-compatible chat endpoint with live
X search enabled, asked to answer with a strict JSON object
{"posts": [{"date", "text", "url"}]}.

Two modes:
- handle: posts from the person's verified account (official)
- name_search: posts mentioning the person's name (unverified, low prior)
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from profilebuilder.core.api_errors import ValidationError
from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.normalizer import create_normalized_item, parse_datetime
from profilebuilder.sources.types import (
    DataSourceResult,
    FetchMode,
    FetchParams,
    NormalizedItem,
    SourceType,
)

logger = logging.getLogger(__name__)

X_MODEL = "grok-2-1212"
_STATUS_RE = re.compile(r"x\.com/([^/]+)/status/(\d+)")

HANDLE_PROMPT = """You are an AI research assistant. Search for recent posts from @{handle} on X that are SPECIFICALLY about:
- Artificial Intelligence, Machine Learning, Deep Learning
- AI products, models, research
- AI companies and industry news
- Technical insights

IGNORE posts about policies, elections, or personal opinions unrelated to tech.

Return the result as a STRICT JSON object with a single key "posts", an array of objects with:
- "date": string (e.g. "2024-01-01")
- "text": string (the exact full content of the post)
- "url": string (the direct https://x.com link)

Output only the raw JSON."""

NAME_PROMPT = (
    'You are an AI research assistant. Search for recent posts about "{name}" on X '
    'related to AI/ML. Return a STRICT JSON object with a "posts" array containing '
    '{{"date", "text", "url"}}. Output only the raw JSON.'
)


class XSearchClient(BaseAPIClient):
    SOURCE_NAME = "x"
    BASE_URL = "https://api.x.ai/v1"

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def search_posts(self, system_prompt: str, user_prompt: str, max_results: int) -> str:
        data = await self.post(
            "chat/completions",
            json_body={
                "model": X_MODEL,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "search_parameters": {
                    "mode": "on",
                    "return_citations": True,
                    "max_search_results": max_results,
                    "sources": [{"type": "x"}],
                },
                "temperature": 0.1,
                "response_format": {"type": "json_object"},
            },
            resource_id="chat/completions",
        )
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise ValidationError(
                message="Completion payload has no message content",
                source=self.SOURCE_NAME,
                status_code=None,
            )


def parse_posts(content: str) -> List[Dict[str, Any]]:
    """
    Extract the posts array from a model answer.

    Tool-log lines (starting with ">") are dropped and the outermost
    {...} span is parsed.

    Raises:
        ValidationError: When no JSON object can be parsed
    """
    cleaned = "\n".join(
        line for line in content.splitlines() if not line.strip().startswith(">")
    )
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        raise ValidationError(message="No JSON object in post search answer", source="x", status_code=None)
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise ValidationError(message=f"Malformed post JSON: {e}", source="x", status_code=None)
    posts = parsed.get("posts") if isinstance(parsed, dict) else None
    return posts if isinstance(posts, list) else []


class XPostsAdapter(SourceAdapter):
    """Social posts by (handle mode) or about (name-search mode) the person."""

    source_type = SourceType.X
    name = "X Posts Adapter"
    default_max_results = 15

    def should_fetch(self, params: FetchParams) -> bool:
        return bool(params.handle) or params.mode == FetchMode.NAME_SEARCH

    def to_item(self, post: Dict[str, Any], handle: Optional[str]) -> Optional[NormalizedItem]:
        url = (post.get("url") or "").strip()
        if not url:
            return None
        match = _STATUS_RE.search(url)
        author = match.group(1) if match else handle
        text = post.get("text") or ""
        official = bool(handle) and bool(author) and author.lower() == handle.lower()
        return create_normalized_item(
            source_type=self.source_type,
            url=url,
            title=text[:100],
            text=text,
            published_at=parse_datetime(post.get("date")),
            is_official=official,
            confidence=80 if official else 50,
            metadata={
                "author": author,
                "post_id": match.group(2) if match else None,
            },
        )

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        handle = (params.handle or "").lstrip("@") or None
        max_results = self.max_results(params)

        if handle and params.mode != FetchMode.NAME_SEARCH:
            system_prompt = HANDLE_PROMPT.format(handle=handle)
            user_prompt = f"Find the {max_results} most recent AI-related posts from @{handle}."
        else:
            handle = None
            name = params.person.search_name
            system_prompt = NAME_PROMPT.format(name=name)
            user_prompt = f"Find {max_results} recent AI-related posts about: {name}"

        async with XSearchClient(
            api_key=self.settings.xai_api_key,
            base_url=self.settings.xai_base_url,
            **self.client_options(),
        ) as client:
            content = await client.search_posts(system_prompt, user_prompt, max_results)

        posts = parse_posts(content)
        items = []
        for post in posts:
            item = self.to_item(post, handle)
            if item is not None:
                items.append(item)
        return DataSourceResult.ok(self.source_type, items)
