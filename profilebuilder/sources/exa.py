"""
Web search source.

Two passes: a keyword search restricted to the person's own domains
(seed domains from website/blog links), then a general query that pairs
the person's names with AI terms. Result pages are hydrated through
/contents in one batch call.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from profilebuilder.core.api_errors import APIError
from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.normalizer import create_normalized_item, parse_datetime
from profilebuilder.sources.types import DataSourceResult, FetchParams, NormalizedItem, SourceType

logger = logging.getLogger(__name__)

AI_TERMS = (
    '(AI OR "artificial intelligence" OR LLM OR "large language model" '
    'OR "machine learning" OR "deep learning" OR GPT)'
)
EXCLUDED_DOMAINS = ["wikipedia.org", "baike.baidu.com"]
CONTENT_MAX_CHARS = 5000


class ExaClient(BaseAPIClient):
    SOURCE_NAME = "exa"
    BASE_URL = "https://api.exa.ai"

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def search(
        self,
        query: str,
        num_results: int = 10,
        include_domains: Optional[List[str]] = None,
        exclude_domains: Optional[List[str]] = None,
        start_published: Optional[str] = None,
        search_type: str = "auto",
    ) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {"query": query, "numResults": num_results, "type": search_type}
        if include_domains:
            body["includeDomains"] = include_domains
        if exclude_domains:
            body["excludeDomains"] = exclude_domains
        if start_published:
            body["startPublishedDate"] = start_published
        data = await self.post("search", json_body=body, resource_id=query[:60])
        return data.get("results") or []

    async def contents(self, urls: List[str]) -> Dict[str, Dict[str, Any]]:
        data = await self.post(
            "contents",
            json_body={"ids": urls, "text": {"maxCharacters": CONTENT_MAX_CHARS}},
            resource_id=f"{len(urls)} urls",
        )
        return {c.get("url"): c for c in data.get("results") or []}


def host_matches(url: str, domains: List[str]) -> bool:
    """True when the URL's host is one of the domains or a subdomain of one."""
    host = urlsplit(url).netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    for domain in domains:
        domain = domain.lower()
        if domain.startswith("www."):
            domain = domain[4:]
        if host == domain or host.endswith(f".{domain}"):
            return True
    return False


class ExaAdapter(SourceAdapter):
    """Web pages about the person."""

    source_type = SourceType.EXA
    name = "Exa Web Search Adapter"

    @staticmethod
    def general_query(params: FetchParams) -> str:
        names = [params.person.search_name] + params.person.aliases[:2]
        name_query = " OR ".join(f'"{n}"' for n in names)
        context = AI_TERMS
        if params.context_keywords:
            context = "(" + " OR ".join(f'"{k}"' for k in params.context_keywords) + ")"
        query = f"({name_query}) AND {context}"
        if params.exclude_terms:
            query += " NOT (" + " OR ".join(params.exclude_terms) + ")"
        return query

    def to_item(self, result: Dict[str, Any], seed_domains: List[str]) -> NormalizedItem:
        is_official = bool(seed_domains) and host_matches(result["url"], seed_domains)
        return create_normalized_item(
            source_type=self.source_type,
            url=result["url"],
            title=result.get("title") or "",
            text=result.get("text") or "",
            published_at=parse_datetime(result.get("publishedDate")),
            is_official=is_official,
            confidence=90 if is_official else 70,
            metadata={"author": result.get("author")},
        )

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        start_published = params.since.isoformat() if params.since else None
        results: List[Dict[str, Any]] = []

        async with ExaClient(
            api_key=self.settings.exa_api_key,
            base_url=self.settings.exa_base_url,
            **self.client_options(),
        ) as client:
            if params.seed_domains:
                results.extend(await client.search(
                    params.person.search_name,
                    num_results=10,
                    include_domains=params.seed_domains,
                    start_published=start_published,
                    search_type="keyword",
                ))
            results.extend(await client.search(
                self.general_query(params),
                num_results=self.max_results(params),
                exclude_domains=EXCLUDED_DOMAINS,
                start_published=start_published,
            ))

            seen = set()
            unique = []
            for r in results:
                url = r.get("url")
                if url and url not in seen:
                    seen.add(url)
                    unique.append(r)

            if unique:
                try:
                    contents = await client.contents([r["url"] for r in unique])
                except APIError as e:
                    logger.warning(f"[exa] Contents lookup failed, keeping bare results: {e}")
                    contents = {}
                for r in unique:
                    page = contents.get(r["url"]) or {}
                    r.setdefault("text", page.get("text"))
                    if not r.get("title"):
                        r["title"] = page.get("title")
                    if not r.get("publishedDate"):
                        r["publishedDate"] = page.get("publishedDate")

        items = [self.to_item(r, params.seed_domains) for r in unique]
        return DataSourceResult.ok(self.source_type, items)
