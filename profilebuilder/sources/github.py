"""
Code-hosting source: a person's public repositories.

Uses the repository search API (user:{handle}, sorted by stars) so an
incremental run can restrict to repositories pushed since the last fetch.
"""

import logging
from typing import Any, Dict, List, Optional

from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.normalizer import create_normalized_item, parse_datetime
from profilebuilder.sources.types import DataSourceResult, FetchParams, NormalizedItem, SourceType

logger = logging.getLogger(__name__)


class GitHubClient(BaseAPIClient):
    """GitHub REST API client. The token is optional and only raises rate limits."""

    SOURCE_NAME = "github"
    BASE_URL = "https://api.github.com"

    def _build_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "ProfileBuilder/github-client",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def search_user_repos(
        self,
        username: str,
        pushed_since: Optional[str] = None,
        per_page: int = 20,
    ) -> List[Dict[str, Any]]:
        query = f"user:{username}"
        if pushed_since:
            query += f" pushed:>{pushed_since}"
        data = await self.get(
            "search/repositories",
            params={"q": query, "sort": "stars", "order": "desc", "per_page": per_page},
            resource_id=username,
        )
        return data.get("items") or []


class GitHubAdapter(SourceAdapter):
    """Repositories owned by the person's verified handle."""

    source_type = SourceType.GITHUB
    name = "GitHub Adapter"

    def should_fetch(self, params: FetchParams) -> bool:
        return bool(params.handle)

    def to_item(self, repo: Dict[str, Any]) -> NormalizedItem:
        description = repo.get("description") or ""
        return create_normalized_item(
            source_type=self.source_type,
            url=repo["html_url"],
            title=repo.get("full_name") or repo.get("name") or "",
            text=description or repo.get("name") or "",
            published_at=parse_datetime(repo.get("pushed_at") or repo.get("created_at")),
            is_official=True,
            confidence=95,
            metadata={
                "stars": repo.get("stargazers_count", 0),
                "forks": repo.get("forks_count", 0),
                "language": repo.get("language"),
                "topics": repo.get("topics") or [],
            },
        )

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        pushed_since = params.since.date().isoformat() if params.since else None

        async with GitHubClient(
            api_key=self.settings.github_token,
            base_url=self.settings.github_base_url,
            **self.client_options(),
        ) as client:
            repos = await client.search_user_repos(
                params.handle, pushed_since=pushed_since, per_page=self.max_results(params)
            )

        items = [self.to_item(repo) for repo in repos if repo.get("html_url")]
        return DataSourceResult.ok(self.source_type, items)
