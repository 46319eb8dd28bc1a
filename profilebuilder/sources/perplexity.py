"""
Precision web Q&A source.

Cost-sensitive: only runs on an explicit forced refresh, and failures
are never retried.
"""

import logging
from datetime import datetime
from typing import Any, Dict

from profilebuilder.core.api_errors import ValidationError
from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.normalizer import create_normalized_item
from profilebuilder.sources.types import DataSourceResult, FetchParams, SourceType

logger = logging.getLogger(__name__)

PERPLEXITY_MODEL = "sonar"
SYSTEM_PROMPT = "You are a precise research assistant. Provide only verified facts about the person."


class PerplexityClient(BaseAPIClient):
    SOURCE_NAME = "perplexity"
    BASE_URL = "https://api.perplexity.ai"

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def ask(self, question: str) -> Dict[str, Any]:
        data = await self.post(
            "chat/completions",
            json_body={
                "model": PERPLEXITY_MODEL,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": question},
                ],
                "return_citations": True,
            },
            resource_id="chat/completions",
        )
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise ValidationError(
                message="Answer payload has no message content",
                source=self.SOURCE_NAME,
                status_code=None,
            )
        return {"content": content, "citations": data.get("citations") or [], "usage": data.get("usage")}


class PerplexityAdapter(SourceAdapter):
    source_type = SourceType.PERPLEXITY
    name = "Perplexity Adapter"

    def should_fetch(self, params: FetchParams) -> bool:
        return params.force_refresh

    async def safe_fetch(self, params: FetchParams) -> DataSourceResult:
        result = await super().safe_fetch(params)
        if result.error is not None:
            result.error.retryable = False
        return result

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        name = params.person.search_name
        question = (
            f"Who is {name}? What are their key contributions to AI/technology? "
            f"Provide specific facts with dates."
        )

        options = self.client_options()
        options["max_retries"] = 1  # every call is billed
        async with PerplexityClient(
            api_key=self.settings.perplexity_api_key,
            base_url=self.settings.perplexity_base_url,
            **options,
        ) as client:
            answer = await client.ask(question)

        if not answer["content"]:
            return DataSourceResult.ok(self.source_type)

        item = create_normalized_item(
            source_type=self.source_type,
            url=f"perplexity:{name}",
            title=f"{name} - research summary",
            text=answer["content"],
            published_at=datetime.utcnow(),
            confidence=85,
            metadata={"citations": answer["citations"], "usage": answer["usage"]},
        )
        return DataSourceResult.ok(self.source_type, [item])
