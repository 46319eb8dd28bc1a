"""
LLM knowledge fallback for career history.

Asks the configured LLM for a JSON array of education/career entries.
Only runs on a forced refresh; its items carry a low prior.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from profilebuilder.agentic.llm_client import LLMClient, get_llm_client
from profilebuilder.core.api_errors import ConfigurationError, ValidationError
from profilebuilder.core.config import Settings
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.career import career_item_url
from profilebuilder.sources.normalizer import create_normalized_item, parse_date, parse_datetime
from profilebuilder.sources.types import (
    CareerEvent,
    CareerEventType,
    DataSourceResult,
    FetchParams,
    NormalizedItem,
    SourceType,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a helpful assistant that outputs strictly JSON."

CAREER_PROMPT = """List the education and career history of "{name}" (AI / technology field){context}.

Return ONLY a JSON array, no markdown:
[
  {{
    "type": "career" | "education",
    "orgName": "Organization name (English preferred)",
    "role": "Role or degree (English preferred)",
    "startDate": "YYYY-MM-DD" or "YYYY-MM" or "YYYY",
    "endDate": "YYYY-MM-DD" or "YYYY-MM" or "YYYY" or null if current
  }}
]

Rules:
1. Use only facts you are confident about; omit uncertain entries.
2. Give at least the year when the month is unknown.
"""


class AIKnowledgeAdapter(SourceAdapter):
    source_type = SourceType.AI_KNOWLEDGE
    name = "AI Knowledge Fallback Adapter"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        llm_client: Optional[LLMClient] = None,
    ):
        super().__init__(settings=settings, transport=transport)
        self._llm = llm_client

    def should_fetch(self, params: FetchParams) -> bool:
        return params.force_refresh

    def _get_llm(self) -> LLMClient:
        if self._llm is None:
            self._llm = get_llm_client(settings=self.settings)
        if self._llm is None:
            raise ConfigurationError(
                message="No LLM credentials configured",
                source=self.source_type.value,
                missing_config="openai_api_key",
            )
        return self._llm

    def to_items(self, name: str, entries: List[Dict[str, Any]]) -> List[NormalizedItem]:
        items = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            org = (entry.get("orgName") or "").strip()
            if len(org) <= 2:
                continue
            event_type = (
                CareerEventType.EDUCATION
                if entry.get("type") == CareerEventType.EDUCATION.value
                else CareerEventType.CAREER
            )
            role = (entry.get("role") or "").strip() or None
            start = parse_date(entry.get("startDate"))
            event = CareerEvent(
                type=event_type,
                organization=org,
                role=role,
                start_date=start,
                end_date=parse_date(entry.get("endDate")),
                source=self.source_type.value,
                confidence=60,
            )
            items.append(create_normalized_item(
                source_type=self.source_type,
                url=career_item_url(f"ai-knowledge:{name}", org, role, start),
                title=org,
                text=role or event_type.value,
                published_at=parse_datetime(start),
                confidence=60,
                metadata={"type": event_type.value, "generated": True},
                career_event=event,
            ))
        return items

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        name = params.person.search_name
        context = ""
        if params.person.organizations:
            context = f', known affiliations: {", ".join(params.person.organizations)}'

        response = await self._get_llm().complete(
            CAREER_PROMPT.format(name=name, context=context),
            system_prompt=SYSTEM_PROMPT,
        )
        entries = response.parse_json()
        if entries is None:
            raise ValidationError(
                message="LLM answer was not JSON",
                source=self.source_type.value,
                status_code=None,
            )
        if isinstance(entries, dict):
            entries = entries.get("items") or entries.get("career") or []

        items = self.to_items(name, entries)
        logger.info(f"[ai_knowledge] {len(items)} generated career entries for {name}")
        return DataSourceResult.ok(self.source_type, items)
