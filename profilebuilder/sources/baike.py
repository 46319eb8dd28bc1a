"""
Encyclopedia source for Chinese-language profiles.

There is no public API: the lemma page is fetched and parsed with
BeautifulSoup. The summary paragraph becomes one item; the basic-info
table (education, position, employer) becomes career-tagged items.
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup

from profilebuilder.agentic.fuzzy_matcher import contains_cjk
from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.career import career_item_url
from profilebuilder.sources.normalizer import create_normalized_item
from profilebuilder.sources.types import (
    CareerEvent,
    CareerEventType,
    DataSourceResult,
    FetchParams,
    NormalizedItem,
    SourceType,
)

logger = logging.getLogger(__name__)

SUMMARY_MAX_CHARS = 500
_SPLIT_RE = re.compile(r"[,，、;；]")

# basic-info label fragment -> event type
_LABEL_EVENTS = (
    ("毕业院校", CareerEventType.EDUCATION),
    ("任职", CareerEventType.CAREER),
    ("公司", CareerEventType.CAREER),
    ("单位", CareerEventType.CAREER),
)
_ROLE_LABELS = ("职业", "职务")


class BaikeClient(BaseAPIClient):
    SOURCE_NAME = "baike"
    BASE_URL = "https://baike.baidu.com"

    def _build_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": (
                "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
            ),
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        }

    def lemma_url(self, name: str) -> str:
        return f"{self.base_url}/item/{quote(name)}"

    async def lemma_page(self, name: str) -> str:
        return await self.get_text(self.lemma_url(name), resource_id=name)


def _split_values(value: str) -> List[str]:
    seen = []
    for part in _SPLIT_RE.split(value):
        part = part.strip()
        if part and part not in seen:
            seen.append(part)
    return seen


def parse_lemma(html: str) -> Dict[str, object]:
    """
    Extract summary, roles and organizations from a lemma page.

    Returns:
        {"summary": str, "roles": [str], "events": [(type, org)]}
    """
    soup = BeautifulSoup(html, "html.parser")

    summary = ""
    para = soup.select_one(".lemma-summary .para") or soup.select_one("[class*=summary] .para")
    if para is not None:
        summary = para.get_text(strip=True)[:SUMMARY_MAX_CHARS]

    roles: List[str] = []
    events: List[tuple] = []
    for dt in soup.find_all("dt"):
        label = dt.get_text(strip=True).replace("\xa0", "")
        dd = dt.find_next_sibling("dd")
        if dd is None:
            continue
        value = dd.get_text(strip=True)

        if any(key in label for key in _ROLE_LABELS):
            roles.extend(v for v in _split_values(value) if v not in roles)
            continue

        for key, event_type in _LABEL_EVENTS:
            if key in label:
                for org in _split_values(value):
                    if (event_type, org) not in events:
                        events.append((event_type, org))
                break

    return {"summary": summary, "roles": roles[:5], "events": events}


class BaikeAdapter(SourceAdapter):
    """Encyclopedia adapter, only for people with a CJK name or alias."""

    source_type = SourceType.BAIKE
    name = "Baike Adapter"

    def should_fetch(self, params: FetchParams) -> bool:
        person = params.person
        return contains_cjk(person.name) or any(contains_cjk(a) for a in person.aliases)

    @staticmethod
    def lookup_name(params: FetchParams) -> str:
        person = params.person
        if contains_cjk(person.name):
            return person.name
        for alias in person.aliases:
            if contains_cjk(alias):
                return alias
        return person.name

    def to_items(self, name: str, page_url: str, parsed: Dict[str, object]) -> List[NormalizedItem]:
        items = []
        if parsed["summary"]:
            items.append(create_normalized_item(
                source_type=self.source_type,
                url=page_url,
                title=name,
                text=parsed["summary"],
                confidence=75,
                metadata={"roles": parsed["roles"]},
            ))

        roles: List[str] = parsed["roles"]
        for event_type, org in parsed["events"]:
            role: Optional[str] = None
            if event_type == CareerEventType.CAREER and roles:
                role = roles[0]
            event = CareerEvent(
                type=event_type,
                organization=org,
                role=role,
                source=self.source_type.value,
                confidence=70,
            )
            items.append(create_normalized_item(
                source_type=self.source_type,
                url=career_item_url(f"baike:{name}", org, role, None),
                title=org,
                text=role or event_type.value,
                confidence=70,
                metadata={"type": event_type.value},
                career_event=event,
            ))
        return items

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        name = self.lookup_name(params)

        async with BaikeClient(base_url=self.settings.baike_base_url, **self.client_options()) as client:
            page_url = client.lemma_url(name)
            html = await client.lemma_page(name)

        parsed = parse_lemma(html)
        items = self.to_items(name, page_url, parsed)
        if not items:
            logger.info(f"[baike] No lemma content for {name}")
        return DataSourceResult.ok(self.source_type, items)
