"""
Knowledge-graph career source.

Queries the Wikidata SPARQL endpoint for a person's education (P69,
degree P512), employers (P108, position P39) and awards (P166, point in
time P585), with start/end qualifiers P580/P582. Every row becomes a
career-tagged item carrying a CareerEvent payload.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from profilebuilder.core.api_errors import ValidationError
from profilebuilder.core.http_client import BaseAPIClient
from profilebuilder.sources.base import SourceAdapter
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

QID_RE = re.compile(r"^Q\d+$")

CAREER_SPARQL = """
SELECT ?type ?item ?itemLabel ?roleLabel ?start ?end WHERE {{
  BIND(wd:{qid} AS ?person)
  {{
    ?person p:P69 ?stmt .
    ?stmt ps:P69 ?item .
    OPTIONAL {{ ?stmt pq:P512 ?role . }}
    OPTIONAL {{ ?stmt pq:P580 ?start . }}
    OPTIONAL {{ ?stmt pq:P582 ?end . }}
    BIND("education" AS ?type)
  }}
  UNION
  {{
    ?person p:P108 ?stmt .
    ?stmt ps:P108 ?item .
    OPTIONAL {{ ?stmt pq:P39 ?role . }}
    OPTIONAL {{ ?stmt pq:P580 ?start . }}
    OPTIONAL {{ ?stmt pq:P582 ?end . }}
    BIND("career" AS ?type)
  }}
  UNION
  {{
    ?person p:P166 ?stmt .
    ?stmt ps:P166 ?item .
    OPTIONAL {{ ?stmt pq:P585 ?start . }}
    BIND("award" AS ?type)
  }}
  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "zh,en". }}
}}
ORDER BY DESC(?start)
"""


class WikidataClient(BaseAPIClient):
    """SPARQL endpoint client."""

    SOURCE_NAME = "wikidata"
    BASE_URL = "https://query.wikidata.org/sparql"

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/sparql-results+json",
            "User-Agent": "ProfileBuilder/1.0 (career timeline)",
        }

    async def career_bindings(self, qid: str) -> List[Dict[str, Any]]:
        data = await self.get(
            self.base_url,
            params={"query": CAREER_SPARQL.format(qid=qid), "format": "json"},
            resource_id=qid,
        )
        try:
            return data["results"]["bindings"]
        except (KeyError, TypeError):
            raise ValidationError(
                message=f"Unexpected SPARQL payload for {qid}",
                source=self.SOURCE_NAME,
                status_code=None,
            )


def _value(binding: Dict[str, Any], key: str) -> Optional[str]:
    cell = binding.get(key)
    if not cell:
        return None
    return cell.get("value")


def _entity_id(uri: Optional[str]) -> Optional[str]:
    if not uri:
        return None
    tail = uri.rsplit("/", 1)[-1]
    return tail if QID_RE.match(tail) else None


def career_item_url(prefix: str, org: str, role: Optional[str], start: Optional[Any]) -> str:
    """
    Pseudo-URL for a career row.

    Distinct tenures at the same organization keep distinct url hashes.
    """
    url = f"{prefix}#{org}"
    if role:
        url += f";{role}"
    if start:
        url += f"@{start}"
    return url


class CareerAdapter(SourceAdapter):
    """Career (knowledge graph) adapter."""

    source_type = SourceType.CAREER
    name = "Career (Wikidata) Adapter"

    def should_fetch(self, params: FetchParams) -> bool:
        return bool(params.qid)

    def parse_bindings(self, qid: str, bindings: List[Dict[str, Any]]) -> List[NormalizedItem]:
        items = []
        for binding in bindings:
            org_name = _value(binding, "itemLabel")
            # Unlabelled entities come back as their bare QID
            if not org_name or QID_RE.match(org_name):
                continue

            event_type = _value(binding, "type") or CareerEventType.CAREER.value
            role = _value(binding, "roleLabel")
            if role and QID_RE.match(role):
                role = None
            start = parse_date(_value(binding, "start"))
            end = parse_date(_value(binding, "end"))

            event = CareerEvent(
                type=event_type,
                organization=org_name,
                organization_id=_entity_id(_value(binding, "item")),
                role=role,
                start_date=start,
                end_date=end,
                source=self.source_type.value,
                confidence=85,
            )
            items.append(create_normalized_item(
                source_type=self.source_type,
                url=career_item_url(f"wikidata:{qid}", org_name, role, start),
                title=org_name,
                text=role or event_type,
                published_at=parse_datetime(start),
                is_official=True,
                confidence=85,
                metadata={
                    "type": event_type,
                    "org_qid": event.organization_id,
                    "role": role,
                    "end_date": end.isoformat() if end else None,
                },
                career_event=event,
            ))
        return items

    async def fetch(self, params: FetchParams) -> DataSourceResult:
        if not params.qid:
            return DataSourceResult.ok(self.source_type)
        if not QID_RE.match(params.qid):
            raise ValidationError(
                message=f"Invalid QID: {params.qid}",
                source=self.source_type.value,
                status_code=None,
            )

        async with WikidataClient(
            base_url=self.settings.wikidata_sparql_url, **self.client_options()
        ) as client:
            bindings = await client.career_bindings(params.qid)

        items = self.parse_bindings(params.qid, bindings)
        logger.info(f"[career] {len(items)} career rows for {params.qid}")
        return DataSourceResult.ok(self.source_type, items)
