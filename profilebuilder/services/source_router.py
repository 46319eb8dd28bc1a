"""
Source routing.

Given a person's identity signals and official links, decides which
sources run, at what priority, in which fetch mode, and which confidence
threshold the QA stage applies to unofficial items.

Rules per source, first match wins:
1. Missing verifying identifier (openalex needs ORCID, career needs QID)
2. Missing handle (github disabled, youtube disabled without a channel,
   x falls back to name search)
3. Cost-sensitive sources need force_refresh
4. Missing credential
5. Otherwise enabled (baike only for CJK names)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from profilebuilder.agentic.fuzzy_matcher import contains_cjk
from profilebuilder.core.api_errors import ErrorCode
from profilebuilder.core.config import Settings, get_settings
from profilebuilder.sources.types import (
    FetchMode,
    FetchParams,
    OfficialLink,
    PersonContext,
    SourceType,
)

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}

COST_SENSITIVE_SOURCES = {SourceType.PERPLEXITY, SourceType.AI_KNOWLEDGE}
QUERY_SOURCES = {SourceType.EXA, SourceType.YOUTUBE, SourceType.PODCAST}

ACADEMIC_KEYWORDS = [
    "professor", "researcher", "scientist", "phd", "doctor", "postdoc",
    "教授", "研究员", "科学家", "博士",
]
FOUNDER_KEYWORDS = [
    "founder", "co-founder", "ceo", "cto", "entrepreneur",
    "创始人", "首席执行官", "首席技术官",
]
COMMON_FIRST_NAMES = {"sam", "john", "michael", "david", "james", "daniel", "chris"}

ACADEMIC_THRESHOLD = 70
FOUNDER_THRESHOLD = 60
DEFAULT_THRESHOLD = 50


@dataclass
class SourceRoute:
    """Routing decision for one source."""

    source: SourceType
    enabled: bool
    priority: Priority = Priority.MEDIUM
    reason: str = ""
    mode: FetchMode = FetchMode.HANDLE
    skip_code: Optional[ErrorCode] = None


@dataclass
class SearchStrategy:
    primary_name: str
    alternative_names: List[str] = field(default_factory=list)
    context_keywords: List[str] = field(default_factory=list)
    exclude_terms: List[str] = field(default_factory=list)


@dataclass
class LinkHints:
    """Identifiers parsed out of a person's official links."""

    x_handle: Optional[str] = None
    github_handle: Optional[str] = None
    youtube_channel_id: Optional[str] = None
    seed_domains: List[str] = field(default_factory=list)
    orcid: Optional[str] = None
    qid: Optional[str] = None


@dataclass
class RoutingPlan:
    """Router output: ordered routes plus the QA threshold (0-100)."""

    person: PersonContext
    routes: List[SourceRoute]
    confidence_threshold: int
    search_strategy: SearchStrategy
    hints: LinkHints
    is_academic: bool = False
    is_tech_founder: bool = False

    @property
    def enabled_routes(self) -> List[SourceRoute]:
        return [r for r in self.routes if r.enabled]

    @property
    def enabled_sources(self) -> List[SourceType]:
        return [r.source for r in self.enabled_routes]

    def route_for(self, source) -> Optional[SourceRoute]:
        source = SourceType(source)
        for route in self.routes:
            if route.source == source:
                return route
        return None

    def build_fetch_params(
        self,
        source,
        since: Optional[datetime] = None,
        force_refresh: bool = False,
        max_results: Optional[int] = None,
    ) -> FetchParams:
        """FetchParams for one routed source, carrying the hints it needs."""
        route = self.route_for(source)
        mode = route.mode if route else FetchMode.HANDLE
        source = SourceType(source)

        handle = None
        if source == SourceType.X and mode == FetchMode.HANDLE:
            handle = self.hints.x_handle
        elif source == SourceType.GITHUB:
            handle = self.hints.github_handle

        strategy = self.search_strategy if source in QUERY_SOURCES else None

        return FetchParams(
            person=self.person,
            since=since,
            force_refresh=force_refresh,
            max_results=max_results,
            mode=mode,
            handle=handle,
            channel_id=self.hints.youtube_channel_id if source == SourceType.YOUTUBE else None,
            orcid=self.hints.orcid,
            qid=self.hints.qid,
            seed_domains=list(self.hints.seed_domains) if source == SourceType.EXA else [],
            context_keywords=list(strategy.context_keywords) if strategy else [],
            exclude_terms=list(strategy.exclude_terms) if strategy else [],
        )


def _clean_handle(handle: Optional[str]) -> Optional[str]:
    if not handle:
        return None
    handle = handle.strip().lstrip("@")
    return handle or None


def _handle_from_url(url: str) -> Optional[str]:
    path = urlsplit(url).path.strip("/")
    if not path:
        return None
    return path.split("/")[0].lstrip("@") or None


def parse_official_links(links: List[OfficialLink], person: Optional[PersonContext] = None) -> LinkHints:
    """Extract handles, channel id, seed domains and external ids from links."""
    hints = LinkHints(
        orcid=person.orcid if person else None,
        qid=person.qid if person else None,
    )
    for link in links:
        link_type = (link.type or "").lower()
        if link_type in ("x", "twitter") and not hints.x_handle:
            hints.x_handle = _clean_handle(link.handle) or _handle_from_url(link.url)
        elif link_type == "github" and not hints.github_handle:
            hints.github_handle = _clean_handle(link.handle) or _handle_from_url(link.url)
        elif link_type == "youtube" and not hints.youtube_channel_id:
            # Only a channel id (UC...) identifies a channel; @names do not
            candidate = _clean_handle(link.handle)
            if not candidate and "/channel/" in link.url:
                candidate = link.url.rstrip("/").rsplit("/", 1)[-1]
            if candidate and candidate.startswith("UC"):
                hints.youtube_channel_id = candidate
        elif link_type in ("website", "blog"):
            host = urlsplit(link.url).netloc.lower()
            if host and host not in hints.seed_domains:
                hints.seed_domains.append(host)
        elif link_type == "orcid" and not hints.orcid:
            hints.orcid = _clean_handle(link.handle) or link.url.rstrip("/").rsplit("/", 1)[-1]
    return hints


class SourceRouter:
    """
    Decides which sources to run for a person.

    Deterministic given (person, links, force_refresh, credentials).
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Person profile
    # ------------------------------------------------------------------

    @staticmethod
    def is_academic(person: PersonContext, orcid: Optional[str] = None) -> bool:
        if orcid or person.orcid:
            return True
        occupations = " ".join(person.occupations).lower()
        return any(k in occupations for k in ACADEMIC_KEYWORDS)

    @staticmethod
    def is_tech_founder(person: PersonContext) -> bool:
        occupations = " ".join(person.occupations).lower()
        return any(k in occupations for k in FOUNDER_KEYWORDS)

    @staticmethod
    def is_cjk_person(person: PersonContext) -> bool:
        return contains_cjk(person.name) or any(contains_cjk(a) for a in person.aliases)

    def build_search_strategy(self, person: PersonContext) -> SearchStrategy:
        primary = person.search_name
        alternatives = [n for n in person.all_names if n != primary]
        context = list(person.organizations) + list(person.occupations)
        context += ["AI", "artificial intelligence", "machine learning"]

        exclude: List[str] = []
        first_name = primary.split(" ")[0].lower() if primary else ""
        if first_name in COMMON_FIRST_NAMES:
            exclude = ["sports", "music", "actor", "politician"]

        return SearchStrategy(
            primary_name=primary,
            alternative_names=alternatives,
            context_keywords=context,
            exclude_terms=exclude,
        )

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route_source(
        self,
        source: SourceType,
        person: PersonContext,
        hints: LinkHints,
        force_refresh: bool,
        academic: bool,
        founder: bool,
    ) -> SourceRoute:
        # 1. Verifying identifiers
        if source == SourceType.OPENALEX and not hints.orcid:
            return SourceRoute(source, False, reason="no ORCID")
        if source == SourceType.CAREER and not hints.qid:
            return SourceRoute(source, False, reason="no QID")

        # 2. Handles
        mode = FetchMode.HANDLE
        if source == SourceType.GITHUB and not hints.github_handle:
            return SourceRoute(source, False, reason="no code-hosting handle")
        if source == SourceType.YOUTUBE and not hints.youtube_channel_id:
            return SourceRoute(source, False, reason="no channel id")
        if source == SourceType.X and not hints.x_handle:
            mode = FetchMode.NAME_SEARCH

        # 3. Cost guard
        if source in COST_SENSITIVE_SOURCES and not force_refresh:
            return SourceRoute(
                source, False, reason="cost-sensitive, needs force refresh",
                skip_code=ErrorCode.COST_GUARD,
            )

        # 4. Credentials
        if not self.settings.has_credential(source.value):
            return SourceRoute(
                source, False, reason="credential not configured",
                skip_code=ErrorCode.COST_GUARD,
            )

        # 5. Enabled
        if source == SourceType.BAIKE:
            if not self.is_cjk_person(person):
                return SourceRoute(source, False, reason="name has no CJK script")
            return SourceRoute(source, True, Priority.MEDIUM, "CJK name, encyclopedia lookup")
        if source == SourceType.X:
            if mode == FetchMode.NAME_SEARCH:
                return SourceRoute(source, True, Priority.LOW, "no handle, name search", mode=mode)
            return SourceRoute(source, True, Priority.HIGH, f"handle @{hints.x_handle}")
        if source == SourceType.GITHUB:
            priority = Priority.HIGH if founder else Priority.MEDIUM
            return SourceRoute(source, True, priority, f"handle {hints.github_handle}")
        if source == SourceType.PODCAST:
            priority = Priority.LOW if academic else Priority.MEDIUM
            return SourceRoute(source, True, priority, "podcast episode search")
        if source in COST_SENSITIVE_SOURCES:
            return SourceRoute(source, True, Priority.LOW, "forced refresh")
        if source == SourceType.EXA:
            return SourceRoute(source, True, Priority.HIGH, "general web search")
        return SourceRoute(source, True, Priority.HIGH, "verified identifier")

    def route(
        self,
        person: PersonContext,
        official_links: Optional[List[OfficialLink]] = None,
        force_refresh: bool = False,
        sources: Optional[List[SourceType]] = None,
    ) -> RoutingPlan:
        """
        Build the routing plan for a person.

        Args:
            person: Identity signals
            official_links: Links the person controls
            force_refresh: Enables cost-sensitive sources
            sources: Restrict routing to these sources (others are disabled)

        Returns:
            RoutingPlan with enabled routes first, high to low priority
        """
        hints = parse_official_links(official_links or [], person)
        academic = self.is_academic(person, hints.orcid)
        founder = self.is_tech_founder(person)
        allowed = {SourceType(s) for s in sources} if sources else None

        routes: List[SourceRoute] = []
        for source in SourceType:
            if allowed is not None and source not in allowed:
                routes.append(SourceRoute(source, False, reason="not requested"))
                continue
            routes.append(self.route_source(source, person, hints, force_refresh, academic, founder))

        routes.sort(key=lambda r: (not r.enabled, PRIORITY_ORDER[r.priority]))

        if academic:
            threshold = ACADEMIC_THRESHOLD
        elif founder:
            threshold = FOUNDER_THRESHOLD
        else:
            threshold = DEFAULT_THRESHOLD

        plan = RoutingPlan(
            person=person,
            routes=routes,
            confidence_threshold=threshold,
            search_strategy=self.build_search_strategy(person),
            hints=hints,
            is_academic=academic,
            is_tech_founder=founder,
        )
        logger.info(
            f"Routing for {person.name}: "
            f"{', '.join(f'{r.source.value}({r.priority.value})' for r in plan.enabled_routes)}; "
            f"threshold={threshold}"
        )
        return plan

    def skipped_reasons(self, plan: RoutingPlan) -> Dict[str, str]:
        """Reasons for every disabled source, keyed by source value."""
        return {r.source.value: r.reason for r in plan.routes if not r.enabled}
