"""
Pydantic models shared by every source adapter.

These types define the common envelope adapters return (DataSourceResult
holding NormalizedItems) and the inputs they receive (FetchParams built
from a PersonContext).
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from profilebuilder.core.api_errors import ErrorCode


class SourceType(str, Enum):
    """Closed set of content sources."""
    EXA = "exa"
    X = "x"
    YOUTUBE = "youtube"
    GITHUB = "github"
    OPENALEX = "openalex"
    PODCAST = "podcast"
    CAREER = "career"
    BAIKE = "baike"
    PERPLEXITY = "perplexity"
    AI_KNOWLEDGE = "ai_knowledge"


class FetchMode(str, Enum):
    """How an account-based source looks a person up."""
    HANDLE = "handle"
    NAME_SEARCH = "name_search"


class CareerEventType(str, Enum):
    EDUCATION = "education"
    CAREER = "career"
    AWARD = "award"


class OfficialLink(BaseModel):
    """A link the person controls (website, blog, x, github, youtube, orcid...)."""
    type: str
    url: str
    handle: Optional[str] = None


class PersonContext(BaseModel):
    """Identity signals for the person being built."""
    id: Optional[int] = None
    name: str
    english_name: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    occupations: List[str] = Field(default_factory=list)
    qid: Optional[str] = None
    orcid: Optional[str] = None

    @property
    def search_name(self) -> str:
        """Name to search with: English/romanized name first."""
        return self.english_name or self.name

    @property
    def all_names(self) -> List[str]:
        names = [self.name]
        if self.english_name:
            names.append(self.english_name)
        names.extend(self.aliases)
        seen = set()
        unique = []
        for n in names:
            if n and n.lower() not in seen:
                seen.add(n.lower())
                unique.append(n)
        return unique


class FetchParams(BaseModel):
    """Input to SourceAdapter.fetch()."""
    person: PersonContext
    since: Optional[datetime] = None
    force_refresh: bool = False
    max_results: Optional[int] = None
    mode: FetchMode = FetchMode.HANDLE

    # Source-specific hints
    handle: Optional[str] = None
    channel_id: Optional[str] = None
    orcid: Optional[str] = None
    qid: Optional[str] = None
    seed_domains: List[str] = Field(default_factory=list)
    context_keywords: List[str] = Field(default_factory=list)
    exclude_terms: List[str] = Field(default_factory=list)


class CareerEvent(BaseModel):
    """
    A raw career/education/award event.

    Typed payload carried by career-tagged items under
    metadata["career_event"].
    """
    type: CareerEventType = CareerEventType.CAREER
    organization: str
    organization_id: Optional[str] = Field(None, description="External id (QID) of the organization")
    role: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    source: Optional[str] = None
    confidence: int = Field(50, ge=0, le=100)

    class Config:
        use_enum_values = True


class NormalizedItem(BaseModel):
    """
    The common shape every adapter's output is converted into.

    url_hash is the identity key within a person's item set;
    content_hash is the change-detection key.
    """
    source_type: SourceType
    url: str
    url_hash: str = ""
    content_hash: str = ""
    title: str = ""
    text: str = ""
    published_at: Optional[datetime] = None
    is_official: bool = False
    confidence: int = Field(50, ge=0, le=100)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True

    @property
    def career_event(self) -> Optional[CareerEvent]:
        payload = self.metadata.get("career_event")
        if payload is None:
            return None
        if isinstance(payload, CareerEvent):
            return payload
        return CareerEvent(**payload)

    @property
    def is_career(self) -> bool:
        return "career_event" in self.metadata


class SourceError(BaseModel):
    """Why an adapter failed; failure is data, not an exception."""
    code: ErrorCode
    message: str
    retryable: bool = False

    class Config:
        use_enum_values = True


class SourceStats(BaseModel):
    fetched: int = 0
    validated: int = 0
    filtered: int = 0


class DataSourceResult(BaseModel):
    """Result of one adapter run."""
    source: SourceType
    success: bool = True
    items: List[NormalizedItem] = Field(default_factory=list)
    error: Optional[SourceError] = None
    stats: SourceStats = Field(default_factory=SourceStats)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        use_enum_values = True

    @classmethod
    def ok(
        cls,
        source: SourceType,
        items: Optional[List[NormalizedItem]] = None,
        stats: Optional[SourceStats] = None,
    ) -> "DataSourceResult":
        items = items or []
        if stats is None:
            stats = SourceStats(fetched=len(items), validated=len(items))
        return cls(source=source, success=True, items=items, stats=stats)

    @classmethod
    def failed(
        cls,
        source: SourceType,
        code: ErrorCode,
        message: str,
        retryable: bool = False,
    ) -> "DataSourceResult":
        return cls(
            source=source,
            success=False,
            error=SourceError(code=code, message=message, retryable=retryable),
        )
