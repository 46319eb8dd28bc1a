"""
Profile quality scoring.

Deterministic weighted score, 0-100:
- Basic info (30): 7.5 each for avatar, description, occupation, organization
- Official links (20): 10 for a social handle, 5 each for code hosting and website
- Content richness (30): up to 6 each for posts, videos, repos, papers, cards
- Freshness (20): loses 5 points per week since the last update
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from profilebuilder.core.models import Card, Person, PersonItem
from profilebuilder.sources.types import SourceType

logger = logging.getLogger(__name__)

BASIC_FIELD_POINTS = 7.5
SOCIAL_LINK_POINTS = 10
CODE_LINK_POINTS = 5
WEBSITE_LINK_POINTS = 5
CONTENT_POINTS = 6
FRESHNESS_MAX = 20.0
FRESHNESS_LOSS_PER_WEEK = 5.0

# content bucket -> (target count, item source types counted)
CONTENT_TARGETS = {
    "posts": (10, [SourceType.X.value]),
    "videos": (5, [SourceType.YOUTUBE.value]),
    "repos": (3, [SourceType.GITHUB.value]),
    "papers": (5, [SourceType.OPENALEX.value]),
    "cards": (10, []),
}

SOCIAL_LINK_TYPES = {"x", "twitter"}
CODE_LINK_TYPES = {"github"}
WEBSITE_LINK_TYPES = {"website", "official"}

GRADE_BANDS = [(90, "A"), (70, "B"), (50, "C"), (30, "D")]


class QualityInputs(BaseModel):
    """Signals the score is computed from."""
    avatar_url: Optional[str] = None
    description: Optional[str] = None
    occupations: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    official_links: List[Dict[str, Any]] = Field(default_factory=list)
    item_counts: Dict[str, int] = Field(default_factory=dict, description="Stored items per source type")
    cards: int = 0
    updated_at: Optional[datetime] = None


class QualityScore(BaseModel):
    basic_info: float
    official_links: float
    content_richness: float
    freshness: float
    total: int
    grade: str
    missing_fields: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)


def grade_for(total: float) -> str:
    for floor, grade in GRADE_BANDS:
        if total >= floor:
            return grade
    return "F"


def _link_types(links: List[Dict[str, Any]]) -> set:
    types = set()
    for link in links:
        if isinstance(link, dict):
            link_type = link.get("type")
        else:
            link_type = getattr(link, "type", None)
        if link_type:
            types.add(str(link_type).lower())
    return types


def _days_since(updated_at: datetime, now: datetime) -> float:
    if updated_at.tzinfo is not None:
        updated_at = updated_at.astimezone(timezone.utc).replace(tzinfo=None)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    return max(0.0, (now - updated_at).total_seconds() / 86400)


def calculate_quality_score(inputs: QualityInputs, now: Optional[datetime] = None) -> QualityScore:
    """
    Score a profile.

    Args:
        inputs: Profile signals
        now: Reference time for freshness (defaults to utcnow)

    Returns:
        QualityScore with the four components, rounded total and grade
    """
    now = now or datetime.utcnow()
    missing: List[str] = []

    basic_info = 0.0
    for label, present in (
        ("avatar", bool(inputs.avatar_url)),
        ("description", bool(inputs.description)),
        ("occupation", bool(inputs.occupations)),
        ("organization", bool(inputs.organizations)),
    ):
        if present:
            basic_info += BASIC_FIELD_POINTS
        else:
            missing.append(label)

    link_types = _link_types(inputs.official_links)
    official_links = 0.0
    if link_types & SOCIAL_LINK_TYPES:
        official_links += SOCIAL_LINK_POINTS
    else:
        missing.append("social_link")
    if link_types & CODE_LINK_TYPES:
        official_links += CODE_LINK_POINTS
    if link_types & WEBSITE_LINK_TYPES:
        official_links += WEBSITE_LINK_POINTS

    content_richness = 0.0
    counts: Dict[str, int] = {}
    for bucket, (target, source_types) in CONTENT_TARGETS.items():
        if bucket == "cards":
            count = inputs.cards
        else:
            count = sum(inputs.item_counts.get(s, 0) for s in source_types)
        counts[bucket] = count
        content_richness += min(count / target, 1.0) * CONTENT_POINTS
        if count == 0:
            missing.append(bucket)

    if inputs.updated_at is None:
        freshness = FRESHNESS_MAX
        days = None
    else:
        days = _days_since(inputs.updated_at, now)
        freshness = max(0.0, FRESHNESS_MAX - days / 7 * FRESHNESS_LOSS_PER_WEEK)

    total = round(basic_info + official_links + content_richness + freshness)

    return QualityScore(
        basic_info=round(basic_info, 2),
        official_links=round(official_links, 2),
        content_richness=round(content_richness, 2),
        freshness=round(freshness, 2),
        total=total,
        grade=grade_for(total),
        missing_fields=missing,
        details={
            "content_counts": counts,
            "link_types": sorted(link_types),
            "days_since_update": round(days, 2) if days is not None else None,
        },
    )


def quality_inputs_for(session: Session, person: Person) -> QualityInputs:
    """Gather scoring inputs for a stored person."""
    rows = (
        session.query(PersonItem.source_type, func.count(PersonItem.id))
        .filter(PersonItem.person_id == person.id)
        .group_by(PersonItem.source_type)
        .all()
    )
    return QualityInputs(
        avatar_url=person.avatar_url,
        description=person.description,
        occupations=person.occupations or [],
        organizations=person.organizations or [],
        official_links=person.official_links or [],
        item_counts={source: count for source, count in rows},
        cards=session.query(func.count(Card.id)).filter(Card.person_id == person.id).scalar() or 0,
        updated_at=person.updated_at,
    )


def score_person(session: Session, person: Person, now: Optional[datetime] = None) -> QualityScore:
    score = calculate_quality_score(quality_inputs_for(session, person), now)
    logger.debug(f"Quality for person {person.id}: {score.total} ({score.grade})")
    return score
