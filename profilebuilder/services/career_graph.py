"""
Career graph builder.

Turns career-tagged items into Organization rows and PersonRole edges:

1. Resolve the organization: external id -> fuzzy name -> create
2. Localize organization and role names in one translation batch
3. Upsert the role keyed by (person, organization, role, start_date)

Dates only move forward: a known start or end date is never replaced
with null, and a dated event fills an undated tenure in place instead of
adding a second row.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from profilebuilder.agentic.fuzzy_matcher import OrganizationNameMatcher, get_default_matcher, text_mentions
from profilebuilder.agentic.translator import Translator, needs_translation
from profilebuilder.core.models import Organization, OrganizationType, PersonRole
from profilebuilder.sources.types import CareerEvent, CareerEventType, NormalizedItem

logger = logging.getLogger(__name__)

EDUCATION_KEYWORDS = [
    "university", "college", "institute of technology", "school", "academy",
    "universität", "université", "polytechnic",
    "大学", "学院", "学校",
]


@dataclass
class CareerGraphResult:
    events: int = 0
    organizations_created: int = 0
    roles_created: int = 0
    roles_updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "events": self.events,
            "organizations_created": self.organizations_created,
            "roles_created": self.roles_created,
            "roles_updated": self.roles_updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


def extract_career_events(items: Iterable[NormalizedItem]) -> List[CareerEvent]:
    """Career events carried by career-tagged items."""
    events = []
    for item in items:
        if not item.is_career:
            continue
        try:
            event = item.career_event
        except ValueError as e:
            logger.warning(f"Malformed career payload on {item.url}: {e}")
            continue
        if event is None or not event.organization.strip():
            continue
        if event.source is None:
            event.source = str(item.source_type)
        events.append(event)
    return events


def infer_org_type(name: str, event_type: Optional[str] = None) -> OrganizationType:
    if event_type == CareerEventType.EDUCATION.value:
        return OrganizationType.UNIVERSITY
    if any(text_mentions(name, keyword) for keyword in EDUCATION_KEYWORDS):
        return OrganizationType.UNIVERSITY
    return OrganizationType.COMPANY


class CareerGraphBuilder:
    """
    Builds a person's organization/role graph.

    Each event is committed on its own; a failing event is rolled back,
    logged and skipped.
    """

    def __init__(
        self,
        db: Session,
        matcher: Optional[OrganizationNameMatcher] = None,
        translator: Optional[Translator] = None,
    ):
        self.db = db
        self.matcher = matcher or get_default_matcher()
        self.translator = translator
        self._org_index: Optional[List[Tuple[int, str, Optional[str]]]] = None

    # ------------------------------------------------------------------
    # Organization resolution
    # ------------------------------------------------------------------

    def _candidates(self) -> List[Tuple[int, str, Optional[str]]]:
        if self._org_index is None:
            self._org_index = [
                (org_id, name, external_id)
                for org_id, name, external_id in self.db.query(
                    Organization.id, Organization.name, Organization.external_id
                ).all()
            ]
        return self._org_index

    def find_organization(self, name: str, external_id: Optional[str] = None) -> Optional[Organization]:
        """
        Resolve an organization by external id, then by fuzzy name.

        Name candidates that carry a different external id are never matched.
        """
        if external_id:
            org = self.db.query(Organization).filter(Organization.external_id == external_id).first()
            if org is not None:
                return org

        candidates = [
            (org_id, org_name)
            for org_id, org_name, org_external in self._candidates()
            if not (external_id and org_external and org_external != external_id)
        ]
        best = self.matcher.find_best_match(name, candidates)
        if best is None:
            localized = self.db.query(Organization.id, Organization.localized_name).filter(
                Organization.localized_name.isnot(None)
            ).all()
            best = self.matcher.find_best_match(name, [(i, n) for i, n in localized])
        if best is None:
            return None
        return self.db.get(Organization, best[0])

    def resolve_organization(
        self,
        event: CareerEvent,
        localized_name: Optional[str] = None,
    ) -> Tuple[Organization, bool]:
        """Find or create the event's organization; returns (org, created)."""
        org = self.find_organization(event.organization, event.organization_id)
        if org is not None:
            if event.organization_id and not org.external_id:
                org.external_id = event.organization_id
                self._org_index = None
            if localized_name and not org.localized_name:
                org.localized_name = localized_name
            return org, False

        org = Organization(
            name=event.organization.strip(),
            localized_name=localized_name,
            org_type=infer_org_type(event.organization, event.type),
            external_id=event.organization_id,
        )
        self.db.add(org)
        self.db.flush()
        self._candidates().append((org.id, org.name, org.external_id))
        logger.debug(f"Created organization {org.name} ({org.org_type})")
        return org, True

    # ------------------------------------------------------------------
    # Role upsert
    # ------------------------------------------------------------------

    def upsert_role(
        self,
        person_id: int,
        org: Organization,
        event: CareerEvent,
        localized_role: Optional[str] = None,
    ) -> str:
        """
        Upsert one tenure.

        Returns:
            "created", "updated" or "skipped"
        """
        role_name = (event.role or "").strip()
        base = self.db.query(PersonRole).filter(
            PersonRole.person_id == person_id,
            PersonRole.organization_id == org.id,
        )

        if event.start_date is not None:
            exact = base.filter(PersonRole.role == role_name, PersonRole.start_date == event.start_date).first()
        else:
            exact = base.filter(PersonRole.role == role_name, PersonRole.start_date.is_(None)).first()

        if exact is not None:
            changed = False
            if exact.end_date is None and event.end_date is not None:
                exact.end_date = event.end_date
                changed = True
            if localized_role and not exact.localized_role:
                exact.localized_role = localized_role
                changed = True
            return "updated" if changed else "skipped"

        if event.start_date is not None:
            undated = [
                r for r in base.filter(PersonRole.start_date.is_(None)).all()
                if r.role == role_name or not r.role or not role_name
            ]
            if undated:
                row = undated[0]
                if event.confidence < (row.confidence or 0):
                    return "skipped"
                row.start_date = event.start_date
                if event.end_date is not None:
                    row.end_date = event.end_date
                if role_name and not row.role:
                    row.role = role_name
                if localized_role and not row.localized_role:
                    row.localized_role = localized_role
                row.confidence = event.confidence
                row.source = event.source
                return "updated"
        else:
            # An undated event never duplicates a dated tenure
            dated = base.filter(PersonRole.role == role_name, PersonRole.start_date.isnot(None)).first()
            if dated is not None:
                return "skipped"

        self.db.add(PersonRole(
            person_id=person_id,
            organization_id=org.id,
            role=role_name,
            localized_role=localized_role,
            event_type=event.type,
            start_date=event.start_date,
            end_date=event.end_date,
            source=event.source,
            confidence=event.confidence,
        ))
        return "created"

    # ------------------------------------------------------------------
    # Localization
    # ------------------------------------------------------------------

    async def localize(self, events: List[CareerEvent]) -> Dict[str, str]:
        """Translate org names and roles in one batch; missing keys mean untranslated."""
        if self.translator is None or not self.translator.is_available:
            return {}
        texts: List[str] = []
        for event in events:
            for text in (event.organization, event.role):
                if text and needs_translation(text, self.translator.locale) and text not in texts:
                    texts.append(text)
        if not texts:
            return {}
        translated = await self.translator.translate_batch(texts)
        return {src: dst for src, dst in zip(texts, translated) if dst and dst != src}

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def build(self, person_id: int, items: Iterable[NormalizedItem]) -> CareerGraphResult:
        """
        Build the career graph for a person from career-tagged items.

        Args:
            person_id: Person the events belong to
            items: Items from any source; only career-tagged ones are used

        Returns:
            CareerGraphResult with counts and per-event errors
        """
        events = extract_career_events(items)
        result = CareerGraphResult(events=len(events))
        if not events:
            return result

        translations = await self.localize(events)

        for event in events:
            try:
                org, created = self.resolve_organization(event, translations.get(event.organization))
                outcome = self.upsert_role(person_id, org, event, translations.get(event.role or ""))
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                self._org_index = None
                message = f"{event.organization}: {e}"
                logger.error(f"Career event failed for person {person_id}: {message}")
                result.errors.append(message)
                continue

            if created:
                result.organizations_created += 1
            if outcome == "created":
                result.roles_created += 1
            elif outcome == "updated":
                result.roles_updated += 1
            else:
                result.skipped += 1

        logger.info(
            f"Career graph for person {person_id}: {result.events} events, "
            f"{result.organizations_created} orgs created, {result.roles_created} roles created, "
            f"{result.roles_updated} updated, {result.skipped} skipped, {len(result.errors)} errors"
        )
        return result


def dedupe_organizations(db: Session, matcher: Optional[OrganizationNameMatcher] = None) -> int:
    """
    Merge organizations sharing a normalized name.

    The survivor is the one with an external id, then the most roles,
    then a localized name. Roles are re-pointed to the survivor; a role
    that would duplicate an existing tenure is folded into it.
    Organizations with conflicting external ids are left apart.

    Returns:
        Number of organizations removed
    """
    matcher = matcher or get_default_matcher()

    role_counts = dict(
        db.query(PersonRole.organization_id, func.count(PersonRole.id))
        .group_by(PersonRole.organization_id)
        .all()
    )

    groups: Dict[str, List[Organization]] = defaultdict(list)
    for org in db.query(Organization).order_by(Organization.id).all():
        key = matcher.normalize(org.name).replace(" ", "")
        if key:
            groups[key].append(org)

    removed = 0
    for key, orgs in groups.items():
        if len(orgs) < 2:
            continue
        orgs.sort(key=lambda o: (
            o.external_id is None,
            -role_counts.get(o.id, 0),
            o.localized_name is None,
            o.id,
        ))
        keeper = orgs[0]
        for dup in orgs[1:]:
            if dup.external_id and keeper.external_id and dup.external_id != keeper.external_id:
                continue
            _merge_into(db, keeper, dup)
            removed += 1
        db.commit()

    if removed:
        logger.info(f"Merged {removed} duplicate organizations")
    return removed


def _merge_into(db: Session, keeper: Organization, dup: Organization) -> None:
    if not keeper.localized_name and dup.localized_name:
        keeper.localized_name = dup.localized_name

    for role in db.query(PersonRole).filter(PersonRole.organization_id == dup.id).all():
        clash = db.query(PersonRole).filter(
            PersonRole.person_id == role.person_id,
            PersonRole.organization_id == keeper.id,
            PersonRole.role == role.role,
            PersonRole.start_date.is_(None) if role.start_date is None
            else PersonRole.start_date == role.start_date,
        ).first()
        if clash is not None:
            if clash.end_date is None and role.end_date is not None:
                clash.end_date = role.end_date
            db.delete(role)
        else:
            role.organization_id = keeper.id

    logger.debug(f"Merging organization {dup.id} '{dup.name}' into {keeper.id} '{keeper.name}'")
    db.flush()
    db.delete(dup)
    db.flush()
