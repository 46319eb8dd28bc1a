"""
Tests for the career graph builder and organization de-duplication.
"""
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from profilebuilder.agentic.llm_client import LLMResponse
from profilebuilder.agentic.translator import Translator
from profilebuilder.core.models import Organization, OrganizationType, PersonRole
from profilebuilder.services.career_graph import (
    CareerGraphBuilder,
    dedupe_organizations,
    extract_career_events,
    infer_org_type,
)
from profilebuilder.sources.normalizer import create_normalized_item
from profilebuilder.sources.types import CareerEvent, SourceType


def career_item(org, role=None, start=None, end=None, org_id=None, confidence=50, source=SourceType.CAREER):
    event = CareerEvent(
        organization=org,
        organization_id=org_id,
        role=role,
        start_date=start,
        end_date=end,
        confidence=confidence,
    )
    return create_normalized_item(
        source_type=source,
        url=f"wikidata:Q999#{org};{role or ''}@{start or ''}",
        title=org,
        is_official=source == SourceType.CAREER,
        career_event=event,
    )


@pytest.fixture
def builder(test_db):
    return CareerGraphBuilder(test_db)


# ============================================================================
# Helpers
# ============================================================================

class TestHelpers:

    @pytest.mark.unit
    def test_extract_career_events(self, make_item):
        items = [
            make_item(),
            career_item("OpenAI", "Researcher"),
            make_item(url="https://example.com/bad", metadata={"career_event": {"role": "x"}}),
        ]
        events = extract_career_events(items)

        assert [e.organization for e in events] == ["OpenAI"]
        assert events[0].source == "career"

    @pytest.mark.unit
    def test_infer_org_type(self):
        assert infer_org_type("Stanford University") == OrganizationType.UNIVERSITY
        assert infer_org_type("清华大学") == OrganizationType.UNIVERSITY
        assert infer_org_type("Acme", "education") == OrganizationType.UNIVERSITY
        assert infer_org_type("Acme Robotics") == OrganizationType.COMPANY


# ============================================================================
# Build
# ============================================================================

class TestBuild:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_name_variants_share_one_organization(self, builder, test_db, sample_person):
        items = [
            career_item("OpenAI", "Researcher", start=date(2020, 1, 1)),
            career_item("Open AI", "Member of Technical Staff", start=date(2022, 3, 1)),
        ]
        result = await builder.build(sample_person.id, items)

        assert result.organizations_created == 1
        assert result.roles_created == 2
        assert test_db.query(Organization).count() == 1
        assert test_db.query(PersonRole).filter(PersonRole.person_id == sample_person.id).count() == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rebuild_is_idempotent(self, builder, test_db, sample_person):
        items = [
            career_item("OpenAI", "Researcher", start=date(2020, 1, 1)),
            career_item("Stanford University", "PhD", start=date(2015, 9, 1), end=date(2019, 6, 1)),
        ]
        await builder.build(sample_person.id, items)
        second = await CareerGraphBuilder(test_db).build(sample_person.id, items)

        assert second.organizations_created == 0
        assert second.roles_created == 0
        assert second.skipped == 2
        assert test_db.query(PersonRole).count() == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_known_end_date_is_not_cleared(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [
            career_item("Acme", "Engineer", start=date(2018, 1, 1), end=date(2019, 1, 1)),
        ])
        await builder.build(sample_person.id, [
            career_item("Acme", "Engineer", start=date(2018, 1, 1)),
        ])

        role = test_db.query(PersonRole).one()
        assert role.end_date == date(2019, 1, 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_end_date_is_filled_in(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [career_item("Acme", "Engineer", start=date(2018, 1, 1))])
        result = await builder.build(sample_person.id, [
            career_item("Acme", "Engineer", start=date(2018, 1, 1), end=date(2020, 1, 1)),
        ])

        assert result.roles_updated == 1
        assert test_db.query(PersonRole).one().end_date == date(2020, 1, 1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dated_event_fills_undated_tenure(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [
            career_item("Acme", "Engineer", source=SourceType.BAIKE, confidence=40),
        ])
        result = await builder.build(sample_person.id, [
            career_item("Acme", "Engineer", start=date(2018, 1, 1), confidence=80),
        ])

        role = test_db.query(PersonRole).one()
        assert result.roles_updated == 1
        assert role.start_date == date(2018, 1, 1)
        assert role.source == "career"
        assert role.confidence == 80

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_weaker_dated_event_leaves_undated_tenure(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [career_item("Acme", "Engineer", confidence=90)])
        result = await builder.build(sample_person.id, [
            career_item("Acme", "Engineer", start=date(2018, 1, 1), confidence=30, source=SourceType.BAIKE),
        ])

        assert result.skipped == 1
        role = test_db.query(PersonRole).one()
        assert role.start_date is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_undated_event_does_not_duplicate_dated_tenure(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [career_item("Acme", "Engineer", start=date(2018, 1, 1))])
        result = await builder.build(sample_person.id, [career_item("Acme", "Engineer")])

        assert result.skipped == 1
        assert test_db.query(PersonRole).count() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_external_id_is_adopted(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [career_item("Open AI", "Researcher")])
        await builder.build(sample_person.id, [career_item("OpenAI", "Researcher", org_id="Q21708200")])

        org = test_db.query(Organization).one()
        assert org.external_id == "Q21708200"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_conflicting_external_ids_stay_apart(self, builder, test_db, sample_person):
        await builder.build(sample_person.id, [
            career_item("Mercury", "Engineer", org_id="Q100"),
            career_item("Mercury", "Analyst", org_id="Q200"),
        ])

        assert test_db.query(Organization).count() == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_event_is_skipped(self, builder, test_db, sample_person):
        items = [career_item("Acme", "Engineer"), career_item("Globex", "Analyst")]

        with patch.object(builder, "upsert_role", side_effect=[RuntimeError("boom"), "created"]):
            result = await builder.build(sample_person.id, items)

        assert len(result.errors) == 1
        assert result.errors[0].startswith("Acme")
        assert result.roles_created == 1
        assert [o.name for o in test_db.query(Organization).all()] == ["Globex"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_career_items(self, builder, sample_person, make_item):
        result = await builder.build(sample_person.id, [make_item()])
        assert result.to_dict()["events"] == 0


class TestLocalization:

    @pytest.fixture
    def translator(self):
        llm = MagicMock()
        llm.is_available = True
        llm.complete = AsyncMock(return_value=LLMResponse(
            content="斯坦福大学\n博士研究生",
            input_tokens=10,
            output_tokens=8,
            model="test-model",
        ))
        return Translator(llm, locale="zh")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_names_are_translated_in_one_batch(self, test_db, sample_person, translator):
        builder = CareerGraphBuilder(test_db, translator=translator)
        await builder.build(sample_person.id, [
            career_item("Stanford University", "PhD student", start=date(2015, 9, 1)),
            career_item("Stanford University", "PhD student", start=date(2015, 9, 1), source=SourceType.BAIKE),
        ])

        org = test_db.query(Organization).one()
        role = test_db.query(PersonRole).one()
        assert org.localized_name == "斯坦福大学"
        assert org.org_type == OrganizationType.UNIVERSITY
        assert role.localized_role == "博士研究生"
        assert translator.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unavailable_translator_is_ignored(self, test_db, sample_person):
        builder = CareerGraphBuilder(test_db, translator=Translator(None))
        assert await builder.localize([CareerEvent(organization="OpenAI")]) == {}


# ============================================================================
# Organization de-duplication
# ============================================================================

class TestDedupeOrganizations:

    @pytest.mark.unit
    def test_merges_into_org_with_external_id(self, test_db, sample_person):
        plain = Organization(name="Acme")
        known = Organization(name="ACME Inc", external_id="Q1")
        test_db.add_all([plain, known])
        test_db.flush()
        test_db.add_all([
            PersonRole(person_id=sample_person.id, organization_id=plain.id, role="Engineer",
                       end_date=date(2020, 1, 1)),
            PersonRole(person_id=sample_person.id, organization_id=known.id, role="Engineer"),
            PersonRole(person_id=sample_person.id, organization_id=plain.id, role="Manager"),
        ])
        test_db.commit()

        removed = dedupe_organizations(test_db)

        assert removed == 1
        orgs = test_db.query(Organization).all()
        assert [o.external_id for o in orgs] == ["Q1"]
        roles = test_db.query(PersonRole).order_by(PersonRole.role).all()
        assert [(r.role, r.organization_id) for r in roles] == [
            ("Engineer", known.id),
            ("Manager", known.id),
        ]
        assert roles[0].end_date == date(2020, 1, 1)

    @pytest.mark.unit
    def test_conflicting_external_ids_are_not_merged(self, test_db):
        test_db.add_all([
            Organization(name="Globex", external_id="Q2"),
            Organization(name="Globex Corp", external_id="Q3"),
        ])
        test_db.commit()

        assert dedupe_organizations(test_db) == 0
        assert test_db.query(Organization).count() == 2
