"""
Unit tests for source routing.
"""
import pytest

from profilebuilder.core.api_errors import ErrorCode
from profilebuilder.services.source_router import (
    Priority,
    SourceRouter,
    parse_official_links,
)
from profilebuilder.sources.types import FetchMode, OfficialLink, PersonContext, SourceType


@pytest.fixture
def router(settings):
    return SourceRouter(settings)


@pytest.fixture
def jane():
    return PersonContext(
        id=7,
        name="Jane Doe",
        organizations=["Acme AI"],
        occupations=["engineer"],
        qid="Q999",
    )


# ============================================================================
# Link parsing
# ============================================================================

class TestParseOfficialLinks:

    @pytest.mark.unit
    def test_handles_from_urls(self):
        hints = parse_official_links([
            OfficialLink(type="twitter", url="https://x.com/@janedoe"),
            OfficialLink(type="github", url="https://github.com/jdoe/"),
        ])
        assert hints.x_handle == "janedoe"
        assert hints.github_handle == "jdoe"

    @pytest.mark.unit
    def test_explicit_handle_wins(self):
        hints = parse_official_links([
            OfficialLink(type="x", url="https://x.com/other", handle="@janedoe"),
        ])
        assert hints.x_handle == "janedoe"

    @pytest.mark.unit
    def test_youtube_needs_channel_id(self):
        named = parse_official_links([OfficialLink(type="youtube", url="https://youtube.com/@jane")])
        channel = parse_official_links([
            OfficialLink(type="youtube", url="https://www.youtube.com/channel/UCabc123"),
        ])

        assert named.youtube_channel_id is None
        assert channel.youtube_channel_id == "UCabc123"

    @pytest.mark.unit
    def test_seed_domains_and_orcid(self, jane):
        hints = parse_official_links([
            OfficialLink(type="website", url="https://JaneDoe.dev/about"),
            OfficialLink(type="blog", url="https://janedoe.dev/posts"),
            OfficialLink(type="orcid", url="https://orcid.org/0000-0001-2345-6789"),
        ], jane)

        assert hints.seed_domains == ["janedoe.dev"]
        assert hints.orcid == "0000-0001-2345-6789"
        assert hints.qid == "Q999"


# ============================================================================
# Routing decisions
# ============================================================================

class TestRoute:

    @pytest.mark.unit
    def test_name_only_person(self, router, jane):
        plan = router.route(jane)

        assert plan.enabled_sources == [
            SourceType.EXA, SourceType.CAREER, SourceType.PODCAST, SourceType.X,
        ]
        assert plan.route_for("x").mode == FetchMode.NAME_SEARCH
        assert plan.route_for("x").priority == Priority.LOW
        assert plan.confidence_threshold == 50

        skipped = router.skipped_reasons(plan)
        assert skipped["github"] == "no code-hosting handle"
        assert skipped["youtube"] == "no channel id"
        assert skipped["openalex"] == "no ORCID"
        assert skipped["baike"] == "name has no CJK script"

    @pytest.mark.unit
    def test_handles_enable_account_sources(self, router, jane):
        links = [
            OfficialLink(type="x", url="https://x.com/janedoe"),
            OfficialLink(type="github", url="https://github.com/jdoe"),
            OfficialLink(type="youtube", url="https://www.youtube.com/channel/UCjane"),
        ]
        plan = router.route(jane, links)

        x_route = plan.route_for(SourceType.X)
        assert x_route.mode == FetchMode.HANDLE
        assert x_route.priority == Priority.HIGH
        assert plan.route_for(SourceType.GITHUB).enabled is True
        assert plan.route_for(SourceType.YOUTUBE).enabled is True

    @pytest.mark.unit
    def test_cost_guard_without_force(self, router, jane):
        plan = router.route(jane)

        for source in (SourceType.PERPLEXITY, SourceType.AI_KNOWLEDGE):
            route = plan.route_for(source)
            assert route.enabled is False
            assert route.skip_code == ErrorCode.COST_GUARD

    @pytest.mark.unit
    def test_force_refresh_enables_paid_search(self, router, jane):
        plan = router.route(jane, force_refresh=True)

        perplexity = plan.route_for(SourceType.PERPLEXITY)
        assert perplexity.enabled is True
        assert perplexity.priority == Priority.LOW
        # no LLM key configured
        assert plan.route_for(SourceType.AI_KNOWLEDGE).reason == "credential not configured"

    @pytest.mark.unit
    def test_missing_credentials_disable_sources(self, bare_settings, jane):
        plan = SourceRouter(bare_settings).route(jane)

        assert plan.route_for(SourceType.EXA).enabled is False
        assert plan.route_for(SourceType.EXA).skip_code == ErrorCode.COST_GUARD
        assert plan.route_for(SourceType.X).enabled is False
        assert plan.enabled_sources == [SourceType.CAREER, SourceType.PODCAST]

    @pytest.mark.unit
    def test_missing_identifiers(self, router):
        plan = router.route(PersonContext(name="Jane Doe"))

        assert plan.route_for(SourceType.CAREER).reason == "no QID"
        assert plan.route_for(SourceType.OPENALEX).enabled is False

    @pytest.mark.unit
    def test_cjk_name_enables_encyclopedia(self, router):
        plan = router.route(PersonContext(name="陈艾达", english_name="Ada Chen"))

        assert plan.route_for(SourceType.BAIKE).enabled is True
        assert plan.search_strategy.primary_name == "Ada Chen"
        assert plan.search_strategy.alternative_names == ["陈艾达"]

    @pytest.mark.unit
    def test_requested_sources_restrict_plan(self, router, jane):
        plan = router.route(jane, sources=["exa"])

        assert plan.enabled_sources == [SourceType.EXA]
        assert plan.route_for(SourceType.CAREER).reason == "not requested"

    @pytest.mark.unit
    def test_plan_is_deterministic(self, router, jane):
        first = router.route(jane)
        second = router.route(jane)
        assert [(r.source, r.enabled, r.priority) for r in first.routes] == [
            (r.source, r.enabled, r.priority) for r in second.routes
        ]


class TestThresholds:

    @pytest.mark.unit
    def test_academic_threshold_and_openalex(self, router):
        person = PersonContext(name="Ada Chen", occupations=["Professor"], orcid="0000-0001")
        plan = router.route(person)

        assert plan.is_academic is True
        assert plan.confidence_threshold == 70
        assert plan.route_for(SourceType.OPENALEX).enabled is True
        assert plan.route_for(SourceType.PODCAST).priority == Priority.LOW

    @pytest.mark.unit
    def test_founder_threshold_and_code_priority(self, router):
        person = PersonContext(name="Sam Park", occupations=["Co-founder and CEO"])
        plan = router.route(person, [OfficialLink(type="github", url="https://github.com/sam")])

        assert plan.confidence_threshold == 60
        assert plan.route_for(SourceType.GITHUB).priority == Priority.HIGH
        assert plan.search_strategy.exclude_terms == ["sports", "music", "actor", "politician"]


class TestBuildFetchParams:

    @pytest.mark.unit
    def test_params_carry_source_hints(self, router, jane):
        links = [
            OfficialLink(type="github", url="https://github.com/jdoe"),
            OfficialLink(type="website", url="https://janedoe.dev"),
        ]
        plan = router.route(jane, links)

        github = plan.build_fetch_params("github")
        exa = plan.build_fetch_params("exa", force_refresh=True)
        x_params = plan.build_fetch_params(SourceType.X)

        assert github.handle == "jdoe"
        assert github.seed_domains == []
        assert exa.seed_domains == ["janedoe.dev"]
        assert exa.force_refresh is True
        assert x_params.mode == FetchMode.NAME_SEARCH
        assert x_params.handle is None
        assert x_params.qid == "Q999"

    @pytest.mark.unit
    def test_search_strategy_reaches_query_sources(self, router):
        person = PersonContext(name="Sam Park", organizations=["Acme AI"], occupations=["founder"])
        plan = router.route(person)

        exa = plan.build_fetch_params("exa")
        podcast = plan.build_fetch_params("podcast")
        career = plan.build_fetch_params("career")

        assert exa.context_keywords[:2] == ["Acme AI", "founder"]
        assert exa.exclude_terms == ["sports", "music", "actor", "politician"]
        assert podcast.exclude_terms == exa.exclude_terms
        assert career.context_keywords == []
        assert career.exclude_terms == []
