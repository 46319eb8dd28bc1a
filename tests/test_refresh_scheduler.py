"""
Unit tests for the stale-profile refresh scheduler.
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.orm import sessionmaker

from profilebuilder.core.models import BuildJobStatus, Person, PersonStatus, ProfileBuildJob
from profilebuilder.jobs import refresh_scheduler
from profilebuilder.jobs.refresh_scheduler import (
    JOB_ID,
    RefreshScheduler,
    check_and_refresh_stale_people,
    get_scheduler_status,
    register_refresh_checker,
)
from profilebuilder.services.build_orchestrator import BuildResult

NOW = datetime(2024, 6, 1, 12, 0, 0)

ALL_FETCHED = [
    "exa", "x", "youtube", "github", "openalex", "podcast", "career", "baike",
]


def fetched(days_ago, sources=ALL_FETCHED):
    stamp = (NOW - timedelta(days=days_ago)).isoformat()
    return {source: stamp for source in sources}


def current():
    stamp = datetime.utcnow().isoformat()
    return {source: stamp for source in ALL_FETCHED}


def add_person(db, name, status=PersonStatus.READY, last_fetched=None):
    person = Person(
        name=name,
        status=status,
        source_last_fetched=last_fetched if last_fetched is not None else current(),
    )
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


class TestStaleSources:

    @pytest.mark.unit
    def test_fresh_person_has_nothing_stale(self):
        person = Person(name="Jane Doe", source_last_fetched=fetched(0))
        assert RefreshScheduler.stale_sources(person, NOW) == []

    @pytest.mark.unit
    def test_daily_sources_go_stale_first(self):
        person = Person(name="Jane Doe", source_last_fetched=fetched(2))
        assert set(RefreshScheduler.stale_sources(person, NOW)) == {"exa", "x", "youtube", "github"}

    @pytest.mark.unit
    def test_never_fetched_and_unparseable_are_stale(self):
        last = fetched(0, ["exa", "x", "youtube", "openalex", "podcast", "career", "baike"])
        last["github"] = "not a date"
        person = Person(name="Jane Doe", source_last_fetched=last)

        assert RefreshScheduler.stale_sources(person, NOW) == ["github"]

    @pytest.mark.unit
    def test_cost_sensitive_sources_are_never_scheduled(self):
        person = Person(name="Jane Doe", source_last_fetched={})
        stale = RefreshScheduler.stale_sources(person, NOW)

        assert "perplexity" not in stale
        assert "ai_knowledge" not in stale
        assert len(stale) == len(ALL_FETCHED)


class TestPeopleForRefresh:

    @pytest.mark.unit
    def test_selects_stale_people_in_refreshable_states(self, test_db):
        ready = add_person(test_db, "Ready Stale", last_fetched=fetched(3))
        add_person(test_db, "Ready Fresh")
        errored = add_person(test_db, "Error Stale", status=PersonStatus.ERROR, last_fetched=fetched(3))
        add_person(test_db, "Pending", status=PersonStatus.PENDING, last_fetched={})
        add_person(test_db, "Building", status=PersonStatus.BUILDING, last_fetched={})
        add_person(test_db, "Deleted", status=PersonStatus.DELETED, last_fetched={})

        due = RefreshScheduler(test_db).get_people_for_refresh(now=NOW)

        assert [p.id for p in due] == [ready.id, errored.id]

    @pytest.mark.unit
    def test_people_with_active_builds_are_skipped(self, test_db):
        busy = add_person(test_db, "Busy", last_fetched={})
        idle = add_person(test_db, "Idle", status=PersonStatus.PARTIAL, last_fetched={})
        test_db.add(ProfileBuildJob(person_id=busy.id, status=BuildJobStatus.RUNNING))
        test_db.add(ProfileBuildJob(person_id=idle.id, status=BuildJobStatus.SUCCESS))
        test_db.commit()

        scheduler = RefreshScheduler(test_db)

        assert scheduler.has_active_job(busy.id) is True
        assert scheduler.has_active_job(idle.id) is False
        assert [p.name for p in scheduler.get_people_for_refresh(now=NOW)] == ["Idle"]

    @pytest.mark.unit
    def test_limit(self, test_db):
        for i in range(4):
            add_person(test_db, f"Person {i}", last_fetched={})

        due = RefreshScheduler(test_db).get_people_for_refresh(limit=2, now=NOW)

        assert [p.name for p in due] == ["Person 0", "Person 1"]


class TestCheckAndRefresh:

    @pytest.fixture
    def session_factory(self, test_db, monkeypatch):
        factory = sessionmaker(autocommit=False, autoflush=False, bind=test_db.get_bind())
        monkeypatch.setattr(refresh_scheduler, "get_session_factory", lambda: factory)
        return factory

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rebuilds_stale_people(self, test_db, session_factory):
        stale = add_person(test_db, "Stale", last_fetched={})
        add_person(test_db, "Fresh")

        orchestrator = MagicMock()
        orchestrator.build_many = AsyncMock(return_value=[
            BuildResult(person_id=stale.id, status="ready", started_at=datetime.utcnow()),
        ])

        count = await check_and_refresh_stale_people(orchestrator=orchestrator)

        assert count == 1
        requests = orchestrator.build_many.call_args.args[0]
        assert [r.person_id for r in requests] == [stale.id]
        assert requests[0].force_refresh is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nothing_to_do(self, test_db, session_factory):
        add_person(test_db, "Fresh")
        orchestrator = MagicMock()
        orchestrator.build_many = AsyncMock()

        assert await check_and_refresh_stale_people(orchestrator=orchestrator) == 0
        orchestrator.build_many.assert_not_called()


class TestSchedulerRegistration:

    @pytest.fixture(autouse=True)
    def fresh_scheduler(self, monkeypatch):
        monkeypatch.setattr(refresh_scheduler, "_scheduler", None)

    @pytest.mark.unit
    def test_register_refresh_checker(self):
        assert register_refresh_checker(interval_minutes=15) is True

        status = get_scheduler_status()

        assert status["running"] is False
        assert status["job_count"] == 1
        assert status["jobs"][0]["id"] == JOB_ID

