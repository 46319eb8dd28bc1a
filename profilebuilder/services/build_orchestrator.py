"""
Profile build orchestrator.

Coordinates one person build end to end:
1. Mark the person building and open a ProfileBuildJob
2. Build the PersonContext and route sources
3. Skip sources fetched within their refresh interval (unless forced)
4. Fan out to adapters concurrently, each as a retried queue step
5. QA the merged items against already-stored url hashes
6. Upsert items per (person_id, url_hash)
7. Feed career-tagged items to the career graph builder
8. Generate learning cards from the accepted items (when an LLM is configured)
9. Recompute completeness and resolve the person's status
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from profilebuilder.agentic.llm_client import get_llm_client
from profilebuilder.agentic.translator import Translator
from profilebuilder.core.api_errors import error_code_for
from profilebuilder.core.config import Settings, get_settings
from profilebuilder.core.database import get_session_factory
from profilebuilder.core.models import (
    BuildJobStatus,
    Person,
    PersonItem,
    PersonStatus,
    ProfileBuildJob,
)
from profilebuilder.services.career_graph import CareerGraphBuilder
from profilebuilder.services.card_generator import CardGenerator
from profilebuilder.services.qa_service import QAConfig, QAReport, QAService
from profilebuilder.services.quality_score import calculate_quality_score, quality_inputs_for
from profilebuilder.services.source_router import RoutingPlan, SourceRouter
from profilebuilder.services.task_queue import BuildTaskQueue, StepFailed
from profilebuilder.sources.registry import SourceAdapterRegistry, get_registry
from profilebuilder.sources.types import (
    DataSourceResult,
    NormalizedItem,
    OfficialLink,
    PersonContext,
    SourceType,
)

logger = logging.getLogger(__name__)

REFRESH_INTERVALS: Dict[SourceType, timedelta] = {
    SourceType.EXA: timedelta(days=1),
    SourceType.X: timedelta(days=1),
    SourceType.YOUTUBE: timedelta(days=1),
    SourceType.GITHUB: timedelta(days=1),
    SourceType.OPENALEX: timedelta(days=7),
    SourceType.PODCAST: timedelta(days=7),
    SourceType.CAREER: timedelta(days=7),
    SourceType.BAIKE: timedelta(days=7),
    SourceType.PERPLEXITY: timedelta(days=30),
    SourceType.AI_KNOWLEDGE: timedelta(days=30),
}


class BuildRequest(BaseModel):
    """Build trigger event; fields left empty fall back to the stored person."""
    person_id: int
    person_name: Optional[str] = None
    english_name: Optional[str] = None
    qid: Optional[str] = None
    orcid: Optional[str] = None
    official_links: List[OfficialLink] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    force_refresh: bool = False
    sources: Optional[List[SourceType]] = None
    locale: Optional[str] = Field(None, description="Display locale for career names (zh, en)")


class SourceRunSummary(BaseModel):
    success: bool
    items: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int = 1


class BuildResult(BaseModel):
    person_id: int
    job_id: Optional[int] = None
    status: str
    completeness: int = 0
    sources_run: List[str] = Field(default_factory=list)
    skipped_sources: Dict[str, str] = Field(default_factory=dict)
    source_results: Dict[str, SourceRunSummary] = Field(default_factory=dict)
    qa_report: Optional[QAReport] = None
    career: Optional[Dict[str, Any]] = None
    items_created: int = 0
    items_updated: int = 0
    cards_created: int = 0
    errors: List[str] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None


def resolve_status(failures: int, sources_run: int) -> PersonStatus:
    """ready with no failures, partial while failures stay under half, else error."""
    if failures == 0:
        return PersonStatus.READY
    if failures * 2 < sources_run:
        return PersonStatus.PARTIAL
    return PersonStatus.ERROR


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning(f"Ignoring unparseable last-fetched timestamp: {value!r}")
        return None


class ProfileBuildOrchestrator:
    """
    Builds person profiles from every routed source.

    Collaborators are injectable; omitted ones are built from settings.
    """

    def __init__(
        self,
        db_session: Optional[Session] = None,
        registry: Optional[SourceAdapterRegistry] = None,
        router: Optional[SourceRouter] = None,
        qa: Optional[QAService] = None,
        career_builder: Optional[CareerGraphBuilder] = None,
        card_generator: Optional[CardGenerator] = None,
        queue: Optional[BuildTaskQueue] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            db_session: SQLAlchemy session. If not provided, creates one per build.
        """
        self.settings = settings or get_settings()
        self._provided_session = db_session
        self.registry = registry or get_registry()
        self.router = router or SourceRouter(self.settings)
        self.qa = qa or QAService()
        self._career_builder = career_builder
        self._card_generator = card_generator
        self.queue = queue or BuildTaskQueue(
            max_workers=self.settings.max_concurrent_builds,
            step_retries=self.settings.build_step_retries,
        )

    def _get_session(self) -> Session:
        if self._provided_session:
            return self._provided_session
        SessionLocal = get_session_factory()
        return SessionLocal()

    def _career_builder_for(self, session: Session, locale: Optional[str]) -> CareerGraphBuilder:
        if self._career_builder is not None:
            return self._career_builder
        translator = None
        if locale:
            translator = Translator(get_llm_client(settings=self.settings), locale=locale)
        return CareerGraphBuilder(session, translator=translator)

    def _card_generator_for(self) -> CardGenerator:
        if self._card_generator is None:
            self._card_generator = CardGenerator(get_llm_client(settings=self.settings))
        return self._card_generator

    # ------------------------------------------------------------------
    # Context and routing
    # ------------------------------------------------------------------

    @staticmethod
    def build_context(person: Person, request: BuildRequest) -> PersonContext:
        aliases: List[str] = []
        for alias in list(person.aliases or []) + list(request.aliases):
            if alias and alias not in aliases:
                aliases.append(alias)
        return PersonContext(
            id=person.id,
            name=request.person_name or person.name,
            english_name=request.english_name or person.english_name,
            aliases=aliases,
            organizations=list(person.organizations or []),
            occupations=list(person.occupations or []),
            qid=request.qid or person.qid,
            orcid=request.orcid or person.orcid,
        )

    @staticmethod
    def official_links_for(person: Person, request: BuildRequest) -> List[OfficialLink]:
        if request.official_links:
            return list(request.official_links)
        links = []
        for link in person.official_links or []:
            try:
                links.append(OfficialLink(**link))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed official link on person {person.id}: {e}")
        return links

    def select_due_sources(
        self,
        plan: RoutingPlan,
        last_fetched: Dict[str, Any],
        force_refresh: bool,
        now: datetime,
    ) -> Tuple[List[SourceType], Dict[str, str]]:
        """
        Enabled sources that are due, plus skip reasons for the rest.

        A source fetched within its refresh interval is skipped unless forced.
        """
        due: List[SourceType] = []
        skipped: Dict[str, str] = {}
        for route in plan.routes:
            source = route.source
            if not route.enabled:
                skipped[source.value] = route.reason
                continue
            if source not in self.registry:
                skipped[source.value] = "no adapter registered"
                continue
            fetched_at = _parse_timestamp(last_fetched.get(source.value))
            interval = REFRESH_INTERVALS.get(source)
            if not force_refresh and fetched_at and interval and now - fetched_at < interval:
                skipped[source.value] = f"fresh (fetched {fetched_at.isoformat()})"
                continue
            due.append(source)
        return due, skipped

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    async def run_source(
        self,
        plan: RoutingPlan,
        source: SourceType,
        since: Optional[datetime],
        force_refresh: bool,
    ) -> Tuple[DataSourceResult, int]:
        """
        Run one adapter as a retried step.

        Returns:
            (result, attempts); retry exhaustion yields the last failed result
        """
        adapter = self.registry.get(source)
        params = plan.build_fetch_params(source, since=since, force_refresh=force_refresh)

        async def attempt() -> DataSourceResult:
            result = await adapter.safe_fetch(params)
            if not result.success and result.error is not None and result.error.retryable:
                raise StepFailed(f"{source.value}: {result.error.message}", payload=result)
            return result

        outcome = await self.queue.run_step(source.value, attempt)
        if outcome.ok:
            return outcome.value, outcome.attempts
        if isinstance(outcome.value, DataSourceResult):
            return outcome.value, outcome.attempts

        code, retryable = error_code_for(outcome.error)
        return DataSourceResult.failed(source, code, str(outcome.error), retryable), outcome.attempts

    async def fetch_all(
        self,
        plan: RoutingPlan,
        sources: List[SourceType],
        last_fetched: Dict[str, Any],
        force_refresh: bool,
    ) -> Dict[SourceType, Tuple[DataSourceResult, int]]:
        """Run every due source concurrently; one source failing never stops the others."""
        tasks = []
        for source in sources:
            since = None if force_refresh else _parse_timestamp(last_fetched.get(source.value))
            tasks.append(self.run_source(plan, source, since, force_refresh))

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: Dict[SourceType, Tuple[DataSourceResult, int]] = {}
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"[{source.value}] Unexpected failure outside adapter: {outcome}")
                code, retryable = error_code_for(outcome)
                outcome = (DataSourceResult.failed(source, code, str(outcome), retryable), 1)
            results[source] = outcome
        return results

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_item(row: PersonItem, item: NormalizedItem) -> None:
        row.source_type = str(item.source_type)
        row.url = item.url
        row.content_hash = item.content_hash
        row.title = item.title
        row.text = item.text
        row.published_at = item.published_at
        row.is_official = item.is_official
        row.confidence = item.confidence
        row.item_metadata = item.model_dump(mode="json")["metadata"]
        row.fetched_at = item.fetched_at

    def persist_items(self, session: Session, person_id: int, items: List[NormalizedItem]) -> Tuple[int, int]:
        """
        Upsert items keyed by (person_id, url_hash).

        Returns:
            (created, updated); a failing item is logged and skipped
        """
        created = updated = 0
        for item in items:
            try:
                row = session.query(PersonItem).filter(
                    PersonItem.person_id == person_id,
                    PersonItem.url_hash == item.url_hash,
                ).first()
                if row is None:
                    row = PersonItem(person_id=person_id, url_hash=item.url_hash)
                    self._apply_item(row, item)
                    session.add(row)
                    session.commit()
                    created += 1
                else:
                    self._apply_item(row, item)
                    session.commit()
                    updated += 1
            except Exception as e:
                session.rollback()
                logger.error(f"Failed to save item {item.url} for person {person_id}: {e}")
        return created, updated

    async def generate_cards(self, session: Session, person: Person, items: List[NormalizedItem]) -> int:
        """
        Turn accepted content items into stored learning cards.

        Returns:
            Number of cards created; 0 when no LLM is configured or generation fails
        """
        generator = self._card_generator_for()
        if not generator.is_available:
            return 0

        candidates = sorted(
            (item for item in items if not item.is_career),
            key=lambda item: (item.is_official, item.confidence),
            reverse=True,
        )
        try:
            cards = await generator.generate(
                person.name,
                candidates,
                existing_titles=generator.existing_titles(session, person.id),
            )
            return generator.save(session, person.id, cards)
        except Exception as e:
            session.rollback()
            logger.error(f"Card generation failed for person {person.id}: {e}")
            return 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def build_person(self, request: BuildRequest) -> BuildResult:
        """
        Build (or refresh) one person's profile.

        Args:
            request: Build trigger event

        Returns:
            BuildResult describing sources, QA, persistence and final status
        """
        session = self._get_session()
        started_at = datetime.utcnow()
        result = BuildResult(person_id=request.person_id, status=PersonStatus.ERROR.value, started_at=started_at)

        try:
            person = session.query(Person).filter(Person.id == request.person_id).first()
            if not person:
                result.errors.append(f"Person {request.person_id} not found")
                result.completed_at = datetime.utcnow()
                return result

            job = ProfileBuildJob(
                person_id=person.id,
                status=BuildJobStatus.RUNNING,
                config={
                    "force_refresh": request.force_refresh,
                    "sources": [s.value for s in request.sources] if request.sources else None,
                },
                started_at=started_at,
            )
            session.add(job)
            person.status = PersonStatus.BUILDING
            session.commit()
            result.job_id = job.id

            try:
                await self._run_build(session, person, request, result)
                job.status = BuildJobStatus.SUCCESS
            except Exception as e:
                session.rollback()
                logger.exception(f"Build failed for person {request.person_id}: {e}")
                result.errors.append(str(e))
                result.status = PersonStatus.ERROR.value
                person.status = PersonStatus.ERROR
                job.status = BuildJobStatus.FAILED

            result.completed_at = datetime.utcnow()
            job.sources_run = result.sources_run
            job.source_errors = {
                source: f"{summary.error_code}: {summary.error_message}"
                for source, summary in result.source_results.items()
                if not summary.success
            }
            job.qa_report = result.qa_report.model_dump() if result.qa_report else None
            job.items_created = result.items_created
            job.items_updated = result.items_updated
            job.result_status = result.status
            job.completed_at = result.completed_at
            session.commit()

            logger.info(
                f"Build for {person.name} ({person.id}) finished: status={result.status}, "
                f"completeness={result.completeness}, created={result.items_created}, "
                f"updated={result.items_updated}"
            )
            return result
        finally:
            if not self._provided_session:
                session.close()

    async def _run_build(
        self,
        session: Session,
        person: Person,
        request: BuildRequest,
        result: BuildResult,
    ) -> None:
        now = datetime.utcnow()
        context = self.build_context(person, request)
        plan = self.router.route(
            context,
            self.official_links_for(person, request),
            force_refresh=request.force_refresh,
            sources=request.sources,
        )

        last_fetched = dict(person.source_last_fetched or {})
        due, skipped = self.select_due_sources(plan, last_fetched, request.force_refresh, now)
        result.skipped_sources = skipped
        result.sources_run = [s.value for s in due]

        outcomes = await self.fetch_all(plan, due, last_fetched, request.force_refresh)

        items: List[NormalizedItem] = []
        failures = 0
        for source, (source_result, attempts) in outcomes.items():
            items.extend(source_result.items)
            summary = SourceRunSummary(
                success=source_result.success,
                items=len(source_result.items),
                attempts=attempts,
            )
            if not source_result.success:
                failures += 1
                if source_result.error is not None:
                    summary.error_code = str(source_result.error.code)
                    summary.error_message = source_result.error.message
                    result.errors.append(f"{source.value}: {source_result.error.message}")
            else:
                last_fetched[source.value] = now.isoformat()
            result.source_results[source.value] = summary

        existing_hashes = {
            url_hash for (url_hash,) in session.query(PersonItem.url_hash).filter(
                PersonItem.person_id == person.id
            ).all()
        }
        qa_result = self.qa.check(
            items,
            context,
            existing_url_hashes=existing_hashes,
            config=QAConfig(confidence_threshold=plan.confidence_threshold),
        )
        result.qa_report = qa_result.report

        result.items_created, result.items_updated = self.persist_items(session, person.id, qa_result.accepted)

        career_builder = self._career_builder_for(session, request.locale)
        career = await career_builder.build(person.id, qa_result.accepted)
        result.career = career.to_dict()

        result.cards_created = await self.generate_cards(session, person, qa_result.accepted)

        inputs = quality_inputs_for(session, person)
        inputs.updated_at = now
        result.completeness = calculate_quality_score(inputs, now).total

        status = resolve_status(failures, len(due))
        result.status = status.value
        person.status = status
        person.completeness = result.completeness
        person.source_last_fetched = last_fetched
        session.commit()

    async def build_many(self, requests: List[BuildRequest]) -> List[BuildResult]:
        """
        Build several people under the global build cap.

        Each build uses its own session unless one was injected.
        """
        outcomes = await self.queue.run_all([
            (lambda r=request: self.build_person(r)) for request in requests
        ])

        results: List[BuildResult] = []
        for request, outcome in zip(requests, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Build for person {request.person_id} raised: {outcome}")
                results.append(BuildResult(
                    person_id=request.person_id,
                    status=PersonStatus.ERROR.value,
                    errors=[str(outcome)],
                    started_at=datetime.utcnow(),
                    completed_at=datetime.utcnow(),
                ))
            else:
                results.append(outcome)
        return results
