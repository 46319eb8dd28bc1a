"""
People API endpoints.

Trigger profile builds and read back build status and quality.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from profilebuilder.core.database import get_db
from profilebuilder.core.models import Person, PersonStatus
from profilebuilder.services.build_orchestrator import BuildRequest, ProfileBuildOrchestrator
from profilebuilder.services.quality_score import QualityScore, score_person
from profilebuilder.sources.types import SourceType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/people", tags=["people"])


class BuildTriggerRequest(BaseModel):
    """Request model for a profile build."""

    force_refresh: bool = Field(
        False, description="Refetch every source and enable cost-sensitive sources"
    )
    sources: Optional[List[SourceType]] = Field(
        None, description="Restrict the build to these sources"
    )
    locale: Optional[str] = Field(
        None, description="Display locale for organization and role names (zh, en)"
    )


class BuildTriggerResponse(BaseModel):
    person_id: int
    status: str
    message: str


class PersonStatusResponse(BaseModel):
    id: int
    name: str
    status: str
    completeness: Optional[int] = 0
    source_last_fetched: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def _get_person_or_404(db: Session, person_id: int) -> Person:
    person = db.query(Person).filter(Person.id == person_id).first()
    if not person or person.status == PersonStatus.DELETED:
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    return person


@router.post("/{person_id}/build", response_model=BuildTriggerResponse, status_code=202)
async def trigger_build(
    person_id: int,
    background_tasks: BackgroundTasks,
    request: Optional[BuildTriggerRequest] = None,
    db: Session = Depends(get_db),
):
    """
    Queue a profile build for a person.

    The build runs in the background; poll GET /people/{person_id} for status.
    A person already building is rejected with 409.
    """
    person = _get_person_or_404(db, person_id)
    if person.status == PersonStatus.BUILDING:
        raise HTTPException(status_code=409, detail=f"Person {person_id} is already building")

    request = request or BuildTriggerRequest()
    build_request = BuildRequest(
        person_id=person.id,
        force_refresh=request.force_refresh,
        sources=request.sources,
        locale=request.locale,
    )
    background_tasks.add_task(_run_build, build_request)

    return BuildTriggerResponse(
        person_id=person.id,
        status="queued",
        message=f"Build queued for {person.name}",
    )


@router.get("/{person_id}", response_model=PersonStatusResponse)
def get_person(person_id: int, db: Session = Depends(get_db)):
    """Build status, completeness and per-source last-fetched timestamps."""
    person = _get_person_or_404(db, person_id)
    return PersonStatusResponse(
        id=person.id,
        name=person.name,
        status=PersonStatus(person.status).value,
        completeness=person.completeness or 0,
        source_last_fetched=person.source_last_fetched or {},
        updated_at=person.updated_at,
    )


@router.get("/{person_id}/quality", response_model=QualityScore)
def get_person_quality(person_id: int, db: Session = Depends(get_db)):
    """Full quality breakdown and grade."""
    person = _get_person_or_404(db, person_id)
    return score_person(db, person)


# ============================================
# Background Task Functions
# ============================================


async def _run_build(request: BuildRequest):
    """Run one build with its own session."""
    try:
        result = await ProfileBuildOrchestrator().build_person(request)
        logger.info(f"Background build for person {request.person_id} finished: {result.status}")
    except Exception as e:
        logger.error(f"Background build for person {request.person_id} failed: {e}", exc_info=True)
