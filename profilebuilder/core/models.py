"""
SQLAlchemy models for profile records.

Tables:
- people: profile records and their build lifecycle
- person_items: normalized content items, unique per (person, url hash)
- organizations: normalized employers, schools and award bodies
- person_roles: person <-> organization tenures (career graph edges)
- cards: LLM-generated learning cards, unique per (person, title)
- profile_build_jobs: one row per build run
"""
import enum

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, JSON,
    String, Text, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class PersonStatus(str, enum.Enum):
    """Person lifecycle status - ONLY these values allowed."""
    PENDING = "pending"
    BUILDING = "building"
    READY = "ready"
    PARTIAL = "partial"
    ERROR = "error"
    DELETED = "deleted"


class OrganizationType(str, enum.Enum):
    COMPANY = "company"
    UNIVERSITY = "university"
    OTHER = "other"


class BuildJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class Person(Base):
    """
    Profile record for a notable individual.

    Identity fields are written by intake flows; the build orchestrator
    only touches status, completeness and source_last_fetched.
    """
    __tablename__ = "people"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    name = Column(String(300), nullable=False, index=True)
    english_name = Column(String(300))
    aliases = Column(JSON, default=list)  # ordered, unique
    description = Column(Text)
    avatar_url = Column(String(1000))

    # Display-only free text (normalized entities live in organizations)
    occupations = Column(JSON, default=list)
    organizations = Column(JSON, default=list)

    # [{"type": "x", "url": "...", "handle": "..."}]
    official_links = Column(JSON, default=list)

    # External identifiers
    qid = Column(String(50), index=True)
    orcid = Column(String(50))

    # Build lifecycle
    status = Column(
        Enum(PersonStatus, native_enum=False, length=20),
        nullable=False,
        default=PersonStatus.PENDING,
        index=True,
    )
    completeness = Column(Integer, default=0)
    source_last_fetched = Column(JSON, default=dict)  # {"exa": "2024-01-01T00:00:00"}

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    items = relationship("PersonItem", back_populates="person", cascade="all, delete-orphan")
    roles = relationship("PersonRole", back_populates="person", cascade="all, delete-orphan")
    cards = relationship("Card", back_populates="person", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("name <> ''", name="ck_people_name_not_empty"),
    )

    def __repr__(self):
        return f"<Person(id={self.id}, name='{self.name}', status='{self.status}')>"


class PersonItem(Base):
    """
    A normalized content item collected for a person.

    (person_id, url_hash) is the identity key: re-ingesting the same URL
    updates this row in place.
    """
    __tablename__ = "person_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False)

    source_type = Column(String(30), nullable=False, index=True)
    url = Column(String(2000), nullable=False)
    url_hash = Column(String(32), nullable=False)
    content_hash = Column(String(32))

    title = Column(String(1000))
    text = Column(Text)
    published_at = Column(DateTime)

    is_official = Column(Boolean, default=False)
    confidence = Column(Integer, default=0)  # 0-100
    item_metadata = Column("metadata", JSON, default=dict)

    fetched_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    person = relationship("Person", back_populates="items")

    __table_args__ = (
        UniqueConstraint("person_id", "url_hash", name="uq_person_item_url"),
        Index("ix_person_items_person_source", "person_id", "source_type"),
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_person_items_confidence"),
    )

    def __repr__(self):
        return f"<PersonItem(id={self.id}, source='{self.source_type}', url='{self.url[:50]}')>"


class Organization(Base):
    """
    Normalized organization (company, university, other).

    Created and looked up only by the career graph builder.
    """
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(500), nullable=False, index=True)
    localized_name = Column(String(500))
    org_type = Column(
        Enum(OrganizationType, native_enum=False, length=20),
        nullable=False,
        default=OrganizationType.COMPANY,
    )
    external_id = Column(String(50), unique=True)  # knowledge-graph QID when known

    created_at = Column(DateTime, server_default=func.now())

    roles = relationship("PersonRole", back_populates="organization")

    def __repr__(self):
        return f"<Organization(id={self.id}, name='{self.name}', external_id='{self.external_id}')>"


class PersonRole(Base):
    """
    A tenure of a person at an organization.

    (person_id, organization_id, role, start_date) identifies a tenure.
    Known dates are never overwritten with null.
    """
    __tablename__ = "person_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)

    role = Column(String(300), nullable=False, default="")
    localized_role = Column(String(300))
    event_type = Column(String(20), default="career")  # education, career, award

    start_date = Column(Date)
    end_date = Column(Date)

    source = Column(String(30))
    confidence = Column(Integer, default=0)  # 0-100

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    person = relationship("Person", back_populates="roles")
    organization = relationship("Organization", back_populates="roles")

    __table_args__ = (
        UniqueConstraint(
            "person_id", "organization_id", "role", "start_date",
            name="uq_person_role_tenure",
        ),
        Index("ix_person_roles_person", "person_id"),
    )

    def __repr__(self):
        return (
            f"<PersonRole(person_id={self.person_id}, org_id={self.organization_id}, "
            f"role='{self.role}', start={self.start_date})>"
        )


class Card(Base):
    """
    A short learning card distilled from a person's stored items.

    Titles are unique per person; regenerating never duplicates a card.
    """
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(20), nullable=False)  # insight, quote, story, method, fact
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    tags = Column(JSON, default=list)
    source_url = Column(String(2000))
    importance = Column(Integer, default=5)  # 1-10

    created_at = Column(DateTime, server_default=func.now())

    person = relationship("Person", back_populates="cards")

    __table_args__ = (
        UniqueConstraint("person_id", "title", name="uq_card_person_title"),
        CheckConstraint("importance >= 1 AND importance <= 10", name="ck_cards_importance"),
    )

    def __repr__(self):
        return f"<Card(id={self.id}, person_id={self.person_id}, type='{self.type}', title='{self.title}')>"


class ProfileBuildJob(Base):
    """
    Tracks every build run.

    Every orchestrated build creates and finalizes one of these.
    """
    __tablename__ = "profile_build_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(Integer, ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        Enum(BuildJobStatus, native_enum=False, length=20),
        nullable=False,
        default=BuildJobStatus.PENDING,
        index=True,
    )
    config = Column(JSON)  # {"force_refresh": true, "sources": [...]}

    sources_run = Column(JSON)
    source_errors = Column(JSON)  # {"exa": "API_ERROR: ..."}
    qa_report = Column(JSON)
    items_created = Column(Integer, default=0)
    items_updated = Column(Integer, default=0)
    result_status = Column(String(20))  # person status the build resolved to

    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<ProfileBuildJob(id={self.id}, person_id={self.person_id}, status='{self.status}')>"
