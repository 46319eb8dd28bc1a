"""
QA stage for a build's merged items.

For each item:
1. Auto-fix cheap defects (hashes, dates, whitespace, title)
2. Reject incomplete, empty or within-batch duplicate items
3. Route items whose url hash is already stored to the update path
4. Approve official items without scoring
5. Run identity verification on the rest
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from profilebuilder.core.api_errors import ErrorCode
from profilebuilder.services.identity_verifier import IdentityVerifier
from profilebuilder.sources.normalizer import hash_content, hash_url
from profilebuilder.sources.types import NormalizedItem, PersonContext

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
MIN_YEAR = 1900
MAX_YEAR = 2100


class QARejectionReason(str, Enum):
    WRONG_PERSON = "wrong_person"
    LOW_CONFIDENCE = "low_confidence"
    DUPLICATE = "duplicate"
    INCOMPLETE = "incomplete"
    EMPTY_CONTENT = "empty_content"


class FixableIssue(str, Enum):
    MISSING_URL_HASH = "missing_url_hash"
    MISSING_CONTENT_HASH = "missing_content_hash"
    INVALID_DATE = "invalid_date"
    MISSING_DATE = "missing_date"
    WHITESPACE_CONTENT = "whitespace_content"
    MISSING_TITLE = "missing_title"


class QAConfig(BaseModel):
    """Per-build QA settings."""
    confidence_threshold: int = Field(50, ge=0, le=100, description="Minimum verifier confidence (0-100)")
    enable_identity_check: bool = True
    enable_deduplication: bool = True
    enable_auto_fix: bool = True
    min_content_length: int = Field(20, ge=0)


class SourceCounts(BaseModel):
    approved: int = 0
    updated: int = 0
    rejected: int = 0
    fixed: int = 0


class QAReport(BaseModel):
    total: int = 0
    approved_count: int = 0
    update_count: int = 0
    rejected_count: int = 0
    fixed_count: int = 0
    by_reason: Dict[str, int] = Field(default_factory=dict)
    by_fix: Dict[str, int] = Field(default_factory=dict)
    by_source: Dict[str, SourceCounts] = Field(default_factory=dict)


@dataclass
class RejectedItem:
    item: NormalizedItem
    reason: QARejectionReason
    details: str
    code: Optional[ErrorCode] = None


@dataclass
class FixedItem:
    original: NormalizedItem
    fixed: NormalizedItem
    issues: List[FixableIssue]
    fixes: List[str]


@dataclass
class QAResult:
    """approved: new items to insert; updates: items already stored."""

    approved: List[NormalizedItem] = field(default_factory=list)
    updates: List[NormalizedItem] = field(default_factory=list)
    rejected: List[RejectedItem] = field(default_factory=list)
    fixed: List[FixedItem] = field(default_factory=list)
    report: QAReport = field(default_factory=QAReport)

    @property
    def accepted(self) -> List[NormalizedItem]:
        return self.approved + self.updates


class QAService:
    """Identity verification, repair and duplicate suppression over a batch."""

    def __init__(self, verifier: Optional[IdentityVerifier] = None):
        self.verifier = verifier or IdentityVerifier()

    def check(
        self,
        items: Iterable[NormalizedItem],
        person: PersonContext,
        existing_url_hashes: Optional[Set[str]] = None,
        config: Optional[QAConfig] = None,
    ) -> QAResult:
        """
        Run QA over a batch of items.

        Args:
            items: Merged adapter output
            person: Target identity
            existing_url_hashes: url hashes already stored for this person
            config: QA settings (threshold comes from the routing plan)

        Returns:
            QAResult with approved, updates, rejected and fixed lists
        """
        cfg = config or QAConfig()
        existing = set(existing_url_hashes or ())
        result = QAResult()
        report = result.report
        seen_url_hashes: Set[str] = set()
        seen_content_hashes: Set[str] = set()

        for item in items:
            report.total += 1
            counts = report.by_source.setdefault(str(item.source_type), SourceCounts())

            processed = item
            if cfg.enable_auto_fix:
                fix = self.try_auto_fix(item)
                if fix is not None:
                    processed = fix.fixed
                    result.fixed.append(fix)
                    counts.fixed += 1
                    for issue in fix.issues:
                        report.by_fix[issue.value] = report.by_fix.get(issue.value, 0) + 1

            rejection = self.run_checks(processed, seen_url_hashes, seen_content_hashes, cfg)

            if rejection is None and processed.url_hash in existing:
                result.updates.append(processed)
                counts.updated += 1
                seen_url_hashes.add(processed.url_hash)
                seen_content_hashes.add(processed.content_hash)
                continue

            if rejection is None and not processed.is_official and cfg.enable_identity_check:
                rejection = self.verify_identity(processed, person, cfg)

            if rejection is not None:
                result.rejected.append(rejection)
                counts.rejected += 1
                reason = rejection.reason.value
                report.by_reason[reason] = report.by_reason.get(reason, 0) + 1
                continue

            result.approved.append(processed)
            counts.approved += 1
            seen_url_hashes.add(processed.url_hash)
            seen_content_hashes.add(processed.content_hash)

        report.approved_count = len(result.approved)
        report.update_count = len(result.updates)
        report.rejected_count = len(result.rejected)
        report.fixed_count = len(result.fixed)

        logger.info(
            f"QA for {person.name}: total={report.total}, approved={report.approved_count}, "
            f"updates={report.update_count}, fixed={report.fixed_count}, "
            f"rejected={report.rejected_count}"
        )
        if report.rejected_count:
            logger.info(f"QA rejections by reason: {report.by_reason}")
        return result

    def try_auto_fix(self, item: NormalizedItem) -> Optional[FixedItem]:
        """Repair cheap defects; returns None when nothing changed."""
        issues: List[FixableIssue] = []
        fixes: List[str] = []
        updates: Dict[str, object] = {}

        text = item.text or ""
        normalized_text = _WHITESPACE_RE.sub(" ", text).strip()
        if normalized_text != text:
            updates["text"] = normalized_text
            updates["content_hash"] = hash_content(normalized_text)
            issues.append(FixableIssue.WHITESPACE_CONTENT)
            fixes.append("Normalized whitespace in content")
            text = normalized_text

        if not item.url_hash and item.url:
            updates["url_hash"] = hash_url(item.url)
            issues.append(FixableIssue.MISSING_URL_HASH)
            fixes.append("Generated url hash from URL")

        if not item.content_hash and "content_hash" not in updates and text:
            updates["content_hash"] = hash_content(text)
            issues.append(FixableIssue.MISSING_CONTENT_HASH)
            fixes.append("Generated content hash from text")

        published = item.published_at
        if published is not None:
            if published.tzinfo is not None:
                published = published.astimezone(timezone.utc).replace(tzinfo=None)
            if not (MIN_YEAR <= published.year <= MAX_YEAR):
                updates["published_at"] = None
                issues.append(FixableIssue.INVALID_DATE)
                fixes.append(f"Dropped out-of-range date {item.published_at.isoformat()}")
            elif published != item.published_at:
                updates["published_at"] = published
                issues.append(FixableIssue.INVALID_DATE)
                fixes.append("Converted date to naive UTC")
        elif not item.is_career:
            updates["published_at"] = item.fetched_at
            issues.append(FixableIssue.MISSING_DATE)
            fixes.append("Defaulted missing publish date to fetch time")

        if not item.title and text:
            preview = text[:50].strip()
            updates["title"] = preview + ("..." if len(text) > 50 else "")
            issues.append(FixableIssue.MISSING_TITLE)
            fixes.append("Generated title from text")

        if not issues:
            return None
        return FixedItem(original=item, fixed=item.model_copy(update=updates), issues=issues, fixes=fixes)

    def run_checks(
        self,
        item: NormalizedItem,
        seen_url_hashes: Set[str],
        seen_content_hashes: Set[str],
        cfg: QAConfig,
    ) -> Optional[RejectedItem]:
        """Structural checks; identity is checked separately."""
        if not item.url or not item.url_hash:
            return RejectedItem(item, QARejectionReason.INCOMPLETE, "Missing required field: url")

        # Career rows carry their payload in metadata, official items are trusted
        if not item.is_career and not item.is_official:
            if len((item.text or "").strip()) < cfg.min_content_length:
                return RejectedItem(
                    item,
                    QARejectionReason.EMPTY_CONTENT,
                    f"Content too short: {len(item.text or '')} chars (min: {cfg.min_content_length})",
                )

        if cfg.enable_deduplication:
            if item.url_hash in seen_url_hashes:
                return RejectedItem(item, QARejectionReason.DUPLICATE, f"Duplicate URL hash: {item.url_hash}")
            has_text = bool((item.text or "").strip())
            if has_text and not item.is_career and item.content_hash in seen_content_hashes:
                return RejectedItem(
                    item, QARejectionReason.DUPLICATE, f"Duplicate content hash: {item.content_hash}"
                )
        return None

    def verify_identity(
        self,
        item: NormalizedItem,
        person: PersonContext,
        cfg: QAConfig,
    ) -> Optional[RejectedItem]:
        verdict = self.verifier.verify(person, item, cfg.confidence_threshold)
        if verdict.is_match:
            return None
        if verdict.rejection_reason:
            return RejectedItem(
                item,
                QARejectionReason.WRONG_PERSON,
                verdict.rejection_reason,
                code=ErrorCode.IDENTITY_REJECTED,
            )
        return RejectedItem(
            item,
            QARejectionReason.LOW_CONFIDENCE,
            f"Confidence {verdict.confidence:.2f} below threshold {cfg.confidence_threshold}",
            code=ErrorCode.IDENTITY_REJECTED,
        )
