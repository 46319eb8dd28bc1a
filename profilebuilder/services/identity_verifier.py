"""
Identity verification for unofficial items.

Scores how likely an item is about the target person rather than
someone who shares the name. Signals are additive from a 0.5 base:

    +0.40  external id literal (QID / ORCID) in the text
    +0.15  first organization mention (alias aware)
    +0.10  first occupation mention
    +0.05  first AI/tech keyword
    -0.30  first negative category match (also sets a rejection reason)
    +0.10  author/handle contains the name or an alias

The result is clamped to [0, 1]. An item is accepted when
confidence * 100 >= threshold and no rejection reason fired.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from profilebuilder.agentic.fuzzy_matcher import normalize_text, org_mention_variants, text_mentions
from profilebuilder.sources.types import NormalizedItem, PersonContext

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.5
EXTERNAL_ID_WEIGHT = 0.40
ORGANIZATION_WEIGHT = 0.15
OCCUPATION_WEIGHT = 0.10
POSITIVE_WEIGHT = 0.05
NEGATIVE_WEIGHT = -0.30
AUTHOR_WEIGHT = 0.10

NEGATIVE_SIGNALS: Dict[str, List[str]] = {
    "entertainment": ["演员", "歌手", "明星", "actor", "actress", "singer", "celebrity", "music video"],
    "sports": ["运动员", "足球", "篮球", "滑板", "athlete", "soccer", "basketball", "skateboard", "golf", "nba"],
    "history": ["皇帝", "古代", "朝代", "emperor", "dynasty", "ancient"],
    "gaming": ["游戏", "gaming", "vlog", "vlogger", "gameplay", "let's play"],
    "comedy": ["脱口秀", "相声", "stand-up", "comedy", "comedian"],
    "drama": ["电视剧", "剧集", "drama", "tv series", "trailer"],
}

POSITIVE_SIGNALS: List[str] = [
    "AI", "ML", "machine learning", "deep learning", "neural network", "transformer",
    "LLM", "GPT", "NLP", "computer vision", "reinforcement learning",
    "人工智能", "机器学习", "深度学习", "大模型",
    "researcher", "scientist", "engineer", "professor", "CEO", "CTO", "founder",
    "研究员", "科学家", "工程师", "教授", "创始人",
    "OpenAI", "DeepMind", "Anthropic", "NVIDIA", "Stanford", "MIT", "Berkeley", "Tsinghua",
]

# metadata keys adapters use for the item's stated author
AUTHOR_KEYS = ("author", "channel_title", "show", "authors")


@dataclass
class VerificationResult:
    is_match: bool
    confidence: float
    matched_signals: List[str] = field(default_factory=list)
    rejection_reason: Optional[str] = None


def _item_author(item: NormalizedItem) -> str:
    parts = []
    for key in AUTHOR_KEYS:
        value = item.metadata.get(key)
        if isinstance(value, list):
            parts.extend(str(v) for v in value if v)
        elif value:
            parts.append(str(value))
    return " ".join(parts)


class IdentityVerifier:
    """Scores items against a PersonContext."""

    def __init__(
        self,
        negative_signals: Optional[Dict[str, List[str]]] = None,
        positive_signals: Optional[List[str]] = None,
    ):
        self.negative_signals = negative_signals or NEGATIVE_SIGNALS
        self.positive_signals = positive_signals or POSITIVE_SIGNALS

    def score_text(
        self,
        person: PersonContext,
        text: str,
        author: str = "",
    ) -> VerificationResult:
        """Score free text; is_match uses the default 50 threshold."""
        signals: List[str] = []
        confidence = BASE_CONFIDENCE
        haystack = normalize_text(text)

        for external_id in (person.qid, person.orcid):
            if external_id and normalize_text(external_id) in haystack:
                signals.append(f"external_id:{external_id}")
                confidence += EXTERNAL_ID_WEIGHT
                break

        for org in person.organizations:
            if org and any(text_mentions(text, v) for v in org_mention_variants(org)):
                signals.append(f"org_match:{org}")
                confidence += ORGANIZATION_WEIGHT
                break

        for occupation in person.occupations:
            if occupation and text_mentions(text, occupation):
                signals.append(f"occupation_match:{occupation}")
                confidence += OCCUPATION_WEIGHT
                break

        for keyword in self.positive_signals:
            if text_mentions(text, keyword):
                signals.append(f"positive:{keyword}")
                confidence += POSITIVE_WEIGHT
                break

        rejection_reason = None
        for category, keywords in self.negative_signals.items():
            hit = next((k for k in keywords if text_mentions(text, k)), None)
            if hit:
                signals.append(f"negative:{category}:{hit}")
                confidence += NEGATIVE_WEIGHT
                rejection_reason = f"Detected {category} content: '{hit}'"
                break

        if author:
            author_norm = normalize_text(author)
            for name in person.all_names:
                name_norm = normalize_text(name)
                if name_norm and (name_norm in author_norm or name_norm.replace(" ", "") in author_norm):
                    signals.append("author_name_match")
                    confidence += AUTHOR_WEIGHT
                    break

        confidence = round(max(0.0, min(1.0, confidence)), 4)
        return VerificationResult(
            is_match=confidence >= BASE_CONFIDENCE and rejection_reason is None,
            confidence=confidence,
            matched_signals=signals,
            rejection_reason=rejection_reason,
        )

    def verify(
        self,
        person: PersonContext,
        item: NormalizedItem,
        threshold: int = 50,
    ) -> VerificationResult:
        """
        Verify one item against the person.

        Args:
            person: Target identity
            item: Item to score
            threshold: Minimum confidence on the 0-100 scale

        Returns:
            VerificationResult; is_match already accounts for threshold
        """
        text = f"{item.title}\n{item.text}\n{item.metadata.get('author_bio') or ''}"
        result = self.score_text(person, text, _item_author(item))
        result.is_match = result.confidence * 100 >= threshold and result.rejection_reason is None
        if not result.is_match:
            logger.debug(
                f"Identity check failed for '{item.title[:50]}' "
                f"(conf={result.confidence:.2f}, reason={result.rejection_reason or 'low confidence'})"
            )
        return result
