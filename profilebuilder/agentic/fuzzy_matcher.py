"""
Name normalization and similarity utilities.

One place for the case-folding, punctuation stripping and token-overlap
logic used by both the career graph builder (organization resolution)
and the QA stage (organization/name mentions in item text).

Example matches:
- "OpenAI" vs "Open AI"
- "Tsinghua University" vs "清华大学"
- "University of California, Berkeley" vs "UC Berkeley"
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

CJK_RE = re.compile(r"[\u4e00-\u9fff]")
_PUNCT_RE = re.compile(r"[^\w\s]|_", re.UNICODE)

# Minimum share of the shorter name's distinctive tokens that must overlap.
DEFAULT_OVERLAP_THRESHOLD = 0.5

# Generic words that say nothing about which organization is meant.
ORG_STOPWORDS: Set[str] = {
    "the", "of", "and", "for", "at", "de",
    "university", "universitat", "universite", "universidad", "college",
    "institute", "institution", "school", "academy",
    "inc", "incorporated", "llc", "ltd", "limited", "corp", "corporation",
    "co", "company", "plc", "pbc", "gmbh", "ag", "sa",
    "group", "holdings", "lab", "labs", "laboratory", "laboratories",
    "research", "center", "centre", "department", "technology",
}

CJK_ORG_SUFFIXES = (
    "有限责任公司", "股份有限公司", "有限公司", "研究院", "研究所",
    "实验室", "大学", "学院", "集团", "公司",
)

# Spelling and locale variants that denote the same organization.
# Keys are canonical; values are compared after compaction.
CANONICAL_ORG_NAMES: Dict[str, List[str]] = {
    "openai": ["open ai", "open.ai", "openai inc"],
    "xai": ["x.ai", "x ai"],
    "meta": ["facebook", "meta platforms", "facebook inc"],
    "bytedance": ["字节跳动"],
    "baidu": ["百度"],
    "alibaba": ["阿里巴巴", "阿里巴巴集团"],
    "tencent": ["腾讯"],
    "huawei": ["华为"],
    "stanford": ["stanford university", "斯坦福大学", "斯坦福"],
    "mit": ["massachusetts institute of technology", "麻省理工学院", "麻省理工"],
    "berkeley": ["uc berkeley", "university of california berkeley", "加州大学伯克利分校", "伯克利"],
    "cmu": ["carnegie mellon", "carnegie mellon university", "卡内基梅隆大学"],
    "tsinghua": ["tsinghua university", "清华大学", "清华"],
    "peking": ["peking university", "北京大学", "北大", "pku"],
}

# Broader aliases used only for spotting an organization mentioned in text.
ORG_MENTION_ALIASES: Dict[str, List[str]] = {
    "openai": ["open ai", "chatgpt"],
    "google": ["google ai", "google deepmind", "deepmind", "alphabet", "google brain", "google research"],
    "meta": ["meta ai", "facebook", "facebook ai", "fair"],
    "microsoft": ["microsoft research", "msft"],
    "anthropic": ["anthropic pbc"],
    "nvidia": ["nvidia research"],
    "amazon": ["aws", "amazon web services"],
    "xai": ["x.ai"],
    "baidu": ["百度"],
    "alibaba": ["阿里巴巴", "阿里", "达摩院"],
    "tencent": ["腾讯"],
    "bytedance": ["字节跳动", "字节"],
    "huawei": ["华为"],
    "stanford": ["斯坦福"],
    "mit": ["massachusetts institute of technology", "麻省理工"],
    "berkeley": ["uc berkeley", "伯克利"],
    "cmu": ["carnegie mellon", "卡内基梅隆"],
    "tsinghua": ["清华"],
    "peking": ["北大", "北京大学"],
}


@dataclass
class MatchResult:
    """Result of a fuzzy match operation."""

    matched: bool
    similarity: float
    normalized_name1: str
    normalized_name2: str


def contains_cjk(text: Optional[str]) -> bool:
    """True if the text contains CJK unified ideographs."""
    return bool(text) and bool(CJK_RE.search(text))


def normalize_text(text: Optional[str]) -> str:
    """
    Case-fold, strip punctuation and collapse whitespace.

    NFKC folds full-width characters, so "ＯｐｅｎＡＩ" and "OpenAI"
    normalize the same way.
    """
    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text).casefold()
    folded = _PUNCT_RE.sub(" ", folded)
    return " ".join(folded.split())


def compact(text: Optional[str]) -> str:
    """Normalized text with all whitespace removed."""
    return normalize_text(text).replace(" ", "")


def tokenize(text: Optional[str]) -> List[str]:
    return normalize_text(text).split()


def token_overlap_ratio(tokens1: Iterable[str], tokens2: Iterable[str]) -> float:
    """
    Share of the shorter token set found in the longer one.

    Returns:
        |A & B| / min(|A|, |B|), or 0.0 when either side is empty
    """
    set1, set2 = set(tokens1), set(tokens2)
    if not set1 or not set2:
        return 0.0
    return len(set1 & set2) / min(len(set1), len(set2))


def text_mentions(text: str, phrase: str) -> bool:
    """
    Check whether a phrase occurs in text.

    ASCII phrases must match on word boundaries ("AI" does not match
    "said"); CJK phrases match as substrings since CJK text has no spaces.
    """
    if not text or not phrase:
        return False
    norm_text = normalize_text(text)
    norm_phrase = normalize_text(phrase)
    if not norm_phrase:
        return False
    if contains_cjk(norm_phrase):
        return norm_phrase in norm_text.replace(" ", "") or norm_phrase in norm_text
    return re.search(rf"(?<!\w){re.escape(norm_phrase)}(?!\w)", norm_text) is not None


def org_mention_variants(org: str) -> List[str]:
    """The organization name plus every alias that denotes it in text."""
    variants = [org]
    key = compact(org)
    for canonical, aliases in ORG_MENTION_ALIASES.items():
        compact_aliases = {compact(a) for a in aliases}
        if key == canonical or key in compact_aliases:
            variants.append(canonical)
            variants.extend(aliases)
    seen: Set[str] = set()
    unique = []
    for v in variants:
        if v and v.lower() not in seen:
            seen.add(v.lower())
            unique.append(v)
    return unique


class OrganizationNameMatcher:
    """
    Fuzzy matcher specialized for organization names.

    Handles:
    - Case, punctuation and full-width differences
    - Spacing differences ("Open AI" vs "OpenAI")
    - Known locale/spelling variants (CANONICAL_ORG_NAMES)
    - Generic words (University, Inc, Lab) via distinctive-token overlap
    """

    def __init__(self, overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD):
        """
        Initialize the matcher.

        Args:
            overlap_threshold: Minimum distinctive-token overlap for a match (0.0-1.0)
        """
        self.overlap_threshold = overlap_threshold
        self._canonical_lookup: Dict[str, str] = {}
        for canonical, variants in CANONICAL_ORG_NAMES.items():
            self._canonical_lookup[compact(canonical)] = canonical
            for variant in variants:
                self._canonical_lookup[compact(variant)] = canonical
        self._cache: Dict[str, Tuple[str, Tuple[str, ...]]] = {}

    def canonical_key(self, name: str) -> Optional[str]:
        """Canonical key for a known organization variant, else None."""
        return self._canonical_lookup.get(compact(name))

    def distinctive_tokens(self, name: str) -> Tuple[str, ...]:
        """
        Tokens that identify the organization.

        CJK runs lose generic suffixes (大学, 公司...). Falls back to all
        tokens when every token is generic ("The Institute").
        """
        if name in self._cache:
            return self._cache[name][1]

        tokens = []
        for token in tokenize(name):
            if contains_cjk(token):
                for suffix in CJK_ORG_SUFFIXES:
                    if token.endswith(suffix) and len(token) > len(suffix):
                        token = token[: -len(suffix)]
                        break
            tokens.append(token)

        distinctive = tuple(t for t in tokens if t not in ORG_STOPWORDS) or tuple(tokens)
        self._cache[name] = (normalize_text(name), distinctive)
        return distinctive

    def normalize(self, name: str) -> str:
        """Comparable form: canonical key when known, else distinctive tokens."""
        if not name:
            return ""
        key = self.canonical_key(name)
        if key:
            return key
        return " ".join(self.distinctive_tokens(name))

    def match(self, name1: str, name2: str) -> MatchResult:
        """
        Check if two organization names denote the same organization.

        Args:
            name1: First organization name
            name2: Second organization name

        Returns:
            MatchResult with match status and similarity score
        """
        norm1 = self.normalize(name1)
        norm2 = self.normalize(name2)

        if not norm1 or not norm2:
            return MatchResult(False, 0.0, norm1, norm2)

        if norm1 == norm2 or norm1.replace(" ", "") == norm2.replace(" ", ""):
            return MatchResult(True, 1.0, norm1, norm2)

        similarity = token_overlap_ratio(norm1.split(), norm2.split())
        return MatchResult(
            matched=similarity >= self.overlap_threshold,
            similarity=similarity,
            normalized_name1=norm1,
            normalized_name2=norm2,
        )

    def is_match(self, name1: str, name2: str) -> bool:
        return self.match(name1, name2).matched

    def find_best_match(
        self,
        name: str,
        candidates: Sequence[Tuple[int, str]],
    ) -> Optional[Tuple[int, float]]:
        """
        Find the best matching candidate above threshold.

        Args:
            name: Organization name to resolve
            candidates: (id, name) pairs

        Returns:
            (id, similarity) of the best match, or None
        """
        best: Optional[Tuple[int, float]] = None
        for candidate_id, candidate_name in candidates:
            result = self.match(name, candidate_name)
            if result.matched and (best is None or result.similarity > best[1]):
                best = (candidate_id, result.similarity)
                if result.similarity >= 1.0:
                    break
        return best


_default_matcher: Optional[OrganizationNameMatcher] = None


def get_default_matcher() -> OrganizationNameMatcher:
    global _default_matcher
    if _default_matcher is None:
        _default_matcher = OrganizationNameMatcher()
    return _default_matcher
