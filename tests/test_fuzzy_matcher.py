"""
Unit tests for organization name matching and text mention helpers.
"""
import pytest

from profilebuilder.agentic.fuzzy_matcher import (
    OrganizationNameMatcher,
    compact,
    contains_cjk,
    normalize_text,
    org_mention_variants,
    text_mentions,
    token_overlap_ratio,
)


@pytest.fixture
def matcher():
    return OrganizationNameMatcher()


class TestTextHelpers:

    @pytest.mark.unit
    def test_normalize_text(self):
        assert normalize_text("  Open-AI,  Inc. ") == "open ai inc"
        assert normalize_text("ＯｐｅｎＡＩ") == "openai"
        assert normalize_text(None) == ""

    @pytest.mark.unit
    def test_compact(self):
        assert compact("Open AI") == "openai"

    @pytest.mark.unit
    def test_contains_cjk(self):
        assert contains_cjk("清华大学") is True
        assert contains_cjk("Tsinghua") is False
        assert contains_cjk(None) is False

    @pytest.mark.unit
    def test_token_overlap_ratio(self):
        assert token_overlap_ratio(["a", "b"], ["b", "c", "d"]) == 0.5
        assert token_overlap_ratio([], ["a"]) == 0.0

    @pytest.mark.unit
    def test_ascii_mentions_respect_word_boundaries(self):
        assert text_mentions("She said hello", "AI") is False
        assert text_mentions("Work on AI safety", "AI") is True

    @pytest.mark.unit
    def test_cjk_mentions_match_substrings(self):
        assert text_mentions("他在清华大学任教", "清华") is True

    @pytest.mark.unit
    def test_org_mention_variants_include_aliases(self):
        variants = [v.lower() for v in org_mention_variants("Google")]
        assert "deepmind" in variants
        assert variants[0] == "google"


class TestOrganizationNameMatcher:

    @pytest.mark.unit
    def test_spacing_variants_match(self, matcher):
        assert matcher.is_match("OpenAI", "Open AI") is True

    @pytest.mark.unit
    def test_known_locale_variants_match(self, matcher):
        assert matcher.is_match("Tsinghua University", "清华大学") is True
        assert matcher.is_match("Massachusetts Institute of Technology", "MIT") is True

    @pytest.mark.unit
    def test_generic_words_do_not_match(self, matcher):
        assert matcher.is_match("Stanford University", "Harvard University") is False

    @pytest.mark.unit
    def test_distinctive_token_overlap(self, matcher):
        result = matcher.match("Google", "Google DeepMind")
        assert result.matched is True
        assert result.similarity == 1.0

    @pytest.mark.unit
    def test_empty_names_never_match(self, matcher):
        assert matcher.match("", "OpenAI").matched is False

    @pytest.mark.unit
    def test_find_best_match_returns_candidate_id(self, matcher):
        candidates = [(1, "Acme Research Lab"), (2, "Initech"), (3, "Globex Corporation")]
        assert matcher.find_best_match("GLOBEX", candidates) == (3, 1.0)

    @pytest.mark.unit
    def test_find_best_match_none(self, matcher):
        assert matcher.find_best_match("Initech", [(1, "Globex")]) is None

    @pytest.mark.unit
    def test_normalize_uses_canonical_key(self, matcher):
        assert matcher.normalize("Facebook") == "meta"
        assert matcher.normalize("Acme Corporation") == "acme"
