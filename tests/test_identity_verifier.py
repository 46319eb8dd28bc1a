"""
Unit tests for identity verification scoring.
"""
import pytest

from profilebuilder.services.identity_verifier import IdentityVerifier


@pytest.fixture
def verifier():
    return IdentityVerifier()


class TestScoreText:

    @pytest.mark.unit
    def test_neutral_text_scores_base(self, verifier, person_context):
        result = verifier.score_text(person_context, "Ada Chen posted a photo from the weekend trip.")

        assert result.confidence == 0.5
        assert result.is_match is True
        assert result.matched_signals == []

    @pytest.mark.unit
    def test_positive_signals_add_up(self, verifier, person_context):
        text = "Ada Chen, a researcher at OpenAI, discussed machine learning scaling."
        result = verifier.score_text(person_context, text)

        assert result.confidence == pytest.approx(0.80)
        assert "org_match:OpenAI" in result.matched_signals
        assert "occupation_match:researcher" in result.matched_signals
        assert "positive:machine learning" in result.matched_signals

    @pytest.mark.unit
    def test_org_alias_counts_as_org_match(self, verifier, person_context):
        result = verifier.score_text(person_context, "Ada Chen talks about ChatGPT launches.")
        assert "org_match:OpenAI" in result.matched_signals

    @pytest.mark.unit
    def test_external_id_literal(self, verifier, person_context):
        result = verifier.score_text(person_context, "Entity Q123456 on the knowledge graph")
        assert result.confidence == pytest.approx(0.90)

    @pytest.mark.unit
    def test_negative_category_sets_rejection(self, verifier, person_context):
        result = verifier.score_text(person_context, "Ada Chen, the actress, stars in a new film.")

        assert result.confidence == pytest.approx(0.20)
        assert result.is_match is False
        assert "entertainment" in result.rejection_reason

    @pytest.mark.unit
    def test_only_first_signal_per_category_counts(self, verifier, person_context):
        text = "machine learning, deep learning, neural network, transformer"
        result = verifier.score_text(person_context, text)
        assert result.confidence == pytest.approx(0.55)

    @pytest.mark.unit
    def test_confidence_is_clamped(self, verifier, person_context):
        text = "Q123456 researcher at OpenAI working on machine learning"
        result = verifier.score_text(person_context, text, author="Ada Chen")
        assert result.confidence == 1.0

    @pytest.mark.unit
    def test_author_match_uses_aliases(self, verifier, person_context):
        result = verifier.score_text(person_context, "A plain update.", author="陈艾达")
        assert "author_name_match" in result.matched_signals
        assert result.confidence == pytest.approx(0.60)


class TestVerify:

    @pytest.mark.unit
    def test_threshold_applies(self, verifier, person_context, make_item):
        item = make_item(title="Weekend", text="Ada Chen posted a photo from the weekend trip.")

        assert verifier.verify(person_context, item, threshold=50).is_match is True
        assert verifier.verify(person_context, item, threshold=70).is_match is False

    @pytest.mark.unit
    def test_author_metadata_is_used(self, verifier, person_context, make_item):
        item = make_item(
            title="Weekend",
            text="A photo from the weekend trip.",
            metadata={"author": "Ada Chen"},
        )
        result = verifier.verify(person_context, item)
        assert "author_name_match" in result.matched_signals

    @pytest.mark.unit
    def test_rejection_beats_high_score(self, verifier, person_context, make_item):
        item = make_item(
            title="OpenAI researcher",
            text="Q123456 researcher at OpenAI joins the basketball team",
        )
        result = verifier.verify(person_context, item, threshold=50)

        assert result.confidence >= 0.5
        assert result.is_match is False
        assert "sports" in result.rejection_reason
