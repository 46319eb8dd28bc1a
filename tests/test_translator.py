"""
Unit tests for batch translation of organization and role names.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from profilebuilder.agentic.llm_client import LLMResponse
from profilebuilder.agentic.translator import Translator, needs_translation


def mock_llm(content=None, error=None):
    llm = MagicMock()
    llm.is_available = True
    if error is not None:
        llm.complete = AsyncMock(side_effect=error)
    else:
        llm.complete = AsyncMock(return_value=LLMResponse(
            content=content,
            input_tokens=12,
            output_tokens=6,
            model="test-model",
        ))
    return llm


@pytest.mark.unit
@pytest.mark.parametrize("text,locale,expected", [
    ("Stanford University", "zh", True),
    ("斯坦福大学", "zh", False),
    ("斯坦福大学", "en", True),
    ("OpenAI", "en", False),
    ("", "zh", False),
    ("   ", "zh", False),
    (None, "zh", False),
])
def test_needs_translation(text, locale, expected):
    assert needs_translation(text, locale) is expected


class TestTranslator:

    @pytest.mark.unit
    def test_unsupported_locale(self):
        with pytest.raises(ValueError):
            Translator(None, locale="fr")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_batch_is_one_call_with_distinct_lines(self):
        llm = mock_llm("斯坦福大学\n研究员")
        translator = Translator(llm, locale="zh")

        result = await translator.translate_batch(
            ["Stanford University", "Researcher", "Stanford University", "清华大学", ""]
        )

        assert result == ["斯坦福大学", "研究员", "斯坦福大学", "清华大学", ""]
        assert translator.calls == 1
        prompt = llm.complete.call_args.args[0]
        assert prompt == "Stanford University\nResearcher"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_short_response_keeps_source_for_missing_lines(self):
        translator = Translator(mock_llm("斯坦福大学"), locale="zh")

        result = await translator.translate_batch(["Stanford University", "Researcher"])

        assert result == ["斯坦福大学", "Researcher"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_call_keeps_source_text(self):
        translator = Translator(mock_llm(error=RuntimeError("quota exceeded")), locale="zh")

        result = await translator.translate_batch(["Stanford University"])

        assert result == ["Stanford University"]
        assert translator.calls == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nothing_to_translate_makes_no_call(self):
        llm = mock_llm("unused")
        translator = Translator(llm, locale="en")

        assert await translator.translate_batch(["OpenAI", "Researcher"]) == ["OpenAI", "Researcher"]
        llm.complete.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unavailable_llm_returns_input(self):
        translator = Translator(None)

        assert translator.is_available is False
        assert await translator.translate_batch(["OpenAI"]) == ["OpenAI"]
