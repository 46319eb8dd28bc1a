"""
Unit tests for learning card generation.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from profilebuilder.agentic.llm_client import LLMResponse
from profilebuilder.core.models import Card
from profilebuilder.services.card_generator import CardGenerator, GeneratedCard, build_prompt
from profilebuilder.sources.types import SourceType


def mock_llm(content=None, error=None):
    llm = MagicMock()
    llm.is_available = True
    if error is not None:
        llm.complete = AsyncMock(side_effect=error)
    else:
        llm.complete = AsyncMock(return_value=LLMResponse(
            content=content,
            input_tokens=300,
            output_tokens=120,
            model="test-model",
        ))
    return llm


def card(type_="insight", title="Scaling beats cleverness", **kwargs):
    payload = {
        "type": type_,
        "title": title,
        "content": "Ada Chen argues that simple methods scaled up beat clever tricks.",
        "tags": ["scaling", "research"],
        "source_url": "https://example.com/ada-chen-interview",
        "importance": 8,
    }
    payload.update(kwargs)
    return payload


class TestGenerate:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cards_from_object_payload(self, make_item):
        llm = mock_llm(json.dumps({"cards": [card(), card("quote", "On open research")]}))
        cards = await CardGenerator(llm).generate("Ada Chen", [make_item()])

        assert [c.type for c in cards] == ["insight", "quote"]
        assert cards[0].source_url == "https://example.com/ada-chen-interview"
        assert llm.complete.call_args.kwargs["temperature"] == 0.5
        assert llm.complete.call_args.kwargs["json_mode"] is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_bare_array_in_code_fence(self, make_item):
        content = "```json\n" + json.dumps([card()]) + "\n```"
        cards = await CardGenerator(mock_llm(content)).generate("Ada Chen", [make_item()])

        assert [c.title for c in cards] == ["Scaling beats cleverness"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_malformed_cards_are_dropped(self, make_item):
        payload = [
            card(type_="rumor", title="Unknown type"),
            card(title="   "),
            card(title="Too important", importance=11),
            card(type_="FACT", title="Works at OpenAI"),
        ]
        cards = await CardGenerator(mock_llm(json.dumps(payload))).generate("Ada Chen", [make_item()])

        assert [(c.type, c.title) for c in cards] == [("fact", "Works at OpenAI")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_at_most_three_cards_per_type(self, make_item):
        payload = [card(title=f"Insight {i}") for i in range(5)] + [card("story", "The first paper")]
        cards = await CardGenerator(mock_llm(json.dumps(payload))).generate("Ada Chen", [make_item()])

        assert [c.title for c in cards] == ["Insight 0", "Insight 1", "Insight 2", "The first paper"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing_and_repeated_titles_are_skipped(self, make_item):
        payload = [card(title="Already stored"), card(title="Fresh"), card("fact", "Fresh")]
        cards = await CardGenerator(mock_llm(json.dumps(payload))).generate(
            "Ada Chen", [make_item()], existing_titles={"Already stored"},
        )

        assert [c.title for c in cards] == ["Fresh"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_json_yields_no_cards(self, make_item):
        cards = await CardGenerator(mock_llm("I could not find anything useful.")).generate("Ada Chen", [make_item()])

        assert cards == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_call_yields_no_cards(self, make_item):
        cards = await CardGenerator(mock_llm(error=RuntimeError("rate limited"))).generate("Ada Chen", [make_item()])

        assert cards == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unavailable_llm_makes_no_call(self, make_item):
        generator = CardGenerator(None)

        assert generator.is_available is False
        assert await generator.generate("Ada Chen", [make_item()]) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_items_without_text_make_no_call(self, make_item):
        llm = mock_llm(json.dumps([card()]))
        cards = await CardGenerator(llm).generate("Ada Chen", [make_item(source=SourceType.YOUTUBE, text="")])

        assert cards == []
        llm.complete.assert_not_called()


class TestBuildPrompt:

    @pytest.mark.unit
    def test_input_is_capped(self, make_item):
        items = [
            make_item(url=f"https://example.com/{i}", title=f"Post {i}", text="x" * 5000)
            for i in range(3)
        ]
        prompt = build_prompt("Ada Chen", items, ["Old card"])

        assert "### Source 3: Post 2" in prompt
        assert "x" * 1500 in prompt
        assert "x" * 1501 not in prompt
        assert "- Old card" in prompt

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_first_ten_items_are_sent(self, make_item):
        llm = mock_llm(json.dumps([]))
        items = [make_item(url=f"https://example.com/{i}", title=f"Post {i}") for i in range(12)]
        await CardGenerator(llm).generate("Ada Chen", items)

        prompt = llm.complete.call_args.args[0]
        assert "Source 10: Post 9" in prompt
        assert "Post 10" not in prompt


class TestSave:

    @pytest.mark.unit
    def test_save_skips_stored_titles(self, test_db, sample_person):
        generator = CardGenerator(None)
        first = [GeneratedCard(**card(title="Scaling")), GeneratedCard(**card("fact", "Founded a lab"))]
        assert generator.save(test_db, sample_person.id, first) == 2

        second = [GeneratedCard(**card(title="Scaling")), GeneratedCard(**card("story", "Dropped out"))]
        assert generator.save(test_db, sample_person.id, second) == 1

        titles = {c.title for c in test_db.query(Card).filter(Card.person_id == sample_person.id)}
        assert titles == {"Scaling", "Founded a lab", "Dropped out"}
        assert generator.existing_titles(test_db, sample_person.id) == titles
