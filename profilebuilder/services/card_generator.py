"""
Learning card generation.

One LLM call per build turns the person's best stored items into short
cards (insight, quote, story, method, fact). Cards are stored once per
(person, title); a failed or unparseable call yields no cards and never
fails the build.
"""

import logging
from typing import Any, Iterable, List, Optional, Set

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.orm import Session

from profilebuilder.agentic.llm_client import LLMClient
from profilebuilder.core.models import Card
from profilebuilder.sources.types import NormalizedItem

logger = logging.getLogger(__name__)

CARD_TYPES = ("insight", "quote", "story", "method", "fact")
MAX_INPUT_ITEMS = 10
MAX_ITEM_CHARS = 1500
MAX_CARDS_PER_TYPE = 3
MAX_EXISTING_TITLES = 20

SYSTEM_PROMPT = (
    "You turn raw material about a person into structured learning cards.\n"
    "Card types:\n"
    "- insight: the person's most important ideas or views\n"
    "- quote: notable things the person said\n"
    "- story: key experiences, anecdotes or cases\n"
    "- method: methods, frameworks or tools the person recommends\n"
    "- fact: important facts, achievements or figures\n"
    "Return a JSON object {\"cards\": [...]}; each card has type, title (a short headline), "
    "content (50-200 characters), tags (2-5 strings), source_url and importance (1-10).\n"
    "Rules: stay accurate and never invent facts; at most 3 cards per type; "
    "generate fewer cards when the material is thin."
)


class GeneratedCard(BaseModel):
    type: str
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    source_url: Optional[str] = None
    importance: int = Field(5, ge=1, le=10)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in CARD_TYPES:
            raise ValueError(f"card type must be one of {CARD_TYPES}")
        return v

    @field_validator("title", "content")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


def build_prompt(person_name: str, items: List[NormalizedItem], existing_titles: Iterable[str] = ()) -> str:
    sections = []
    for i, item in enumerate(items, start=1):
        text = item.text[:MAX_ITEM_CHARS]
        sections.append(f"### Source {i}: {item.title}\n{text}\nURL: {item.url}")

    prompt = f"Generate learning cards for {person_name}.\n\nCollected material:\n\n"
    prompt += "\n---\n".join(sections)

    existing = list(existing_titles)[:MAX_EXISTING_TITLES]
    if existing:
        prompt += "\n\nAlready-existing cards (do not repeat):\n" + "\n".join(f"- {t}" for t in existing)
    return prompt


def _card_payloads(data: Any) -> List[Any]:
    if isinstance(data, dict):
        data = data.get("cards", [])
    return data if isinstance(data, list) else []


class CardGenerator:
    """
    Generates and stores learning cards for a person.

    Usage:
        generator = CardGenerator(get_llm_client())
        cards = await generator.generate("Ada Chen", items)
        created = generator.save(session, person_id, cards)
    """

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client

    @property
    def is_available(self) -> bool:
        return self.llm is not None and self.llm.is_available

    async def generate(
        self,
        person_name: str,
        items: List[NormalizedItem],
        existing_titles: Optional[Set[str]] = None,
    ) -> List[GeneratedCard]:
        """
        Generate cards from up to MAX_INPUT_ITEMS items with text.

        Args:
            person_name: Display name used in the prompt
            items: Candidate items, best first
            existing_titles: Titles already stored for the person

        Returns:
            Valid, de-duplicated cards; empty on any LLM failure
        """
        existing_titles = existing_titles or set()
        usable = [item for item in items if item.text and item.text.strip()][:MAX_INPUT_ITEMS]
        if not usable:
            logger.info(f"No items with text to generate cards for {person_name}")
            return []
        if not self.is_available:
            return []

        try:
            response = await self.llm.complete(
                build_prompt(person_name, usable, sorted(existing_titles)),
                system_prompt=SYSTEM_PROMPT,
                json_mode=True,
                temperature=0.5,
            )
        except Exception as e:
            logger.warning(f"Card generation failed for {person_name}: {e}")
            return []

        cards: List[GeneratedCard] = []
        seen_titles = set(existing_titles)
        per_type = {}
        for payload in _card_payloads(response.parse_json()):
            try:
                card = GeneratedCard.model_validate(payload)
            except ValidationError as e:
                logger.debug(f"Dropping malformed card: {e.error_count()} errors")
                continue
            if card.title in seen_titles:
                continue
            if per_type.get(card.type, 0) >= MAX_CARDS_PER_TYPE:
                continue
            per_type[card.type] = per_type.get(card.type, 0) + 1
            seen_titles.add(card.title)
            cards.append(card)

        logger.info(f"Generated {len(cards)} cards for {person_name}")
        return cards

    @staticmethod
    def existing_titles(session: Session, person_id: int) -> Set[str]:
        return {
            title for (title,) in session.query(Card.title).filter(Card.person_id == person_id).all()
        }

    def save(self, session: Session, person_id: int, cards: List[GeneratedCard]) -> int:
        """Store cards whose titles are new for the person. Returns the number created."""
        known = self.existing_titles(session, person_id)
        created = 0
        for card in cards:
            if card.title in known:
                continue
            session.add(Card(
                person_id=person_id,
                type=card.type,
                title=card.title,
                content=card.content,
                tags=card.tags,
                source_url=card.source_url,
                importance=card.importance,
            ))
            known.add(card.title)
            created += 1
        session.commit()
        return created
