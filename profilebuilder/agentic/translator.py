"""
Batch translation of organization names and roles for display.

One LLM call per batch, one line in and one line out. Distinct strings
are translated once per batch; a failed call falls back to the source
text.
"""

import logging
from typing import Dict, List, Optional

from profilebuilder.agentic.fuzzy_matcher import contains_cjk
from profilebuilder.agentic.llm_client import LLMClient

logger = logging.getLogger(__name__)

SUPPORTED_LOCALES = {"zh", "en"}

SYSTEM_PROMPTS = {
    "zh": (
        "You are a professional translator. Translate each input line into Simplified Chinese.\n"
        "Rules:\n"
        "1. One output line per input line, same order\n"
        "2. Use the official Chinese name of companies and universities when one exists; "
        "keep the original when none exists (OpenAI stays OpenAI)\n"
        "3. Return only the translations, no numbering or explanations"
    ),
    "en": (
        "You are a professional translator. Translate each input line into English.\n"
        "Rules:\n"
        "1. One output line per input line, same order\n"
        "2. Use the official English name of companies and universities\n"
        "3. Return only the translations, no numbering or explanations"
    ),
}


def needs_translation(text: Optional[str], locale: str) -> bool:
    """True when text is non-empty and not already in the target locale's script."""
    if not text or not text.strip():
        return False
    if locale == "zh":
        return not contains_cjk(text)
    return contains_cjk(text)


class Translator:
    """
    Translates short strings into a display locale.

    Usage:
        translator = Translator(get_llm_client(), locale="zh")
        names = await translator.translate_batch(["Stanford University", "OpenAI"])
    """

    def __init__(self, llm_client: Optional[LLMClient] = None, locale: str = "zh"):
        if locale not in SUPPORTED_LOCALES:
            raise ValueError(f"Unsupported locale '{locale}', expected one of {sorted(SUPPORTED_LOCALES)}")
        self.llm = llm_client
        self.locale = locale
        self.calls = 0

    @property
    def is_available(self) -> bool:
        return self.llm is not None and self.llm.is_available

    async def translate_batch(self, texts: List[str]) -> List[str]:
        """
        Translate a batch of strings.

        Args:
            texts: Source strings; empty strings and strings already in the
                target locale are returned unchanged

        Returns:
            Translations aligned with the input
        """
        cache: Dict[str, str] = {}
        pending = []
        for text in texts:
            if needs_translation(text, self.locale) and text not in cache and text not in pending:
                pending.append(text)

        if pending and self.is_available:
            translated = await self._translate_lines(pending)
            for source, target in zip(pending, translated):
                cache[source] = target

        return [cache.get(text, text) for text in texts]

    async def _translate_lines(self, lines: List[str]) -> List[str]:
        self.calls += 1
        try:
            response = await self.llm.complete(
                "\n".join(line.replace("\n", " ") for line in lines),
                system_prompt=SYSTEM_PROMPTS[self.locale],
                temperature=0.3,
            )
        except Exception as e:
            logger.warning(f"Batch translation failed, keeping source text: {e}")
            return list(lines)

        output = [line.strip() for line in response.content.strip().split("\n")]
        if len(output) != len(lines):
            logger.warning(
                f"Translation returned {len(output)} lines for {len(lines)} inputs, "
                f"keeping source text for unmatched lines"
            )
        return [
            output[i] if i < len(output) and output[i] else line
            for i, line in enumerate(lines)
        ]
