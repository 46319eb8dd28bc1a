"""
Source adapter registry.

Static dispatch table keyed by SourceType. Adapters are registered once
at startup; lookups during a build never mutate the table.
"""

import logging
from typing import Callable, Dict, List, Optional

import httpx

from profilebuilder.core.config import Settings, get_settings
from profilebuilder.sources.ai_knowledge import AIKnowledgeAdapter
from profilebuilder.sources.baike import BaikeAdapter
from profilebuilder.sources.base import SourceAdapter
from profilebuilder.sources.career import CareerAdapter
from profilebuilder.sources.exa import ExaAdapter
from profilebuilder.sources.github import GitHubAdapter
from profilebuilder.sources.openalex import OpenAlexAdapter
from profilebuilder.sources.perplexity import PerplexityAdapter
from profilebuilder.sources.podcast import PodcastAdapter
from profilebuilder.sources.types import FetchParams, SourceType
from profilebuilder.sources.x_posts import XPostsAdapter
from profilebuilder.sources.youtube import YouTubeAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., SourceAdapter]

# ---------------------------------------------------------------------------
# Default adapter set, in registration order
# ---------------------------------------------------------------------------

DEFAULT_ADAPTERS: List[AdapterFactory] = [
    ExaAdapter,
    XPostsAdapter,
    YouTubeAdapter,
    GitHubAdapter,
    OpenAlexAdapter,
    PodcastAdapter,
    CareerAdapter,
    BaikeAdapter,
    PerplexityAdapter,
    AIKnowledgeAdapter,
]


class SourceAdapterRegistry:
    """Maps each SourceType to its adapter instance."""

    def __init__(self):
        self._adapters: Dict[SourceType, SourceAdapter] = {}

    def register(self, adapter: SourceAdapter) -> None:
        """Register an adapter; a later registration for the same source replaces it."""
        source = SourceType(adapter.source_type)
        if source in self._adapters:
            logger.warning(f"Replacing adapter for {source.value}")
        self._adapters[source] = adapter

    def get(self, source) -> SourceAdapter:
        """
        Look up the adapter for a source.

        Raises:
            KeyError: If no adapter is registered for the source
        """
        source = SourceType(source)
        try:
            return self._adapters[source]
        except KeyError:
            raise KeyError(f"No adapter registered for source '{source.value}'")

    def get_or_none(self, source) -> Optional[SourceAdapter]:
        try:
            return self._adapters.get(SourceType(source))
        except ValueError:
            return None

    def all(self) -> List[SourceAdapter]:
        return list(self._adapters.values())

    def sources(self) -> List[SourceType]:
        return list(self._adapters.keys())

    def should_run(self, source, params: FetchParams) -> bool:
        """Adapter precondition AND credential check."""
        adapter = self.get_or_none(source)
        if adapter is None:
            return False
        return adapter.is_configured and adapter.should_fetch(params)

    def __contains__(self, source) -> bool:
        return self.get_or_none(source) is not None

    def __len__(self) -> int:
        return len(self._adapters)


def build_default_registry(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SourceAdapterRegistry:
    """
    Build a registry holding every built-in adapter.

    Args:
        settings: Settings handed to each adapter
        transport: httpx transport handed to each adapter (tests)
    """
    settings = settings or get_settings()
    registry = SourceAdapterRegistry()
    for factory in DEFAULT_ADAPTERS:
        registry.register(factory(settings=settings, transport=transport))
    logger.debug(f"Registered {len(registry)} source adapters")
    return registry


_registry: Optional[SourceAdapterRegistry] = None


def get_registry() -> SourceAdapterRegistry:
    global _registry
    if _registry is None:
        _registry = build_default_registry()
    return _registry


def reset_registry() -> None:
    """Drop the cached registry (tests, settings changes)."""
    global _registry
    _registry = None
