"""
Source adapter contract.

Every adapter implements:
- should_fetch(params): cheap precondition check
- fetch(params): call the source and translate its payload into NormalizedItems

safe_fetch() wraps fetch() so an adapter never raises past its boundary;
failures come back as DataSourceResult(success=False, error=...).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from profilebuilder.core.api_errors import error_code_for
from profilebuilder.core.config import SOURCE_CREDENTIALS, Settings, get_settings
from profilebuilder.sources.types import DataSourceResult, FetchParams, SourceType

logger = logging.getLogger(__name__)


class SourceAdapter(ABC):
    """
    Base class for all source adapters.

    Subclasses set source_type and name, and implement fetch().
    """

    source_type: SourceType
    name: str = "Source Adapter"
    default_max_results: int = 20

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            settings: Settings to read credentials and base URLs from
            transport: httpx transport handed to this adapter's clients (tests)
        """
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def requires_credential(self) -> bool:
        source = SourceType(self.source_type)
        return source.value in SOURCE_CREDENTIALS or source == SourceType.AI_KNOWLEDGE

    @property
    def is_configured(self) -> bool:
        """True when the credential this source needs is present."""
        return self.settings.has_credential(self.source_type.value)

    def should_fetch(self, params: FetchParams) -> bool:
        """Cheap precondition check; sources with no precondition always run."""
        return True

    @abstractmethod
    async def fetch(self, params: FetchParams) -> DataSourceResult:
        """Fetch and normalize items. May raise; use safe_fetch() from callers."""

    async def safe_fetch(self, params: FetchParams) -> DataSourceResult:
        """
        Run fetch() and convert any exception into a failed result.

        Returns an empty success when should_fetch() is False.
        """
        if not self.should_fetch(params):
            logger.debug(f"[{self.source_type.value}] Precondition not met, skipping")
            return DataSourceResult.ok(self.source_type)

        try:
            result = await self.fetch(params)
        except Exception as e:
            code, retryable = error_code_for(e)
            logger.error(f"[{self.source_type.value}] Fetch failed ({code.value}): {e}")
            return DataSourceResult.failed(
                self.source_type,
                code=code,
                message=str(e),
                retryable=retryable,
            )

        logger.info(
            f"[{self.source_type.value}] {result.stats.fetched} fetched, "
            f"{result.stats.validated} validated, {result.stats.filtered} filtered"
        )
        return result

    def max_results(self, params: FetchParams) -> int:
        return params.max_results or self.default_max_results

    def client_options(self) -> Dict[str, Any]:
        """Constructor kwargs shared by this adapter's HTTP clients."""
        return {
            "max_concurrency": self.settings.max_concurrency,
            "max_retries": self.settings.max_retries,
            "backoff_factor": self.settings.retry_backoff_factor,
            "timeout": self.settings.http_timeout,
            "transport": self._transport,
        }

    def __repr__(self):
        return f"<{self.__class__.__name__}(source='{self.source_type.value}')>"
