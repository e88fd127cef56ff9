"""
PromptLens Backend - Analyzer Registry (Provider Factory)
===========================================================

What:  Resolves an ImageAnalyzer by name and keeps one live instance per name.
How:   name → constructor mapping plus an instance cache. Cached instances are
       re-checked with is_available() on every lookup and evicted when the
       check fails.
Who:   Owned by the caller (main.create_app() builds one per application and
       hands it to AnalysisService). There is no module-level singleton.

Resolution rules:
    create_analyzer(name)       → exactly that provider, or ServiceError
                                  (SERVICE_UNAVAILABLE); never falls back
    get_preferred_analyzer()    → configured provider, else "mock"
                                  (the fallback is logged, not raised)

Concurrency:
    Two requests may construct the same provider at the same time. The cache
    insert uses dict.setdefault, so the first instance stored wins and both
    callers receive it.
"""

import logging
from typing import Callable, Dict, List, Mapping, Optional

from promptlens.exceptions import ErrorKind, ServiceError
from promptlens.services.analyzer_base import ImageAnalyzer
from promptlens.services.gemini_analyzer import GeminiAnalyzer
from promptlens.services.mock_analyzer import MockAnalyzer
from promptlens.services.openai_analyzer import OpenAIAnalyzer
from promptlens.services.retry import RetryOptions

logger = logging.getLogger(__name__)

MOCK_PROVIDER = MockAnalyzer.PROVIDER_NAME

AnalyzerConstructor = Callable[[], ImageAnalyzer]


class AnalyzerRegistry:
    """
    Caller-owned provider factory with a per-name instance cache.

    Args:
        constructors: Mapping of provider name → zero-argument constructor.
                      Must contain "mock" for the preferred-provider fallback.
        preferred:    Provider name used when none is requested explicitly.
    """

    def __init__(
        self,
        constructors: Mapping[str, AnalyzerConstructor],
        preferred: Optional[str] = None,
    ):
        self._constructors: Dict[str, AnalyzerConstructor] = {
            name.lower(): ctor for name, ctor in constructors.items()
        }
        self.preferred = (preferred or MOCK_PROVIDER).strip().lower()
        self._analyzers: Dict[str, ImageAnalyzer] = {}

    @classmethod
    def from_settings(cls, settings) -> "AnalyzerRegistry":
        """
        Build the standard registry (mock, openai, gemini) from resolved settings.

        Analyzers receive plain values; none of them reads the environment.
        """
        retry_options = RetryOptions(
            max_retries=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            backoff_factor=settings.retry_backoff_factor,
        )
        constructors: Dict[str, AnalyzerConstructor] = {
            MockAnalyzer.PROVIDER_NAME: lambda: MockAnalyzer(
                max_file_size_mb=settings.max_file_size_mb,
                allowed_file_types=settings.allowed_file_types_list,
            ),
            OpenAIAnalyzer.PROVIDER_NAME: lambda: OpenAIAnalyzer(
                api_key=settings.openai_api_key,
                base_url=settings.openai_api_base_url,
                model=settings.openai_model,
                timeout=settings.ai_request_timeout,
                retry_options=retry_options,
            ),
            GeminiAnalyzer.PROVIDER_NAME: lambda: GeminiAnalyzer(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                timeout=settings.ai_request_timeout,
                retry_options=retry_options,
            ),
        }
        return cls(constructors, preferred=settings.ai_service_provider)

    @property
    def registered_providers(self) -> List[str]:
        return list(self._constructors)

    @property
    def cached_providers(self) -> List[str]:
        return list(self._analyzers)

    async def create_analyzer(self, name: Optional[str] = None) -> ImageAnalyzer:
        """
        Resolve a provider by name (explicit, else preferred, else "mock").

        Raises:
            ServiceError(SERVICE_UNAVAILABLE): provider unknown, failed to
                construct, or reported itself unavailable. Nothing is cached
                in that case.
        """
        provider = (name or self.preferred or MOCK_PROVIDER).strip().lower()

        # What: Reuse the cached instance only while it still passes its liveness check
        # A provider whose key was revoked or whose endpoint went down is
        # rebuilt on the next lookup instead of failing every request
        cached = self._analyzers.get(provider)
        if cached is not None:
            if await self._check_liveness(cached):
                return cached
            logger.warning("Cached AI provider '%s' is no longer available, evicting", provider)
            # Another request may already have replaced it; only evict our own
            if self._analyzers.get(provider) is cached:
                del self._analyzers[provider]

        constructor = self._constructors.get(provider)
        if constructor is None:
            raise ServiceError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"AI service provider '{provider}' is not registered",
                provider,
            )

        try:
            analyzer = constructor()
        except Exception as e:
            logger.error("Failed to construct AI provider '%s': %s", provider, str(e))
            raise ServiceError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"AI service provider '{provider}' could not be initialized",
                provider,
                cause=e,
            ) from e

        if not await self._check_liveness(analyzer):
            raise ServiceError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"AI service provider '{provider}' is not available",
                provider,
            )

        # What: Insert-if-absent. A concurrent request that finished first keeps
        # its instance and ours is dropped, so callers never hold two live copies
        stored = self._analyzers.setdefault(provider, analyzer)
        if stored is analyzer:
            logger.info("AI provider '%s' resolved and cached", provider)
        return stored

    async def get_preferred_analyzer(self) -> ImageAnalyzer:
        """Resolve the configured provider, falling back to the mock analyzer."""
        try:
            return await self.create_analyzer(self.preferred)
        except ServiceError as e:
            logger.warning(
                "Preferred AI provider '%s' is not available (%s), falling back to %s",
                self.preferred,
                e.message,
                MOCK_PROVIDER,
            )
        return await self.create_analyzer(MOCK_PROVIDER)

    async def get_available_providers(self) -> List[str]:
        """Names of the registered providers that currently resolve."""
        available = []
        for provider in self._constructors:
            try:
                await self.create_analyzer(provider)
            except ServiceError:
                continue
            available.append(provider)
        return available

    def clear_cache(self) -> None:
        self._analyzers.clear()

    @staticmethod
    async def _check_liveness(analyzer: ImageAnalyzer) -> bool:
        try:
            return bool(await analyzer.is_available())
        except Exception as e:
            logger.warning(
                "is_available() raised for provider '%s': %s",
                analyzer.get_provider_name(),
                str(e),
            )
            return False
