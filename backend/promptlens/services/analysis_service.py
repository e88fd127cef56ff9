"""
PromptLens Backend - Analysis Service (Boundary Operation)
============================================================

What:  The single operation the HTTP layer calls:
       analyze(bytes, mime_type, options) → AnalysisOutcome | ServiceError
How:   Resolves an analyzer through the registry, runs it, and reports
       analytics events to an optional observer.
Who:   Called by POST /api/analyze-image.

Orchestration Flow:
    ┌──────────┐    ┌──────────────┐    ┌──────────────┐    ┌───────────┐
    │  Upload  │───▶│   Resolve    │───▶│  Validate +  │───▶│  Outcome  │
    │  (Route) │    │  (Registry)  │    │  Analyze     │    │  / Error  │
    └──────────┘    └──────────────┘    └──────────────┘    └───────────┘

Resolution:
    provider=None   → registry.get_preferred_analyzer() (falls back to mock)
    provider="x"    → registry.create_analyzer("x") (no fallback; the caller
                      sees SERVICE_UNAVAILABLE)
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from promptlens.exceptions import ServiceError
from promptlens.schemas.analysis import AnalysisOptions, AnalysisResult
from promptlens.services.analytics import (
    IMAGE_ANALYSIS_COMPLETED,
    IMAGE_ANALYSIS_STARTED,
    AnalysisObserver,
    notify,
)
from promptlens.services.analyzer_factory import AnalyzerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    result: AnalysisResult
    provider: str
    ai_time_ms: int


class AnalysisService:
    """
    Stateless orchestrator; the registry is the only shared state.

    Args:
        registry: Caller-owned AnalyzerRegistry.
        observer: Optional analytics observer. The outcome never depends on it.
    """

    def __init__(self, registry: AnalyzerRegistry, observer: Optional[AnalysisObserver] = None):
        self.registry = registry
        self.observer = observer

    async def analyze(
        self,
        content: bytes,
        mime_type: str,
        options: Optional[AnalysisOptions] = None,
        provider: Optional[str] = None,
    ) -> AnalysisOutcome:
        """
        Analyze one image.

        Raises:
            ServiceError: unchanged from the registry or the analyzer.
        """
        options = options or AnalysisOptions()
        notify(
            self.observer,
            IMAGE_ANALYSIS_STARTED,
            {"file_size": len(content), "file_type": mime_type},
        )

        start = time.perf_counter()
        provider_name = provider
        try:
            if provider:
                analyzer = await self.registry.create_analyzer(provider)
            else:
                analyzer = await self.registry.get_preferred_analyzer()
            provider_name = analyzer.get_provider_name()

            result = await analyzer.analyze_image(content, mime_type, options)
        except ServiceError as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.warning(
                "Analysis failed: provider=%s code=%s message=%s",
                e.provider,
                e.code,
                e.message,
            )
            notify(
                self.observer,
                IMAGE_ANALYSIS_COMPLETED,
                {
                    "provider": e.provider or provider_name,
                    "processing_time": elapsed,
                    "success": False,
                    "error_code": e.code,
                },
            )
            raise

        ai_time = (
            result.processing_time_ms
            if result.processing_time_ms is not None
            else int((time.perf_counter() - start) * 1000)
        )
        logger.info(
            "Analysis completed: provider=%s time=%dms tags=%d",
            provider_name,
            ai_time,
            len(result.tags),
        )
        notify(
            self.observer,
            IMAGE_ANALYSIS_COMPLETED,
            {
                "provider": provider_name,
                "processing_time": ai_time,
                "success": True,
                "error_code": None,
            },
        )
        return AnalysisOutcome(result=result, provider=provider_name, ai_time_ms=ai_time)
