"""
PromptLens Backend - Abstract Image Analyzer Interface
========================================================

What:  Abstract base class defining the contract for image-analysis providers.
How:   Concrete implementations (MockAnalyzer, OpenAIAnalyzer, GeminiAnalyzer)
       inherit from ImageAnalyzer and implement the four capabilities.
Who:   Resolved by AnalyzerRegistry; called by AnalysisService.
When:  After the upload has been read into memory.
"""

import time
from abc import ABC, abstractmethod
from typing import Optional

from promptlens.schemas.analysis import AnalysisOptions, AnalysisResult


class ImageAnalyzer(ABC):
    """
    Abstract interface for turning an image into a generated text prompt.

    Contract:
        - analyze_image() calls validate_image() first and propagates its
          failure unchanged, then returns an AnalysisResult with
          processing_time_ms filled in
        - every failure is a ServiceError tagged with this provider's name
        - is_available() never raises
        - get_provider_name() is a stable identifier, used for logging,
          cache keys and error attribution only
    """

    @abstractmethod
    async def analyze_image(
        self,
        content: bytes,
        mime_type: str,
        options: Optional[AnalysisOptions] = None,
    ) -> AnalysisResult:
        """
        Analyze an image and generate a prompt.

        Args:
            content:   Raw image bytes.
            mime_type: MIME type reported by the uploader, e.g. "image/png".
            options:   Per-call options; None means provider defaults.

        Returns:
            AnalysisResult with a non-empty prompt.

        Raises:
            ServiceError: IMAGE_TOO_LARGE / UNSUPPORTED_FORMAT from validation,
                or any other kind from the analysis itself.
        """
        ...

    @abstractmethod
    async def validate_image(self, content: bytes, mime_type: str) -> bool:
        """
        Check size and format limits.

        Returns True when the image is acceptable. Deterministic on its input.

        Raises:
            ServiceError(IMAGE_TOO_LARGE) when len(content) exceeds the ceiling.
            ServiceError(UNSUPPORTED_FORMAT) when mime_type is not accepted.
        """
        ...

    @abstractmethod
    def get_provider_name(self) -> str:
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Cheap liveness check. Returns False on any internal fault."""
        ...

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        """Milliseconds since a time.perf_counter() reading."""
        return max(int((time.perf_counter() - start) * 1000), 0)


def normalize_mime_type(mime_type: str) -> str:
    """Lowercase, drop parameters, and fold image/jpg into image/jpeg."""
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    return "image/jpeg" if base == "image/jpg" else base


def format_megabytes(size: int) -> str:
    return f"{size / (1024 * 1024):.1f}MB"
