"""
PromptLens Backend - Mock Image Analyzer
==========================================

What:  Network-free stand-in for a vision model.
Why:   Lets the app run with no API keys and gives tests a provider whose
       failures can be forced on demand.
How:   Picks a canned prompt at random, simulates 1-3s of latency and fails
       5% of calls with INVALID_RESPONSE (a corrupted upstream reply).

Determinism:
    The random source and the sleep function are constructor arguments.
    Tests pass random.Random(seed) (or a stub) and an AsyncMock sleep.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Iterable, Optional

from promptlens.exceptions import ErrorKind, ServiceError
from promptlens.schemas.analysis import AnalysisOptions, AnalysisResult
from promptlens.services.analyzer_base import (
    ImageAnalyzer,
    format_megabytes,
    normalize_mime_type,
)

logger = logging.getLogger(__name__)

MOCK_RESULTS = [
    {
        "prompt": "A stunning photograph of a serene landscape, golden hour lighting, ultra-detailed, cinematic composition, professional photography",
        "description": "A beautifully composed image with excellent lighting and composition",
        "tags": ["photography", "landscape", "golden hour", "cinematic"],
    },
    {
        "prompt": "Beautiful portrait photography, soft natural lighting, bokeh background, high resolution, professional studio lighting",
        "description": "Professional quality photograph with great attention to detail",
        "tags": ["portrait", "lighting", "bokeh", "professional"],
    },
    {
        "prompt": "Vibrant urban architecture, modern cityscape, symmetrical composition, sharp details, architectural photography",
        "description": "Visually striking image with strong architectural elements",
        "tags": ["architecture", "urban", "modern", "symmetrical"],
    },
    {
        "prompt": "Colorful abstract art, dynamic composition, bold colors, creative design, digital art masterpiece",
        "description": "Creative and artistic composition with vibrant colors",
        "tags": ["abstract", "colorful", "creative", "artistic"],
    },
    {
        "prompt": "Nature macro photography, incredible detail, shallow depth of field, natural colors, stunning clarity",
        "description": "High-quality image with distinctive visual characteristics",
        "tags": ["nature", "macro", "detailed", "organic"],
    },
    {
        "prompt": "A sun, Space Opera scene. Vast starfield with colorful nebulae. Massive ornate spacecraft. Alien planet with multiple moons. Dramatic space lighting. Advanced tech elements. Diverse alien species. Epic scale. Vibrant cosmic colors. Sleek futuristic designs",
        "description": "Epic space opera scene with cosmic grandeur and futuristic elements",
        "tags": ["space", "sci-fi", "cosmic", "futuristic", "epic"],
    },
]

STYLE_SUFFIXES = {
    "artistic": ", artistic interpretation, creative vision, expressive style",
    "technical": ", technical precision, detailed analysis, professional documentation",
    "photographic": ", photorealistic quality, camera settings optimized, professional technique",
}

DEFAULT_ALLOWED_TYPES = ("jpg", "jpeg", "png", "gif", "webp")

# Seconds; drawn uniformly per call
MIN_LATENCY = 1.0
MAX_LATENCY = 3.0

FAILURE_RATE = 0.05


class MockAnalyzer(ImageAnalyzer):
    """
    Deterministic-shape, randomized-content analyzer.

    Args:
        max_file_size_mb:   Size ceiling enforced by validate_image().
        allowed_file_types: Extensions (jpg, png, ...) turned into image/* types.
        rng:                Random source for latency, entry choice,
                            confidence and failure injection.
        sleep:              Awaitable sleep used for simulated latency.
        failure_rate:       Probability of INVALID_RESPONSE per call.
    """

    PROVIDER_NAME = "mock"

    def __init__(
        self,
        max_file_size_mb: int = 10,
        allowed_file_types: Optional[Iterable[str]] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        failure_rate: float = FAILURE_RATE,
    ):
        self.max_file_size = max_file_size_mb * 1024 * 1024
        types = allowed_file_types if allowed_file_types is not None else DEFAULT_ALLOWED_TYPES
        self.allowed_mime_types = frozenset(
            normalize_mime_type(f"image/{t.strip().lower()}") for t in types if t.strip()
        )
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.failure_rate = failure_rate

    async def analyze_image(
        self,
        content: bytes,
        mime_type: str,
        options: Optional[AnalysisOptions] = None,
    ) -> AnalysisResult:
        start = time.perf_counter()
        await self.validate_image(content, mime_type)

        await self._sleep(self._rng.uniform(MIN_LATENCY, MAX_LATENCY))

        # What: Simulates a corrupted upstream reply so the error path is
        # exercised in development. Runs after validation, which stays deterministic
        if self._rng.random() < self.failure_rate:
            logger.info("Mock analyzer injecting INVALID_RESPONSE failure")
            raise ServiceError(
                ErrorKind.INVALID_RESPONSE,
                "Image analysis failed - corrupted or invalid response data",
                self.PROVIDER_NAME,
            )

        entry = self._rng.choice(MOCK_RESULTS)
        prompt = entry["prompt"]
        style = options.style.value if options and options.style else None
        prompt += STYLE_SUFFIXES.get(style, "")

        return AnalysisResult(
            prompt=prompt,
            description=entry["description"],
            tags=list(entry["tags"]),
            confidence=self._rng.uniform(0.7, 1.0),
            processing_time_ms=self._elapsed_ms(start),
        )

    async def validate_image(self, content: bytes, mime_type: str) -> bool:
        if len(content) > self.max_file_size:
            raise ServiceError(
                ErrorKind.IMAGE_TOO_LARGE,
                f"Image too large: {format_megabytes(len(content))} exceeds "
                f"{format_megabytes(self.max_file_size)} limit",
                self.PROVIDER_NAME,
            )

        if normalize_mime_type(mime_type) not in self.allowed_mime_types:
            raise ServiceError(
                ErrorKind.UNSUPPORTED_FORMAT,
                f"Unsupported image format: {mime_type}",
                self.PROVIDER_NAME,
            )
        return True

    def get_provider_name(self) -> str:
        return self.PROVIDER_NAME

    async def is_available(self) -> bool:
        return True

    @property
    def max_tags(self) -> int:
        return max(len(entry["tags"]) for entry in MOCK_RESULTS)
