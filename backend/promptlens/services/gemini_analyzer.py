"""
PromptLens Backend - Google Gemini Vision Analyzer
====================================================

What:  Remote analyzer backed by the Google Gemini Vision API.
How:   Sends the style-specific system instruction, the user instruction and
       the raw image bytes through the google-generativeai SDK. The call runs
       inside with_retry(); SDK exceptions are mapped into ErrorKind.
Who:   Registered as "gemini" in AnalyzerRegistry.

Failure mapping:
    no API key configured                  → INVALID_API_KEY (no network I/O)
    Unauthenticated / PermissionDenied     → INVALID_API_KEY
    InvalidArgument mentioning the API key → INVALID_API_KEY
    ResourceExhausted                      → QUOTA_EXCEEDED
    DeadlineExceeded / asyncio timeout     → TIMEOUT
    other GoogleAPICallError               → SERVICE_UNAVAILABLE
    blocked or empty candidate             → INVALID_RESPONSE
    anything else                          → NETWORK_ERROR

Size and format limits match the OpenAI analyzer (20MB; jpeg, png, gif, webp).
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from promptlens.exceptions import ErrorKind, ServiceError
from promptlens.schemas.analysis import AnalysisOptions, AnalysisResult
from promptlens.services.analyzer_base import (
    ImageAnalyzer,
    format_megabytes,
    normalize_mime_type,
)
from promptlens.services.openai_analyzer import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    LIVENESS_TIMEOUT,
    MAX_FILE_SIZE,
    REMOTE_CONFIDENCE,
    SUPPORTED_MIME_TYPES,
)
from promptlens.services.response_parser import (
    USER_INSTRUCTION,
    build_system_prompt,
    parse_analysis_text,
)
from promptlens.services.retry import RetryOptions, with_retry

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"


class GeminiAnalyzer(ImageAnalyzer):
    """
    Gemini Vision implementation of ImageAnalyzer.

    The SDK keeps its API key in module-level state, so configure() runs once
    per analyzer instance; the registry keeps one instance per process.
    """

    PROVIDER_NAME = "gemini"

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        retry_options: Optional[RetryOptions] = None,
    ):
        self.api_key = api_key or ""
        self.model_name = model or DEFAULT_MODEL
        self.timeout = timeout
        self.retry_options = retry_options or RetryOptions()

        # What: The SDK stores the key globally; skip configure() when unset so
        # an empty key never overwrites one set elsewhere in the process
        if self.api_key:
            genai.configure(api_key=self.api_key)

        logger.info("GeminiAnalyzer initialized with model=%s", self.model_name)

    async def analyze_image(
        self,
        content: bytes,
        mime_type: str,
        options: Optional[AnalysisOptions] = None,
    ) -> AnalysisResult:
        start = time.perf_counter()
        request_id = str(uuid.uuid4())[:8]

        if not self.api_key:
            raise ServiceError(
                ErrorKind.INVALID_API_KEY,
                "Gemini API key not configured",
                self.PROVIDER_NAME,
            )

        await self.validate_image(content, mime_type)

        options = options or AnalysisOptions()
        style = options.style.value if options.style else None
        language = options.language.value if options.language else None
        model = genai.GenerativeModel(
            self.model_name,
            system_instruction=build_system_prompt(style, language),
        )
        generation_config = genai.GenerationConfig(
            max_output_tokens=options.max_tokens or DEFAULT_MAX_TOKENS,
            temperature=(
                options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
            ),
        )
        parts = [USER_INSTRUCTION, {"mime_type": normalize_mime_type(mime_type), "data": content}]

        logger.info("[%s] Starting Gemini analysis: %d bytes (%s)", request_id, len(content), mime_type)

        reply = await with_retry(
            lambda: self._generate(model, parts, generation_config),
            self.retry_options,
        )
        parsed = parse_analysis_text(reply)

        elapsed = self._elapsed_ms(start)
        logger.info("[%s] Gemini analysis completed in %dms", request_id, elapsed)

        return AnalysisResult(
            prompt=parsed["prompt"],
            description=parsed["description"],
            tags=parsed["tags"],
            confidence=REMOTE_CONFIDENCE,
            processing_time_ms=elapsed,
        )

    async def _generate(self, model: Any, parts: list, generation_config: Any) -> str:
        """One upstream attempt. Returns the reply text or raises ServiceError."""
        # Two timeouts: request_options bounds the RPC inside the SDK,
        # wait_for bounds the whole call including SDK-side retries
        try:
            response = await asyncio.wait_for(
                model.generate_content_async(
                    parts,
                    generation_config=generation_config,
                    request_options={"timeout": self.timeout},
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ServiceError(
                ErrorKind.TIMEOUT, "Gemini API request timeout", self.PROVIDER_NAME, cause=e
            ) from e
        except google_exceptions.GoogleAPICallError as e:
            raise self._map_api_error(e) from e
        except Exception as e:
            raise ServiceError(
                ErrorKind.NETWORK_ERROR,
                f"Gemini API error: {e}",
                self.PROVIDER_NAME,
                cause=e,
            ) from e

        try:
            text = response.text
        except (ValueError, AttributeError) as e:
            # Raised by the SDK when the candidate was blocked or has no parts
            raise ServiceError(
                ErrorKind.INVALID_RESPONSE,
                "Gemini returned no usable content",
                self.PROVIDER_NAME,
                cause=e,
            ) from e
        if not isinstance(text, str):
            raise ServiceError(
                ErrorKind.INVALID_RESPONSE,
                "Gemini reply has no text content",
                self.PROVIDER_NAME,
            )
        return text

    def _map_api_error(self, error: google_exceptions.GoogleAPICallError) -> ServiceError:
        context: Dict[str, Any] = {"status": getattr(error, "code", None)}

        if isinstance(error, (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied)):
            kind, message = ErrorKind.INVALID_API_KEY, "Invalid Gemini API key"
        elif isinstance(error, google_exceptions.InvalidArgument) and "api key" in str(error).lower():
            kind, message = ErrorKind.INVALID_API_KEY, "Invalid Gemini API key"
        elif isinstance(error, google_exceptions.ResourceExhausted):
            kind, message = ErrorKind.QUOTA_EXCEEDED, "Gemini API quota exceeded"
        elif isinstance(error, google_exceptions.DeadlineExceeded):
            kind, message = ErrorKind.TIMEOUT, "Gemini API request timeout"
        else:
            kind, message = ErrorKind.SERVICE_UNAVAILABLE, f"Gemini API error: {error.message}"

        return ServiceError(kind, message, self.PROVIDER_NAME, cause=error, context=context)

    async def validate_image(self, content: bytes, mime_type: str) -> bool:
        if len(content) > MAX_FILE_SIZE:
            raise ServiceError(
                ErrorKind.IMAGE_TOO_LARGE,
                f"Image too large: {format_megabytes(len(content))} exceeds 20MB limit",
                self.PROVIDER_NAME,
            )
        if normalize_mime_type(mime_type) not in SUPPORTED_MIME_TYPES:
            raise ServiceError(
                ErrorKind.UNSUPPORTED_FORMAT,
                f"Unsupported image format for Gemini: {mime_type}",
                self.PROVIDER_NAME,
            )
        return True

    def get_provider_name(self) -> str:
        return self.PROVIDER_NAME

    async def is_available(self) -> bool:
        """
        Lists models with a 5s timeout (no token cost).

        Returns False without network I/O when no API key is configured.
        """
        if not self.api_key:
            return False
        try:
            # list_models() is a blocking generator; run it off the event loop
            models = await asyncio.wait_for(
                asyncio.to_thread(
                    lambda: list(genai.list_models(request_options={"timeout": LIVENESS_TIMEOUT}))
                ),
                timeout=LIVENESS_TIMEOUT,
            )
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

        target = f"models/{self.model_name}"
        if target not in {getattr(m, "name", None) for m in models}:
            logger.warning("Configured model %s not found in available models", target)
        return True
