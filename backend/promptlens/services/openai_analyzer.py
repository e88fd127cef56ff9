"""
PromptLens Backend - OpenAI-compatible Vision Analyzer
========================================================

What:  Remote analyzer that sends the image to a chat-completions vision
       endpoint and parses the reply into an AnalysisResult.
How:   httpx.AsyncClient POST {base_url}/chat/completions with the image as a
       base64 data URI. The upstream call runs inside with_retry(); transport
       and HTTP failures are mapped into the shared ErrorKind taxonomy.
Who:   Registered as "openai" in AnalyzerRegistry.

Failure mapping:
    no API key configured      → INVALID_API_KEY (no network I/O)
    request timeout            → TIMEOUT
    other transport failure    → NETWORK_ERROR
    HTTP 401                   → INVALID_API_KEY
    HTTP 429                   → QUOTA_EXCEEDED
    any other non-2xx          → SERVICE_UNAVAILABLE
    body without choices[0].message.content → INVALID_RESPONSE

Retried (default predicate): TIMEOUT, NETWORK_ERROR, SERVICE_UNAVAILABLE.
"""

import base64
import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx

from promptlens.exceptions import ErrorKind, ServiceError
from promptlens.schemas.analysis import AnalysisOptions, AnalysisResult
from promptlens.services.analyzer_base import (
    ImageAnalyzer,
    format_megabytes,
    normalize_mime_type,
)
from promptlens.services.response_parser import (
    USER_INSTRUCTION,
    build_system_prompt,
    parse_analysis_text,
)
from promptlens.services.retry import RetryOptions, parse_retry_after, with_retry

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4-vision-preview"
DEFAULT_MAX_TOKENS = 500
DEFAULT_TEMPERATURE = 0.7

# The remote model does not report calibrated confidence
REMOTE_CONFIDENCE = 0.9

MAX_FILE_SIZE = 20 * 1024 * 1024
SUPPORTED_MIME_TYPES = frozenset(
    normalize_mime_type(t)
    for t in ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")
)
LIVENESS_TIMEOUT = 5.0


class OpenAIAnalyzer(ImageAnalyzer):
    """
    Vision analyzer for any OpenAI-compatible chat-completions API.

    Args:
        api_key:        Bearer token; empty means "not configured".
        base_url:       API root, e.g. https://api.openai.com/v1
        model:          Model identifier sent in the request body.
        timeout:        Seconds allowed for one upstream request.
        retry_options:  Backoff policy for the upstream call.
        transport:      Optional httpx transport (tests use httpx.MockTransport).
    """

    PROVIDER_NAME = "openai"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        retry_options: Optional[RetryOptions] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or ""
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.model = model or DEFAULT_MODEL
        self.timeout = timeout
        self.retry_options = retry_options or RetryOptions()
        self._transport = transport

    # ── ImageAnalyzer ─────────────────────────────────────────────────────

    async def analyze_image(
        self,
        content: bytes,
        mime_type: str,
        options: Optional[AnalysisOptions] = None,
    ) -> AnalysisResult:
        start = time.perf_counter()
        request_id = str(uuid.uuid4())[:8]

        # Checked before validation and before any I/O
        if not self.api_key:
            raise ServiceError(
                ErrorKind.INVALID_API_KEY,
                "OpenAI API key not configured",
                self.PROVIDER_NAME,
            )

        await self.validate_image(content, mime_type)

        payload = self._build_payload(content, mime_type, options or AnalysisOptions())
        logger.info(
            "[%s] Sending %d bytes (%s) to %s model=%s",
            request_id,
            len(content),
            mime_type,
            self.base_url,
            self.model,
        )

        data = await with_retry(lambda: self._post_completion(payload), self.retry_options)
        reply = self._extract_reply(data)
        parsed = parse_analysis_text(reply)

        elapsed = self._elapsed_ms(start)
        logger.info("[%s] OpenAI analysis completed in %dms", request_id, elapsed)

        return AnalysisResult(
            prompt=parsed["prompt"],
            description=parsed["description"],
            tags=parsed["tags"],
            confidence=REMOTE_CONFIDENCE,
            processing_time_ms=elapsed,
        )

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
                f"Unsupported image format for OpenAI: {mime_type}",
                self.PROVIDER_NAME,
            )
        return True

    def get_provider_name(self) -> str:
        return self.PROVIDER_NAME

    async def is_available(self) -> bool:
        """
        Check GET {base_url}/models with a 5s timeout.

        Returns False without network I/O when no API key is configured.
        """
        if not self.api_key:
            return False
        try:
            async with self._client(LIVENESS_TIMEOUT) as client:
                response = await client.get(f"{self.base_url}/models", headers=self._headers())
            return response.is_success
        except Exception as e:
            logger.warning("OpenAI liveness check failed: %s", str(e))
            return False

    # ── Internals ─────────────────────────────────────────────────────────

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=httpx.Timeout(timeout))

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _build_payload(
        self, content: bytes, mime_type: str, options: AnalysisOptions
    ) -> Dict[str, Any]:
        # What: Image goes inline as a base64 data URI, not an uploaded file URL
        # Why: The endpoint never has to fetch anything, and nothing is stored
        # on our side (a 20MB image becomes ~27MB of JSON)
        data_url = f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"
        style = options.style.value if options.style else None
        language = options.language.value if options.language else None

        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(style, language)},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_INSTRUCTION},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                },
            ],
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            # `is None`, not truthiness: temperature=0.0 is a valid request
            "temperature": (
                options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE
            ),
        }

    async def _post_completion(self, payload: Dict[str, Any]) -> Any:
        """One upstream attempt. Raises ServiceError for every failure."""
        # One client per attempt: a retry after a transport failure starts
        # from a fresh connection pool
        try:
            async with self._client(self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise ServiceError(
                ErrorKind.TIMEOUT,
                "OpenAI API request timeout",
                self.PROVIDER_NAME,
                cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise ServiceError(
                ErrorKind.NETWORK_ERROR,
                f"OpenAI API error: {e}",
                self.PROVIDER_NAME,
                cause=e,
            ) from e

        if not response.is_success:
            raise self._error_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(
                ErrorKind.INVALID_RESPONSE,
                "OpenAI API returned a non-JSON body",
                self.PROVIDER_NAME,
                cause=e,
            ) from e

    def _error_for_status(self, response: httpx.Response) -> ServiceError:
        status = response.status_code
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        context = {"status": status}

        if status == 401:
            return ServiceError(
                ErrorKind.INVALID_API_KEY,
                "Invalid OpenAI API key",
                self.PROVIDER_NAME,
                context=context,
            )
        if status == 429:
            return ServiceError(
                ErrorKind.QUOTA_EXCEEDED,
                "OpenAI API quota exceeded",
                self.PROVIDER_NAME,
                retry_after=retry_after,
                context=context,
            )
        return ServiceError(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"OpenAI API error: {status} {response.reason_phrase}",
            self.PROVIDER_NAME,
            retry_after=retry_after,
            context=context,
        )

    def _extract_reply(self, data: Any) -> str:
        try:
            reply = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ServiceError(
                ErrorKind.INVALID_RESPONSE,
                "Invalid response format from OpenAI API",
                self.PROVIDER_NAME,
                cause=e,
            ) from e
        if not isinstance(reply, str):
            raise ServiceError(
                ErrorKind.INVALID_RESPONSE,
                "OpenAI API reply has no text content",
                self.PROVIDER_NAME,
            )
        return reply
