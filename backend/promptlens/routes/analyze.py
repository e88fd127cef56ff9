"""
PromptLens Backend - Analyze Route Handlers
=============================================

What:  POST /api/analyze-image turns an uploaded image into a generated prompt.
       GET  /api/providers lists registered and currently available providers.
How:   Reads the multipart upload, builds AnalysisOptions from the form
       fields, delegates to AnalysisService, wraps the outcome in the JSON
       envelope the frontend expects.
Who:   Called by the frontend prompt-generator page.

Request Flow:
    1. Client sends multipart/form-data: image (+ style, language, ...)
    2. Form values are validated into AnalysisOptions (400 on bad input)
    3. AnalysisService resolves a provider and runs the analysis
    4. 200 with {success, data{..., processingTime{total, ai}}}
    5. On error: the exception carries processing_time in its context and
       the handlers in main.py render {success: false, error{...}}
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError as PydanticValidationError

from promptlens.exceptions import PromptLensError, ValidationError
from promptlens.schemas.analysis import (
    AnalysisData,
    AnalysisOptions,
    AnalyzeErrorResponse,
    AnalyzeResponse,
    ProcessingTime,
    ProvidersResponse,
)
from promptlens.services.analysis_service import AnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Analyze"])


def get_analysis_service(request: Request) -> AnalysisService:
    """FastAPI dependency: the AnalysisService built by create_app()."""
    return request.app.state.analysis_service


def build_options(
    style: Optional[str] = None,
    language: Optional[str] = None,
    max_tokens: Optional[str] = None,
    temperature: Optional[str] = None,
) -> AnalysisOptions:
    """
    Convert raw form strings into AnalysisOptions.

    Blank values mean "not provided".

    Raises:
        ValidationError: unknown enum value or out-of-range number.
    """
    raw = {
        "style": style,
        "language": language,
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    values = {
        key: value.strip().lower() if key in ("style", "language") else value.strip()
        for key, value in raw.items()
        if value is not None and value.strip()
    }
    try:
        return AnalysisOptions(**values)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        raise ValidationError(
            message=f"Invalid value for '{field}': {first['msg']}",
            field=field,
            context={"errors": len(e.errors())},
        ) from e


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


@router.post(
    "/analyze-image",
    response_model=AnalyzeResponse,
    responses={
        200: {"description": "Image analyzed successfully", "model": AnalyzeResponse},
        400: {"description": "Invalid form values", "model": AnalyzeErrorResponse},
        408: {"description": "Upstream request timed out", "model": AnalyzeErrorResponse},
        413: {"description": "Image too large", "model": AnalyzeErrorResponse},
        415: {"description": "Unsupported image format", "model": AnalyzeErrorResponse},
        429: {"description": "Upstream quota exceeded", "model": AnalyzeErrorResponse},
        502: {"description": "Upstream network error or invalid reply", "model": AnalyzeErrorResponse},
        503: {"description": "AI service unavailable", "model": AnalyzeErrorResponse},
    },
    summary="Generate a text prompt from an image",
)
async def analyze_image(
    image: UploadFile = File(..., description="Image file (jpg, png, gif, webp)"),
    style: Optional[str] = Form(default=None, description="photographic, artistic, technical, creative"),
    language: Optional[str] = Form(default=None, description="en, zh, auto"),
    max_tokens: Optional[str] = Form(default=None, description="Upstream token budget (> 0)"),
    temperature: Optional[str] = Form(default=None, description="Sampling temperature (0-2)"),
    provider: Optional[str] = Form(default=None, description="Explicit provider name (no fallback)"),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalyzeResponse:
    """
    Analyze an uploaded image.

    Error responses (rendered by the global exception handlers):
        400 VALIDATION_ERROR, 408/413/415/429/502/503 per error kind,
        500 INTERNAL_ERROR for anything unclassified.
    """
    start = time.perf_counter()
    try:
        options = build_options(style, language, max_tokens, temperature)
        content = await image.read()
        mime_type = image.content_type or "application/octet-stream"

        logger.info(
            "Received analyze request: filename=%s, type=%s, size=%d bytes",
            image.filename or "unknown",
            mime_type,
            len(content),
        )

        outcome = await service.analyze(
            content,
            mime_type,
            options,
            provider=provider.strip().lower() if provider and provider.strip() else None,
        )
    except PromptLensError as e:
        e.context.setdefault("processing_time", _elapsed_ms(start))
        raise
    except Exception as e:
        logger.error("Unexpected error during analysis: %s", str(e), exc_info=True)
        raise PromptLensError(
            message="An internal error occurred",
            context={"processing_time": _elapsed_ms(start), "error_type": type(e).__name__},
        ) from e
    finally:
        await image.close()

    result = outcome.result
    return AnalyzeResponse(
        data=AnalysisData(
            prompt=result.prompt,
            description=result.description,
            tags=list(result.tags),
            confidence=result.confidence,
            provider=outcome.provider,
            processing_time=ProcessingTime(total=_elapsed_ms(start), ai=outcome.ai_time_ms),
        )
    )


@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="List image-analysis providers",
)
async def list_providers(
    service: AnalysisService = Depends(get_analysis_service),
) -> ProvidersResponse:
    registry = service.registry
    return ProvidersResponse(
        preferred=registry.preferred,
        registered=registry.registered_providers,
        available=await registry.get_available_providers(),
    )
