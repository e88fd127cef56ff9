"""
PromptLens Backend - Pydantic Models for Image Analysis
=========================================================

What:  Domain models passed between analyzers and the service layer, plus the
       JSON envelopes returned by the HTTP API.
How:   Domain models (AnalysisOptions, AnalysisResult) are frozen so they can
       be shared freely once constructed. Envelope models use camelCase
       aliases because the frontend consumes `processingTime`, not
       `processing_time`.
Who:   Analyzers build AnalysisResult; routes build the envelopes.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Domain Models
# ══════════════════════════════════════════════════════════════════════════


class AnalysisStyle(str, Enum):
    PHOTOGRAPHIC = "photographic"
    ARTISTIC = "artistic"
    TECHNICAL = "technical"
    CREATIVE = "creative"


class AnalysisLanguage(str, Enum):
    EN = "en"
    ZH = "zh"
    AUTO = "auto"


class AnalysisOptions(BaseModel):
    """
    Per-call analysis configuration.

    Absent fields take provider-defined defaults (e.g. the OpenAI analyzer
    sends max_tokens=500, temperature=0.7 when they are None).
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    style: Optional[AnalysisStyle] = Field(default=None, description="Prompt style")
    language: Optional[AnalysisLanguage] = Field(default=None, description="Output language")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Upstream token budget")
    temperature: Optional[float] = Field(
        default=None, ge=0.0, le=2.0, description="Upstream sampling temperature"
    )


class AnalysisResult(BaseModel):
    """
    Output of a successful analysis. Immutable once constructed.

    Fields:
        prompt:              Generated descriptive text (never empty)
        description:         Short summary of the image
        tags:                Keywords, order irrelevant, may be empty
        confidence:          0..1, None when the provider does not report it
        processing_time_ms:  Wall-clock time spent inside the analyzer
    """

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(min_length=1)
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    processing_time_ms: Optional[int] = Field(default=None, ge=0)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be blank")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models - What the API returns to clients
# ══════════════════════════════════════════════════════════════════════════


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProcessingTime(_CamelModel):
    """Milliseconds spent on the whole request (`total`) and inside the analyzer (`ai`)."""

    total: int = Field(ge=0)
    ai: Optional[int] = Field(default=None, ge=0)


class AnalysisData(_CamelModel):
    prompt: str
    description: str
    tags: List[str]
    confidence: Optional[float] = None
    provider: str
    processing_time: ProcessingTime = Field(alias="processingTime")


class AnalyzeResponse(_CamelModel):
    """
    What:  Body of a successful POST /api/analyze-image (HTTP 200).

    Example:
        {
            "success": true,
            "data": {
                "prompt": "A stunning photograph of ...",
                "description": "A beautifully composed image ...",
                "tags": ["photography", "landscape"],
                "confidence": 0.87,
                "provider": "mock",
                "processingTime": {"total": 2104, "ai": 2093}
            }
        }
    """

    success: bool = True
    data: AnalysisData


class AnalyzeErrorDetail(_CamelModel):
    message: str
    code: str
    provider: Optional[str] = None
    processing_time: Optional[int] = Field(default=None, alias="processingTime")


class AnalyzeErrorResponse(_CamelModel):
    """
    What:  Body of a failed analysis request.

    `code` is the stable machine-readable identifier (the ErrorKind value,
    VALIDATION_ERROR, or INTERNAL_ERROR). The frontend translates it into
    localized copy; `message` is English diagnostic text.
    """

    success: bool = False
    error: AnalyzeErrorDetail


class ProvidersResponse(BaseModel):
    """Registered provider names and the subset currently able to serve requests."""

    preferred: str
    registered: List[str]
    available: List[str]


class HealthResponse(BaseModel):
    """
    What:  Response for GET /health.

    status is "healthy" when the preferred provider resolves, "degraded" when
    requests are being served by the mock fallback instead.
    """

    status: str = Field(description="Overall service status: healthy, degraded")
    version: str = Field(description="Application version")
    provider: str = Field(description="Provider currently serving requests")
    providers: List[str] = Field(description="Providers currently available")
    uptime_seconds: float = Field(description="Seconds since service started")
