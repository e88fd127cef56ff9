"""
PromptLens Backend - Application Package Initializer
======================================================

What: Image-to-prompt backend. Upload an image, send it to a pluggable
      image-analysis provider, return an editable text prompt.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    AnalysisService (orchestration)  │  ← resolve provider, analytics
    ├─────────────────────────────────────┤
    │  AnalyzerRegistry → ImageAnalyzer   │  ← mock / openai / gemini
    ├─────────────────────────────────────┤
    │       Retry orchestrator            │  ← tenacity backoff + jitter
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
