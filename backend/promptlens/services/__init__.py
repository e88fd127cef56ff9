"""
PromptLens Backend - Services Layer
=====================================

What:  Business logic between the routes (HTTP) and the upstream vision APIs.

Service Inventory:
    - ImageAnalyzer (abstract): capability contract for providers
    - MockAnalyzer / OpenAIAnalyzer / GeminiAnalyzer: concrete providers
    - AnalyzerRegistry: name → provider resolution with instance cache
    - with_retry / retry_api_request: backoff orchestration
    - AnalysisService: the boundary operation used by the routes
    - analytics: optional event observers
"""
