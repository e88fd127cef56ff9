"""
PromptLens Backend - API Routes Package
=========================================

Route Inventory:
    - analyze.py: POST /api/analyze-image   (upload and analyze image)
                  GET  /api/providers       (registered / available providers)
    - health.py:  GET  /health              (service health check)

Routes stay thin: parse the request, call AnalysisService, shape the
response. Errors propagate to the handlers registered in main.py.
"""
