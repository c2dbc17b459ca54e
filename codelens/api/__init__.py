"""
REST API module for CodeLens.

Provides FastAPI endpoints for:
- Project registration
- Analysis jobs (start, status, cancel, history, results)
- Semantic index maintenance and search
"""
