# backend/portfolio_engine/schemas/__init__.py
"""
Pydantic request/response schemas for the API layer.
"""
