# backend/portfolio_engine/routers/__init__.py
"""
API routers.

Routers translate HTTP to service calls and map service results to schemas.
Domain exceptions propagate to the handlers registered in main.py.
"""
