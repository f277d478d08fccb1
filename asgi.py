"""
asgi.py -- ASGI entry point for the auth template.

Kept separate from api/main.py so process managers have a stable import path
that does not change if the application module is reorganised.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
