"""
asgi.py -- ASGI entry point for Gatekeeper.

The protected business endpoints (the resource server) are mounted onto this
app by the surrounding application; the gateway middleware guards them
according to the policy table.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
