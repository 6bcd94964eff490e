"""
api/cors.py -- CORS restricted to the API path prefix.

Starlette's CORSMiddleware applies to every path. ApiCORSMiddleware wraps it
so only requests under the API prefix (default "/api/") get CORS handling;
everything else -- OAuth redirects, docs -- passes straight through.
"""

from __future__ import annotations

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE"]


class ApiCORSMiddleware:
    def __init__(self, app: ASGIApp, path_prefix: str, allow_origins: list[str]) -> None:
        self.app = app
        self.path_prefix = path_prefix
        self.cors = CORSMiddleware(
            app,
            allow_origins=allow_origins,
            allow_methods=ALLOWED_METHODS,
            allow_headers=["*"],
            allow_credentials=True,
            max_age=3600,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].startswith(self.path_prefix):
            await self.cors(scope, receive, send)
            return
        await self.app(scope, receive, send)
