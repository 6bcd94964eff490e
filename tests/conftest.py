"""
tests/conftest.py -- Shared test fixtures for Gatekeeper integration tests.

This module provides:
  - _make_test_store(): isolated named shared-memory SQLite member store
  - _patch_lifespan(): wires the test store into app.state, bypassing real startup
  - api_client: module-scoped TestClient plus seeded admin/user members
  - client: function-scoped view of api_client with an empty cookie jar

A small resource router stands in for the protected business endpoints so
the policy table can be exercised end to end.

Named shared-memory SQLite URIs (not plain :memory:) are required because
TestClient runs sync route handlers in a thread pool; the named URI shares
one in-memory database across all connections in the process.

Environment variables must be set before any auth/core import so
get_settings() picks them up (DEBUG auto-generates SECRET_KEY).
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock

# CRITICAL: configure before importing anything that calls get_settings().
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SITE_FRONT_URL", "http://localhost:3000")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")

import pytest
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient

from api.main import app
from auth.dependencies import optional_member, require_admin
from auth.directory import MemberDirectory
from auth.models import ROLE_ADMIN, ROLE_USER, Member
from auth.store import MemberStore
from auth.tokens import create_access_token, generate_api_key, hash_password

# ---------------------------------------------------------------------------
# Stand-in resource server
# ---------------------------------------------------------------------------

resource_router = APIRouter()


@resource_router.get("/api/v1/posts")
async def list_posts(member: Member | None = Depends(optional_member)):
    return {"items": [], "member_id": member.id if member else None}


@resource_router.get("/api/v1/posts/statistics")
async def post_statistics(member: Member = Depends(require_admin)):
    return {"totalPostCount": 0}


@resource_router.get("/api/v1/posts/{post_id}")
async def get_post(post_id: int):
    return {"id": post_id}


@resource_router.post("/api/v1/posts")
async def create_post(member: Member | None = Depends(optional_member)):
    return {"author_id": member.id if member else None}


app.include_router(resource_router, tags=["Test resources"])


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> MemberStore:
    return MemberStore(db_url=f"sqlite:///file:test_members_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: MemberStore):
    """Return a lifespan that wires the test store and a mocked OAuth registry."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.member_store = store
        app.state.member_directory = MemberDirectory(store)
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


def _seed_member(store: MemberStore, username: str, roles: set[str]) -> Member:
    member_id = store.create_member(
        Member(
            username=username,
            nickname=username.title(),
            hashed_password=hash_password(f"{username}-pass"),
            api_key=generate_api_key(),
            roles=frozenset(roles),
        )
    )
    return store.get_by_id(member_id)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[SimpleNamespace, None, None]:
    """Yield a namespace with the TestClient, directory, and seeded members.

    Each test module gets its own database, named after the module.
    Members: admin (USER+ADMIN) and user (USER); passwords are "<username>-pass".
    """
    store = _make_test_store(request.module.__name__.replace(".", "_"))
    admin = _seed_member(store, "admin", {ROLE_USER, ROLE_ADMIN})
    user = _seed_member(store, "user1", {ROLE_USER})

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield SimpleNamespace(
            client=client,
            store=store,
            directory=MemberDirectory(store),
            admin=admin,
            user=user,
            admin_token=create_access_token(admin.id, username=admin.username),
            user_token=create_access_token(user.id, username=user.username),
        )

    store.close()


@pytest.fixture
def client(api_client: SimpleNamespace) -> TestClient:
    """The module's TestClient with cookies from earlier tests cleared."""
    api_client.client.cookies.clear()
    return api_client.client


@pytest.fixture
def memory_store() -> Generator[MemberStore, None, None]:
    """A private single-connection in-memory store for unit tests."""
    store = MemberStore(db_url="sqlite://")
    yield store
    store.close()


@pytest.fixture
def directory(memory_store: MemberStore) -> MemberDirectory:
    return MemberDirectory(memory_store)
