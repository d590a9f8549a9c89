"""
tests/conftest.py -- Shared test fixtures for Quillpost.

This module provides:
  - FakeIdentityProvider: in-memory stand-in for Google (no network)
  - engine / directory / post_store / codec: isolated store fixtures
  - harness: an ApiHarness -- TestClient on the real app with a patched lifespan
    that wires test stores, a real SessionTokenCodec and the fake provider
    into app.state

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each test gets its own uniquely named database.

JWT_SECRET must be set before any api/ import: api.main reads Settings at
import time, and a missing secret is a fatal startup error.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set JWT_SECRET before any api/ or core.config import.
TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"
os.environ.setdefault("JWT_SECRET", TEST_SECRET)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import app
from auth.exchange import OAuthExchangeHandler
from auth.store import UserDirectory
from auth.tokens import SessionTokenCodec
from core.config import Settings
from core.db import create_db_engine
from posts.store import PostStore

# ---------------------------------------------------------------------------
# Fake identity provider
# ---------------------------------------------------------------------------


class FakeIdentityProvider:
    """IdentityProvider test double.

    register(code, **claims) makes `code` exchangeable; the verified
    assertion for that code returns `claims` verbatim. register(code,
    id_token=False) simulates Google answering without an id_token.
    Setting `error` makes every exchange raise it; `delay` makes every
    exchange sleep first (for timeout tests).
    """

    def __init__(self) -> None:
        self.profiles: dict[str, dict] = {}
        self.without_id_token: set[str] = set()
        self.exchanged: list[str] = []
        self.error: Exception | None = None
        self.delay: float = 0.0

    def register(self, code: str, id_token: bool = True, **claims) -> None:
        self.profiles[code] = claims
        if not id_token:
            self.without_id_token.add(code)

    def authorization_url(self) -> str:
        return "https://accounts.example.test/o/oauth2/auth?client_id=test-client&scope=openid+email+profile"

    async def exchange_code(self, code: str) -> dict:
        self.exchanged.append(code)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if code not in self.profiles:
            raise ValueError("invalid_grant")
        tokens = {"access_token": f"access-{code}", "token_type": "Bearer"}
        if code not in self.without_id_token:
            tokens["id_token"] = f"id-token-{code}"
        return tokens

    async def verify_assertion(self, id_token: str, access_token: str | None = None) -> dict:
        code = id_token[len("id-token-") :]
        return dict(self.profiles[code])


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


def _memory_url() -> str:
    return f"sqlite:///file:quillpost_test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine(_memory_url())
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite engine for tests that write from several threads at once."""
    eng = create_db_engine(f"sqlite:///{tmp_path / 'quillpost.db'}")
    yield eng
    eng.dispose()


@pytest.fixture
def directory(engine: Engine) -> UserDirectory:
    return UserDirectory(engine)


@pytest.fixture
def post_store(engine: Engine) -> PostStore:
    return PostStore(engine)


@pytest.fixture
def codec() -> SessionTokenCodec:
    return SessionTokenCodec(TEST_SECRET)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


# ---------------------------------------------------------------------------
# API harness
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    directory: UserDirectory
    post_store: PostStore
    codec: SessionTokenCodec
    provider: FakeIdentityProvider
    settings: Settings

    def add_user(self, external_id: str, role: str = "user", name: str | None = None) -> str:
        """Create an identity and return a Bearer token for it."""
        identity = self.directory.upsert_by_external_id(
            external_id, name or f"User {external_id}", f"{external_id}@example.com"
        )
        if role != identity.role:
            identity = self.directory.set_role(external_id, role)
        return self.codec.issue(identity.external_id, identity.email, identity.role)

    @staticmethod
    def bearer(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(settings: Settings, directory: UserDirectory, post_store: PostStore, codec, provider):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test collaborators into app.state so TestClient routes
    see isolated test DBs and the fake provider rather than Google.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_directory = directory
        app.state.post_store = post_store
        app.state.token_codec = codec
        app.state.identity_provider = provider
        app.state.oauth_exchange = OAuthExchangeHandler(provider, directory, codec, timeout=2.0)
        yield

    return test_lifespan


def _harness(settings: Settings, engine: Engine) -> Generator[ApiHarness, None, None]:
    directory = UserDirectory(engine)
    post_store = PostStore(engine)
    codec = SessionTokenCodec(TEST_SECRET, lifetime_seconds=settings.token_expire_seconds)
    provider = FakeIdentityProvider()

    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(settings, directory, post_store, codec, provider)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client, directory, post_store, codec, provider, settings)


@pytest.fixture
def harness(engine: Engine) -> Generator[ApiHarness, None, None]:
    """Harness with the default fragment token delivery."""
    settings = Settings(jwt_secret=TEST_SECRET, token_delivery="fragment", _env_file=None)
    yield from _harness(settings, engine)


@pytest.fixture
def cookie_harness(engine: Engine) -> Generator[ApiHarness, None, None]:
    """Harness with cookie token delivery (secure cookies off for plain-HTTP TestClient)."""
    settings = Settings(jwt_secret=TEST_SECRET, token_delivery="cookie", secure_cookies=False, _env_file=None)
    yield from _harness(settings, engine)


@pytest.fixture
def file_harness(file_engine: Engine) -> Generator[ApiHarness, None, None]:
    """Harness on a file-backed database, for requests issued from several threads at once."""
    settings = Settings(jwt_secret=TEST_SECRET, _env_file=None)
    yield from _harness(settings, file_engine)
