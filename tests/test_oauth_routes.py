"""
tests/test_oauth_routes.py -- Integration tests for GET /login, GET /oauth and GET /oauth/logout.

Runs through the real ASGI stack with the harness fixtures (follow_redirects=False)
so Location and Set-Cookie headers can be asserted directly.

Coverage:
  - /login returns the provider consent URL
  - /oauth happy path, fragment delivery: 302 to FRONTEND_REDIRECT_URL#token=<jwt>
  - /oauth happy path, cookie delivery: httpOnly cookie, no token in the URL
  - /oauth error paths: missing code, no id_token, incomplete profile, provider failure
  - /oauth/logout clears the cookie
  - GoogleIdentityProvider.authorization_url() parameters (no network)
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from auth.models import ROLE_ADMIN, ROLE_USER
from auth.oauth import GoogleIdentityProvider

ALICE = {"sub": "g1", "email": "a@b.com", "name": "Alice"}


def _token_from_fragment(location: str) -> str:
    fragment = urlparse(location).fragment
    assert fragment.startswith("token=")
    return fragment[len("token=") :]


class TestLogin:
    def test_returns_consent_url(self, harness) -> None:
        resp = harness.client.get("/login")
        assert resp.status_code == 200
        assert resp.json() == {"url": harness.provider.authorization_url()}
        assert resp.headers["referrer-policy"] == "no-referrer-when-downgrade"

    def test_google_authorization_url_parameters(self) -> None:
        provider = GoogleIdentityProvider("client-123", "shh", "http://localhost:3000/oauth")
        url = urlparse(provider.authorization_url())
        query = parse_qs(url.query)
        assert url.netloc == "accounts.google.com"
        assert query["client_id"] == ["client-123"]
        assert query["response_type"] == ["code"]
        assert query["redirect_uri"] == ["http://localhost:3000/oauth"]
        assert query["scope"] == ["openid email profile"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]


class TestCallbackFragmentDelivery:
    def test_new_user_redirects_with_token(self, harness) -> None:
        """Scenario: /oauth?code=ABC for g1/a@b.com/Alice creates a user and returns a token for g1."""
        harness.provider.register("ABC", **ALICE)

        resp = harness.client.get("/oauth", params={"code": "ABC"})

        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith(harness.settings.frontend_redirect_url + "#token=")
        assert resp.headers["cache-control"] == "no-store"
        assert "set-cookie" not in resp.headers

        claims = harness.codec.verify(_token_from_fragment(location))
        assert claims.subject == "g1"
        assert claims.role == ROLE_USER
        stored = harness.directory.find_by_external_id("g1")
        assert stored.display_name == "Alice"
        assert stored.role == ROLE_USER

    def test_token_authenticates_follow_up_requests(self, harness) -> None:
        harness.provider.register("ABC", **ALICE)
        token = _token_from_fragment(harness.client.get("/oauth", params={"code": "ABC"}).headers["location"])
        resp = harness.client.get("/user", params={"id": "g1"}, headers=harness.bearer(token))
        assert resp.status_code == 200
        assert resp.json()["name"] == "Alice"

    def test_returning_admin_keeps_admin_token(self, harness) -> None:
        harness.add_user("g1", role=ROLE_ADMIN, name="Alice")
        harness.provider.register("ABC", **ALICE)
        token = _token_from_fragment(harness.client.get("/oauth", params={"code": "ABC"}).headers["location"])
        assert harness.codec.verify(token).role == ROLE_ADMIN
        assert harness.directory.find_by_external_id("g1").role == ROLE_ADMIN


class TestCallbackErrors:
    def test_missing_code(self, harness) -> None:
        resp = harness.client.get("/oauth")
        assert resp.status_code == 400
        assert resp.json() == {"message": "Missing code"}
        assert harness.provider.exchanged == []
        assert harness.directory.list_identities() == []

    def test_no_id_token(self, harness) -> None:
        harness.provider.register("ABC", id_token=False, **ALICE)
        resp = harness.client.get("/oauth", params={"code": "ABC"})
        assert resp.status_code == 400
        assert resp.json() == {"message": "No id_token returned"}

    def test_incomplete_profile(self, harness) -> None:
        harness.provider.register("ABC", sub="g1", email="a@b.com")
        resp = harness.client.get("/oauth", params={"code": "ABC"})
        assert resp.status_code == 400
        assert resp.json() == {"message": "Incomplete Google profile: missing sub/email/name"}
        assert harness.directory.find_by_external_id("g1") is None

    def test_provider_failure_is_generic(self, harness) -> None:
        """Provider error text never reaches the client."""
        harness.provider.error = RuntimeError("upstream said: invalid_client secret=abc")
        resp = harness.client.get("/oauth", params={"code": "ABC"})
        assert resp.status_code == 500
        assert resp.json() == {"message": "Login failed"}
        assert "invalid_client" not in resp.text
        assert harness.directory.list_identities() == []


class TestCallbackCookieDelivery:
    def test_sets_http_only_cookie_without_token_in_url(self, cookie_harness) -> None:
        cookie_harness.provider.register("ABC", **ALICE)

        resp = cookie_harness.client.get("/oauth", params={"code": "ABC"})

        assert resp.status_code == 302
        assert resp.headers["location"] == cookie_harness.settings.frontend_redirect_url
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith("token=")
        assert "HttpOnly" in set_cookie
        assert f"Max-Age={cookie_harness.settings.token_expire_seconds}" in set_cookie

        token = resp.cookies["token"]
        assert cookie_harness.codec.verify(token).subject == "g1"

    def test_cookie_authenticates_follow_up_requests(self, cookie_harness) -> None:
        cookie_harness.provider.register("ABC", **ALICE)
        cookie_harness.client.get("/oauth", params={"code": "ABC"})
        resp = cookie_harness.client.get("/user", params={"id": "g1"})
        assert resp.status_code == 200

    def test_logout_clears_cookie(self, cookie_harness) -> None:
        resp = cookie_harness.client.get("/oauth/logout")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out successfully"}
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith("token=")
        assert "Max-Age=0" in set_cookie
