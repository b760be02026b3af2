from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from tenacity import wait_none

from src.sbhs.auth import OAuthClient, ensure_fresh_tokens
from src.sbhs.config import SbhsConfig
from src.sbhs.errors import AuthenticationError, PermanentError, TransientError
from src.sbhs.models import TokenSet
from src.sbhs.session import SessionStore

TOKEN_URL = "https://auth.example/token"


class _StubResponse:
    def __init__(self, status_code=200, json_body=None, text=""):
        self.status_code = status_code
        self._json = json_body
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("not json")
        return self._json


class _StubSession:
    """Records token POSTs and replays queued responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append((url, dict(data)))
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture(autouse=True)
def _no_retry_wait(monkeypatch):
    monkeypatch.setattr(OAuthClient._token_request.retry, "wait", wait_none())


@pytest.fixture
def config():
    return SbhsConfig(
        sbhs_app_id="app-id",
        sbhs_app_secret="shh",
        sbhs_redirect_uri="http://localhost:3000/auth/callback",
        sbhs_authorization_endpoint="https://auth.example/authorize",
        sbhs_token_endpoint=TOKEN_URL,
    )


def test_authorization_url(config):
    url, state = OAuthClient(config, session=_StubSession()).authorization_url()
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://auth.example/authorize"
    assert query["response_type"] == ["code"]
    assert query["client_id"] == ["app-id"]
    assert query["redirect_uri"] == ["http://localhost:3000/auth/callback"]
    assert query["scope"] == ["all-ro"]
    assert query["state"] == [state]
    assert len(state) >= 16


def test_authorization_url_keeps_given_state(config):
    _, state = OAuthClient(config, session=_StubSession()).authorization_url("fixed")
    assert state == "fixed"


def test_exchange_code_posts_form(config):
    session = _StubSession(
        _StubResponse(json_body={"access_token": "a1", "refresh_token": "r1", "expires_in": 600})
    )
    tokens = OAuthClient(config, session=session).exchange_code("the-code", "s", "s")

    assert (tokens.access_token, tokens.refresh_token, tokens.expires_in) == ("a1", "r1", 600)
    url, form = session.posts[0]
    assert url == TOKEN_URL
    assert form == {
        "grant_type": "authorization_code",
        "code": "the-code",
        "redirect_uri": "http://localhost:3000/auth/callback",
        "client_id": "app-id",
        "client_secret": "shh",
    }


def test_exchange_code_rejects_missing_code_and_bad_state(config):
    oauth = OAuthClient(config, session=_StubSession())
    with pytest.raises(AuthenticationError):
        oauth.exchange_code(None)
    with pytest.raises(AuthenticationError, match="state"):
        oauth.exchange_code("c", "other", "expected")


def test_exchange_code_without_saved_state_is_allowed(config):
    session = _StubSession(_StubResponse(json_body={"access_token": "a1"}))
    tokens = OAuthClient(config, session=session).exchange_code("c", "whatever", None)
    assert tokens.expires_in == 3600


def test_refresh_keeps_old_refresh_token(config):
    session = _StubSession(_StubResponse(json_body={"access_token": "a2", "expires_in": 3600}))
    tokens = OAuthClient(config, session=session).refresh("r1")
    assert tokens.access_token == "a2"
    assert tokens.refresh_token == "r1"
    assert session.posts[0][1]["grant_type"] == "refresh_token"


def test_refresh_without_token(config):
    with pytest.raises(AuthenticationError):
        OAuthClient(config, session=_StubSession()).refresh(None)


@pytest.mark.parametrize("status", [400, 401, 403])
def test_rejected_grant(config, status):
    session = _StubSession(_StubResponse(status, text="invalid_grant"))
    with pytest.raises(AuthenticationError):
        OAuthClient(config, session=session).refresh("r1")


def test_invalid_json(config):
    session = _StubSession(_StubResponse(200, text="<html>"))
    with pytest.raises(PermanentError, match="Invalid JSON"):
        OAuthClient(config, session=session).refresh("r1")


def test_transient_errors_are_retried(config):
    session = _StubSession(
        requests.ConnectionError("reset"),
        _StubResponse(502),
        _StubResponse(json_body={"access_token": "a3"}),
    )
    tokens = OAuthClient(config, session=session).refresh("r1")
    assert tokens.access_token == "a3"
    assert len(session.posts) == 3


def test_transient_errors_give_up(config):
    session = _StubSession(*[_StubResponse(500)] * 3)
    with pytest.raises(TransientError):
        OAuthClient(config, session=session).refresh("r1")


def test_ensure_fresh_tokens_returns_valid_tokens(config, tmp_path):
    store = SessionStore(str(tmp_path))
    store.save_tokens(TokenSet(access_token="a1", refresh_token="r1"))
    session = _StubSession()
    tokens = ensure_fresh_tokens(OAuthClient(config, session=session), store)
    assert tokens.access_token == "a1"
    assert session.posts == []


def test_ensure_fresh_tokens_refreshes_expired(config, tmp_path):
    store = SessionStore(str(tmp_path))
    old = datetime.now(timezone.utc) - timedelta(hours=2)
    store.save_tokens(TokenSet(access_token="a1", refresh_token="r1", obtained_at=old))
    session = _StubSession(_StubResponse(json_body={"access_token": "a2", "refresh_token": "r2"}))

    tokens = ensure_fresh_tokens(OAuthClient(config, session=session), store)

    assert tokens.access_token == "a2"
    assert store.load_tokens().refresh_token == "r2"


def test_ensure_fresh_tokens_clears_rejected_session(config, tmp_path):
    store = SessionStore(str(tmp_path))
    old = datetime.now(timezone.utc) - timedelta(hours=2)
    store.save_tokens(TokenSet(access_token="a1", refresh_token="r1", obtained_at=old))
    session = _StubSession(_StubResponse(401, text="invalid_grant"))

    with pytest.raises(AuthenticationError):
        ensure_fresh_tokens(OAuthClient(config, session=session), store)
    assert store.load_tokens() is None


def test_ensure_fresh_tokens_not_signed_in(config, tmp_path):
    with pytest.raises(AuthenticationError):
        ensure_fresh_tokens(OAuthClient(config, session=_StubSession()), SessionStore(str(tmp_path)))
