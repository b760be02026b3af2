"""SBHS OAuth authorization-code flow: authorize URL, code exchange, refresh.

OAuthClient talks to the SBHS token endpoint with form-encoded POSTs.
Network failures and 5xx answers are retried; rejected credentials fail
fast with AuthenticationError.
"""

import secrets
from urllib.parse import urlencode

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.sbhs.config import SbhsConfig
from src.sbhs.errors import (
    AuthenticationError,
    PermanentError,
    RateLimitError,
    TransientError,
)
from src.sbhs.logging import get_logger
from src.sbhs.models import TokenSet
from src.sbhs.session import SessionStore

logger = get_logger(__name__)


class OAuthClient:
    """Client for the SBHS authorization and token endpoints."""

    def __init__(self, config: SbhsConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self.session = session or requests.Session()

    def authorization_url(self, state: str | None = None) -> tuple[str, str]:
        """Build the URL the user opens to grant access.

        Args:
            state: Anti-CSRF value echoed back on the callback; generated if omitted.

        Returns:
            (url, state). Keep ``state`` until the callback arrives.
        """
        state = state or secrets.token_urlsafe(16)
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.config.sbhs_client_id,
                "redirect_uri": self.config.sbhs_redirect_uri,
                "scope": self.config.sbhs_scope,
                "state": state,
            }
        )
        url = f"{self.config.sbhs_authorization_endpoint}?{query}"
        logger.info("authorization_url_built", endpoint=self.config.sbhs_authorization_endpoint)
        return url, state

    def exchange_code(
        self, code: str | None, state: str | None = None, expected_state: str | None = None
    ) -> TokenSet:
        """Trade an authorization code for tokens.

        Raises:
            AuthenticationError: No code, mismatched state, or code rejected.
            TransientError: Token endpoint unreachable after retries.
        """
        if not code:
            raise AuthenticationError("Authorization callback did not include a code")
        if expected_state and state != expected_state:
            logger.warning("oauth_state_mismatch")
            raise AuthenticationError("Invalid OAuth state")

        tokens = self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.sbhs_redirect_uri,
            }
        )
        logger.info("authorization_code_exchanged", has_refresh_token=tokens.refresh_token is not None)
        return tokens

    def refresh(self, refresh_token: str | None) -> TokenSet:
        """Get a new access token.

        The previous refresh token is kept when the endpoint does not issue
        a new one.

        Raises:
            AuthenticationError: No refresh token, or it was rejected.
        """
        if not refresh_token:
            raise AuthenticationError("No refresh token present")

        tokens = self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        if tokens.refresh_token is None:
            tokens = tokens.model_copy(update={"refresh_token": refresh_token})
        logger.info("token_refreshed", expires_in=tokens.expires_in)
        return tokens

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    def _token_request(self, form: dict[str, str]) -> TokenSet:
        body = {
            **form,
            "client_id": self.config.sbhs_client_id,
            "client_secret": self.config.sbhs_client_secret,
        }
        try:
            response = self.session.post(
                self.config.sbhs_token_endpoint,
                data=body,
                headers={"Accept": "application/json"},
                timeout=self.config.request_timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("token_endpoint_unreachable", error=str(e))
            raise TransientError(f"Token endpoint unreachable: {e}") from e

        status = response.status_code
        if status == 429:
            raise RateLimitError("Token endpoint rate limited")
        if status >= 500:
            logger.warning("token_endpoint_error", status=status)
            raise TransientError(f"Token endpoint error {status}")
        if status in (400, 401, 403):
            logger.error("token_request_rejected", status=status, grant_type=form["grant_type"])
            raise AuthenticationError(f"Token endpoint rejected the request ({status}): {response.text[:200]}")
        if not response.ok:
            raise PermanentError(f"Token endpoint error {status}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise PermanentError("Invalid JSON from token endpoint") from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise PermanentError("Token endpoint response has no access_token")

        return TokenSet(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=int(data.get("expires_in") or 3600),
            token_type=data.get("token_type") or "Bearer",
        )


def ensure_fresh_tokens(oauth: OAuthClient, store: SessionStore) -> TokenSet:
    """Return usable tokens from ``store``, refreshing them first if expired.

    Raises:
        AuthenticationError: Nothing stored, or the refresh was rejected.
    """
    tokens = store.load_tokens()
    if tokens is None:
        raise AuthenticationError("Not authenticated - run the login flow first")
    if not tokens.is_expired():
        return tokens

    logger.info("access_token_expired", expires_at=tokens.expires_at.isoformat())
    try:
        tokens = oauth.refresh(tokens.refresh_token)
    except AuthenticationError:
        store.clear()
        raise
    store.save_tokens(tokens)
    return tokens
