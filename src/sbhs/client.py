"""HTTP client for the SBHS student portal JSON API.

The same endpoints are served from the student portal host and the public
API host; SbhsClient tries each configured host in order and returns the
first JSON body. An HTML page where JSON was expected is the portal's login
screen and means the access token is no longer accepted.
"""

from typing import Any

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

log = get_logger(__name__)

DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "application/json, text/javascript, */*; q=0.9",
    "Accept-Language": "en-AU,en;q=0.9",
    "User-Agent": "sbhs-timetable/0.1 (+https://student.sbhs.net.au)",
    "Referer": "https://student.sbhs.net.au/",
    "Origin": "https://student.sbhs.net.au",
    "X-Requested-With": "XMLHttpRequest",
}

# Endpoint paths (relative to every host in SbhsConfig.sbhs_api_hosts)
DAY_TIMETABLE_PATH = "/api/timetable/daytimetable.json"
TIMETABLE_PATH = "/api/timetable/timetable.json"
BELLS_PATH = "/api/timetable/bells.json"
NOTICES_PATH = "/api/dailynews/list.json"
CALENDAR_DAYS_PATH = "/api/calendar/days.json"
CALENDAR_TERMS_PATH = "/api/calendar/terms.json"
USERINFO_PATH = "/api/details/userinfo.json"


class _HostSkipped(Exception):
    """This host can't serve the path; try the next one."""


class SbhsClient:
    """Authenticated client for the SBHS JSON endpoints.

    Args:
        config: Hosts, timeouts and redirect limits.
        access_token: OAuth bearer token; requests go out unauthenticated without it.
        session: Optional pre-built requests.Session (tests pass a stub).
    """

    def __init__(
        self,
        config: SbhsConfig,
        access_token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.max_redirects = config.max_redirects
        self.session.headers.update(DEFAULT_HEADERS)
        if access_token:
            self.session.headers["Authorization"] = f"Bearer {access_token}"

        log.debug(
            "sbhs_client_initialized",
            hosts=config.sbhs_api_hosts,
            has_token=bool(access_token),
        )

    def _get_from_host(self, host: str, path: str, params: dict[str, str] | None) -> Any:
        url = f"{host}{path}"
        try:
            response = self.session.get(
                url, params=params, timeout=self.config.request_timeout_seconds
            )
        except requests.TooManyRedirects as e:
            log.warning("upstream_redirect_loop", url=url)
            raise _HostSkipped(str(e)) from e
        except (requests.Timeout, requests.ConnectionError) as e:
            log.warning("upstream_unreachable", url=url, error=str(e))
            raise TransientError(f"{url} unreachable: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"SBHS rejected the access token ({status})")
        if status == 429:
            raise RateLimitError(f"SBHS rate limited {path}")
        if status >= 500:
            raise TransientError(f"SBHS error {status} for {path}")
        if status == 404:
            raise _HostSkipped(f"{url} not found")

        content_type = response.headers.get("content-type", "")
        text = response.text or ""
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = None
            if body is not None:
                if not response.ok:
                    raise PermanentError(f"SBHS error {status} for {path}: {text[:200]}")
                return body
        if text.lstrip().startswith("<"):
            log.info("upstream_login_page", url=url, status=status)
            raise AuthenticationError("SBHS returned an HTML login page; sign in again")
        raise _HostSkipped(f"{url} answered {status} without JSON")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
    )
    def get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET ``path`` from the first host that answers with JSON.

        Raises:
            AuthenticationError: 401/403, or an HTML login page.
            RateLimitError: 429 (retried).
            TransientError: Timeouts, connection errors, 5xx (retried).
            PermanentError: No host returned JSON.
        """
        skipped: list[str] = []
        for host in self.config.sbhs_api_hosts:
            try:
                body = self._get_from_host(host, path, params)
            except _HostSkipped as e:
                skipped.append(str(e))
                continue
            log.debug("upstream_json", host=host, path=path)
            return body

        log.warning("upstream_no_json", path=path, attempts=skipped)
        raise PermanentError(f"No SBHS host returned JSON for {path}")

    def day_timetable(self, date: str | None = None) -> Any:
        """Timetable for one day (today when ``date`` is None). Dates are YYYY-MM-DD."""
        return self.get_json(DAY_TIMETABLE_PATH, {"date": date} if date else None)

    def timetable(self) -> Any:
        """The student's complete timetable cycle."""
        return self.get_json(TIMETABLE_PATH)

    def bells(self, date: str | None = None) -> Any:
        return self.get_json(BELLS_PATH, {"date": date} if date else None)

    def notices(self, date: str | None = None) -> Any:
        return self.get_json(NOTICES_PATH, {"date": date} if date else None)

    def calendar_days(self, date_from: str | None, date_to: str | None) -> Any:
        """Term, week, week type and cycle day for each date in a range.

        Raises:
            ValueError: If either bound is missing.
        """
        if not date_from or not date_to:
            raise ValueError("calendar_days needs both date_from and date_to")
        return self.get_json(CALENDAR_DAYS_PATH, {"from": date_from, "to": date_to})

    def calendar_terms(self) -> Any:
        return self.get_json(CALENDAR_TERMS_PATH)

    def userinfo(self) -> Any:
        return self.get_json(USERINFO_PATH)
