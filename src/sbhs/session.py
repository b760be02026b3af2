"""Local persistence for OAuth tokens, the pending OAuth state and week selection.

SessionStore keeps what the web app kept in cookies: the access/refresh
tokens, the state value sent with the authorize redirect, and the last week
letter chosen by a timetable refresh. Each lives in its own JSON file under
``state_dir`` so logging out never loses the week selection.
"""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from src.sbhs.logging import get_logger
from src.sbhs.models import TokenSet
from src.sbhs.weektype import SelectionMemory

logger = get_logger(__name__)


class SessionStore:
    """File-backed store for tokens, OAuth state and SelectionMemory."""

    TOKENS_FILE = "tokens.json"
    OAUTH_STATE_FILE = "oauth_state.json"
    SELECTION_FILE = "selection.json"

    def __init__(
        self, state_dir: str = "data/state", refresh_token_max_age_days: int = 30
    ) -> None:
        """Initialize SessionStore.

        Args:
            state_dir: Directory holding the JSON state files.
            refresh_token_max_age_days: Stored tokens older than this are dropped.
        """
        self.state_dir = Path(state_dir)
        self.refresh_token_max_age_days = refresh_token_max_age_days

        # Create state directory if it doesn't exist
        self.state_dir.mkdir(parents=True, exist_ok=True)

        logger.debug(
            "session_store_initialized",
            state_dir=str(self.state_dir),
            max_age_days=refresh_token_max_age_days,
        )

    def _path(self, name: str) -> Path:
        return self.state_dir / name

    def _read(self, name: str) -> Any:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("state_file_unreadable", path=str(path), error=str(e))
            return None

    def _write(self, name: str, payload: Any) -> None:
        path = self._path(name)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def _remove(self, name: str) -> bool:
        path = self._path(name)
        if path.exists():
            path.unlink()
            return True
        return False

    # -- tokens ---------------------------------------------------------

    def save_tokens(self, tokens: TokenSet) -> None:
        """Persist tokens, keeping the refresh token's original issue time."""
        previous = self._read(self.TOKENS_FILE)
        if not isinstance(previous, dict):
            previous = {}
        issued = previous.get("refresh_issued_at")
        if tokens.refresh_token and tokens.refresh_token != previous.get("refresh_token"):
            issued = tokens.obtained_at.isoformat()

        payload = tokens.model_dump(mode="json")
        payload["refresh_issued_at"] = issued or tokens.obtained_at.isoformat()
        self._write(self.TOKENS_FILE, payload)
        logger.info(
            "tokens_saved",
            path=str(self._path(self.TOKENS_FILE)),
            has_refresh_token=tokens.refresh_token is not None,
        )

    def load_tokens(self, now: datetime | None = None) -> TokenSet | None:
        """Return stored tokens, or None when missing, corrupt or too old.

        The access token may be expired; callers refresh it. A refresh token
        past ``refresh_token_max_age_days`` is treated as gone.
        """
        data = self._read(self.TOKENS_FILE)
        if not isinstance(data, dict) or not data:
            logger.debug("tokens_check", result="missing")
            return None

        now = now or datetime.now(timezone.utc)
        issued_raw = data.pop("refresh_issued_at", None)
        try:
            tokens = TokenSet.model_validate(data)
            issued = datetime.fromisoformat(issued_raw) if issued_raw else tokens.obtained_at
        except (ValidationError, ValueError) as e:
            logger.warning("tokens_check", result="invalid", error=str(e))
            return None
        if issued.tzinfo is None:
            issued = issued.replace(tzinfo=timezone.utc)

        age = now - issued
        if age > timedelta(days=self.refresh_token_max_age_days):
            logger.info(
                "tokens_check",
                result="expired",
                age_days=age.total_seconds() / 86400,
                max_days=self.refresh_token_max_age_days,
            )
            return None

        logger.debug("tokens_check", result="valid", expired_access=tokens.is_expired(now))
        return tokens

    # -- OAuth state ----------------------------------------------------

    def save_oauth_state(self, state: str) -> None:
        self._write(self.OAUTH_STATE_FILE, {"state": state})

    def pop_oauth_state(self) -> str | None:
        """Return the pending OAuth state and forget it."""
        data = self._read(self.OAUTH_STATE_FILE)
        self._remove(self.OAUTH_STATE_FILE)
        if isinstance(data, dict):
            return data.get("state")
        return None

    # -- week selection -------------------------------------------------

    def load_selection(self) -> SelectionMemory:
        data = self._read(self.SELECTION_FILE)
        if not data:
            return SelectionMemory()
        try:
            return SelectionMemory.model_validate(data)
        except ValidationError:
            logger.warning("selection_invalid", path=str(self._path(self.SELECTION_FILE)))
            return SelectionMemory()

    def save_selection(self, memory: SelectionMemory) -> None:
        self._write(self.SELECTION_FILE, memory.model_dump(mode="json"))
        logger.debug("selection_saved", week_type=memory.last_week_type)

    # -- logout ---------------------------------------------------------

    def clear(self) -> None:
        """Delete stored tokens and any pending OAuth state.

        The week selection is kept; it is not credential data.
        """
        removed = [
            name
            for name in (self.TOKENS_FILE, self.OAUTH_STATE_FILE)
            if self._remove(name)
        ]
        if removed:
            logger.info("session_cleared", files=removed)
        else:
            logger.debug("session_clear_skipped", reason="nothing_stored")
