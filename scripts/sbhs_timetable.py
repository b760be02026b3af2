"""Sign in to SBHS and print today's A/B-filtered timetable as JSON or a table.

Standalone CLI around the src.sbhs package. Tokens, the pending OAuth state
and the last selected week are kept under STATE_DIR (default data/state), so
each `timetable` run continues from the previous run's week selection.

Login:    python scripts/sbhs_timetable.py login
Callback: python scripts/sbhs_timetable.py callback --code CODE --state STATE
Today:    python scripts/sbhs_timetable.py timetable
Table:    python scripts/sbhs_timetable.py timetable --table
Date:     python scripts/sbhs_timetable.py timetable --date 2025-03-10
Override: python scripts/sbhs_timetable.py timetable --week B
Notices:  python scripts/sbhs_timetable.py notices
Refresh:  python scripts/sbhs_timetable.py refresh
Logout:   python scripts/sbhs_timetable.py logout

Exit codes:
  0 = success (JSON or table on stdout)
  1 = error (message on stderr)
  2 = not signed in / token rejected (run `login` again)
"""

import argparse
import json
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.sbhs.auth import OAuthClient, ensure_fresh_tokens  # noqa: E402
from src.sbhs.client import SbhsClient  # noqa: E402
from src.sbhs.config import SbhsConfig, get_config  # noqa: E402
from src.sbhs.errors import AuthenticationError  # noqa: E402
from src.sbhs.logging import get_logger, setup_logging  # noqa: E402
from src.sbhs.models import Period  # noqa: E402
from src.sbhs.normalize import normalize_notice  # noqa: E402
from src.sbhs.session import SessionStore  # noqa: E402
from src.sbhs.timetable import fetch_timetable_payload, refresh_timetable  # noqa: E402

log = get_logger(__name__)


def _err(msg: str) -> None:
    """Write user-facing messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="SBHS timetable with A/B week selection.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("login", help="Print the SBHS sign-in URL.")

    callback = sub.add_parser("callback", help="Exchange the callback code for tokens.")
    callback.add_argument("--code", required=True, help="`code` query parameter.")
    callback.add_argument("--state", default=None, help="`state` query parameter.")

    sub.add_parser("refresh", help="Refresh the stored access token now.")
    sub.add_parser("logout", help="Forget stored tokens.")

    timetable = sub.add_parser("timetable", help="Print the filtered timetable.")
    timetable.add_argument(
        "--date", default=None, help="Day to fetch, YYYY-MM-DD (default: today)."
    )
    timetable.add_argument(
        "--week",
        choices=["A", "B"],
        default=None,
        help="Force week A or B instead of the week reported by SBHS.",
    )
    timetable.add_argument(
        "--table",
        action="store_true",
        help="Print the selected day as a human-readable table.",
    )

    notices = sub.add_parser("notices", help="Print today's daily notices.")
    notices.add_argument("--date", default=None, help="Day, YYYY-MM-DD.")
    return parser.parse_args(argv)


def _format_table(periods: list[Period]) -> str:
    """Format one day's periods as a table.

    Columns: Period | Time | Subject | Teacher | Room | Week
    """
    if not periods:
        return "(no classes scheduled)"

    headers = ["Period", "Time", "Subject", "Teacher", "Room", "Week"]
    rows = []
    for p in periods:
        teacher = f"{p.teacher} (sub)" if p.is_substitute else p.teacher
        room = f"{p.room} (changed)" if p.is_room_change else p.room
        rows.append([p.period, p.time, p.subject, teacher or "-", room or "-", p.week_type or "A/B"])

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows]
    return "\n".join([header_line, separator, *row_lines])


def _authenticated_client(config: SbhsConfig, store: SessionStore) -> SbhsClient:
    tokens = ensure_fresh_tokens(OAuthClient(config), store)
    return SbhsClient(config, access_token=tokens.access_token)


def run(args: argparse.Namespace, config: SbhsConfig) -> int:
    store = SessionStore(config.state_dir, config.refresh_token_max_age_days)
    oauth = OAuthClient(config)

    if args.command == "login":
        url, state = oauth.authorization_url()
        store.save_oauth_state(state)
        _err("Open this URL, sign in, then run `callback` with the returned code and state:")
        print(url)
        return 0

    if args.command == "callback":
        tokens = oauth.exchange_code(args.code, args.state, store.pop_oauth_state())
        store.save_tokens(tokens)
        _err("Signed in.")
        return 0

    if args.command == "refresh":
        tokens = store.load_tokens()
        if tokens is None:
            raise AuthenticationError("Not authenticated - run the login flow first")
        store.save_tokens(oauth.refresh(tokens.refresh_token))
        _err("Access token refreshed.")
        return 0

    if args.command == "logout":
        store.clear()
        _err("Signed out.")
        return 0

    client = _authenticated_client(config, store)

    if args.command == "notices":
        body = client.notices(args.date)
        items = body.get("notices", []) if isinstance(body, dict) else body
        notices = [normalize_notice(n) for n in items or [] if isinstance(n, dict)]
        print(json.dumps([n.model_dump(mode="json", by_alias=True) for n in notices], indent=2))
        return 0

    # timetable
    payload = fetch_timetable_payload(client, args.date)
    result = refresh_timetable(payload, store.load_selection(), override=args.week)
    store.save_selection(result.memory)

    if args.table:
        day = result.day_key or next(iter(result.timetable), None)
        _err(f"{day} - week {result.week_type}")
        print(_format_table(result.timetable.get(day, []) if day else []))
    else:
        output = {
            "timetable": {
                day: [p.model_dump(mode="json", by_alias=True, exclude_none=True) for p in periods]
                for day, periods in result.timetable.items()
            },
            "weekType": result.week_type,
            "inferredWeekType": result.inferred_week_type,
            "day": result.day_key,
            "date": payload.date,
            "source": payload.source,
        }
        print(json.dumps(output, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    try:
        return run(args, config)
    except AuthenticationError as e:
        log.warning("not_authenticated", error=str(e))
        _err(f"ERROR: {e}")
        return 2
    except Exception as e:
        _err(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
