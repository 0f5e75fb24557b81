"""Command line entry point: ``python -m strava_activity_client``."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence, Tuple

from . import polyline
from .client import ActivityClient, ClientConfig
from .config import POLYLINE_PRECISION, PRINT_TOKENS_DEFAULT, TOKEN_STORE_PATH
from .errors import PolylineDecodeError
from .oauth import start_oauth_flow
from .storage import JsonFileStore


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _build_client(store_path: str, *, require_credentials: bool = True) -> ActivityClient:
    config = ClientConfig.from_env(require_credentials=require_credentials)
    return ActivityClient(config, store=JsonFileStore(store_path))


def _parse_pair(value: str) -> Tuple[float, float]:
    try:
        lat, lng = (float(part) for part in value.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"expected LAT,LNG but got {value!r}"
        ) from exc
    return lat, lng


def _cmd_login(args: argparse.Namespace) -> int:
    client = _build_client(args.store)
    start_oauth_flow(client, print_tokens=args.print_tokens, wait_timeout=args.timeout)
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    client = _build_client(args.store, require_credentials=False)
    credential = client.credential()
    if credential is None:
        print("Not authenticated")
        return 1
    print(f"Authenticated; token expires at {credential.expires_at}")
    return 0


def _cmd_activities(args: argparse.Namespace) -> int:
    client = _build_client(args.store)
    activities = client.get_activities(force_refresh=args.force)
    shown = activities[: args.limit] if args.limit else activities
    for activity in shown:
        print(
            f"{activity.id}\t{activity.start_date_local or '-'}\t{activity.type}\t"
            f"{activity.distance / 1000:.2f} km\t{activity.name}"
        )
    logging.info("Listed %s of %s activities", len(shown), len(activities))
    return 0


def _cmd_logout(args: argparse.Namespace) -> int:
    _build_client(args.store, require_credentials=False).logout()
    return 0


def _cmd_decode(args: argparse.Namespace) -> int:
    for lat, lng in polyline.decode(args.polyline, args.precision, strict=args.strict):
        print(f"{lat},{lng}")
    return 0


def _cmd_encode(args: argparse.Namespace) -> int:
    print(polyline.encode(args.points, args.precision))
    return 0


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="strava_activity_client", description="Strava activity client"
    )
    parser.add_argument(
        "--store",
        default=TOKEN_STORE_PATH,
        help="JSON file holding tokens and the activity cache",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Authorise via the browser")
    login.add_argument(
        "--print-tokens",
        action="store_true",
        default=PRINT_TOKENS_DEFAULT,
        help="Log raw access/refresh tokens once exchanged (defaults to masked logging)",
    )
    login.add_argument(
        "--timeout",
        type=int,
        default=60,
        help="Seconds to wait for browser authorisation before exiting",
    )
    login.set_defaults(func=_cmd_login)

    sub.add_parser("status", help="Show whether a token is stored").set_defaults(
        func=_cmd_status
    )

    activities = sub.add_parser("activities", help="List cached or fresh activities")
    activities.add_argument("--force", action="store_true", help="Ignore the cache")
    activities.add_argument("--limit", type=int, default=0)
    activities.set_defaults(func=_cmd_activities)

    sub.add_parser("logout", help="Forget tokens and cached activities").set_defaults(
        func=_cmd_logout
    )

    decode = sub.add_parser("decode", help="Decode an encoded polyline")
    decode.add_argument("polyline")
    decode.add_argument("--precision", type=int, default=POLYLINE_PRECISION)
    decode.add_argument("--strict", action="store_true")
    decode.set_defaults(func=_cmd_decode)

    encode = sub.add_parser("encode", help="Encode LAT,LNG pairs")
    encode.add_argument("points", nargs="+", type=_parse_pair)
    encode.add_argument("--precision", type=int, default=POLYLINE_PRECISION)
    encode.set_defaults(func=_cmd_encode)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    _setup_logging(args.verbose)
    try:
        return args.func(args)
    except (RuntimeError, PolylineDecodeError) as exc:
        logging.error("%s", exc)
        return 1
