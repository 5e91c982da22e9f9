#!/usr/bin/env python3
"""
GeoGuard -- command-line client.
Logs in to a GeoGuard server and keeps the session alive only while the
reported location stays inside the account's allowed area.

Usage:
  python main.py signup --email a@example.com --name Ada --lat 37.7749 --lon -122.4194
  python main.py watch --email a@example.com --lat 37.7749 --lon -122.4194
  python main.py watch --email a@example.com --track walk.jsonl --interval 5
  python main.py watch --email a@example.com --lat 37.7749 --lon -122.4194 --server http://geo.internal:8000

The password is read from the GEOGUARD_PASSWORD environment variable when
set, otherwise prompted for (never passed on the command line).
"""

import argparse
import getpass
import logging
import os
import sys
import threading
from typing import Optional

import requests

from client.api import GeoGuardClient
from client.poller import DEFAULT_INTERVAL, LocationPoller
from client.sensor import LocationSensor, ReplaySensor, SensorUnavailable, StaticSensor, load_track
from client.session import ClientSession
from core.errors import ValidationError
from core.geo import Coordinate


def _password() -> str:
    return os.environ.get("GEOGUARD_PASSWORD") or getpass.getpass("Password: ")


def _location(args: argparse.Namespace) -> Optional[Coordinate]:
    if args.lat is None and args.lon is None:
        return None
    if args.lat is None or args.lon is None:
        print("  [!] --lat and --lon must be given together.")
        sys.exit(2)
    try:
        return Coordinate(args.lat, args.lon).validate()
    except ValidationError as e:
        print(f"  [!] {e}")
        sys.exit(2)


def _sensor(args: argparse.Namespace) -> Optional[LocationSensor]:
    if args.track:
        try:
            return ReplaySensor(load_track(args.track), loop=args.loop)
        except (OSError, ValueError) as e:
            print(f"  [!] Could not read track '{args.track}': {e}")
            sys.exit(2)
    location = _location(args)
    if location is None:
        return None
    return StaticSensor(location.latitude, location.longitude)


def cmd_signup(client: GeoGuardClient, args: argparse.Namespace) -> int:
    resp = client.signup(args.email, _password(), args.name, _location(args), radius=args.radius)
    if not resp.ok:
        print(f"  [!] Signup failed ({resp.status_code}): {resp.error_message}")
        return 1
    user = resp.body["user"]
    print(f"  Account created for {user['email']} (id {user['id']}).")
    return 0


def cmd_watch(client: GeoGuardClient, args: argparse.Namespace) -> int:
    sensor = _sensor(args)
    first_fix: Optional[Coordinate] = None
    if sensor is not None:
        try:
            first_fix = sensor.sample(10)
        except SensorUnavailable as e:
            print(f"  [!] No location fix: {e}")
            return 1

    resp = client.login(args.email, _password(), first_fix)
    if not resp.ok:
        print(f"  [!] Login failed ({resp.status_code}): {resp.error_message}")
        return 1

    session = ClientSession()
    session.sign_in(resp.body["user"], resp.body["token"])
    user = resp.body["user"]
    print(f"\nGeoGuard -- signed in as {user['name']} <{user['email']}>")
    print("─" * 40)
    if user.get("allowedLatitude") is None:
        print("No location restriction on this account.")
    else:
        print(
            f"Allowed area: {user['allowedRadius']:.0f} m around "
            f"({user['allowedLatitude']:.6f}, {user['allowedLongitude']:.6f})"
        )

    if sensor is None:
        print("No location source given (--lat/--lon or --track); nothing to watch.")
        return 0

    signed_out = threading.Event()
    poller = LocationPoller(
        client,
        session,
        sensor,
        interval=args.interval,
        on_notice=lambda message: print(f"\n  [!] {message}"),
        on_signed_out=signed_out.set,
    )
    print(f"Checking location every {args.interval:g}s. Ctrl-C to log out.\n")
    try:
        with poller:
            signed_out.wait()
    except KeyboardInterrupt:
        token = session.token
        if token:
            try:
                client.logout(token)
            except requests.RequestException as e:
                print(f"  [!] Logout request failed: {e}")
        session.clear()
        print("\n  Logged out.")
        return 0

    print("  Session ended. Log in again from an allowed location.")
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="geoguard",
        description="Location-bound login client for a GeoGuard server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--server", default="http://localhost:8000", metavar="URL", help="GeoGuard server base URL")
    parser.add_argument("--verbose", action="store_true", help="Log every location check")
    sub = parser.add_subparsers(dest="command", required=True)

    signup = sub.add_parser("signup", help="Create an account, optionally pinned to a location")
    signup.add_argument("--email", required=True)
    signup.add_argument("--name", required=True)
    signup.add_argument("--lat", type=float, help="Allowed-area center latitude")
    signup.add_argument("--lon", type=float, help="Allowed-area center longitude")
    signup.add_argument("--radius", type=float, help="Allowed-area radius in meters (server default if omitted)")

    watch = sub.add_parser("watch", help="Log in and keep checking the current location")
    watch.add_argument("--email", required=True)
    watch.add_argument("--lat", type=float, help="Fixed current latitude")
    watch.add_argument("--lon", type=float, help="Fixed current longitude")
    watch.add_argument("--track", metavar="PATH", help="JSON-lines file of recorded positions to replay")
    watch.add_argument("--loop", action="store_true", help="Restart the track when it runs out")
    watch.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_INTERVAL,
        help=f"Seconds between checks (default: {DEFAULT_INTERVAL:g})",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    client = GeoGuardClient(args.server)
    try:
        if args.command == "signup":
            code = cmd_signup(client, args)
        else:
            code = cmd_watch(client, args)
    except requests.RequestException as e:
        print(f"  [!] Could not reach {args.server}: {e}")
        code = 1
    finally:
        client.close()
    sys.exit(code)


if __name__ == "__main__":
    main()
