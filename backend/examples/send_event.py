"""Example client that posts a user event to the events API and reads it back."""
from __future__ import annotations

import argparse
import os
from datetime import datetime, timedelta, timezone

import requests


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a sample user event")
    parser.add_argument(
        "--api-url",
        default=os.environ.get("EVENTS_API_URL", "http://127.0.0.1:8080"),
        help="Events API base URL including BASE_PATH (default: %(default)s or EVENTS_API_URL)",
    )
    parser.add_argument("--user-id", type=int, default=1, help="User id to record the event for")
    parser.add_argument("--action", default="click", help="Action name (default: %(default)s)")
    parser.add_argument("--page", default="home", help="Value stored as metadata page")
    args = parser.parse_args()
    if args.user_id <= 0:
        parser.error("--user-id must be a positive integer")
    return args


def main() -> None:
    args = parse_args()
    payload = {
        "user_id": args.user_id,
        "action": args.action,
        "metadata": {"page": args.page, "referrer": "send_event.py"},
    }
    response = requests.post(f"{args.api_url}/events", json=payload, timeout=10)
    response.raise_for_status()
    print("Event stored with status", response.status_code)

    now = datetime.now(timezone.utc)
    params = {
        "user_id": str(args.user_id),
        "from": (now - timedelta(hours=1)).isoformat(),
        "to": (now + timedelta(minutes=1)).isoformat(),
    }
    events = requests.get(f"{args.api_url}/events", params=params, timeout=10)
    events.raise_for_status()
    print("Events:", events.json())


if __name__ == "__main__":
    main()
