"""Example producer that delivers a batch of listing events and prints the report."""
from __future__ import annotations

import argparse
import os
import uuid
from datetime import datetime, timezone

import requests

SAMPLE_TYPES = ("PROFILE_VIEW", "PROFILE_VIEW", "SEARCH_IMPRESSION", "CLICK_PHONE", "FORM_SUBMIT")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send a sample batch of listing events")
    parser.add_argument(
        "--api-url",
        default=os.environ.get("STATS_API_URL", "http://127.0.0.1:8000"),
        help="Analytics API base URL (default: %(default)s or STATS_API_URL)",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("STATS_JWT_TOKEN"),
        help="Bearer token with the events:write scope (STATS_JWT_TOKEN); reusable when a batch is resent",
    )
    parser.add_argument("--company-id", type=int, default=1, help="Listing id the events concern")
    parser.add_argument("--slug", default="acme-plumbing", help="Listing slug used for the report")
    args = parser.parse_args()
    if not args.token:
        parser.error("A JWT must be supplied via --token or STATS_JWT_TOKEN")
    return args


def main() -> None:
    args = parse_args()
    headers = {"Authorization": f"Bearer {args.token}"}
    created_at = datetime.now(timezone.utc).isoformat()
    batch = {
        "messages": [
            {
                "id": str(uuid.uuid4()),
                "body": {
                    "companyId": args.company_id,
                    "type": event_type,
                    "createdAt": created_at,
                    "meta": {"source": "send_event.py"},
                },
            }
            for event_type in SAMPLE_TYPES
        ]
    }
    response = requests.post(f"{args.api_url}/queue/batch", headers=headers, json=batch, timeout=10)
    response.raise_for_status()
    print("Batch acknowledged:", response.json())

    report = requests.get(f"{args.api_url}/company/{args.slug}", params={"days": 7}, timeout=10)
    report.raise_for_status()
    print("Report:", report.json())


if __name__ == "__main__":
    main()
