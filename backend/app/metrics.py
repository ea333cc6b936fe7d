"""Site-wide traffic metrics pulled from the edge analytics GraphQL API."""
from __future__ import annotations

import logging
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_GRAPHQL_ENDPOINT = "https://api.cloudflare.com/client/v4/graphql"
LOOKBACK_DAYS = 30
REQUEST_TIMEOUT_SECONDS = 30

ZONE_METRICS_QUERY = """
query GetZoneMetrics($zoneTag: String!, $from: Date!, $to: Date!) {
  viewer {
    zones(filter: { zoneTag: $zoneTag }) {
      httpRequests1dGroups(limit: 400, filter: { date_geq: $from, date_lt: $to }) {
        sum {
          requests
          bytes
          cachedRequests
          threats
        }
        uniq {
          uniques
        }
      }
    }
  }
}
"""


class MetricsFetchError(Exception):
    """Raised when the analytics API call fails or returns errors."""


class MetricsNotConfigured(MetricsFetchError):
    """Raised when the API token or zone tag is missing."""


class MetricsCache:
    """Last-write-wins cell holding the most recent metrics payload.

    ``get`` returns ``None`` until the first successful refresh.
    """

    def __init__(self) -> None:
        self._payload: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._payload

    def put(self, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._payload = payload


def summarize_groups(groups: Any) -> Dict[str, Any]:
    requests_total = 0
    bytes_total = 0
    cached_requests = 0
    threats = 0
    uniques = 0
    for group in groups or []:
        sums = group.get("sum") or {}
        requests_total += sums.get("requests") or 0
        bytes_total += sums.get("bytes") or 0
        cached_requests += sums.get("cachedRequests") or 0
        threats += sums.get("threats") or 0
        uniques += (group.get("uniq") or {}).get("uniques") or 0

    return {
        "requests": requests_total,
        "uniques": uniques,
        "bytes": bytes_total,
        "threats": threats,
        "cachedRequests": cached_requests,
        "cacheHitRate": cached_requests / requests_total if requests_total > 0 else 0,
    }


def fetch_zone_metrics(
    api_token: Optional[str] = None,
    zone_tag: Optional[str] = None,
    *,
    endpoint: Optional[str] = None,
    now: Optional[datetime] = None,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """Fetch the last 30 days of daily HTTP request groups for the zone."""
    api_token = api_token or os.environ.get("METRICS_API_TOKEN")
    zone_tag = zone_tag or os.environ.get("METRICS_ZONE_TAG")
    if not api_token or not zone_tag:
        raise MetricsNotConfigured("METRICS_API_TOKEN and METRICS_ZONE_TAG must be set.")
    endpoint = endpoint or os.environ.get("METRICS_GRAPHQL_ENDPOINT", DEFAULT_GRAPHQL_ENDPOINT)

    now = now or datetime.now(timezone.utc)
    to_day = now.date().isoformat()
    from_day = (now - timedelta(days=LOOKBACK_DAYS)).date().isoformat()

    http = session or requests
    try:
        response = http.post(
            endpoint,
            headers={"Authorization": f"Bearer {api_token}"},
            json={
                "query": ZONE_METRICS_QUERY,
                "variables": {"zoneTag": zone_tag, "from": from_day, "to": to_day},
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise MetricsFetchError(f"GraphQL request failed: {exc}") from exc

    if not response.ok:
        raise MetricsFetchError(f"GraphQL HTTP error {response.status_code}: {response.text}")

    body = response.json()
    errors = body.get("errors")
    if errors:
        raise MetricsFetchError(
            "GraphQL returned errors: " + "; ".join(str(error.get("message")) for error in errors)
        )

    zones = ((body.get("data") or {}).get("viewer") or {}).get("zones") or []
    groups = zones[0].get("httpRequests1dGroups") if zones else []

    return {
        "updatedAt": now.isoformat(),
        "from": from_day,
        "to": to_day,
        "totals": summarize_groups(groups),
    }


def refresh_metrics(cache: MetricsCache, **kwargs: Any) -> Dict[str, Any]:
    payload = fetch_zone_metrics(**kwargs)
    cache.put(payload)
    logger.info(
        "Cached site metrics %s..%s: %s requests",
        payload["from"],
        payload["to"],
        payload["totals"]["requests"],
    )
    return payload
