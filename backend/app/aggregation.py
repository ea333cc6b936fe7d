"""Fold a delivery batch of raw events into per-(company, day) deltas."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .events import EventType
from .models import COUNTER_COLUMNS

logger = logging.getLogger(__name__)

DeltaKey = Tuple[int, date]


def _zero_counters() -> Dict[str, int]:
    return {column: 0 for column in COUNTER_COLUMNS}


@dataclass
class Delta:
    """Per-kind increments for one (company, day) within one batch."""

    company_id: int
    day: date
    counters: Dict[str, int] = field(default_factory=_zero_counters)

    @classmethod
    def single(cls, company_id: int, day: date, kind: EventType) -> "Delta":
        delta = cls(company_id=company_id, day=day)
        delta.add(kind)
        return delta

    @property
    def key(self) -> DeltaKey:
        return (self.company_id, self.day)

    def add(self, kind: EventType) -> None:
        self.counters[kind.counter] += 1


def _company_id(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _event_day(raw: Any) -> Optional[date]:
    if not isinstance(raw, str):
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        return None


def aggregate_batch(events: Iterable[Any]) -> Dict[DeltaKey, Delta]:
    """Group events by (companyId, day) and count them per kind.

    Events missing ``companyId`` or ``createdAt`` are skipped. An event with
    an unrecognized ``type`` is skipped as well, but the group it belongs to
    is still opened, so it is written with zero increments.
    Message bodies that are not JSON objects are skipped.
    """
    deltas: Dict[DeltaKey, Delta] = {}
    for event in events:
        if not isinstance(event, Mapping):
            logger.warning("Skipping event that is not an object: %r", event)
            continue
        company_id = _company_id(event.get("companyId"))
        day = _event_day(event.get("createdAt"))
        if company_id is None or day is None:
            logger.warning(
                "Skipping event with missing companyId/createdAt: companyId=%r createdAt=%r",
                event.get("companyId"),
                event.get("createdAt"),
            )
            continue

        key = (company_id, day)
        delta = deltas.get(key)
        if delta is None:
            delta = deltas[key] = Delta(company_id=company_id, day=day)

        kind = EventType.parse(event.get("type"))
        if kind is EventType.UNKNOWN:
            logger.warning(
                "Skipping event of unknown type %r for company %s", event.get("type"), company_id
            )
            continue
        delta.add(kind)

    logger.info("Aggregated batch into %d (company, day) groups", len(deltas))
    return deltas
