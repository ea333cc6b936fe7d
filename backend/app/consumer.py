"""At-least-once batch consumer: aggregate, merge, then acknowledge.

Every delta is committed on its own. Messages are acknowledged only after all
deltas of the batch are committed; any store failure acknowledges nothing and
re-raises so the transport redelivers the batch.

Redelivery is not deduplicated. If a batch fails after some deltas were
committed, those deltas are applied again when the batch comes back, so the
affected counters over-count. Fixing that needs a delivery-id ledger in the
store, which this service does not keep.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Protocol, Sequence

from sqlalchemy.orm import Session

from .aggregation import aggregate_batch
from .store import StatsStore

logger = logging.getLogger(__name__)


class QueueMessage(Protocol):
    body: Any

    def ack(self) -> None:
        ...


@dataclass
class DeliveredMessage:
    """A message handed over by the HTTP batch endpoint."""

    id: str
    body: Any = None
    acked: bool = False

    def ack(self) -> None:
        self.acked = True


@dataclass
class BatchResult:
    received: int
    groups: int


def consume_batch(messages: Sequence[QueueMessage], session_factory: Callable[[], Session]) -> BatchResult:
    logger.info("Consuming batch of %d messages", len(messages))
    deltas = aggregate_batch(message.body for message in messages)

    with session_factory() as session:
        store = StatsStore(session)
        for delta in deltas.values():
            try:
                store.upsert_additive(delta)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception(
                    "Store write failed for company=%s date=%s; not acknowledging %d messages",
                    delta.company_id,
                    delta.day,
                    len(messages),
                )
                raise

    for message in messages:
        message.ack()
    logger.info("Acknowledged %d messages (%d groups)", len(messages), len(deltas))
    return BatchResult(received=len(messages), groups=len(deltas))


def acked_ids(messages: List[DeliveredMessage]) -> List[str]:
    return [message.id for message in messages if message.acked]
