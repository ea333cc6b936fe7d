"""FastAPI application entrypoint for the listing analytics API."""
from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import schemas
from .aggregation import Delta
from .auth import verify_producer
from .consumer import DeliveredMessage, acked_ids, consume_batch
from .database import SessionLocal, engine
from .events import EventType
from .metrics import MetricsCache, MetricsNotConfigured, refresh_metrics
from .models import Base
from .reports import CompanyNotFound, get_company_report, get_summary
from .store import StatsStore

logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET, POST, OPTIONS",
    "access-control-allow-headers": "Content-Type, Authorization",
}

app = FastAPI(
    title="Listing Analytics API",
    description="Aggregates listing events into daily statistics and serves reports.",
    version="0.1.0",
)
router = APIRouter()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    if request.method == "OPTIONS":
        response = Response(status_code=status.HTTP_204_NO_CONTENT)
    else:
        response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Store error while handling %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal error"},
        headers=CORS_HEADERS,
    )


class RateLimitError(Exception):
    """Raised when a caller exceeds the configured rate limit."""


class FixedWindowRateLimiter:
    """Simple in-memory fixed window rate limiter keyed by identifier."""

    def __init__(self, max_requests: int, window_seconds: int, clock=time.monotonic) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._last_purge = clock()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._counters)

    def _purge_expired(self, now: float) -> None:
        # At most one sweep per window keeps check() amortized O(1).
        if now - self._last_purge < self._window_seconds:
            return
        self._last_purge = now
        expired = [
            key
            for key, (_, window_start) in self._counters.items()
            if now - window_start >= self._window_seconds
        ]
        for key in expired:
            del self._counters[key]

    def check(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            count, window_start = self._counters.get(key, (0, now))
            if now - window_start >= self._window_seconds:
                count = 0
                window_start = now
            if count >= self._max_requests:
                raise RateLimitError(f"Rate limit exceeded for key {key}")
            self._counters[key] = (count + 1, window_start)


def _get_rate_limiter() -> FixedWindowRateLimiter:
    requests_per_window = int(os.environ.get("STATS_REPORTS_RATE_LIMIT", "60"))
    window_seconds = int(os.environ.get("STATS_REPORTS_RATE_WINDOW", "60"))
    return FixedWindowRateLimiter(requests_per_window, window_seconds)


_reports_rate_limiter = _get_rate_limiter()
_metrics_cache = MetricsCache()
_metrics_task: Optional[asyncio.Task[None]] = None
_metrics_refresh_interval_seconds = int(
    os.environ.get("METRICS_REFRESH_INTERVAL_SECONDS", str(24 * 60 * 60))
)


def _enforce_rate_limit(request: Request) -> None:
    client_identifier = "anonymous"
    if request.client:
        client_identifier = request.client.host or client_identifier

    try:
        _reports_rate_limiter.check(client_identifier)
    except RateLimitError:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")


def _refresh_metrics_once() -> None:
    refresh_metrics(_metrics_cache)


async def _run_metrics_cycle() -> None:
    try:
        await asyncio.to_thread(_refresh_metrics_once)
    except MetricsNotConfigured as exc:
        logger.warning("Skipping site metrics refresh: %s", exc)
    except Exception:  # pragma: no cover - log unexpected failures
        logger.exception("Failed to refresh site metrics")


async def _metrics_worker() -> None:
    try:
        while True:
            await _run_metrics_cycle()
            await asyncio.sleep(_metrics_refresh_interval_seconds)
    except asyncio.CancelledError:  # pragma: no cover - cooperative cancellation
        pass


def _start_metrics_worker() -> None:
    global _metrics_task
    if _metrics_task is None:
        loop = asyncio.get_running_loop()
        _metrics_task = loop.create_task(_metrics_worker())


@router.get("/company/{slug}", response_model=schemas.CompanyReportOut)
def company_report(
    slug: str,
    request: Request,
    days: Optional[str] = Query(None, description="Number of days ending today (default 30)"),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    _enforce_rate_limit(request)
    try:
        return get_company_report(db, slug, days)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except CompanyNotFound as exc:
        logger.warning("Company not found for slug %r", slug)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found") from exc


@router.get("/summary", response_model=schemas.SummaryOut)
def summary_report(
    request: Request,
    days: Optional[str] = Query(None, description="Number of days ending today (default 30)"),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    _enforce_rate_limit(request)
    return get_summary(db, days)


def record_track_event(db: Session, body: Any) -> schemas.TrackOut:
    """Count a single event for today, bypassing the batch queue."""
    try:
        payload = schemas.TrackIn.model_validate(body if body is not None else {})
    except ValidationError:
        payload = schemas.TrackIn()
    slug = (payload.slug or "").strip()
    raw_type = payload.type
    if not slug or not raw_type:
        logger.warning("Rejecting /track payload without slug or type: %r", body)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing slug or type")

    kind = EventType.from_legacy(raw_type)
    if kind is EventType.UNKNOWN:
        logger.warning("Rejecting /track event of unknown type %r", raw_type)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown event type")

    store = StatsStore(db)
    company = store.get_company_by_slug(slug)
    if company is None:
        logger.warning("/track company not found for slug %r", slug)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")

    today = datetime.now(timezone.utc).date()
    store.upsert_additive(Delta.single(company.id, today, kind))
    db.commit()
    return schemas.TrackOut(ok=True)


@router.post(
    "/track",
    response_model=schemas.TrackOut,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": schemas.TrackIn.model_json_schema()}},
        }
    },
)
async def track_event(request: Request, db: Session = Depends(get_db)) -> schemas.TrackOut:
    # Read the body by hand so unparseable JSON is a 400 rather than a 422.
    try:
        body = await request.json()
    except ValueError:
        body = None
    return await run_in_threadpool(record_track_event, db, body)


app.include_router(router)
app.include_router(router, prefix="/api/reports", include_in_schema=False)


@app.post("/queue/batch", response_model=schemas.BatchOut)
def deliver_batch(
    batch_in: schemas.BatchIn,
    _: dict = Depends(verify_producer),
) -> schemas.BatchOut:
    """Merge a delivered batch; a non-2xx answer means nothing was acknowledged."""
    messages = [DeliveredMessage(id=message.id, body=message.body) for message in batch_in.messages]
    try:
        result = consume_batch(messages, SessionLocal)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Store unavailable; batch not acknowledged",
        ) from exc
    return schemas.BatchOut(received=result.received, groups=result.groups, acked=acked_ids(messages))


@app.get("/metrics/latest", response_model=schemas.MetricsOut)
def latest_metrics() -> Dict[str, Any]:
    payload = _metrics_cache.get()
    if payload is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="metrics not ready yet")
    return payload


@app.get("/metrics/health", response_class=PlainTextResponse)
def metrics_health() -> str:
    return "ok"


@app.on_event("startup")
async def start_metrics_refresh() -> None:
    _start_metrics_worker()


@app.on_event("shutdown")
async def stop_metrics_refresh() -> None:
    global _metrics_task
    task = _metrics_task
    if task is None:
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    _metrics_task = None


def reset_application_state() -> None:
    """Reset mutable globals for test isolation."""

    global _reports_rate_limiter, _metrics_cache
    _reports_rate_limiter = _get_rate_limiter()
    _metrics_cache = MetricsCache()
