"""Pydantic models for request and response bodies."""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QueueMessageIn(BaseModel):
    id: str = Field(..., description="Transport message id, echoed back once acknowledged")
    body: Any = Field(
        None,
        description="Raw event object: companyId, type, createdAt and an opaque meta object.",
    )


class BatchIn(BaseModel):
    messages: List[QueueMessageIn] = Field(default_factory=list)


class BatchOut(BaseModel):
    received: int
    groups: int
    acked: List[str]


class TrackIn(BaseModel):
    slug: Optional[str] = Field(None, description="Company slug, e.g. acme-plumbing")
    type: Optional[str] = Field(None, description="Legacy event name, e.g. view_profile")


class TrackOut(BaseModel):
    ok: bool


class CompanyOut(BaseModel):
    id: int
    slug: str
    name: str
    city_name: Optional[str] = None
    city_slug: Optional[str] = None
    country_code: Optional[str] = None
    primary_category_slug: Optional[str] = None
    plan_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TotalsOut(BaseModel):
    views_profile: int = 0
    impressions_search: int = 0
    impressions_map: int = 0
    clicks_phone: int = 0
    clicks_site: int = 0
    clicks_email: int = 0
    clicks_directions: int = 0
    leads_form: int = 0


class DailyStatOut(TotalsOut):
    date: dt.date


class RangeOut(BaseModel):
    from_: dt.date = Field(..., alias="from")
    to: dt.date
    days: int

    model_config = ConfigDict(populate_by_name=True)


class ReportWindowOut(BaseModel):
    totals: TotalsOut
    daily: List[DailyStatOut]


class CompanyReportOut(BaseModel):
    company: CompanyOut
    range: RangeOut
    last_30_days: ReportWindowOut


class SummaryItemOut(BaseModel):
    company: CompanyOut
    totals: TotalsOut


class SummaryOut(BaseModel):
    range: RangeOut
    items: List[SummaryItemOut]


class MetricsTotalsOut(BaseModel):
    requests: int
    uniques: int
    bytes: int
    threats: int
    cachedRequests: int
    cacheHitRate: float = Field(..., ge=0, le=1)


class MetricsOut(BaseModel):
    updatedAt: str
    from_: str = Field(..., alias="from")
    to: str
    totals: MetricsTotalsOut

    model_config = ConfigDict(populate_by_name=True)
