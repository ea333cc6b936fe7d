"""Per-company and cross-company reports built from daily statistics rows."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from .models import COUNTER_COLUMNS, Company
from .store import StatsStore

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 30


class CompanyNotFound(LookupError):
    """Raised when no company matches the requested slug."""


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date
    days: int

    def as_dict(self) -> Dict[str, Any]:
        return {"from": self.start.isoformat(), "to": self.end.isoformat(), "days": self.days}


def _parse_days(days: Union[None, int, float, str]) -> int:
    if days is None or isinstance(days, bool):
        return DEFAULT_DAYS
    try:
        value = float(days)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed days parameter %r", days)
        return DEFAULT_DAYS
    if not math.isfinite(value) or value <= 0:
        logger.warning("Ignoring out-of-range days parameter %r", days)
        return DEFAULT_DAYS
    return math.ceil(value)


def resolve_range(days: Union[None, int, float, str] = None, today: Optional[date] = None) -> DateRange:
    """Inclusive UTC range of ``days`` calendar days ending today.

    Ranges reaching past ``date.min`` are cut to start there.
    """
    count = _parse_days(days)
    end = today or datetime.now(timezone.utc).date()
    count = min(count, (end - date.min).days + 1)
    return DateRange(start=end - timedelta(days=count - 1), end=end, days=count)


def empty_totals() -> Dict[str, int]:
    return {column: 0 for column in COUNTER_COLUMNS}


def company_meta(company: Company) -> Dict[str, Any]:
    return {
        "id": company.id,
        "slug": company.slug,
        "name": company.name,
        "city_name": company.city_name,
        "city_slug": company.city_slug,
        "country_code": company.country_code,
        "primary_category_slug": company.primary_category_slug,
        "plan_type": company.plan_type,
    }


def get_company_report(
    session: Session,
    slug: str,
    days: Union[None, int, float, str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Daily rows and range totals for one company.

    Days without a stored row are left out of ``daily``; the totals are the
    sum of exactly the rows returned.
    """
    slug = (slug or "").strip()
    if not slug:
        raise ValueError("Invalid company slug")

    store = StatsStore(session)
    company = store.get_company_by_slug(slug)
    if company is None:
        raise CompanyNotFound(slug)

    date_range = resolve_range(days, today)
    rows = store.query_range(company.id, date_range.start, date_range.end)
    logger.info("Company %s report: %d rows in %s..%s", slug, len(rows), date_range.start, date_range.end)

    totals = empty_totals()
    daily: List[Dict[str, Any]] = []
    for row in rows:
        item: Dict[str, Any] = {"date": row.date.isoformat()}
        for column in COUNTER_COLUMNS:
            value = int(getattr(row, column) or 0)
            item[column] = value
            totals[column] += value
        daily.append(item)

    return {
        "company": company_meta(company),
        "range": date_range.as_dict(),
        "last_30_days": {"totals": totals, "daily": daily},
    }


def get_summary(
    session: Session,
    days: Union[None, int, float, str] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Totals for every company over the range, highest profile views first."""
    date_range = resolve_range(days, today)
    ranked = StatsStore(session).query_range_all_companies(date_range.start, date_range.end)
    logger.info("Summary over %s..%s: %d companies", date_range.start, date_range.end, len(ranked))
    return {
        "range": date_range.as_dict(),
        "items": [{"company": company_meta(company), "totals": totals} for company, totals in ranked],
    }
