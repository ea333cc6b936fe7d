"""Access layer for the statistics store and listing metadata."""
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .aggregation import Delta
from .models import COUNTER_COLUMNS, Company, CompanyDailyStat

logger = logging.getLogger(__name__)

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class StatsStore:
    """Reads and additive writes against ``company_daily_stats``.

    The store never commits; callers own the transaction boundary.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert_additive(self, delta: Delta) -> None:
        """Insert the delta's row, or add its counts to the existing row.

        Relies on ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent writers
        to the same (company, day) are serialized by the database.
        """
        dialect = self._session.get_bind().dialect.name
        try:
            insert = _INSERTS[dialect]
        except KeyError:
            raise RuntimeError(f"Additive upsert is not supported on {dialect!r}") from None

        table = CompanyDailyStat.__table__
        stmt = insert(table).values(company_id=delta.company_id, date=delta.day, **delta.counters)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.company_id, table.c.date],
            set_={column: table.c[column] + stmt.excluded[column] for column in COUNTER_COLUMNS},
        )
        logger.debug(
            "Upserting stats row company=%s date=%s counters=%s",
            delta.company_id,
            delta.day,
            delta.counters,
        )
        self._session.execute(stmt)

    def query_range(self, company_id: int, from_day: date, to_day: date) -> List[CompanyDailyStat]:
        stmt = (
            select(CompanyDailyStat)
            .where(
                CompanyDailyStat.company_id == company_id,
                CompanyDailyStat.date >= from_day,
                CompanyDailyStat.date <= to_day,
            )
            .order_by(CompanyDailyStat.date.asc())
        )
        return list(self._session.execute(stmt).scalars().all())

    def query_range_all_companies(
        self, from_day: date, to_day: date
    ) -> List[Tuple[Company, Dict[str, int]]]:
        """Sum every company's counters over the range, ranked by profile views.

        Companies without rows in the range are included with zero totals.
        """
        sums = [
            func.coalesce(func.sum(getattr(CompanyDailyStat, column)), 0).label(column)
            for column in COUNTER_COLUMNS
        ]
        stmt = (
            select(Company, *sums)
            .outerjoin(
                CompanyDailyStat,
                and_(
                    CompanyDailyStat.company_id == Company.id,
                    CompanyDailyStat.date >= from_day,
                    CompanyDailyStat.date <= to_day,
                ),
            )
            .group_by(Company.id)
            .order_by(sums[COUNTER_COLUMNS.index("views_profile")].desc(), Company.id.asc())
        )
        results = []
        for row in self._session.execute(stmt).all():
            company = row[0]
            totals = {column: int(value or 0) for column, value in zip(COUNTER_COLUMNS, row[1:])}
            results.append((company, totals))
        return results

    def get_company_by_slug(self, slug: str) -> Optional[Company]:
        stmt = select(Company).where(Company.slug == slug)
        return self._session.execute(stmt).scalar_one_or_none()

    def list_companies(self) -> List[Company]:
        return list(self._session.execute(select(Company).order_by(Company.id)).scalars().all())
