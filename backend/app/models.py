"""SQLAlchemy models for listings and their daily statistics."""
from __future__ import annotations

from sqlalchemy import Column, Date, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()

COUNTER_COLUMNS = (
    "views_profile",
    "impressions_search",
    "impressions_map",
    "clicks_phone",
    "clicks_site",
    "clicks_email",
    "clicks_directions",
    "leads_form",
)


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    city_name = Column(String(255), nullable=True)
    city_slug = Column(String(255), nullable=True)
    country_code = Column(String(8), nullable=True)
    primary_category_slug = Column(String(255), nullable=True)
    plan_type = Column(String(64), nullable=True)


class CompanyDailyStat(Base):
    """One row per (company, UTC day). Counters only ever grow."""

    __tablename__ = "company_daily_stats"

    # No foreign key: events for unknown companies must never fail a batch.
    company_id = Column(Integer, primary_key=True)
    date = Column(Date, primary_key=True)
    views_profile = Column(Integer, default=0, server_default="0", nullable=False)
    impressions_search = Column(Integer, default=0, server_default="0", nullable=False)
    impressions_map = Column(Integer, default=0, server_default="0", nullable=False)
    clicks_phone = Column(Integer, default=0, server_default="0", nullable=False)
    clicks_site = Column(Integer, default=0, server_default="0", nullable=False)
    clicks_email = Column(Integer, default=0, server_default="0", nullable=False)
    clicks_directions = Column(Integer, default=0, server_default="0", nullable=False)
    leads_form = Column(Integer, default=0, server_default="0", nullable=False)
