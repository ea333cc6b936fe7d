"""Event kinds tracked per listing and the counter each one feeds."""
from __future__ import annotations

import enum
from typing import Any, Dict


class EventType(str, enum.Enum):
    PROFILE_VIEW = "PROFILE_VIEW"
    SEARCH_IMPRESSION = "SEARCH_IMPRESSION"
    MAP_IMPRESSION = "MAP_IMPRESSION"
    CLICK_PHONE = "CLICK_PHONE"
    CLICK_SITE = "CLICK_SITE"
    CLICK_EMAIL = "CLICK_EMAIL"
    CLICK_DIRECTIONS = "CLICK_DIRECTIONS"
    FORM_SUBMIT = "FORM_SUBMIT"
    # Anything the instrumentation sends that we do not count.
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Any) -> "EventType":
        """Classify a queue event ``type`` value, never raising."""
        if isinstance(raw, str):
            try:
                kind = cls(raw)
            except ValueError:
                return cls.UNKNOWN
            return kind
        return cls.UNKNOWN

    @classmethod
    def from_legacy(cls, raw: Any) -> "EventType":
        """Classify a ``type`` sent to the legacy ``/track`` endpoint."""
        if isinstance(raw, str):
            return _LEGACY_NAMES.get(raw, cls.UNKNOWN)
        return cls.UNKNOWN

    @property
    def counter(self) -> str:
        if self is EventType.UNKNOWN:
            raise ValueError("UNKNOWN events do not map to a counter")
        return _COUNTERS[self]


_COUNTERS: Dict[EventType, str] = {
    EventType.PROFILE_VIEW: "views_profile",
    EventType.SEARCH_IMPRESSION: "impressions_search",
    EventType.MAP_IMPRESSION: "impressions_map",
    EventType.CLICK_PHONE: "clicks_phone",
    EventType.CLICK_SITE: "clicks_site",
    EventType.CLICK_EMAIL: "clicks_email",
    EventType.CLICK_DIRECTIONS: "clicks_directions",
    EventType.FORM_SUBMIT: "leads_form",
}

_LEGACY_NAMES: Dict[str, EventType] = {
    "view_profile": EventType.PROFILE_VIEW,
    "impression_search": EventType.SEARCH_IMPRESSION,
    "impression_map": EventType.MAP_IMPRESSION,
    "click_phone": EventType.CLICK_PHONE,
    "click_site": EventType.CLICK_SITE,
    "click_email": EventType.CLICK_EMAIL,
    "click_directions": EventType.CLICK_DIRECTIONS,
    "lead_form": EventType.FORM_SUBMIT,
}
