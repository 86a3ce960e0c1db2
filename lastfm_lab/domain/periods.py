from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Optional


class ReportPeriod(str, Enum):
    """Time window for top tracks/artists, valued with the upstream period codes."""

    LAST_7_DAYS = "7day"
    PAST_MONTH = "1month"
    PAST_3_MONTHS = "3month"
    PAST_6_MONTHS = "6month"
    PAST_YEAR = "12month"
    ALL_TIME = "overall"

    @property
    def label(self) -> str:
        return PERIOD_LABELS.get(self, FALLBACK_LABEL)

    @property
    def is_all_time(self) -> bool:
        return self is ReportPeriod.ALL_TIME


DEFAULT_PERIOD = ReportPeriod.PAST_3_MONTHS
FALLBACK_LABEL = "past while"

PERIOD_LABELS = MappingProxyType({
    ReportPeriod.LAST_7_DAYS: "last 7 days",
    ReportPeriod.PAST_MONTH: "past month",
    ReportPeriod.PAST_3_MONTHS: "past 3 months",
    ReportPeriod.PAST_6_MONTHS: "past 6 months",
    ReportPeriod.PAST_YEAR: "past year",
    ReportPeriod.ALL_TIME: "overall",
})

_BY_CODE = MappingProxyType({period.value: period for period in ReportPeriod})


def normalize_period(value: Optional[str]) -> ReportPeriod:
    """Map raw period input to a ReportPeriod; anything unknown becomes the default."""
    if isinstance(value, ReportPeriod):
        return value
    if not isinstance(value, str):
        return DEFAULT_PERIOD
    return _BY_CODE.get(value, DEFAULT_PERIOD)
