"""Pydantic models for tic events recorded by patients.

Events are read from ``users/{patient_id}/ticHistory``; the mobile app
writes ``date``, ``timeOfDay``, ``intensity`` and ``location``.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator


class TimeRange(str, Enum):
    ALL = "all"
    TODAY = "today"
    LAST_WEEK = "lastWeek"
    LAST_MONTH = "lastMonth"
    LAST_3_MONTHS = "last3Months"
    LAST_6_MONTHS = "last6Months"
    LAST_YEAR = "lastYear"
    SPECIFIC_DATE = "specificDate"


class ChartMode(str, Enum):
    AVG = "avg"
    TOTAL = "total"
    COUNT = "count"


class TicEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: datetime
    time_of_day: Optional[str] = Field(None, alias="timeOfDay")
    intensity: float = 0
    location: str = "Unknown"

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v):
        # Older clients stored JS date strings ("Mon Jan 13 2025")
        if isinstance(v, str):
            try:
                return datetime.fromisoformat(v)
            except ValueError:
                return pd.to_datetime(v).to_pydatetime()
        return v

    @field_validator("date")
    @classmethod
    def ensure_utc(cls, v: datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class TicFilter(BaseModel):
    time_range: TimeRange = TimeRange.ALL
    specific_date: Optional[date] = None
    locations: List[str] = []
    sort: Literal["asc", "desc"] = "desc"


class TicHistoryOut(BaseModel):
    items: List[TicEvent]
    locations: List[str]


class ChartRow(BaseModel):
    time_key: str
    values: Dict[str, float]


class TicChartOut(BaseModel):
    mode: ChartMode
    header: List[str]
    rows: List[ChartRow]
