"""Tic history loading, filtering and chart aggregation for the doctor view."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Protocol

import pandas as pd
from google.api_core import exceptions as gcp_exceptions
from pydantic import ValidationError

from app.core.exceptions import Unavailable
from app.models.tic import ChartMode, ChartRow, TicChartOut, TicEvent, TicFilter, TimeRange

logger = logging.getLogger(__name__)

# Rolling windows, in days
_WINDOWS = {
    TimeRange.LAST_WEEK: 7,
    TimeRange.LAST_3_MONTHS: 90,
    TimeRange.LAST_6_MONTHS: 180,
}

_AGGREGATIONS = {
    ChartMode.AVG: "mean",
    ChartMode.TOTAL: "sum",
    ChartMode.COUNT: "count",
}


class TicHistorySource(Protocol):
    def load(self, patient_id: str) -> List[TicEvent]: ...


def _parse_events(patient_id: str, raw: Iterable[dict]) -> List[TicEvent]:
    events = []
    for data in raw:
        try:
            events.append(TicEvent.model_validate(data))
        except (ValidationError, ValueError) as exc:
            logger.warning("Skipping malformed tic event for %s: %s", patient_id, exc)
    return events


class FirestoreTicHistory:
    def __init__(self, db):
        self._db = db

    def load(self, patient_id):
        try:
            docs = (
                self._db.collection("users")
                .document(patient_id)
                .collection("ticHistory")
                .stream()
            )
            raw = [d.to_dict() or {} for d in docs]
        except (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError) as exc:
            logger.error("Tic history read for %s failed: %s", patient_id, exc)
            raise Unavailable() from exc
        return _parse_events(patient_id, raw)


class MemoryTicHistory:
    def __init__(self, history: Optional[Dict[str, List[dict]]] = None):
        self.history: Dict[str, List[dict]] = dict(history or {})

    def load(self, patient_id):
        return _parse_events(patient_id, self.history.get(patient_id, []))


def _in_range(tic_date: datetime, tic_filter: TicFilter, now: datetime) -> bool:
    time_range = tic_filter.time_range

    if time_range == TimeRange.TODAY:
        return tic_date.date() == now.date()
    if time_range in _WINDOWS:
        return now - tic_date <= timedelta(days=_WINDOWS[time_range])
    if time_range == TimeRange.LAST_MONTH:
        return (tic_date.year, tic_date.month) == (now.year, now.month)
    if time_range == TimeRange.LAST_YEAR:
        return tic_date.year == now.year
    if time_range == TimeRange.SPECIFIC_DATE:
        # No date picked yet means no date filter
        if tic_filter.specific_date is None:
            return True
        return tic_date.date() == tic_filter.specific_date
    return True


def filter_tics(
    events: List[TicEvent], tic_filter: TicFilter, now: Optional[datetime] = None
) -> List[TicEvent]:
    """Apply time range, location filter and date sort."""
    now = now or datetime.now(timezone.utc)

    data = [e for e in events if _in_range(e.date, tic_filter, now)]
    if tic_filter.locations:
        data = [e for e in data if e.location in tic_filter.locations]

    data.sort(key=lambda e: e.date, reverse=tic_filter.sort == "desc")
    return data


def distinct_locations(events: List[TicEvent]) -> List[str]:
    """Locations in order of first appearance."""
    return list(dict.fromkeys(e.location for e in events))


def chart_series(events: List[TicEvent], mode: ChartMode, by_time_of_day: bool) -> TicChartOut:
    """
    Group events by time key and location, then reduce intensity per
    ``mode``. Time key is ``timeOfDay`` for a single day view and the UTC
    calendar date otherwise. Rows come back in chronological order, with
    0 for locations that have no events at that time.
    """
    if not events:
        return TicChartOut(mode=mode, header=["Time"], rows=[])

    df = pd.DataFrame(
        [
            {
                "date": e.date,
                "time_of_day": e.time_of_day or "",
                "location": e.location,
                "intensity": e.intensity,
            }
            for e in events
        ]
    )

    if by_time_of_day:
        df["time_key"] = df["time_of_day"]
        df["sort_key"] = pd.to_datetime(
            "2000-01-01 " + df["time_key"], errors="coerce", format="mixed"
        )
    else:
        df["time_key"] = df["date"].map(lambda d: d.astimezone(timezone.utc).date().isoformat())
        df["sort_key"] = pd.to_datetime(df["time_key"])

    table = (
        df.groupby(["time_key", "location"])["intensity"]
        .agg(_AGGREGATIONS[mode])
        .unstack("location")
    )

    order = (
        df.groupby("time_key")["sort_key"]
        .first()
        .sort_values(na_position="last", kind="stable")
        .index
    )
    locations = distinct_locations(events)
    table = table.reindex(index=order, columns=locations).fillna(0)

    rows = [
        ChartRow(
            time_key=str(time_key),
            values={loc: float(value) for loc, value in row.items()},
        )
        for time_key, row in table.iterrows()
    ]
    return TicChartOut(mode=mode, header=["Time", *locations], rows=rows)
