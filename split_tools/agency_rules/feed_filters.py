"""Reduce a feed to the agency's own routes and to the useful services.

All functions take and return pandas DataFrames; the allow-list of service
ids is passed in explicitly rather than held as module state.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional, Set

import pandas as pd

LOGGER = logging.getLogger(__name__)

WEEKDAY_COLUMNS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

GTFS_DATE_FORMAT = "%Y%m%d"


def _to_date(value: object) -> date:
    return datetime.strptime(str(value).strip(), GTFS_DATE_FORMAT).date()


def _services_active_on(
    calendar_df: Optional[pd.DataFrame],
    calendar_dates_df: Optional[pd.DataFrame],
    day: date,
) -> Set[str]:
    active: Set[str] = set()
    if calendar_df is not None and not calendar_df.empty:
        weekday_col = WEEKDAY_COLUMNS[day.weekday()]
        for row in calendar_df.to_dict("records"):
            if not _to_date(row["start_date"]) <= day <= _to_date(row["end_date"]):
                continue
            if str(row.get(weekday_col, "0")).strip() == "1":
                active.add(str(row["service_id"]))

    if calendar_dates_df is not None and not calendar_dates_df.empty:
        key = day.strftime(GTFS_DATE_FORMAT)
        todays = calendar_dates_df[calendar_dates_df["date"].astype(str).str.strip() == key]
        for row in todays.to_dict("records"):
            exception_type = str(row["exception_type"]).strip()
            if exception_type == "1":
                active.add(str(row["service_id"]))
            elif exception_type == "2":
                active.discard(str(row["service_id"]))
    return active


def _service_start_dates(
    calendar_df: Optional[pd.DataFrame], calendar_dates_df: Optional[pd.DataFrame]
) -> dict[str, date]:
    starts: dict[str, date] = {}
    if calendar_df is not None and not calendar_df.empty:
        for row in calendar_df.to_dict("records"):
            starts[str(row["service_id"])] = _to_date(row["start_date"])
    if calendar_dates_df is not None and not calendar_dates_df.empty:
        exception_types = calendar_dates_df["exception_type"].astype(str).str.strip()
        added = calendar_dates_df[exception_types == "1"]
        for row in added.to_dict("records"):
            sid = str(row["service_id"])
            day = _to_date(row["date"])
            if sid not in starts or day < starts[sid]:
                starts[sid] = day
    return starts


def extract_useful_service_ids(
    calendar_df: Optional[pd.DataFrame],
    calendar_dates_df: Optional[pd.DataFrame],
    as_of: date,
    next_schedule: bool = False,
) -> Set[str]:
    """Service ids of the current schedule, or of the next one.

    Current: services running on *as_of*. Next: services whose first day is
    the earliest start date strictly after *as_of*.
    """
    if not next_schedule:
        service_ids = _services_active_on(calendar_df, calendar_dates_df, as_of)
        LOGGER.info("%d service id(s) active on %s.", len(service_ids), as_of.isoformat())
        return service_ids

    upcoming = {
        sid: start
        for sid, start in _service_start_dates(calendar_df, calendar_dates_df).items()
        if start > as_of
    }
    if not upcoming:
        LOGGER.warning("No service starts after %s; next schedule is empty.", as_of.isoformat())
        return set()
    first_start = min(upcoming.values())
    service_ids = {sid for sid, start in upcoming.items() if start == first_start}
    LOGGER.info(
        "%d service id(s) in next schedule starting %s.",
        len(service_ids),
        first_start.isoformat(),
    )
    return service_ids


def is_excluding_all(service_ids: Optional[Set[str]]) -> bool:
    """True when an allow-list was computed and nothing survived."""
    return service_ids is not None and not service_ids


def _service_mask(
    df: pd.DataFrame, service_ids: Optional[Set[str]], contains: Optional[str]
) -> pd.Series:
    sids = df["service_id"].astype(str)
    mask = pd.Series(True, index=df.index)
    if contains:
        mask &= sids.str.contains(contains, regex=False)
    if service_ids is not None:
        mask &= sids.isin(service_ids)
    return mask


def filter_calendars(
    calendar_df: pd.DataFrame,
    service_ids: Optional[Set[str]] = None,
    contains: Optional[str] = None,
) -> pd.DataFrame:
    return calendar_df[_service_mask(calendar_df, service_ids, contains)].copy()


def filter_calendar_dates(
    calendar_dates_df: pd.DataFrame,
    service_ids: Optional[Set[str]] = None,
    contains: Optional[str] = None,
) -> pd.DataFrame:
    return calendar_dates_df[_service_mask(calendar_dates_df, service_ids, contains)].copy()


def filter_trips(
    trips_df: pd.DataFrame,
    service_ids: Optional[Set[str]] = None,
    contains: Optional[str] = None,
) -> pd.DataFrame:
    """Keep trips whose service id is allowed."""
    out = trips_df[_service_mask(trips_df, service_ids, contains)].copy()
    LOGGER.info("Kept %d of %d trips after service filtering.", len(out), len(trips_df))
    return out


def filter_routes(routes_df: pd.DataFrame, include_agency_id: Optional[str]) -> pd.DataFrame:
    """Keep the agency's routes; routes without an agency id are kept."""
    if not include_agency_id or "agency_id" not in routes_df.columns:
        return routes_df.copy()
    agency = routes_df["agency_id"].fillna("").astype(str).str.strip()
    out = routes_df[(agency == "") | (agency == str(include_agency_id))].copy()
    LOGGER.info("Kept %d of %d routes for agency %s.", len(out), len(routes_df), include_agency_id)
    return out
