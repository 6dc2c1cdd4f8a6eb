"""Shared GTFS loading helpers.

Typical usage:
    data = load_gtfs_data(folder, files=("stops.txt", "trips.txt"))
    stop_index = StopIndex.from_stops_df(data["stops"])
    raw_trips = build_raw_trips(data["trips"], data["stop_times"], stop_index)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence, cast

import pandas as pd

from split_tools.trip_segmentation.errors import UnknownStopError
from split_tools.trip_segmentation.stop_index import StopIndex
from split_tools.trip_segmentation.trips import RawTrip, RawVisit

LOGGER = logging.getLogger(__name__)

DEFAULT_GTFS_FILES = (
    "agency.txt",
    "stops.txt",
    "routes.txt",
    "trips.txt",
    "stop_times.txt",
    "calendar.txt",
    "calendar_dates.txt",
)


def load_gtfs_data(
    gtfs_folder_path: str,
    files: Optional[Sequence[str]] = None,
    dtype: str | type[str] | Mapping[str, Any] = str,
) -> dict[str, pd.DataFrame]:
    """Load one or more GTFS text files into memory.

    Args:
        gtfs_folder_path: Absolute or relative path to the folder
            containing the GTFS feed.
        files: Explicit sequence of file names to load. If ``None``,
            DEFAULT_GTFS_FILES are attempted.
        dtype: Value forwarded to :pyfunc:`pandas.read_csv(dtype=…)`.

    Returns:
        Mapping of file stem → :class:`pandas.DataFrame`.

    Raises:
        OSError: Folder missing or one of *files* not present.
        ValueError: Empty file or CSV parser failure.
        RuntimeError: Generic OS error while reading a file.
    """
    if not os.path.exists(gtfs_folder_path):
        raise OSError(f"The directory '{gtfs_folder_path}' does not exist.")

    if files is None:
        files = DEFAULT_GTFS_FILES

    missing = [
        file_name
        for file_name in files
        if not os.path.exists(os.path.join(gtfs_folder_path, file_name))
    ]
    if missing:
        raise OSError(f"Missing GTFS files in '{gtfs_folder_path}': {', '.join(missing)}")

    data: dict[str, pd.DataFrame] = {}
    for file_name in files:
        key = file_name.replace(".txt", "")
        file_path = os.path.join(gtfs_folder_path, file_name)
        try:
            df = pd.read_csv(file_path, dtype=cast("Any", dtype), low_memory=False)
            data[key] = df
            LOGGER.info("Loaded %s (%d records).", file_name, len(df))

        except pd.errors.EmptyDataError as exc:
            raise ValueError(f"File '{file_name}' in '{gtfs_folder_path}' is empty.") from exc

        except pd.errors.ParserError as exc:
            raise ValueError(
                f"Parser error in '{file_name}' in '{gtfs_folder_path}': {exc}"
            ) from exc

        except OSError as exc:
            raise RuntimeError(
                f"OS error reading file '{file_name}' in '{gtfs_folder_path}': {exc}"
            ) from exc

    return data


def _optional_int(value: Any) -> Optional[int]:
    if value is None or pd.isna(value) or str(value).strip() == "":
        return None
    return int(float(value))


def build_raw_trips(
    trips_df: pd.DataFrame,
    stop_times_df: pd.DataFrame,
    stop_index: StopIndex,
    route_ids: Optional[Mapping[str, str]] = None,
) -> List[RawTrip]:
    """Group stop_times by trip into RawTrip records.

    Args:
        trips_df: trips.txt rows (route_id, trip_id, optional direction_id and
            trip_headsign).
        stop_times_df: stop_times.txt rows (trip_id, stop_id, stop_sequence).
        stop_index: Index used to map stop_id -> stop code -> identifier.
        route_ids: Optional GTFS route_id -> agency route id mapping (merged
            routes); unmapped route ids are kept as-is.

    Raises:
        UnknownStopError: A stop_times row references a stop missing from
            the index.
        ValueError: Required columns are missing.
    """
    for name, df, cols in (
        ("trips", trips_df, {"route_id", "trip_id"}),
        ("stop_times", stop_times_df, {"trip_id", "stop_id", "stop_sequence"}),
    ):
        miss = cols.difference(df.columns)
        if miss:
            raise ValueError(f"{name}.txt missing columns: {sorted(miss)}")

    st = stop_times_df[["trip_id", "stop_id", "stop_sequence"]].copy()
    st["trip_id"] = st["trip_id"].astype(str)
    st["stop_sequence"] = pd.to_numeric(st["stop_sequence"], errors="raise").astype(int)
    st = st.sort_values(["trip_id", "stop_sequence"], kind="stable")

    visits_by_trip: Dict[str, List[RawVisit]] = {}
    for trip_id, group in st.groupby("trip_id", sort=False):
        visits = []
        for stop_id, seq in zip(group["stop_id"], group["stop_sequence"]):
            try:
                code = stop_index.code_for_stop_id(str(stop_id))
            except UnknownStopError as exc:
                raise UnknownStopError(str(stop_id), context=f"trip {trip_id}") from exc
            visits.append(RawVisit(stop_index.lookup(code), code, int(seq)))
        visits_by_trip[str(trip_id)] = visits

    out: List[RawTrip] = []
    for row in trips_df.to_dict("records"):
        trip_id = str(row["trip_id"])
        gtfs_route_id = str(row["route_id"])
        headsign = row.get("trip_headsign")
        out.append(
            RawTrip(
                route_id=(route_ids or {}).get(gtfs_route_id, gtfs_route_id),
                trip_id=trip_id,
                direction_id=_optional_int(row.get("direction_id")),
                headsign="" if headsign is None or pd.isna(headsign) else str(headsign),
                visits=tuple(visits_by_trip.get(trip_id, ())),
                gtfs_route_id=gtfs_route_id,
            )
        )

    no_stops = sum(1 for t in out if not t.visits)
    if no_stops:
        LOGGER.warning("%d trip(s) have no stop_times rows.", no_stops)
    LOGGER.info("Built %d raw trips.", len(out))
    return out
