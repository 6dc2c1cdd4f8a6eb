"""Route ids, short names, colors and long names for the agency's routes."""

from __future__ import annotations

import re
from typing import Any, Mapping

import pandas as pd

from split_tools.agency_rules.label_cleaning import clean_route_long_name
from split_tools.trip_segmentation.errors import (
    UnexpectedRouteError,
    UnexpectedRouteMergeError,
    UnregisteredRouteColorError,
)

DIGITS = re.compile(r"\d+")


def _is_blank(value: Any) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return True
    return not str(value).strip()


def clean_route_short_name(short_name: str) -> str:
    """Digits of the short name; lettered variants ("1A", "1B") merge into "1"."""
    match = DIGITS.search(str(short_name or ""))
    if match is None:
        raise UnexpectedRouteError(f"Unexpected route short name '{short_name}'.")
    return match.group()


def route_id_from_short_name(short_name: str) -> str:
    """The agency route id is the numeric value of the short name ("05" -> "5")."""
    return str(int(clean_route_short_name(short_name)))


def route_color(route: Mapping[str, Any], color_table: Mapping[str, str]) -> str:
    """Feed color when present, else the configured color for the route id."""
    feed_color = route.get("route_color")
    if not _is_blank(feed_color):
        return str(feed_color).strip().upper()

    route_id = route_id_from_short_name(route.get("route_short_name", ""))
    color = color_table.get(route_id)
    if color is None:
        raise UnregisteredRouteColorError(
            f"{route.get('route_id')}: unexpected route color for route {route_id}."
        )
    return color.upper()


def merge_route_long_name(
    route_id: str, first: str, second: str, merges: Mapping[str, str]
) -> str:
    """Long name for two feed routes sharing one agency route id."""
    if first == second:
        return first
    merged = merges.get(str(route_id))
    if merged is None:
        raise UnexpectedRouteMergeError(
            f"Route {route_id}: unexpected long names to merge: '{first}' & '{second}'."
        )
    return merged


def build_route_table(
    routes_df: pd.DataFrame, color_table: Mapping[str, str], merges: Mapping[str, str]
) -> pd.DataFrame:
    """One row per agency route id with short name, long name and color.

    Returns:
        DataFrame with route_id, route_short_name, route_long_name,
        route_color and the list of merged gtfs_route_ids.
    """
    rows: dict[str, dict[str, Any]] = {}
    for route in routes_df.to_dict("records"):
        route_id = route_id_from_short_name(route.get("route_short_name", ""))
        long_name = route.get("route_long_name")
        long_name = "" if _is_blank(long_name) else clean_route_long_name(str(long_name))
        color = route_color(route, color_table)
        existing = rows.get(route_id)
        if existing is None:
            rows[route_id] = {
                "route_id": route_id,
                "route_short_name": clean_route_short_name(route.get("route_short_name", "")),
                "route_long_name": long_name,
                "route_color": color,
                "gtfs_route_ids": [str(route["route_id"])],
            }
            continue
        existing["route_long_name"] = merge_route_long_name(
            route_id, existing["route_long_name"], long_name, merges
        )
        existing["gtfs_route_ids"].append(str(route["route_id"]))

    return pd.DataFrame(
        list(rows.values()),
        columns=[
            "route_id",
            "route_short_name",
            "route_long_name",
            "route_color",
            "gtfs_route_ids",
        ],
    )


def gtfs_to_agency_route_ids(route_table: pd.DataFrame) -> dict[str, str]:
    """GTFS route_id -> agency route id, from build_route_table() output."""
    out: dict[str, str] = {}
    for row in route_table.to_dict("records"):
        for gtfs_route_id in row["gtfs_route_ids"]:
            out[gtfs_route_id] = row["route_id"]
    return out
