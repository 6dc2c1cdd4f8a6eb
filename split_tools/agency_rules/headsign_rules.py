"""Direction labels for routes that are not under split management.

These routes keep one GTFS direction per logical direction, so the label
comes straight from the feed headsign: a configured rule maps the
(route, direction flag, headsign) triple to a direction tag, and the label is
the cleaned headsign, or the rule's fixed label where the feed headsign is
blank. Anything unmatched is an error rather than a guess.
"""

from __future__ import annotations

from typing import Iterable, Sequence, Tuple

from split_tools.agency_rules.agency_config import HeadsignMergeRule, HeadsignRule
from split_tools.agency_rules.label_cleaning import clean_trip_headsign
from split_tools.trip_segmentation.errors import (
    UnexpectedHeadsignError,
    UnexpectedHeadsignMergeError,
)
from split_tools.trip_segmentation.route_trip_spec import DirectionTag
from split_tools.trip_segmentation.trips import RawTrip


def _ordered(rules: Iterable[HeadsignRule]) -> Sequence[HeadsignRule]:
    # Rules pinned to a GTFS route id win over route-wide rules.
    return sorted(rules, key=lambda r: r.gtfs_route_id is None)


def assign_headsign(
    trip: RawTrip, rules: Iterable[HeadsignRule]
) -> Tuple[DirectionTag, str]:
    """Direction tag and cleaned label for *trip*.

    Raises:
        UnexpectedHeadsignError: No rule matches the trip.
    """
    for rule in _ordered(rules):
        if rule.matches(trip.route_id, trip.gtfs_route_id, trip.direction_id, trip.headsign):
            if rule.label is not None:
                return rule.tag, clean_trip_headsign(rule.label)
            return rule.tag, clean_trip_headsign(trip.headsign)
    raise UnexpectedHeadsignError(
        f"Route {trip.route_id}: unexpected trip headsign '{trip.headsign}' "
        f"(trip {trip.trip_id}, gtfs route {trip.gtfs_route_id}, direction {trip.direction_id})."
    )


def merge_headsigns(
    route_id: str, first: str, second: str, merges: Iterable[HeadsignMergeRule]
) -> str:
    """Single label for two trips of one route direction.

    Raises:
        UnexpectedHeadsignMergeError: No merge rule covers both labels.
    """
    if first == second:
        return first
    for rule in merges:
        if rule.route_id == str(route_id) and {first, second} <= set(rule.values):
            return rule.merged
    raise UnexpectedHeadsignMergeError(
        f"Route {route_id}: unexpected trips to merge: '{first}' & '{second}'."
    )
