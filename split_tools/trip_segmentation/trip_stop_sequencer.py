"""Resolve each visit of a classified trip to a reference position."""

from __future__ import annotations

from typing import Dict, List

from split_tools.trip_segmentation.trips import ClassifiedTrip, OrdinalStopVisit


def sequence_trip(classified: ClassifiedTrip) -> List[OrdinalStopVisit]:
    """Return the trip's visits in feed order with resolved positions.

    Positions come from the classifier's alignment, which claims reference
    positions strictly monotonically: a loop trip passing stop X twice maps
    its first pass to the earlier occurrence of X in the reference and its
    second pass to the later one. Visits outside the alignment stay
    unresolved and remember the last resolved position before them
    (``anchor_position``, -1 at the start of the trip).
    """
    claimed: Dict[int, int] = dict(classified.alignment)
    trip = classified.trip
    tag = classified.direction.tag

    out: List[OrdinalStopVisit] = []
    last_position = -1
    for idx, visit in enumerate(trip.visits):
        position = claimed.get(idx)
        if position is not None:
            last_position = position
        out.append(
            OrdinalStopVisit(
                route_id=trip.route_id,
                trip_id=trip.trip_id,
                direction_tag=tag,
                stop_id=visit.stop_id,
                stop_code=visit.stop_code,
                raw_sequence=visit.raw_sequence,
                ordinal=idx + 1,
                reference_position=position,
                anchor_position=last_position,
            )
        )
    return out
