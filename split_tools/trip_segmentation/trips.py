"""Trip records exchanged between the feed loader and the segmentation steps."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from split_tools.trip_segmentation.route_trip_spec import DirectionReference, DirectionTag


@dataclass(frozen=True)
class RawVisit:
    """One stop_times.txt row of a trip."""

    stop_id: int
    stop_code: str
    raw_sequence: int


@dataclass(frozen=True)
class RawTrip:
    """A feed trip with its visits ordered by raw sequence number."""

    route_id: str
    trip_id: str
    direction_id: Optional[int]
    headsign: str
    visits: Tuple[RawVisit, ...]
    gtfs_route_id: str = ""

    @property
    def stop_ids(self) -> Tuple[int, ...]:
        return tuple(v.stop_id for v in self.visits)


@dataclass(frozen=True)
class ClassifiedTrip:
    """A raw trip bound to the direction that matched it best.

    ``alignment`` holds (visit index, reference position) pairs, strictly
    increasing in both members.
    """

    trip: RawTrip
    direction: DirectionReference
    score: int
    scores: Dict[DirectionTag, int]
    alignment: Tuple[Tuple[int, int], ...]

    @property
    def route_id(self) -> str:
        return self.trip.route_id

    @property
    def is_perfect_match(self) -> bool:
        return self.score == len(self.direction.entries)


@dataclass(frozen=True)
class OrdinalStopVisit:
    """A stop visit tagged with its resolved reference position.

    ``ordinal`` is the synthetic 1-based sequence within the trip;
    ``reference_position`` is None when the stop could not be aligned.
    """

    route_id: str
    trip_id: str
    direction_tag: DirectionTag
    stop_id: int
    stop_code: str
    raw_sequence: int
    ordinal: int
    reference_position: Optional[int]
    anchor_position: int
