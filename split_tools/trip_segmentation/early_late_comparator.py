"""Ordering of stop visits across the trips of one split route.

The order is used to build one canonical stop list per direction for
display; it never feeds back into classification.

Rules, applied through a single sort key so the result is a strict weak
ordering:

1. Visits of different directions are ordered by the direction's
   declaration rank in the route trip specification. Their reference
   positions are never compared with each other.
2. Within a direction, a resolved visit sorts by its reference position;
   the smaller position is the earlier visit.
3. An unresolved visit sorts right after the last resolved position that
   preceded it in its own trip. Unresolved visits sharing that point fall
   back to the feed's raw sequence numbers.
"""

from __future__ import annotations

import functools
from collections import defaultdict
from typing import Dict, Iterable, List, Set, Tuple

from split_tools.trip_segmentation.route_trip_spec import DirectionTag, RouteTripSpec
from split_tools.trip_segmentation.trips import OrdinalStopVisit

SortKey = Tuple[int, int, int, int]


def visit_sort_key(visit: OrdinalStopVisit, spec: RouteTripSpec) -> SortKey:
    rank = spec.rank(visit.direction_tag)
    if visit.reference_position is not None:
        return (rank, visit.reference_position, 0, visit.raw_sequence)
    return (rank, visit.anchor_position, 1, visit.raw_sequence)


def compare_early(a: OrdinalStopVisit, b: OrdinalStopVisit, spec: RouteTripSpec) -> int:
    """-1 when *a* logically precedes *b*, 1 when it follows, 0 when tied."""
    key_a = visit_sort_key(a, spec)
    key_b = visit_sort_key(b, spec)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def sort_visits(
    visits: Iterable[OrdinalStopVisit], spec: RouteTripSpec
) -> List[OrdinalStopVisit]:
    return sorted(visits, key=functools.cmp_to_key(lambda a, b: compare_early(a, b, spec)))


def canonical_stop_order(
    visits: Iterable[OrdinalStopVisit], spec: RouteTripSpec
) -> Dict[DirectionTag, List[int]]:
    """One de-duplicated stop list per direction, in canonical order.

    Each resolved reference occurrence of a stop keeps one slot, so a loop
    that lists a stop twice shows it twice. An unresolved stop gets a slot
    only if the stop is not already listed. Directions with no visits get
    an empty list.
    """
    order: Dict[DirectionTag, List[int]] = defaultdict(list)
    seen_slots: Dict[DirectionTag, Set[Tuple[int, int]]] = defaultdict(set)
    seen_stops: Dict[DirectionTag, Set[int]] = defaultdict(set)
    for visit in sort_visits(visits, spec):
        tag = visit.direction_tag
        if visit.reference_position is None:
            if visit.stop_id in seen_stops[tag]:
                continue
        else:
            slot = (visit.stop_id, visit.reference_position)
            if slot in seen_slots[tag]:
                continue
            seen_slots[tag].add(slot)
        seen_stops[tag].add(visit.stop_id)
        order[tag].append(visit.stop_id)
    return {d.tag: order.get(d.tag, []) for d in spec.directions}
