"""Assign each trip of a split route to one of the route's directions.

A trip is scored against every direction reference by the length of the
longest order-preserving alignment between the trip's stops and the
reference list (not necessarily contiguous, so skipped optional stops cost
nothing). Among alignments of equal length the one covering the most anchor
(``==``) entries is kept. A direction is only eligible when every anchor stop
the trip visits is covered by that alignment.

The best eligible score wins. A tie, or no eligible direction with at least
MIN_MATCH_SCORE aligned stops, raises ``AmbiguousTripError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np

from split_tools.trip_segmentation.errors import AmbiguousTripError
from split_tools.trip_segmentation.route_trip_spec import (
    DirectionReference,
    DirectionTag,
    RouteTripSpec,
)
from split_tools.trip_segmentation.trips import ClassifiedTrip, RawTrip

LOGGER = logging.getLogger(__name__)

MIN_MATCH_SCORE = 1


@dataclass(frozen=True)
class DirectionMatch:
    direction: DirectionReference
    score: int
    anchors_matched: int
    alignment: Tuple[Tuple[int, int], ...]
    eligible: bool


def align(trip_stops: Sequence[int], direction: DirectionReference) -> DirectionMatch:
    """Order-preserving alignment of *trip_stops* onto *direction*.

    Reconstruction claims the earliest reference position that keeps the
    alignment optimal, so a stop listed twice in the reference is matched
    to its early occurrence first.
    """
    entries = direction.entries
    n, m = len(trip_stops), len(entries)
    # One aligned stop always outweighs any number of anchors.
    unit = m + 1
    weights = np.array([unit + (1 if e.is_anchor else 0) for e in entries], dtype=np.int64)
    ref_ids = np.array([e.stop_id for e in entries], dtype=np.int64)

    # dp[i, j]: best weight aligning trip_stops[i:] onto entries[j:]. Each row
    # is the suffix maximum of "skip the trip stop" and "match entry j".
    dp = np.zeros((n + 1, m + 1), dtype=np.int64)
    for i in range(n - 1, -1, -1):
        below = dp[i + 1]
        matched = np.where(ref_ids == trip_stops[i], weights + below[1:], 0)
        best = np.maximum(below[:m], matched)
        dp[i, :m] = np.maximum.accumulate(best[::-1])[::-1]

    table = dp.tolist()
    ids = ref_ids.tolist()
    w = weights.tolist()
    pairs: List[Tuple[int, int]] = []
    i = j = 0
    while i < n and j < m:
        if ids[j] == trip_stops[i] and table[i][j] == w[j] + table[i + 1][j + 1]:
            pairs.append((i, j))
            i += 1
            j += 1
        elif table[i][j] == table[i + 1][j]:
            # Drop the trip stop rather than the reference entry.
            i += 1
        else:
            j += 1

    total = table[0][0] if n and m else 0
    score, anchors_matched = divmod(total, unit)

    visited = set(trip_stops)
    anchor_stops = {e.stop_id for e in entries if e.is_anchor and e.stop_id in visited}
    aligned_anchor_stops = {entries[j].stop_id for _, j in pairs if entries[j].is_anchor}

    return DirectionMatch(
        direction=direction,
        score=score,
        anchors_matched=anchors_matched,
        alignment=tuple(pairs),
        eligible=anchor_stops <= aligned_anchor_stops,
    )


def match_score(trip_stops: Sequence[int], direction: DirectionReference) -> int:
    """Number of trip stops aligned, in order, onto *direction*."""
    return align(trip_stops, direction).score


def classify_trip(trip: RawTrip, spec: RouteTripSpec) -> ClassifiedTrip:
    """Bind *trip* to the direction of *spec* it matches best.

    Raises:
        AmbiguousTripError: No eligible direction reaches MIN_MATCH_SCORE,
            or two directions share the best score.
    """
    stops = trip.stop_ids
    matches = [align(stops, direction) for direction in spec.directions]
    scores: Dict[DirectionTag, int] = {m.direction.tag: m.score for m in matches}
    candidates = [m for m in matches if m.eligible and m.score >= MIN_MATCH_SCORE]
    summary = [(m.direction.tag.value, m.score if m.eligible else 0) for m in matches]

    if not candidates:
        raise AmbiguousTripError(
            spec.route_id, trip.trip_id, summary, "no direction reference matches"
        )

    best = max(m.score for m in candidates)
    winners = [m for m in candidates if m.score == best]
    if len(winners) > 1:
        tags = ", ".join(m.direction.tag.value for m in winners)
        raise AmbiguousTripError(
            spec.route_id, trip.trip_id, summary, f"tie between {tags}"
        )

    winner = winners[0]
    LOGGER.debug(
        "Route %s trip %s -> %s (score %d of %d).",
        spec.route_id,
        trip.trip_id,
        winner.direction.tag.value,
        winner.score,
        len(stops),
    )
    return ClassifiedTrip(
        trip=trip,
        direction=winner.direction,
        score=winner.score,
        scores=scores,
        alignment=winner.alignment,
    )


def classify_route_trips(
    trips: Iterable[RawTrip], spec: RouteTripSpec
) -> Dict[DirectionTag, List[ClassifiedTrip]]:
    """Partition a route's trips into one bucket per direction tag."""
    buckets: Dict[DirectionTag, List[ClassifiedTrip]] = {d.tag: [] for d in spec.directions}
    for trip in trips:
        classified = classify_trip(trip, spec)
        buckets[classified.direction.tag].append(classified)
    LOGGER.info(
        "Route %s: %s",
        spec.route_id,
        ", ".join(f"{tag.value}={len(bucket)}" for tag, bucket in buckets.items()),
    )
    return buckets
