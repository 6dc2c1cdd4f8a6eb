import pytest

from split_tools.trip_segmentation.errors import AmbiguousTripError
from split_tools.trip_segmentation.route_trip_spec import DirectionTag, RouteTripSpecBuilder
from split_tools.trip_segmentation.trip_classifier import (
    align,
    classify_route_trips,
    classify_trip,
    match_score,
)
from split_tools.trip_segmentation.trips import RawTrip, RawVisit

A, B, C, D, E, F = 1, 2, 3, 4, 5, 6


def make_trip(stops, trip_id="t1", route_id="5") -> RawTrip:
    visits = tuple(RawVisit(s, str(s), seq) for seq, s in enumerate(stops, 1))
    return RawTrip(route_id, trip_id, None, "", visits)


@pytest.fixture
def spec():
    return (
        RouteTripSpecBuilder("5")
        .add_direction(DirectionTag.NORTH, "North", [A, B, C, D])
        .add_direction(DirectionTag.SOUTH, "South", [D, E, A])
        .build()
    )


def test_partial_trip_goes_to_best_ordered_match(spec) -> None:
    result = classify_trip(make_trip([A, B, D]), spec)

    assert result.direction.tag is DirectionTag.NORTH
    assert result.score == 3
    assert result.scores == {DirectionTag.NORTH: 3, DirectionTag.SOUTH: 1}
    assert result.alignment == ((0, 0), (1, 1), (2, 3))
    assert not result.is_perfect_match


def test_exact_reference_is_perfect_match(spec) -> None:
    result = classify_trip(make_trip([D, E, A]), spec)

    assert result.direction.tag is DirectionTag.SOUTH
    assert result.scores == {DirectionTag.NORTH: 1, DirectionTag.SOUTH: 3}
    assert result.is_perfect_match


def test_every_reference_classifies_to_itself(spec) -> None:
    for direction in spec.directions:
        result = classify_trip(make_trip(direction.stop_ids), spec)
        assert result.direction.tag is direction.tag
        assert result.score == len(direction.entries)


def test_order_matters_not_just_membership(spec) -> None:
    # Same stop set as NORTH's first and last stop, but travelling D -> A.
    result = classify_trip(make_trip([D, A]), spec)
    assert result.direction.tag is DirectionTag.SOUTH
    assert result.scores[DirectionTag.NORTH] == 1


def test_skipped_and_extra_stops_do_not_break_alignment(spec) -> None:
    assert match_score([A, F, C, F, D], spec.direction(DirectionTag.NORTH)) == 3


def test_all_stops_unknown_raises(spec) -> None:
    with pytest.raises(AmbiguousTripError) as excinfo:
        classify_trip(make_trip([F, 7, 8], trip_id="x9"), spec)
    err = excinfo.value
    assert err.route_id == "5"
    assert err.trip_id == "x9"
    assert err.candidates == [("NORTH", 0), ("SOUTH", 0)]
    assert "no direction reference matches" in str(err)


def test_trip_without_stops_raises(spec) -> None:
    with pytest.raises(AmbiguousTripError):
        classify_trip(make_trip([]), spec)


def test_tie_raises(spec) -> None:
    # A alone scores 1 in both directions.
    with pytest.raises(AmbiguousTripError, match="tie between NORTH, SOUTH"):
        classify_trip(make_trip([A]), spec)


def test_anchor_must_be_aligned_for_direction_to_be_eligible() -> None:
    spec = (
        RouteTripSpecBuilder("99")
        .add_direction(DirectionTag.CLOCKWISE, "Schools", [A, B, (C, "=="), D, E])
        .add_direction(DirectionTag.COUNTERCLOCKWISE, "Downtown", [D, E, C])
        .build()
    )
    # Without the anchor, CLOCKWISE would win 4 to 3 on [A, B, D, E, C].
    # Its longest alignment (A, B, D, E) leaves visited anchor C out.
    result = classify_trip(make_trip([A, B, D, E, C]), spec)
    assert result.direction.tag is DirectionTag.COUNTERCLOCKWISE
    assert result.scores[DirectionTag.CLOCKWISE] == 4


def test_anchor_breaks_equal_length_alignments() -> None:
    direction = (
        RouteTripSpecBuilder("1")
        .add_direction(DirectionTag.NORTH, "N", [A, (B, "=="), C])
        .add_direction(DirectionTag.SOUTH, "S", [C, A])
        .build()
        .direction(DirectionTag.NORTH)
    )
    # [B, A, C] can align (A, C) or (B, C); the anchored one is kept.
    match = align([B, A, C], direction)
    assert match.score == 2
    assert match.anchors_matched == 1
    assert match.alignment == ((0, 1), (2, 2))
    assert match.eligible


def test_repeated_reference_stop_claims_earliest_first() -> None:
    direction = (
        RouteTripSpecBuilder("6")
        .add_direction(DirectionTag.CLOCKWISE, "Loop", [A, B, F, C, D, F])
        .add_direction(DirectionTag.COUNTERCLOCKWISE, "Back", [E])
        .build()
        .direction(DirectionTag.CLOCKWISE)
    )
    assert align([A, F], direction).alignment == ((0, 0), (1, 2))
    match = align([A, F, D], direction)
    assert match.alignment == ((0, 0), (1, 2), (2, 4))



def _longest_common_subsequence(xs, ys) -> int:
    prev = [0] * (len(ys) + 1)
    for x in xs:
        row = [0]
        for j, y in enumerate(ys):
            row.append(prev[j] + 1 if x == y else max(prev[j + 1], row[j]))
        prev = row
    return prev[-1]


@pytest.mark.parametrize(
    "trip_stops",
    [
        [A, B, F, C, D, F, A, B],
        [F, F, F],
        [D, C, B, A, B, C, D],
        [E, A, E, B, E, C],
        [A, B, F, C, D, F] * 3,
    ],
)
def test_alignment_score_is_longest_ordered_match(trip_stops) -> None:
    reference = [A, B, F, C, D, F, E]
    direction = (
        RouteTripSpecBuilder("6")
        .add_direction(DirectionTag.CLOCKWISE, "Loop", reference)
        .add_direction(DirectionTag.COUNTERCLOCKWISE, "Back", [E])
        .build()
        .direction(DirectionTag.CLOCKWISE)
    )
    match = align(trip_stops, direction)

    assert match.score == _longest_common_subsequence(trip_stops, reference)
    assert len(match.alignment) == match.score
    assert all(trip_stops[i] == reference[j] for i, j in match.alignment)
    assert [j for _, j in match.alignment] == sorted({j for _, j in match.alignment})


def test_empty_direction_scores_zero() -> None:
    direction = (
        RouteTripSpecBuilder("99")
        .add_direction(DirectionTag.CLOCKWISE, "Loop", [])
        .add_direction(DirectionTag.COUNTERCLOCKWISE, "Back", [A])
        .build()
        .direction(DirectionTag.CLOCKWISE)
    )
    match = align([A, B], direction)
    assert match.score == 0
    assert match.alignment == ()

def test_classification_is_deterministic(spec) -> None:
    trip = make_trip([A, B, D])
    first = classify_trip(trip, spec)
    second = classify_trip(trip, spec)
    assert first == second


def test_classify_route_trips_buckets_every_direction(spec) -> None:
    trips = [make_trip([A, B, C, D], "n1"), make_trip([D, E, A], "s1"), make_trip([A, C], "n2")]

    buckets = classify_route_trips(trips, spec)

    assert [c.trip.trip_id for c in buckets[DirectionTag.NORTH]] == ["n1", "n2"]
    assert [c.trip.trip_id for c in buckets[DirectionTag.SOUTH]] == ["s1"]
