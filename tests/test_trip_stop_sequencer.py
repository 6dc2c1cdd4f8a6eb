from split_tools.trip_segmentation.route_trip_spec import DirectionTag, RouteTripSpecBuilder
from split_tools.trip_segmentation.trip_classifier import classify_trip
from split_tools.trip_segmentation.trip_stop_sequencer import sequence_trip
from split_tools.trip_segmentation.trips import RawTrip, RawVisit

A, B, C, D, X, Z = 1, 2, 3, 4, 9, 77


def _trip(stops, seqs=None) -> RawTrip:
    seqs = seqs or range(1, len(stops) + 1)
    visits = tuple(RawVisit(s, str(s), q) for s, q in zip(stops, seqs))
    return RawTrip("6", "loop1", 0, "", visits)


def _loop_spec():
    return (
        RouteTripSpecBuilder("6")
        .add_direction(DirectionTag.CLOCKWISE, "Loop", [A, B, X, C, D, X])
        .add_direction(DirectionTag.COUNTERCLOCKWISE, "Back", [D, C, B, A])
        .build()
    )


def test_repeated_stop_claims_positions_monotonically() -> None:
    visits = sequence_trip(classify_trip(_trip([A, X, C, X]), _loop_spec()))

    assert [v.reference_position for v in visits] == [0, 2, 3, 5]
    assert [v.ordinal for v in visits] == [1, 2, 3, 4]
    assert all(v.direction_tag is DirectionTag.CLOCKWISE for v in visits)


def test_unresolved_visits_keep_last_resolved_position() -> None:
    visits = sequence_trip(classify_trip(_trip([Z, A, B, Z, X]), _loop_spec()))

    assert [v.reference_position for v in visits] == [None, 0, 1, None, 2]
    assert [v.anchor_position for v in visits] == [-1, 0, 1, 1, 2]


def test_feed_order_and_sequence_numbers_are_kept() -> None:
    visits = sequence_trip(classify_trip(_trip([A, B, C], seqs=[5, 10, 40]), _loop_spec()))

    assert [v.stop_id for v in visits] == [A, B, C]
    assert [v.raw_sequence for v in visits] == [5, 10, 40]
    assert [v.ordinal for v in visits] == [1, 2, 3]
    assert {v.trip_id for v in visits} == {"loop1"}
    assert {v.route_id for v in visits} == {"6"}
