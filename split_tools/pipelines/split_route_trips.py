"""Split the agency's routes into directional trips and export the result.

The script reads a GTFS feed, keeps the agency's routes and the services of
the current (or next) schedule, then:

  - For routes with a route trip specification, classifies every trip into
    one of the route's directions by stop-sequence alignment, resolves each
    stop visit to a reference position and builds one canonical stop order
    per direction.
  - For the other routes, assigns a direction tag and label from the
    configured headsign rules, merging labels within a direction.

Any classification or configuration problem is raised as a typed error.
ERROR_POLICY decides whether the run stops at the first one, drops the
offending route, or collects every error for one report.

Typical usage:
    Adjust paths and options in the CONFIGURATION section, then run
    ``python -m split_tools.pipelines.split_route_trips``.

Outputs:
    - sub_trips.csv, trip_directions.csv, stop_visits.csv, stop_order.csv
    - route_directions.xlsx (one sheet per split route direction)
"""

from __future__ import annotations

import logging
import sys
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import pandas as pd
from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from split_tools.agency_rules.agency_config import (
    DEFAULT_CONFIG_PATH,
    AgencyConfig,
    load_agency_config,
)
from split_tools.agency_rules.feed_filters import (
    extract_useful_service_ids,
    filter_routes,
    filter_trips,
    is_excluding_all,
)
from split_tools.agency_rules.headsign_rules import assign_headsign, merge_headsigns
from split_tools.agency_rules.label_cleaning import clean_stop_name
from split_tools.agency_rules.route_naming import (
    build_route_table,
    gtfs_to_agency_route_ids,
    route_id_from_short_name,
)
from split_tools.trip_segmentation.early_late_comparator import canonical_stop_order
from split_tools.trip_segmentation.errors import (
    IncompleteRouteTripSpecError,
    RouteSplitError,
    UnknownStopError,
)
from split_tools.trip_segmentation.route_trip_spec import (
    DirectionTag,
    RouteTripSpec,
    RouteTripSpecTable,
    merged_route_configs,
    spec_from_config,
)
from split_tools.trip_segmentation.stop_index import StopIndex
from split_tools.trip_segmentation.trip_classifier import classify_trip
from split_tools.trip_segmentation.trip_stop_sequencer import sequence_trip
from split_tools.trip_segmentation.trips import OrdinalStopVisit, RawTrip
from split_tools.utils.gtfs_helpers import build_raw_trips, load_gtfs_data
from split_tools.utils.logging_helper import setup_logging

# =============================================================================
# CONFIGURATION
# =============================================================================

GTFS_FOLDER = Path(r"/path/to/your/gtfs_folder")
OUTPUT_DIR = Path(r"/path/to/your/output_folder")

# Agency JSON (route colors, headsign rules, route trip specifications).
AGENCY_CONFIG_PATH = DEFAULT_CONFIG_PATH

# Use the services of the next schedule and the "next" trip specification
# overlay instead of the current ones.
NEXT_SCHEDULE = False

# Reference day for "current" services. None means today.
AS_OF_DATE: Optional[date] = None

# "abort", "skip_route" or "collect".
ERROR_POLICY = "abort"

# If True, a split route whose trips visit stops missing from every direction
# reference is a configuration error instead of a warning.
STRICT_COVERAGE = False

LOG_FILE: Optional[str] = None

LOGGER = logging.getLogger(__name__)

# =============================================================================
# TYPES
# =============================================================================


class ErrorPolicy(str, Enum):
    ABORT = "abort"
    SKIP_ROUTE = "skip_route"
    COLLECT = "collect"


@dataclass
class RunContext:
    """Everything one run needs; nothing is kept at module level."""

    stop_index: StopIndex
    rts_table: RouteTripSpecTable
    agency: AgencyConfig
    service_ids: Optional[Set[str]] = None
    route_short_names: Dict[str, str] = field(default_factory=dict)
    error_policy: ErrorPolicy = ErrorPolicy.ABORT
    strict_coverage: bool = False
    # Route-level errors raised while preparing the run, before run_split().
    setup_errors: List[RouteSplitError] = field(default_factory=list)


@dataclass
class RouteOutput:
    sub_trips: List[Dict[str, Any]] = field(default_factory=list)
    trip_directions: List[Dict[str, Any]] = field(default_factory=list)
    visits: List[OrdinalStopVisit] = field(default_factory=list)
    stop_order: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class SplitResult:
    sub_trips: pd.DataFrame
    trip_directions: pd.DataFrame
    stop_visits: pd.DataFrame
    stop_order: pd.DataFrame
    errors: List[RouteSplitError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


SUB_TRIP_COLUMNS = ["route_id", "direction_tag", "label", "split"]
TRIP_DIRECTION_COLUMNS = ["route_id", "trip_id", "direction_tag", "label", "score"]
STOP_VISIT_COLUMNS = [
    "route_id",
    "trip_id",
    "direction_tag",
    "ordinal",
    "stop_code",
    "stop_id",
    "raw_sequence",
    "reference_position",
]
STOP_ORDER_COLUMNS = [
    "route_id",
    "direction_tag",
    "label",
    "position",
    "stop_code",
    "stop_id",
    "stop_name",
]

# =============================================================================
# FEED PREPARATION
# =============================================================================


def _setup_failure(
    exc: RouteSplitError, route_id: str, policy: ErrorPolicy, errors: List[RouteSplitError]
) -> None:
    """Record a route-level setup error, or re-raise it under ABORT."""
    if exc.route_id is None:
        exc.route_id = route_id
    if policy is ErrorPolicy.ABORT:
        raise exc
    errors.append(exc)
    LOGGER.warning("Route %s dropped: %s", route_id, exc)


def build_route_table_per_route(
    routes_df: pd.DataFrame,
    agency: AgencyConfig,
    policy: ErrorPolicy,
    errors: List[RouteSplitError],
) -> pd.DataFrame:
    """build_route_table() one agency route at a time.

    A route whose short name, color or long-name merge is rejected is left out
    of the table (so its trips are dropped) and recorded in *errors*.
    """
    groups: Dict[str, List[int]] = defaultdict(list)
    for pos, route in enumerate(routes_df.to_dict("records")):
        try:
            route_id = route_id_from_short_name(route.get("route_short_name", ""))
        except RouteSplitError as exc:
            _setup_failure(exc, str(route.get("route_id")), policy, errors)
            continue
        groups[route_id].append(pos)

    tables: List[pd.DataFrame] = []
    for route_id, positions in groups.items():
        try:
            tables.append(
                build_route_table(
                    routes_df.iloc[positions], agency.route_colors, agency.route_long_name_merges
                )
            )
        except RouteSplitError as exc:
            _setup_failure(exc, route_id, policy, errors)
    if not tables:
        return build_route_table(
            routes_df.iloc[0:0], agency.route_colors, agency.route_long_name_merges
        )
    return pd.concat(tables, ignore_index=True)


def build_rts_table_per_route(
    agency: AgencyConfig,
    stop_index: StopIndex,
    next_schedule: bool,
    policy: ErrorPolicy,
    errors: List[RouteSplitError],
) -> Tuple[RouteTripSpecTable, Set[str]]:
    """Route trip specifications, one route at a time.

    Returns:
        The table of valid specifications and the ids of rejected routes.

    Raises:
        UnknownStopError: Whatever the policy; a stop code in the
            configuration that the feed does not know is fatal.
    """
    routes_cfg = merged_route_configs(
        agency.route_trip_specs, agency.route_trip_specs_next if next_schedule else None
    )
    specs: Dict[str, RouteTripSpec] = {}
    failed: Set[str] = set()
    for route_id, cfg in routes_cfg.items():
        try:
            specs[route_id] = spec_from_config(route_id, cfg, stop_index)
        except UnknownStopError:
            raise
        except RouteSplitError as exc:
            _setup_failure(exc, route_id, policy, errors)
            failed.add(route_id)
    LOGGER.info("Loaded trip specifications for %d split route(s).", len(specs))
    return RouteTripSpecTable(specs), failed


def prepare_run(
    gtfs_data: Dict[str, pd.DataFrame],
    agency: AgencyConfig,
    as_of: date,
    next_schedule: bool = False,
    error_policy: ErrorPolicy = ErrorPolicy.ABORT,
    strict_coverage: bool = False,
) -> Tuple[RunContext, List[RawTrip]]:
    """Filter the feed and build the run context and the raw trips.

    Route-level setup errors (short name, color, long-name merge, malformed
    trip specification) follow *error_policy*: ABORT raises, the other
    policies drop the route and keep the error in ``ctx.setup_errors``.

    Args:
        gtfs_data: Output of load_gtfs_data(); needs stops, routes, trips and
            stop_times; calendar and calendar_dates are optional.
        agency: Parsed agency configuration.
        as_of: Reference day for service selection.
        next_schedule: Select the next schedule's services and apply the
            "next" trip specification overlay.
        error_policy: Applied here to setup errors, and stored on the context
            for run_split().
        strict_coverage: Stored on the context for run_split().

    Raises:
        UnknownStopError: A configured stop code is missing from the feed.
    """
    policy = ErrorPolicy(error_policy)
    setup_errors: List[RouteSplitError] = []
    stop_index = StopIndex.from_stops_df(gtfs_data["stops"])

    calendar_df = gtfs_data.get("calendar")
    calendar_dates_df = gtfs_data.get("calendar_dates")
    service_ids: Optional[Set[str]] = None
    if calendar_df is not None or calendar_dates_df is not None:
        service_ids = extract_useful_service_ids(
            calendar_df, calendar_dates_df, as_of, next_schedule=next_schedule
        )

    routes_df = filter_routes(gtfs_data["routes"], agency.include_agency_id)
    route_table = build_route_table_per_route(routes_df, agency, policy, setup_errors)
    route_map = gtfs_to_agency_route_ids(route_table)

    trips_df = gtfs_data["trips"]
    trips_df = trips_df[trips_df["route_id"].astype(str).isin(list(route_map))]
    if is_excluding_all(service_ids):
        LOGGER.warning("No useful service ids; every trip is excluded.")
        trips_df = trips_df.iloc[0:0]
    elif service_ids is not None or agency.include_only_service_id_contains:
        trips_df = filter_trips(trips_df, service_ids, agency.include_only_service_id_contains)

    raw_trips = build_raw_trips(trips_df, gtfs_data["stop_times"], stop_index, route_map)

    rts_table, failed_routes = build_rts_table_per_route(
        agency, stop_index, next_schedule, policy, setup_errors
    )
    if failed_routes:
        raw_trips = [trip for trip in raw_trips if trip.route_id not in failed_routes]

    ctx = RunContext(
        stop_index=stop_index,
        rts_table=rts_table,
        agency=agency,
        service_ids=service_ids,
        route_short_names=dict(zip(route_table["route_id"], route_table["route_short_name"])),
        error_policy=policy,
        strict_coverage=strict_coverage,
        setup_errors=setup_errors,
    )
    return ctx, raw_trips


# =============================================================================
# ROUTE PROCESSING
# =============================================================================


def check_coverage(ctx: RunContext, spec: RouteTripSpec, trips: List[RawTrip]) -> None:
    """Warn about, or reject, trip stops no direction reference lists."""
    uncovered = spec.uncovered_stops(sid for trip in trips for sid in trip.stop_ids)
    if not uncovered:
        return
    codes = [ctx.stop_index.code_for_identifier(sid) for sid in sorted(uncovered)]
    if ctx.strict_coverage:
        raise IncompleteRouteTripSpecError(spec.route_id, codes)
    LOGGER.warning(
        "Route %s: %d stop(s) not in any direction reference; they stay unresolved.",
        spec.route_id,
        len(codes),
    )
    LOGGER.debug("Route %s unresolved stops: %s", spec.route_id, ", ".join(codes))


def process_split_route(
    ctx: RunContext, spec: RouteTripSpec, trips: List[RawTrip], errors: List[RouteSplitError]
) -> RouteOutput:
    """Classify and sequence every trip of a split route.

    Under the COLLECT policy, trip errors are appended to *errors* and the
    remaining trips are still classified so the report is complete; any
    other policy re-raises the first one.
    """
    out = RouteOutput()
    for tag, label in spec.all_direction_labels():
        out.sub_trips.append(
            {"route_id": spec.route_id, "direction_tag": tag.value, "label": label, "split": True}
        )

    check_coverage(ctx, spec, trips)

    failed = False
    for trip in trips:
        try:
            classified = classify_trip(trip, spec)
        except RouteSplitError as exc:
            if ctx.error_policy is not ErrorPolicy.COLLECT:
                raise
            errors.append(exc)
            failed = True
            continue
        out.trip_directions.append(
            {
                "route_id": spec.route_id,
                "trip_id": trip.trip_id,
                "direction_tag": classified.direction.tag.value,
                "label": classified.direction.label,
                "score": classified.score,
            }
        )
        out.visits.extend(sequence_trip(classified))

    if failed:
        return RouteOutput()

    for tag, stop_ids in canonical_stop_order(out.visits, spec).items():
        label = spec.direction(tag).label
        for position, stop_id in enumerate(stop_ids, 1):
            out.stop_order.append(
                {
                    "route_id": spec.route_id,
                    "direction_tag": tag.value,
                    "label": label,
                    "position": position,
                    "stop_code": ctx.stop_index.code_for_identifier(stop_id),
                    "stop_id": stop_id,
                    "stop_name": clean_stop_name(ctx.stop_index.name_for_identifier(stop_id)),
                }
            )
    return out


def process_headsign_route(route_id: str, trips: List[RawTrip], ctx: RunContext) -> RouteOutput:
    """Label a non-split route's trips from the configured headsign rules."""
    out = RouteOutput()
    labels: Dict[DirectionTag, str] = {}
    assigned: List[Tuple[RawTrip, DirectionTag]] = []
    for trip in trips:
        tag, label = assign_headsign(trip, ctx.agency.headsign_rules)
        if tag in labels:
            labels[tag] = merge_headsigns(route_id, labels[tag], label, ctx.agency.headsign_merges)
        else:
            labels[tag] = label
        assigned.append((trip, tag))

    for tag, label in labels.items():
        out.sub_trips.append(
            {"route_id": route_id, "direction_tag": tag.value, "label": label, "split": False}
        )
    for trip, tag in assigned:
        out.trip_directions.append(
            {
                "route_id": route_id,
                "trip_id": trip.trip_id,
                "direction_tag": tag.value,
                "label": labels[tag],
                "score": None,
            }
        )
    return out


def _visits_frame(visits: List[OrdinalStopVisit]) -> pd.DataFrame:
    rows = [
        {
            "route_id": v.route_id,
            "trip_id": v.trip_id,
            "direction_tag": v.direction_tag.value,
            "ordinal": v.ordinal,
            "stop_code": v.stop_code,
            "stop_id": v.stop_id,
            "raw_sequence": v.raw_sequence,
            "reference_position": v.reference_position,
        }
        for v in visits
    ]
    df = pd.DataFrame(rows, columns=STOP_VISIT_COLUMNS)
    df["reference_position"] = df["reference_position"].astype("Int64")
    return df


def run_split(ctx: RunContext, raw_trips: List[RawTrip]) -> SplitResult:
    """Process every route and gather the outputs.

    Raises:
        RouteSplitError: First error, under the ABORT policy.
    """
    trips_by_route: Dict[str, List[RawTrip]] = defaultdict(list)
    for trip in raw_trips:
        trips_by_route[trip.route_id].append(trip)

    errors: List[RouteSplitError] = list(ctx.setup_errors)
    outputs: List[RouteOutput] = []
    for route_id in sorted(trips_by_route, key=lambda r: (len(r), r)):
        trips = trips_by_route[route_id]
        spec = ctx.rts_table.get(route_id)
        n_errors = len(errors)
        try:
            if spec is not None:
                output = process_split_route(ctx, spec, trips, errors)
            else:
                output = process_headsign_route(route_id, trips, ctx)
        except RouteSplitError as exc:
            if exc.route_id is None:
                exc.route_id = route_id
            if ctx.error_policy is ErrorPolicy.ABORT:
                raise
            errors.append(exc)
            LOGGER.warning("Route %s dropped: %s", route_id, exc)
            continue
        if len(errors) > n_errors:
            LOGGER.warning("Route %s dropped: %d trip error(s).", route_id, len(errors) - n_errors)
            continue
        outputs.append(output)
        LOGGER.info("Route %s: %d trip(s) processed.", route_id, len(trips))

    result = SplitResult(
        sub_trips=pd.DataFrame(
            [row for o in outputs for row in o.sub_trips], columns=SUB_TRIP_COLUMNS
        ),
        trip_directions=pd.DataFrame(
            [row for o in outputs for row in o.trip_directions], columns=TRIP_DIRECTION_COLUMNS
        ),
        stop_visits=_visits_frame([v for o in outputs for v in o.visits]),
        stop_order=pd.DataFrame(
            [row for o in outputs for row in o.stop_order], columns=STOP_ORDER_COLUMNS
        ),
        errors=errors,
    )
    LOGGER.info(
        "Split %d route(s), %d trip(s); %d error(s).",
        len(outputs),
        len(result.trip_directions),
        len(errors),
    )
    return result


# =============================================================================
# EXPORT
# =============================================================================


def create_workbook() -> Workbook:
    """Create a new openpyxl Workbook with the default sheet removed."""
    workbook = Workbook()
    if workbook.active:
        workbook.remove(workbook.active)
    return workbook


def fill_worksheet_for_direction(
    workbook: Workbook,
    sheet_title: str,
    label: str,
    stop_order_df: pd.DataFrame,
    trip_count: int,
) -> None:
    """Add one sheet listing a direction's canonical stop order."""
    worksheet = workbook.create_sheet(title=sheet_title[:31])
    worksheet.append([f"{label} ({trip_count} trips)"])
    header = ["Position", "Stop Code", "Stop Name"]
    worksheet.append(header)
    for row in stop_order_df.itertuples(index=False):
        worksheet.append([row.position, row.stop_code, row.stop_name])

    for col_index, title in enumerate(header, 1):
        max_len = len(title)
        for row_idx in range(3, worksheet.max_row + 1):
            cell_value = worksheet.cell(row=row_idx, column=col_index).value
            if cell_value is not None:
                max_len = max(max_len, len(str(cell_value)))
        adjusted_width = max(12, min(max_len + 2, 50))
        worksheet.column_dimensions[get_column_letter(col_index)].width = adjusted_width


def export_results(
    result: SplitResult, output_dir: Path, route_short_names: Optional[Dict[str, str]] = None
) -> None:
    """Write the result frames as CSV and the stop orders as one workbook."""
    output_dir.mkdir(parents=True, exist_ok=True)
    for name in ("sub_trips", "trip_directions", "stop_visits", "stop_order"):
        path = output_dir / f"{name}.csv"
        getattr(result, name).to_csv(path, index=False)
        LOGGER.info("Wrote %s (%d rows).", path, len(getattr(result, name)))

    if result.stop_order.empty:
        LOGGER.info("No split routes to export to Excel.")
        return

    trip_counts = result.trip_directions.groupby(["route_id", "direction_tag"]).size()
    workbook = create_workbook()
    groups = result.stop_order.groupby(["route_id", "direction_tag"], sort=False)
    for (route_id, tag), group in groups:
        short_name = (route_short_names or {}).get(route_id, route_id)
        fill_worksheet_for_direction(
            workbook,
            f"R{short_name}_{tag}",
            str(group["label"].iloc[0]),
            group,
            int(trip_counts.get((route_id, tag), 0)),
        )
    path = output_dir / "route_directions.xlsx"
    workbook.save(path)
    LOGGER.info("Saved workbook: %s", path)


# =============================================================================
# MAIN
# =============================================================================


def main() -> None:
    """Run the split for the configured feed and agency."""
    setup_logging(log_file=LOG_FILE)

    try:
        agency = load_agency_config(AGENCY_CONFIG_PATH)
    except (OSError, RouteSplitError) as exc:
        LOGGER.error("Failed to load agency config: %s", exc)
        sys.exit(1)

    gtfs_files = ["stops.txt", "routes.txt", "trips.txt", "stop_times.txt"]
    for optional in ("calendar.txt", "calendar_dates.txt"):
        if (GTFS_FOLDER / optional).exists():
            gtfs_files.append(optional)

    try:
        gtfs_data = load_gtfs_data(str(GTFS_FOLDER), files=gtfs_files, dtype=str)
    except (OSError, ValueError, RuntimeError) as exc:
        LOGGER.error("Failed to load GTFS files: %s", exc)
        sys.exit(1)

    try:
        ctx, raw_trips = prepare_run(
            gtfs_data,
            agency,
            AS_OF_DATE or date.today(),
            next_schedule=NEXT_SCHEDULE,
            error_policy=ErrorPolicy(ERROR_POLICY),
            strict_coverage=STRICT_COVERAGE,
        )
        result = run_split(ctx, raw_trips)
    except (RouteSplitError, ValueError) as exc:
        LOGGER.error("Aborted: %s", exc)
        sys.exit(1)

    export_results(result, OUTPUT_DIR, ctx.route_short_names)

    if not result.ok:
        LOGGER.error("%d error(s) need a configuration fix:", len(result.errors))
        for exc in result.errors:
            LOGGER.error("  [%s] %s", type(exc).__name__, exc)
        sys.exit(1)

    LOGGER.info("Processing complete.")


if __name__ == "__main__":
    main()
