"""Route trip specifications: directional stop templates for split routes.

A route trip specification (RTS) describes a route whose GTFS trips conflate
two or more logical directions. Each direction has a rider-facing label and
an ordered reference list of stops describing the expected visiting order.
Reference entries may carry a marker from the legacy annotation vocabulary:

    ==  anchor: a mandatory ordered match point
    !=  divergent: stop differs from the opposite direction
    ++  bridging: optional stop a trip may skip
    <>  alternate branch stop

Only anchors change classification (see ``trip_classifier``); the other
markers are kept for reporting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from split_tools.trip_segmentation.errors import ConfigError, UnknownStopError
from split_tools.trip_segmentation.stop_index import StopIndex

LOGGER = logging.getLogger(__name__)


class DirectionTag(str, Enum):
    """Direction tags a split route can use for its sub-trips."""

    NORTH = "NORTH"
    SOUTH = "SOUTH"
    EAST = "EAST"
    WEST = "WEST"
    CLOCKWISE = "CLOCKWISE"
    COUNTERCLOCKWISE = "COUNTERCLOCKWISE"
    CLOCKWISE_0 = "CLOCKWISE_0"
    CLOCKWISE_1 = "CLOCKWISE_1"
    COUNTERCLOCKWISE_0 = "COUNTERCLOCKWISE_0"
    COUNTERCLOCKWISE_1 = "COUNTERCLOCKWISE_1"
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"
    DIRECTION_0 = "DIRECTION_0"
    DIRECTION_1 = "DIRECTION_1"


class StopMarker(str, Enum):
    PLAIN = ""
    ANCHOR = "=="
    DIVERGENT = "!="
    BRIDGING = "++"
    ALTERNATE = "<>"


@dataclass(frozen=True)
class ReferenceEntry:
    stop_id: int
    marker: StopMarker = StopMarker.PLAIN

    @property
    def is_anchor(self) -> bool:
        return self.marker is StopMarker.ANCHOR

    @property
    def is_optional(self) -> bool:
        return self.marker in (StopMarker.BRIDGING, StopMarker.ALTERNATE)


@dataclass(frozen=True)
class DirectionReference:
    """One logical direction of a split route."""

    tag: DirectionTag
    label: str
    entries: Tuple[ReferenceEntry, ...]

    @property
    def stop_ids(self) -> Tuple[int, ...]:
        return tuple(entry.stop_id for entry in self.entries)

    def positions_of(self, stop_id: int) -> List[int]:
        """All reference positions holding *stop_id*, earliest first."""
        return [pos for pos, entry in enumerate(self.entries) if entry.stop_id == stop_id]


@dataclass(frozen=True)
class RouteTripSpec:
    """The directions of one split route, in declaration order."""

    route_id: str
    directions: Tuple[DirectionReference, ...]
    _by_tag: Dict[DirectionTag, DirectionReference] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if len(self.directions) < 2:
            raise ConfigError(f"Route {self.route_id}: a split route needs 2+ directions.")
        by_tag: Dict[DirectionTag, DirectionReference] = {}
        labels: Set[str] = set()
        for direction in self.directions:
            if direction.tag in by_tag:
                raise ConfigError(
                    f"Route {self.route_id}: duplicate direction {direction.tag.value}."
                )
            if direction.label in labels:
                raise ConfigError(
                    f"Route {self.route_id}: duplicate direction label '{direction.label}'."
                )
            by_tag[direction.tag] = direction
            labels.add(direction.label)
        object.__setattr__(self, "_by_tag", by_tag)

    def direction(self, tag: DirectionTag) -> DirectionReference:
        return self._by_tag[tag]

    def rank(self, tag: DirectionTag) -> int:
        """Declaration order of *tag*, used to order directions in output."""
        return self.directions.index(self._by_tag[tag])

    def all_direction_labels(self) -> List[Tuple[DirectionTag, str]]:
        return [(d.tag, d.label) for d in self.directions]

    def known_stop_ids(self) -> Set[int]:
        return {sid for d in self.directions for sid in d.stop_ids}

    def uncovered_stops(self, stop_ids: Iterable[int]) -> Set[int]:
        """Stops from *stop_ids* that no direction reference lists."""
        return set(stop_ids) - self.known_stop_ids()


class RouteTripSpecBuilder:
    """Fluent builder for one route's specification.

    Example:
        spec = (
            RouteTripSpecBuilder("5")
            .add_direction(DirectionTag.NORTH, "Sports Ctr", [(111486, ""), (110526, "")])
            .add_direction(DirectionTag.SOUTH, "Downtown", [110526, 111486])
            .build()
        )
    """

    def __init__(self, route_id: str) -> None:
        self.route_id = str(route_id)
        self._directions: List[DirectionReference] = []

    def add_direction(
        self,
        tag: DirectionTag,
        label: str,
        entries: Iterable[int | Tuple[int, str] | ReferenceEntry],
    ) -> "RouteTripSpecBuilder":
        parsed: List[ReferenceEntry] = []
        for entry in entries:
            if isinstance(entry, ReferenceEntry):
                parsed.append(entry)
            elif isinstance(entry, tuple):
                stop_id, marker = entry
                parsed.append(ReferenceEntry(int(stop_id), _parse_marker(marker, self.route_id)))
            else:
                parsed.append(ReferenceEntry(int(entry)))
        self._directions.append(DirectionReference(DirectionTag(tag), str(label), tuple(parsed)))
        return self

    def build(self) -> RouteTripSpec:
        return RouteTripSpec(self.route_id, tuple(self._directions))


def _parse_marker(value: Optional[str], route_id: str) -> StopMarker:
    try:
        return StopMarker((value or "").strip())
    except ValueError as exc:
        raise ConfigError(f"Route {route_id}: unknown stop marker '{value}'.") from exc


def spec_from_config(
    route_id: str, cfg: Mapping[str, Any], stop_index: StopIndex
) -> RouteTripSpec:
    """Build one route's specification from its declarative configuration.

    Expected shape::

        {"directions": [
            {"tag": "NORTH", "label": "Sports Ctr",
             "stops": [{"code": "111486"}, {"code": "111296", "marker": "!="}]},
            ...
        ]}

    Stop codes are resolved through *stop_index*; an unknown code raises
    ``UnknownStopError``.
    """
    directions = cfg.get("directions")
    if not isinstance(directions, list):
        raise ConfigError(f"Route {route_id}: 'directions' must be a list.")

    builder = RouteTripSpecBuilder(route_id)
    for direction_cfg in directions:
        try:
            tag = DirectionTag(direction_cfg["tag"])
            label = direction_cfg["label"]
            stops = direction_cfg.get("stops", [])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"Route {route_id}: malformed direction {direction_cfg!r}.") from exc

        entries: List[Tuple[int, str]] = []
        for stop_cfg in stops:
            code = str(stop_cfg["code"]) if isinstance(stop_cfg, Mapping) else str(stop_cfg)
            marker = stop_cfg.get("marker", "") if isinstance(stop_cfg, Mapping) else ""
            try:
                stop_id = stop_index.lookup(code)
            except UnknownStopError as exc:
                raise UnknownStopError(code, context=f"route {route_id} {tag.value}") from exc
            entries.append((stop_id, marker))
        builder.add_direction(tag, label, entries)
    return builder.build()


def merged_route_configs(
    routes_cfg: Mapping[str, Mapping[str, Any]],
    overlay: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> Dict[str, Mapping[str, Any]]:
    """Per-route configurations with *overlay* entries replacing whole routes."""
    merged: Dict[str, Mapping[str, Any]] = {str(k): v for k, v in routes_cfg.items()}
    for route_id, cfg in (overlay or {}).items():
        LOGGER.info("Route %s: using overlay trip specification.", route_id)
        merged[str(route_id)] = cfg
    return merged


class RouteTripSpecTable:
    """Route id -> specification. Routes absent here are not split."""

    def __init__(self, specs: Mapping[str, RouteTripSpec]) -> None:
        self._specs: Dict[str, RouteTripSpec] = dict(specs)

    @classmethod
    def from_config(
        cls,
        routes_cfg: Mapping[str, Mapping[str, Any]],
        stop_index: StopIndex,
        overlay: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> "RouteTripSpecTable":
        """Build the table; *overlay* entries replace whole routes."""
        specs = {
            route_id: spec_from_config(route_id, cfg, stop_index)
            for route_id, cfg in merged_route_configs(routes_cfg, overlay).items()
        }
        LOGGER.info("Loaded trip specifications for %d split route(s).", len(specs))
        return cls(specs)

    def __contains__(self, route_id: object) -> bool:
        return str(route_id) in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def route_ids(self) -> List[str]:
        return list(self._specs)

    def get(self, route_id: str) -> Optional[RouteTripSpec]:
        return self._specs.get(str(route_id))

    def directions_of(self, route_id: str) -> Set[DirectionReference]:
        """Direction references of *route_id*; empty when the route is not split."""
        spec = self._specs.get(str(route_id))
        return set(spec.directions) if spec is not None else set()

    def all_direction_labels(self, route_id: str) -> List[Tuple[DirectionTag, str]]:
        spec = self._specs.get(str(route_id))
        return spec.all_direction_labels() if spec is not None else []
