"""Declarative agency configuration loaded from JSON.

The JSON file holds everything that differs between agencies: which
routes/services to keep, route colors and long-name merges, headsign rules
for routes that are not split, and the route trip specifications for routes
that are. Stop references stay as stop codes until a StopIndex resolves them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from split_tools.trip_segmentation.errors import ConfigError
from split_tools.trip_segmentation.route_trip_spec import DirectionTag

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config" / "comox_valley_transit.json"

KNOWN_KEYS = frozenset(
    {
        "agency_name",
        "include_agency_id",
        "include_only_service_id_contains",
        "agency_color",
        "route_colors",
        "route_long_name_merges",
        "headsign_rules",
        "headsign_merges",
        "route_trip_specs",
        "route_trip_specs_next",
    }
)


@dataclass(frozen=True)
class HeadsignRule:
    """Maps feed headsigns of one route/direction flag to a direction tag."""

    route_id: str
    direction_id: int
    headsigns: Tuple[str, ...]
    tag: DirectionTag
    gtfs_route_id: Optional[str] = None
    # Fixed label for feed headsigns that carry no usable text.
    label: Optional[str] = None

    def matches(
        self, route_id: str, gtfs_route_id: str, direction_id: Optional[int], headsign: str
    ) -> bool:
        if route_id != self.route_id or direction_id != self.direction_id:
            return False
        if self.gtfs_route_id is not None and gtfs_route_id != self.gtfs_route_id:
            return False
        return headsign.strip().lower() in {h.lower() for h in self.headsigns}


@dataclass(frozen=True)
class HeadsignMergeRule:
    route_id: str
    values: Tuple[str, ...]
    merged: str


@dataclass(frozen=True)
class AgencyConfig:
    agency_name: str = ""
    include_agency_id: Optional[str] = None
    include_only_service_id_contains: Optional[str] = None
    agency_color: str = ""
    route_colors: Dict[str, str] = field(default_factory=dict)
    route_long_name_merges: Dict[str, str] = field(default_factory=dict)
    headsign_rules: Tuple[HeadsignRule, ...] = ()
    headsign_merges: Tuple[HeadsignMergeRule, ...] = ()
    route_trip_specs: Dict[str, Mapping[str, Any]] = field(default_factory=dict)
    route_trip_specs_next: Dict[str, Mapping[str, Any]] = field(default_factory=dict)


def _parse_headsign_rule(raw: Mapping[str, Any]) -> HeadsignRule:
    gtfs_route_id = raw.get("gtfs_route_id")
    label = raw.get("label")
    return HeadsignRule(
        route_id=str(raw["route_id"]),
        direction_id=int(raw["direction_id"]),
        headsigns=tuple(str(h) for h in raw["headsigns"]),
        tag=DirectionTag(raw["tag"]),
        gtfs_route_id=None if gtfs_route_id is None else str(gtfs_route_id),
        label=None if label is None else str(label),
    )


def _parse_merge_rule(raw: Mapping[str, Any]) -> HeadsignMergeRule:
    return HeadsignMergeRule(
        route_id=str(raw["route_id"]),
        values=tuple(str(v) for v in raw["values"]),
        merged=str(raw["merged"]),
    )


def parse_agency_config(raw: Mapping[str, Any]) -> AgencyConfig:
    """Validate and convert a decoded JSON mapping.

    Raises:
        ConfigError: Unknown keys or a malformed rule.
    """
    unknown = set(raw).difference(KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown agency config key(s): {', '.join(sorted(unknown))}")

    try:
        headsign_rules = tuple(_parse_headsign_rule(r) for r in raw.get("headsign_rules", []))
        headsign_merges = tuple(_parse_merge_rule(r) for r in raw.get("headsign_merges", []))
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Malformed headsign rule: {exc}") from exc

    return AgencyConfig(
        agency_name=str(raw.get("agency_name", "")),
        include_agency_id=raw.get("include_agency_id"),
        include_only_service_id_contains=raw.get("include_only_service_id_contains"),
        agency_color=str(raw.get("agency_color", "")),
        route_colors={str(k): str(v) for k, v in raw.get("route_colors", {}).items()},
        route_long_name_merges={
            str(k): str(v) for k, v in raw.get("route_long_name_merges", {}).items()
        },
        headsign_rules=headsign_rules,
        headsign_merges=headsign_merges,
        route_trip_specs={str(k): v for k, v in raw.get("route_trip_specs", {}).items()},
        route_trip_specs_next={
            str(k): v for k, v in raw.get("route_trip_specs_next", {}).items()
        },
    )


def load_agency_config(path: Path = DEFAULT_CONFIG_PATH) -> AgencyConfig:
    """Read and parse an agency JSON file."""
    try:
        with Path(path).open(encoding="utf-8") as fh:
            raw = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc

    cfg = parse_agency_config(raw)
    LOGGER.info(
        "Loaded agency config %s: %d split route(s), %d headsign rule(s).",
        path,
        len(cfg.route_trip_specs),
        len(cfg.headsign_rules),
    )
    return cfg
