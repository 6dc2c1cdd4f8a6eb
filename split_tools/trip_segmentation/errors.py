"""Typed errors raised while splitting routes into directional trips.

Every error here is a deterministic data or configuration problem. None of
them is retried; the caller decides whether to abort the run, drop the
offending route, or collect the errors into a single report.
"""

from __future__ import annotations

from typing import Iterable, Sequence, Tuple


class RouteSplitError(Exception):
    """Base class for all route splitting errors."""

    route_id: str | None = None


class StopIndexError(RouteSplitError):
    """The stop table cannot be indexed (bad or conflicting stop codes)."""


class UnknownStopError(RouteSplitError, KeyError):
    """A stop code was never registered in the stop index."""

    def __init__(self, code: str, context: str = "") -> None:
        self.code = code
        self.context = context
        msg = f"Unknown stop code '{code}'"
        if context:
            msg += f" ({context})"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0])


class ConfigError(RouteSplitError):
    """Malformed agency or route trip specification configuration."""


class IncompleteRouteTripSpecError(ConfigError):
    """Trips of a split route visit stops no direction reference knows."""

    def __init__(self, route_id: str, stop_codes: Iterable[str]) -> None:
        self.route_id = route_id
        self.stop_codes = sorted(stop_codes)
        super().__init__(
            f"Route {route_id}: stops missing from every direction reference: "
            f"{', '.join(self.stop_codes)}"
        )


class AmbiguousTripError(RouteSplitError):
    """A trip cannot be assigned to exactly one direction."""

    def __init__(
        self,
        route_id: str,
        trip_id: str,
        candidates: Sequence[Tuple[str, int]],
        reason: str,
    ) -> None:
        self.route_id = route_id
        self.trip_id = trip_id
        self.candidates = list(candidates)
        scores = ", ".join(f"{tag}={score}" for tag, score in self.candidates)
        super().__init__(f"Route {route_id} trip {trip_id}: {reason} (scores: {scores})")


class UnexpectedRouteError(RouteSplitError):
    """A route short name cannot be turned into a route id."""


class UnregisteredRouteColorError(RouteSplitError):
    """A route has no feed color and no configured color."""


class UnexpectedRouteMergeError(RouteSplitError):
    """Two routes merged into one id have no configured long name."""


class UnexpectedHeadsignError(RouteSplitError):
    """A trip headsign matches no configured headsign rule."""


class UnexpectedHeadsignMergeError(RouteSplitError):
    """Two trip headsigns of one direction have no configured merge."""
