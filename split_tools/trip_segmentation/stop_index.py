"""Lookup from a stop's public code to its internal integer identifier.

The index is built once from the feed's stops.txt and is read-only
afterwards. Stop codes are the agency's rider-facing numbers (e.g. "111486")
and double as the internal identifier, as the downstream data model expects
integer stop ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Tuple

import pandas as pd

from split_tools.trip_segmentation.errors import StopIndexError, UnknownStopError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopRecord:
    """One registered stop."""

    code: str
    identifier: int
    name: str
    stop_id: str


class StopIndex:
    """Immutable code -> identifier mapping."""

    def __init__(self, records: Iterable[StopRecord]) -> None:
        by_code: Dict[str, StopRecord] = {}
        by_stop_id: Dict[str, str] = {}
        by_identifier: Dict[int, StopRecord] = {}
        for rec in records:
            existing = by_code.get(rec.code)
            if existing is not None and existing.identifier != rec.identifier:
                raise StopIndexError(
                    f"Stop code '{rec.code}' maps to both {existing.identifier} "
                    f"and {rec.identifier}."
                )
            owner = by_identifier.get(rec.identifier)
            if owner is not None and owner.code != rec.code:
                raise StopIndexError(
                    f"Stop codes '{owner.code}' and '{rec.code}' share identifier "
                    f"{rec.identifier}."
                )
            by_code[rec.code] = rec
            by_stop_id[rec.stop_id] = rec.code
            by_identifier[rec.identifier] = rec
        self._by_code: Mapping[str, StopRecord] = MappingProxyType(by_code)
        self._by_stop_id: Mapping[str, str] = MappingProxyType(by_stop_id)
        self._by_identifier: Mapping[int, StopRecord] = MappingProxyType(by_identifier)

    @classmethod
    def from_stops_df(cls, stops_df: pd.DataFrame) -> "StopIndex":
        """Build the index from a stops.txt DataFrame.

        Uses ``stop_code`` as the key when the column exists and is filled,
        ``stop_id`` otherwise.

        Raises:
            StopIndexError: A code is not numeric, is registered twice with
                different identifiers, or shares its identifier with another
                code ("007" and "7").
        """
        if "stop_id" not in stops_df.columns:
            raise StopIndexError("stops.txt is missing the 'stop_id' column.")

        has_code = "stop_code" in stops_df.columns
        records = []
        for row in stops_df.itertuples(index=False):
            stop_id = str(getattr(row, "stop_id")).strip()
            raw_code = getattr(row, "stop_code") if has_code else None
            if raw_code is None or pd.isna(raw_code) or not str(raw_code).strip():
                code = stop_id
            else:
                code = str(raw_code).strip()
            if not code.isdigit():
                raise StopIndexError(f"Stop code '{code}' (stop_id {stop_id}) is not numeric.")
            name = getattr(row, "stop_name", "")
            records.append(
                StopRecord(
                    code=code,
                    identifier=int(code),
                    name="" if name is None or pd.isna(name) else str(name),
                    stop_id=stop_id,
                )
            )

        index = cls(records)
        LOGGER.info("Indexed %d stops.", len(index))
        return index

    def __len__(self) -> int:
        return len(self._by_code)

    def __contains__(self, code: object) -> bool:
        return code in self._by_code

    def lookup(self, code: str) -> int:
        """Return the identifier registered for *code*."""
        rec = self._by_code.get(str(code))
        if rec is None:
            raise UnknownStopError(str(code))
        return rec.identifier

    def name(self, code: str) -> str:
        rec = self._by_code.get(str(code))
        if rec is None:
            raise UnknownStopError(str(code))
        return rec.name

    def name_for_identifier(self, identifier: int) -> str:
        rec = self._by_identifier.get(identifier)
        return rec.name if rec is not None else ""

    def code_for_identifier(self, identifier: int) -> str:
        rec = self._by_identifier.get(identifier)
        if rec is None:
            raise UnknownStopError(str(identifier))
        return rec.code

    def code_for_stop_id(self, stop_id: str) -> str:
        """Map a GTFS stop_id (as used in stop_times.txt) to its stop code."""
        code = self._by_stop_id.get(str(stop_id))
        if code is None:
            raise UnknownStopError(str(stop_id), context="stop_id not in stops.txt")
        return code

    def items(self) -> Tuple[Tuple[str, int], ...]:
        return tuple((code, rec.identifier) for code, rec in self._by_code.items())
