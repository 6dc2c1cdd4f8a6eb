"""Regex cleanup of rider-facing stop names, trip headsigns and route names.

Each public function is a fixed chain of substitutions. The patterns are
compiled once at import time.
"""

from __future__ import annotations

import re
from typing import Sequence, Tuple

# =============================================================================
# GENERIC RULES
# =============================================================================

_WORD = r"(^|\W)({words})(\W|$)"


def _word_pattern(words: str) -> re.Pattern[str]:
    return re.compile(_WORD.format(words=words), re.IGNORECASE)


STREET_TYPES: Tuple[Tuple[re.Pattern[str], str], ...] = tuple(
    (_word_pattern(words), short)
    for words, short in (
        ("avenue", "Ave"),
        ("boulevard", "Blvd"),
        ("centre|center", "Ctr"),
        ("court", "Ct"),
        ("crescent", "Cr"),
        ("drive", "Dr"),
        ("highway", "Hwy"),
        ("lane", "Ln"),
        ("parkway", "Pkwy"),
        ("place", "Pl"),
        ("road", "Rd"),
        ("square", "Sq"),
        ("street", "St"),
        ("terrace", "Terr"),
        ("valley", "Vly"),
    )
)

ORDINALS: Tuple[Tuple[re.Pattern[str], str], ...] = tuple(
    (_word_pattern(word), num)
    for word, num in (
        ("first", "1st"),
        ("second", "2nd"),
        ("third", "3rd"),
        ("fourth", "4th"),
        ("fifth", "5th"),
        ("sixth", "6th"),
        ("seventh", "7th"),
        ("eighth", "8th"),
        ("ninth", "9th"),
        ("tenth", "10th"),
    )
)

CLEAN_AT = _word_pattern("at")
CLEAN_AT_REPLACEMENT = r"\1@\3"
CLEAN_AND = _word_pattern("and")
CLEAN_AND_REPLACEMENT = r"\1&\3"

SLASH_SPACING = re.compile(r"\s*/\s*")
MULTI_SPACE = re.compile(r"\s{2,}")
PARENS_OPEN = re.compile(r"\(\s+")
PARENS_CLOSE = re.compile(r"\s+\)")
LEADING_TRAILING_PUNCT = re.compile(r"^[\s\-,]+|[\s\-,]+$")
LOWER_WORD_START = re.compile(r"(^|[\s/(\-])([a-z])")

# =============================================================================
# AGENCY RULES
# =============================================================================

EXCHANGE = _word_pattern("exchange")
DOWNTOWN_TYPO = _word_pattern("downtwon")
ENDS_WITH_VIA = re.compile(r"( via .*$)", re.IGNORECASE)
STARTS_WITH_TO = re.compile(r"(^.*( )?to )", re.IGNORECASE)
STARTS_WITH_NUMBER = re.compile(r"(^[\d]+[\S]*)", re.IGNORECASE)
STARTS_WITH_IMPL = re.compile(r"(^(\(-IMPL-\)))", re.IGNORECASE)
STARTS_WITH_BOUND = re.compile(r"(^(east|west|north|south)bound)", re.IGNORECASE)


def _replace_words(text: str, rules: Sequence[Tuple[re.Pattern[str], str]]) -> str:
    for pattern, short in rules:
        text = pattern.sub(lambda m, s=short: f"{m.group(1)}{s}{m.group(3)}", text)
    return text


def clean_street_types(text: str) -> str:
    return _replace_words(text, STREET_TYPES)


def clean_numbers(text: str) -> str:
    return _replace_words(text, ORDINALS)


def clean_slashes(text: str) -> str:
    return SLASH_SPACING.sub(" / ", text)


def is_uppercase_only(text: str) -> bool:
    letters = [c for c in text if c.isalpha()]
    return bool(letters) and all(c.isupper() for c in letters)


def clean_label(text: str) -> str:
    """Trim, collapse spaces, tidy parentheses and capitalize word starts."""
    text = MULTI_SPACE.sub(" ", text.strip())
    text = PARENS_OPEN.sub("(", text)
    text = PARENS_CLOSE.sub(")", text)
    text = LEADING_TRAILING_PUNCT.sub("", text)
    return LOWER_WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), text)


def clean_trip_headsign(headsign: str) -> str:
    """Turn a feed headsign into a short direction label.

    >>> clean_trip_headsign("Anfield Centre to 8 Downtown")
    'Downtown'
    """
    if is_uppercase_only(headsign):
        headsign = headsign.lower()
    headsign = EXCHANGE.sub(r"\1Exch\3", headsign)
    headsign = DOWNTOWN_TYPO.sub(r"\1Downtown\3", headsign)
    headsign = ENDS_WITH_VIA.sub("", headsign)
    headsign = STARTS_WITH_TO.sub("", headsign)
    headsign = CLEAN_AND.sub(CLEAN_AND_REPLACEMENT, headsign)
    headsign = STARTS_WITH_NUMBER.sub("", headsign.strip())
    headsign = clean_street_types(headsign)
    headsign = clean_numbers(headsign)
    return clean_label(headsign)


def clean_stop_name(name: str) -> str:
    name = STARTS_WITH_IMPL.sub("", name.strip())
    name = STARTS_WITH_BOUND.sub("", name.strip())
    name = CLEAN_AT.sub(CLEAN_AT_REPLACEMENT, name)
    name = EXCHANGE.sub(r"\1Exch\3", name)
    name = clean_street_types(name)
    name = clean_numbers(name)
    return clean_label(name)


def clean_route_long_name(name: str) -> str:
    name = clean_slashes(name)
    name = clean_numbers(name)
    name = clean_street_types(name)
    return clean_label(name)
