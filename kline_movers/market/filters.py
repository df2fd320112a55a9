"""Attribute-predicate matching over exchange instrument metadata."""

import json
from typing import Any, Iterable, Mapping

from kline_movers.core.types import Instrument


def _parse_literal(literal: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(literal)
    except json.JSONDecodeError:
        return False, None


def _value_matches(value: Any, literal: str) -> bool:
    if isinstance(value, str):
        return value == literal

    if isinstance(value, (list, tuple)):
        return any(isinstance(item, str) and item == literal for item in value)

    if value is None:
        return literal == "null"

    parsed_ok, parsed = _parse_literal(literal)
    if not parsed_ok:
        return False

    # bool is an int subclass; keep true/1 from matching each other.
    if isinstance(value, bool):
        return isinstance(parsed, bool) and parsed is value

    if isinstance(value, (int, float)):
        return isinstance(parsed, (int, float)) and not isinstance(parsed, bool) and parsed == value

    return parsed == value


def matches_filters(attributes: Mapping[str, Any], filters: Mapping[str, str]) -> bool:
    """Return True when every predicate key exists on the instrument and its value matches."""

    for key, required_value in filters.items():
        if key not in attributes:
            return False
        if not _value_matches(attributes[key], required_value):
            return False
    return True


def filter_instruments(
    instruments: Iterable[Instrument], filters: Mapping[str, str]
) -> list[Instrument]:
    """Return matching instruments in their original order."""

    return [
        instrument
        for instrument in instruments
        if matches_filters(instrument.attributes, filters)
    ]
