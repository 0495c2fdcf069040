"""Parsing helpers for iCalendar DATE, DATE-TIME, UTC-OFFSET and TEXT values."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Union

from .exceptions import MalformedValue, MissingTimezoneContext
from .models import DateValue, InstantValue, LocalToUtc, RawParams, TemporalValue


DATE_FORMAT = "%Y%m%d"
DATETIME_FORMAT = "%Y%m%dT%H%M%S"

_DATE_RE = re.compile(r"^\d{8}$")
_DATETIME_RE = re.compile(r"^\d{8}T\d{6}$")
_OFFSET_RE = re.compile(r"^([+-])(\d{2})(\d{2})(\d{2})?$")

ParamsLike = Union[RawParams, Mapping[str, Union[str, Iterable[str]]]]


def params_to_dict(params: ParamsLike) -> dict[str, list[str]]:
    """Normalize tokenizer parameters into ``{NAME: [values]}``.

    Accepts the raw list-of-pairs shape or any mapping. Repeated names are merged.
    """
    items = params.items() if isinstance(params, Mapping) else params
    result: dict[str, list[str]] = {}
    for name, values in items:
        if isinstance(values, str):
            values = [values]
        result.setdefault(name.upper(), []).extend(values)
    return result


def parse_date(value: str) -> date:
    value = value.strip()
    if not _DATE_RE.match(value):
        raise MalformedValue(f"Failed to convert date: {value}", value)
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as e:
        raise MalformedValue(f"Failed to convert date: {value}", value) from e


def parse_naive_datetime(value: str) -> datetime:
    """Parse ``YYYYMMDDTHHMMSS`` into a naive datetime."""
    value = value.strip()
    if not _DATETIME_RE.match(value):
        raise MalformedValue(f"Failed to convert datetime: {value}", value)
    try:
        return datetime.strptime(value, DATETIME_FORMAT)
    except ValueError as e:
        raise MalformedValue(f"Failed to convert datetime: {value}", value) from e


def parse_utc_offset(value: str) -> timedelta:
    """Parse a UTC-OFFSET value such as ``-0500`` or ``+053000``."""
    match = _OFFSET_RE.match(value.strip())
    if not match:
        raise MalformedValue(f"Failed to convert UTC offset: {value}", value)
    sign, hours, minutes, seconds = match.groups()
    offset = timedelta(hours=int(hours), minutes=int(minutes), seconds=int(seconds or 0))
    return -offset if sign == "-" else offset


def is_date_value(params: Mapping[str, list[str]]) -> bool:
    return any(v.upper() == "DATE" for v in params.get("VALUE", []))


def parse_temporal_value(
    raw_value: str, params: ParamsLike, local_to_utc: LocalToUtc
) -> TemporalValue:
    """Build a DateValue or InstantValue from a raw property value.

    Args:
        raw_value: Raw property value, e.g. ``20240115`` or ``20240115T100000Z``
        params: Property parameters (VALUE, TZID)
        local_to_utc: Resolver for local timestamps qualified with a TZID

    Raises:
        MalformedValue: Value does not match the date or timestamp pattern
        MissingTimezoneContext: Local timestamp without exactly one TZID
    """
    props = params_to_dict(params)

    if is_date_value(props):
        return DateValue(parse_date(raw_value))

    value = raw_value.strip()
    if value.endswith("Z"):
        naive = parse_naive_datetime(value[:-1])
        return InstantValue(naive.replace(tzinfo=UTC))

    naive = parse_naive_datetime(value)
    tzids = props.get("TZID")
    if not tzids:
        raise MissingTimezoneContext(f"Missing TZID for datetime: {value}")
    if len(tzids) != 1:
        raise MissingTimezoneContext("TZID must be set only once")

    return InstantValue(local_to_utc(tzids[0], naive))


def unescape_text(raw: str) -> str:
    """Undo RFC 5545 TEXT escaping (``\\,`` ``\\;`` ``\\n`` ``\\N`` ``\\\\``)."""
    if "\\" not in raw:
        return raw
    out = []
    chars = iter(raw)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt in ("n", "N"):
            out.append("\n")
        elif nxt in (",", ";", "\\"):
            out.append(nxt)
        else:
            out.append("\\" + nxt)
    return "".join(out)
