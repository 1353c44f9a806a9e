"""Coercion of loosely-typed formula arguments into request parameters."""

import math
from datetime import date, datetime, timedelta, timezone

import pandas as pd

from datasetiq_bridge.data.errors import InvalidDate, InvalidDateInput, InvalidDateSerial


# Spreadsheet serial day 0. Day 60 is the nonexistent 1900-02-29, so serials
# from 61 on line up with the host's calendar.
SERIAL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

DateInput = str | int | float | date | datetime | None


def normalize_optional_string(value: object) -> str | None:
    """Trim strings, treat blanks as absent, stringify anything else."""
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return str(value)


def normalize_date_input(value: DateInput) -> str | None:
    """
    Convert a formula date argument to ``YYYY-MM-DD``.

    Strings pass through unchanged; the API decides whether they are valid.

    Args:
        value: A date/datetime, a spreadsheet serial number, a string, or None

    Returns:
        ISO date string, or None when the argument is empty

    Raises:
        InvalidDate: date object that is not a real instant (e.g. ``pd.NaT``)
        InvalidDateSerial: negative or non-finite serial number
        InvalidDateInput: any other argument type
    """
    if value is None or (isinstance(value, str) and value == ""):
        return None

    if isinstance(value, (date, datetime)):
        if pd.isna(value):
            raise InvalidDate()
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc)
            return value.date().isoformat()
        return value.isoformat()

    # bool is an int subclass but never a serial date
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _serial_to_iso(value)

    if isinstance(value, str):
        return value

    raise InvalidDateInput()


def _serial_to_iso(serial: int | float) -> str:
    if isinstance(serial, float) and not math.isfinite(serial):
        raise InvalidDateSerial()
    if serial < 0:
        raise InvalidDateSerial()
    try:
        converted = SERIAL_EPOCH + timedelta(days=serial)
    except OverflowError:
        raise InvalidDateSerial() from None
    return converted.date().isoformat()
