"""Shape observation lists into spreadsheet tables and DataFrames."""

from typing import Any, Mapping, Sequence

import pandas as pd

from datasetiq_bridge.config.settings import FREE_TIER_LIMIT, HEADER_ROW, TRUNCATION_NOTICE


def _as_row(obs: Any) -> list[Any]:
    if isinstance(obs, Mapping):
        return [obs.get("date"), obs.get("value")]
    if isinstance(obs, (list, tuple)):
        return [obs[0] if len(obs) > 0 else None, obs[1] if len(obs) > 1 else None]
    return [None, None]


def _as_pairs(observations: Sequence[Any]) -> list[list[Any]]:
    """Accept ``[(date, value)]`` or ``[{"date": ..., "value": ...}]``; malformed entries become blank rows."""
    return [_as_row(obs) for obs in observations]


def to_table(observations: Any) -> list[list[Any]]:
    """
    Build a Date/Value table, most recent observation first.

    Dates are compared as calendar dates, not strings. Ties keep their input
    order and unparseable dates sort last.

    Args:
        observations: Pair- or object-shaped observation list

    Returns:
        Rows, with the header row always first
    """
    if not isinstance(observations, (list, tuple)) or not observations:
        return [list(HEADER_ROW)]

    rows = _as_pairs(observations)
    keys = pd.to_datetime(
        pd.Series([row[0] for row in rows], dtype=object),
        errors="coerce",
        utc=True,
        format="mixed",
    )
    order = keys.sort_values(ascending=False, kind="stable", na_position="last").index
    return [list(HEADER_ROW)] + [rows[i] for i in order]


def with_truncation_notice(
    table: list[list[Any]], observation_count: int, has_api_key: bool
) -> list[list[Any]]:
    """Append the free-tier notice when an unauthenticated result hit the cap."""
    if has_api_key or observation_count < FREE_TIER_LIMIT:
        return table
    return table + [list(row) for row in TRUNCATION_NOTICE]


def to_frame(observations: Any) -> pd.DataFrame:
    """
    Observations as a DataFrame with a DatetimeIndex and ``value`` column.

    Rows with unparseable dates or values are dropped; index is ascending.
    """
    if not isinstance(observations, (list, tuple)) or not observations:
        return pd.DataFrame(columns=["value"])

    df = pd.DataFrame(_as_pairs(observations), columns=["date", "value"])
    df["date"] = pd.to_datetime(df["date"], errors="coerce", format="mixed")
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    df = df.dropna()
    df.set_index("date", inplace=True)
    return df.sort_index()
