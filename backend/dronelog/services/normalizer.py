"""
Normalizer for raw log records.

Maps each RawRecord onto the canonical Sample: UTC epoch milliseconds,
decimal degrees, meters above the home point, meters/second. Optional
channels a source does not provide stay None.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Iterator, Optional

import pandas as pd

from dronelog.errors import UnitConversionError
from dronelog.models.flight import Sample
from dronelog.models.raw import RawRecord, SourceContext


FEET_TO_M = 0.3048
MPH_TO_MPS = 0.44704
KPH_TO_MPS = 1 / 3.6

CELL_VOLTAGE_FIELDS = tuple(f"cell_voltage_{i}" for i in range(1, 7))


def normalize_record(record: RawRecord, context: SourceContext) -> Sample:
    """
    Convert one raw record into a canonical Sample.

    Raises:
        UnitConversionError: if a value is outside its physical domain,
            or the timestamp cannot be placed on the absolute time axis
    """
    latitude = _coordinate(record, "latitude", 90.0)
    longitude = _coordinate(record, "longitude", 180.0)

    return Sample(
        timestamp_ms=_timestamp_ms(record, context),
        latitude=latitude,
        longitude=longitude,
        altitude_m=_altitude_m(record, context),
        ground_speed_mps=_ground_speed_mps(record),
        battery_voltage=_battery_voltage(record),
        battery_percent=_battery_percent(record),
        satellite_count=_satellite_count(record),
        battery_serial=_battery_serial(record),
    )


def normalize_records(records: Iterable[RawRecord], context: SourceContext) -> Iterator[Sample]:
    """Normalize a record stream lazily."""
    for record in records:
        yield normalize_record(record, context)


def wall_clock_to_epoch_ms(value: Any, timezone: str = "UTC") -> int:
    """
    Parse a wall-clock timestamp string to UTC epoch milliseconds.

    Naive values are interpreted in the given timezone; values carrying an
    offset keep it.

    Raises:
        ValueError: if the value cannot be parsed
    """
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        raise ValueError(f"Empty timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.tz_localize(timezone)
    ts = ts.tz_convert("UTC")
    return int(ts.value // 1_000_000)


def _timestamp_ms(record: RawRecord, context: SourceContext) -> int:
    epoch = _optional(record.get("timestamp_ms"))
    elapsed = _optional(record.get("elapsed_ms"))
    for name, value in (("timestamp_ms", epoch), ("elapsed_ms", elapsed)):
        if value is not None and not math.isfinite(value):
            raise UnitConversionError(
                f"Non-finite {name}: {value}", field=name, value=value, index=record.index
            )

    if epoch is not None:
        return int(round(epoch))

    if elapsed is not None:
        if context.launch_time_ms is None:
            raise UnitConversionError(
                "Elapsed time without a known launch time",
                field="elapsed_ms",
                value=elapsed,
                index=record.index,
            )
        return int(context.launch_time_ms + round(elapsed))

    wall_clock = record.get("datetime")
    if wall_clock is not None:
        try:
            return wall_clock_to_epoch_ms(wall_clock, context.timezone)
        except (ValueError, TypeError) as e:
            raise UnitConversionError(
                f"Unparseable datetime {wall_clock!r}",
                field="datetime",
                value=wall_clock,
                index=record.index,
            ) from e

    raise UnitConversionError("Record has no timestamp", field="timestamp", index=record.index)


def _coordinate(record: RawRecord, name: str, limit: float) -> float:
    value = record.get(name)
    if value is None or not math.isfinite(value) or abs(value) > limit:
        raise UnitConversionError(
            f"{name} out of range: {value!r}",
            field=name,
            value=value,
            index=record.index,
        )
    return float(value)


def _altitude_m(record: RawRecord, context: SourceContext) -> Optional[float]:
    altitude = _optional(record.get("altitude_m"))
    if altitude is not None:
        return altitude

    altitude_ft = _optional(record.get("altitude_ft"))
    if altitude_ft is not None:
        return altitude_ft * FEET_TO_M

    altitude_msl = _optional(record.get("altitude_msl_m"))
    if altitude_msl is not None:
        home = context.home_altitude_m if context.home_altitude_m is not None else 0.0
        return altitude_msl - home

    return None


def _ground_speed_mps(record: RawRecord) -> Optional[float]:
    speed = _optional(record.get("speed_mps"))
    if speed is None:
        mph = _optional(record.get("speed_mph"))
        kph = _optional(record.get("speed_kph"))
        if mph is not None:
            speed = mph * MPH_TO_MPS
        elif kph is not None:
            speed = kph * KPH_TO_MPS
        else:
            north = _optional(record.get("velocity_north_mps"))
            east = _optional(record.get("velocity_east_mps"))
            if north is not None and east is not None:
                speed = math.hypot(north, east)

    if speed is not None and speed < 0:
        raise UnitConversionError(
            f"Negative ground speed: {speed}",
            field="ground_speed",
            value=speed,
            index=record.index,
        )
    return speed


def _battery_voltage(record: RawRecord) -> Optional[float]:
    voltage = _optional(record.get("battery_voltage"))
    if voltage is None:
        millivolts = _optional(record.get("battery_millivolts"))
        if millivolts is not None:
            voltage = millivolts / 1000.0
    if voltage is None:
        cells = [_optional(record.get(name)) for name in CELL_VOLTAGE_FIELDS]
        cells = [c for c in cells if c is not None]
        if cells:
            voltage = sum(cells)

    if voltage is not None and voltage < 0:
        raise UnitConversionError(
            f"Negative battery voltage: {voltage}",
            field="battery_voltage",
            value=voltage,
            index=record.index,
        )
    return voltage


def _battery_percent(record: RawRecord) -> Optional[float]:
    percent = _optional(record.get("battery_percent"))
    if percent is not None and not 0.0 <= percent <= 100.0:
        raise UnitConversionError(
            f"Battery percent out of range: {percent}",
            field="battery_percent",
            value=percent,
            index=record.index,
        )
    return percent


def _satellite_count(record: RawRecord) -> Optional[int]:
    satellites = _optional(record.get("satellites"))
    if satellites is None:
        return None
    if not math.isfinite(satellites) or satellites < 0 or satellites != int(satellites):
        raise UnitConversionError(
            f"Invalid satellite count: {satellites}",
            field="satellites",
            value=satellites,
            index=record.index,
        )
    return int(satellites)


def _battery_serial(record: RawRecord) -> Optional[str]:
    serial = record.get("battery_serial")
    if serial is None:
        return None
    serial = str(serial).strip()
    return serial or None


def _optional(value: Any) -> Optional[float]:
    """Numeric value or None; NaN counts as absent."""
    if value is None:
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return value
