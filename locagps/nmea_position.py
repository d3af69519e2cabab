"""NMEA position sentences ($GPGSA, $GPVTG, $GPRMC, $GPGGA) for a fix report."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from locagps.nmea import LocationExtended, NmeaState, put_checksum

_BLANK_SENTENCES = (
    "$GPGSA,A,1,,,,,,,,,,,,,,,",
    "$GPVTG,,T,,M,,N,,K,N",
    "$GPRMC,,V,,,,,,,,,,N",
    "$GPGGA,,,,,,0,,,,,,,,",
)

_KNOTS_PER_MPS = 3600.0 / 1852.0


@dataclass
class Location:
    """A position fix; a field left as None was not reported.

    ``timestamp`` is the UTC time of the fix in milliseconds since the epoch.
    """

    timestamp: int = 0
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    speed: Optional[float] = None
    bearing: Optional[float] = None

    @property
    def has_lat_long(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _f32(value: float) -> float:
    """Round a value to single precision, as the reported fields are stored."""
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _utc(timestamp_ms: int) -> datetime:
    try:
        return datetime.fromtimestamp(timestamp_ms // 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise ValueError("fix timestamp %r cannot be converted to UTC" % timestamp_ms) from exc


def _lat_long_fields(location: Location) -> str:
    if not location.has_lat_long:
        return ",,,,"
    latitude = location.latitude
    longitude = location.longitude
    if latitude > 0:
        lat_hemisphere = "N"
    else:
        lat_hemisphere = "S"
        latitude = -latitude
    if longitude < 0:
        lon_hemisphere = "W"
        longitude = -longitude
    else:
        lon_hemisphere = "E"
    lat_minutes = math.fmod(latitude * 60.0, 60.0)
    lon_minutes = math.fmod(longitude * 60.0, 60.0)
    return "%02d%09.6f,%s,%03d%09.6f,%s," % (
        int(math.floor(latitude)) & 0xFF, lat_minutes, lat_hemisphere,
        int(math.floor(longitude)) & 0xFF, lon_minutes, lon_hemisphere)


def _mode_char(location: Location, standalone: bool) -> str:
    if not location.has_lat_long:
        return "N"
    return "A" if standalone else "D"


def _used_satellites(mask: int) -> List[int]:
    mask &= 0xFFFFFFFF
    return [prn for prn in range(1, 33) if mask & (1 << (prn - 1))]


def _cached_dop_valid(state: NmeaState) -> bool:
    return state.pdop > 0 and state.hdop > 0 and state.vdop > 0


def _gsa(state: NmeaState, used: List[int], extended: LocationExtended) -> str:
    if not used:
        fix_type = "1"
    elif len(used) <= 3:
        fix_type = "2"
    else:
        fix_type = "3"
    parts = ["$GPGSA,A,%s," % fix_type]
    parts.extend("%02d," % used[i] if i < len(used) else "," for i in range(12))
    if extended.dop is not None:
        parts.append("%.1f,%.1f,%.1f" % tuple(extended.dop))
    elif _cached_dop_valid(state):
        parts.append("%.1f,%.1f,%.1f" % (state.pdop, state.hdop, state.vdop))
    else:
        parts.append(",,")
    return "".join(parts)


def _vtg(location: Location, standalone: bool) -> str:
    parts = []
    if location.bearing is not None:
        # The magnetic track is reported equal to the true track.
        bearing = _f32(location.bearing)
        parts.append("$GPVTG,%.1f,T,%.1f,M," % (bearing, bearing))
    else:
        parts.append("$GPVTG,,T,,M,")
    if location.speed is not None:
        speed_knots = _f32(location.speed * _KNOTS_PER_MPS)
        speed_kmh = _f32(location.speed * 3.6)
        parts.append("%.1f,N,%.1f,K," % (speed_knots, speed_kmh))
    else:
        parts.append(",N,,K,")
    parts.append(_mode_char(location, standalone))
    return "".join(parts)


def _rmc(location: Location, extended: LocationExtended, utc: datetime,
         standalone: bool) -> str:
    parts = ["$GPRMC,%02d%02d%02d,A," % (utc.hour, utc.minute, utc.second),
             _lat_long_fields(location)]
    if location.speed is not None:
        parts.append("%.1f," % _f32(location.speed * _KNOTS_PER_MPS))
    else:
        parts.append(",")
    if location.bearing is not None:
        parts.append("%.1f," % _f32(location.bearing))
    else:
        parts.append(",")
    parts.append("%2.2d%2.2d%2.2d," % (utc.day, utc.month, utc.year % 100))
    if extended.magnetic_deviation is not None:
        variation = _f32(extended.magnetic_deviation)
        direction = "E"
        if variation < 0.0:
            direction = "W"
            variation = -variation
        parts.append("%.1f,%s," % (variation, direction))
    else:
        parts.append(",,")
    parts.append(_mode_char(location, standalone))
    return "".join(parts)


def _gga(state: NmeaState, location: Location, extended: LocationExtended,
         utc: datetime, used_count: int, standalone: bool) -> str:
    parts = ["$GPGGA,%02d%02d%02d," % (utc.hour, utc.minute, utc.second),
             _lat_long_fields(location)]
    if not location.has_lat_long:
        quality = "0"
    elif standalone:
        quality = "1"
    else:
        quality = "2"
    if extended.dop is not None:
        parts.append("%s,%02d,%.1f," % (quality, used_count, extended.dop[1]))
    elif _cached_dop_valid(state):
        parts.append("%s,%02d,%.1f," % (quality, used_count, state.hdop))
    else:
        parts.append("%s,%02d,," % (quality, used_count))
    msl = extended.altitude_mean_sea_level
    parts.append("%.1f,M," % msl if msl is not None else ",,")
    if location.altitude is not None and msl is not None:
        parts.append("%.1f,M,," % (location.altitude - msl))
    else:
        parts.append(",,,")
    return "".join(parts)


def generate_pos(state: NmeaState, location: Location, extended: LocationExtended,
                 generate_nmea: bool, standalone: bool) -> List[str]:
    """Send the position sentences for a fix and return them.

    With ``generate_nmea`` false, blank sentences are sent for a non-final fix.
    ``standalone`` says whether the engine runs in autonomous positioning mode.
    The used-satellite mask is consumed and the DOP cache cleared afterwards.
    Raises ValueError if the timestamp cannot be converted or a sentence is too long.
    """
    utc = _utc(location.timestamp)
    sentences: List[str] = []

    def emit(body: str) -> None:
        sentence = put_checksum(body)
        state.send(sentence)
        sentences.append(sentence)

    if generate_nmea:
        used = _used_satellites(state.sv_used_mask)
        state.sv_used_mask = 0
        emit(_gsa(state, used, extended))
        emit(_vtg(location, standalone))
        emit(_rmc(location, extended, utc, standalone))
        emit(_gga(state, location, extended, utc, len(used), standalone))
    else:
        for body in _BLANK_SENTENCES:
            emit(body)

    state.pdop = state.hdop = state.vdop = 0.0
    return sentences