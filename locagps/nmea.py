"""NMEA satellite-in-view sentences ($GPGSV / $GLGSV) and sentence checksums."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import reduce
from operator import xor
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

NMEA_SENTENCE_MAX_LENGTH = 200

GPS_PRN_RANGE = range(1, 33)
GLONASS_PRN_RANGE = range(65, 97)

NmeaCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class SatelliteInfo:
    """One satellite as reported in a satellite status report."""

    prn: int
    elevation: float = 0.0
    azimuth: float = 0.0
    snr: float = 0.0


@dataclass
class SvStatus:
    """Satellites in view and the mask of GPS satellites used in the fix."""

    satellites: Sequence[SatelliteInfo] = field(default_factory=list)
    gps_used_in_fix_mask: int = 0


@dataclass
class LocationExtended:
    """Extra fix data; a field left as None was not reported."""

    dop: Optional[Tuple[float, float, float]] = None
    magnetic_deviation: Optional[float] = None
    altitude_mean_sea_level: Optional[float] = None


@dataclass
class NmeaState:
    """Per-engine NMEA state: the output callback and values cached between reports."""

    callback: Optional[NmeaCallback] = None
    sv_used_mask: int = 0
    pdop: float = 0.0
    hdop: float = 0.0
    vdop: float = 0.0

    def send(self, sentence: str) -> None:
        """Hand a finished sentence to the callback with a millisecond timestamp."""
        now_ms = time.time_ns() // 1_000_000
        if self.callback is not None:
            self.callback(now_ms, sentence)
        logger.debug("NMEA <%s", sentence)


def put_checksum(body: str) -> str:
    """Append ``*XX\\r\\n`` to a sentence that starts with ``$``.

    The checksum is the XOR of every character after the leading ``$``.
    """
    if not body:
        raise ValueError("empty NMEA sentence")
    if len(body) >= NMEA_SENTENCE_MAX_LENGTH:
        raise ValueError("NMEA sentence exceeds %d characters" % NMEA_SENTENCE_MAX_LENGTH)
    checksum = reduce(xor, body[1:].encode("ascii"), 0)
    return "%s*%02X\r\n" % (body, checksum)


def _rounded(value: float) -> int:
    return int(0.5 + value)


def _gsv_sentences(talker: str, satellites: Sequence[SatelliteInfo]) -> List[str]:
    if not satellites:
        return [put_checksum("$%sGSV,1,1,0," % talker)]

    count = len(satellites)
    sentence_count = -(-count // 4)
    sentences = []
    for number, start in enumerate(range(0, count, 4), start=1):
        parts = ["$%sGSV,%d,%d,%02d" % (talker, sentence_count, number, count)]
        for sat in satellites[start:start + 4]:
            parts.append(",%02d,%02d,%03d," % (
                sat.prn, _rounded(sat.elevation), _rounded(sat.azimuth)))
            if sat.snr > 0:
                parts.append("%02d" % _rounded(sat.snr))
        sentences.append(put_checksum("".join(parts)))
    return sentences


def generate_sv(state: NmeaState, sv_status: SvStatus,
                extended: LocationExtended) -> List[str]:
    """Send $GPGSV and $GLGSV sentences for a satellite report and return them.

    Satellites outside the GPS and GLONASS PRN ranges are left out. The used-in-fix
    mask and any DOP values are cached on ``state`` for the next position report.
    """
    gps = [sat for sat in sv_status.satellites if sat.prn in GPS_PRN_RANGE]
    glonass = [sat for sat in sv_status.satellites if sat.prn in GLONASS_PRN_RANGE]

    sentences = _gsv_sentences("GP", gps) + _gsv_sentences("GL", glonass)
    for sentence in sentences:
        state.send(sentence)

    state.sv_used_mask = sv_status.gps_used_in_fix_mask
    if extended.dop is not None:
        state.pdop, state.hdop, state.vdop = extended.dop
    else:
        state.pdop = state.hdop = state.vdop = 0.0
    return sentences