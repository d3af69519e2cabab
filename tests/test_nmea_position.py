import pytest

from locagps.nmea import LocationExtended, NmeaState, put_checksum
from locagps.nmea_position import Location, generate_pos


def _body(sentence):
    return sentence.split("*", 1)[0]


def _fields(sentence):
    return _body(sentence).split(",")


def _full_fix(**kwargs):
    values = dict(timestamp=0, latitude=37.5, longitude=-122.25,
                  altitude=100.0, speed=10.0, bearing=90.0)
    values.update(kwargs)
    return Location(**values)


def test_blank_sentences_for_non_final_fix():
    state = NmeaState()
    sentences = generate_pos(state, Location(), LocationExtended(), False, True)
    bodies = ["$GPGSA,A,1,,,,,,,,,,,,,,,", "$GPVTG,,T,,M,,N,,K,N",
              "$GPRMC,,V,,,,,,,,,,N", "$GPGGA,,,,,,0,,,,,,,,"]
    assert sentences == [put_checksum(body) for body in bodies]


def test_sentences_are_sent_through_callback():
    received = []
    state = NmeaState(callback=lambda ts, s: received.append(s))
    sentences = generate_pos(state, _full_fix(), LocationExtended(), True, True)
    assert received == sentences
    assert [s[:6] for s in sentences] == ["$GPGSA", "$GPVTG", "$GPRMC", "$GPGGA"]


def test_every_sentence_has_valid_checksum():
    state = NmeaState(sv_used_mask=0b1011)
    sentences = generate_pos(state, _full_fix(), LocationExtended(dop=(1.5, 0.9, 1.2)),
                             True, False)
    for sentence in sentences:
        assert sentence == put_checksum(_body(sentence))
        assert sentence.endswith("\r\n")


def test_gsa_lists_used_satellites_and_fix_type():
    state = NmeaState(sv_used_mask=0b1011)
    gsa = generate_pos(state, _full_fix(), LocationExtended(), True, True)[0]
    fields = _fields(gsa)
    assert fields[2] == "2"
    assert fields[3:6] == ["01", "02", "04"]
    assert fields[6:15] == [""] * 9
    assert state.sv_used_mask == 0


def test_gsa_fix_type_three_and_no_fix():
    state = NmeaState(sv_used_mask=0xF)
    assert _fields(generate_pos(state, _full_fix(), LocationExtended(), True, True)[0])[2] == "3"
    assert _fields(generate_pos(state, _full_fix(), LocationExtended(), True, True)[0])[2] == "1"


def test_gsa_only_twelve_satellites():
    state = NmeaState(sv_used_mask=0xFFFFFFFF)
    gsa = generate_pos(state, _full_fix(), LocationExtended(), True, True)[0]
    fields = _fields(gsa)
    assert fields[3:15] == ["%02d" % prn for prn in range(1, 13)]
    gga = generate_pos(NmeaState(sv_used_mask=0xFFFFFFFF), _full_fix(),
                       LocationExtended(), True, True)[3]
    assert _fields(gga)[7] == "32"


def test_dop_from_extended_and_cache_cleared():
    state = NmeaState(pdop=2.0, hdop=3.0, vdop=4.0)
    sentences = generate_pos(state, _full_fix(), LocationExtended(dop=(1.5, 0.5, 2.5)),
                             True, True)
    assert _fields(sentences[0])[-3:] == ["1.5", "0.5", "2.5"]
    assert _fields(sentences[3])[8] == "0.5"
    assert (state.pdop, state.hdop, state.vdop) == (0.0, 0.0, 0.0)


def test_cached_dop_used_when_extended_lacks_it():
    state = NmeaState(pdop=2.0, hdop=3.0, vdop=4.0)
    sentences = generate_pos(state, _full_fix(), LocationExtended(), True, True)
    assert _fields(sentences[0])[-3:] == ["2.0", "3.0", "4.0"]
    assert _fields(sentences[3])[8] == "3.0"


def test_rmc_position_time_and_date():
    state = NmeaState()
    rmc = generate_pos(state, _full_fix(), LocationExtended(), True, True)[2]
    fields = _fields(rmc)
    assert fields[1] == "000000"
    assert fields[3:7] == ["3730.000000", "N", "12215.000000", "W"]
    assert fields[9] == "010170"
    assert fields[-1] == "A"


def test_mode_characters_follow_position_mode():
    vtg_diff, rmc_diff, gga_diff = generate_pos(
        NmeaState(), _full_fix(), LocationExtended(), True, False)[1:]
    assert _fields(vtg_diff)[-1] == "D"
    assert _fields(rmc_diff)[-1] == "D"
    assert _fields(gga_diff)[6] == "2"
    no_fix = Location(timestamp=0)
    vtg, rmc, gga = generate_pos(NmeaState(), no_fix, LocationExtended(), True, True)[1:]
    assert _fields(vtg)[-1] == "N"
    assert _fields(rmc)[-1] == "N"
    assert _fields(gga)[6] == "0"
    assert _fields(rmc)[3:7] == ["", "", "", ""]


def test_vtg_track_is_bearing():
    vtg = generate_pos(NmeaState(), _full_fix(bearing=45.0),
                       LocationExtended(magnetic_deviation=5.0), True, True)[1]
    fields = _fields(vtg)
    assert fields[1] == fields[3] == "45.0"
    assert fields[2] == "T" and fields[4] == "M"


def test_magnetic_variation_west():
    rmc = generate_pos(NmeaState(), _full_fix(),
                       LocationExtended(magnetic_deviation=-3.0), True, True)[2]
    assert _fields(rmc)[10:12] == ["3.0", "W"]


def test_gga_altitudes():
    gga = generate_pos(NmeaState(), _full_fix(altitude=150.0),
                       LocationExtended(altitude_mean_sea_level=120.0), True, True)[3]
    fields = _fields(gga)
    assert fields[9:13] == ["120.0", "M", "30.0", "M"]


def test_invalid_timestamp_raises():
    with pytest.raises(ValueError):
        generate_pos(NmeaState(), Location(timestamp=10 ** 22), LocationExtended(), True, True)


def test_overlong_sentence_raises():
    with pytest.raises(ValueError):
        generate_pos(NmeaState(), _full_fix(),
                     LocationExtended(altitude_mean_sea_level=1e200), True, True)