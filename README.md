# locagps

Building blocks for the location side of an assisted-GPS stack:

- **NMEA output** (`locagps.nmea`, `locagps.nmea_position`): builds
  `$GPGSV`/`$GLGSV` satellite sentences and `$GPGSA`, `$GPVTG`, `$GPRMC` and
  `$GPGGA` position sentences, each with its checksum.
- **Daemon control messages** (`locagps.messages`): the fixed-layout control
  messages used to ask for or release a network interface and to answer such
  requests, encoded with `CtrlMessage.pack()` and decoded with
  `unpack_message()`.
- **AGPS resource state machines** (`locagps.subscribers`,
  `locagps.agps_machine`, `locagps.ds_machine`): track who has asked for the
  network interface. Each machine moves between the released, pending,
  acquired and releasing states and notifies its BIT, ATL, Wi-Fi or DS
  subscribers.

## Install

```
pip install .
```

The package uses only the standard library.

## NMEA checksums

```python
from locagps.nmea import put_checksum

put_checksum("$GPGSV,1,1,0,")   # -> "$GPGSV,1,1,0,*65\r\n"
```

`put_checksum` XORs every character after the leading `$`. It appends the
result as `*XX` in upper-case hex, followed by CR LF. It raises `ValueError`
for an empty sentence or one of 200 characters or more.

## Satellite and position reports

```python
from locagps.nmea import LocationExtended, NmeaState, SatelliteInfo, SvStatus, generate_sv
from locagps.nmea_position import Location, generate_pos

state = NmeaState(callback=lambda timestamp_ms, sentence: print(sentence, end=""))
generate_sv(state, SvStatus([SatelliteInfo(prn=5, elevation=40, azimuth=120, snr=35)],
                            gps_used_in_fix_mask=1 << 4),
            LocationExtended(dop=(1.5, 0.9, 1.2)))
generate_pos(state, Location(timestamp=1_700_000_000_000, latitude=48.1, longitude=11.5),
             LocationExtended(), generate_nmea=True, standalone=True)
```

`generate_sv` sends the GPS and GLONASS GSV sentences (satellites with other
PRNs are left out) and caches the used-in-fix mask and the DOP values on the
`NmeaState`. `generate_pos` sends the GSA, VTG, RMC and GGA sentences, using
those cached values when the `LocationExtended` has no DOP of its own, and
then clears the cache. When `generate_nmea` is false it sends blank sentences
instead. Both functions also return the sentences they sent.

## Control messages

```python
from locagps.messages import CtrlMessage, CtrlType, IfRequest, IfRequestSender, IfRequestType, unpack_message

message = CtrlMessage(CtrlType.IF_REQUEST,
                      request=IfRequest(IfRequestType.WIFI, IfRequestSender.MSAPM, ssid="lab"))
assert unpack_message(message.pack()) == message
```

Responses carry a `ResponseStatus` in `result`. Type and sender codes that the
enums do not know are kept as plain integers when decoding.

## AGPS state machines

Make an `AgpsStateMachine(servicer_type, callback, agps_type, enforce_single_subscriber)`.
The `ServicerType` picks how `callback` is called: with no argument, or with
the `NifRequest` (`make_servicer` builds the servicer). Subscribers ask for
the resource with `subscribe_rsrc` and give it up with `unsubscribe_rsrc`.
Report what the connectivity service answered with
`on_rsrc_event(RsrcStatus.GRANTED)`, or with `DENIED` or `RELEASED`. The
machine sends `NifRequest`s through the servicer and tells each subscriber
about every status change.

- `BITSubscriber` and `WIFISubscriber` report back through a
  `data_conn(sender_id, status)` callable you pass in.
- `ATLSubscriber` reports to an adapter with `atl_open_status` and
  `atl_close_status`.
- `DSSubscriber` reports to its `DSStateMachine`.

`DSStateMachine(servicer_type, callback, adapter, start_timer=None)` runs
emergency data calls. When the engine is busy it retries after 500 ms, up to
four times. When the call cannot be made it falls back to an ordinary SUPL
request through `adapter.request_atl`.

## What this package does not do

It has no transport for the control messages: it does not create or open
named pipes, run a server loop that reads interface requests, or deliver
responses to the daemon. `NmeaState` and the subscribers only call the
callbacks you give them; connecting those to a device or a daemon is up to
the caller.

## Tests

```
pip install .[test]
pytest
```