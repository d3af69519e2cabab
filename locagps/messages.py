"""Control messages exchanged with the location daemon over named pipes."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Type, TypeVar, Union

SSID_BUF_SIZE = 32 + 1

# Laid out as the 32-bit little-endian daemon expects, padding included.
HEADER_FORMAT = "<IH2xIB3x"
IF_REQUEST_FORMAT = "<iiI16s%ds%ds" % (SSID_BUF_SIZE, SSID_BUF_SIZE)
RESULT_FORMAT = "<i"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
IF_REQUEST_SIZE = struct.calcsize(IF_REQUEST_FORMAT)
UNION_SIZE = (IF_REQUEST_SIZE + 3) // 4 * 4
MESSAGE_SIZE = HEADER_SIZE + UNION_SIZE


class CtrlType(IntEnum):
    """Message kinds; values below 0xF0 are reserved for the daemon."""

    IF_REQUEST = 0xF0
    IF_RELEASE = 0xF1
    RESPONSE = 0xF2
    UNBLOCK = 0xF3


class ResponseStatus(IntEnum):
    IF_REQUEST_SUCCESS = 0xF0
    IF_RELEASE_SUCCESS = 0xF1
    IF_FAILURE = 0xF2


class IfRequestType(IntEnum):
    SUPL = 0
    WIFI = 1
    ANY = 2


class IfRequestSender(IntEnum):
    QUIPC = 0
    MSAPM = 1
    MSAPU = 2
    GPSONE_DAEMON = 3
    MODEM = 4


_E = TypeVar("_E", bound=IntEnum)


def _coerce(enum_cls: Type[_E], value: int) -> Union[_E, int]:
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _encode_cstr(text: str) -> bytes:
    return text.encode("utf-8")[:SSID_BUF_SIZE - 1]


def _decode_cstr(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


@dataclass
class IfRequest:
    """A request to bring up or release a network interface."""

    type: Union[IfRequestType, int]
    sender_id: Union[IfRequestSender, int]
    ipv4_addr: int = 0
    ipv6_addr: bytes = bytes(16)
    ssid: str = ""
    password: str = ""

    def __post_init__(self) -> None:
        if len(self.ipv6_addr) > 16:
            raise ValueError("IPv6 address longer than 16 bytes")
        if not 0 <= self.ipv4_addr <= 0xFFFFFFFF:
            raise ValueError("IPv4 address out of range")

    def _pack(self) -> bytes:
        try:
            return struct.pack(IF_REQUEST_FORMAT, int(self.type), int(self.sender_id),
                               self.ipv4_addr, bytes(self.ipv6_addr),
                               _encode_cstr(self.ssid), _encode_cstr(self.password))
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def _unpack(cls, data: bytes) -> "IfRequest":
        req_type, sender, ipv4, ipv6, ssid, pwd = struct.unpack_from(IF_REQUEST_FORMAT, data)
        return cls(type=_coerce(IfRequestType, req_type),
                   sender_id=_coerce(IfRequestSender, sender),
                   ipv4_addr=ipv4, ipv6_addr=ipv6,
                   ssid=_decode_cstr(ssid), password=_decode_cstr(pwd))


@dataclass
class CtrlMessage:
    """One control message; ``request`` is set for interface requests and releases."""

    ctrl_type: Union[CtrlType, int]
    result: int = 0
    request: Optional[IfRequest] = None

    def pack(self) -> bytes:
        """Encode the message in its fixed-size wire form."""
        try:
            if self.request is not None:
                union = self.request._pack()
            else:
                union = struct.pack(RESULT_FORMAT, int(self.result))
            header = struct.pack(HEADER_FORMAT, MESSAGE_SIZE, 0, 0, int(self.ctrl_type))
        except struct.error as exc:
            raise ValueError(str(exc)) from exc
        return header + union.ljust(UNION_SIZE, b"\0")


def unpack_message(data: bytes) -> CtrlMessage:
    """Decode a message; unknown type or sender codes are kept as plain ints."""
    data = bytes(data)
    if len(data) < HEADER_SIZE:
        raise ValueError("message shorter than its header")
    _, _, _, raw_type = struct.unpack_from(HEADER_FORMAT, data)
    ctrl_type = _coerce(CtrlType, raw_type)
    body = data[HEADER_SIZE:]

    if ctrl_type in (CtrlType.IF_REQUEST, CtrlType.IF_RELEASE):
        if len(body) < IF_REQUEST_SIZE:
            raise ValueError("interface request message is truncated")
        return CtrlMessage(ctrl_type, request=IfRequest._unpack(body))

    if len(body) < struct.calcsize(RESULT_FORMAT):
        raise ValueError("message body is truncated")
    (result,) = struct.unpack_from(RESULT_FORMAT, body)
    return CtrlMessage(ctrl_type, result=_coerce(ResponseStatus, result))