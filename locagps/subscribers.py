"""AGPS resource subscribers, notifications and the servicers that carry requests out."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Optional, Tuple

from locagps.messages import SSID_BUF_SIZE, IfRequestSender, ResponseStatus

logger = logging.getLogger(__name__)

INADDR_NONE = 0xFFFFFFFF
IPV6_ADDR_SIZE = 16

DataConnCallback = Callable[[int, int], Any]


class RsrcStatus(IntEnum):
    """Events about the network interface resource."""

    SUBSCRIBE = 0
    UNSUBSCRIBE = 1
    GRANTED = 2
    RELEASED = 3
    DENIED = 4
    STATUS_MAX = 5


class ServicerType(IntEnum):
    NO_CB_PARAM = 0
    AGPS = 1
    EXT = 2


class AgpsType(IntEnum):
    INVALID = -1
    ANY = 0
    SUPL = 1
    C2K = 2
    WWAN_ANY = 3
    WIFI = 4
    SUPL_ES = 5


class BearerType(IntEnum):
    INVALID = -1
    IPV4 = 0
    IPV6 = 1
    IPV4V6 = 2


class AgpsStatusValue(IntEnum):
    REQUEST_AGPS_DATA_CONN = 1
    RELEASE_AGPS_DATA_CONN = 2
    AGPS_DATA_CONNECTED = 3
    AGPS_DATA_CONN_DONE = 4
    AGPS_DATA_CONN_FAILED = 5


@dataclass(frozen=True)
class Notification:
    """A resource status event aimed at one subscriber or at a broadcast group."""

    BROADCAST_ALL = 0x80000000
    BROADCAST_ACTIVE = 0x80000001
    BROADCAST_INACTIVE = 0x80000002

    receiver: Optional["Subscriber"] = None
    group_id: int = -1
    rsrc_status: RsrcStatus = RsrcStatus.STATUS_MAX
    post_notify_delete: bool = False

    @classmethod
    def broadcast(cls, group_id: int, status: RsrcStatus = RsrcStatus.STATUS_MAX,
                  delete_afterwards: bool = False) -> "Notification":
        """A notification for every subscriber in ``group_id``."""
        return cls(None, group_id, status, delete_afterwards)

    @classmethod
    def to(cls, subscriber: "Subscriber", status: RsrcStatus = RsrcStatus.STATUS_MAX,
           delete_afterwards: bool = False) -> "Notification":
        """A notification for the one subscriber equal to ``subscriber``."""
        return cls(subscriber, -1, status, delete_afterwards)


class Subscriber(ABC):
    """An AGPS client asking for the network interface.

    ``state_machine`` is the machine the subscriber belongs to. The ID is kept
    as an unsigned 32-bit value.
    """

    def __init__(self, conn_id: int, state_machine: Any) -> None:
        self.id = int(conn_id) & 0xFFFFFFFF
        self.state_machine = state_machine

    def __repr__(self) -> str:
        return "%s(id=%d)" % (type(self).__name__, self.id)

    def for_me(self, notification: Notification) -> bool:
        """Whether ``notification`` is addressed to this subscriber."""
        if notification.receiver is not None:
            return self.equals(notification.receiver)
        group = notification.group_id
        return (group == Notification.BROADCAST_ALL
                or (group == Notification.BROADCAST_ACTIVE and not self.is_inactive())
                or (group == Notification.BROADCAST_INACTIVE and self.is_inactive()))

    def equals(self, other: "Subscriber") -> bool:
        return self.id == other.id

    @abstractmethod
    def notify_rsrc_status(self, notification: Notification) -> bool:
        """Act on a status notification; return True if it was handled."""

    def wait_for_close_complete(self) -> bool:
        return False

    def set_inactive(self) -> None:
        """Mark the subscriber inactive; plain subscribers never are."""

    def is_inactive(self) -> bool:
        return False

    @abstractmethod
    def clone(self) -> "Subscriber":
        """A fresh copy of this subscriber, as stored in a machine's list."""

    @abstractmethod
    def ip_addresses(self) -> Optional[Tuple[int, bytes]]:
        """The (IPv4, IPv6) addresses to route through, or None if not known."""

    def wifi_info(self) -> Tuple[str, str]:
        """The (SSID, password) to connect with; empty for non-Wi-Fi clients."""
        return "", ""


def _cstring(raw: bytes) -> bytes:
    return raw.split(b"\0", 1)[0]


def _status_response(status: RsrcStatus) -> Optional[ResponseStatus]:
    if status in (RsrcStatus.UNSUBSCRIBE, RsrcStatus.RELEASED):
        return ResponseStatus.IF_RELEASE_SUCCESS
    if status == RsrcStatus.DENIED:
        return ResponseStatus.IF_FAILURE
    if status == RsrcStatus.GRANTED:
        return ResponseStatus.IF_REQUEST_SUCCESS
    return None


class BITSubscriber(Subscriber):
    """A client from the BIT daemon, identified by its IPv4 (and IPv6) address.

    Replies go through ``data_conn(sender_id, status)``.
    """

    def __init__(self, state_machine: Any, ipv4: int, ipv6: Optional[bytes] = None,
                 data_conn: Optional[DataConnCallback] = None) -> None:
        super().__init__(ipv4, state_machine)
        if ipv6 is None:
            self.ipv6 = bytes(IPV6_ADDR_SIZE)
        else:
            ipv6 = bytes(ipv6)
            if len(ipv6) > IPV6_ADDR_SIZE:
                raise ValueError("IPv6 address longer than %d bytes" % IPV6_ADDR_SIZE)
            self.ipv6 = ipv6.ljust(IPV6_ADDR_SIZE, b"\0")
        self.data_conn = data_conn

    def equals(self, other: Subscriber) -> bool:
        if not isinstance(other, BITSubscriber):
            return False
        return self.id == other.id and (
            self.id != INADDR_NONE or _cstring(self.ipv6) == _cstring(other.ipv6))

    def notify_rsrc_status(self, notification: Notification) -> bool:
        if not self.for_me(notification):
            return False
        response = _status_response(notification.rsrc_status)
        if response is None:
            return False
        if self.data_conn is not None:
            self.data_conn(IfRequestSender.GPSONE_DAEMON, response)
        else:
            logger.warning("%r: no data connection to report %s", self, response.name)
        return True

    def ip_addresses(self) -> Tuple[int, bytes]:
        return self.id, self.ipv6

    def clone(self) -> "BITSubscriber":
        return BITSubscriber(self.state_machine, self.id, self.ipv6, self.data_conn)


class ATLSubscriber(Subscriber):
    """A client from the modem's ATL; reports go to ``adapter``.

    The adapter needs ``atl_open_status(id, success, apn, bearer, agps_type)`` and
    ``atl_close_status(id, success)``; the state machine needs ``apn``, ``bearer``
    and ``agps_type``.
    """

    def __init__(self, conn_id: int, state_machine: Any, adapter: Any,
                 backward_compatible: bool) -> None:
        super().__init__(conn_id, state_machine)
        self.adapter = adapter
        self.backward_compatible = backward_compatible

    def _open_status(self, success: int) -> None:
        machine = self.state_machine
        agps_type = AgpsType.INVALID if self.backward_compatible else machine.agps_type
        self.adapter.atl_open_status(self.id, success, machine.apn, machine.bearer,
                                     agps_type)

    def notify_rsrc_status(self, notification: Notification) -> bool:
        if not self.for_me(notification):
            return False
        status = notification.rsrc_status
        if status in (RsrcStatus.UNSUBSCRIBE, RsrcStatus.RELEASED):
            self.adapter.atl_close_status(self.id, 1)
        elif status == RsrcStatus.DENIED:
            self._open_status(0)
        elif status == RsrcStatus.GRANTED:
            self._open_status(1)
        else:
            return False
        return True

    def ip_addresses(self) -> Tuple[int, bytes]:
        return INADDR_NONE, b""

    def clone(self) -> "ATLSubscriber":
        return ATLSubscriber(self.id, self.state_machine, self.adapter,
                             self.backward_compatible)


def _truncate(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text[:SSID_BUF_SIZE - 1]


class WIFISubscriber(Subscriber):
    """A Wi-Fi client (QuIPC or MSAP), identified by its sender ID."""

    def __init__(self, state_machine: Any, ssid: Optional[str], password: Optional[str],
                 sender_id: int, data_conn: Optional[DataConnCallback] = None) -> None:
        super().__init__(sender_id, state_machine)
        self.ssid = _truncate(ssid)
        self.password = _truncate(password)
        self.sender_id = sender_id
        self.data_conn = data_conn
        self._inactive = False

    def notify_rsrc_status(self, notification: Notification) -> bool:
        if not self.for_me(notification):
            return False
        status = notification.rsrc_status
        if status == RsrcStatus.UNSUBSCRIBE:
            return True
        response = _status_response(status)
        if response is None:
            return False
        if self.data_conn is not None:
            self.data_conn(self.sender_id, response)
        else:
            logger.warning("%r: no data connection to report %s", self, response.name)
        return True

    def ip_addresses(self) -> None:
        return None

    def wifi_info(self) -> Tuple[str, str]:
        return self.ssid or "", self.password or ""

    def wait_for_close_complete(self) -> bool:
        return True

    def set_inactive(self) -> None:
        self._inactive = True

    def is_inactive(self) -> bool:
        return self._inactive

    def clone(self) -> "WIFISubscriber":
        return WIFISubscriber(self.state_machine, self.ssid, self.password,
                              self.sender_id, self.data_conn)


class DSSubscriber(Subscriber):
    """A data-service client; every status goes to ``state_machine.inform_status``."""

    def __init__(self, state_machine: Any, conn_id: int) -> None:
        super().__init__(conn_id, state_machine)
        self._inactive = False

    def notify_rsrc_status(self, notification: Notification) -> bool:
        notify = self.for_me(notification)
        logger.debug("DSSubscriber.notify_rsrc_status notify:%d", int(notify))
        if not notify:
            return False
        status = notification.rsrc_status
        if status in (RsrcStatus.UNSUBSCRIBE, RsrcStatus.RELEASED,
                      RsrcStatus.DENIED, RsrcStatus.GRANTED):
            self.state_machine.inform_status(status, self.id)
            return True
        return False

    def ip_addresses(self) -> None:
        return None

    def wait_for_close_complete(self) -> bool:
        return True

    def set_inactive(self) -> None:
        self._inactive = True
        self.state_machine.inform_status(RsrcStatus.UNSUBSCRIBE, self.id)

    def is_inactive(self) -> bool:
        return self._inactive

    def clone(self) -> "DSSubscriber":
        return DSSubscriber(self.state_machine, self.id)


class Servicer:
    """Carries a resource request out by calling ``callback()``."""

    def __init__(self, callback: Callable[..., Any]) -> None:
        self.callback = callback

    def request_rsrc(self, data: Any) -> int:
        self.callback()
        return 0


class ExtServicer(Servicer):
    """Calls ``callback(data)`` and returns what it returns."""

    def request_rsrc(self, data: Any) -> int:
        logger.debug("Enter ExtServicer.request_rsrc")
        result = self.callback(data)
        logger.debug("Exit ExtServicer.request_rsrc")
        return result


class AGpsServicer(Servicer):
    """Calls ``callback(data)`` with the AGPS status and returns 0."""

    def request_rsrc(self, data: Any) -> int:
        self.callback(data)
        return 0


def make_servicer(servicer_type: int, callback: Callable[..., Any]) -> Servicer:
    """Build the servicer for ``servicer_type``; raise ValueError for an unknown type."""
    kind = ServicerType(servicer_type)
    logger.debug("make_servicer type:%d", int(kind))
    if kind == ServicerType.NO_CB_PARAM:
        return Servicer(callback)
    if kind == ServicerType.EXT:
        return ExtServicer(callback)
    return AGpsServicer(callback)