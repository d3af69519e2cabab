"""The AGPS resource state machine that shares one network interface among subscribers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from locagps.subscribers import (
    INADDR_NONE,
    IPV6_ADDR_SIZE,
    AgpsStatusValue,
    AgpsType,
    BearerType,
    Notification,
    RsrcStatus,
    Servicer,
    Subscriber,
    make_servicer,
)

logger = logging.getLogger(__name__)


class AgpsState(Enum):
    """States of the network interface resource."""

    RELEASED = "AgpsReleasedState"
    PENDING = "AgpsPendingState"
    ACQUIRED = "AgpsAcquiredState"
    RELEASING = "AgpsReleasingState"


@dataclass
class NifRequest:
    """A request to bring up or release the network interface."""

    agps_type: AgpsType
    status: AgpsStatusValue
    ipv4_addr: int = INADDR_NONE
    ipv6_addr: bytes = bytes(IPV6_ADDR_SIZE)
    ssid: str = ""
    password: str = ""

    @classmethod
    def for_subscriber(cls, agps_type: AgpsType, status: AgpsStatusValue,
                       subscriber: Optional[Subscriber]) -> "NifRequest":
        """Build a request, taking addresses and Wi-Fi details from ``subscriber``."""
        request = cls(agps_type, status)
        if subscriber is None:
            return request
        addresses: Optional[Tuple[int, bytes]] = subscriber.ip_addresses()
        if addresses is not None:
            ipv4, ipv6 = addresses
            request.ipv4_addr = ipv4
            request.ipv6_addr = bytes(ipv6)[:IPV6_ADDR_SIZE].ljust(IPV6_ADDR_SIZE, b"\0")
        request.ssid, request.password = subscriber.wifi_info()
        return request


class AgpsStateMachine:
    """Tracks the state of one network interface and the subscribers that want it.

    ``callback`` is handed to the servicer chosen by ``servicer_type``; it carries
    each resource request out.
    """

    def __init__(self, servicer_type: int, callback: Callable[..., Any],
                 agps_type: AgpsType = AgpsType.INVALID,
                 enforce_single_subscriber: bool = False) -> None:
        self.servicer: Servicer = make_servicer(servicer_type, callback)
        self._agps_type = agps_type
        self.apn: Optional[str] = None
        self.bearer: BearerType = BearerType.INVALID
        self.enforce_single_subscriber = enforce_single_subscriber
        self._subscribers: List[Subscriber] = []
        self._state = AgpsState.RELEASED

    def __repr__(self) -> str:
        return "%s(state=%s, subscribers=%d)" % (
            type(self).__name__, self._state.name, len(self._subscribers))

    @property
    def state(self) -> AgpsState:
        return self._state

    @property
    def agps_type(self) -> AgpsType:
        return self._agps_type

    @property
    def subscribers(self) -> Tuple[Subscriber, ...]:
        """The stored subscribers, in the order they were added."""
        return tuple(self._subscribers)

    def set_apn(self, apn: Optional[str]) -> None:
        """Set, or with None clear, the access point name of the interface."""
        self.apn = None if apn is None else str(apn)

    # -- subscriber list -----------------------------------------------------

    def _find(self, notification: Notification) -> Optional[Subscriber]:
        return next((s for s in self._subscribers if s.for_me(notification)), None)

    def _first_active(self) -> Optional[Subscriber]:
        return self._find(Notification.broadcast(Notification.BROADCAST_ACTIVE))

    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def has_active_subscribers(self) -> bool:
        return self._first_active() is not None

    def drop_all_subscribers(self) -> None:
        self._subscribers.clear()

    def add_subscriber(self, subscriber: Subscriber) -> None:
        """Store a copy of ``subscriber`` unless an equal one is already stored."""
        if self._find(Notification.to(subscriber)) is None:
            self._subscribers.append(subscriber.clone())

    def notify_subscribers(self, notification: Notification) -> None:
        """Notify every subscriber; with ``post_notify_delete`` drop those that handled it."""
        for subscriber in list(self._subscribers):
            handled = subscriber.notify_rsrc_status(notification)
            if handled and notification.post_notify_delete:
                self._subscribers.remove(subscriber)

    # -- requests and events -------------------------------------------------

    def send_rsrc_request(self, action: AgpsStatusValue) -> int:
        """Ask the servicer to request or release the interface.

        A request goes out only with an active subscriber, a release only without one.
        """
        subscriber = self._first_active()
        releasing = action == AgpsStatusValue.RELEASE_AGPS_DATA_CONN
        if (subscriber is None) == releasing:
            request = NifRequest.for_subscriber(self._agps_type, action, subscriber)
            logger.debug("agps_cb %s", AgpsStatusValue(action).name)
            self.servicer.request_rsrc(request)
        return 0

    def subscribe_rsrc(self, subscriber: Subscriber) -> None:
        """A client asks for the interface."""
        if self.enforce_single_subscriber and self.has_subscribers():
            notification = Notification.broadcast(Notification.BROADCAST_ALL,
                                                  RsrcStatus.DENIED, True)
            subscriber.notify_rsrc_status(notification)
        else:
            self._dispatch(RsrcStatus.SUBSCRIBE, subscriber)

    def unsubscribe_rsrc(self, subscriber: Subscriber) -> bool:
        """A client is done with the interface; False if it was not subscribed."""
        stored = self._find(Notification.to(subscriber))
        if stored is None:
            return False
        self._dispatch(RsrcStatus.UNSUBSCRIBE, stored)
        return True

    def on_rsrc_event(self, event: RsrcStatus) -> None:
        """Handle a GRANTED, RELEASED or DENIED event from the connectivity service."""
        if event in (RsrcStatus.GRANTED, RsrcStatus.RELEASED, RsrcStatus.DENIED):
            self._dispatch(event, None)
        else:
            logger.warning("AgpsStateMachine: unrecognized event %d", int(event))

    # -- transitions ---------------------------------------------------------

    def _dispatch(self, event: RsrcStatus, subscriber: Optional[Subscriber]) -> AgpsState:
        old = self._state
        handler = {
            AgpsState.RELEASED: self._on_released,
            AgpsState.PENDING: self._on_pending,
            AgpsState.ACQUIRED: self._on_acquired,
            AgpsState.RELEASING: self._on_releasing,
        }[old]
        self._state = handler(event, subscriber)
        logger.debug("onRsrcEvent, old state %s, new state %s, event %d",
                     old.value, self._state.value, int(event))
        return self._state

    def _drop_or_deactivate(self, subscriber: Subscriber, event: RsrcStatus) -> None:
        if subscriber.wait_for_close_complete():
            subscriber.set_inactive()
        else:
            self.notify_subscribers(Notification.to(subscriber, event, True))

    def _unsubscribe_and_release(self, subscriber: Subscriber, event: RsrcStatus,
                                 current: AgpsState) -> AgpsState:
        self._drop_or_deactivate(subscriber, event)
        if not self.has_subscribers():
            self.send_rsrc_request(AgpsStatusValue.RELEASE_AGPS_DATA_CONN)
            return AgpsState.RELEASED
        if not self.has_active_subscribers():
            self.send_rsrc_request(AgpsStatusValue.RELEASE_AGPS_DATA_CONN)
            return AgpsState.RELEASING
        return current

    def _on_released(self, event: RsrcStatus, subscriber: Optional[Subscriber]) -> AgpsState:
        if self.has_subscribers():
            logger.error("Error: %s subscriber list not empty!!!", AgpsState.RELEASED.value)
        if event == RsrcStatus.SUBSCRIBE:
            self.add_subscriber(subscriber)
            if not self.send_rsrc_request(AgpsStatusValue.REQUEST_AGPS_DATA_CONN):
                return AgpsState.PENDING
            return AgpsState.RELEASED
        if event == RsrcStatus.UNSUBSCRIBE:
            subscriber.notify_rsrc_status(Notification.to(subscriber, event, False))
        logger.warning("%s: unrecognized event %d", AgpsState.RELEASED.value, int(event))
        return AgpsState.RELEASED

    def _on_pending(self, event: RsrcStatus, subscriber: Optional[Subscriber]) -> AgpsState:
        if event == RsrcStatus.SUBSCRIBE:
            self.add_subscriber(subscriber)
        elif event == RsrcStatus.UNSUBSCRIBE:
            return self._unsubscribe_and_release(subscriber, event, AgpsState.PENDING)
        elif event == RsrcStatus.GRANTED:
            self.notify_subscribers(Notification.broadcast(
                Notification.BROADCAST_ACTIVE, event, False))
            return AgpsState.ACQUIRED
        elif event == RsrcStatus.DENIED:
            self.notify_subscribers(Notification.broadcast(
                Notification.BROADCAST_ALL, event, True))
            return AgpsState.RELEASED
        elif event != RsrcStatus.RELEASED:
            logger.error("%s: unrecognized event %d", AgpsState.PENDING.value, int(event))
        return AgpsState.PENDING

    def _on_acquired(self, event: RsrcStatus, subscriber: Optional[Subscriber]) -> AgpsState:
        if event == RsrcStatus.SUBSCRIBE:
            subscriber.notify_rsrc_status(
                Notification.to(subscriber, RsrcStatus.GRANTED, False))
            self.add_subscriber(subscriber)
        elif event == RsrcStatus.UNSUBSCRIBE:
            return self._unsubscribe_and_release(subscriber, event, AgpsState.ACQUIRED)
        elif event == RsrcStatus.GRANTED:
            logger.warning("%s: %d, RSRC_GRANTED already received",
                           AgpsState.ACQUIRED.value, int(event))
        elif event == RsrcStatus.RELEASED:
            logger.warning("%s: %d, a force rsrc release", AgpsState.ACQUIRED.value, int(event))
            self.notify_subscribers(Notification.broadcast(
                Notification.BROADCAST_ALL, event, True))
            return AgpsState.RELEASED
        elif event != RsrcStatus.DENIED:
            logger.error("%s: unrecognized event %d", AgpsState.ACQUIRED.value, int(event))
        return AgpsState.ACQUIRED

    def _on_releasing(self, event: RsrcStatus, subscriber: Optional[Subscriber]) -> AgpsState:
        if event == RsrcStatus.SUBSCRIBE:
            self.add_subscriber(subscriber)
        elif event == RsrcStatus.UNSUBSCRIBE:
            self._drop_or_deactivate(subscriber, event)
            if not self.has_subscribers():
                return AgpsState.RELEASED
        elif event in (RsrcStatus.DENIED, RsrcStatus.RELEASED):
            self.notify_subscribers(Notification.broadcast(
                Notification.BROADCAST_INACTIVE, event, True))
            if self.has_active_subscribers():
                self.send_rsrc_request(AgpsStatusValue.REQUEST_AGPS_DATA_CONN)
                return AgpsState.PENDING
            return AgpsState.RELEASED
        else:
            logger.error("%s: unrecognized event %d", AgpsState.RELEASING.value, int(event))
        return AgpsState.RELEASING