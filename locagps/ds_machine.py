"""The data-service variant of the AGPS state machine, used for emergency SUPL data calls."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from locagps.agps_machine import AgpsState, AgpsStateMachine
from locagps.subscribers import (
    AgpsStatusValue,
    AgpsType,
    BearerType,
    DSSubscriber,
    RsrcStatus,
)

logger = logging.getLogger(__name__)

# Result codes a data-call request can come back with.
ADAPTER_ERR_SUCCESS = 0
ADAPTER_ERR_GENERAL_FAILURE = 1
ADAPTER_ERR_UNSUPPORTED = 2
ADAPTER_ERR_ENGINE_BUSY = 6
REQUEST_FAILED = -1

TimerStarter = Callable[[float, Callable[[], None]], Any]


def _start_timer(delay: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, function)
    timer.daemon = True
    timer.start()
    return timer


@dataclass
class DsCallbackData:
    """What the servicer receives when a data call is to be started or stopped."""

    adapter: Any
    action: AgpsStatusValue


class DSStateMachine(AgpsStateMachine):
    """Runs emergency data calls, falling back to ordinary ATL SUPL on failure.

    ``adapter`` needs ``request_supl_es(id)``, ``request_atl(id, agps_type)``,
    ``close_data_call()``, ``atl_open_status(id, success, apn, bearer, agps_type)``
    and ``atl_close_status(id, success)``. ``start_timer(delay_seconds, function)``
    schedules a retry; it raises if the timer cannot be started.
    """

    MAX_START_DATA_CALL_RETRIES = 4
    DATA_CALL_RETRY_DELAY_MSEC = 500

    def __init__(self, servicer_type: int, callback: Callable[..., Any], adapter: Any,
                 start_timer: Optional[TimerStarter] = None) -> None:
        super().__init__(servicer_type, callback, AgpsType.INVALID, False)
        self.adapter = adapter
        self.retries = 0
        self._start_timer = start_timer or _start_timer
        logger.debug("New DSStateMachine")

    def retry_callback(self) -> None:
        """Retry the emergency data call for the first active subscriber."""
        subscriber = self._first_active()
        if subscriber is not None:
            self.adapter.request_supl_es(subscriber.id)
        else:
            logger.error("DSStateMachine.retry_callback: no subscriber found, "
                         "cannot retry data call")

    def send_rsrc_request(self, action: AgpsStatusValue) -> int:
        """Ask the servicer to start or stop the data call and return its result code.

        A busy engine is retried after a delay up to the retry limit; an
        unsupported profile, a failed request or too many retries fall back to ATL.
        """
        logger.debug("Enter DSStateMachine.send_rsrc_request")
        subscriber = self._first_active()
        conn_handle = subscriber.id if subscriber is not None else -1
        if subscriber is None:
            logger.debug("DSStateMachine.send_rsrc_request - no subscriber found")

        ret = self.servicer.request_rsrc(DsCallbackData(self.adapter, action))
        if ret == ADAPTER_ERR_ENGINE_BUSY:
            logger.debug("DSStateMachine.send_rsrc_request - failure returned: %d", ret)
            self.retries += 1
            if self.retries > self.MAX_START_DATA_CALL_RETRIES:
                logger.error("Failed to start data call. Fallback to normal ATL SUPL")
                self.inform_status(RsrcStatus.DENIED, conn_handle)
            else:
                try:
                    self._start_timer(self.DATA_CALL_RETRY_DELAY_MSEC / 1000.0,
                                      self.retry_callback)
                except Exception:
                    logger.exception("Error: could not start delay thread")
                    ret = REQUEST_FAILED
        elif ret == ADAPTER_ERR_UNSUPPORTED:
            logger.error("No profile found for emergency call. Fallback to normal SUPL ATL")
            self.inform_status(RsrcStatus.DENIED, conn_handle)
        elif ret == ADAPTER_ERR_SUCCESS:
            logger.debug("Request to start data call sent")
        elif ret == REQUEST_FAILED:
            logger.error("Data call request failed. Falling back to normal SUPL ATL")
            self.inform_status(RsrcStatus.DENIED, conn_handle)
        else:
            logger.error("Unrecognized return value %r", ret)
        logger.debug("Exit DSStateMachine.send_rsrc_request; ret = %r", ret)
        return ret

    def on_rsrc_event(self, event: RsrcStatus) -> None:
        """Handle a data-call event; a RELEASED that changes nothing counts as DENIED."""
        logger.debug("Enter DSStateMachine.on_rsrc_event. event = %d", int(event))
        if event == RsrcStatus.GRANTED:
            self._dispatch(event, None)
        elif event == RsrcStatus.RELEASED:
            before = self.state
            if self._dispatch(event, None) == before:
                logger.error("Switching event to RSRC_DENIED")
                self._dispatch(RsrcStatus.DENIED, None)
        elif event == RsrcStatus.DENIED:
            self._dispatch(event, None)
        else:
            logger.warning("DSStateMachine: unrecognized event %d", int(event))

    def inform_status(self, status: RsrcStatus, conn_id: int) -> None:
        """Report a status for connection ``conn_id`` to the adapter."""
        logger.debug("DSStateMachine.inform_status. Status=%d", int(status))
        if status == RsrcStatus.UNSUBSCRIBE:
            self.adapter.atl_close_status(conn_id, 1)
        elif status == RsrcStatus.RELEASED:
            self.adapter.close_data_call()
        elif status == RsrcStatus.DENIED:
            self.retries = 0
            self.adapter.request_atl(conn_id, AgpsType.SUPL)
        elif status == RsrcStatus.GRANTED:
            self.adapter.atl_open_status(conn_id, 1, None, BearerType.INVALID,
                                         AgpsType.INVALID)
        else:
            logger.warning("DSStateMachine.inform_status - unknown status")

    @property
    def in_released_state(self) -> bool:
        return self.state == AgpsState.RELEASED

    def make_subscriber(self, conn_id: int) -> DSSubscriber:
        """A data-service subscriber bound to this machine."""
        return DSSubscriber(self, conn_id)