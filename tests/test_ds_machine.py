import pytest

from locagps.agps_machine import AgpsState
from locagps.ds_machine import (
    ADAPTER_ERR_ENGINE_BUSY,
    ADAPTER_ERR_SUCCESS,
    ADAPTER_ERR_UNSUPPORTED,
    REQUEST_FAILED,
    DsCallbackData,
    DSStateMachine,
)
from locagps.subscribers import (
    AgpsStatusValue,
    AgpsType,
    BearerType,
    DSSubscriber,
    RsrcStatus,
    ServicerType,
)


class FakeAdapter:
    def __init__(self):
        self.calls = []

    def request_supl_es(self, conn_id):
        self.calls.append(("request_supl_es", conn_id))

    def request_atl(self, conn_id, agps_type):
        self.calls.append(("request_atl", conn_id, agps_type))

    def close_data_call(self):
        self.calls.append(("close_data_call",))

    def atl_open_status(self, conn_id, success, apn, bearer, agps_type):
        self.calls.append(("atl_open_status", conn_id, success, apn, bearer, agps_type))

    def atl_close_status(self, conn_id, success):
        self.calls.append(("atl_close_status", conn_id, success))


class Servicing:
    def __init__(self, result=ADAPTER_ERR_SUCCESS):
        self.result = result
        self.requests = []

    def __call__(self, data):
        self.requests.append(data)
        return self.result


class Timers:
    def __init__(self, fail=False):
        self.fail = fail
        self.started = []

    def __call__(self, delay, function):
        if self.fail:
            raise OSError("no timer")
        self.started.append((delay, function))


def make(result=ADAPTER_ERR_SUCCESS, fail_timer=False):
    adapter = FakeAdapter()
    servicing = Servicing(result)
    timers = Timers(fail_timer)
    machine = DSStateMachine(ServicerType.EXT, servicing, adapter, start_timer=timers)
    return machine, adapter, servicing, timers


def test_subscribe_success_moves_to_pending_and_sends_request():
    machine, adapter, servicing, _ = make()
    machine.subscribe_rsrc(DSSubscriber(machine, 7))
    assert machine.state == AgpsState.PENDING
    assert servicing.requests == [
        DsCallbackData(adapter, AgpsStatusValue.REQUEST_AGPS_DATA_CONN)]
    assert adapter.calls == []


def test_granted_informs_adapter_of_open_status():
    machine, adapter, _, _ = make()
    machine.subscribe_rsrc(DSSubscriber(machine, 7))
    machine.on_rsrc_event(RsrcStatus.GRANTED)
    assert machine.state == AgpsState.ACQUIRED
    assert adapter.calls == [
        ("atl_open_status", 7, 1, None, BearerType.INVALID, AgpsType.INVALID)]


def test_unsupported_falls_back_to_atl_and_stays_released():
    machine, adapter, _, _ = make(ADAPTER_ERR_UNSUPPORTED)
    machine.subscribe_rsrc(DSSubscriber(machine, 7))
    assert machine.state == AgpsState.RELEASED
    assert adapter.calls == [("request_atl", 7, AgpsType.SUPL)]


def test_failed_request_falls_back_to_atl():
    machine, adapter, _, _ = make(REQUEST_FAILED)
    machine.subscribe_rsrc(DSSubscriber(machine, 3))
    assert adapter.calls == [("request_atl", 3, AgpsType.SUPL)]


def test_engine_busy_schedules_retry_with_delay():
    machine, adapter, _, timers = make(ADAPTER_ERR_ENGINE_BUSY)
    machine.subscribe_rsrc(DSSubscriber(machine, 7))
    assert machine.retries == 1
    assert len(timers.started) == 1
    delay, function = timers.started[0]
    assert delay == DSStateMachine.DATA_CALL_RETRY_DELAY_MSEC / 1000.0
    function()
    assert adapter.calls == [("request_supl_es", 7)]


def test_engine_busy_gives_up_after_retry_limit():
    machine, adapter, _, timers = make(ADAPTER_ERR_ENGINE_BUSY)
    machine.add_subscriber(DSSubscriber(machine, 7))
    for _ in range(DSStateMachine.MAX_START_DATA_CALL_RETRIES):
        assert machine.send_rsrc_request(
            AgpsStatusValue.REQUEST_AGPS_DATA_CONN) == ADAPTER_ERR_ENGINE_BUSY
    assert adapter.calls == []
    machine.send_rsrc_request(AgpsStatusValue.REQUEST_AGPS_DATA_CONN)
    assert adapter.calls == [("request_atl", 7, AgpsType.SUPL)]
    assert machine.retries == 0
    assert len(timers.started) == DSStateMachine.MAX_START_DATA_CALL_RETRIES


def test_timer_failure_returns_failure_without_fallback():
    machine, adapter, _, _ = make(ADAPTER_ERR_ENGINE_BUSY, fail_timer=True)
    machine.add_subscriber(DSSubscriber(machine, 7))
    assert machine.send_rsrc_request(AgpsStatusValue.REQUEST_AGPS_DATA_CONN) == REQUEST_FAILED
    assert adapter.calls == []


def test_no_subscriber_uses_invalid_handle_on_fallback():
    machine, adapter, _, _ = make(ADAPTER_ERR_UNSUPPORTED)
    machine.send_rsrc_request(AgpsStatusValue.REQUEST_AGPS_DATA_CONN)
    assert adapter.calls == [("request_atl", -1, AgpsType.SUPL)]


def test_released_while_pending_is_treated_as_denied():
    machine, adapter, _, _ = make()
    machine.subscribe_rsrc(DSSubscriber(machine, 7))
    machine.on_rsrc_event(RsrcStatus.RELEASED)
    assert machine.state == AgpsState.RELEASED
    assert not machine.has_subscribers()
    assert adapter.calls == [("request_atl", 7, AgpsType.SUPL)]


def test_released_while_acquired_closes_data_call():
    machine, adapter, _, _ = make()
    machine.subscribe_rsrc(DSSubscriber(machine, 7))
    machine.on_rsrc_event(RsrcStatus.GRANTED)
    adapter.calls.clear()
    machine.on_rsrc_event(RsrcStatus.RELEASED)
    assert machine.state == AgpsState.RELEASED
    assert adapter.calls == [("close_data_call",)]


def test_unsubscribe_while_acquired_moves_to_releasing():
    machine, adapter, servicing, _ = make()
    subscriber = DSSubscriber(machine, 7)
    machine.subscribe_rsrc(subscriber)
    machine.on_rsrc_event(RsrcStatus.GRANTED)
    adapter.calls.clear()
    assert machine.unsubscribe_rsrc(subscriber) is True
    assert machine.state == AgpsState.RELEASING
    assert adapter.calls == [("atl_close_status", 7, 1)]
    assert servicing.requests[-1].action == AgpsStatusValue.RELEASE_AGPS_DATA_CONN


def test_retry_callback_without_subscriber_does_nothing():
    machine, adapter, _, _ = make()
    machine.retry_callback()
    assert adapter.calls == []


def test_inform_status_unknown_status_makes_no_call():
    machine, adapter, _, _ = make()
    machine.inform_status(RsrcStatus.STATUS_MAX, 7)
    assert adapter.calls == []


def test_subscribe_event_passed_to_on_rsrc_event_is_ignored():
    machine, adapter, _, _ = make()
    machine.on_rsrc_event(RsrcStatus.SUBSCRIBE)
    assert machine.state == AgpsState.RELEASED
    assert adapter.calls == []


@pytest.mark.parametrize("status, expected", [
    (RsrcStatus.UNSUBSCRIBE, ("atl_close_status", 9, 1)),
    (RsrcStatus.RELEASED, ("close_data_call",)),
    (RsrcStatus.DENIED, ("request_atl", 9, AgpsType.SUPL)),
])
def test_inform_status_calls(status, expected):
    machine, adapter, _, _ = make()
    machine.inform_status(status, 9)
    assert adapter.calls == [expected]