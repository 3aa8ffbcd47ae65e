# daqble/tests/runtime/test_device_session.py
from __future__ import annotations

import pytest

from daqble.core.errors import ErrorKind
from daqble.protocol.commands import SetStreamDelay, SetStreamEnabled, StreamKind
from daqble.protocol.defs import INBOUND_CHAR_UUID, OUTBOUND_CHAR_UUID
from daqble.runtime.device_session import DeviceSession
from daqble.runtime.state import ConnectionState as CS
from daqble.transport.base import RawLinkState

ADDR = "AA:BB:CC:DD:EE:FF"

FSR_BUF = bytes([0xC6, 0x00, 0x00, 0x03, 0xE8]) + bytes(range(1, 11))
IMU_BUF = bytes([0xC9, 0x84, 0x03, 0x2C, 0x01, 0x38, 0xFF])


@pytest.fixture
def session(fake_transport, fake_scheduler, recording_observer):
    s = DeviceSession(fake_transport, scheduler=fake_scheduler)
    s.subscribe(recording_observer)
    yield s
    s.close()


def _bring_up(session, transport, chars):
    session.request_connect(ADDR)
    session.on_connection_state_changed(RawLinkState.CONNECTED)
    session.on_services_discovered(True, chars)


def test_registers_itself_as_listener(session, fake_transport):
    assert fake_transport.listener is session


def test_happy_path_state_sequence(session, fake_transport, recording_observer, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)

    assert recording_observer.states() == [CS.CONNECTING, CS.CONNECTED, CS.SERVICES_DISCOVERED]
    st = session.status()
    assert st.ready is True
    assert st.address == ADDR
    assert st.inbound_char == INBOUND_CHAR_UUID
    assert st.outbound_char == OUTBOUND_CHAR_UUID
    assert session.current_state() is CS.SERVICES_DISCOVERED


def test_notifications_are_decoded_in_order(session, fake_transport, recording_observer, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    recording_observer.events.clear()

    session.on_characteristic_notified(INBOUND_CHAR_UUID, FSR_BUF)
    session.on_characteristic_notified(INBOUND_CHAR_UUID, IMU_BUF)
    session.on_characteristic_notified(INBOUND_CHAR_UUID, b"fw 1.0\n")

    assert recording_observer.events == [
        ("fsr", 1000, tuple(range(1, 11))),
        ("imu", 0, 30.0, -20.0, 90.0),
        ("text", "fw 1.0\n"),
    ]


def test_read_results_are_decoded_like_notifications(session, fake_transport, recording_observer, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    recording_observer.events.clear()

    session.on_characteristic_read(INBOUND_CHAR_UUID, b"abc", True)
    session.on_characteristic_read(INBOUND_CHAR_UUID, b"lost", False)
    assert recording_observer.events == [("text", "abc")]


def test_notifications_from_other_chars_are_ignored(session, fake_transport, recording_observer, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    recording_observer.events.clear()
    session.on_characteristic_notified(OUTBOUND_CHAR_UUID, b"echo")
    assert recording_observer.events == []


def test_notifications_before_discovery_are_ignored(session, recording_observer):
    session.on_characteristic_notified(INBOUND_CHAR_UUID, FSR_BUF)
    assert recording_observer.events == []


def test_send_command_writes_encoded_bytes(session, fake_transport, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    session.send_command(SetStreamEnabled(StreamKind.IMU, True))
    assert fake_transport.writes == [(OUTBOUND_CHAR_UUID, b"$imu,enable;")]


def test_send_before_discovery_is_silently_dropped(session, fake_transport):
    session.send_text("hello")
    assert fake_transport.writes == []
    assert session.status().last_error is ErrorKind.NO_ACTIVE_SESSION


def test_apply_settings_queues_commands(session, fake_transport, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    session.apply_settings({"enable fsr": True, "fsr delay": 40})
    assert session.status().queued_writes == 1
    session.on_characteristic_write_completed(OUTBOUND_CHAR_UUID, True)
    assert [d for _, d in fake_transport.writes] == [b"$fsr,enable;", b"$fsr,delay,40;"]


def test_retry_is_scheduled_not_slept(session, fake_transport, fake_scheduler, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    fake_transport.write_results = [False, True]

    session.send_command(SetStreamDelay(StreamKind.FSR, 100))
    assert fake_transport.writes == []
    assert fake_scheduler.fire_all() == 1
    assert fake_transport.writes == [(OUTBOUND_CHAR_UUID, b"$fsr,delay,100;")]


def test_repeated_connect_is_idempotent(session, fake_transport, recording_observer):
    session.request_connect(ADDR)
    session.on_connection_state_changed(RawLinkState.CONNECTED)
    assert session.request_connect(ADDR) is True
    assert fake_transport.call_names().count("connect") == 1
    assert recording_observer.states()[-1] is CS.CONNECTED


def test_disconnect_without_session_reports_error(session, recording_observer):
    assert session.request_disconnect() is False
    assert session.status().last_error is ErrorKind.NO_ACTIVE_SESSION
    assert recording_observer.states() == []


def test_unexpected_disconnect_clears_handles_and_queue(session, fake_transport, recording_observer, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    session.send_text("a")
    session.send_text("b")

    session.on_connection_state_changed(RawLinkState.DISCONNECTED)

    st = session.status()
    assert st.state is CS.DISCONNECTED
    assert st.address is None
    assert st.inbound_char is None
    assert st.outbound_char is None
    assert st.queued_writes == 0
    assert st.write_in_flight is False
    assert recording_observer.states()[-1] is CS.DISCONNECTED

    session.on_characteristic_notified(INBOUND_CHAR_UUID, b"late")
    assert recording_observer.events[-1] == ("state", CS.DISCONNECTED)


def test_resume_after_drop(session, fake_transport, recording_observer, gatt_chars):
    _bring_up(session, fake_transport, gatt_chars)
    session.on_connection_state_changed(RawLinkState.DISCONNECTED)

    assert session.request_connect(ADDR) is True
    assert fake_transport.call_names()[-1] == "reconnect"
    session.on_connection_state_changed(RawLinkState.CONNECTED)
    session.on_services_discovered(True, gatt_chars)
    assert session.status().ready is True
    assert session.status().address == ADDR


def test_observer_exception_does_not_stop_others(session, fake_transport, recording_observer, caplog):
    class Broken:
        def on_connection_state_changed(self, state):
            raise RuntimeError("observer bug")

    session.subscribe(Broken())
    later = type(recording_observer)()
    session.subscribe(later)

    session.request_connect(ADDR)
    assert later.states() == [CS.CONNECTING]
    assert recording_observer.states() == [CS.CONNECTING]
    assert "OBSERVER_CALLBACK_ERROR" in caplog.text


def test_unsubscribe(session, recording_observer):
    other = type(recording_observer)()
    unsubscribe = session.subscribe(other)
    unsubscribe()
    unsubscribe()
    session.request_connect(ADDR)
    assert other.events == []
    assert recording_observer.states() == [CS.CONNECTING]


def test_reentrant_callbacks_keep_event_order(fake_transport, fake_scheduler, recording_observer, gatt_chars):
    class EagerTransport(type(fake_transport)):
        """Reports the link and the services from inside the requests themselves."""

        def connect(self, address):
            super().connect(address)
            self.listener.on_connection_state_changed(RawLinkState.CONNECTED)
            return True

        def discover_services(self):
            super().discover_services()
            self.listener.on_services_discovered(True, gatt_chars)
            return True

        def subscribe_notifications(self, char_id, enabled):
            super().subscribe_notifications(char_id, enabled)
            self.listener.on_characteristic_notified(char_id, b"hello")
            return True

    t = EagerTransport()
    s = DeviceSession(t, scheduler=fake_scheduler)
    s.subscribe(recording_observer)
    try:
        assert s.request_connect(ADDR) is True
    finally:
        s.close()

    assert recording_observer.events[:3] == [
        ("state", CS.CONNECTING),
        ("state", CS.CONNECTED),
        ("state", CS.SERVICES_DISCOVERED),
    ]


def test_close_releases_transport_and_rejects_use(fake_transport, fake_scheduler, recording_observer, gatt_chars):
    s = DeviceSession(fake_transport, scheduler=fake_scheduler)
    s.subscribe(recording_observer)
    _bring_up(s, fake_transport, gatt_chars)

    s.close()
    s.close()

    assert fake_transport.closed == 1
    assert fake_transport.listener is None
    assert s.current_state() is CS.DISCONNECTED
    assert recording_observer.states()[-1] is CS.DISCONNECTED
    with pytest.raises(RuntimeError):
        s.request_connect(ADDR)
    with pytest.raises(RuntimeError):
        s.send_text("x")
