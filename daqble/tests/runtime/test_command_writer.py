# daqble/tests/runtime/test_command_writer.py
from __future__ import annotations

import threading

import pytest

from daqble.core.errors import ErrorKind
from daqble.protocol.defs import OUTBOUND_CHAR_UUID
from daqble.runtime.connection import SessionData
from daqble.runtime.writer import CommandWriter


class ListSink:
    def __init__(self):
        self.events = []

    def on_command(self, event):
        self.events.append(event)

    def close(self):
        pass

    def kinds(self):
        return [(e.name, e.kind) for e in self.events]


@pytest.fixture
def rig(fake_transport, fake_scheduler):
    session = SessionData(outbound_char=OUTBOUND_CHAR_UUID)
    fake_transport.address = "AA:BB:CC:DD:EE:FF"
    sink = ListSink()
    writer = CommandWriter(
        fake_transport,
        session,
        lock=threading.RLock(),
        scheduler=fake_scheduler,
        retry_delay_s=0.5,
        cmd_sink=sink,
    )
    return writer, session, fake_transport, fake_scheduler, sink


def test_write_goes_to_outbound_char(rig):
    writer, _, t, _, sink = rig
    assert writer.submit(b"$fsr,enable;", "$fsr,enable;") is True
    assert t.writes == [(OUTBOUND_CHAR_UUID, b"$fsr,enable;")]
    assert writer.in_flight is True
    assert sink.kinds() == [("$fsr,enable;", "send")]


def test_writes_are_serialized_until_completion(rig):
    writer, _, t, _, sink = rig
    writer.submit(b"a", "a")
    writer.submit(b"b", "b")
    writer.submit(b"c", "c")
    assert [d for _, d in t.writes] == [b"a"]
    assert writer.queued == 2

    writer.on_write_completed(OUTBOUND_CHAR_UUID, True)
    assert [d for _, d in t.writes] == [b"a", b"b"]
    writer.on_write_completed(OUTBOUND_CHAR_UUID, True)
    writer.on_write_completed(OUTBOUND_CHAR_UUID, True)

    assert [d for _, d in t.writes] == [b"a", b"b", b"c"]
    assert writer.in_flight is False
    assert [k for _, k in sink.kinds()].count("ok") == 3


def test_no_outbound_char_skips_write(rig):
    writer, session, t, _, sink = rig
    session.outbound_char = None
    assert writer.submit(b"x", "x") is False
    assert t.writes == []
    assert sink.kinds() == [("x", "skipped")]
    # the transport still has a handle, so this is not "no session"
    assert session.last_error is None


def test_no_handle_records_no_active_session(rig):
    writer, session, t, _, _ = rig
    session.outbound_char = None
    t.address = None
    writer.submit(b"x", "x")
    assert session.last_error is ErrorKind.NO_ACTIVE_SESSION


def test_refused_write_is_retried_once_after_delay(rig):
    writer, _, t, sched, sink = rig
    t.write_results = [False, True]

    writer.submit(b"$send,info;", "$send,info;")
    assert t.writes == []
    assert len(sched.pending) == 1
    assert sched.pending[0].delay_s == 0.5
    assert writer.retry_pending is True

    sched.fire_all()
    assert t.writes == [(OUTBOUND_CHAR_UUID, b"$send,info;")]
    assert writer.retry_pending is False
    assert sink.kinds() == [("$send,info;", "send"), ("$send,info;", "retry")]
    assert sink.events[-1].payload == {"len": 11, "retried": True}


def test_second_refusal_drops_write(rig):
    writer, session, t, sched, sink = rig
    t.write_results = [False, False]

    writer.submit(b"x", "x")
    sched.fire_all()

    assert t.writes == []
    assert writer.in_flight is False
    assert session.last_error is ErrorKind.WRITE_DROPPED
    assert sink.kinds()[-1] == ("x", "dropped")
    assert sched.pending == []   # exactly one retry


def test_queue_continues_after_drop(rig):
    writer, _, t, sched, _ = rig
    t.write_results = [False, False, True]
    writer.submit(b"x", "x")
    writer.submit(b"y", "y")
    sched.fire_all()
    assert t.writes == [(OUTBOUND_CHAR_UUID, b"y")]


def test_completion_while_retry_pending_is_ignored(rig):
    writer, _, t, sched, _ = rig
    t.write_results = [False]
    writer.submit(b"x", "x")
    writer.on_write_completed(OUTBOUND_CHAR_UUID, True)
    assert writer.retry_pending is True
    assert writer.in_flight is True


def test_completion_for_other_char_is_ignored(rig):
    writer, _, _, _, _ = rig
    writer.submit(b"x", "x")
    writer.on_write_completed("00002a00-0000-1000-8000-00805f9b34fb", True)
    assert writer.in_flight is True


def test_failed_completion_releases_slot(rig):
    writer, _, t, _, sink = rig
    writer.submit(b"x", "x")
    writer.submit(b"y", "y")
    writer.on_write_completed(OUTBOUND_CHAR_UUID, False)
    assert ("x", "error") in sink.kinds()
    assert [d for _, d in t.writes] == [b"x", b"y"]


def test_reset_cancels_pending_retry(rig):
    writer, _, t, sched, _ = rig
    t.write_results = [False]
    writer.submit(b"x", "x")
    writer.submit(b"y", "y")
    pending = sched.pending[0]

    writer.reset()
    assert pending.cancelled is True
    assert writer.queued == 0
    assert writer.in_flight is False

    # a timer that fires anyway belongs to an older generation
    pending.fn(*pending.args)
    assert t.writes == []


def test_sink_errors_do_not_break_writes(rig, caplog):
    writer, _, t, _, sink = rig

    def boom(event):
        raise RuntimeError("sink down")

    sink.on_command = boom
    writer.submit(b"x", "x")
    assert t.writes == [(OUTBOUND_CHAR_UUID, b"x")]
    assert "COMMAND_SINK_ERROR" in caplog.text
