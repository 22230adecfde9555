import json
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from packet_log.config import Config
from packet_log.core import FlushScheduler, PacketFilter, SessionLogger, SessionLoggerError
from packet_log.models import Vector3i
from packet_log.utils.time_utils import CaptureClock


@dataclass
class Ping:
    sequence: int = 0


@dataclass
class Ignored:
    reason: str = "noise"


@dataclass
class MovePlayer:
    position: Vector3i


class FakeSession:
    def __init__(self, is_logging: bool = False):
        self.is_logging = is_logging
        self.socket_address = ("127.0.0.1", 19132)


class RecordingScheduler:
    def __init__(self):
        self.scheduled = []

    def schedule_at_fixed_rate(self, callback, initial_delay, period, name=None, run_on_shutdown=False):
        self.scheduled.append((callback, initial_delay, period, run_on_shutdown))
        return _Handle()


class _Handle:
    cancelled = False

    def cancel(self):
        self.cancelled = True


def _config(logging_packets=True, file=True, console=False, json_lines=False, ignored=("Ignored",)):
    config = Config()
    config.packet_logging.logging_packets = logging_packets
    config.packet_logging.log_to.file = file
    config.packet_logging.log_to.console = console
    config.packet_logging.log_to_json = json_lines
    config.packet_logging.ignored_packets = list(ignored)
    return config


def _logger(tmp_path, config, scheduler=None):
    return SessionLogger(config, tmp_path, "Steve", 1700000000000, scheduler=scheduler or RecordingScheduler())


def _freeze_clock(monkeypatch, *moments):
    values = iter(moments)
    monkeypatch.setattr(CaptureClock, "now", lambda: next(values))


T0 = datetime(2024, 5, 17, 9, 4, 7, 45_000)


def test_paths_follow_display_name_and_timestamp(tmp_path):
    session_logger = _logger(tmp_path, _config())
    assert session_logger.data_path == tmp_path / "Steve-1700000000000"
    assert session_logger.log_path == tmp_path / "Steve-1700000000000" / "packets.log"


def test_start_disabled_touches_nothing(tmp_path):
    scheduler = RecordingScheduler()
    session_logger = _logger(tmp_path, _config(logging_packets=False), scheduler)

    session_logger.start()

    assert not session_logger.data_path.exists()
    assert scheduler.scheduled == []
    assert not session_logger.started


def test_start_creates_directory_and_schedules_flush(tmp_path):
    scheduler = RecordingScheduler()
    session_logger = _logger(tmp_path, _config(), scheduler)

    session_logger.start()

    assert session_logger.data_path.is_dir()
    assert len(scheduler.scheduled) == 1
    callback, initial_delay, period, run_on_shutdown = scheduler.scheduled[0]
    assert callback == session_logger.flush
    assert (initial_delay, period) == (5.0, 5.0)
    assert run_on_shutdown is True


def test_console_only_schedules_without_directory(tmp_path):
    scheduler = RecordingScheduler()
    session_logger = _logger(tmp_path, _config(file=False, console=True), scheduler)

    session_logger.start()

    assert not session_logger.data_path.exists()
    assert len(scheduler.scheduled) == 1


def test_directory_creation_failure_is_fatal(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    session_logger = SessionLogger(_config(), blocker, "Steve", 1, scheduler=RecordingScheduler())

    with pytest.raises(SessionLoggerError):
        session_logger.start()


def test_flush_writes_non_ignored_packets_in_capture_order(tmp_path, monkeypatch):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    _freeze_clock(monkeypatch, T0, T0 + timedelta(milliseconds=1), T0 + timedelta(milliseconds=2))

    session = FakeSession()
    session_logger.log_packet(session, Ping(1), True)
    session_logger.log_packet(session, Ignored(), False)
    session_logger.log_packet(session, Ping(2), False)

    assert session_logger.flush() == 2
    assert session_logger.log_path.read_text(encoding="utf-8").splitlines() == [
        "[09:04:07:045] [SERVER BOUND] - Ping(sequence=1)",
        "[09:04:07:046] [CLIENT BOUND] - Ping(sequence=2)",
    ]


def test_ignored_packets_skip_formatting(tmp_path, monkeypatch):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()

    def _fail():
        raise AssertionError("clock read for an ignored packet")

    monkeypatch.setattr(CaptureClock, "now", _fail)
    session_logger.log_packet(FakeSession(), Ignored(), True)

    assert session_logger.pending_lines == 0


def test_flush_appends_across_batches(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    session = FakeSession()

    session_logger.log_packet(session, Ping(1), True)
    session_logger.flush()
    session_logger.log_packet(session, Ping(2), True)
    session_logger.flush()
    session_logger.flush()

    lines = session_logger.log_path.read_text(encoding="utf-8").splitlines()
    assert [line.split(" - ")[1] for line in lines] == ["Ping(sequence=1)", "Ping(sequence=2)"]


def test_timestamp_is_capture_time_not_flush_time(tmp_path, monkeypatch):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    _freeze_clock(monkeypatch, T0)

    session_logger.log_packet(FakeSession(), Ping(), True)
    monkeypatch.setattr(CaptureClock, "now", lambda: T0 + timedelta(hours=1))
    session_logger.flush()

    assert session_logger.log_path.read_text(encoding="utf-8").startswith("[09:04:07:045]")


def test_structured_lines_render_vectors(tmp_path):
    session_logger = _logger(tmp_path, _config(json_lines=True))
    session_logger.start()

    session_logger.log_packet(FakeSession(), MovePlayer(Vector3i(1, 2, 3)), True)
    session_logger.flush()

    text = session_logger.log_path.read_text(encoding="utf-8")
    payload = json.loads(text.split(" - ", 1)[1])
    assert payload == {"position": {"x": 1, "y": 2, "z": 3}}


def test_console_output_is_immediate(tmp_path, capsys):
    session_logger = _logger(tmp_path, _config(console=True))
    session_logger.start()

    session_logger.log_packet(FakeSession(), Ping(7), False)

    out = capsys.readouterr().out
    assert "[CLIENT BOUND] - Ping(sequence=7)" in out
    assert not session_logger.log_path.exists()


def test_disabled_logging_buffers_nothing_but_still_traces(tmp_path, caplog):
    session_logger = _logger(tmp_path, _config(logging_packets=False))
    session_logger.start()

    with caplog.at_level(logging.DEBUG, logger="packet_log.core.session_logger"):
        session_logger.log_packet(FakeSession(is_logging=True), Ping(4), True)

    assert session_logger.pending_lines == 0
    assert "SERVER BOUND ('127.0.0.1', 19132): Ping(sequence=4)" in caplog.text


def test_trace_requires_session_flag(tmp_path, caplog):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()

    with caplog.at_level(logging.DEBUG, logger="packet_log.core.session_logger"):
        session_logger.log_packet(FakeSession(is_logging=False), Ping(4), True)

    assert "Ping(sequence=4)" not in caplog.text


def test_flush_without_file_destination_drains(tmp_path):
    session_logger = _logger(tmp_path, _config(file=False, console=True))
    session_logger.start()
    session_logger.log_packet(FakeSession(), Ping(), True)

    assert session_logger.flush() == 0
    assert session_logger.pending_lines == 0
    assert not session_logger.log_path.exists()


def test_flush_failure_drops_batch_without_raising(tmp_path, caplog):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    session = FakeSession()
    session_logger.log_path.mkdir()

    session_logger.log_packet(session, Ping(1), True)
    assert session_logger.flush() == 0
    assert "Unable to flush packet log" in caplog.text
    assert session_logger.pending_lines == 0

    session_logger.log_path.rmdir()
    session_logger.log_packet(session, Ping(2), True)
    session_logger.flush()

    lines = session_logger.log_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("Ping(sequence=2)")


def test_save_image_overwrites(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()

    session_logger.save_image("skin", Image.new("RGB", (2, 2), (255, 0, 0)))
    path = session_logger.save_image("skin", Image.new("RGB", (3, 1), (0, 0, 255)))

    assert path == session_logger.data_path / "skin.png"
    with Image.open(path) as saved:
        assert saved.size == (3, 1)
        assert saved.getpixel((0, 0)) == (0, 0, 255)


def test_save_image_accepts_numpy_arrays(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    pixels = np.zeros((4, 4, 4), dtype=np.uint8)
    pixels[..., 3] = 255

    path = session_logger.save_image("cape", pixels)

    with Image.open(path) as saved:
        assert saved.mode == "RGBA"
        assert saved.size == (4, 4)


def test_save_image_without_directory_is_fatal(tmp_path):
    session_logger = _logger(tmp_path, _config())

    with pytest.raises(SessionLoggerError):
        session_logger.save_image("skin", Image.new("RGB", (1, 1)))


def test_save_json_pretty_prints_documents(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()

    path = session_logger.save_json("geometry", {"origin": Vector3i(0, 64, 0), "bones": []})

    text = path.read_text(encoding="utf-8")
    assert path.name == "geometry.json"
    assert json.loads(text) == {"origin": {"x": 0, "y": 64, "z": 0}, "bones": []}
    assert text.startswith("{\n  ")


def test_save_json_bytes_writes_verbatim_and_overwrites(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()

    session_logger.save_json_bytes("geometry", b'{"old": true, "padding": "xxxxxxxx"}')
    path = session_logger.save_json_bytes("geometry", b'{"new":1}')

    assert path.read_bytes() == b'{"new":1}'


def test_close_flushes_and_cancels(tmp_path):
    scheduler = FlushScheduler(name="test-close")
    try:
        with SessionLogger(_config(), tmp_path, "Alex", 2, scheduler=scheduler) as session_logger:
            session_logger.log_packet(FakeSession(), Ping(9), True)
            assert scheduler.task_count == 1
        assert session_logger.closed
        assert scheduler.task_count == 0
        assert session_logger.log_path.read_text(encoding="utf-8").rstrip().endswith("Ping(sequence=9)")
    finally:
        scheduler.shutdown()


def test_scheduler_shutdown_flushes_live_loggers(tmp_path):
    scheduler = FlushScheduler(name="test-exit")
    session_logger = SessionLogger(_config(), tmp_path, "Alex", 3, scheduler=scheduler)
    session_logger.start()
    session_logger.log_packet(FakeSession(), Ping(5), False)

    scheduler.shutdown()

    assert "Ping(sequence=5)" in session_logger.log_path.read_text(encoding="utf-8")


def test_scheduled_flush_reaches_file(tmp_path):
    config = _config()
    config.packet_logging.flush_interval_s = 0.02
    scheduler = FlushScheduler(name="test-timer")
    flushed = threading.Event()
    session_logger = SessionLogger(config, tmp_path, "Alex", 4, scheduler=scheduler)
    original_flush = session_logger.flush

    def flush_and_signal():
        written = original_flush()
        if written:
            flushed.set()
        return written

    session_logger.flush = flush_and_signal
    try:
        session_logger.start()
        session_logger.log_packet(FakeSession(), Ping(1), True)
        assert flushed.wait(2)
        assert session_logger.log_path.read_text(encoding="utf-8").strip().endswith("Ping(sequence=1)")
    finally:
        scheduler.shutdown()


def test_concurrent_capture_loses_nothing(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    session = FakeSession()
    per_thread = 500

    def produce(offset: int) -> None:
        for n in range(per_thread):
            session_logger.log_packet(session, Ping(offset + n), True)

    threads = [threading.Thread(target=produce, args=(i * per_thread,)) for i in range(4)]
    for thread in threads:
        thread.start()
    while any(thread.is_alive() for thread in threads):
        session_logger.flush()
    for thread in threads:
        thread.join()
    session_logger.flush()

    lines = session_logger.log_path.read_text(encoding="utf-8").splitlines()
    sequences = sorted(int(line.rsplit("=", 1)[1].rstrip(")")) for line in lines)
    assert sequences == list(range(4 * per_thread))


def test_custom_packet_filter(tmp_path):
    session_logger = SessionLogger(
        _config(ignored=()),
        tmp_path,
        "Steve",
        5,
        packet_filter=PacketFilter({"Ping"}),
        scheduler=RecordingScheduler(),
    )
    session_logger.start()

    session_logger.log_packet(FakeSession(), Ping(), True)
    session_logger.log_packet(FakeSession(), Ignored(), True)

    assert session_logger.pending_lines == 1


def test_close_waits_for_running_flush_and_keeps_capture_order(tmp_path, monkeypatch):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    session = FakeSession()
    session_logger.log_packet(session, Ping(1), True)
    session_logger.log_packet(session, Ping(2), True)

    real_open = Path.open
    writing = threading.Event()

    def slow_open(path, *args, **kwargs):
        if path == session_logger.log_path and not writing.is_set():
            writing.set()
            time.sleep(0.3)
        return real_open(path, *args, **kwargs)

    monkeypatch.setattr(Path, "open", slow_open)
    timer_flush = threading.Thread(target=session_logger.flush)
    timer_flush.start()
    assert writing.wait(2)

    session_logger.log_packet(session, Ping(3), True)
    session_logger.close()
    timer_flush.join()

    lines = session_logger.log_path.read_text(encoding="utf-8").splitlines()
    assert [line.rsplit("=", 1)[1].rstrip(")") for line in lines] == ["1", "2", "3"]


def test_packets_after_close_are_dropped(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    session_logger.log_packet(FakeSession(), Ping(1), True)
    session_logger.close()

    session_logger.log_packet(FakeSession(), Ping(2), True)

    assert session_logger.pending_lines == 0
    assert session_logger.log_path.read_text(encoding="utf-8").splitlines()[-1].endswith("Ping(sequence=1)")


def test_failed_image_encoding_keeps_previous_artifact(tmp_path):
    session_logger = _logger(tmp_path, _config())
    session_logger.start()
    path = session_logger.save_image("skin", Image.new("RGB", (2, 2), (255, 0, 0)))
    previous = path.read_bytes()

    with pytest.raises(SessionLoggerError, match="encode"):
        session_logger.save_image("skin", Image.new("CMYK", (2, 2)))

    assert path.read_bytes() == previous
