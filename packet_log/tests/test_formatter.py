from dataclasses import dataclass
from datetime import datetime

from packet_log.models import Vector3i
from packet_log.serialization import (
    DefaultTextRenderer,
    Direction,
    EventFormatter,
    StructuredRenderer,
    format_line,
    renderer_for,
)
from packet_log.utils.time_utils import format_capture_time


@dataclass
class Ping:
    sequence: int


CAPTURED = datetime(2024, 5, 17, 9, 4, 7, 45_000)


def test_direction_from_upstream_flag():
    assert Direction.from_upstream(True).value == "SERVER BOUND"
    assert Direction.from_upstream(False).value == "CLIENT BOUND"


def test_capture_time_has_millisecond_field():
    assert format_capture_time(CAPTURED) == "09:04:07:045"


def test_default_text_line():
    line = format_line(CAPTURED, True, Ping(3), use_structured=False)
    assert line == "[09:04:07:045] [SERVER BOUND] - Ping(sequence=3)"


def test_structured_line_embeds_pretty_json():
    line = format_line(CAPTURED, False, {"at": Vector3i(1, 2, 3)}, use_structured=True)
    assert line.startswith("[09:04:07:045] [CLIENT BOUND] - {\n")
    assert '"x": 1' in line
    assert line.count("\n") > 1


def test_renderer_selection():
    assert isinstance(renderer_for(False), DefaultTextRenderer)
    assert isinstance(renderer_for(True), StructuredRenderer)


def test_formatter_uses_given_timestamp_not_current_time():
    formatter = EventFormatter(DefaultTextRenderer())
    earlier = datetime(2000, 1, 1, 23, 59, 59, 999_999)
    assert formatter.format(earlier, True, "x").startswith("[23:59:59:999]")
