from __future__ import annotations

import io
import json
import queue
from datetime import datetime, timezone
from unittest.mock import MagicMock

from airthings_poller.config import Settings
from airthings_poller.models import Device, Event, Sample, Secret
from airthings_poller.sinks import FileSink, QueueSink, RedisSink, StreamSink, build_envelope, build_sink


def _event() -> Event:
    return Event.build(Device(id="1", device_type="WAVE_MINI", segment="s", location="l"), Sample(time=100, metrics={"temp": 21.5}))


def test_envelope_nests_event_and_decorates() -> None:
    now = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    env = build_envelope(_event(), tags=["airthings"], add_field={"site": "hq", "airthings": "ignored"}, now=now)

    assert env["@timestamp"] == "2026-10-18T12:00:00+00:00"
    assert env["airthings"]["device"] == {"id": "1", "type": "WAVE_MINI", "segment": "s", "location": "l"}
    assert env["tags"] == ["airthings"]
    assert env["site"] == "hq"


def test_envelope_without_tags_has_no_tags_key() -> None:
    assert "tags" not in build_envelope(_event())


def test_stream_sink_writes_json_lines() -> None:
    buf = io.StringIO()
    sink = StreamSink(buf)

    sink.emit({"a": 1})
    sink.emit({"b": 2})

    assert [json.loads(line) for line in buf.getvalue().splitlines()] == [{"a": 1}, {"b": 2}]


def test_file_sink_appends_and_creates_parent_dirs(tmp_path) -> None:
    path = tmp_path / "out" / "events.jsonl"
    sink = FileSink(str(path))

    sink.emit({"n": 1})
    sink.close()
    sink.emit({"n": 2})
    sink.close()

    assert [json.loads(line)["n"] for line in path.read_text(encoding="utf-8").splitlines()] == [1, 2]


def test_queue_sink_puts_envelopes() -> None:
    q: queue.Queue = queue.Queue()
    QueueSink(q).emit({"x": 1})
    assert q.get_nowait() == {"x": 1}


def test_redis_sink_pushes_json_onto_list() -> None:
    client = MagicMock()
    sink = RedisSink("redis://localhost:6379/0", "airthings:events", client=client)

    sink.emit({"x": 1})
    sink.close()

    client.rpush.assert_called_once_with("airthings:events", json.dumps({"x": 1}))
    client.close.assert_called_once_with()


def test_build_sink_selects_backend(tmp_path) -> None:
    base = {"client_id": "id", "client_secret": Secret("s")}

    assert isinstance(build_sink(Settings(**base)), StreamSink)
    assert isinstance(build_sink(Settings(**base, sink="file", sink_path=str(tmp_path / "e.jsonl"))), FileSink)
    assert isinstance(build_sink(Settings(**base, sink="redis")), RedisSink)
