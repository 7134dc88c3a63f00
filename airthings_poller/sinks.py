"""Output sinks for emitted events.

Every event is wrapped in a Logstash-style envelope before it leaves the
process:

    {"@timestamp": "...", "airthings": {device, time, metrics}, "tags": [...], **add_field}

Backends:
- stdout: JSON lines on standard output (default)
- file:   JSON lines appended to `sink_path`
- redis:  RPUSH onto a Redis list (lazy import; only needed when selected)
- QueueSink: in-process `queue.Queue`, for embedding the poller in another app
"""

from __future__ import annotations

import json
import logging
import queue
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Sequence, TextIO

from .config import Settings
from .models import Event

logger = logging.getLogger(__name__)


class Sink(Protocol):
    def emit(self, envelope: Dict[str, Any]) -> None: ...

    def close(self) -> None: ...


def build_envelope(
    event: Event,
    *,
    tags: Sequence[str] = (),
    add_field: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    ts = (now or datetime.now(timezone.utc)).isoformat()
    envelope: Dict[str, Any] = {"@timestamp": ts, "airthings": event.to_dict()}
    if tags:
        envelope["tags"] = list(tags)
    for key, value in (add_field or {}).items():
        # Decoration never overwrites the event itself.
        if key not in envelope:
            envelope[key] = value
    return envelope


class StreamSink:
    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    def emit(self, envelope: Dict[str, Any]) -> None:
        stream = self._stream or sys.stdout
        stream.write(json.dumps(envelope, default=str) + "\n")
        stream.flush()

    def close(self) -> None:
        pass


class FileSink:
    def __init__(self, path: str):
        self._path = Path(path)
        self._fh: Optional[TextIO] = None

    def emit(self, envelope: Dict[str, Any]) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "a", encoding="utf-8")
        self._fh.write(json.dumps(envelope, default=str) + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None


class QueueSink:
    def __init__(self, q: "queue.Queue[Dict[str, Any]]"):
        self._queue = q

    def emit(self, envelope: Dict[str, Any]) -> None:
        self._queue.put(envelope)

    def close(self) -> None:
        pass


class RedisSink:
    def __init__(self, redis_url: str, key: str, *, client: Any = None):
        self._redis_url = redis_url
        self._key = key
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            # Lazy import keeps the redis client optional for stdout/file deployments.
            from redis import Redis

            self._client = Redis.from_url(self._redis_url)
        return self._client

    def emit(self, envelope: Dict[str, Any]) -> None:
        self._get_client().rpush(self._key, json.dumps(envelope, default=str))

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def build_sink(settings: Settings) -> Sink:
    if settings.sink == "file":
        logger.info("Writing events to %s", settings.sink_path)
        return FileSink(settings.sink_path)
    if settings.sink == "redis":
        logger.info("Pushing events to redis list %s", settings.redis_key)
        return RedisSink(settings.redis_url, settings.redis_key)
    return StreamSink()
