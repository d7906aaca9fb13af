import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from identity_service.services._shared.ports import DomainEvent, EventPublisher, EventPublishFailed

log = logging.getLogger(__name__)


class RedisStreamEventPublisher(EventPublisher):
    """
    Publish events to Redis Streams, one stream per topic.

    Entries are appended with ``XADD <prefix><topic>`` and carry a ``payload``
    field (JSON) plus a ``key`` field when the event is keyed. ``XADD``
    returning an entry id is the broker acknowledgement; the client's socket
    timeout bounds how long a publish may block.
    """

    def __init__(
        self,
        r: redis.Redis,
        *,
        stream_prefix: str = "events:",
        maxlen: int | None = None,
        async_workers: int = 2,
    ):
        self.r = r
        self.stream_prefix = stream_prefix
        self.maxlen = maxlen
        self._executor = ThreadPoolExecutor(
            max_workers=async_workers, thread_name_prefix="event-publisher"
        )

    def _stream(self, topic: str) -> str:
        return f"{self.stream_prefix}{topic}"

    def _xadd(self, topic: str, key: str | None, event: DomainEvent) -> str:
        fields: dict[str, Any] = {"payload": json.dumps(event.to_payload(), sort_keys=True)}
        if key is not None:
            fields["key"] = key
        try:
            entry_id = self.r.xadd(
                self._stream(topic), fields, maxlen=self.maxlen, approximate=True
            )
        except RedisError as exc:
            raise EventPublishFailed(f"XADD to {self._stream(topic)!r} failed: {exc}") from exc
        if not entry_id:
            raise EventPublishFailed(f"XADD to {self._stream(topic)!r} was not acknowledged")
        return entry_id.decode() if isinstance(entry_id, bytes) else str(entry_id)

    def publish(self, topic: str, event: DomainEvent) -> None:
        entry_id = self._xadd(topic, None, event)
        log.debug("Published event %s", entry_id, extra={"topic": topic})

    def publish_with_key(self, topic: str, key: str, event: DomainEvent) -> None:
        entry_id = self._xadd(topic, key, event)
        log.debug("Published keyed event %s", entry_id, extra={"topic": topic})

    def publish_async(self, topic: str, event: DomainEvent) -> None:
        future = self._executor.submit(self._xadd, topic, None, event)
        future.add_done_callback(lambda f: self._log_async_failure(topic, f))

    @staticmethod
    def _log_async_failure(topic: str, future) -> None:
        exc = future.exception()
        if exc is not None:
            log.error("Asynchronous publish failed: %s", exc, extra={"topic": topic})

    def close(self, wait: bool = True) -> None:
        """Stop the async worker pool."""
        self._executor.shutdown(wait=wait)
