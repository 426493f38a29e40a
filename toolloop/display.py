"""Throttled delivery of in-flight message snapshots."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from .segmenter import ContentBlock, segment_content

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_INTERVAL_S = 0.1


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    data = asdict(block)
    data["type"] = type(block).__name__.removesuffix("Block").lower()
    if "status" in data:
        data["status"] = data["status"].value
    return data


@dataclass(frozen=True)
class MessageSnapshot:
    """Immutable copy of the assistant message at one point in time."""

    message_id: str
    content: str
    status: str
    blocks: tuple[ContentBlock, ...] = field(default_factory=tuple)

    @classmethod
    def capture(cls, message_id: str, content: str, status: str) -> MessageSnapshot:
        streaming = status == "streaming"
        return cls(message_id, content, status, tuple(segment_content(content, streaming)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "content": self.content,
            "status": self.status,
            "blocks": [block_to_dict(block) for block in self.blocks],
        }


class StreamingDisplay:
    """Coalesce message updates into at most one delivery per interval.

    :meth:`update` records only the newest content and arms a timer if none
    is pending; the snapshot (and its segmentation) is built when the timer
    fires.  :meth:`flush` delivers immediately and disarms the timer;
    :meth:`cancel` disarms it and drops whatever was pending.
    """

    def __init__(
        self,
        sink: Callable[[MessageSnapshot], None],
        interval: float = DEFAULT_UPDATE_INTERVAL_S,
    ) -> None:
        self.sink = sink
        self.interval = interval
        self._pending: tuple[str, str, str] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.deliveries = 0

    @property
    def has_pending(self) -> bool:
        return self._timer is not None

    def update(self, message_id: str, content: str, status: str = "streaming") -> None:
        self._pending = (message_id, content, status)
        if self._timer is None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.interval, self._fire)

    def flush(self, message_id: str, content: str, status: str) -> None:
        self.cancel()
        self._deliver(MessageSnapshot.capture(message_id, content, status))

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None

    def _fire(self) -> None:
        self._timer = None
        pending, self._pending = self._pending, None
        if pending is not None:
            self._deliver(MessageSnapshot.capture(*pending))

    def _deliver(self, snapshot: MessageSnapshot) -> None:
        self.deliveries += 1
        try:
            self.sink(snapshot)
        except Exception:
            logger.exception("Display sink failed for message %s", snapshot.message_id)
