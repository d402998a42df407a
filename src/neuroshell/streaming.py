"""Bounded, cancellable stream of completion chunks."""

import logging
import queue
import threading
from typing import Callable, Iterator, Optional

from .models import StreamChunk

logger = logging.getLogger(__name__)

Emit = Callable[[str], bool]

_PUT_POLL_SECONDS = 0.05


def _put(q: queue.Queue, stop: threading.Event, chunk: StreamChunk) -> bool:
    while not stop.is_set():
        try:
            q.put(chunk, timeout=_PUT_POLL_SECONDS)
            return True
        except queue.Full:
            continue
    return False


def _run(producer: Callable[[Emit], None], q: queue.Queue, stop: threading.Event):
    def emit(text: str) -> bool:
        if not text:
            return not stop.is_set()
        return _put(q, stop, StreamChunk(content=text))

    error: Optional[Exception] = None
    try:
        producer(emit)
    except Exception as e:
        logger.error(f"Stream producer failed: {e}")
        error = e
    _put(q, stop, StreamChunk(done=True, error=error))


class ChunkStream:
    """Runs a producer on a worker thread and hands its chunks to the consumer.

    The producer is called with an ``emit(text) -> bool`` callable and should
    stop as soon as ``emit`` returns False, which happens once the consumer has
    closed the stream. Whatever happens inside the producer, exactly one
    terminal chunk (``done=True``, possibly carrying the raised exception) is
    queued after the content chunks.

    Use it as an iterator, or as a context manager so that leaving the block
    early releases the worker:

    >>> with client.stream_chat_completion(session, config) as stream:
    ...     for chunk in stream:
    ...         print(chunk.content, end="")
    """

    def __init__(self, producer: Callable[[Emit], None], maxsize: int = 64):
        self._queue: "queue.Queue[StreamChunk]" = queue.Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._finished = False
        # the worker must not reference self, so an abandoned stream can be collected
        self._thread = threading.Thread(
            target=_run,
            args=(producer, self._queue, self._stop),
            name="neuroshell-stream",
            daemon=True,
        )
        self._thread.start()

    def __del__(self):
        self._stop.set()

    @property
    def closed(self) -> bool:
        return self._stop.is_set()

    def __iter__(self) -> Iterator[StreamChunk]:
        while not self._finished and not self._stop.is_set():
            try:
                chunk = self._queue.get(timeout=_PUT_POLL_SECONDS)
            except queue.Empty:
                continue
            if chunk.done:
                self._finished = True
            yield chunk

    def text(self) -> str:
        """Drains the stream and returns the joined content.

        Raises the terminal chunk's error, if any.
        """
        parts = []
        for chunk in self:
            if chunk.error is not None:
                raise chunk.error
            parts.append(chunk.content)
        return "".join(parts)

    def close(self):
        """Stops the producer and discards anything still queued."""
        self._stop.set()
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break

    def join(self, timeout: Optional[float] = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def __enter__(self) -> "ChunkStream":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
