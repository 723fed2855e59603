"""Registry of open streams on a domain's character devices.

A console or serial port can only be attached to one client stream at a
time. Each domain owns one registry; opening an already attached device
fails unless the caller forces it, in which case the previous stream is
closed first.
"""

from __future__ import annotations

import logging
import threading

from chdomain.errors import ConsoleBusyError

logger = logging.getLogger(__name__)


class CharDeviceRegistry:
    """Thread-safe table of device path -> active stream."""

    def __init__(self):
        self._streams: dict[str, object] = {}
        self._lock = threading.Lock()

    def open(self, path: str, stream: object, force: bool = False) -> None:
        """Attach a stream to a character device path.

        Raises:
            ConsoleBusyError: The path already has a stream and force is False
        """
        with self._lock:
            previous = self._streams.get(path)
            if previous is not None and not force:
                raise ConsoleBusyError(path)
            self._streams[path] = stream
        if previous is not None:
            logger.info(f"Forcing takeover of console stream on {path}")
            _close_stream(previous)

    def close(self, path: str) -> object | None:
        """Detach and return the stream on path, if any."""
        with self._lock:
            stream = self._streams.pop(path, None)
        if stream is not None:
            logger.debug(f"Detached console stream on {path}")
        return stream

    def active_paths(self) -> list[str]:
        """Return a snapshot of attached device paths."""
        with self._lock:
            return list(self._streams.keys())

    def free(self) -> None:
        """Close every attached stream."""
        with self._lock:
            streams = list(self._streams.values())
            self._streams.clear()
        for stream in streams:
            _close_stream(stream)


def _close_stream(stream: object) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        close()
    except OSError as e:
        logger.debug(f"Error closing console stream: {e}")
