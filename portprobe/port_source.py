"""
Port Source - Hands out the ports of a range to concurrent workers
"""

import threading
from typing import Iterator, Optional


class PortSource:
    """
    Thread-safe, ascending supply of the ports in [start, end].

    Every port is returned by next_port() exactly once, whichever worker asks.
    The range is assumed to be validated already.
    """

    def __init__(self, start: int, end: int):
        self.start = start
        self.end = end
        self._next = start
        self._lock = threading.Lock()

    def next_port(self) -> Optional[int]:
        """
        Take the next port.

        Returns:
            Optional[int]: The next unclaimed port, or None once the range is drained
        """
        with self._lock:
            if self._next > self.end:
                return None
            port = self._next
            self._next += 1
            return port

    @property
    def remaining(self) -> int:
        with self._lock:
            return max(0, self.end - self._next + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __iter__(self) -> Iterator[int]:
        while True:
            port = self.next_port()
            if port is None:
                return
            yield port
