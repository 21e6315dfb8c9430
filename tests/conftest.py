"""Shared test doubles for co2mon tests."""

import random
from collections import deque

from co2mon.protocol import encode_frame
from co2mon.simulator import respond


def make_reply(cmd: int, data: bytes = b"") -> bytes:
    """Build a valid sensor-to-host frame for *cmd*."""
    return encode_frame(bytes([cmd]) + data)


class FakeLink:
    """Test double for SerialLink: canned input bytes, records writes."""

    def __init__(self, data: bytes = b""):
        """Initialize with bytes to hand out one at a time."""
        self._rx = deque(data)
        self.written = []
        self.reads = 0
        self.closed = False

    def feed(self, data: bytes) -> None:
        """Queue more input bytes."""
        self._rx.extend(data)

    def pending(self) -> int:
        """Number of input bytes not yet read."""
        return len(self._rx)

    def read_byte(self) -> int | None:
        """Return the next queued byte, or None when drained."""
        self.reads += 1
        if self._rx:
            return self._rx.popleft()
        return None

    def write(self, data: bytes) -> None:
        """Record *data* for later inspection."""
        self.written.append(bytes(data))

    def close(self) -> None:
        """Mark the link closed."""
        self.closed = True

    def __enter__(self) -> "FakeLink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SensorLink(FakeLink):
    """FakeLink that answers each written command like the simulator.

    Commands listed in *silent* get no reply.
    """

    def __init__(self, silent: tuple[int, ...] = (), seed: int = 1):
        super().__init__()
        self._silent = silent
        self._rng = random.Random(seed)

    def write(self, data: bytes) -> None:
        """Record *data* and queue the simulated reply."""
        super().write(data)
        if data[2] in self._silent:
            return
        reply = respond(bytes(data), self._rng)
        if reply is not None:
            self.feed(reply)


class FakeClock:
    """Monotonic clock that advances by *step* seconds on every call."""

    def __init__(self, step: float = 0.1, start: float = 1000.0):
        self.now = start
        self._step = step

    def __call__(self) -> float:
        t = self.now
        self.now += self._step
        return t
