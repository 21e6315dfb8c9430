"""Sensor session -- startup handshake and the reporting loop.

Configures the sensor (ABC off, detection range), then requests a
reading every interval and writes each accepted CO2 level to the
output stream as a bare decimal line.
"""

import logging
import threading
import time

from co2mon.config import DEFAULT_RANGE, HANDSHAKE_TIMEOUT_S, POLL_INTERVAL_S
from co2mon.protocol import PacketKind

log = logging.getLogger(__name__)

_STEP_NAMES = {
    PacketKind.ABC_OFF: "ABC off",
    PacketKind.SET_RANGE: "Set range",
}


class HandshakeTimeout(RuntimeError):
    """The sensor did not acknowledge a configuration command in time.

    Attributes:
        step: PacketKind of the acknowledgement that never arrived.
    """

    def __init__(self, step: PacketKind, deadline: float):
        self.step = step
        super().__init__(
            "did not receive response from '%s' command within %gs"
            % (_STEP_NAMES[step], deadline)
        )


class Session:
    """Drives one sensor through a PacketCodec.

    Single-threaded: each loop iteration pumps the codec for at most
    one byte, then checks the clock for a due request.

    Args:
        codec: PacketCodec bound to the sensor link.
        out: Text stream that receives one line per reading.
        range_ppm: Detection range sent during the handshake.
        interval: Seconds between CO2 requests.
        deadline: Seconds to wait for each handshake acknowledgement.
        clock: Monotonic time source in seconds.
    """

    def __init__(self, codec, out, range_ppm: int = DEFAULT_RANGE,
                 interval: float = POLL_INTERVAL_S,
                 deadline: float = HANDSHAKE_TIMEOUT_S,
                 clock=time.monotonic):
        self._codec = codec
        self._out = out
        self._range = range_ppm
        self._interval = interval
        self._deadline = deadline
        self._clock = clock
        self.requests = 0

    def initialize(self, shutdown: threading.Event | None = None) -> bool:
        """Turn off ABC and set the detection range.

        Frames of other kinds arriving meanwhile are dropped.  Returns
        False, without sending anything further, if *shutdown* is set
        while waiting for an acknowledgement.

        Raises:
            HandshakeTimeout: If either command goes unacknowledged.
        """
        log.info("requesting ABC off")
        self._codec.abc_off()
        if not self._await(PacketKind.ABC_OFF, shutdown):
            return False

        log.info("setting range to %d ppm", self._range)
        self._codec.set_range(self._range)
        return self._await(PacketKind.SET_RANGE, shutdown)

    def _await(self, kind: PacketKind, shutdown) -> bool:
        """Pump the codec until *kind* arrives or the deadline passes."""
        start = self._clock()
        while self._clock() - start < self._deadline:
            if shutdown is not None and shutdown.is_set():
                log.info("shutdown while waiting for %s", _STEP_NAMES[kind])
                return False
            packet = self._codec.receive()
            if packet is kind:
                return True
            if packet is not None:
                log.debug("ignoring %s while waiting for %s", packet, kind)
        raise HandshakeTimeout(kind, self._deadline)

    def run(self, shutdown: threading.Event) -> int:
        """Report readings until *shutdown* is set.

        Requests are scheduled on a fixed grid starting at loop entry,
        independent of when (or whether) replies arrive.  Returns the
        number of readings written.
        """
        log.info("starting CO2 readings every %gs", self._interval)
        ref_time = self._clock()
        count = 0

        while not shutdown.is_set():
            if self._codec.receive() is PacketKind.CO2_LEVEL:
                print(self._codec.co2_level, file=self._out, flush=True)
                count += 1

            if self._clock() - ref_time > self._interval:
                log.debug("requesting CO2 level")
                self._codec.request_co2_level()
                self.requests += 1
                ref_time += self._interval

        return count
