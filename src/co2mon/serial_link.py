"""Serial link to the CO2 sensor.

Wraps pyserial to move single bytes in and whole frames out over a
9600 baud 8N1 line.  Reads are bounded by a short timeout so the
caller's loop keeps turning when the sensor is quiet.

Example:
    >>> from co2mon.serial_link import SerialLink
    >>> with SerialLink("/dev/ttyUSB0") as link:
    ...     link.write(frame_bytes)
    ...     c = link.read_byte()
"""

import logging

import serial

from co2mon.config import BAUDRATE, TIMEOUT_MS

log = logging.getLogger(__name__)


class LinkOpenError(OSError):
    """Raised when the serial device cannot be opened or configured."""

    def __init__(self, port: str, reason):
        self.port = port
        super().__init__("cannot open serial device %s: %s" % (port, reason))


class SerialLink:
    """Full-duplex byte channel to the sensor.

    Duck-typed -- tests can substitute any object with matching
    ``read_byte()`` and ``write(data)`` methods.

    Args:
        port: Serial port device path (e.g. ``"/dev/ttyUSB0"``).
        baudrate: Baud rate (the sensor talks at 9600).
        timeout_ms: Longest a single read waits for a byte.

    Raises:
        LinkOpenError: If the port cannot be opened.
    """

    def __init__(self, port: str, baudrate: int = BAUDRATE,
                 timeout_ms: int = TIMEOUT_MS):
        """Open and configure the serial port, discarding stale input."""
        try:
            self._ser = serial.Serial(
                port,
                baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=False,
                rtscts=False,
                timeout=timeout_ms / 1000.0,
            )
        except (serial.SerialException, ValueError) as exc:
            raise LinkOpenError(port, exc) from exc
        try:
            self._ser.reset_input_buffer()
        except serial.SerialException as exc:
            self._ser.close()
            raise LinkOpenError(port, exc) from exc
        self.port = port

    def read_byte(self) -> int | None:
        """Read one byte, or return None if nothing arrives in time.

        Read errors are treated like a quiet line; the receiver picks
        up again from the next good frame.
        """
        try:
            data = self._ser.read(1)
        except serial.SerialException as exc:
            log.debug("read error on %s: %s", self.port, exc)
            return None
        if not data:
            return None
        return data[0]

    def write(self, data: bytes) -> None:
        """Write a whole frame and wait for it to leave the port."""
        self._ser.write(data)
        self._ser.flush()

    def __enter__(self) -> "SerialLink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the serial port."""
        self._ser.close()
