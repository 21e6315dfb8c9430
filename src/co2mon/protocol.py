"""Frame encoding and decoding for the MH-Z14A serial protocol.

Every frame on the wire is nine bytes in either direction:
START (0xFF), ADDR or CMD, CMD or data, payload, CHECKSUM.

Host-to-sensor commands carry the address 0x01 at offset 1 and the
command code at offset 2.  Sensor replies carry the command code at
offset 1 and the data starting at offset 2; for a CO2 reading the
concentration is big-endian in offsets 2-3.

The checksum byte is the two's-complement negation of the low byte of
the sum of offsets 1-7, so the sum of all nine bytes of a good frame
is 0xFF modulo 256.
"""

import enum
import logging

log = logging.getLogger(__name__)

# -- Protocol constants ------------------------------------------------------

PROTO_START = 0xFF
PROTO_ADDR = 0x01
PROTO_FRAME_LEN = 9

PROTO_CMD_READ_CO2 = 0x86
PROTO_CMD_ABC_OFF = 0x79
PROTO_CMD_SET_RANGE = 0x99

# Detection ranges (ppm) accepted by the set-range command.
PROTO_RANGES = (2000, 5000, 10000)

# Fixed commands, checksum precomputed.
READ_CO2_FRAME = bytes([0xFF, 0x01, 0x86, 0x00, 0x00, 0x00, 0x00, 0x00, 0x79])
ABC_OFF_FRAME = bytes([0xFF, 0x01, 0x79, 0x00, 0x00, 0x00, 0x00, 0x00, 0x86])

# Body is everything between START and CHECKSUM.
_BODY_LEN = PROTO_FRAME_LEN - 2


class PacketKind(enum.Enum):
    """Classification of a received frame by its command byte."""

    CO2_LEVEL = PROTO_CMD_READ_CO2
    ABC_OFF = PROTO_CMD_ABC_OFF
    SET_RANGE = PROTO_CMD_SET_RANGE
    OTHER = -1


class InvalidRange(ValueError):
    """Raised by set_range() for a detection range the sensor does not support."""

    def __init__(self, ppm):
        self.ppm = ppm
        super().__init__(
            "range must be one of {}, got {}".format(
                ", ".join(str(r) for r in PROTO_RANGES), ppm
            )
        )


def classify(code: int) -> PacketKind:
    """Map a command byte to its PacketKind, OTHER if unknown."""
    try:
        return PacketKind(code)
    except ValueError:
        return PacketKind.OTHER


# -- Checksum ----------------------------------------------------------------


def checksum(body: bytes) -> int:
    """Compute the frame checksum over *body* (frame offsets 1-7).

    Example:
        >>> hex(checksum(bytes([0x01, 0x86, 0, 0, 0, 0, 0])))
        '0x79'
    """
    return -sum(body) & 0xFF


def is_valid_frame(frame: bytes) -> bool:
    """Check length, START byte and checksum of a complete frame."""
    return (
        len(frame) == PROTO_FRAME_LEN
        and frame[0] == PROTO_START
        and sum(frame) & 0xFF == 0xFF
    )


# -- Encoding ----------------------------------------------------------------


def encode_frame(body: bytes) -> bytes:
    """Build a complete frame: START + body padded to 7 bytes + CHECKSUM.

    Raises:
        ValueError: If *body* is longer than 7 bytes.
    """
    if len(body) > _BODY_LEN:
        raise ValueError(
            "frame body must be at most {} bytes, got {}".format(
                _BODY_LEN, len(body)
            )
        )
    body = bytes(body) + bytes(_BODY_LEN - len(body))
    return bytes([PROTO_START]) + body + bytes([checksum(body)])


def encode_command(cmd: int, data: bytes = b"") -> bytes:
    """Build a host-to-sensor command frame for *cmd* with optional *data*."""
    return encode_frame(bytes([PROTO_ADDR, cmd]) + data)


# -- Codec -------------------------------------------------------------------

# Receive positions.  States 5-8 are payload bytes consumed without
# interpretation.
_STATE_START = 1
_STATE_CMD = 2
_STATE_HIGH = 3
_STATE_LOW = 4
_STATE_CHECKSUM = 9


class PacketCodec:
    """Send commands to the sensor and decode its reply stream.

    Outbound frames are written to the link in a single call.  Inbound
    bytes are consumed one at a time by receive(), which runs the
    framing state machine and returns the kind of each frame that
    completes with a good checksum.

    Args:
        link: Object with ``read_byte()`` returning an int or None and
            ``write(data)``.

    Attributes:
        co2_level: Most recent accepted CO2 concentration in ppm, or
            None before the first reading.
    """

    def __init__(self, link):
        """Initialize with the receiver waiting for a START byte."""
        self._link = link
        self.co2_level: int | None = None
        self._state = _STATE_START
        self._checksum = 0
        self._packet: PacketKind | None = None
        self._high = 0
        self._low = 0

    # -- Commands --

    def request_co2_level(self) -> None:
        """Ask the sensor for a CO2 reading."""
        self._link.write(READ_CO2_FRAME)

    def abc_off(self) -> None:
        """Turn off the sensor's automatic baseline correction."""
        self._link.write(ABC_OFF_FRAME)

    def set_range(self, ppm: int) -> None:
        """Set the detection range to *ppm* (2000, 5000 or 10000).

        Raises:
            InvalidRange: If *ppm* is not a supported range.  Nothing
                is written in that case.
        """
        if ppm not in PROTO_RANGES:
            raise InvalidRange(ppm)
        self._link.write(
            encode_command(PROTO_CMD_SET_RANGE, bytes([ppm >> 8, ppm & 0xFF]))
        )

    # -- Receiving --

    def receive(self) -> PacketKind | None:
        """Consume at most one byte from the link.

        Returns the PacketKind of a frame whose checksum byte was just
        received and validated, otherwise None.  Malformed input never
        raises; a bad frame is dropped and the receiver waits for the
        next START byte.
        """
        c = self._link.read_byte()
        if c is None:
            return None

        log.debug("rx %d (state %d)", c, self._state)
        self._checksum = (self._checksum + c) & 0xFF
        state = self._state

        if state == _STATE_START:
            # Anything but START is line noise; stay put.
            if c == PROTO_START:
                self._checksum = c
                self._state = _STATE_CMD
        elif state == _STATE_CMD:
            self._packet = classify(c)
            self._state = _STATE_HIGH
        elif state == _STATE_HIGH:
            self._high = c
            self._state = _STATE_LOW
        elif state == _STATE_LOW:
            self._low = c
            self._state = _STATE_LOW + 1
        elif state < _STATE_CHECKSUM:
            self._state += 1
        else:
            self._state = _STATE_START
            return self._end_frame()

        return None

    def _end_frame(self) -> PacketKind | None:
        """Validate the running checksum at the end of a frame."""
        packet = self._packet
        log.debug("frame end: checksum=%d packet=%s", self._checksum, packet)

        if self._checksum != 0xFF:
            log.debug("checksum failure: sum 0x%02X, dropping frame", self._checksum)
            return None

        if packet is PacketKind.CO2_LEVEL:
            self.co2_level = (self._high << 8) | self._low
        elif packet is PacketKind.OTHER:
            log.debug("frame with unknown command")

        return packet
