"""Virtual MH-Z14A sensor for bench testing.

Listens on a serial port (typically one end of a socat PTY pair) and
answers the reporter's commands: CO2 reads get a random reading
between 400 and 2000 ppm, ABC-off and set-range get an
acknowledgement.

Usage:
    co2mon-sim <port> [--baudrate 9600]

Example:
    socat -d -d pty,raw,echo=0,link=/tmp/co2-host \\
                pty,raw,echo=0,link=/tmp/co2-sensor &
    co2mon-sim /tmp/co2-sensor &
    co2mon --port /tmp/co2-host
"""

import argparse
import logging
import random
import sys

from co2mon.config import BAUDRATE
from co2mon.protocol import (
    PROTO_CMD_ABC_OFF,
    PROTO_CMD_READ_CO2,
    PROTO_CMD_SET_RANGE,
    PROTO_FRAME_LEN,
    PROTO_START,
    encode_frame,
    is_valid_frame,
)
from co2mon.serial_link import LinkOpenError, SerialLink

log = logging.getLogger(__name__)

_PPM_MIN = 400
_PPM_MAX = 2000


class CommandFramer:
    """Collect incoming bytes into 9-byte command frames.

    Bytes are dropped until a START byte begins a frame; the next
    eight bytes complete it, whatever their value.
    """

    def __init__(self):
        self._buf = bytearray()

    def feed(self, c: int) -> bytes | None:
        """Add byte *c*; return the frame once nine bytes are collected."""
        if not self._buf and c != PROTO_START:
            return None
        self._buf.append(c)
        if len(self._buf) < PROTO_FRAME_LEN:
            return None
        frame = bytes(self._buf)
        self._buf.clear()
        return frame


def respond(frame: bytes, rng: random.Random) -> bytes | None:
    """Build the sensor's reply to a host command *frame*.

    Returns None for frames with a bad checksum or an unsupported
    command, which the real sensor ignores.
    """
    if not is_valid_frame(frame):
        log.debug("bad command frame: %s", frame.hex())
        return None

    cmd = frame[2]
    if cmd == PROTO_CMD_READ_CO2:
        ppm = rng.randint(_PPM_MIN, _PPM_MAX)
        log.info("reporting %d ppm", ppm)
        return encode_frame(bytes([cmd, ppm >> 8, ppm & 0xFF]))
    if cmd == PROTO_CMD_ABC_OFF:
        log.info("ABC off")
        return encode_frame(bytes([cmd]))
    if cmd == PROTO_CMD_SET_RANGE:
        log.info("range set to %d ppm", (frame[3] << 8) | frame[4])
        return encode_frame(bytes([cmd]))

    log.debug("unsupported command 0x%02X", cmd)
    return None


def run(port: str, baudrate: int) -> None:
    """Answer commands arriving on *port* until interrupted."""
    rng = random.Random()
    framer = CommandFramer()

    with SerialLink(port, baudrate) as link:
        log.info("listening on %s", port)
        try:
            while True:
                c = link.read_byte()
                if c is None:
                    continue
                frame = framer.feed(c)
                if frame is None:
                    continue
                reply = respond(frame, rng)
                if reply is not None:
                    link.write(reply)
        except KeyboardInterrupt:
            pass


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the simulator.

    Returns 1 if the port cannot be opened, 0 after Ctrl-C.
    """
    parser = argparse.ArgumentParser(description="virtual MH-Z14A sensor")
    parser.add_argument("port", help="serial port to answer on")
    parser.add_argument("--baudrate", type=int, default=BAUDRATE)
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=logging.INFO,
    )
    try:
        run(args.port, args.baudrate)
    except LinkOpenError as exc:
        log.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
