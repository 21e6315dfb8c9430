"""CO2 reporter daemon -- prints readings from an MH-Z14A sensor.

Opens the serial link, configures the sensor, then writes one CO2
reading (ppm) per line to stdout until SIGINT or SIGTERM.  Diagnostics
go to stderr through the logging module.

Example:
    Run from the command line::

        co2mon
        co2mon co2mon.toml --trace
        co2mon --port /dev/ttyUSB1 --range 5000 -v
"""

import argparse
import logging
import signal
import sys
import threading

from co2mon.config import default_config, load_config
from co2mon.paths import find_config
from co2mon.protocol import PROTO_RANGES, PacketCodec
from co2mon.serial_link import LinkOpenError, SerialLink
from co2mon.session import HandshakeTimeout, Session

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def run(cfg: dict, link, out, shutdown: threading.Event) -> int:
    """Handshake with the sensor on *link* and report until *shutdown*.

    Returns the number of readings written to *out*; 0 if *shutdown*
    is set before the handshake completes.

    Raises:
        HandshakeTimeout: If the sensor does not acknowledge setup.
    """
    session = Session(
        PacketCodec(link),
        out,
        range_ppm=cfg["range"],
        interval=cfg["interval"],
        deadline=cfg["handshake_timeout"],
    )
    if not session.initialize(shutdown):
        return 0
    return session.run(shutdown)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point -- parse args, load config, run the daemon.

    Returns the process exit status: 0 after an orderly shutdown,
    1 if the link cannot be opened or the handshake fails.
    """
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="co2mon CO2 reporter")
    parser.add_argument(
        "config", nargs="?",
        help="TOML config file (default: co2mon.toml in ./ or /etc/co2mon/)",
    )
    parser.add_argument("--port", help="serial device (default /dev/ttyUSB0)")
    parser.add_argument(
        "--range", type=int, choices=PROTO_RANGES, dest="range_ppm",
        help="detection range in ppm",
    )
    parser.add_argument(
        "--trace", action="store_true",
        help="log raw bytes and frame decisions",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    config_path = find_config(args.config)
    if config_path:
        log.info("loading config %s", config_path)
        cfg = load_config(config_path)
    else:
        cfg = default_config()
    if args.port:
        cfg["port"] = args.port
    if args.range_ppm:
        cfg["range"] = args.range_ppm
    # Byte-level output only with --trace, even under -v.
    trace = args.trace or cfg["trace"]
    logging.getLogger("co2mon.protocol").setLevel(
        logging.DEBUG if trace else logging.INFO
    )

    log.info(
        "starting: port=%s baudrate=%d range=%d interval=%gs",
        cfg["port"], cfg["baudrate"], cfg["range"], cfg["interval"],
    )

    try:
        link = SerialLink(cfg["port"], cfg["baudrate"])
    except LinkOpenError as exc:
        log.error("%s", exc)
        return 1

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        with link:
            run(cfg, link, sys.stdout, _shutdown)
    except HandshakeTimeout as exc:
        log.error("error initialising sensor: %s", exc)
        return 1
    finally:
        log.info("shutting down")

    return 0


if __name__ == "__main__":
    sys.exit(main())
