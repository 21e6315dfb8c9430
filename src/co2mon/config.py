"""Project-wide configuration constants and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.
"""

import tomllib

from co2mon.protocol import PROTO_RANGES

# Longest a single serial read waits for a byte, in milliseconds.
TIMEOUT_MS = 100

BAUDRATE = 9600
DEFAULT_PORT = "/dev/ttyUSB0"

# Detection range set during the handshake (ppm).
DEFAULT_RANGE = 10000

# Seconds between CO2 requests.
POLL_INTERVAL_S = 10

# Seconds to wait for each handshake acknowledgement.
HANDSHAKE_TIMEOUT_S = 2


def default_config() -> dict:
    """Return the configuration used when no config file is given."""
    return {
        "port": DEFAULT_PORT,
        "baudrate": BAUDRATE,
        "range": DEFAULT_RANGE,
        "interval": POLL_INTERVAL_S,
        "handshake_timeout": HANDSHAKE_TIMEOUT_S,
        "trace": False,
    }


def load_config(path: str) -> dict:
    """Read a TOML config file and validate its ``[sensor]`` table.

    Every key is optional and falls back to default_config():
    ``port`` (str), ``baudrate`` (int), ``range`` (int, one of 2000,
    5000, 10000), ``interval`` and ``handshake_timeout`` (positive
    numbers of seconds), ``trace`` (bool).

    Raises:
        ValueError: If a key has the wrong type or an invalid value.
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    result = default_config()

    section = raw.get("sensor", {})
    if not isinstance(section, dict):
        raise ValueError("[sensor] must be a table")

    if "port" in section:
        _require_str(section, "port")
    if "baudrate" in section:
        _require_int(section, "baudrate")
    if "range" in section:
        _require_range(section)
    for key in ("interval", "handshake_timeout"):
        if key in section:
            _require_positive(section, key)
    if "trace" in section:
        _require_bool(section, "trace")

    for key in result:
        if key in section:
            result[key] = section[key]

    return result


def _require_range(raw: dict[str, object]) -> None:
    """Validate that range is one of the sensor's detection ranges."""
    _require_int(raw, "range")
    if raw["range"] not in PROTO_RANGES:
        raise ValueError(
            "range must be one of %s, got %d"
            % (", ".join(str(r) for r in PROTO_RANGES), raw["range"])
        )


def _require_positive(raw: dict[str, object], key: str) -> None:
    """Validate that *key* is a positive int or float."""
    v = raw[key]
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ValueError("%s must be a number, got %s" % (key, type(v).__name__))
    if v <= 0:
        raise ValueError("%s must be positive, got %s" % (key, v))


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* in *raw* is a str."""
    if not isinstance(raw[key], str):
        raise ValueError("%s must be str, got %s" % (key, type(raw[key]).__name__))


def _require_int(raw: dict[str, object], key: str) -> None:
    """Validate that *key* in *raw* is an int."""
    if isinstance(raw[key], bool) or not isinstance(raw[key], int):
        raise ValueError("%s must be int, got %s" % (key, type(raw[key]).__name__))


def _require_bool(raw: dict[str, object], key: str) -> None:
    """Validate that *key* in *raw* is a bool."""
    if not isinstance(raw[key], bool):
        raise ValueError("%s must be bool, got %s" % (key, type(raw[key]).__name__))
