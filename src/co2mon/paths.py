"""Locating the co2mon config file.

With no config named on the command line the reporter looks for
``co2mon.toml`` in the current directory, then in ``/etc/co2mon/``,
and runs on built-in defaults if neither exists.  A name given on the
command line must exist.
"""

import os

CONFIG_NAME = "co2mon.toml"
ETC_DIR = "/etc/co2mon"


def config_dirs() -> list[str]:
    """Directories searched for a config file, in order."""
    return [os.getcwd(), ETC_DIR]


def find_config(name: str | None = None) -> str | None:
    """Return the absolute path of the config file to load, or None.

    *name* None searches config_dirs() for ``co2mon.toml`` and returns
    None when there is none, meaning "use the defaults".

    An explicit *name* is used as given if it exists.  A bare filename
    that is not in the current directory is also tried under
    ``/etc/co2mon/``.

    Raises:
        FileNotFoundError: If an explicit *name* cannot be found.
    """
    if name is None:
        for d in config_dirs():
            path = os.path.join(d, CONFIG_NAME)
            if os.path.isfile(path):
                return os.path.abspath(path)
        return None

    if os.path.isfile(name):
        return os.path.abspath(name)
    if os.path.dirname(name) == "":
        path = os.path.join(ETC_DIR, name)
        if os.path.isfile(path):
            return os.path.abspath(path)

    raise FileNotFoundError("config file not found: %s" % name)
