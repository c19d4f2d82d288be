from os import getenv
from pathlib import Path


def get_devplane_home() -> Path:
    """Get the devplane state directory.

    Uses DEVPLANE_HOME when set, otherwise ``.devplane`` in the current
    working directory.
    """
    home = getenv("DEVPLANE_HOME")
    if home:
        return Path(home)
    return Path.cwd() / ".devplane"


def get_devplane_log_dir() -> Path:
    """Get the path to the logs/ directory inside the state directory."""
    return get_devplane_home() / "logs"


def get_default_roster_file() -> Path:
    """Get the default roster location, ``config/services.json``."""
    return Path.cwd() / "config" / "services.json"
