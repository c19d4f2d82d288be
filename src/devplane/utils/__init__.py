from ._json import dump_json, load_json, write_json_file
from ._logging import (
    LogFormatType,
    create_logger,
    create_run_logger,
    get_log_level,
    log_level_from_string,
)
from ._paths import get_default_roster_file, get_devplane_home, get_devplane_log_dir
from ._process import (
    find_listening_pid,
    find_listening_pids,
    find_pids_by_name,
    kill_pids,
)
from ._time import Clock, get_timestamp, parse_timestamp, utc_now

__all__ = [
    "Clock",
    "LogFormatType",
    "create_logger",
    "create_run_logger",
    "dump_json",
    "find_listening_pid",
    "find_listening_pids",
    "find_pids_by_name",
    "get_default_roster_file",
    "get_devplane_home",
    "get_devplane_log_dir",
    "get_log_level",
    "get_timestamp",
    "kill_pids",
    "load_json",
    "log_level_from_string",
    "parse_timestamp",
    "utc_now",
    "write_json_file",
]
