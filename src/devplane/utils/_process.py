"""Process-table helpers built on psutil."""

import os
from collections.abc import Iterable

import psutil


def find_listening_pids(ports: Iterable[int]) -> dict[int, int]:
    """Map each port to the PID of the process listening on it.

    Ports without a listener, or whose owner cannot be read with the
    current privileges, are absent from the result.

    Args:
        ports: TCP ports to look up.

    Returns:
        Mapping of port to PID.
    """
    wanted = set(ports)
    if not wanted:
        return {}
    try:
        connections = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:
        return {}

    owners: dict[int, int] = {}
    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or conn.pid is None or not conn.laddr:
            continue
        port = conn.laddr.port
        if port in wanted and port not in owners:
            owners[port] = conn.pid
    return owners


def find_listening_pid(port: int) -> int | None:
    """Return the PID listening on a TCP port, if it can be resolved."""
    return find_listening_pids((port,)).get(port)


def _protected_pids() -> set[int]:
    current = psutil.Process()
    protected = {current.pid, os.getppid()}
    protected.update(parent.pid for parent in current.parents())
    return protected


def kill_pids(pids: Iterable[int]) -> list[int]:
    """Force-kill processes, never touching this process or its ancestors.

    Returns:
        PIDs that were killed.
    """
    protected = _protected_pids()
    killed: list[int] = []
    for pid in pids:
        if pid in protected:
            continue
        try:
            psutil.Process(pid).kill()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        killed.append(pid)
    return killed


def find_pids_by_name(names: Iterable[str]) -> list[int]:
    """Return PIDs whose executable name matches one of the given names.

    A trailing ``.exe`` is ignored so the same names work on Windows.
    """
    wanted = {name.lower().removesuffix(".exe") for name in names}
    if not wanted:
        return []
    matches: list[int] = []
    for proc in psutil.process_iter(["name"]):
        name = (proc.info.get("name") or "").lower().removesuffix(".exe")
        if name in wanted:
            matches.append(proc.pid)
    return matches
