import logging
import subprocess
import time
from pathlib import Path
from typing import List, Optional

from mitmrouter.engine import netops, procs

log = logging.getLogger("mitmrouter.engine.hostapd")


def start(conf_path: Path, log_path: Path, debug: bool = False) -> subprocess.Popen:
    hostapd = netops.resolve_binary("hostapd", "HOSTAPD")
    cmd = [hostapd, str(conf_path)]
    if debug:
        cmd = [hostapd, "-dd", str(conf_path)]

    log.info("hostapd_starting", extra={"cmd": " ".join(cmd)})
    with open(log_path, "w", encoding="utf-8") as out:
        return subprocess.Popen(cmd, stdout=out, stderr=subprocess.STDOUT, text=True)


def wait_alive(proc: subprocess.Popen, grace_s: float) -> bool:
    """
    Coarse readiness probe: give hostapd a fixed grace period, then check
    that it has not exited.
    """
    time.sleep(grace_s)
    return proc.poll() is None


def read_log_tail(path: Path, max_lines: int = 40) -> List[str]:
    try:
        lines = path.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError:
        return []
    return [line for line in lines if line.strip()][-max_lines:]


def stop(proc: Optional[subprocess.Popen], timeout_s: float = 3.0) -> None:
    if proc is None or proc.poll() is not None:
        return
    try:
        proc.terminate()
        proc.wait(timeout=timeout_s)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait(timeout=timeout_s)


def stop_all() -> List[int]:
    killed = procs.kill_by_name("hostapd")
    if killed:
        log.info("hostapd_stopped", extra={"op": "stop"})
    return killed


def stop_pid(pid: Optional[int]) -> bool:
    """
    Stop the hostapd recorded for a session owned by another (or a dead)
    process. The pid is only trusted while it still names a hostapd.
    """
    if not pid or not procs.pid_running(pid):
        return False
    if procs.pid_comm(pid) != "hostapd":
        return False
    procs.kill_pid(pid)
    log.info("hostapd_stopped", extra={"op": "stop"})
    return True
