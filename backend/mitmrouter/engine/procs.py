import os
import shutil
import signal
import time
from pathlib import Path
from typing import List

from mitmrouter.engine import netops

_PROC = Path("/proc")


def pid_cmdline(pid: int) -> str:
    try:
        raw = (_PROC / str(pid) / "cmdline").read_bytes()
    except OSError:
        return ""
    return raw.decode("utf-8", "ignore").replace("\x00", " ").strip()


def pid_comm(pid: int) -> str:
    try:
        return (_PROC / str(pid) / "comm").read_text().strip()
    except OSError:
        return ""


def pid_running(pid: int) -> bool:
    if not pid or pid <= 0:
        return False
    return (_PROC / str(pid)).exists()


def find_pids(name: str) -> List[int]:
    """
    PIDs whose process name equals `name` (pkill semantics).
    """
    pids: List[int] = []
    try:
        entries = os.listdir(_PROC)
    except OSError:
        return pids
    own = os.getpid()
    for entry in entries:
        if not entry.isdigit():
            continue
        pid = int(entry)
        if pid == own:
            continue
        if pid_comm(pid) == name:
            pids.append(pid)
    return sorted(pids)


def kill_pid(pid: int, timeout_s: float = 3.0) -> None:
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError:
        return

    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if not pid_running(pid):
            return
        time.sleep(0.05)

    try:
        os.kill(pid, signal.SIGKILL)
    except OSError:
        pass


def kill_by_name(name: str) -> List[int]:
    killed: List[int] = []
    for pid in find_pids(name):
        kill_pid(pid)
        killed.append(pid)
    return killed


def systemctl_stop(*units: str) -> List[str]:
    warnings: List[str] = []
    systemctl = shutil.which("systemctl")
    if not systemctl or not units:
        return warnings
    rc, out = netops._run([systemctl, "stop", *units], check=False)
    low = out.lower()
    # Units that are not installed are "nothing to stop".
    if rc != 0 and "not loaded" not in low and "not found" not in low:
        warnings.append(f"systemctl_stop_failed:{','.join(units)}:{out[:120]}")
    return warnings
