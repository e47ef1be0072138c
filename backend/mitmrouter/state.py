import fcntl
import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from mitmrouter.errors import PreconditionError

STATE_PATH = Path("/run/mitmrouter/state.json")
STATE_TMP = Path("/run/mitmrouter/state.json.tmp")
LOCK_PATH = Path("/run/mitmrouter/mitmrouter.lock")

SCHEMA_VERSION = 1

DEFAULT_STATE: Dict[str, Any] = {
    "schema_version": SCHEMA_VERSION,

    "phase": "stopped",          # stopped | starting | running | stopping
    "pid": None,
    "method": None,
    "wan_iface": None,
    "wifi_iface": None,
    "lan_iface": None,
    "dhcp_iface": None,
    "bridge_name": None,
    "lan_cidr": None,

    "hostapd_pid": None,
    "backup": None,
    "artifacts": [],
    "filter_snapshot": None,

    "warnings": [],
    "last_error": None,
    "last_op": None,
    "last_op_ts": None,
}

# Session lock fd; held for the lifetime of an `up` process.
_lock_fd: Optional[int] = None


def _deepcopy_default() -> Dict[str, Any]:
    # JSON roundtrip is fine here; state is small.
    return json.loads(json.dumps(DEFAULT_STATE))


def load_state() -> Dict[str, Any]:
    """
    Load state from disk and merge into defaults, so new fields roll forward.
    Never throws; returns a valid state dict.
    """
    if not STATE_PATH.exists():
        return _deepcopy_default()

    try:
        data = json.loads(STATE_PATH.read_text())
    except (OSError, ValueError):
        return _deepcopy_default()

    merged = _deepcopy_default()
    if isinstance(data, dict):
        merged.update(data)
    merged.setdefault("schema_version", SCHEMA_VERSION)
    return merged


def _write_atomic(path: Path, tmp: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(payload)
        f.flush()
        try:
            os.fsync(f.fileno())
        except OSError:
            # On some FS / environments fsync may fail; best-effort.
            pass
    os.replace(tmp, path)


def save_state(state: Dict[str, Any]) -> None:
    state.setdefault("schema_version", SCHEMA_VERSION)
    payload = json.dumps(state, indent=2, sort_keys=True)
    _write_atomic(STATE_PATH, STATE_TMP, payload)
    try:
        os.chmod(STATE_PATH, 0o644)
    except OSError:
        pass


def update_state(**kwargs) -> Dict[str, Any]:
    """
    Load-modify-save. Single writer per host: the lock below guards sessions.
    """
    state = load_state()
    state.update(kwargs)
    state["last_op_ts"] = int(time.time())
    save_state(state)
    return state


def reset_state(**kwargs) -> Dict[str, Any]:
    """
    Back to a clean `stopped` record, keeping only the given fields.
    """
    state = _deepcopy_default()
    state.update(kwargs)
    state["last_op_ts"] = int(time.time())
    save_state(state)
    return state


def acquire_session_lock() -> None:
    """
    Advisory host-wide lock: at most one `up` session per host.

    Raises PreconditionError("session_already_running") if another live
    process holds it. The kernel drops the lock if the holder dies.
    """
    global _lock_fd
    if _lock_fd is not None:
        return
    LOCK_PATH.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(LOCK_PATH), os.O_RDWR | os.O_CREAT, 0o644)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError as exc:
        os.close(fd)
        raise PreconditionError("session_already_running") from exc
    os.ftruncate(fd, 0)
    os.write(fd, f"{os.getpid()}\n".encode("ascii"))
    _lock_fd = fd


def release_session_lock() -> None:
    global _lock_fd
    if _lock_fd is None:
        return
    fd, _lock_fd = _lock_fd, None
    try:
        fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
