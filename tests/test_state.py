import pytest

from mitmrouter import state
from mitmrouter.errors import PreconditionError


def test_load_state_defaults_when_missing(state_dir):
    st = state.load_state()
    assert st["phase"] == "stopped"
    assert st["artifacts"] == []


def test_update_state_persists(state_dir):
    state.update_state(phase="running", method="bridge")

    st = state.load_state()
    assert st["phase"] == "running"
    assert st["method"] == "bridge"
    assert st["last_op_ts"] is not None


def test_corrupt_state_falls_back_to_defaults(state_dir):
    state_dir.mkdir(parents=True)
    state.STATE_PATH.write_text("{")
    assert state.load_state()["phase"] == "stopped"


def test_reset_state_clears_session(state_dir):
    state.update_state(phase="running", wifi_iface="wlan0", backup={"path": "/etc/dnsmasq.conf"})
    state.reset_state(last_op="teardown")

    st = state.load_state()
    assert st["phase"] == "stopped"
    assert st["wifi_iface"] is None
    assert st["backup"] is None
    assert st["last_op"] == "teardown"


def test_session_lock_is_exclusive(state_dir):
    state.acquire_session_lock()
    held = state._lock_fd
    try:
        # flock is per open file description: a fresh open conflicts.
        state._lock_fd = None
        with pytest.raises(PreconditionError, match="session_already_running"):
            state.acquire_session_lock()
    finally:
        state._lock_fd = held
        state.release_session_lock()
    assert state._lock_fd is None
