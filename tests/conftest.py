import os
import sys
from typing import Callable, Dict, List, Optional, Tuple

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))

from mitmrouter import state
from mitmrouter.config import DEFAULT_CONFIG, build_router_config
from mitmrouter.engine import netops, procs
from mitmrouter.errors import ConfigurationError


class FakeRunner:
    """
    Stands in for netops._run. Records every command; `iptables -C` rule checks and
    `ip link show` lookups report "absent" unless overridden.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.responses: Dict[Tuple[str, ...], Tuple[int, str]] = {}
        self.fail_on: Optional[Callable[[List[str]], bool]] = None

    def __call__(self, cmd: List[str], check: bool = True) -> Tuple[int, str]:
        cmd = list(cmd)
        self.calls.append(cmd)
        key = tuple(cmd)
        if key in self.responses:
            rc, out = self.responses[key]
        elif cmd[0] == "iptables" and "-C" in cmd:
            rc, out = 1, "iptables: Bad rule"
        elif cmd[:3] == ["ip", "link", "show"]:
            rc, out = 1, 'Device "x" does not exist.'
        elif self.fail_on is not None and self.fail_on(cmd):
            rc, out = 2, "RTNETLINK answers: Operation not permitted"
        else:
            rc, out = 0, ""
        if check and rc != 0:
            raise ConfigurationError(f"cmd_failed rc={rc} cmd={' '.join(cmd)} out={out}")
        return rc, out

    def saw(self, *cmd: str) -> bool:
        return list(cmd) in self.calls


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    killed: List[str] = []
    monkeypatch.setattr(netops, "_run", fake)
    monkeypatch.setattr(netops, "_bin", lambda name: name)
    monkeypatch.setattr(netops, "resolve_binary", lambda name, env_key=None: name)
    monkeypatch.setattr("shutil.which", lambda name: name)
    monkeypatch.setattr(procs, "kill_by_name", lambda name: killed.append(name) or [])
    fake.killed = killed
    return fake


@pytest.fixture
def state_dir(monkeypatch, tmp_path):
    run_dir = tmp_path / "run"
    monkeypatch.setattr(state, "STATE_PATH", run_dir / "state.json")
    monkeypatch.setattr(state, "STATE_TMP", run_dir / "state.json.tmp")
    monkeypatch.setattr(state, "LOCK_PATH", run_dir / "mitmrouter.lock")
    return run_dir


@pytest.fixture
def make_cfg(tmp_path):
    def _make(**overrides):
        raw = dict(DEFAULT_CONFIG)
        raw.update(
            wan_iface="eth0",
            wifi_iface="wlan0",
            tmp_dir=str(tmp_path / "tmp"),
            dnsmasq_system_conf=str(tmp_path / "etc" / "dnsmasq.conf"),
            hostapd_grace_s=0,
            snapshot_filter_rules=False,
        )
        raw.update(overrides)
        return build_router_config(raw)

    return _make
