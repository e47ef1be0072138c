import logging
import os
import signal
import subprocess
import threading
import time
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Optional

from mitmrouter.config import RouterConfig
from mitmrouter.engine import backup, dnsmasq, hostapd, iptables, netops, procs, render, topology
from mitmrouter.engine.render import SessionPaths
from mitmrouter.errors import ConfigurationError, PreconditionError, RouterError, StartupError
from mitmrouter.interfaces import InterfaceBinding, resolve_interfaces
from mitmrouter.state import (
    acquire_session_lock,
    load_state,
    release_session_lock,
    reset_state,
    update_state,
)

log = logging.getLogger("mitmrouter.lifecycle")

_RUN_POLL_S = 1.0
_OWNER_POLL_S = 0.2


class LifecycleResult:
    def __init__(self, code, state, error=None, warnings=None):
        self.code = code
        self.state = state
        self.error = error
        self.warnings = list(warnings or [])


def _owner_alive(pid: Optional[int]) -> bool:
    if not pid or pid == os.getpid():
        return False
    if not procs.pid_running(pid):
        return False
    return "mitmrouter" in procs.pid_cmdline(pid)


def _remove_artifacts(paths: List[str]) -> List[str]:
    warnings: List[str] = []
    for raw in paths:
        try:
            Path(raw).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            warnings.append(f"artifact_remove_failed:{raw}:{exc}")
    return warnings


def teardown(
    cfg: RouterConfig,
    session: Optional[Dict[str, Any]] = None,
    hostapd_proc: Optional[subprocess.Popen] = None,
) -> List[str]:
    """
    Return the host to a clean slate. Safe to run when nothing (or only part
    of a session) was set up: every step tolerates "nothing to stop" and
    failures become warnings instead of exceptions.
    """
    session = session if session is not None else load_state()
    method = session.get("method") or cfg.method
    update_state(phase="stopping")
    log.info("teardown_begin", extra={"phase": "stopping", "method": method})

    warnings: List[str] = []

    if hostapd_proc is not None:
        hostapd.stop(hostapd_proc)
    else:
        hostapd.stop_pid(session.get("hostapd_pid"))
    warnings.extend(procs.systemctl_stop("hostapd", "dnsmasq"))
    hostapd.stop_all()
    dnsmasq.stop()

    warnings.extend(iptables.flush_all())
    snapshot = session.get("filter_snapshot")
    if snapshot:
        warnings.extend(iptables.restore(Path(snapshot)))

    rc, out = netops.ip_forward(False, check=False)
    if rc != 0:
        warnings.append(f"ip_forward_disable_failed:{out[:120]}")

    warnings.extend(topology.revert(method, cfg, session))

    wifi = session.get("wifi_iface") or cfg.wifi_iface
    if wifi:
        netops.flush_ip(wifi)
        netops.iface_down(wifi)

    warnings.extend(backup.restore_backup(session.get("backup")))

    artifacts = session.get("artifacts") or [str(p) for p in SessionPaths.for_config(cfg).all()]
    warnings.extend(_remove_artifacts(artifacts))

    for w in warnings:
        log.warning(w, extra={"op": "teardown"})

    reset_state(last_op="teardown", warnings=warnings)
    log.info("teardown_complete", extra={"phase": "stopped", "method": method})
    return warnings


def repair(cfg: RouterConfig) -> Optional[LifecycleResult]:
    """
    Crash recovery: a session left behind by a process that no longer
    exists is torn down from its persisted state.
    """
    state = load_state()
    if state["phase"] == "stopped":
        return None
    if _owner_alive(state.get("pid")):
        return None

    log.warning("stale_session_repair", extra={"phase": state["phase"], "method": state.get("method")})
    warnings = teardown(cfg, session=state)
    return LifecycleResult("repaired", load_state(), warnings=warnings)


def _start(
    cfg: RouterConfig,
    binding: InterfaceBinding,
    strategy: ModuleType,
    paths: SessionPaths,
) -> subprocess.Popen:
    Path(cfg.tmp_dir).mkdir(parents=True, exist_ok=True)
    if cfg.snapshot_filter_rules and iptables.snapshot(paths.filter_rules):
        update_state(filter_snapshot=str(paths.filter_rules))

    netops.ip_forward(True)
    netops.iface_up(binding.wifi_iface)
    netops.power_save_off(binding.wifi_iface)

    render.write_conf(paths.hostapd_conf, render.render_hostapd_conf(cfg, binding.wifi_iface))

    result = topology.apply(
        strategy,
        cfg,
        binding,
        paths,
        on_backup=lambda record: update_state(backup=record),
    )
    update_state(dhcp_iface=result.dhcp_iface, bridge_name=result.bridge_name)
    if result.bridge_name:
        render.append_line(paths.hostapd_conf, render.bridge_directive(result.bridge_name))

    proc = hostapd.start(paths.hostapd_conf, paths.hostapd_log, debug=cfg.debug)
    update_state(hostapd_pid=proc.pid)
    if not hostapd.wait_alive(proc, cfg.hostapd_grace_s):
        for line in hostapd.read_log_tail(paths.hostapd_log):
            log.error(line, extra={"op": "hostapd"})
        raise StartupError("hostapd_start_failed")

    log.info("hostapd_started", extra={"iface": binding.wifi_iface})
    return proc


def _wait_running(proc: subprocess.Popen, stop_event: threading.Event, paths: SessionPaths) -> str:
    while not stop_event.wait(_RUN_POLL_S):
        if proc.poll() is not None:
            log.error("hostapd_exited", extra={"rc": proc.returncode})
            for line in hostapd.read_log_tail(paths.hostapd_log):
                log.error(line, extra={"op": "hostapd"})
            return "hostapd_exited"
    log.info("stop_requested", extra={"op": "up"})
    return "stopped"


def up(cfg: RouterConfig, stop_event: Optional[threading.Event] = None) -> LifecycleResult:
    """
    stopped -> starting -> running, then block until `stop_event` is set or
    hostapd dies. Teardown always runs once host state has been touched.
    """
    netops.set_cmd_timeout(cfg.cmd_timeout_s)
    stop_event = stop_event or threading.Event()
    try:
        acquire_session_lock()
    except RouterError as exc:
        return LifecycleResult("start_rejected", load_state(), error=exc)
    except OSError as exc:
        error = PreconditionError(f"session_lock_failed:{exc}")
        log.error(str(error), extra={"op": "up"})
        return LifecycleResult("start_rejected", load_state(), error=error)
    try:
        return _up_locked(cfg, stop_event)
    finally:
        release_session_lock()


def _up_locked(cfg: RouterConfig, stop_event: threading.Event) -> LifecycleResult:
    try:
        repair(cfg)
        if load_state()["phase"] != "stopped":
            raise PreconditionError("session_already_running")
        binding = resolve_interfaces(cfg)
        strategy = topology.get_strategy(cfg.method)
    except RouterError as exc:
        log.error(str(exc), extra={"op": "up"})
        return LifecycleResult("start_rejected", load_state(), error=exc)

    paths = SessionPaths.for_config(cfg)
    update_state(
        phase="starting",
        pid=os.getpid(),
        method=strategy.METHOD,
        wan_iface=binding.wan_iface,
        wifi_iface=binding.wifi_iface,
        lan_iface=cfg.lan_iface or None,
        lan_cidr=cfg.lan_cidr,
        bridge_name=cfg.bridge_name if strategy.BRIDGED else None,
        artifacts=[str(p) for p in paths.all()],
        last_op="up",
        last_error=None,
    )
    log.info(
        "access_point_starting",
        extra={"op": "up", "phase": "starting", "method": strategy.METHOD, "iface": binding.wifi_iface},
    )

    proc: Optional[subprocess.Popen] = None
    error: Optional[RouterError] = None
    code = "stopped"
    try:
        proc = _start(cfg, binding, strategy, paths)
        update_state(phase="running")
        log.info("access_point_running", extra={"op": "up", "phase": "running", "method": strategy.METHOD})
        code = _wait_running(proc, stop_event, paths)
    except RouterError as exc:
        error = exc
        code = "start_failed"
        log.error(str(exc), extra={"op": "up"})
    except OSError as exc:
        # File and spawn failures on the host side (tmp dir, conf writes, backup).
        error = ConfigurationError(f"host_io_failed:{exc}")
        code = "start_failed"
        log.error(str(error), extra={"op": "up"})
    finally:
        warnings = teardown(cfg, hostapd_proc=proc)

    state = load_state()
    if error is not None:
        state = update_state(last_error=str(error))
    return LifecycleResult(code, state, error=error, warnings=warnings)


def _stop_owner(pid: int, timeout_s: float) -> bool:
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError:
        return False

    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if load_state()["phase"] == "stopped":
            return True
        if not procs.pid_running(pid):
            break
        time.sleep(_OWNER_POLL_S)
    return load_state()["phase"] == "stopped"


def down(cfg: RouterConfig) -> LifecycleResult:
    """
    running -> stopping -> stopped. A no-op when no session is recorded.

    A live `up` process owns its session and is asked to tear down itself;
    otherwise (or if it does not finish in time) teardown runs here from
    the persisted state.
    """
    netops.set_cmd_timeout(cfg.cmd_timeout_s)
    state = load_state()
    if state["phase"] == "stopped":
        log.info("already_stopped", extra={"op": "down"})
        return LifecycleResult("already_stopped", state)

    owner = state.get("pid")
    if _owner_alive(owner):
        log.info("stopping_session_owner", extra={"op": "down", "phase": state["phase"]})
        if _stop_owner(owner, cfg.stop_timeout_s):
            return LifecycleResult("stopped", load_state())
        log.warning("session_owner_stop_timeout", extra={"op": "down"})
        procs.kill_pid(owner)
        state = load_state()
        if state["phase"] == "stopped":
            return LifecycleResult("stopped", state)

    warnings = teardown(cfg, session=state)
    return LifecycleResult("stopped", load_state(), warnings=warnings)
