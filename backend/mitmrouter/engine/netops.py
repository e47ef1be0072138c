import logging
import os
import shutil
import subprocess
from typing import List, Optional, Tuple

from mitmrouter.errors import ConfigurationError, PreconditionError

log = logging.getLogger("mitmrouter.engine.netops")

_DEFAULT_CMD_TIMEOUT_S = 10.0
_cmd_timeout_s = _DEFAULT_CMD_TIMEOUT_S


def set_cmd_timeout(timeout_s: Optional[float]) -> None:
    global _cmd_timeout_s
    _cmd_timeout_s = float(timeout_s) if timeout_s else _DEFAULT_CMD_TIMEOUT_S


def _bin(name: str) -> str:
    return shutil.which(name) or f"/usr/sbin/{name}"


def resolve_binary(name: str, env_key: Optional[str] = None) -> str:
    if env_key:
        override = os.environ.get(env_key)
        if override and os.path.isfile(override) and os.access(override, os.X_OK):
            return override
    p = shutil.which(name)
    if not p:
        raise PreconditionError(f"{name}_not_found")
    return p


def _run(cmd: List[str], check: bool = True) -> Tuple[int, str]:
    """
    Run one external command and return (rc, combined_output).

    With check=True a non-zero exit, a timeout or a missing binary raises
    ConfigurationError. With check=False those are reported through rc
    (124 timeout, 127 spawn failure) and never raise.
    """
    try:
        p = subprocess.run(cmd, capture_output=True, text=True, timeout=_cmd_timeout_s)
    except subprocess.TimeoutExpired as exc:
        if check:
            raise ConfigurationError(f"cmd_timeout cmd={' '.join(cmd)}") from exc
        return 124, ""
    except OSError as exc:
        if check:
            raise ConfigurationError(f"cmd_spawn_failed cmd={' '.join(cmd)} err={exc}") from exc
        return 127, f"{type(exc).__name__}: {exc}"
    out = (p.stdout or "") + ("\n" + p.stderr if p.stderr else "")
    out = out.strip()
    log.debug("cmd", extra={"cmd": " ".join(cmd), "rc": p.returncode})
    if check and p.returncode != 0:
        raise ConfigurationError(f"cmd_failed rc={p.returncode} cmd={' '.join(cmd)} out={out}")
    return p.returncode, out


def sysctl_set(key: str, value: str, check: bool = True) -> Tuple[int, str]:
    return _run([_bin("sysctl"), "-w", f"{key}={value}"], check=check)


def ip_forward(enable: bool, check: bool = True) -> Tuple[int, str]:
    return sysctl_set("net.ipv4.ip_forward", "1" if enable else "0", check=check)


def proxy_arp(ifname: str, enable: bool, check: bool = True) -> Tuple[int, str]:
    return sysctl_set(f"net.ipv4.conf.{ifname}.proxy_arp", "1" if enable else "0", check=check)


def iface_up(ifname: str, check: bool = True) -> Tuple[int, str]:
    return _run([_bin("ip"), "link", "set", "dev", ifname, "up"], check=check)


def iface_down(ifname: str) -> Tuple[int, str]:
    return _run([_bin("ip"), "link", "set", "dev", ifname, "down"], check=False)


def flush_ip(ifname: str) -> Tuple[int, str]:
    return _run([_bin("ip"), "addr", "flush", "dev", ifname], check=False)


def add_addr(ifname: str, cidr: str) -> Tuple[int, str]:
    return _run([_bin("ip"), "addr", "add", cidr, "dev", ifname], check=True)


def del_addr(ifname: str, cidr: str) -> Tuple[int, str]:
    return _run([_bin("ip"), "addr", "del", cidr, "dev", ifname], check=False)


def power_save_off(ifname: str) -> bool:
    rc, out = _run([_bin("iw"), "dev", ifname, "set", "power_save", "off"], check=False)
    if rc != 0:
        log.warning("power_save_off_failed", extra={"iface": ifname, "rc": rc})
        log.debug(out)
    return rc == 0


def link_exists(ifname: str) -> bool:
    rc, _ = _run([_bin("ip"), "link", "show", "dev", ifname], check=False)
    return rc == 0


def create_bridge(name: str) -> None:
    _run([_bin("ip"), "link", "add", "name", name, "type", "bridge"], check=True)


def delete_bridge(name: str) -> List[str]:
    warnings: List[str] = []
    ip = _bin("ip")
    _run([ip, "link", "set", "dev", name, "down"], check=False)
    rc, out = _run([ip, "link", "delete", name, "type", "bridge"], check=False)
    if rc != 0 and "cannot find device" not in out.lower():
        warnings.append(f"bridge_delete_failed:{name}:{out[:120]}")
    return warnings


def bridge_add_port(bridge: str, ifname: str) -> None:
    _run([_bin("ip"), "link", "set", "dev", ifname, "master", bridge], check=True)


def bridge_del_port(ifname: str) -> None:
    _run([_bin("ip"), "link", "set", "dev", ifname, "nomaster"], check=False)
