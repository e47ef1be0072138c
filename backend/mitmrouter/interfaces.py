import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mitmrouter.config import RouterConfig
from mitmrouter.engine import netops
from mitmrouter.errors import ResolutionError

log = logging.getLogger("mitmrouter.interfaces")

_SYS_CLASS_NET = Path("/sys/class/net")


@dataclass(frozen=True)
class InterfaceBinding:
    wan_iface: str
    wifi_iface: str


def parse_default_route_iface(text: str) -> Optional[str]:
    """
    First `dev <name>` on a default route in `ip route` output.
    """
    for raw in (text or "").splitlines():
        parts = raw.strip().split()
        if not parts or parts[0] != "default":
            continue
        if "dev" in parts:
            idx = parts.index("dev")
            if idx + 1 < len(parts):
                return parts[idx + 1]
    return None


def parse_iw_dev_first_iface(text: str) -> Optional[str]:
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line.startswith("Interface "):
            continue
        parts = line.split()
        if len(parts) >= 2 and parts[1]:
            return parts[1]
    return None


def _default_uplink_iface() -> Optional[str]:
    _, out = netops._run([netops._bin("ip"), "route", "show", "default"], check=False)
    return parse_default_route_iface(out)


def _first_wireless_iface() -> Optional[str]:
    _, out = netops._run([netops._bin("iw"), "dev"], check=False)
    return parse_iw_dev_first_iface(out)


def _iface_exists(ifname: str) -> bool:
    return (_SYS_CLASS_NET / ifname).exists()


def resolve_interfaces(cfg: RouterConfig) -> InterfaceBinding:
    wan = cfg.wan_iface
    wifi = cfg.wifi_iface

    for name in (wan, wifi):
        if name and not _iface_exists(name):
            raise ResolutionError(f"iface_not_found:{name}")

    if not wan:
        wan = _default_uplink_iface() or ""
        log.info("wan_iface_autodetected", extra={"iface": wan or "none"})

    if not wifi:
        wifi = _first_wireless_iface() or ""
        log.info("wifi_iface_autodetected", extra={"iface": wifi or "none"})

    if not wan or not wifi:
        raise ResolutionError("interface_autodetect_failed")

    return InterfaceBinding(wan_iface=wan, wifi_iface=wifi)
