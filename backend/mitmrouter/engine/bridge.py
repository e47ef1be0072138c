import logging
from typing import Any, Dict, List

from mitmrouter.config import RouterConfig
from mitmrouter.engine import netops
from mitmrouter.errors import ConfigurationError

log = logging.getLogger("mitmrouter.engine.bridge")

METHOD = "bridge"
BRIDGED = True


def setup_addressing(cfg: RouterConfig, binding) -> str:
    br = cfg.bridge_name
    wan, wifi = binding.wan_iface, binding.wifi_iface

    if not netops.link_exists(br):
        netops.create_bridge(br)

    netops.iface_up(wan)
    netops.iface_up(wifi)
    netops.iface_up(br)

    netops.bridge_add_port(br, wan)
    if cfg.lan_iface:
        netops.iface_up(cfg.lan_iface)
        netops.bridge_add_port(br, cfg.lan_iface)

    # Most drivers refuse to enslave a managed-mode station; hostapd attaches
    # it through `bridge=` once the interface is in AP mode.
    try:
        netops.bridge_add_port(br, wifi)
    except ConfigurationError as exc:
        log.warning("wifi_bridge_port_deferred_to_hostapd", extra={"iface": wifi})
        log.debug(str(exc))

    netops.add_addr(br, cfg.lan_cidr)
    return br


def program_forwarding(cfg: RouterConfig, binding) -> None:
    # Layer 2: no NAT or filter rules.
    return None


def revert(cfg: RouterConfig, session: Dict[str, Any]) -> List[str]:
    br = session.get("bridge_name") or cfg.bridge_name
    for ifname in (session.get("wan_iface"), session.get("wifi_iface"), session.get("lan_iface")):
        if ifname:
            netops.bridge_del_port(ifname)
    return netops.delete_bridge(br)
