from typing import Any, Dict, List

from mitmrouter.config import RouterConfig
from mitmrouter.engine import iptables, netops

METHOD = "proxy_arp"
BRIDGED = False


def setup_addressing(cfg: RouterConfig, binding) -> str:
    wan, wifi = binding.wan_iface, binding.wifi_iface
    netops.proxy_arp(wan, True)
    netops.proxy_arp(wifi, True)
    netops.add_addr(wan, cfg.lan_cidr)
    netops.add_addr(wifi, cfg.lan_cidr)
    return wifi


def program_forwarding(cfg: RouterConfig, binding) -> None:
    wan, wifi = binding.wan_iface, binding.wifi_iface
    netops.ip_forward(True)
    iptables.masquerade(wan)
    iptables.forward_accept(wifi, wan)
    iptables.forward_established(wan, wifi)


def revert(cfg: RouterConfig, session: Dict[str, Any]) -> List[str]:
    """
    Undo what the shared teardown does not: the gateway address on the
    uplink and proxy ARP on both sides.
    """
    warnings: List[str] = []
    wan = session.get("wan_iface")
    wifi = session.get("wifi_iface")
    if wan:
        netops.del_addr(wan, session.get("lan_cidr") or cfg.lan_cidr)
    for ifname in (wan, wifi):
        if not ifname:
            continue
        rc, out = netops.proxy_arp(ifname, False, check=False)
        if rc != 0:
            warnings.append(f"proxy_arp_disable_failed:{ifname}:{out[:120]}")
    return warnings
