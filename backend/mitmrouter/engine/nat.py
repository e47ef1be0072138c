from typing import Any, Dict, List

from mitmrouter.config import RouterConfig
from mitmrouter.engine import iptables, netops

METHOD = "nat"
BRIDGED = False


def setup_addressing(cfg: RouterConfig, binding) -> str:
    netops.add_addr(binding.wifi_iface, cfg.lan_cidr)
    return binding.wifi_iface


def program_forwarding(cfg: RouterConfig, binding) -> None:
    wan, wifi = binding.wan_iface, binding.wifi_iface
    netops.ip_forward(True)
    iptables.masquerade(wan)
    iptables.forward_established(wan, wifi)
    iptables.forward_accept(wifi, wan)


def revert(cfg: RouterConfig, session: Dict[str, Any]) -> List[str]:
    # Rules and the wifi address go with the shared teardown.
    return []
