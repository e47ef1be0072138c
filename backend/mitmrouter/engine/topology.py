import logging
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional

from mitmrouter.config import RouterConfig
from mitmrouter.engine import backup, bridge, dnsmasq, nat, proxy_arp, render
from mitmrouter.errors import MethodError

log = logging.getLogger("mitmrouter.engine.topology")

STRATEGIES: Dict[str, ModuleType] = {
    nat.METHOD: nat,
    proxy_arp.METHOD: proxy_arp,
    bridge.METHOD: bridge,
}


@dataclass(frozen=True)
class TopologyResult:
    dhcp_iface: str
    bridge_name: Optional[str]


def get_strategy(method: Optional[str]) -> ModuleType:
    strategy = STRATEGIES.get((method or "").strip().lower())
    if strategy is None:
        raise MethodError(f"invalid_method:{method}")
    return strategy


def apply(
    strategy: ModuleType,
    cfg: RouterConfig,
    binding,
    paths: render.SessionPaths,
    on_backup: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> TopologyResult:
    """
    Program one topology end to end: addressing, dnsmasq config backup,
    dnsmasq (re)start on the strategy's interface, then forwarding rules.

    Any failing step raises ConfigurationError; the caller owns teardown.
    `on_backup` sees the backup record as soon as it exists so teardown can
    restore it even when a later step fails.
    """
    method = strategy.METHOD
    log.info("topology_apply", extra={"method": method})

    dhcp_iface = strategy.setup_addressing(cfg, binding)

    system_conf = Path(cfg.dnsmasq_system_conf)
    record = backup.backup_file(system_conf)
    if on_backup:
        on_backup(record)

    dnsmasq.stop()

    text = render.render_dnsmasq_conf(cfg, dhcp_iface)
    render.write_conf(paths.dnsmasq_conf, text, mode=0o644)
    if cfg.install_system_dnsmasq_conf:
        record["installed"] = True
        if on_backup:
            on_backup(record)
        render.write_conf(system_conf, text, mode=0o644)

    dnsmasq.start(paths.dnsmasq_conf)
    strategy.program_forwarding(cfg, binding)

    log.info("topology_applied", extra={"method": method, "iface": dhcp_iface})
    return TopologyResult(
        dhcp_iface=dhcp_iface,
        bridge_name=cfg.bridge_name if strategy.BRIDGED else None,
    )


def revert(method: Optional[str], cfg: RouterConfig, session: Dict[str, Any]) -> List[str]:
    strategy = STRATEGIES.get((method or "").strip().lower())
    if strategy is None:
        return []
    return strategy.revert(cfg, session)
