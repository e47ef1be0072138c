import logging
from pathlib import Path
from typing import List

from mitmrouter.engine import netops, procs

log = logging.getLogger("mitmrouter.engine.dnsmasq")


def stop() -> List[int]:
    killed = procs.kill_by_name("dnsmasq")
    if killed:
        log.info("dnsmasq_stopped", extra={"op": "stop"})
    return killed


def start(conf_path: Path) -> None:
    dnsmasq = netops.resolve_binary("dnsmasq", "DNSMASQ")
    log.info("dnsmasq_starting", extra={"path": str(conf_path)})
    netops._run([dnsmasq, "-C", str(conf_path)], check=True)
