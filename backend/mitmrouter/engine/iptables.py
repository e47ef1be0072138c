import logging
import shutil
from pathlib import Path
from typing import List

from mitmrouter.engine import netops

log = logging.getLogger("mitmrouter.engine.iptables")


def _ipt() -> str:
    return netops._bin("iptables")


def add_unique(table: str, chain: str, spec: List[str]) -> None:
    ipt = _ipt()
    rc, _ = netops._run([ipt, "-t", table, "-C", chain, *spec], check=False)
    if rc == 0:
        return
    netops._run([ipt, "-t", table, "-A", chain, *spec], check=True)


def masquerade(uplink_if: str) -> None:
    add_unique("nat", "POSTROUTING", ["-o", uplink_if, "-j", "MASQUERADE"])


def forward_established(src_if: str, dst_if: str) -> None:
    add_unique(
        "filter",
        "FORWARD",
        ["-i", src_if, "-o", dst_if, "-m", "state", "--state", "RELATED,ESTABLISHED", "-j", "ACCEPT"],
    )


def forward_accept(src_if: str, dst_if: str) -> None:
    add_unique("filter", "FORWARD", ["-i", src_if, "-o", dst_if, "-j", "ACCEPT"])


def flush_all() -> List[str]:
    """
    Flush filter, nat and mangle tables and delete custom chains.
    Never raises; returns warnings.
    """
    warnings: List[str] = []
    ipt = shutil.which("iptables")
    if not ipt:
        warnings.append("iptables_not_found")
        return warnings
    for args in (["--flush"], ["-t", "nat", "--flush"], ["-t", "mangle", "--flush"], ["-X"]):
        rc, out = netops._run([ipt, *args], check=False)
        if rc != 0:
            warnings.append(f"iptables_flush_failed:{' '.join(args)}:{out[:120]}")
    return warnings


def snapshot(path: Path) -> bool:
    """
    Save the current rule set so teardown can put it back after flushing.
    """
    save = shutil.which("iptables-save")
    if not save:
        log.warning("iptables_save_not_found")
        return False
    rc, out = netops._run([save], check=False)
    if rc != 0:
        log.warning("iptables_snapshot_failed", extra={"rc": rc})
        return False
    path.write_text(out + "\n", encoding="utf-8")
    path.chmod(0o600)
    log.info("iptables_snapshot_saved", extra={"path": str(path)})
    return True


def restore(path: Path) -> List[str]:
    warnings: List[str] = []
    if not path.is_file():
        return warnings
    restore_bin = shutil.which("iptables-restore")
    if not restore_bin:
        warnings.append("iptables_restore_not_found")
        return warnings
    rc, out = netops._run([restore_bin, str(path)], check=False)
    if rc != 0:
        warnings.append(f"iptables_restore_failed:{out[:120]}")
    else:
        log.info("iptables_snapshot_restored", extra={"path": str(path)})
    return warnings
