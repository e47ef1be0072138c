import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from mitmrouter.config import RouterConfig

DHCP_LEASE_TIME = "12h"


@dataclass(frozen=True)
class SessionPaths:
    hostapd_conf: Path
    dnsmasq_conf: Path
    filter_rules: Path
    hostapd_log: Path

    @classmethod
    def for_config(cls, cfg: RouterConfig) -> "SessionPaths":
        base = Path(cfg.tmp_dir)
        return cls(
            hostapd_conf=base / "tmp_hostapd.conf",
            dnsmasq_conf=base / "tmp_dnsmasq.conf",
            filter_rules=base / "iptables.rules",
            hostapd_log=base / "tmp_hostapd.log",
        )

    def all(self) -> List[Path]:
        return [self.hostapd_conf, self.dnsmasq_conf, self.filter_rules, self.hostapd_log]


def render_hostapd_conf(cfg: RouterConfig, ifname: str) -> str:
    lines = [
        f"interface={ifname}",
        f"ssid={cfg.ssid}",
        "hw_mode=g",
        f"channel={int(cfg.channel)}",
        "wpa=2",
        f"wpa_passphrase={cfg.passphrase}",
        "wpa_key_mgmt=WPA-PSK",
        "wpa_pairwise=CCMP",
        f"country_code={cfg.country}",
        "ieee80211n=1",
    ]
    return "\n".join(lines) + "\n"


def bridge_directive(bridge: str) -> str:
    return f"bridge={bridge}"


def render_dnsmasq_conf(cfg: RouterConfig, ifname: str) -> str:
    lines = [
        f"interface={ifname}",
        "bind-interfaces",
        f"server={cfg.dns_server}",
        f"dhcp-range={cfg.dhcp_start},{cfg.dhcp_end},{cfg.lan_subnet},{DHCP_LEASE_TIME}",
    ]
    return "\n".join(lines) + "\n"


def write_conf(path: Path, text: str, mode: int = 0o600) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    os.chmod(path, mode)


def append_line(path: Path, line: str) -> None:
    with open(path, "a", encoding="utf-8") as f:
        f.write(line.rstrip("\n") + "\n")
