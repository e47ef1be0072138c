import ipaddress
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from mitmrouter.errors import ConfigurationError, MethodError

CONFIG_PATH = Path("/etc/mitmrouter/config.json")
CONFIG_ENV = "MITMROUTER_CONFIG"

METHODS = ("nat", "proxy_arp", "bridge")

DEFAULT_CONFIG: Dict[str, Any] = {
    # Interfaces ("" => auto-detect)
    "wan_iface": "",
    "lan_iface": "",
    "wifi_iface": "",

    # Wi-Fi identity
    "ssid": "setec_astronomy",
    "passphrase": "mypassword",
    "country": "US",
    "channel": 11,

    # LAN / DHCP / DNS
    "lan_ip": "192.168.200.1",
    "lan_subnet": "255.255.255.0",
    "dhcp_start": "192.168.200.10",
    "dhcp_end": "192.168.200.100",
    "dns_server": "1.1.1.1",

    # "nat" | "proxy_arp" | "bridge"
    "method": "nat",
    "bridge_name": "br0",

    # Session artifacts
    "tmp_dir": "/tmp",
    "dnsmasq_system_conf": "/etc/dnsmasq.conf",
    "install_system_dnsmasq_conf": False,
    "snapshot_filter_rules": True,

    # Timing
    "hostapd_grace_s": 2.0,
    "cmd_timeout_s": 10.0,
    "stop_timeout_s": 10.0,

    "debug": False,
}


@dataclass(frozen=True)
class RouterConfig:
    wan_iface: str
    lan_iface: str
    wifi_iface: str
    ssid: str
    passphrase: str
    country: str
    channel: int
    lan_ip: str
    lan_subnet: str
    dhcp_start: str
    dhcp_end: str
    dns_server: str
    method: str
    bridge_name: str
    tmp_dir: str
    dnsmasq_system_conf: str
    install_system_dnsmasq_conf: bool
    snapshot_filter_rules: bool
    hostapd_grace_s: float
    cmd_timeout_s: float
    stop_timeout_s: float
    debug: bool

    @property
    def prefixlen(self) -> int:
        return ipaddress.IPv4Network(f"0.0.0.0/{self.lan_subnet}").prefixlen

    @property
    def lan_cidr(self) -> str:
        return f"{self.lan_ip}/{self.prefixlen}"


def config_path() -> Path:
    override = (os.environ.get(CONFIG_ENV) or "").strip()
    if override:
        return Path(override)
    return CONFIG_PATH


def read_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Returns the raw JSON content on disk (or {} if missing/invalid).
    """
    path = path or config_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text())
        return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        return {}


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Returns DEFAULT_CONFIG merged with on-disk config.
    """
    cfg = DEFAULT_CONFIG.copy()
    cfg.update(read_config_file(path))
    return cfg


def _norm_str(v: object) -> str:
    if isinstance(v, str):
        return v.strip()
    return ""


def _ipv4(cfg: Dict[str, Any], key: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(_norm_str(cfg.get(key)))
    except ValueError as exc:
        raise ConfigurationError(f"invalid_{key}") from exc


def _float(cfg: Dict[str, Any], key: str) -> float:
    try:
        val = float(cfg.get(key, DEFAULT_CONFIG[key]))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid_{key}") from exc
    if val < 0:
        raise ConfigurationError(f"invalid_{key}")
    return val


def _bool(cfg: Dict[str, Any], key: str) -> bool:
    val = cfg.get(key, DEFAULT_CONFIG[key])
    # JSON "false" is a string; only real booleans are accepted.
    if not isinstance(val, bool):
        raise ConfigurationError(f"invalid_{key}")
    return val


def build_router_config(cfg: Dict[str, Any]) -> RouterConfig:
    """
    Validate a merged config dict and freeze it into a RouterConfig.

    Raises MethodError for an unknown topology and ConfigurationError for any
    other invalid value.
    """
    method = _norm_str(cfg.get("method")).lower()
    if method not in METHODS:
        raise MethodError(f"invalid_method:{method or 'empty'}")

    passphrase = cfg.get("passphrase")
    if not isinstance(passphrase, str) or len(passphrase) < 8:
        raise ConfigurationError("invalid_passphrase_min_length_8")

    ssid = _norm_str(cfg.get("ssid"))
    if not ssid:
        raise ConfigurationError("invalid_ssid")

    try:
        channel = int(cfg.get("channel"))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError("invalid_channel") from exc
    if channel <= 0:
        raise ConfigurationError("invalid_channel")

    country = _norm_str(cfg.get("country")).upper()
    if len(country) != 2:
        raise ConfigurationError("invalid_country")

    _ipv4(cfg, "lan_ip")
    _ipv4(cfg, "dns_server")
    start = _ipv4(cfg, "dhcp_start")
    end = _ipv4(cfg, "dhcp_end")
    if int(start) >= int(end):
        raise ConfigurationError("invalid_dhcp_range")

    subnet = _norm_str(cfg.get("lan_subnet"))
    try:
        ipaddress.IPv4Network(f"0.0.0.0/{subnet}")
    except ValueError as exc:
        raise ConfigurationError("invalid_lan_subnet") from exc

    bridge_name = _norm_str(cfg.get("bridge_name")) or "br0"
    if len(bridge_name) > 15:
        raise ConfigurationError("invalid_bridge_name")

    return RouterConfig(
        wan_iface=_norm_str(cfg.get("wan_iface")),
        lan_iface=_norm_str(cfg.get("lan_iface")),
        wifi_iface=_norm_str(cfg.get("wifi_iface")),
        ssid=ssid,
        passphrase=passphrase,
        country=country,
        channel=channel,
        lan_ip=_norm_str(cfg.get("lan_ip")),
        lan_subnet=subnet,
        dhcp_start=str(start),
        dhcp_end=str(end),
        dns_server=_norm_str(cfg.get("dns_server")),
        method=method,
        bridge_name=bridge_name,
        tmp_dir=_norm_str(cfg.get("tmp_dir")) or "/tmp",
        dnsmasq_system_conf=_norm_str(cfg.get("dnsmasq_system_conf")) or "/etc/dnsmasq.conf",
        install_system_dnsmasq_conf=_bool(cfg, "install_system_dnsmasq_conf"),
        snapshot_filter_rules=_bool(cfg, "snapshot_filter_rules"),
        hostapd_grace_s=_float(cfg, "hostapd_grace_s"),
        cmd_timeout_s=_float(cfg, "cmd_timeout_s"),
        stop_timeout_s=_float(cfg, "stop_timeout_s"),
        debug=_bool(cfg, "debug"),
    )
