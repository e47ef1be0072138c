import json

import pytest

from mitmrouter import config
from mitmrouter.errors import ConfigurationError, MethodError


def test_load_config_defaults_when_missing(tmp_path):
    cfg = config.load_config(tmp_path / "missing.json")
    assert cfg == config.DEFAULT_CONFIG


def test_load_config_merges_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ssid": "lab", "method": "bridge"}))

    cfg = config.load_config(path)

    assert cfg["ssid"] == "lab"
    assert cfg["method"] == "bridge"
    assert cfg["channel"] == config.DEFAULT_CONFIG["channel"]


def test_load_config_invalid_json_falls_back(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert config.load_config(path) == config.DEFAULT_CONFIG


def test_config_path_env_override(monkeypatch, tmp_path):
    monkeypatch.setenv(config.CONFIG_ENV, str(tmp_path / "alt.json"))
    assert config.config_path() == tmp_path / "alt.json"


def test_build_router_config_defaults():
    cfg = config.build_router_config(dict(config.DEFAULT_CONFIG))

    assert cfg.method == "nat"
    assert cfg.lan_cidr == "192.168.200.1/24"
    assert cfg.wan_iface == ""
    with pytest.raises(Exception):
        cfg.method = "bridge"


@pytest.mark.parametrize("method", ["", "routed", "NAT2"])
def test_unknown_method_is_method_error(method):
    raw = dict(config.DEFAULT_CONFIG, method=method)
    with pytest.raises(MethodError):
        config.build_router_config(raw)


def test_method_is_case_insensitive():
    raw = dict(config.DEFAULT_CONFIG, method="Proxy_ARP")
    assert config.build_router_config(raw).method == "proxy_arp"


def test_short_passphrase_rejected():
    raw = dict(config.DEFAULT_CONFIG, passphrase="short")
    with pytest.raises(ConfigurationError, match="invalid_passphrase_min_length_8"):
        config.build_router_config(raw)


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"lan_ip": "192.168.300.1"}, "invalid_lan_ip"),
        ({"dhcp_start": "192.168.200.100", "dhcp_end": "192.168.200.10"}, "invalid_dhcp_range"),
        ({"lan_subnet": "255.0.255.0"}, "invalid_lan_subnet"),
        ({"channel": "eleven"}, "invalid_channel"),
        ({"country": "USA"}, "invalid_country"),
        ({"install_system_dnsmasq_conf": "false"}, "invalid_install_system_dnsmasq_conf"),
        ({"snapshot_filter_rules": 0}, "invalid_snapshot_filter_rules"),
        ({"debug": "yes"}, "invalid_debug"),
    ],
)
def test_invalid_values_rejected(overrides, code):
    raw = dict(config.DEFAULT_CONFIG, **overrides)
    with pytest.raises(ConfigurationError, match=code):
        config.build_router_config(raw)


def test_boolean_flags_keep_json_booleans():
    raw = dict(config.DEFAULT_CONFIG, install_system_dnsmasq_conf=True, snapshot_filter_rules=False)
    cfg = config.build_router_config(raw)

    assert cfg.install_system_dnsmasq_conf is True
    assert cfg.snapshot_filter_rules is False
    assert cfg.debug is False
