import unittest
from unittest.mock import patch

from mitmrouter.engine import iptables


class TestIptablesRules(unittest.TestCase):
    def test_add_unique_skips_existing_rule(self):
        calls = []

        def fake_run(cmd, check=True):
            calls.append(cmd)
            return 0, ""

        with patch("mitmrouter.engine.netops._bin", side_effect=lambda n: n), patch(
            "mitmrouter.engine.netops._run", side_effect=fake_run
        ):
            iptables.masquerade("eth0")

        self.assertEqual(calls, [["iptables", "-t", "nat", "-C", "POSTROUTING", "-o", "eth0", "-j", "MASQUERADE"]])

    def test_add_unique_appends_missing_rule(self):
        calls = []

        def fake_run(cmd, check=True):
            calls.append(cmd)
            return (1, "Bad rule") if "-C" in cmd else (0, "")

        with patch("mitmrouter.engine.netops._bin", side_effect=lambda n: n), patch(
            "mitmrouter.engine.netops._run", side_effect=fake_run
        ):
            iptables.forward_established("eth0", "wlan0")

        self.assertEqual(
            calls[-1],
            [
                "iptables", "-t", "filter", "-A", "FORWARD", "-i", "eth0", "-o", "wlan0",
                "-m", "state", "--state", "RELATED,ESTABLISHED", "-j", "ACCEPT",
            ],
        )

    def test_flush_all_order_and_warnings(self):
        calls = []

        def fake_run(cmd, check=True):
            calls.append(cmd)
            return (1, "iptables: Too many links.") if cmd[-1] == "-X" else (0, "")

        with patch("shutil.which", return_value="/usr/sbin/iptables"), patch(
            "mitmrouter.engine.netops._run", side_effect=fake_run
        ):
            warnings = iptables.flush_all()

        self.assertEqual(
            [c[1:] for c in calls],
            [["--flush"], ["-t", "nat", "--flush"], ["-t", "mangle", "--flush"], ["-X"]],
        )
        self.assertEqual(len(warnings), 1)
        self.assertTrue(warnings[0].startswith("iptables_flush_failed:-X"))

    def test_restore_without_snapshot_is_noop(self):
        with patch("mitmrouter.engine.netops._run") as run:
            warnings = iptables.restore(iptables.Path("/nonexistent/iptables.rules"))
        self.assertEqual(warnings, [])
        run.assert_not_called()


def test_snapshot_then_restore(tmp_path, runner):
    runner.responses[("iptables-save",)] = (0, "*filter\n:INPUT ACCEPT [0:0]\nCOMMIT")
    path = tmp_path / "iptables.rules"

    assert iptables.snapshot(path) is True
    assert path.read_text().startswith("*filter")

    assert iptables.restore(path) == []
    assert runner.saw("iptables-restore", str(path))


if __name__ == "__main__":
    unittest.main()
