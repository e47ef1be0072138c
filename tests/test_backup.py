from mitmrouter.engine import backup


def test_backup_and_restore_existing_file(tmp_path):
    conf = tmp_path / "dnsmasq.conf"
    conf.write_bytes(b"# system\nport=5353\n")

    record = backup.backup_file(conf)
    assert record["existed"] is True
    assert (tmp_path / "dnsmasq.conf.bak").read_bytes() == b"# system\nport=5353\n"

    conf.write_text("interface=wlan0\n")
    warnings = backup.restore_backup(record)

    assert warnings == []
    assert conf.read_bytes() == b"# system\nport=5353\n"
    assert not (tmp_path / "dnsmasq.conf.bak").exists()


def test_backup_missing_file_records_absence(tmp_path):
    conf = tmp_path / "dnsmasq.conf"
    record = backup.backup_file(conf)

    assert record == {"path": str(conf), "backup": None, "existed": False, "installed": False}
    assert not (tmp_path / "dnsmasq.conf.bak").exists()


def test_restore_removes_installed_file_that_did_not_exist(tmp_path):
    conf = tmp_path / "dnsmasq.conf"
    record = backup.backup_file(conf)
    record["installed"] = True
    conf.write_text("interface=wlan0\n")

    backup.restore_backup(record)

    assert not conf.exists()


def test_restore_leaves_untouched_file_alone(tmp_path):
    conf = tmp_path / "dnsmasq.conf"
    record = backup.backup_file(conf)
    conf.write_text("created by someone else\n")

    backup.restore_backup(record)

    assert conf.read_text() == "created by someone else\n"


def test_restore_ignores_backup_it_did_not_make(tmp_path):
    conf = tmp_path / "dnsmasq.conf"
    (tmp_path / "dnsmasq.conf.bak").write_text("left by the operator\n")
    record = backup.backup_file(conf)

    assert backup.restore_backup(record) == []
    assert backup.restore_backup(None) == []

    assert not conf.exists()
    assert (tmp_path / "dnsmasq.conf.bak").read_text() == "left by the operator\n"
