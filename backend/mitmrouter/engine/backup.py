import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

log = logging.getLogger("mitmrouter.engine.backup")

BACKUP_SUFFIX = ".bak"


def backup_path(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def backup_file(path: Path) -> Dict[str, Any]:
    """
    Save a sibling copy of `path` (if it exists) and return the backup record
    teardown hands back to restore_backup().
    """
    bak = backup_path(path)
    record: Dict[str, Any] = {
        "path": str(path),
        "backup": None,
        "existed": path.is_file(),
        "installed": False,
    }
    if record["existed"]:
        shutil.copy2(path, bak)
        record["backup"] = str(bak)
        log.info("backup_saved", extra={"path": str(bak)})
    return record


def restore_backup(record: Optional[Dict[str, Any]]) -> List[str]:
    """
    Undo what this session did to the file named in `record`.

    Only a copy this session saved is moved back; a `.bak` found on disk
    without a record is someone else's and stays where it is.
    """
    warnings: List[str] = []
    if not isinstance(record, dict) or not record.get("path"):
        return warnings
    path = Path(str(record["path"]))

    saved = record.get("backup")
    if saved:
        bak = Path(str(saved))
        if not bak.is_file():
            warnings.append(f"backup_missing:{bak}")
            return warnings
        try:
            os.replace(bak, path)
            log.info("backup_restored", extra={"path": str(path)})
        except OSError as exc:
            warnings.append(f"backup_restore_failed:{path}:{exc}")
        return warnings

    if record.get("installed") and not record.get("existed"):
        try:
            path.unlink()
            log.info("installed_conf_removed", extra={"path": str(path)})
        except FileNotFoundError:
            pass
        except OSError as exc:
            warnings.append(f"installed_conf_remove_failed:{path}:{exc}")
    return warnings
