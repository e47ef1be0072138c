from __future__ import annotations

import os
import shutil
from typing import Any, Dict, List, Optional, Tuple

from mitmrouter.errors import PreconditionError

# (binary, env override)
REQUIRED_TOOLS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("ip", None),
    ("iw", None),
    ("sysctl", None),
    ("hostapd", "HOSTAPD"),
    ("dnsmasq", "DNSMASQ"),
    ("iptables", None),
)

OPTIONAL_TOOLS = ("systemctl", "iptables-save", "iptables-restore")


def _is_root() -> bool:
    return os.geteuid() == 0


def _tool_present(name: str, env_key: Optional[str]) -> bool:
    if env_key:
        override = os.environ.get(env_key)
        if override and os.path.isfile(override) and os.access(override, os.X_OK):
            return True
    return shutil.which(name) is not None


def run() -> Dict[str, Any]:
    errors: List[str] = []
    warnings: List[str] = []

    if not _is_root():
        errors.append("must_run_as_root")

    missing = [name for name, env_key in REQUIRED_TOOLS if not _tool_present(name, env_key)]
    errors.extend(f"{name}_not_found" for name in missing)

    for name in OPTIONAL_TOOLS:
        if shutil.which(name) is None:
            warnings.append(f"{name}_not_found")

    return {"ok": not errors, "errors": errors, "warnings": warnings, "missing": missing}


def require_root() -> None:
    if not _is_root():
        raise PreconditionError("must_run_as_root")


def require() -> Dict[str, Any]:
    """
    Privilege check first, then tool presence. Raises the first failure.
    """
    report = run()
    if report["errors"]:
        raise PreconditionError(report["errors"][0])
    return report
